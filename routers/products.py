import logging
import shutil
import time
from datetime import datetime, timezone
from pathlib import PurePath
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from pymongo.database import Database

import config
from database import get_db, create_document, get_documents, populate, serialize_doc, to_object_id
from errors import BadRequestError, NotFoundError
from schemas import Product as ProductSchema

router = APIRouter()
logger = logging.getLogger(__name__)

FILE_TYPE_MAP = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
}
MAX_GALLERY_IMAGES = 10


class ProductForm:
    """Product fields as sent in a multipart form alongside the image upload."""

    def __init__(
        self,
        name: str = Form(...),
        description: str = Form(...),
        category: str = Form(...),
        count_in_stock: int = Form(...),
        rich_description: str = Form(""),
        brand: str = Form(""),
        price: float = Form(0),
        rating: float = Form(0),
        is_featured: bool = Form(False),
        images: Optional[List[str]] = Form(None),
    ):
        self.name = name
        self.description = description
        self.category = category
        self.count_in_stock = count_in_stock
        self.rich_description = rich_description
        self.brand = brand
        self.price = price
        self.rating = rating
        self.is_featured = is_featured
        self.images = images or []

    def fields(self) -> dict:
        return dict(vars(self))


# ----------------------- Uploads -----------------------
def upload_name(upload: UploadFile) -> str:
    extension = FILE_TYPE_MAP.get(upload.content_type or "")
    if not extension:
        raise BadRequestError("Invalid image type")
    stem = PurePath(upload.filename or "image").name.split(".")[0] or "image"
    return f"{stem.replace(' ', '-')}-{int(time.time() * 1000)}.{extension}"


def save_upload(upload: UploadFile, file_name: str) -> None:
    config.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    with open(config.UPLOAD_DIR / file_name, "wb") as out:
        shutil.copyfileobj(upload.file, out)
    logger.info("Saved upload %s", file_name)


def upload_url(request: Request, file_name: str) -> str:
    return f"{request.base_url}{config.UPLOAD_URL.strip('/')}/{file_name}"


def require_category(db: Database, category_id: str):
    oid = to_object_id(category_id)
    if not db["category"].find_one({"_id": oid}):
        raise BadRequestError("Invalid Category")
    return oid


def find_product(db: Database, product_id: str) -> dict:
    product = db["product"].find_one({"_id": to_object_id(product_id)})
    if not product:
        raise NotFoundError("Product not found")
    return product


def product_out(db: Database, product: dict) -> dict:
    return serialize_doc(populate(db, product, "category", "category"))


# ----------------------- Reads -----------------------
@router.get("")
def list_products(categories: Optional[str] = None, db: Database = Depends(get_db)):
    filt = {}
    if categories:
        filt["category"] = {"$in": [to_object_id(c.strip()) for c in categories.split(",") if c.strip()]}
    return [product_out(db, p) for p in get_documents(db, "product", filt)]


@router.get("/get/count")
def count_products(db: Database = Depends(get_db)):
    return {"count": db["product"].count_documents({})}


@router.get("/get/featured/{count}")
def featured_products(count: int, db: Database = Depends(get_db)):
    if count < 0:
        raise BadRequestError("count must not be negative")
    return [serialize_doc(p) for p in get_documents(db, "product", {"is_featured": True}, limit=count)]


@router.get("/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    return product_out(db, find_product(db, product_id))


# ----------------------- Writes -----------------------
@router.post("")
def create_product(
    request: Request,
    form: ProductForm = Depends(),
    image: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
):
    category_oid = require_category(db, form.category)
    if image is None:
        raise BadRequestError("No image in the request")
    file_name = upload_name(image)
    product = ProductSchema(**{**form.fields(), "image": upload_url(request, file_name)})

    save_upload(image, file_name)
    doc = product.model_dump()
    doc["category"] = category_oid
    pid = create_document(db, "product", doc)
    return product_out(db, db["product"].find_one({"_id": to_object_id(pid)}))


@router.put("/gallery-images/{product_id}")
def update_gallery(
    request: Request,
    product_id: str,
    images: Optional[List[UploadFile]] = File(None),
    db: Database = Depends(get_db),
):
    product = find_product(db, product_id)
    if not images:
        raise BadRequestError("No images in the request")
    if len(images) > MAX_GALLERY_IMAGES:
        raise BadRequestError(f"At most {MAX_GALLERY_IMAGES} images are allowed")
    names = [upload_name(upload) for upload in images]
    for upload, name in zip(images, names):
        save_upload(upload, name)

    db["product"].update_one(
        {"_id": product["_id"]},
        {"$set": {"images": [upload_url(request, n) for n in names], "updated_at": datetime.now(timezone.utc)}},
    )
    return product_out(db, db["product"].find_one({"_id": product["_id"]}))


@router.put("/{product_id}")
def update_product(
    request: Request,
    product_id: str,
    form: ProductForm = Depends(),
    image: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
):
    oid = to_object_id(product_id)
    category_oid = require_category(db, form.category)
    existing = find_product(db, product_id)

    file_name = upload_name(image) if image is not None else None
    image_path = upload_url(request, file_name) if file_name else existing.get("image", "")
    product = ProductSchema(**{
        **form.fields(),
        "image": image_path,
        "date_created": existing.get("date_created") or datetime.now(timezone.utc),
    })

    if file_name:
        save_upload(image, file_name)
    update = product.model_dump()
    update["category"] = category_oid
    update["updated_at"] = datetime.now(timezone.utc)
    db["product"].update_one({"_id": oid}, {"$set": update})
    return product_out(db, db["product"].find_one({"_id": oid}))


@router.delete("/{product_id}")
def delete_product(product_id: str, db: Database = Depends(get_db)):
    product = db["product"].find_one_and_delete({"_id": to_object_id(product_id)})
    if not product:
        raise NotFoundError("Product not found")
    return {"success": True, "message": "Product deleted successfully"}
