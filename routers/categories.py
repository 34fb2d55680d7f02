from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pymongo import ReturnDocument
from pymongo.database import Database

from database import get_db, create_document, get_documents, serialize_doc, to_object_id
from errors import NotFoundError
from schemas import Category as CategorySchema

router = APIRouter()


class CategoryBody(CategorySchema):
    pass


@router.get("")
def list_categories(db: Database = Depends(get_db)):
    return [serialize_doc(c) for c in get_documents(db, "category")]


@router.get("/get/count")
def count_categories(db: Database = Depends(get_db)):
    return {"count": db["category"].count_documents({})}


@router.get("/{category_id}")
def get_category(category_id: str, db: Database = Depends(get_db)):
    category = db["category"].find_one({"_id": to_object_id(category_id)})
    if not category:
        raise NotFoundError("Category not found")
    return serialize_doc(category)


@router.post("")
def create_category(body: CategoryBody, db: Database = Depends(get_db)):
    cid = create_document(db, "category", body)
    return serialize_doc(db["category"].find_one({"_id": to_object_id(cid)}))


@router.put("/{category_id}")
def update_category(category_id: str, body: CategoryBody, db: Database = Depends(get_db)):
    update = body.model_dump()
    update["updated_at"] = datetime.now(timezone.utc)
    category = db["category"].find_one_and_update(
        {"_id": to_object_id(category_id)},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    if not category:
        raise NotFoundError("Category not found")
    return serialize_doc(category)


@router.delete("/{category_id}")
def delete_category(category_id: str, db: Database = Depends(get_db)):
    category = db["category"].find_one_and_delete({"_id": to_object_id(category_id)})
    if not category:
        raise NotFoundError("Category not found")
    return {"success": True, "message": "Category deleted successfully"}
