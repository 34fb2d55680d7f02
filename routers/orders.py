import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import get_db, create_document, populate, serialize_doc, to_object_id
from errors import BadRequestError, NotFoundError
from schemas import Order as OrderSchema, OrderItem as OrderItemSchema, OrderStatus

router = APIRouter()
logger = logging.getLogger(__name__)


# ----------------------- Models -----------------------
class OrderItemBody(BaseModel):
    quantity: int = Field(..., ge=1)
    product: str


class OrderCreateBody(BaseModel):
    order_items: List[OrderItemBody] = Field(..., min_length=1)
    shipping_address1: str
    shipping_address2: str = ""
    city: str
    zip: str
    country: str
    phone: str
    status: OrderStatus = "Pending"
    user: Optional[str] = None
    date_ordered: Optional[datetime] = None


class OrderStatusBody(BaseModel):
    status: OrderStatus


# ----------------------- Helpers -----------------------
def populate_order(db: Database, order: dict) -> dict:
    populate(db, order, "user", "user", {"name": 1})
    populate(db, order, "order_items", "orderitem")
    for item in order.get("order_items", []):
        populate(db, item, "product", "product")
        populate(db, item.get("product"), "category", "category")
    return serialize_doc(order)


def find_orders(db: Database, filt: dict) -> List[dict]:
    orders = db["order"].find(filt).sort("date_ordered", DESCENDING)
    return [populate_order(db, o) for o in orders]


# ----------------------- Reads -----------------------
@router.get("")
def list_orders(db: Database = Depends(get_db)):
    return find_orders(db, {})


@router.get("/get/count")
def count_orders(db: Database = Depends(get_db)):
    return {"count": db["order"].count_documents({})}


@router.get("/get/totalsales")
def total_sales(db: Database = Depends(get_db)):
    result = list(db["order"].aggregate([
        {"$group": {"_id": None, "total_sales": {"$sum": "$total_price"}}},
    ]))
    return {"total_sales": result[0]["total_sales"] if result else 0}


@router.get("/get/status/{status}")
def orders_by_status(status: str, db: Database = Depends(get_db)):
    return find_orders(db, {"status": status})


@router.get("/get/userorders/{user_id}")
def orders_by_user(user_id: str, db: Database = Depends(get_db)):
    return find_orders(db, {"user": to_object_id(user_id)})


@router.get("/{order_id}")
def get_order(order_id: str, db: Database = Depends(get_db)):
    order = db["order"].find_one({"_id": to_object_id(order_id)})
    if not order:
        raise NotFoundError("Order not found")
    return populate_order(db, order)


# ----------------------- Writes -----------------------
@router.post("", status_code=201)
def create_order(body: OrderCreateBody, request: Request, db: Database = Depends(get_db)):
    # resolve every product before writing anything
    lines = []
    total = 0.0
    for item in body.order_items:
        product = db["product"].find_one({"_id": to_object_id(item.product)}, {"price": 1})
        if not product:
            raise BadRequestError(f"Invalid product {item.product}")
        total += float(product.get("price", 0)) * item.quantity
        lines.append(OrderItemSchema(quantity=item.quantity, product=item.product))

    token = getattr(request.state, "token", None) or {}
    user_id = body.user or token.get("user_id")
    user_oid = to_object_id(user_id) if user_id else None

    item_ids = []
    for line in lines:
        doc = line.model_dump()
        doc["product"] = to_object_id(line.product)
        item_ids.append(create_document(db, "orderitem", doc))

    order = OrderSchema(
        order_items=item_ids,
        shipping_address1=body.shipping_address1,
        shipping_address2=body.shipping_address2,
        city=body.city,
        zip=body.zip,
        country=body.country,
        phone=body.phone,
        status=body.status,
        total_price=total,
        user=user_id,
        **({"date_ordered": body.date_ordered} if body.date_ordered else {}),
    )
    doc = order.model_dump()
    doc["order_items"] = [to_object_id(i) for i in item_ids]
    doc["user"] = user_oid
    oid = create_document(db, "order", doc)
    logger.info("Created order %s with %d items, total %.2f", oid, len(item_ids), order.total_price)
    return serialize_doc(db["order"].find_one({"_id": to_object_id(oid)}))


@router.put("/{order_id}")
def update_order_status(order_id: str, body: OrderStatusBody, db: Database = Depends(get_db)):
    order = db["order"].find_one_and_update(
        {"_id": to_object_id(order_id)},
        {"$set": {"status": body.status, "updated_at": datetime.now(timezone.utc)}},
        return_document=ReturnDocument.AFTER,
    )
    if not order:
        raise NotFoundError("Order not found")
    return serialize_doc(order)


@router.delete("/{order_id}")
def delete_order(order_id: str, db: Database = Depends(get_db)):
    order = db["order"].find_one_and_delete({"_id": to_object_id(order_id)})
    if not order:
        raise NotFoundError("Order not found")
    item_ids = order.get("order_items", [])
    try:
        db["orderitem"].delete_many({"_id": {"$in": item_ids}})
    except PyMongoError:
        logger.warning("Could not remove %d items of deleted order %s", len(item_ids), order_id, exc_info=True)
    return {"success": True, "message": "Order deleted successfully"}
