"""
Database Schemas for the E-Shop API

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name.
Fields holding another document's id carry a ``ref`` naming that model.
"""
from datetime import datetime, timezone
from typing import List, Optional, Literal
from pydantic import BaseModel, Field, EmailStr

ORDER_STATUSES = ("Pending", "Shipped", "Delivered", "Cancelled")
OrderStatus = Literal["Pending", "Shipped", "Delivered", "Cancelled"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ref(model: str, description: Optional[str] = None, **kwargs):
    return Field(..., description=description, json_schema_extra={"ref": model}, **kwargs)


class Category(BaseModel):
    name: str = Field(..., min_length=1, description="Category name")
    icon: Optional[str] = Field(None, description="Icon identifier")
    color: Optional[str] = Field(None, description="Display color, e.g. #ff0000")
    image: Optional[str] = Field(None, description="Image URL")


class Product(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = Field(..., description="Short description")
    rich_description: str = Field("", description="Long HTML description")
    image: str = Field("", description="Main image URL")
    images: List[str] = Field(default_factory=list, description="Gallery image URLs")
    brand: str = ""
    price: float = Field(0, ge=0)
    category: str = ref("Category")
    count_in_stock: int = Field(..., ge=0, le=255, description="Units in stock")
    rating: float = Field(0, ge=0, le=5)
    is_featured: bool = Field(False, description="Shown on the front page")
    date_created: datetime = Field(default_factory=utcnow)


class OrderItem(BaseModel):
    quantity: int = Field(..., ge=1)
    product: str = ref("Product")


class Order(BaseModel):
    order_items: List[str] = ref("OrderItem", "Ordered line items")
    shipping_address1: str
    shipping_address2: str = ""
    city: str
    zip: str
    country: str
    phone: str
    status: OrderStatus = "Pending"
    total_price: float = Field(..., ge=0, description="Sum of quantity times unit price")
    user: Optional[str] = Field(None, json_schema_extra={"ref": "User"})
    date_ordered: datetime = Field(default_factory=utcnow)


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="bcrypt hash of the password")
    phone: str
    is_admin: bool = False
    street: str = ""
    apartment: str = ""
    zip: str = ""
    city: str = ""
    country: str = ""


MODELS = {
    "Category": Category,
    "Product": Product,
    "OrderItem": OrderItem,
    "Order": Order,
    "User": User,
}
