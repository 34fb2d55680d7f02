from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr
from pymongo.database import Database

from auth import create_token, hash_password, verify_password
from database import get_db, create_document, get_documents, serialize_doc, to_object_id
from errors import BadRequestError, NotFoundError
from schemas import User as UserSchema

router = APIRouter()

HIDDEN = {"password_hash": 0}


# ----------------------- Models -----------------------
class UserBody(BaseModel):
    name: str
    email: EmailStr
    password: str
    phone: str
    is_admin: bool = False
    street: str = ""
    apartment: str = ""
    zip: str = ""
    city: str = ""
    country: str = ""


class UserUpdateBody(UserBody):
    password: Optional[str] = None


class LoginBody(BaseModel):
    email: EmailStr
    password: str


def _create_user(db: Database, body: UserBody) -> dict:
    if db["user"].find_one({"email": body.email}):
        raise BadRequestError("Email already registered")
    fields = body.model_dump(exclude={"password"})
    user = UserSchema(**fields, password_hash=hash_password(body.password))
    uid = create_document(db, "user", user)
    return serialize_doc(db["user"].find_one({"_id": to_object_id(uid)}, HIDDEN))


# ----------------------- Reads -----------------------
@router.get("")
def list_users(db: Database = Depends(get_db)):
    return [serialize_doc(u) for u in get_documents(db, "user", projection=HIDDEN)]


@router.get("/get/count")
def count_users(db: Database = Depends(get_db)):
    return {"count": db["user"].count_documents({})}


@router.get("/{user_id}")
def get_user(user_id: str, db: Database = Depends(get_db)):
    user = db["user"].find_one({"_id": to_object_id(user_id)}, HIDDEN)
    if not user:
        raise NotFoundError("User not found")
    return serialize_doc(user)


# ----------------------- Auth -----------------------
@router.post("/login")
def login(body: LoginBody, db: Database = Depends(get_db)):
    user = db["user"].find_one({"email": body.email})
    if not user:
        raise BadRequestError("User not found")
    if not verify_password(body.password, user.get("password_hash", "")):
        raise BadRequestError("Password is incorrect")
    token = create_token({"user_id": str(user["_id"]), "is_admin": bool(user.get("is_admin", False))})
    return {"user": user["email"], "token": token}


@router.post("/register")
def register(body: UserBody, db: Database = Depends(get_db)):
    # self-registration never grants admin
    return _create_user(db, body.model_copy(update={"is_admin": False}))


# ----------------------- Writes -----------------------
@router.post("")
def create_user(body: UserBody, db: Database = Depends(get_db)):
    return _create_user(db, body)


@router.put("/{user_id}")
def update_user(user_id: str, body: UserUpdateBody, db: Database = Depends(get_db)):
    oid = to_object_id(user_id)
    existing = db["user"].find_one({"_id": oid})
    if not existing:
        raise NotFoundError("User not found")
    if body.email != existing["email"] and db["user"].find_one({"email": body.email}):
        raise BadRequestError("Email already registered")

    password_hash = hash_password(body.password) if body.password else existing["password_hash"]
    user = UserSchema(**body.model_dump(exclude={"password"}), password_hash=password_hash)
    update = user.model_dump()
    update["updated_at"] = datetime.now(timezone.utc)
    db["user"].update_one({"_id": oid}, {"$set": update})
    return serialize_doc(db["user"].find_one({"_id": oid}, HIDDEN))


@router.delete("/{user_id}")
def delete_user(user_id: str, db: Database = Depends(get_db)):
    user = db["user"].find_one_and_delete({"_id": to_object_id(user_id)})
    if not user:
        raise NotFoundError("User not found")
    return {"success": True, "message": "User deleted successfully"}
