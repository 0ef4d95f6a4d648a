import logging
from typing import List, Optional

from bson import ObjectId
from pymongo.database import Database

from database import create_document, get_documents, now
from errors import AuthenticationError, ConflictError, NotFoundError
from schemas import AddressBody, LoginBody, ProfileUpdateBody, SignupBody, User
from security import hash_password, verify_password

logger = logging.getLogger(__name__)


def register(db: Database, body: SignupBody) -> dict:
    if db["user"].find_one({"email": body.email}):
        raise ConflictError("Email is already registered")
    user = User(
        name=body.name,
        email=body.email,
        contact=body.contact,
        location=body.location,
        password_hash=hash_password(body.password),
        is_admin=False,
        is_verified=True,
    )
    user_id = create_document(db, "user", user)
    logger.info("Registered user %s", user_id)
    return db["user"].find_one({"_id": user_id})


def login(db: Database, body: LoginBody) -> dict:
    user = db["user"].find_one({"email": body.email})
    if not user or not verify_password(body.password, user.get("password_hash")):
        raise AuthenticationError("Invalid credentials")
    return user


def update_profile(db: Database, user: dict, body: ProfileUpdateBody) -> dict:
    update = body.model_dump(exclude_none=True)
    if not update:
        return user
    update["updated_at"] = now()
    db["user"].update_one({"_id": user["_id"]}, {"$set": update})
    return db["user"].find_one({"_id": user["_id"]})


def save_address(db: Database, user: dict, body: AddressBody) -> dict:
    """Append an address; a new default address unsets every other default."""
    fresh = db["user"].find_one({"_id": user["_id"]})
    if not fresh:
        raise NotFoundError("User not found")

    address = body.model_dump()
    address["_id"] = ObjectId()
    addresses = list(fresh.get("addresses") or [])
    if address["is_default"]:
        for existing in addresses:
            existing["is_default"] = False
    addresses.append(address)

    db["user"].update_one({"_id": user["_id"]}, {"$set": {"addresses": addresses, "updated_at": now()}})
    return address


def list_addresses(db: Database, user: dict) -> List[dict]:
    fresh = db["user"].find_one({"_id": user["_id"]}, {"addresses": 1})
    if not fresh:
        raise NotFoundError("User not found")
    return fresh.get("addresses") or []


def resolve_shipping_address(user: dict, address_id: Optional[str]) -> Optional[dict]:
    """Explicit address id, else the default address, else None."""
    addresses = user.get("addresses") or []
    if address_id:
        for address in addresses:
            if str(address.get("_id")) == address_id:
                return dict(address)
        raise NotFoundError("Address not found")
    for address in addresses:
        if address.get("is_default"):
            return dict(address)
    return None


def user_orders(db: Database, user: dict) -> List[dict]:
    return get_documents(db, "order", {"user_id": user["_id"]}, sort=[("created_at", -1)])
