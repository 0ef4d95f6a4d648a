import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import bcrypt
import jwt
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Cookie, Depends, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.database import Database

from config import settings
from database import get_db
from errors import AuthenticationError, PermissionDeniedError

logger = logging.getLogger(__name__)

TOKEN_COOKIE = "token"

security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=settings.bcrypt_rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_token(payload: dict) -> str:
    exp = datetime.now(timezone.utc) + timedelta(days=settings.jwt_expires_days)
    to_encode = {**payload, "exp": exp}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")


def token_for_user(user: dict) -> str:
    return create_token({"id": str(user["_id"]), "is_admin": bool(user.get("is_admin", False))})


def set_token_cookie(response: Response, token: str):
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        httponly=True,
        secure=settings.is_production,
        samesite="none" if settings.is_production else "lax",
        max_age=settings.jwt_expires_days * 24 * 60 * 60,
    )


def clear_token_cookie(response: Response):
    response.delete_cookie(
        TOKEN_COOKIE,
        httponly=True,
        secure=settings.is_production,
        samesite="none" if settings.is_production else "lax",
    )


def candidate_tokens(header_token: Optional[str], cookie_token: Optional[str]) -> List[str]:
    """Header token first, then the cookie token when it differs."""
    tokens = []
    if header_token:
        tokens.append(header_token)
    if cookie_token and cookie_token != header_token:
        tokens.append(cookie_token)
    return tokens


def authenticate(db: Database, tokens: List[str]) -> dict:
    if not tokens:
        raise AuthenticationError("No token provided")

    payload = None
    last_error = None
    for candidate in tokens:
        try:
            payload = decode_token(candidate)
            break
        except AuthenticationError as exc:
            last_error = exc
    if payload is None:
        logger.debug("Rejected token: %s", last_error.message)
        raise last_error

    user_id = payload.get("id")
    if not user_id:
        raise AuthenticationError("Invalid token payload")
    try:
        oid = ObjectId(user_id)
    except (InvalidId, TypeError):
        raise AuthenticationError("Invalid token payload")
    user = db["user"].find_one({"_id": oid})
    if not user:
        raise AuthenticationError("User not found")
    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    token: Optional[str] = Cookie(None),
    db: Database = Depends(get_db),
) -> dict:
    header_token = credentials.credentials.strip() if credentials else None
    return authenticate(db, candidate_tokens(header_token, token))


def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if not user.get("is_admin"):
        raise PermissionDeniedError("Admin access required")
    return user


def public_user(user: dict) -> dict:
    """The user fields safe to return to a client."""
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "contact": user.get("contact"),
        "location": user.get("location"),
        "profilepic": user.get("profilepic"),
        "is_admin": bool(user.get("is_admin", False)),
        "is_verified": bool(user.get("is_verified", False)),
    }
