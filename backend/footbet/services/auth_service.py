import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, HTTPException, Request, Response, status
import jwt
from jwt.exceptions import InvalidTokenError as JWTError

from footbet.config import settings
import footbet.database as _db
from footbet.database import get_db
from footbet.services.admin_policy import admin_policy
from footbet.utils import utcnow

logger = logging.getLogger("footbet.auth")
ph = PasswordHasher()

ALGORITHM = "HS256"
ACCESS_COOKIE = "access_token"


def hash_password(password: str) -> str:
    return ph.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    try:
        return ph.verify(hashed, password)
    except VerifyMismatchError:
        return False


def create_access_token(user_id: str) -> str:
    expire = utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": user_id,
        "exp": expire,
        "type": "access",
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGORITHM)


def decode_jwt(token: str) -> dict:
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])


def set_auth_cookie(response: Response, access_token: str) -> None:
    response.set_cookie(
        key=ACCESS_COOKIE,
        value=access_token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        path="/",
    )


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(ACCESS_COOKIE, path="/")


async def blocklist_access_token(jti: str, expires_at: datetime) -> None:
    """Revoke an access token until it would have expired anyway (logout)."""
    await _db.db.access_blocklist.update_one(
        {"jti": jti},
        {"$setOnInsert": {"jti": jti, "expires_at": expires_at}},
        upsert=True,
    )


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


async def user_from_token(token: str, db) -> dict:
    try:
        payload = decode_jwt(token)
    except JWTError:
        raise _unauthorized("Invalid token.")

    if payload.get("type") != "access":
        raise _unauthorized("Invalid token type.")

    jti = payload.get("jti")
    if jti and await db.access_blocklist.find_one({"jti": jti}, {"_id": 1}):
        raise _unauthorized("Token revoked.")

    try:
        user_oid = ObjectId(payload.get("sub"))
    except (InvalidId, TypeError):
        raise _unauthorized("Invalid token.")

    user = await db.users.find_one({"_id": user_oid})
    if not user:
        raise _unauthorized("User not found.")
    if user.get("is_banned"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="This account has been suspended.")
    return user


async def get_current_user(request: Request, db=Depends(get_db)) -> dict:
    """FastAPI dependency: the signed-in user from the access token cookie."""
    token = request.cookies.get(ACCESS_COOKIE)
    if not token:
        raise _unauthorized("Not signed in.")
    return await user_from_token(token, db)


async def get_optional_user(request: Request, db=Depends(get_db)) -> Optional[dict]:
    """Like get_current_user, but anonymous visitors get None instead of a 401."""
    if not request.cookies.get(ACCESS_COOKIE):
        return None
    try:
        return await get_current_user(request, db)
    except HTTPException as exc:
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            return None
        raise


async def get_admin_user(request: Request, db=Depends(get_db)) -> dict:
    """FastAPI dependency: requires an account the admin policy accepts."""
    user = await get_current_user(request, db)
    if not admin_policy.is_admin(user):
        logger.warning("Admin route refused for user %s", user.get("_id"))
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Administrators only.")
    return user
