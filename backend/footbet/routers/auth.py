import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from jwt.exceptions import InvalidTokenError as JWTError
from pymongo.errors import DuplicateKeyError

from footbet.database import get_db
from footbet.models.user import UserCreate, UserLogin, UserResponse
from footbet.services import audit_service
from footbet.services.admin_policy import admin_policy
from footbet.services.auth_service import (
    ACCESS_COOKIE,
    blocklist_access_token,
    clear_auth_cookie,
    create_access_token,
    decode_jwt,
    get_current_user,
    hash_password,
    set_auth_cookie,
    verify_password,
)
from footbet.services.entitlement_service import entitlement_from_user
from footbet.utils import utcnow

logger = logging.getLogger("footbet.auth")
router = APIRouter(prefix="/api/auth", tags=["auth"])


def user_response(user: dict) -> UserResponse:
    entitlement = entitlement_from_user(user)
    return UserResponse(
        id=str(user["_id"]),
        email=user["email"],
        display_name=user.get("display_name", ""),
        is_admin=admin_policy.is_admin(user),
        tier=entitlement.tier,
        subscription_expires_at=entitlement.expires_at if entitlement.is_vip else None,
    )


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(body: UserCreate, request: Request, response: Response, db=Depends(get_db)):
    email = body.email.lower()
    if await db.users.find_one({"email": email}, {"_id": 1}):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This email address is already registered.",
        )

    now = utcnow()
    user_doc = {
        "email": email,
        "hashed_password": hash_password(body.password),
        "display_name": body.display_name,
        "is_admin": False,
        "is_banned": False,
        "subscription": {"tier": "free"},
        "created_at": now,
        "updated_at": now,
    }
    try:
        result = await db.users.insert_one(user_doc)
    except DuplicateKeyError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This email address is already registered.",
        )
    user_id = str(result.inserted_id)

    set_auth_cookie(response, create_access_token(user_id))
    await audit_service.log_audit(
        actor_id=user_id, target_id=user_id, action=audit_service.REGISTER, request=request,
    )
    logger.info("User registered: %s", user_id)
    return {"message": "Registration successful."}


@router.post("/login")
async def login(body: UserLogin, request: Request, response: Response, db=Depends(get_db)):
    user = await db.users.find_one({"email": body.email.lower()})
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password.",
        )
    user_id = str(user["_id"])

    if not verify_password(body.password, user["hashed_password"]):
        await audit_service.log_audit(
            actor_id=user_id, target_id=user_id, action=audit_service.LOGIN_FAILED, request=request,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password.",
        )

    if user.get("is_banned"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This account has been suspended.",
        )

    set_auth_cookie(response, create_access_token(user_id))
    await audit_service.log_audit(
        actor_id=user_id, target_id=user_id, action=audit_service.LOGIN_SUCCESS, request=request,
    )
    return {"message": "Login successful."}


@router.post("/logout")
async def logout(request: Request, response: Response):
    token = request.cookies.get(ACCESS_COOKIE)
    if token:
        try:
            payload = decode_jwt(token)
        except JWTError:
            payload = {}
        if payload.get("jti") and payload.get("exp"):
            await blocklist_access_token(
                payload["jti"], datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
    clear_auth_cookie(response)
    return {"message": "Logged out."}


@router.get("/me", response_model=UserResponse)
async def me(user=Depends(get_current_user)):
    return user_response(user)
