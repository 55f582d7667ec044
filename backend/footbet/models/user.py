from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, field_validator

Tier = Literal["free", "vip"]


class Subscription(BaseModel):
    """Subscription state embedded in the user document."""
    tier: Tier = "free"
    plan: Optional[str] = None
    expires_at: Optional[datetime] = None  # None with tier "vip" means lifetime
    granted_at: Optional[datetime] = None
    granted_by: Optional[str] = None


class UserInDB(BaseModel):
    """Full user document as stored in MongoDB."""
    email: EmailStr
    hashed_password: str
    display_name: str
    is_admin: bool = False
    is_banned: bool = False
    subscription: Subscription = Subscription()
    created_at: datetime
    updated_at: datetime


class UserCreate(BaseModel):
    """Request body for registration."""
    email: EmailStr
    password: str
    display_name: str

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        if len(v) < 10:
            raise ValueError("Password must be at least 10 characters long.")
        if not any(c.isdigit() for c in v):
            raise ValueError("Password must contain at least one digit.")
        return v

    @field_validator("display_name")
    @classmethod
    def display_name_length(cls, v: str) -> str:
        v = v.strip()
        if not 2 <= len(v) <= 40:
            raise ValueError("Display name must be 2-40 characters.")
        return v


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: str
    email: str
    display_name: str
    is_admin: bool
    tier: Tier
    subscription_expires_at: Optional[datetime] = None
