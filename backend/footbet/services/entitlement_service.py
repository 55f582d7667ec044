"""
backend/footbet/services/entitlement_service.py

Purpose:
    Resolves what a user may read. Subscription state lives embedded in the
    user document (``users.subscription``); everything that gates content
    asks ``resolve_entitlement`` instead of reading user fields directly.

    VIP with ``expires_at`` None is a lifetime plan. An expired VIP plan
    resolves to the free tier without rewriting the stored document.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from bson import ObjectId
from bson.errors import InvalidId

import footbet.database as _db
from footbet.config_categories import (
    ACCESS_MEMBER,
    ACCESS_PUBLIC,
    ACCESS_VIP,
    PREDICTION_CATEGORIES,
    SUBSCRIPTION_PLANS,
)
from footbet.errors import CategoryNotFoundError, UserNotFoundError
from footbet.utils import ensure_utc, utcnow

logger = logging.getLogger("footbet.entitlements")


@dataclass(frozen=True)
class Entitlement:
    tier: str = "free"
    expires_at: Optional[datetime] = None
    signed_in: bool = False

    @property
    def is_vip(self) -> bool:
        return self.tier == "vip"


ANONYMOUS = Entitlement()


def entitlement_from_user(user: Optional[Mapping[str, Any]], *, now: Optional[datetime] = None) -> Entitlement:
    if not user:
        return ANONYMOUS
    sub = user.get("subscription") or {}
    tier = sub.get("tier") or "free"
    expires_at = sub.get("expires_at")
    if expires_at is not None:
        expires_at = ensure_utc(expires_at)
    if tier == "vip" and expires_at is not None and expires_at <= (now or utcnow()):
        return Entitlement(tier="free", expires_at=expires_at, signed_in=True)
    return Entitlement(tier=tier, expires_at=expires_at, signed_in=True)


async def resolve_entitlement(user_id: str | None) -> Entitlement:
    if not user_id:
        return ANONYMOUS
    user = await _db.db.users.find_one({"_id": ObjectId(user_id)}, {"subscription": 1})
    return entitlement_from_user(user)


def can_access(entitlement: Entitlement, category: str) -> bool:
    entry = PREDICTION_CATEGORIES.get(category)
    if entry is None:
        raise CategoryNotFoundError(f"Unknown prediction category '{category}'.")
    access = entry["access"]
    if access == ACCESS_PUBLIC:
        return True
    if access == ACCESS_MEMBER:
        return entitlement.signed_in
    if access == ACCESS_VIP:
        return entitlement.is_vip
    return False


def accessible_categories(entitlement: Entitlement) -> list[str]:
    return [cid for cid in PREDICTION_CATEGORIES if can_access(entitlement, cid)]


def extend_expiry(current: Optional[datetime], duration_days: Optional[int], *, now: datetime) -> Optional[datetime]:
    """New expiry after buying ``duration_days``; unused time on an active plan carries over."""
    if duration_days is None:
        return None
    start = now
    if current is not None and ensure_utc(current) > now:
        start = ensure_utc(current)
    return start + timedelta(days=duration_days)


async def grant_plan(user_id: str, plan: str, *, granted_by: str) -> Entitlement:
    """Activate ``plan`` for a user (admin approval of a payment)."""
    plan_entry = SUBSCRIPTION_PLANS[plan]
    now = utcnow()
    try:
        user_oid = ObjectId(user_id)
    except (InvalidId, TypeError):
        raise UserNotFoundError(f"User {user_id} not found.")
    user = await _db.db.users.find_one({"_id": user_oid}, {"subscription": 1})
    if user is None:
        raise UserNotFoundError(f"User {user_id} not found.")

    current = entitlement_from_user(user, now=now)
    if current.is_vip and current.expires_at is None:
        logger.info("User %s already holds a lifetime plan; %s grant is a no-op", user_id, plan)
        return current

    expires_at = extend_expiry(
        current.expires_at if current.is_vip else None,
        plan_entry["duration_days"],
        now=now,
    )
    await _db.db.users.update_one(
        {"_id": user_oid},
        {"$set": {
            "subscription": {
                "tier": "vip",
                "plan": plan,
                "expires_at": expires_at,
                "granted_at": now,
                "granted_by": granted_by,
            },
            "updated_at": now,
        }},
    )
    logger.info("Granted %s to user %s (expires %s) by %s", plan, user_id, expires_at or "never", granted_by)
    return Entitlement(tier="vip", expires_at=expires_at, signed_in=True)
