"""Published predictions for subscribers and visitors.

Only ``published`` category documents are ever served. Categories the caller
is not entitled to are listed as locked, without their records.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path

from footbet.config_categories import PREDICTION_CATEGORIES
from footbet.services.auth_service import get_optional_user
from footbet.services.entitlement_service import can_access, entitlement_from_user
from footbet.services.prediction_repository import prediction_repository
from footbet.utils import normalize_day

logger = logging.getLogger("footbet.predictions_router")
router = APIRouter(prefix="/api/predictions", tags=["predictions"])


def parse_day(value: Optional[str]) -> str:
    try:
        return normalize_day(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date '{value}'. Expected YYYY-MM-DD.")


@router.get("/categories")
async def list_category_registry(user: Optional[dict] = Depends(get_optional_user)):
    """The category catalogue, with whether the caller may open each one."""
    entitlement = entitlement_from_user(user)
    return [
        {
            "category": cid,
            "label": entry["label"],
            "ruleset": entry["ruleset"],
            "access": entry["access"],
            "max_records": entry["max_records"],
            "unlocked": can_access(entitlement, cid),
        }
        for cid, entry in PREDICTION_CATEGORIES.items()
    ]


@router.get("/{day}")
async def list_published(
    day: str = Path(..., description="YYYY-MM-DD or 'today'"),
    user: Optional[dict] = Depends(get_optional_user),
):
    """Published categories of one day."""
    day = parse_day(None if day == "today" else day)
    entitlement = entitlement_from_user(user)
    docs = await prediction_repository.list_categories(day, status="published")

    out = []
    for doc in docs:
        unlocked = can_access(entitlement, doc.category)
        out.append({
            "category": doc.category,
            "label": PREDICTION_CATEGORIES[doc.category]["label"],
            "unlocked": unlocked,
            "count": len(doc.predictions),
            "predictions": [r.model_dump(mode="json") for r in doc.predictions] if unlocked else [],
            "published_at": doc.status_changed_at,
        })
    return {"date": day, "categories": out}


@router.get("/{day}/{category}")
async def get_published_category(
    day: str,
    category: str,
    user: Optional[dict] = Depends(get_optional_user),
):
    day = parse_day(None if day == "today" else day)
    if category not in PREDICTION_CATEGORIES:
        raise HTTPException(status_code=404, detail="Unknown prediction category.")

    doc = await prediction_repository.get_category(day, category)
    if doc is None or doc.status != "published":
        raise HTTPException(status_code=404, detail="No published predictions for this category yet.")

    if not can_access(entitlement_from_user(user), category):
        raise HTTPException(
            status_code=401 if user is None else 403,
            detail="Sign in to view this category." if user is None else "An active VIP plan is required.",
        )
    return {
        "date": day,
        "category": category,
        "label": PREDICTION_CATEGORIES[category]["label"],
        "predictions": [r.model_dump(mode="json") for r in doc.predictions],
        "settled_at": doc.settled_at,
    }
