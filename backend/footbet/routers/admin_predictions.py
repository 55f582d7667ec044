"""Admin control of the generation pipeline and the publication gate."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

import footbet.database as _db
from footbet.config_categories import OFFICIAL_RULESET, SPECIAL_RULESET
from footbet.models.prediction import GenerationReport
from footbet.routers.predictions import parse_day
from footbet.services import audit_service
from footbet.services.auth_service import get_admin_user
from footbet.services.prediction_pipeline import prediction_pipeline
from footbet.services.prediction_repository import prediction_repository
from footbet.services.publication_service import publication_service
from footbet.services.results_service import results_service

logger = logging.getLogger("footbet.admin_predictions")
router = APIRouter(prefix="/api/admin/predictions", tags=["admin-predictions"])


class GenerateRequest(BaseModel):
    date: Optional[str] = None


async def _generate(ruleset: str, body: GenerateRequest, request: Request, admin: dict) -> GenerationReport:
    day = parse_day(body.date)
    admin_id = str(admin["_id"])
    report = await prediction_pipeline.run(ruleset, day, triggered_by=admin_id)
    await audit_service.log_audit(
        actor_id=admin_id,
        target_id=f"{day}/{ruleset}",
        action=audit_service.GENERATE_PREDICTIONS,
        metadata={"total": report.total, "counts": report.counts, "rejected": report.rejected_picks},
        request=request,
    )
    return report


@router.post("/official/generate", response_model=GenerationReport)
async def generate_official(body: GenerateRequest, request: Request, admin=Depends(get_admin_user)):
    """Generate the five-tier official set (written unpublished)."""
    return await _generate(OFFICIAL_RULESET, body, request, admin)


@router.post("/special/generate", response_model=GenerationReport)
async def generate_special(body: GenerateRequest, request: Request, admin=Depends(get_admin_user)):
    """Generate the FBW SPECIAL elite list (written unpublished)."""
    return await _generate(SPECIAL_RULESET, body, request, admin)


@router.get("/{day}")
async def day_overview(day: str, admin=Depends(get_admin_user)):
    """All category documents of a day, published or not, plus the master timestamps."""
    day = parse_day(day)
    docs = await prediction_repository.list_categories(day)
    master = await prediction_repository.get_master(day)
    return {
        "date": day,
        "metadata": master.metadata if master else {},
        "categories": [doc.model_dump(mode="json") for doc in docs],
    }


@router.post("/{day}/categories/{category}/publish")
async def publish_category(day: str, category: str, request: Request, admin=Depends(get_admin_user)):
    return await publication_service.publish(
        parse_day(day), category, actor_id=str(admin["_id"]), request=request,
    )


@router.post("/{day}/categories/{category}/unpublish")
async def unpublish_category(day: str, category: str, request: Request, admin=Depends(get_admin_user)):
    return await publication_service.unpublish(
        parse_day(day), category, actor_id=str(admin["_id"]), request=request,
    )


@router.post("/{day}/categories/{category}/toggle")
async def toggle_category(day: str, category: str, request: Request, admin=Depends(get_admin_user)):
    return await publication_service.toggle(
        parse_day(day), category, actor_id=str(admin["_id"]), request=request,
    )


@router.post("/{day}/check-results")
async def check_results(day: str, request: Request, admin=Depends(get_admin_user)):
    """Grade the day's published predictions against final scores."""
    day = parse_day(day)
    summary = await results_service.settle_day(day)
    await audit_service.log_audit(
        actor_id=str(admin["_id"]),
        target_id=day,
        action=audit_service.CHECK_RESULTS,
        request=request,
    )
    return summary


@router.get("/audit/recent")
async def recent_audit(
    limit: int = Query(50, ge=1, le=500),
    admin=Depends(get_admin_user),
):
    docs = await _db.db.audit_logs.find({}, {"_id": 0}).sort("timestamp", -1).to_list(length=limit)
    return docs
