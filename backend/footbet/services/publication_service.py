"""
backend/footbet/services/publication_service.py

Purpose:
    The only path that flips a category document between "unpublished" and
    "published". A request whose target equals the current status is a no-op
    (no write, no audit entry, no event), so repeated clicks are harmless.

Dependencies:
    - footbet.database
    - footbet.services.audit_service
    - footbet.services.websocket_manager
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Request

import footbet.database as _db
from footbet.config_categories import PREDICTION_CATEGORIES
from footbet.errors import CategoryNotFoundError
from footbet.models.prediction import PublicationStatus
from footbet.services import audit_service
from footbet.services.prediction_repository import category_doc_id
from footbet.services.websocket_manager import (
    CATEGORY_PUBLISHED,
    CATEGORY_UNPUBLISHED,
    publish_category_event,
)
from footbet.utils import normalize_day

logger = logging.getLogger("footbet.publication")

_EVENTS = {"published": CATEGORY_PUBLISHED, "unpublished": CATEGORY_UNPUBLISHED}
_AUDIT_ACTIONS = {
    "published": audit_service.PUBLISH_CATEGORY,
    "unpublished": audit_service.UNPUBLISH_CATEGORY,
}


class PublicationService:
    async def _current_status(self, day: str, category: str) -> PublicationStatus:
        if category not in PREDICTION_CATEGORIES:
            raise CategoryNotFoundError(f"Unknown prediction category '{category}'.")
        doc = await _db.db.prediction_categories.find_one(
            {"_id": category_doc_id(day, category)}, {"status": 1},
        )
        if doc is None:
            raise CategoryNotFoundError(f"No '{category}' predictions exist for {day}.")
        return doc.get("status", "unpublished")

    async def set_status(
        self,
        day: str,
        category: str,
        target: PublicationStatus,
        *,
        actor_id: str = "system",
        request: Optional[Request] = None,
    ) -> dict:
        """Move a category to ``target``. Returns {"date", "category", "status", "changed"}."""
        day = normalize_day(day)
        current = await self._current_status(day, category)
        result = {"date": day, "category": category, "status": target, "changed": False}
        if current == target:
            return result

        # Conditional on the status so concurrent requests commit at most once.
        write = await _db.db.prediction_categories.update_one(
            {"_id": category_doc_id(day, category), "status": {"$ne": target}},
            {"$set": {"status": target}, "$currentDate": {"status_changed_at": True}},
        )
        if write.modified_count != 1:
            return result
        result["changed"] = True
        logger.info("Category %s/%s: %s -> %s by %s", day, category, current, target, actor_id)

        await audit_service.log_audit(
            actor_id=actor_id,
            target_id=category_doc_id(day, category),
            action=_AUDIT_ACTIONS[target],
            metadata={"from": current, "to": target},
            request=request,
        )
        await publish_category_event(_EVENTS[target], day, category)
        return result

    async def publish(self, day: str, category: str, **kwargs) -> dict:
        return await self.set_status(day, category, "published", **kwargs)

    async def unpublish(self, day: str, category: str, **kwargs) -> dict:
        return await self.set_status(day, category, "unpublished", **kwargs)

    async def toggle(self, day: str, category: str, **kwargs) -> dict:
        day = normalize_day(day)
        current = await self._current_status(day, category)
        target: PublicationStatus = "unpublished" if current == "published" else "published"
        return await self.set_status(day, category, target, **kwargs)


publication_service = PublicationService()
