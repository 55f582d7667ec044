"""
backend/footbet/services/prediction_repository.py

Purpose:
    Persistence for per-day prediction documents.

    prediction_categories  _id "YYYY-MM-DD/<category>"  (predictions/{date}/categories/{id})
    predictions            _id "YYYY-MM-DD"             (predictions/{date}, master)

    A generation run writes all of its category documents plus the master
    merge in one multi-document transaction, so a run that spans several
    categories is never half written. Timestamps come from the server clock
    via $currentDate.

Dependencies:
    - motor (through footbet.database)
    - footbet.services.prediction_validation
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

import footbet.database as _db
from footbet.config_categories import PREDICTION_CATEGORIES
from footbet.models.prediction import (
    DailyMasterDocument,
    PredictionCategoryDocument,
    PredictionRecord,
    PublicationStatus,
)
from footbet.services.prediction_validation import enforce_category_limits

logger = logging.getLogger("footbet.prediction_repository")

_CATEGORY_ORDER = {cid: idx for idx, cid in enumerate(PREDICTION_CATEGORIES)}


def category_doc_id(day: str, category: str) -> str:
    return f"{day}/{category}"


def _dump_records(records: Sequence[PredictionRecord]) -> list[dict[str, Any]]:
    return [record.model_dump(mode="json") for record in records]


class PredictionRepository:
    async def write_generation(
        self,
        day: str,
        ruleset: str,
        categories: Mapping[str, Sequence[PredictionRecord]],
        *,
        metadata: Optional[dict[str, Any]] = None,
    ) -> list[str]:
        """Overwrite the run's category documents (status reset to unpublished)
        and merge their timestamps into the master document, atomically."""
        enforce_category_limits(categories)

        written: list[str] = []
        async with await _db.client.start_session() as session:
            async with session.start_transaction():
                for category, records in categories.items():
                    doc_id = category_doc_id(day, category)
                    await _db.db.prediction_categories.update_one(
                        {"_id": doc_id},
                        {
                            "$set": {
                                "date": day,
                                "category": category,
                                "ruleset": ruleset,
                                "predictions": _dump_records(records),
                                "status": "unpublished",
                                "generation": dict(metadata or {}),
                            },
                            "$unset": {"status_changed_at": "", "settled_at": ""},
                            "$currentDate": {"generated_at": True},
                        },
                        upsert=True,
                        session=session,
                    )
                    written.append(doc_id)

                await _db.db.predictions.update_one(
                    {"_id": day},
                    {
                        "$set": {"date": day},
                        "$currentDate": {
                            f"metadata.{category}_generated_at": True for category in categories
                        },
                    },
                    upsert=True,
                    session=session,
                )

        logger.info(
            "Persisted %s run for %s: %s",
            ruleset, day, ", ".join(f"{c}={len(r)}" for c, r in categories.items()),
        )
        return written

    async def get_category(self, day: str, category: str) -> Optional[PredictionCategoryDocument]:
        doc = await _db.db.prediction_categories.find_one({"_id": category_doc_id(day, category)})
        return PredictionCategoryDocument.from_mongo(doc) if doc else None

    async def list_categories(
        self,
        day: str,
        *,
        status: PublicationStatus | None = None,
        categories: Sequence[str] | None = None,
    ) -> list[PredictionCategoryDocument]:
        query: dict[str, Any] = {"date": day}
        if status:
            query["status"] = status
        if categories is not None:
            query["category"] = {"$in": list(categories)}
        docs = await _db.db.prediction_categories.find(query).to_list(length=len(PREDICTION_CATEGORIES))
        parsed = [PredictionCategoryDocument.from_mongo(doc) for doc in docs]
        return sorted(parsed, key=lambda d: _CATEGORY_ORDER.get(d.category, len(_CATEGORY_ORDER)))

    async def get_master(self, day: str) -> Optional[DailyMasterDocument]:
        doc = await _db.db.predictions.find_one({"_id": day})
        return DailyMasterDocument.from_mongo(doc) if doc else None

    async def replace_records(
        self,
        day: str,
        category: str,
        records: Sequence[PredictionRecord],
    ) -> bool:
        """Write back graded records of one category (results checker)."""
        result = await _db.db.prediction_categories.update_one(
            {"_id": category_doc_id(day, category)},
            {
                "$set": {"predictions": _dump_records(records)},
                "$currentDate": {"settled_at": True},
            },
        )
        return result.modified_count > 0


prediction_repository = PredictionRepository()
