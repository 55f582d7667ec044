"""
backend/footbet/services/results_service.py

Purpose:
    Grades published predictions once their matches have finished. Each
    Pending record with a fixture_id is looked up for its final score,
    graded Win/Loss from its free-text label, and written back in place
    (status + final_score). Labels the grader cannot interpret stay Pending.

Dependencies:
    - footbet.providers.api_football
    - footbet.services.prediction_repository
"""

from __future__ import annotations

import logging
import re
from datetime import timedelta
from typing import Optional

from footbet.errors import UpstreamError
from footbet.models.prediction import OutcomeStatus, PredictionRecord
from footbet.providers.api_football import ApiFootballProvider, api_football_provider
from footbet.services.prediction_repository import PredictionRepository, prediction_repository
from footbet.services.websocket_manager import CATEGORY_SETTLED, publish_category_event
from footbet.utils import normalize_day, utcnow

logger = logging.getLogger("footbet.results")

_SCORE = re.compile(r"^\s*(\d+)\s*[-:]\s*(\d+)\s*$")
_GOAL_LINE = re.compile(r"\b(over|under)\s*(\d+(?:\.\d+)?)", re.IGNORECASE)
_CORRECT_SCORE = re.compile(r"correct\s*score\D*(\d+)\s*[-:]\s*(\d+)", re.IGNORECASE)
_DOUBLE_CHANCE = re.compile(r"(?<![\w.])(1X|X2|12)(?![\w.])", re.IGNORECASE)
_BTTS_NO = re.compile(r"\b(btts|both teams to score)\s*[:\-]?\s*no\b|\bng\b", re.IGNORECASE)
_BTTS_YES = re.compile(r"\bbtts\b|\bboth teams to score\b|\bgg\b", re.IGNORECASE)
_HOME = re.compile(r"home win|^\s*1\b", re.IGNORECASE)
_AWAY = re.compile(r"away win|^\s*2\b", re.IGNORECASE)
_DRAW = re.compile(r"\bdraw\b|^\s*x\b", re.IGNORECASE)


def parse_score(final_score: str | None) -> Optional[tuple[int, int]]:
    if not final_score:
        return None
    m = _SCORE.match(final_score)
    if not m:
        return None
    return int(m.group(1)), int(m.group(2))


def _win(condition: bool) -> OutcomeStatus:
    return "Win" if condition else "Loss"


def grade_prediction(label: str, final_score: str | None) -> OutcomeStatus:
    """Grade one pick label against ``"h-a"``. Unknown labels or no score -> Pending."""
    score = parse_score(final_score)
    if score is None:
        return "Pending"
    home, away = score
    total = home + away

    m = _CORRECT_SCORE.search(label)
    if m:
        return _win((home, away) == (int(m.group(1)), int(m.group(2))))
    if _BTTS_NO.search(label):
        return _win(home == 0 or away == 0)
    if _BTTS_YES.search(label):
        return _win(home > 0 and away > 0)
    m = _GOAL_LINE.search(label)
    if m:
        line = float(m.group(2))
        return _win(total > line if m.group(1).lower() == "over" else total < line)
    m = _DOUBLE_CHANCE.search(label)
    if m:
        option = m.group(1).upper()
        if option == "1X":
            return _win(home >= away)
        if option == "X2":
            return _win(away >= home)
        return _win(home != away)
    if _HOME.search(label):
        return _win(home > away)
    if _AWAY.search(label):
        return _win(away > home)
    if _DRAW.search(label):
        return _win(home == away)
    return "Pending"


def win_rate(records: list[PredictionRecord]) -> Optional[float]:
    resolved = [r for r in records if r.status != "Pending"]
    if not resolved:
        return None
    return round(100.0 * sum(r.status == "Win" for r in resolved) / len(resolved), 1)


class ResultsService:
    def __init__(
        self,
        *,
        provider: ApiFootballProvider = api_football_provider,
        repository: PredictionRepository = prediction_repository,
    ):
        self.provider = provider
        self.repository = repository

    async def settle_day(self, day: str | None = None) -> dict:
        """Grade every Pending record of the day's published categories."""
        day = normalize_day(day)
        docs = await self.repository.list_categories(day, status="published")
        scores: dict[int, Optional[str]] = {}
        summary: dict[str, dict] = {}

        for doc in docs:
            changed = False
            records = list(doc.predictions)
            for idx, record in enumerate(records):
                if record.status != "Pending" or record.fixture_id is None:
                    continue
                if record.fixture_id not in scores:
                    try:
                        scores[record.fixture_id] = await self.provider.get_fixture_result(record.fixture_id)
                    except UpstreamError as exc:
                        logger.warning("Result lookup failed for fixture %s: %s", record.fixture_id, exc)
                        scores[record.fixture_id] = None
                final_score = scores[record.fixture_id]
                if final_score is None:
                    continue
                outcome = grade_prediction(record.prediction, final_score)
                if outcome == "Pending":
                    logger.info("Cannot grade '%s' (%s); left pending", record.prediction, record.match)
                records[idx] = record.model_copy(update={"final_score": final_score, "status": outcome})
                changed = True

            if changed:
                await self.repository.replace_records(day, doc.category, records)
                await publish_category_event(CATEGORY_SETTLED, day, doc.category)
            summary[doc.category] = {
                "total": len(records),
                "wins": sum(r.status == "Win" for r in records),
                "losses": sum(r.status == "Loss" for r in records),
                "pending": sum(r.status == "Pending" for r in records),
                "win_rate": win_rate(records),
            }

        logger.info("Settled %s: %d categories, %d fixtures looked up", day, len(docs), len(scores))
        return {"date": day, "categories": summary}


results_service = ResultsService()


async def settle_recent_days() -> None:
    """Scheduler job: settle yesterday and today."""
    today = utcnow().date()
    for day in (today - timedelta(days=1), today):
        try:
            await results_service.settle_day(day.isoformat())
        except Exception:
            logger.exception("Results check failed for %s", day)
