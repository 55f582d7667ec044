"""
backend/tests/test_results_service.py

Purpose:
    Pick grading against final scores and settlement of published categories.
"""

from __future__ import annotations

import sys

import pytest

sys.path.insert(0, "backend")

from footbet.config import settings
from footbet.errors import UpstreamError
from footbet.models.prediction import PredictionCategoryDocument, PredictionRecord
from footbet.services.results_service import ResultsService, grade_prediction, win_rate


@pytest.mark.parametrize(
    "label,score,expected",
    [
        ("1 (Home Win)", "2-1", "Win"),
        ("Home Win", "0-0", "Loss"),
        ("2 (Away Win)", "0-3", "Win"),
        ("Draw", "1-1", "Win"),
        ("X (Draw)", "2-1", "Loss"),
        ("Double Chance 1X", "1-1", "Win"),
        ("X2", "2-0", "Loss"),
        ("12", "0-0", "Loss"),
        ("Over 2.5", "2-1", "Win"),
        ("Over 2.5", "1-1", "Loss"),
        ("Under 2.5", "1-1", "Win"),
        ("Under 1.5", "1-1", "Loss"),
        ("BTTS", "1-2", "Win"),
        ("BTTS - No", "1-2", "Loss"),
        ("Correct Score 2-1", "2-1", "Win"),
        ("Asian Handicap -1", "2-0", "Pending"),
        ("Over 1.5", None, "Pending"),
        ("Over 1.5", "abandoned", "Pending"),
    ],
)
def test_grade_prediction(label, score, expected):
    assert grade_prediction(label, score) == expected


def _record(fid, prediction, status="Pending"):
    return PredictionRecord(
        match=f"H{fid} vs A{fid}",
        home_team=f"H{fid}",
        away_team=f"A{fid}",
        league="Ligue 1",
        time="21:00",
        prediction=prediction,
        odds=1.6,
        confidence=80,
        fixture_id=fid,
        status=status,
    )


class _FakeRepository:
    def __init__(self, docs):
        self.docs = docs
        self.replaced: dict[str, list] = {}
        self.queries: list = []

    async def list_categories(self, day, *, status=None, categories=None):
        self.queries.append((day, status))
        return self.docs

    async def replace_records(self, day, category, records):
        self.replaced[category] = list(records)
        return True


class _FakeProvider:
    def __init__(self, scores):
        self.scores = scores
        self.calls: list[int] = []

    async def get_fixture_result(self, fixture_id):
        self.calls.append(fixture_id)
        value = self.scores.get(fixture_id)
        if isinstance(value, Exception):
            raise value
        return value


@pytest.mark.asyncio
async def test_settle_day_grades_and_writes_back(monkeypatch):
    monkeypatch.setattr(settings, "WS_EVENTS_ENABLED", False)
    doc = PredictionCategoryDocument(
        id="2025-03-01/free_individual",
        date="2025-03-01",
        category="free_individual",
        ruleset="official",
        status="published",
        predictions=[
            _record(1, "Over 1.5"),
            _record(1, "BTTS"),
            _record(2, "Home Win"),            # not finished yet
            _record(3, "Draw", status="Win"),  # already settled, not looked up
            _record(4, "1X"),                  # lookup fails
        ],
    )
    repository = _FakeRepository([doc])
    provider = _FakeProvider({1: "2-0", 2: None, 4: UpstreamError("timeout")})

    summary = await ResultsService(provider=provider, repository=repository).settle_day("2025-03-01")

    assert repository.queries == [("2025-03-01", "published")]
    assert provider.calls == [1, 2, 4]
    graded = repository.replaced["free_individual"]
    assert [(r.status, r.final_score) for r in graded] == [
        ("Win", "2-0"),
        ("Loss", "2-0"),
        ("Pending", None),
        ("Win", None),
        ("Pending", None),
    ]
    stats = summary["categories"]["free_individual"]
    assert (stats["wins"], stats["losses"], stats["pending"]) == (2, 1, 2)
    assert stats["win_rate"] == 66.7


@pytest.mark.asyncio
async def test_nothing_finished_means_no_write(monkeypatch):
    monkeypatch.setattr(settings, "WS_EVENTS_ENABLED", False)
    doc = PredictionCategoryDocument(
        id="2025-03-01/fbw_special",
        date="2025-03-01",
        category="fbw_special",
        ruleset="special",
        status="published",
        predictions=[_record(9, "Over 1.5")],
    )
    repository = _FakeRepository([doc])

    summary = await ResultsService(provider=_FakeProvider({}), repository=repository).settle_day("2025-03-01")

    assert repository.replaced == {}
    assert summary["categories"]["fbw_special"]["win_rate"] is None


def test_win_rate_ignores_pending():
    assert win_rate([_record(1, "x", "Win"), _record(2, "x", "Loss"), _record(3, "x")]) == 50.0
    assert win_rate([]) is None
