"""
backend/tests/test_prediction_pipeline.py

Purpose:
    End-to-end generation runs with fake provider, generator and repository:
    empty-input behaviour per ruleset, the elite head-to-head gate, the hard
    cap, and what gets written.
"""

from __future__ import annotations

import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest

sys.path.insert(0, "backend")

from footbet.config import settings
from footbet.errors import GenerationError, NoFixturesError, UpstreamError, ValidationError
from footbet.models.prediction import (
    Fixture,
    HeadToHeadMatch,
    OfficialPredictionsOutput,
    SpecialPredictionsOutput,
)
from footbet.services.prediction_pipeline import PredictionPipeline

DAY = "2025-03-01"


def _fixture(fid: int, league: str = "Premier League") -> Fixture:
    return Fixture(
        fixture_id=fid,
        home_team=f"H{fid}",
        away_team=f"A{fid}",
        home_team_id=fid * 10,
        away_team_id=fid * 10 + 1,
        league=league,
        kickoff=datetime(2025, 3, 1, 18, 0, tzinfo=timezone.utc),
        time="18:00",
    )


def _meetings(n: int, goals: tuple[int, int] = (1, 0)) -> list[HeadToHeadMatch]:
    return [
        HeadToHeadMatch(
            fixture_id=900 + i,
            date=datetime(2024, 1 + i, 1, tzinfo=timezone.utc),
            home_team="H",
            away_team="A",
            home_goals=goals[0],
            away_goals=goals[1],
        )
        for i in range(n)
    ]


def _pick(fid: int, prediction: str = "1X", confidence: int = 90) -> dict:
    return {
        "fixture_id": fid,
        "match": f"H{fid} vs A{fid}",
        "home_team": f"H{fid}",
        "away_team": f"A{fid}",
        "league": "Premier League",
        "time": "18:00",
        "prediction": prediction,
        "odds": 1.5,
        "confidence": confidence,
    }


class _FakeProvider:
    def __init__(self, fixtures, h2h=None):
        self.fixtures = fixtures
        self.h2h = h2h or {}
        self.fixture_calls: list[dict] = []
        self.h2h_calls: list[tuple[int, int]] = []

    async def get_fixtures(self, day=None, *, predicate=None, max_count=None, status="NS"):
        self.fixture_calls.append({"day": day, "predicate": predicate, "max_count": max_count})
        out = [f for f in self.fixtures if predicate is None or predicate(f)]
        return out[:max_count] if max_count else out

    async def get_head_to_head(self, team_a_id, team_b_id, *, last=10, within_years=2):
        self.h2h_calls.append((team_a_id, team_b_id))
        return self.h2h.get(team_a_id // 10, [])


class _FakeGenerator:
    def __init__(self, output=None, exc=None):
        self.output = output
        self.exc = exc
        self.prompts = []

    async def generate(self, prompt, ruleset):
        self.prompts.append((prompt, ruleset))
        if self.exc is not None:
            raise self.exc
        return self.output


class _FakeRepository:
    def __init__(self):
        self.writes: list[dict] = []

    async def write_generation(self, day, ruleset, categories, *, metadata=None):
        self.writes.append({"day": day, "ruleset": ruleset, "categories": categories, "metadata": metadata})
        return [f"{day}/{c}" for c in categories]


def _pipeline(provider, generator, repository, locks=None):
    @asynccontextmanager
    async def fake_lock(day, ruleset, *, holder="system"):
        if locks is not None:
            locks.append(("acquire", day, ruleset, holder))
        try:
            yield "token"
        finally:
            if locks is not None:
                locks.append(("release", day, ruleset, holder))

    return PredictionPipeline(provider=provider, generator=generator, repository=repository, lock=fake_lock)


@pytest.fixture(autouse=True)
def _quiet_realtime(monkeypatch):
    monkeypatch.setattr(settings, "WS_EVENTS_ENABLED", False)


def _official_output(per_list: int) -> OfficialPredictionsOutput:
    fid = iter(range(1, 1000))

    def picks(n):
        return [_pick(next(fid), confidence=80) for _ in range(n)]

    return OfficialPredictionsOutput.model_validate({
        "secure_trial": {"coupon_1": picks(4)},
        "exclusive_vip": {"coupon_1": picks(4), "coupon_2": picks(4), "coupon_3": picks(4)},
        "individual_vip": picks(per_list),
        "free_coupon": {"coupon_1": picks(4)},
        "free_individual": picks(per_list),
    })


@pytest.mark.asyncio
async def test_official_with_no_fixtures_fails_without_calling_generator():
    generator = _FakeGenerator()
    repository = _FakeRepository()
    pipeline = _pipeline(_FakeProvider([]), generator, repository)

    with pytest.raises(NoFixturesError):
        await pipeline.run_official(DAY)
    assert isinstance(NoFixturesError("x"), GenerationError)
    assert generator.prompts == []
    assert repository.writes == []


@pytest.mark.asyncio
async def test_special_with_no_fixtures_returns_empty_without_calling_generator():
    generator = _FakeGenerator()
    repository = _FakeRepository()
    pipeline = _pipeline(_FakeProvider([]), generator, repository)

    report = await pipeline.run_special(DAY)

    assert report.predictions == {"fbw_special": []}
    assert report.total == 0
    assert generator.prompts == []
    assert repository.writes == []


@pytest.mark.asyncio
async def test_special_without_head_to_head_history_returns_empty():
    provider = _FakeProvider([_fixture(1), _fixture(2), _fixture(3)])
    generator = _FakeGenerator()
    repository = _FakeRepository()

    report = await _pipeline(provider, generator, repository).run_special(DAY)

    assert report.predictions == {"fbw_special": []}
    assert report.fixtures_considered == 3
    assert provider.h2h_calls == [(10, 11), (20, 21), (30, 31)]
    assert generator.prompts == []
    assert repository.writes == []


@pytest.mark.asyncio
async def test_special_only_prompts_with_eligible_fixtures():
    provider = _FakeProvider(
        [_fixture(1), _fixture(2), _fixture(3)],
        h2h={1: _meetings(4), 2: _meetings(3), 3: _meetings(6, goals=(2, 2))},
    )
    output = SpecialPredictionsOutput.model_validate({"special_picks": [
        _pick(1, "Under 2.5"),
        _pick(3, "Under 3.5"),   # 2-2 meetings contradict it
        _pick(3, "BTTS"),
        _pick(2, "1X"),          # fixture 2 had only three meetings
    ]})
    generator = _FakeGenerator(output)
    repository = _FakeRepository()

    report = await _pipeline(provider, generator, repository).run_special(DAY, triggered_by="admin-1")

    prompt, ruleset = generator.prompts[0]
    assert ruleset.name == "special"
    assert prompt.fixture_count == 2
    assert '"fixture_id": 2' not in prompt.context_json
    write = repository.writes[0]
    assert write["ruleset"] == "special"
    assert [(p.fixture_id, p.prediction) for p in write["categories"]["fbw_special"]] == [(1, "Under 2.5"), (3, "BTTS")]
    assert write["metadata"]["rejected_picks"] == 2
    assert report.rejected_picks == 2
    assert report.categories_written == ["fbw_special"]


@pytest.mark.asyncio
async def test_special_over_cap_aborts_before_any_write():
    provider = _FakeProvider([_fixture(i) for i in range(1, 12)], h2h={i: _meetings(5) for i in range(1, 12)})
    output = SpecialPredictionsOutput.model_validate({"special_picks": [_pick(i) for i in range(1, 12)]})
    repository = _FakeRepository()
    locks: list = []

    with pytest.raises(ValidationError, match="AI generated 11"):
        await _pipeline(provider, _FakeGenerator(output), repository, locks).run_special(DAY)
    assert repository.writes == []
    assert [entry[0] for entry in locks] == ["acquire", "release"]


@pytest.mark.asyncio
async def test_official_run_persists_all_categories_and_reports_counts(caplog):
    provider = _FakeProvider([_fixture(1), _fixture(2, league="Kreisliga")])
    generator = _FakeGenerator(_official_output(per_list=14))
    repository = _FakeRepository()

    report = await _pipeline(provider, generator, repository).run_official(DAY)

    assert provider.fixture_calls[0]["max_count"] == settings.MAX_FIXTURES_PER_PROMPT
    assert generator.prompts[0][0].fixture_count == 1
    assert report.total == 48
    assert report.within_tolerance is True
    assert report.counts["individual_vip"] == 14
    write = repository.writes[0]
    assert list(write["categories"]) == [
        "secure_trial", "exclusive_vip_1", "exclusive_vip_2", "exclusive_vip_3",
        "individual_vip", "free_coupon", "free_individual",
    ]
    assert write["metadata"]["total"] == 48
    assert not [r for r in caplog.records if r.levelno >= 30 and r.name == "footbet.prediction_validation"]


@pytest.mark.asyncio
async def test_official_outside_tolerance_still_persists():
    generator = _FakeGenerator(_official_output(per_list=2))
    repository = _FakeRepository()

    report = await _pipeline(_FakeProvider([_fixture(1)]), generator, repository).run_official(DAY)

    assert report.total == 24
    assert report.within_tolerance is False
    assert len(repository.writes) == 1


@pytest.mark.asyncio
async def test_generator_failure_leaves_previous_documents_untouched():
    repository = _FakeRepository()
    pipeline = _pipeline(_FakeProvider([_fixture(1)]), _FakeGenerator(exc=GenerationError("boom")), repository)

    with pytest.raises(GenerationError):
        await pipeline.run_official(DAY)
    assert repository.writes == []


@pytest.mark.asyncio
async def test_upstream_failure_propagates():
    class _Broken(_FakeProvider):
        async def get_fixtures(self, *args, **kwargs):
            raise UpstreamError("API-Football request failed: 500", status=500)

    generator = _FakeGenerator()
    with pytest.raises(UpstreamError):
        await _pipeline(_Broken([]), generator, _FakeRepository()).run_official(DAY)
    assert generator.prompts == []
