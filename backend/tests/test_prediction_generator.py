"""
backend/tests/test_prediction_generator.py

Purpose:
    Structured generation: request shape sent to the generative service and
    the mapping of bad output onto GenerationError / ValidationError.
"""

from __future__ import annotations

import json
import sys
from types import SimpleNamespace

import httpx
import pytest

sys.path.insert(0, "backend")

from footbet.config import settings
from footbet.errors import ConfigurationError, GenerationError, ValidationError
from footbet.models.prediction import SpecialPredictionsOutput
from footbet.services.prediction_generator import PredictionGenerator, parse_structured
from footbet.services.prompt_composer import SPECIAL, ComposedPrompt


class _FakeModels:
    def __init__(self, text):
        self.text = text
        self.calls: list[dict] = []

    async def generate_content(self, *, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        return SimpleNamespace(text=self.text)


def _client(text):
    models = _FakeModels(text)
    return SimpleNamespace(aio=SimpleNamespace(models=models)), models


def _pick(**overrides) -> dict:
    pick = {
        "fixture_id": 1,
        "match": "A vs B",
        "home_team": "A",
        "away_team": "B",
        "league": "Premier League",
        "time": "15:00",
        "prediction": "Over 1.5",
        "odds": 1.35,
        "confidence": 90,
    }
    pick.update(overrides)
    return pick


def _prompt() -> ComposedPrompt:
    return ComposedPrompt(
        ruleset="special",
        system_instruction="sys",
        user_prompt="user",
        context_json="[]",
        fixture_count=1,
    )


@pytest.mark.asyncio
async def test_generate_sends_schema_and_returns_validated_model():
    client, models = _client(json.dumps({"special_picks": [_pick()]}))
    generator = PredictionGenerator(client, model="gemini-test")

    output = await generator.generate(_prompt(), SPECIAL)

    assert isinstance(output, SpecialPredictionsOutput)
    assert output.special_picks[0].status == "Pending"
    call = models.calls[0]
    assert call["model"] == "gemini-test"
    assert call["contents"] == "user"
    assert call["config"].response_mime_type == "application/json"


@pytest.mark.asyncio
async def test_confidence_outside_band_is_a_validation_error():
    client, _ = _client(json.dumps({"special_picks": [_pick(confidence=60)]}))

    with pytest.raises(ValidationError) as exc_info:
        await PredictionGenerator(client).generate(_prompt(), SPECIAL)
    assert exc_info.value.errors[0]["field"] == "special_picks.0.confidence"


@pytest.mark.asyncio
async def test_empty_output_is_a_generation_error():
    client, _ = _client("")
    with pytest.raises(GenerationError, match="did not return any output"):
        await PredictionGenerator(client).generate(_prompt(), SPECIAL)


class _UnreachableModels:
    async def generate_content(self, *, model, contents, config):
        raise httpx.ConnectError("connection refused")


@pytest.mark.asyncio
async def test_transport_failure_is_a_generation_error():
    client = SimpleNamespace(aio=SimpleNamespace(models=_UnreachableModels()))

    with pytest.raises(GenerationError, match="connection refused"):
        await PredictionGenerator(client).generate(_prompt(), SPECIAL)


@pytest.mark.asyncio
async def test_missing_api_key_raises_configuration_error(monkeypatch):
    monkeypatch.setattr(settings, "GEMINI_API_KEY", "")
    with pytest.raises(ConfigurationError, match="GEMINI_API_KEY"):
        await PredictionGenerator().generate(_prompt(), SPECIAL)


def test_parse_structured_rejects_unknown_fields_and_bad_odds():
    with pytest.raises(ValidationError):
        parse_structured(json.dumps({"special_picks": [_pick(comment="sure thing")]}), SpecialPredictionsOutput)
    with pytest.raises(ValidationError):
        parse_structured(json.dumps({"special_picks": [_pick(odds=1.0)]}), SpecialPredictionsOutput)
    with pytest.raises(ValidationError):
        parse_structured(json.dumps({}), SpecialPredictionsOutput)


def test_parse_structured_rejects_non_json_and_non_objects():
    with pytest.raises(GenerationError):
        parse_structured("Here are your picks!", SpecialPredictionsOutput)
    with pytest.raises(GenerationError):
        parse_structured("[1, 2]", SpecialPredictionsOutput)
