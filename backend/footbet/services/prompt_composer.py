"""
backend/footbet/services/prompt_composer.py

Purpose:
    Pure prompt construction for the two generation rulesets. A ruleset
    bundles the fixed system instruction, the user instruction template, the
    output schema declared to the generative service, and the pydantic model
    the response is validated against. No I/O happens here.

Dependencies:
    - footbet.models.prediction
    - footbet.config_categories
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from pydantic import BaseModel

from footbet.config_categories import (
    OFFICIAL_RULESET,
    PREDICTION_CATEGORIES,
    RULESET_CONFIDENCE_BANDS,
    SPECIAL_RULESET,
)
from footbet.models.prediction import (
    Fixture,
    HeadToHeadMatch,
    OfficialPredictionsOutput,
    SpecialPredictionsOutput,
)


@dataclass(frozen=True)
class Ruleset:
    name: str
    system_instruction: str
    user_template: str
    output_model: type[BaseModel]
    response_schema: dict[str, Any]


@dataclass(frozen=True)
class ComposedPrompt:
    ruleset: str
    system_instruction: str
    user_prompt: str
    context_json: str
    fixture_count: int


# ---------------------------------------------------------------------------
# Output schemas (OpenAPI subset accepted by Gemini structured output)
# ---------------------------------------------------------------------------

def _pick_schema(confidence_min: int, confidence_max: int, *, fixture_required: bool) -> dict[str, Any]:
    properties = {
        "fixture_id": {"type": "INTEGER", "description": "The fixture_id of the analysed match."},
        "match": {"type": "STRING", "description": "Full match description, e.g. 'Team A vs Team B'."},
        "home_team": {"type": "STRING"},
        "away_team": {"type": "STRING"},
        "league": {"type": "STRING"},
        "time": {"type": "STRING", "description": "Kickoff time as given in the match list."},
        "prediction": {"type": "STRING", "description": "The pick, e.g. '1 (Home Win)', 'Over 1.5', 'BTTS'."},
        "odds": {"type": "NUMBER", "minimum": 1.01, "description": "Decimal odds for the pick."},
        "confidence": {
            "type": "INTEGER",
            "minimum": confidence_min,
            "maximum": confidence_max,
            "description": f"Confidence from {confidence_min} to {confidence_max}.",
        },
    }
    required = ["match", "home_team", "away_team", "league", "time", "prediction", "odds", "confidence"]
    if fixture_required:
        required.insert(0, "fixture_id")
    return {"type": "OBJECT", "properties": properties, "required": required}


def _coupon_schema(pick: dict[str, Any], names: Sequence[str]) -> dict[str, Any]:
    return {
        "type": "OBJECT",
        "properties": {name: {"type": "ARRAY", "items": pick} for name in names},
        "required": list(names),
    }


def official_response_schema() -> dict[str, Any]:
    pick = _pick_schema(*RULESET_CONFIDENCE_BANDS[OFFICIAL_RULESET], fixture_required=False)
    return {
        "type": "OBJECT",
        "properties": {
            "secure_trial": _coupon_schema(pick, ["coupon_1"]),
            "exclusive_vip": _coupon_schema(pick, ["coupon_1", "coupon_2", "coupon_3"]),
            "individual_vip": {"type": "ARRAY", "items": pick},
            "free_coupon": _coupon_schema(pick, ["coupon_1"]),
            "free_individual": {"type": "ARRAY", "items": pick},
        },
        "required": ["secure_trial", "exclusive_vip", "individual_vip", "free_coupon", "free_individual"],
    }


def special_response_schema() -> dict[str, Any]:
    pick = _pick_schema(*RULESET_CONFIDENCE_BANDS[SPECIAL_RULESET], fixture_required=True)
    return {
        "type": "OBJECT",
        "properties": {"special_picks": {"type": "ARRAY", "items": pick}},
        "required": ["special_picks"],
    }


# ---------------------------------------------------------------------------
# Instructions
# ---------------------------------------------------------------------------

def _band(category: str) -> str:
    low, high = PREDICTION_CATEGORIES[category]["confidence_band"]
    return f"{low}-{high}"


OFFICIAL_SYSTEM_INSTRUCTION = f"""You are a football match analyst with 15 years of experience.
Your task is to select UP TO 50 high-quality predictions from today's matches.

MANDATORY ANALYSIS CRITERIA:
1. Recent form (last 5 matches)
2. Head-to-head record
3. Home vs away performance
4. Available odds (betting value)
5. Match stakes (relegation, title race, cup)
6. Team motivation

CONFIDENCE LEVELS:
- Secure Trial: {_band("secure_trial")}
- Exclusive VIP: {_band("exclusive_vip_1")}
- Individual VIP: {_band("individual_vip")}
- Free Coupon: {_band("free_coupon")}
- Free Individual: {_band("free_individual")}

ALLOWED BET TYPES:
- 1X2 (Home Win, Draw, Away Win)
- Over/Under 2.5 Goals
- Both Teams to Score (BTTS)
- Double Chance (1X, X2, 12)
- Correct Score (VIP sections only)

STRICT RULES:
- Select at most 50 matches. Never exceed that number.
- If fewer than 50 quality matches are available, fill the paid sections (Exclusive VIP, Individual VIP) before the free ones.
- Ideal distribution with 50 picks: Secure Trial 4, Exclusive VIP 12 (split 4-4-4), Individual VIP 15, Free Coupon 4, Free Individual 15.
- Vary the bet types.
- Only use matches from the provided list; copy team names, league and time exactly.
- Return ONLY valid JSON. No text outside the JSON object."""

OFFICIAL_USER_TEMPLATE = """Analyse the following matches and select UP TO 50 predictions according to the defined criteria.
Prioritise the paid sections if you cannot find 50 quality matches.
Return ONLY the structured JSON with no additional text.

Matches: {matches}"""


SPECIAL_SYSTEM_INSTRUCTION = """You are an elite betting analyst known for surgical precision and iron discipline.
Your task is to produce a VERY SELECTIVE list called "FBW SPECIAL" containing between 3 and 10 predictions MAXIMUM for today's matches.

GOLDEN RULES (NON-NEGOTIABLE):
1. Every match below comes with its head-to-head history from the last 2 years in "head_to_head". Read it first.
2. If a match has fewer than 4 head-to-head meetings it is disqualified. Ignore it.
3. If a match has no head-to-head meetings at all you must not predict it.
4. If any head-to-head meeting had more goals than an Under line allows (for example 3-0 or 2-1 against Under 2.5), predicting that Under is forbidden. Prefer Double Chance 1X, a win, or Over 1.5.
5. Quality over quantity: only select matches where your confidence is extreme (85 to 99). If no match qualifies, return an empty list.
6. Every prediction must carry the correct fixture_id.

ADDITIONAL CRITERIA:
- Recent form (last 5 matches), key injuries, match importance.
- Home and away performance.

ALLOWED BET TYPES:
- 1X2 (Home Win, Draw, Away Win)
- Over/Under (subject to rule 4)
- Both Teams to Score (BTTS)
- Double Chance (1X, X2, 12)

OUTPUT FORMAT:
- Return ONLY a valid JSON object with a single key "special_picks" whose value is the array of your predictions."""

SPECIAL_USER_TEMPLATE = """Analyse today's match list. Apply the golden rules STRICTLY to build the "FBW SPECIAL" list.
Produce between 3 and 10 very high confidence predictions.
If no match satisfies the criteria, return an empty "special_picks" array.

Today's matches: {matches}

Return ONLY the structured JSON."""


OFFICIAL = Ruleset(
    name=OFFICIAL_RULESET,
    system_instruction=OFFICIAL_SYSTEM_INSTRUCTION,
    user_template=OFFICIAL_USER_TEMPLATE,
    output_model=OfficialPredictionsOutput,
    response_schema=official_response_schema(),
)

SPECIAL = Ruleset(
    name=SPECIAL_RULESET,
    system_instruction=SPECIAL_SYSTEM_INSTRUCTION,
    user_template=SPECIAL_USER_TEMPLATE,
    output_model=SpecialPredictionsOutput,
    response_schema=special_response_schema(),
)

RULESETS: dict[str, Ruleset] = {OFFICIAL.name: OFFICIAL, SPECIAL.name: SPECIAL}


def serialize_fixtures(
    fixtures: Sequence[Fixture],
    head_to_head: Mapping[int, Sequence[HeadToHeadMatch]] | None = None,
) -> str:
    """JSON array of fixtures, each optionally carrying its head-to-head meetings."""
    entries = []
    for fixture in fixtures:
        entry = fixture.model_dump(mode="json", exclude_none=True)
        if head_to_head is not None:
            entry["head_to_head"] = [
                meeting.model_dump(mode="json", include={"date", "home_team", "away_team", "score"})
                for meeting in head_to_head.get(fixture.fixture_id, ())
            ]
        entries.append(entry)
    return json.dumps(entries, ensure_ascii=False)


def compose_prompt(
    ruleset: Ruleset,
    fixtures: Sequence[Fixture],
    head_to_head: Mapping[int, Sequence[HeadToHeadMatch]] | None = None,
) -> ComposedPrompt:
    context_json = serialize_fixtures(fixtures, head_to_head)
    return ComposedPrompt(
        ruleset=ruleset.name,
        system_instruction=ruleset.system_instruction,
        user_prompt=ruleset.user_template.format(matches=context_json),
        context_json=context_json,
        fixture_count=len(fixtures),
    )
