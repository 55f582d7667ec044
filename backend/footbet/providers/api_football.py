"""
backend/footbet/providers/api_football.py

Purpose:
    Adapter for API-Football v3: today's fixtures (flattened from the nested
    fixture/teams/league/venue payload), head-to-head history for the elite
    ruleset, and final scores for the results checker.

Dependencies:
    - footbet.providers.http_client
    - footbet.services.rate_limiter
    - footbet.config
"""

import logging
from datetime import timedelta
from itertools import islice
from typing import Any, Callable, Iterator, Optional

from pydantic import ValidationError as PydanticValidationError

from footbet.config import settings
from footbet.errors import ConfigurationError, UpstreamError
from footbet.models.prediction import Fixture, HeadToHeadMatch
from footbet.providers.http_client import ResilientClient
from footbet.services.rate_limiter import rate_limiter
from footbet.utils import normalize_day, parse_utc, utcnow

logger = logging.getLogger("footbet.api_football")

PROVIDER_NAME = "api_football"

# Substring match against league.name, as the API names cups and leagues loosely.
MAJOR_LEAGUES = (
    "Premier League",
    "La Liga",
    "Serie A",
    "Bundesliga",
    "Ligue 1",
    "Champions League",
    "Europa League",
    "Championship",
    "Eredivisie",
    "Liga Portugal",
)

FINISHED_STATUSES = {"FT", "AET", "PEN"}

FixturePredicate = Callable[[Fixture], bool]


def major_league_filter(fixture: Fixture) -> bool:
    return any(name in fixture.league for name in MAJOR_LEAGUES)


def normalize_fixture(raw: dict[str, Any]) -> Optional[Fixture]:
    """Flatten one API fixture entry. Returns None for malformed entries."""
    fixture = raw.get("fixture") or {}
    teams = raw.get("teams") or {}
    league = raw.get("league") or {}
    home = teams.get("home") or {}
    away = teams.get("away") or {}
    try:
        kickoff = parse_utc(str(fixture.get("date") or ""))
        return Fixture(
            fixture_id=fixture.get("id"),
            home_team=home.get("name"),
            away_team=away.get("name"),
            home_team_id=home.get("id"),
            away_team_id=away.get("id"),
            league=league.get("name"),
            country=league.get("country"),
            kickoff=kickoff,
            time=kickoff.strftime("%H:%M"),
            venue=(fixture.get("venue") or {}).get("name"),
        )
    except (ValueError, PydanticValidationError):
        logger.debug("Skipping malformed fixture payload id=%s", fixture.get("id"))
        return None


def normalize_head_to_head(raw: dict[str, Any]) -> Optional[HeadToHeadMatch]:
    fixture = raw.get("fixture") or {}
    teams = raw.get("teams") or {}
    goals = raw.get("goals") or {}
    if goals.get("home") is None or goals.get("away") is None:
        return None  # not played yet
    try:
        return HeadToHeadMatch(
            fixture_id=fixture.get("id"),
            date=parse_utc(str(fixture.get("date") or "")),
            home_team=(teams.get("home") or {}).get("name"),
            away_team=(teams.get("away") or {}).get("name"),
            home_goals=goals["home"],
            away_goals=goals["away"],
        )
    except (ValueError, PydanticValidationError):
        return None


class ApiFootballProvider:
    """API-Football v3 client. Settings are read per call so rotation needs no restart."""

    def __init__(self, client: ResilientClient | None = None):
        self._client = client or ResilientClient(
            PROVIDER_NAME,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            max_retries=settings.HTTP_MAX_RETRIES,
            base_delay=settings.HTTP_BASE_DELAY_SECONDS,
        )

    def _headers(self) -> dict[str, str]:
        api_key = settings.FOOTBALL_API_KEY.strip()
        if not api_key:
            raise ConfigurationError("FOOTBALL_API_KEY is not configured.")
        return {
            "x-rapidapi-key": api_key,
            "x-rapidapi-host": settings.FOOTBALL_API_HOST,
        }

    async def _get(self, path: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        headers = self._headers()
        await rate_limiter.acquire(PROVIDER_NAME, settings.FOOTBALL_API_RATE_LIMIT_RPM)
        url = f"{settings.FOOTBALL_API_BASE_URL.rstrip('/')}/{path.lstrip('/')}"
        resp = await self._client.get(url, params=params, headers=headers)
        if not resp.is_success:
            raise UpstreamError(
                f"API-Football request failed: {resp.status_code} {resp.reason_phrase}",
                status=resp.status_code,
            )
        try:
            payload = resp.json()
        except ValueError as exc:
            raise UpstreamError("API-Football returned a non-JSON body.") from exc

        if not isinstance(payload, dict):
            raise UpstreamError("API-Football returned an unexpected body shape.")
        # API-Football reports auth/quota problems as 200 with an "errors" object.
        errors = payload.get("errors")
        if errors:
            raise UpstreamError(f"API-Football request failed: {errors}")
        return payload.get("response") or []

    def _iter_fixtures(self, raw: list[dict], predicate: FixturePredicate | None) -> Iterator[Fixture]:
        for entry in raw:
            fixture = normalize_fixture(entry)
            if fixture is None:
                continue
            if predicate is not None and not predicate(fixture):
                continue
            yield fixture

    async def get_fixtures(
        self,
        day: str | None = None,
        *,
        predicate: FixturePredicate | None = None,
        max_count: int | None = None,
        status: str | None = "NS",
    ) -> list[Fixture]:
        """Fixtures scheduled on ``day`` (default: today). Empty list is a valid answer."""
        params: dict[str, Any] = {"date": normalize_day(day)}
        if status:
            params["status"] = status
        raw = await self._get("fixtures", params)
        fixtures = list(islice(self._iter_fixtures(raw, predicate), max_count))
        logger.info(
            "API-Football: %d fixtures for %s (%d raw, cap=%s)",
            len(fixtures), params["date"], len(raw), max_count,
        )
        return fixtures

    async def get_head_to_head(
        self,
        team_a_id: int,
        team_b_id: int,
        *,
        last: int = 10,
        within_years: int = 2,
    ) -> list[HeadToHeadMatch]:
        """Played meetings between two teams, most recent ``last``, within the recency bound."""
        raw = await self._get("fixtures/headtohead", {"h2h": f"{team_a_id}-{team_b_id}", "last": last})
        cutoff = utcnow() - timedelta(days=365 * within_years)
        meetings = []
        for entry in raw:
            meeting = normalize_head_to_head(entry)
            if meeting is not None and meeting.date >= cutoff:
                meetings.append(meeting)
        return meetings

    async def get_fixture_result(self, fixture_id: int) -> Optional[str]:
        """Final score ``"h-a"`` once the match is finished, else None."""
        raw = await self._get("fixtures", {"id": fixture_id})
        if not raw:
            return None
        entry = raw[0]
        short = ((entry.get("fixture") or {}).get("status") or {}).get("short")
        goals = entry.get("goals") or {}
        if short not in FINISHED_STATUSES or goals.get("home") is None or goals.get("away") is None:
            return None
        return f"{goals['home']}-{goals['away']}"

    @property
    def circuit_open(self) -> bool:
        return self._client.circuit.is_open

    async def aclose(self) -> None:
        await self._client.aclose()


api_football_provider = ApiFootballProvider()
