"""
backend/footbet/services/prediction_pipeline.py

Purpose:
    One generation run per ruleset: fetch fixtures, compose the prompt, call
    the generative service, validate, persist. Steps are awaited one after
    another; a run holds the (date, ruleset) advisory lock for its whole
    duration. Any failure aborts the run before the write, so the previous
    documents for that day stay untouched.

Dependencies:
    - footbet.providers.api_football
    - footbet.services.prompt_composer
    - footbet.services.prediction_generator
    - footbet.services.prediction_validation
    - footbet.services.prediction_repository
    - footbet.services.generation_lock
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from footbet.config import settings
from footbet.config_categories import OFFICIAL_RULESET, SPECIAL_RULESET
from footbet.errors import NoFixturesError
from footbet.models.prediction import (
    Fixture,
    GenerationReport,
    HeadToHeadMatch,
    OfficialPredictionsOutput,
    SpecialPredictionsOutput,
)
from footbet.providers.api_football import ApiFootballProvider, api_football_provider, major_league_filter
from footbet.services.generation_lock import generation_lock
from footbet.services.prediction_generator import PredictionGenerator, prediction_generator
from footbet.services.prediction_repository import PredictionRepository, prediction_repository
from footbet.services.prediction_validation import (
    check_tolerance,
    count_official,
    enforce_cap,
    filter_special_picks,
    partition_official,
)
from footbet.services.prompt_composer import OFFICIAL, SPECIAL, compose_prompt
from footbet.services.websocket_manager import CATEGORY_GENERATED, publish_category_event
from footbet.utils import normalize_day

logger = logging.getLogger("footbet.prediction_pipeline")


class PredictionPipeline:
    def __init__(
        self,
        *,
        provider: ApiFootballProvider = api_football_provider,
        generator: PredictionGenerator = prediction_generator,
        repository: PredictionRepository = prediction_repository,
        lock: Callable[..., Any] = generation_lock,
    ):
        self.provider = provider
        self.generator = generator
        self.repository = repository
        self.lock = lock

    async def run_official(self, day: str | None = None, *, triggered_by: str = "system") -> GenerationReport:
        """High-volume ruleset. No fixtures is fatal (NoFixturesError)."""
        day = normalize_day(day)
        async with self.lock(day, OFFICIAL_RULESET, holder=triggered_by):
            started = time.perf_counter()
            fixtures = await self.provider.get_fixtures(
                day,
                predicate=major_league_filter,
                max_count=settings.MAX_FIXTURES_PER_PROMPT,
            )
            if not fixtures:
                raise NoFixturesError(f"No major-league fixtures found for {day}.")

            prompt = compose_prompt(OFFICIAL, fixtures)
            output: OfficialPredictionsOutput = await self.generator.generate(prompt, OFFICIAL)

            counts = count_official(output)
            total = counts.pop("total")
            within = check_tolerance(total, settings.OFFICIAL_TARGET_TOTAL, settings.OFFICIAL_TOLERANCE)
            categories = partition_official(output)

            written = await self.repository.write_generation(
                day,
                OFFICIAL_RULESET,
                categories,
                metadata={
                    "triggered_by": triggered_by,
                    "fixtures_considered": len(fixtures),
                    "total": total,
                    "within_tolerance": within,
                    "model": settings.GEMINI_MODEL,
                },
            )
            logger.info(
                "Official run for %s: %d picks from %d fixtures in %.1fs",
                day, total, len(fixtures), time.perf_counter() - started,
            )

        for category, picks in categories.items():
            await publish_category_event(CATEGORY_GENERATED, day, category, count=len(picks))

        return GenerationReport(
            date=day,
            ruleset=OFFICIAL_RULESET,
            fixtures_considered=len(fixtures),
            counts=counts,
            total=total,
            within_tolerance=within,
            categories_written=[doc_id.split("/", 1)[1] for doc_id in written],
            predictions=categories,
        )

    async def _eligible_head_to_head(self, fixtures: list[Fixture]) -> dict[int, list[HeadToHeadMatch]]:
        """Fixtures with enough recent meetings, keyed by fixture_id. Lookups run sequentially."""
        eligible: dict[int, list[HeadToHeadMatch]] = {}
        for fixture in fixtures:
            if fixture.home_team_id is None or fixture.away_team_id is None:
                logger.debug("Skipping %s vs %s: missing team ids", fixture.home_team, fixture.away_team)
                continue
            meetings = await self.provider.get_head_to_head(
                fixture.home_team_id,
                fixture.away_team_id,
                within_years=settings.SPECIAL_H2H_YEARS,
            )
            if len(meetings) < settings.SPECIAL_MIN_H2H:
                logger.debug(
                    "Disqualified %s vs %s: %d recent meetings",
                    fixture.home_team, fixture.away_team, len(meetings),
                )
                continue
            eligible[fixture.fixture_id] = meetings
        return eligible

    async def run_special(self, day: str | None = None, *, triggered_by: str = "system") -> GenerationReport:
        """Elite ruleset. No fixtures, or none with enough head-to-head history,
        short-circuits to an empty result without calling the generator."""
        day = normalize_day(day)
        async with self.lock(day, SPECIAL_RULESET, holder=triggered_by):
            fixtures = await self.provider.get_fixtures(day, max_count=settings.MAX_FIXTURES_PER_PROMPT)
            if not fixtures:
                logger.info("Special run for %s: no fixtures, nothing to generate", day)
                return _empty_special_report(day, 0)

            eligible = await self._eligible_head_to_head(fixtures)
            if not eligible:
                logger.info(
                    "Special run for %s: none of %d fixtures has %d+ meetings in %d years",
                    day, len(fixtures), settings.SPECIAL_MIN_H2H, settings.SPECIAL_H2H_YEARS,
                )
                return _empty_special_report(day, len(fixtures))

            candidates = [f for f in fixtures if f.fixture_id in eligible]
            prompt = compose_prompt(SPECIAL, candidates, head_to_head=eligible)
            output: SpecialPredictionsOutput = await self.generator.generate(prompt, SPECIAL)

            enforce_cap(output.special_picks, settings.SPECIAL_MAX_PICKS)
            kept, rejected = filter_special_picks(output.special_picks, eligible)

            await self.repository.write_generation(
                day,
                SPECIAL_RULESET,
                {"fbw_special": kept},
                metadata={
                    "triggered_by": triggered_by,
                    "fixtures_considered": len(fixtures),
                    "eligible_fixtures": len(eligible),
                    "rejected_picks": rejected,
                    "model": settings.GEMINI_MODEL,
                },
            )
            logger.info(
                "Special run for %s: %d picks kept, %d rejected, %d/%d fixtures eligible",
                day, len(kept), rejected, len(eligible), len(fixtures),
            )

        await publish_category_event(CATEGORY_GENERATED, day, "fbw_special", count=len(kept))
        return GenerationReport(
            date=day,
            ruleset=SPECIAL_RULESET,
            fixtures_considered=len(fixtures),
            counts={"fbw_special": len(kept)},
            total=len(kept),
            categories_written=["fbw_special"],
            rejected_picks=rejected,
            predictions={"fbw_special": kept},
        )

    async def run(self, ruleset: str, day: Optional[str] = None, *, triggered_by: str = "system") -> GenerationReport:
        if ruleset == OFFICIAL_RULESET:
            return await self.run_official(day, triggered_by=triggered_by)
        if ruleset == SPECIAL_RULESET:
            return await self.run_special(day, triggered_by=triggered_by)
        raise ValueError(f"Unknown ruleset '{ruleset}'")


def _empty_special_report(day: str, fixtures_considered: int) -> GenerationReport:
    return GenerationReport(
        date=day,
        ruleset=SPECIAL_RULESET,
        fixtures_considered=fixtures_considered,
        counts={"fbw_special": 0},
        total=0,
        predictions={"fbw_special": []},
    )


prediction_pipeline = PredictionPipeline()
