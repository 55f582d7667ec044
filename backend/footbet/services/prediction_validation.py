"""
backend/footbet/services/prediction_validation.py

Purpose:
    Count, partition and gate generated prediction sets before persistence.

    The two rulesets get deliberately asymmetric treatment: the official
    set only warns when its total drifts outside the tolerance band, while
    the special set fails hard above its cap.

Dependencies:
    - footbet.models.prediction
    - footbet.config_categories
"""

from __future__ import annotations

import logging
import re
from typing import Mapping, Sequence

from footbet.config_categories import PREDICTION_CATEGORIES
from footbet.errors import ValidationError
from footbet.models.prediction import (
    HeadToHeadMatch,
    OfficialPick,
    OfficialPredictionsOutput,
    PredictionRecord,
    SpecialPick,
)

logger = logging.getLogger("footbet.prediction_validation")

_UNDER_LINE = re.compile(r"\bunder\s*(\d+(?:\.\d+)?)", re.IGNORECASE)


def partition_official(output: OfficialPredictionsOutput) -> dict[str, list[OfficialPick]]:
    """Map the nested official output onto its stored category ids (ordered)."""
    return {
        "secure_trial": list(output.secure_trial.coupon_1),
        "exclusive_vip_1": list(output.exclusive_vip.coupon_1),
        "exclusive_vip_2": list(output.exclusive_vip.coupon_2),
        "exclusive_vip_3": list(output.exclusive_vip.coupon_3),
        "individual_vip": list(output.individual_vip),
        "free_coupon": list(output.free_coupon.coupon_1),
        "free_individual": list(output.free_individual),
    }


def count_official(output: OfficialPredictionsOutput) -> dict[str, int]:
    counts = {category: len(picks) for category, picks in partition_official(output).items()}
    counts["total"] = sum(counts.values())
    return counts


def check_tolerance(total: int, target: int, tolerance: int) -> bool:
    """True when ``total`` is inside [target - tolerance, target + tolerance].

    Outside the band is a soft failure: logged as a warning, never raised.
    """
    low, high = target - tolerance, target + tolerance
    if low <= total <= high:
        logger.info("Official predictions total %d within tolerance [%d, %d]", total, low, high)
        return True
    logger.warning(
        "Official predictions total %d outside tolerance [%d, %d] (target %d); persisting anyway",
        total, low, high, target,
    )
    return False


def enforce_cap(picks: Sequence[PredictionRecord], cap: int, *, label: str = "special picks") -> None:
    if len(picks) > cap:
        raise ValidationError(
            f"Validation Error: AI generated {len(picks)} {label}, which is over the {cap} limit."
        )


def enforce_category_limits(categories: Mapping[str, Sequence[PredictionRecord]]) -> None:
    """Every category must be registered and stay within its declared maximum."""
    for category, records in categories.items():
        entry = PREDICTION_CATEGORIES.get(category)
        if entry is None:
            raise ValidationError(f"Unknown prediction category '{category}'.")
        cap = entry.get("max_records")
        if cap is not None:
            enforce_cap(records, cap, label=f"records for {category}")


def contradicted_under(prediction: str, meetings: Sequence[HeadToHeadMatch]) -> bool:
    """An 'Under X' pick is contradicted when any meeting produced more than X goals."""
    match = _UNDER_LINE.search(prediction)
    if not match:
        return False
    line = float(match.group(1))
    return any(meeting.total_goals > line for meeting in meetings)


def filter_special_picks(
    picks: Sequence[SpecialPick],
    eligible: Mapping[int, Sequence[HeadToHeadMatch]],
) -> tuple[list[SpecialPick], int]:
    """Drop picks outside the eligible fixtures or against the head-to-head record.

    Returns ``(kept, rejected_count)``; order of kept picks is preserved.
    """
    kept: list[SpecialPick] = []
    rejected = 0
    for pick in picks:
        meetings = eligible.get(pick.fixture_id)
        if meetings is None:
            logger.warning(
                "Rejected special pick for ineligible fixture %s (%s)", pick.fixture_id, pick.match,
            )
            rejected += 1
            continue
        if contradicted_under(pick.prediction, meetings):
            logger.warning(
                "Rejected special pick '%s' for %s: head-to-head history contradicts it",
                pick.prediction, pick.match,
            )
            rejected += 1
            continue
        kept.append(pick)
    return kept, rejected
