"""
backend/footbet/models/prediction.py

Purpose:
    Pydantic models for fixtures, generated picks, and the stored per-day
    prediction documents. The generated-output models forbid unknown fields
    and carry the confidence/odds bounds, so every generative response is
    re-validated locally whatever the upstream service did with the schema.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

OutcomeStatus = Literal["Win", "Loss", "Pending"]
PublicationStatus = Literal["published", "unpublished"]


class Fixture(BaseModel):
    """One scheduled match, flattened from the fixture API payload."""
    fixture_id: int
    home_team: str
    away_team: str
    home_team_id: Optional[int] = None
    away_team_id: Optional[int] = None
    league: str
    country: Optional[str] = None
    kickoff: datetime
    time: str  # "HH:MM" UTC, what the picks echo back
    venue: Optional[str] = None


class HeadToHeadMatch(BaseModel):
    fixture_id: int
    date: datetime
    home_team: str
    away_team: str
    home_goals: int
    away_goals: int

    @computed_field
    @property
    def score(self) -> str:
        return f"{self.home_goals}-{self.away_goals}"

    @property
    def total_goals(self) -> int:
        return self.home_goals + self.away_goals


class PredictionRecord(BaseModel):
    """A single pick as stored. Band-specific subclasses tighten ``confidence``."""
    model_config = ConfigDict(extra="forbid")

    match: str
    home_team: str
    away_team: str
    league: str
    time: str
    prediction: str
    odds: float = Field(gt=1.0)
    confidence: int = Field(ge=0, le=100)
    fixture_id: Optional[int] = None
    status: OutcomeStatus = "Pending"
    final_score: Optional[str] = None


class OfficialPick(PredictionRecord):
    confidence: int = Field(ge=70, le=95)


class SpecialPick(PredictionRecord):
    fixture_id: int
    confidence: int = Field(ge=85, le=99)


class _StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class SingleCoupon(_StrictModel):
    coupon_1: list[OfficialPick]


class TripleCoupon(_StrictModel):
    coupon_1: list[OfficialPick]
    coupon_2: list[OfficialPick]
    coupon_3: list[OfficialPick]


class OfficialPredictionsOutput(_StrictModel):
    secure_trial: SingleCoupon
    exclusive_vip: TripleCoupon
    individual_vip: list[OfficialPick]
    free_coupon: SingleCoupon
    free_individual: list[OfficialPick]


class SpecialPredictionsOutput(_StrictModel):
    special_picks: list[SpecialPick]


class PredictionCategoryDocument(BaseModel):
    """``predictions/{date}/categories/{category}`` as stored in prediction_categories."""
    id: str
    date: str
    category: str
    ruleset: str
    predictions: list[PredictionRecord]
    status: PublicationStatus = "unpublished"
    generation: dict[str, Any] = Field(default_factory=dict)
    generated_at: Optional[datetime] = None
    status_changed_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None

    @classmethod
    def from_mongo(cls, doc: dict) -> "PredictionCategoryDocument":
        data = {k: v for k, v in doc.items() if k != "_id"}
        data["id"] = str(doc["_id"])
        return cls.model_validate(data)


class DailyMasterDocument(BaseModel):
    """``predictions/{date}``: one per day, merged as categories are produced."""
    date: str
    metadata: dict[str, datetime] = Field(default_factory=dict)

    @classmethod
    def from_mongo(cls, doc: dict) -> "DailyMasterDocument":
        return cls(date=doc.get("date") or str(doc["_id"]), metadata=doc.get("metadata") or {})


class GenerationReport(BaseModel):
    """What a generation run returns to the admin trigger."""
    date: str
    ruleset: str
    fixtures_considered: int
    counts: dict[str, int]
    total: int
    within_tolerance: Optional[bool] = None
    categories_written: list[str] = Field(default_factory=list)
    rejected_picks: int = 0
    predictions: dict[str, list[PredictionRecord]] = Field(default_factory=dict)
