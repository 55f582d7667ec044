from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from footbet.config_categories import SUBSCRIPTION_PLANS

PaymentMethod = Literal["MonCash", "NatCash", "Crypto"]
VerificationStatus = Literal["Pending", "Approved", "Rejected"]


class PaymentSubmission(BaseModel):
    """Request body a subscriber sends after paying."""
    plan: str
    method: PaymentMethod
    transaction_id: str = Field(min_length=4, max_length=128)
    note: str = Field(default="", max_length=2000)

    @field_validator("plan")
    @classmethod
    def known_plan(cls, v: str) -> str:
        if v not in SUBSCRIPTION_PLANS:
            raise ValueError(f"Unknown plan '{v}'.")
        return v

    @field_validator("transaction_id")
    @classmethod
    def strip_txid(cls, v: str) -> str:
        return v.strip()


class PaymentAssessment(BaseModel):
    """Structured verdict returned by the generative service."""
    model_config = ConfigDict(extra="forbid")

    is_verified: bool
    verification_details: str


class PaymentVerificationResponse(BaseModel):
    id: str
    user_id: str
    plan: str
    method: PaymentMethod
    transaction_id: str
    note: str = ""
    expected_amount_usd: float
    status: VerificationStatus
    ai_verified: Optional[bool] = None
    ai_details: Optional[str] = None
    created_at: datetime
    decided_at: Optional[datetime] = None
    decided_by: Optional[str] = None
