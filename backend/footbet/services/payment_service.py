"""
backend/footbet/services/payment_service.py

Purpose:
    Subscription payment confirmations. A subscriber submits plan, method
    and transaction id; the generative service gives an advisory assessment
    against the plan's expected amount; the request then waits as Pending
    until an admin approves (which grants the plan) or rejects it.

    The assessment never grants anything on its own. If the generative
    service is unavailable the submission is still stored, with the failure
    recorded in ai_details.

Dependencies:
    - footbet.services.prediction_generator
    - footbet.services.entitlement_service
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

import footbet.database as _db
from footbet.config_categories import SUBSCRIPTION_PLANS
from footbet.errors import DuplicatePaymentError, FootbetError, PaymentNotFoundError
from footbet.models.payment import PaymentAssessment, PaymentSubmission, PaymentVerificationResponse
from footbet.services.entitlement_service import grant_plan
from footbet.services.prediction_generator import PredictionGenerator, prediction_generator
from footbet.utils import utcnow

logger = logging.getLogger("footbet.payments")

ASSESSMENT_SYSTEM_INSTRUCTION = """You are an assistant that checks subscription payment confirmations for the FOOTBET-WIN platform.
Decide whether the confirmation details plausibly describe a completed payment of the expected amount with the stated method.
Never invent information that is not in the confirmation. Report every discrepancy you notice.
Return ONLY a JSON object with "is_verified" and "verification_details"."""

ASSESSMENT_USER_TEMPLATE = """Payment method: {method}
Expected amount: {amount} USD
Plan: {plan}
User ID: {user_id}
Transaction ID: {transaction_id}
Confirmation details: {note}"""

ASSESSMENT_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "is_verified": {"type": "BOOLEAN"},
        "verification_details": {"type": "STRING"},
    },
    "required": ["is_verified", "verification_details"],
}


def _to_response(doc: dict) -> PaymentVerificationResponse:
    data = {k: v for k, v in doc.items() if k != "_id"}
    return PaymentVerificationResponse(id=str(doc["_id"]), **data)


def _object_id(verification_id: str) -> ObjectId:
    try:
        return ObjectId(verification_id)
    except (InvalidId, TypeError):
        raise PaymentNotFoundError(f"Payment verification {verification_id} not found.")


class PaymentService:
    def __init__(self, generator: PredictionGenerator = prediction_generator):
        self.generator = generator

    async def assess(self, user_id: str, submission: PaymentSubmission) -> tuple[Optional[bool], str]:
        amount = SUBSCRIPTION_PLANS[submission.plan]["price_usd"]
        try:
            verdict = await self.generator.generate_structured(
                system_instruction=ASSESSMENT_SYSTEM_INSTRUCTION,
                user_prompt=ASSESSMENT_USER_TEMPLATE.format(
                    method=submission.method,
                    amount=amount,
                    plan=submission.plan,
                    user_id=user_id,
                    transaction_id=submission.transaction_id,
                    note=submission.note or "(none)",
                ),
                response_schema=ASSESSMENT_SCHEMA,
                output_model=PaymentAssessment,
            )
        except FootbetError as exc:
            logger.warning("Payment assessment unavailable for user %s: %s", user_id, exc)
            return None, f"Automatic assessment unavailable: {exc}"
        return verdict.is_verified, verdict.verification_details

    async def submit(self, user_id: str, submission: PaymentSubmission) -> PaymentVerificationResponse:
        ai_verified, ai_details = await self.assess(user_id, submission)
        doc = {
            "user_id": user_id,
            "plan": submission.plan,
            "method": submission.method,
            "transaction_id": submission.transaction_id,
            "note": submission.note,
            "expected_amount_usd": float(SUBSCRIPTION_PLANS[submission.plan]["price_usd"]),
            "status": "Pending",
            "ai_verified": ai_verified,
            "ai_details": ai_details,
            "created_at": utcnow(),
            "decided_at": None,
            "decided_by": None,
        }
        try:
            result = await _db.db.payment_verifications.insert_one(doc)
        except DuplicateKeyError:
            raise DuplicatePaymentError(
                f"Transaction {submission.transaction_id} was already submitted for {submission.method}."
            )
        doc["_id"] = result.inserted_id
        logger.info(
            "Payment submitted: user=%s plan=%s method=%s ai_verified=%s",
            user_id, submission.plan, submission.method, ai_verified,
        )
        return _to_response(doc)

    async def list_for_user(self, user_id: str) -> list[PaymentVerificationResponse]:
        docs = await _db.db.payment_verifications.find({"user_id": user_id}).sort("created_at", -1).to_list(length=100)
        return [_to_response(d) for d in docs]

    async def list_by_status(self, status: str = "Pending", *, limit: int = 200) -> list[PaymentVerificationResponse]:
        docs = await _db.db.payment_verifications.find({"status": status}).sort("created_at", 1).to_list(length=limit)
        return [_to_response(d) for d in docs]

    async def _decide(self, verification_id: str, status: str, admin_id: str) -> dict:
        decided = await _db.db.payment_verifications.find_one_and_update(
            {"_id": _object_id(verification_id), "status": "Pending"},
            {"$set": {"status": status, "decided_at": utcnow(), "decided_by": admin_id}},
            return_document=ReturnDocument.AFTER,
        )
        if decided is None:
            raise PaymentNotFoundError(f"No pending payment verification {verification_id}.")
        return decided

    async def approve(self, verification_id: str, *, admin_id: str) -> PaymentVerificationResponse:
        """Claim the request, then grant the plan. A failed grant puts the
        request back to Pending so it can be approved again."""
        doc = await self._decide(verification_id, "Approved", admin_id)
        try:
            await grant_plan(doc["user_id"], doc["plan"], granted_by=admin_id)
        except Exception:
            logger.exception("Plan grant failed for payment %s; reverting to Pending", verification_id)
            await _db.db.payment_verifications.update_one(
                {"_id": doc["_id"], "status": "Approved"},
                {"$set": {"status": "Pending", "decided_at": None, "decided_by": None}},
            )
            raise
        return _to_response(doc)

    async def reject(self, verification_id: str, *, admin_id: str) -> PaymentVerificationResponse:
        doc = await self._decide(verification_id, "Rejected", admin_id)
        logger.info("Payment %s rejected by %s", verification_id, admin_id)
        return _to_response(doc)


payment_service = PaymentService()
