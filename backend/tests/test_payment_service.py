"""
backend/tests/test_payment_service.py

Purpose:
    Payment confirmation flow: advisory assessment, Pending storage, duplicate
    transaction ids, and admin approval granting the plan.
"""

from __future__ import annotations

import sys
from types import SimpleNamespace

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

sys.path.insert(0, "backend")

import footbet.database as _db
from footbet.errors import DuplicatePaymentError, GenerationError, PaymentNotFoundError, UserNotFoundError
from footbet.models.payment import PaymentAssessment, PaymentSubmission
from footbet.services import payment_service as module
from footbet.services.payment_service import PaymentService


class _FakeGenerator:
    def __init__(self, verdict=None, exc=None):
        self.verdict = verdict
        self.exc = exc
        self.prompts: list[str] = []

    async def generate_structured(self, *, system_instruction, user_prompt, response_schema, output_model):
        self.prompts.append(user_prompt)
        if self.exc is not None:
            raise self.exc
        return self.verdict


class _FakePayments:
    def __init__(self):
        self.docs: dict[ObjectId, dict] = {}

    async def insert_one(self, doc):
        for existing in self.docs.values():
            if (existing["method"], existing["transaction_id"]) == (doc["method"], doc["transaction_id"]):
                raise DuplicateKeyError("duplicate")
        oid = ObjectId()
        self.docs[oid] = {**doc, "_id": oid}
        return SimpleNamespace(inserted_id=oid)

    async def find_one_and_update(self, query, update, return_document=None):
        doc = self.docs.get(query["_id"])
        if doc is None or doc["status"] != query["status"]:
            return None
        doc.update(update["$set"])
        return dict(doc)

    async def update_one(self, query, update):
        doc = self.docs.get(query["_id"])
        if doc is None or doc["status"] != query["status"]:
            return SimpleNamespace(modified_count=0)
        doc.update(update["$set"])
        return SimpleNamespace(modified_count=1)


@pytest.fixture
def payments(monkeypatch):
    fake = _FakePayments()
    grants: list[tuple] = []

    async def fake_grant(user_id, plan, *, granted_by):
        grants.append((user_id, plan, granted_by))

    monkeypatch.setattr(_db, "db", SimpleNamespace(payment_verifications=fake), raising=False)
    monkeypatch.setattr(module, "grant_plan", fake_grant)
    return SimpleNamespace(store=fake, grants=grants)


def _submission(txid: str = "MC-123456") -> PaymentSubmission:
    return PaymentSubmission(plan="yearly", method="MonCash", transaction_id=f"  {txid} ", note="Paid 50 USD")


@pytest.mark.asyncio
async def test_submit_stores_pending_with_assessment(payments):
    generator = _FakeGenerator(PaymentAssessment(is_verified=True, verification_details="Amount matches."))

    result = await PaymentService(generator).submit("user-1", _submission())

    assert result.status == "Pending"
    assert result.transaction_id == "MC-123456"
    assert result.expected_amount_usd == 50.0
    assert result.ai_verified is True
    assert "Expected amount: 50 USD" in generator.prompts[0]
    assert payments.grants == []


@pytest.mark.asyncio
async def test_assessment_failure_still_stores_submission(payments):
    generator = _FakeGenerator(exc=GenerationError("AI analysis did not return any output."))

    result = await PaymentService(generator).submit("user-1", _submission())

    assert result.ai_verified is None
    assert "unavailable" in result.ai_details


@pytest.mark.asyncio
async def test_duplicate_transaction_is_rejected(payments):
    service = PaymentService(_FakeGenerator(PaymentAssessment(is_verified=False, verification_details="?")))
    await service.submit("user-1", _submission())

    with pytest.raises(DuplicatePaymentError):
        await service.submit("user-2", _submission())


@pytest.mark.asyncio
async def test_approve_grants_plan_once(payments):
    service = PaymentService(_FakeGenerator(PaymentAssessment(is_verified=True, verification_details="ok")))
    submitted = await service.submit("user-1", _submission())

    approved = await service.approve(submitted.id, admin_id="admin-1")

    assert approved.status == "Approved"
    assert approved.decided_by == "admin-1"
    assert payments.grants == [("user-1", "yearly", "admin-1")]
    with pytest.raises(PaymentNotFoundError):
        await service.approve(submitted.id, admin_id="admin-1")
    with pytest.raises(PaymentNotFoundError):
        await service.reject(submitted.id, admin_id="admin-1")
    assert len(payments.grants) == 1


@pytest.mark.asyncio
async def test_failed_grant_leaves_request_pending(payments, monkeypatch):
    async def missing_user(user_id, plan, *, granted_by):
        raise UserNotFoundError(f"User {user_id} not found.")

    service = PaymentService(_FakeGenerator(PaymentAssessment(is_verified=True, verification_details="ok")))
    submitted = await service.submit("user-gone", _submission("MC-777"))
    monkeypatch.setattr(module, "grant_plan", missing_user)

    with pytest.raises(UserNotFoundError):
        await service.approve(submitted.id, admin_id="admin-1")

    stored = next(iter(payments.store.docs.values()))
    assert stored["status"] == "Pending"
    assert stored["decided_by"] is None

    granted = []

    async def restored_user(user_id, plan, *, granted_by):
        granted.append(user_id)

    monkeypatch.setattr(module, "grant_plan", restored_user)
    approved = await service.approve(submitted.id, admin_id="admin-1")
    assert approved.status == "Approved"
    assert granted == ["user-gone"]


@pytest.mark.asyncio
async def test_reject_does_not_grant(payments):
    service = PaymentService(_FakeGenerator(PaymentAssessment(is_verified=False, verification_details="no match")))
    submitted = await service.submit("user-1", _submission("NC-1"))

    rejected = await service.reject(submitted.id, admin_id="admin-1")

    assert rejected.status == "Rejected"
    assert payments.grants == []


@pytest.mark.asyncio
async def test_unknown_verification_id(payments):
    with pytest.raises(PaymentNotFoundError):
        await PaymentService(_FakeGenerator()).approve("not-an-object-id", admin_id="admin-1")


def test_submission_rejects_unknown_plan():
    with pytest.raises(ValueError):
        PaymentSubmission(plan="weekly", method="Crypto", transaction_id="0xabc123")
