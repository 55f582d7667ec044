"""
backend/footbet/services/generation_lock.py

Purpose:
    Advisory lock per (date, ruleset) so two admin-triggered runs for the
    same day cannot race each other into a last-write-wins overwrite.

    The lock is a document in ``generation_locks`` whose _id is the lock key;
    MongoDB's unique _id makes acquisition a conditional insert. Each holder
    carries a random run token and only that token can release it. Locks
    older than GENERATION_LOCK_TTL_SECONDS are treated as abandoned and may
    be taken over (the TTL index also reaps them).

Dependencies:
    - pymongo.errors.DuplicateKeyError
    - footbet.database
"""

from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator

from pymongo.errors import DuplicateKeyError

import footbet.database as _db
from footbet.config import settings
from footbet.errors import GenerationInProgressError
from footbet.utils import utcnow

logger = logging.getLogger("footbet.generation_lock")


def lock_key(day: str, ruleset: str) -> str:
    return f"{day}/{ruleset}"


async def acquire(day: str, ruleset: str, *, holder: str = "system") -> str:
    """Take the lock or raise GenerationInProgressError. Returns the run token."""
    key = lock_key(day, ruleset)
    now = utcnow()
    token = secrets.token_hex(12)
    expires_at = now + timedelta(seconds=settings.GENERATION_LOCK_TTL_SECONDS)
    doc = {
        "_id": key,
        "run_token": token,
        "holder": holder,
        "acquired_at": now,
        "expires_at": expires_at,
    }
    try:
        await _db.db.generation_locks.insert_one(doc)
        return token
    except DuplicateKeyError:
        pass

    # Held: take over only if the previous holder's lock has expired.
    taken = await _db.db.generation_locks.find_one_and_update(
        {"_id": key, "expires_at": {"$lt": now}},
        {"$set": {k: v for k, v in doc.items() if k != "_id"}},
    )
    if taken is not None:
        logger.warning(
            "Took over stale generation lock %s (held by %s since %s)",
            key, taken.get("holder"), taken.get("acquired_at"),
        )
        return token

    current = await _db.db.generation_locks.find_one({"_id": key}, {"holder": 1, "acquired_at": 1})
    holder_info = (current or {}).get("holder", "another run")
    raise GenerationInProgressError(
        f"A {ruleset} generation for {day} is already running (started by {holder_info})."
    )


async def release(day: str, ruleset: str, token: str) -> bool:
    result = await _db.db.generation_locks.delete_one({"_id": lock_key(day, ruleset), "run_token": token})
    if result.deleted_count == 0:
        logger.warning("Generation lock %s was no longer held by token %s", lock_key(day, ruleset), token[:6])
        return False
    return True


@asynccontextmanager
async def generation_lock(day: str, ruleset: str, *, holder: str = "system") -> AsyncIterator[str]:
    """Hold the (day, ruleset) lock for the body; released on success and on abort."""
    token = await acquire(day, ruleset, holder=holder)
    try:
        yield token
    finally:
        await release(day, ruleset, token)
