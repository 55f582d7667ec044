"""
backend/footbet/database.py

Purpose:
    MongoDB connection bootstrap and index management for all collections.

Dependencies:
    - motor.motor_asyncio
    - footbet.config
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from footbet.config import settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("footbet.database")


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=2,
        tz_aware=True,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()


async def close_db() -> None:
    global client
    if client:
        client.close()


async def get_db() -> AsyncIOMotorDatabase:
    return db


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent."""

    # ---- Users ----
    await db.users.create_index("email", unique=True)
    await db.users.create_index("subscription.expires_at", sparse=True)
    await db.access_blocklist.create_index("jti", unique=True)
    await db.access_blocklist.create_index("expires_at", expireAfterSeconds=0)

    # ---- Predictions ----
    # Master docs use _id = "YYYY-MM-DD"; category docs use _id = "YYYY-MM-DD/<category>".
    await db.prediction_categories.create_index(
        [("date", 1), ("category", 1)], unique=True,
    )
    await db.prediction_categories.create_index([("date", 1), ("status", 1)])
    await db.prediction_categories.create_index([("ruleset", 1), ("date", -1)])

    # ---- Generation locks (TTL cleans up abandoned runs) ----
    await db.generation_locks.create_index("expires_at", expireAfterSeconds=0)

    # ---- Payments ----
    await db.payment_verifications.create_index([("status", 1), ("created_at", -1)])
    await db.payment_verifications.create_index([("user_id", 1), ("created_at", -1)])
    await db.payment_verifications.create_index(
        [("method", 1), ("transaction_id", 1)], unique=True,
    )

    # ---- Audit Logs ----
    await db.audit_logs.create_index([("action", 1), ("timestamp", -1)])
    await db.audit_logs.create_index([("actor_id", 1), ("timestamp", -1)])
    await db.audit_logs.create_index([("target_id", 1), ("timestamp", -1)])
    await db.audit_logs.create_index("timestamp")

    logger.info("MongoDB indexes ensured for %s", settings.MONGO_DB)
