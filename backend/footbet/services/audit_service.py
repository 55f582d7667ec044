"""Insert-only audit trail for administrative actions.

Entries are never updated or deleted by the application.
"""

import ipaddress
import logging
from typing import Optional

from fastapi import Request

import footbet.database as _db
from footbet.utils import utcnow

logger = logging.getLogger("footbet.audit")

# Action identifiers
GENERATE_PREDICTIONS = "ADMIN_GENERATE_PREDICTIONS"
PUBLISH_CATEGORY = "ADMIN_PUBLISH_CATEGORY"
UNPUBLISH_CATEGORY = "ADMIN_UNPUBLISH_CATEGORY"
CHECK_RESULTS = "ADMIN_CHECK_RESULTS"
APPROVE_PAYMENT = "ADMIN_APPROVE_PAYMENT"
REJECT_PAYMENT = "ADMIN_REJECT_PAYMENT"
SUBMIT_PAYMENT = "PAYMENT_SUBMITTED"
REGISTER = "REGISTER"
LOGIN_SUCCESS = "LOGIN_SUCCESS"
LOGIN_FAILED = "LOGIN_FAILED"


def anonymize_ip(raw: str) -> str:
    """Mask the host part of an address: 192.168.1.42 -> 192.168.1.xxx."""
    if not raw:
        return ""
    try:
        addr = ipaddress.ip_address(raw)
    except ValueError:
        return ""
    if addr.version == 4:
        return raw.rsplit(".", 1)[0] + ".xxx"
    return raw.rsplit(":", 1)[0] + ":xxx"


def client_ip(request: Optional[Request]) -> str:
    """Client address, preferring the first X-Forwarded-For hop (reverse proxy)."""
    if request is None:
        return ""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


async def log_audit(
    *,
    actor_id: str,
    target_id: str,
    action: str,
    metadata: Optional[dict] = None,
    request: Optional[Request] = None,
) -> None:
    """Append one audit record. Failures are logged, never raised to the caller."""
    doc = {
        "timestamp": utcnow(),
        "actor_id": actor_id,
        "target_id": target_id,
        "action": action,
        "metadata": metadata or {},
        "ip_truncated": anonymize_ip(client_ip(request)),
    }
    try:
        await _db.db.audit_logs.insert_one(doc)
    except Exception:
        logger.exception("Failed to write audit log: action=%s actor=%s", action, actor_id)
