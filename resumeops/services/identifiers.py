"""Human-readable business identifiers: PREFIX-YYYYMMDD-XXXX.

Order numbers take their prefix from settings (`orders.number_prefix`).
"""

from __future__ import annotations

import secrets
from datetime import datetime

from resumeops.models.base import utcnow

PAYMENT_PREFIX = "PAY"
REVISION_PREFIX = "REV"
ROOM_PREFIX = "ROOM"


def generate_code(prefix: str, now: datetime | None = None) -> str:
    day = (now or utcnow()).strftime("%Y%m%d")
    return f"{prefix}-{day}-{secrets.randbelow(10000):04d}"
