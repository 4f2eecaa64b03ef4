"""Free-revision accounting, chargeable revision fees and effort estimates."""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from resumeops.services.pricing import round_money
from resumeops.states import Complexity, RevisionPriority, UrgencyLevel

_TENTH = Decimal("0.1")

REVISION_BASE_FEES: dict[Complexity, Decimal] = {
    Complexity.SIMPLE: Decimal("25"),
    Complexity.MODERATE: Decimal("50"),
    Complexity.COMPLEX: Decimal("100"),
    Complexity.VERY_COMPLEX: Decimal("200"),
}

FEE_URGENCY_MULTIPLIERS: dict[UrgencyLevel, Decimal] = {
    UrgencyLevel.STANDARD: Decimal("1.0"),
    UrgencyLevel.URGENT: Decimal("1.5"),
    UrgencyLevel.EXPRESS: Decimal("2.0"),
}

BASE_HOURS: dict[Complexity, Decimal] = {
    Complexity.SIMPLE: Decimal("1"),
    Complexity.MODERATE: Decimal("3"),
    Complexity.COMPLEX: Decimal("6"),
    Complexity.VERY_COMPLEX: Decimal("12"),
}

PRIORITY_HOUR_MULTIPLIERS: dict[RevisionPriority, Decimal] = {
    RevisionPriority.LOW: Decimal("1.2"),
    RevisionPriority.MEDIUM: Decimal("1.0"),
    RevisionPriority.HIGH: Decimal("0.8"),
    RevisionPriority.URGENT: Decimal("0.5"),
}

URGENCY_HOUR_MULTIPLIERS: dict[UrgencyLevel, Decimal] = {
    UrgencyLevel.STANDARD: Decimal("1.0"),
    UrgencyLevel.URGENT: Decimal("0.7"),
    UrgencyLevel.EXPRESS: Decimal("0.5"),
}

HOURS_PER_SPECIFIC_CHANGE = Decimal("0.5")


def calculate_revision_fee(complexity: str, urgency_level: str) -> float:
    """baseFee[complexity] x urgencyMultiplier[urgency]."""
    fee = REVISION_BASE_FEES[Complexity(complexity)] * FEE_URGENCY_MULTIPLIERS[UrgencyLevel(urgency_level)]
    return round_money(fee)


def is_revision_chargeable(free_revisions_used: int, free_revisions_limit: int) -> bool:
    return free_revisions_used >= free_revisions_limit


def revision_eligibility(
    free_revisions_used: int,
    free_revisions_limit: int,
    complexity: str,
    urgency_level: str,
) -> tuple[bool, float]:
    """Return (is_chargeable, fee). A free revision always carries a zero fee."""
    if not is_revision_chargeable(free_revisions_used, free_revisions_limit):
        return False, 0.0
    return True, calculate_revision_fee(complexity, urgency_level)


def estimate_revision_hours(
    complexity: str,
    priority: str,
    urgency_level: str,
    specific_change_count: int = 0,
) -> float:
    hours = BASE_HOURS[Complexity(complexity)]
    hours *= PRIORITY_HOUR_MULTIPLIERS[RevisionPriority(priority)]
    hours *= URGENCY_HOUR_MULTIPLIERS[UrgencyLevel(urgency_level)]
    hours += HOURS_PER_SPECIFIC_CHANGE * specific_change_count
    return float(hours.quantize(_TENTH, rounding=ROUND_HALF_UP))
