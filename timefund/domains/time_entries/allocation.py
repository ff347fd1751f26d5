"""Funding allocation rules.

A distribution is a list of (funding source, percentage) pairs. Percentages
must reconcile to 100 so that the hours split across sources add back up to
the hours booked on the entry.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Sequence

HUNDRED = Decimal("100")
CENT = Decimal("0.01")
PERCENT_TOLERANCE = Decimal("0.01")


class AllocationError(ValueError):
    """A funding distribution that cannot be applied."""


@dataclass(frozen=True)
class Share:
    funding_source_id: int
    percentage: Decimal
    amount: Decimal = Decimal("0")


@dataclass(frozen=True)
class FundedHours:
    funding_source_id: int
    percentage: Decimal
    hours: Decimal


def _dec(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def make_shares(items: Iterable) -> List[Share]:
    """Build shares from dicts, pydantic models or ORM rows."""
    shares: List[Share] = []
    for item in items:
        if isinstance(item, dict):
            source_id = item.get("funding_source_id")
            percentage = item.get("percentage")
            amount = item.get("amount")
        else:
            source_id = getattr(item, "funding_source_id")
            percentage = getattr(item, "percentage", None)
            amount = getattr(item, "amount", None)
        shares.append(Share(int(source_id), _dec(percentage), _dec(amount)))
    return shares


def normalize_distribution(shares: Sequence[Share]) -> List[Share]:
    """Derive percentages from amounts when none were given."""
    shares = list(shares)
    if not shares or any(share.percentage for share in shares):
        return shares
    total = sum((share.amount for share in shares), Decimal("0"))
    if total <= 0:
        return shares

    derived: List[Share] = []
    remaining = HUNDRED
    for index, share in enumerate(shares):
        if index == len(shares) - 1:
            percentage = remaining
        else:
            percentage = _quantize(share.amount / total * HUNDRED)
            remaining -= percentage
        derived.append(Share(share.funding_source_id, percentage, share.amount))
    return derived


def validate_distribution(shares: Sequence[Share]) -> None:
    if not shares:
        raise AllocationError("Funding distribution must not be empty")

    seen: set[int] = set()
    for share in shares:
        if share.funding_source_id in seen:
            raise AllocationError(f"Funding source {share.funding_source_id} listed more than once")
        seen.add(share.funding_source_id)
        if share.percentage < 0 or share.percentage > HUNDRED:
            raise AllocationError("Funding percentages must be between 0 and 100")
        if share.amount < 0:
            raise AllocationError("Funding amounts must not be negative")

    total = sum((share.percentage for share in shares), Decimal("0"))
    if abs(total - HUNDRED) > PERCENT_TOLERANCE:
        raise AllocationError(f"Funding percentages must add up to 100 (got {total.normalize():f})")


def split_hours(hours, shares: Sequence[Share]) -> List[FundedHours]:
    """Split ``hours`` by percentage; the rounding residue lands on the last share."""
    total_hours = _quantize(_dec(hours))
    if not shares:
        return []

    rows: List[FundedHours] = []
    allocated = Decimal("0")
    for index, share in enumerate(shares):
        if index == len(shares) - 1:
            portion = total_hours - allocated
        else:
            portion = _quantize(total_hours * share.percentage / HUNDRED)
            allocated += portion
        rows.append(FundedHours(share.funding_source_id, _quantize(share.percentage), portion))
    return rows


def prepare_distribution(items: Iterable) -> List[Share]:
    """Normalize, round to stored precision, then validate a caller-supplied distribution."""
    shares = [
        Share(share.funding_source_id, _quantize(share.percentage), share.amount)
        for share in normalize_distribution(make_shares(items))
    ]
    validate_distribution(shares)
    return shares
