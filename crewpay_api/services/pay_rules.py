# crewpay_api/services/pay_rules.py
"""
Pay rules for worked shifts.

    pay_due = hours * rate
    Breakdown shifts: max(hours * rate, 50.00)

A pay_due value already persisted on a record always wins over a fresh
computation. Nothing here touches the database or raises; unusable numeric
input degrades to zero.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

DEFAULT_RATE = Decimal("25")
BREAKDOWN_MINIMUM = Decimal("50.00")
CENTS = Decimal("0.01")

SOURCE_PERSISTED = "persisted"
SOURCE_COMPUTED = "computed"
SOURCE_DEFAULT = "default"


def _dec(x: Any) -> Optional[Decimal]:
    if x is None or x == "" or isinstance(x, bool):
        return None
    try:
        d = Decimal(str(x).strip())
    except (InvalidOperation, ValueError):
        return None
    return d if d.is_finite() else None


def _hours(hours: Any) -> Decimal:
    return _dec(hours) or Decimal(0)


def _rate(rate: Any) -> Decimal:
    if rate is None:
        return DEFAULT_RATE
    return _dec(rate) or Decimal(0)


def is_breakdown(shift_type: Optional[str]) -> bool:
    return (shift_type or "").strip().lower() == "breakdown"


def money(value: Any) -> Decimal:
    """Quantise to cents for storage/display."""
    return (_dec(value) or Decimal(0)).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PayDue:
    amount: Decimal
    source: str   # persisted | computed | default


@dataclass(frozen=True)
class PayResult:
    amount: Decimal
    base: Decimal
    min_applied: bool
    source: str


def base_pay(hours: Any, rate: Any) -> Decimal:
    return _hours(hours) * _rate(rate)


def resolve_pay_due(hours: Any, rate: Any, shift_type: Optional[str], existing_pay_due: Any = None) -> PayDue:
    """persisted value > computed from hours*rate > zero."""
    persisted = _dec(existing_pay_due)
    if persisted is not None:
        return PayDue(persisted, SOURCE_PERSISTED)

    # unusable hours still go through the rules as zero (Breakdown floor applies)
    source = SOURCE_COMPUTED if _dec(hours) is not None else SOURCE_DEFAULT
    base = base_pay(hours, rate)
    if is_breakdown(shift_type):
        return PayDue(max(base, BREAKDOWN_MINIMUM), source)
    return PayDue(base, source)


def compute_pay(hours: Any, rate: Any, shift_type: Optional[str], existing_pay_due: Any = None) -> Decimal:
    return resolve_pay_due(hours, rate, shift_type, existing_pay_due).amount


def pay_breakdown(hours: Any, rate: Any, shift_type: Optional[str], existing_pay_due: Any = None) -> PayResult:
    """Pay plus the derived min_applied flag shown next to it in payroll views."""
    due = resolve_pay_due(hours, rate, shift_type, existing_pay_due)
    base = base_pay(hours, rate)
    return PayResult(
        amount=due.amount,
        base=base,
        min_applied=is_breakdown(shift_type) and base < BREAKDOWN_MINIMUM,
        source=due.source,
    )


def record_pay(record) -> PayResult:
    """pay_breakdown for a ShiftRecord-like object."""
    return pay_breakdown(
        getattr(record, "hours_worked", None),
        getattr(record, "pay_rate", None),
        getattr(record, "shift_type", None),
        getattr(record, "pay_due", None),
    )
