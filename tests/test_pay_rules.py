from decimal import Decimal
from types import SimpleNamespace

import pytest

from crewpay_api.services.pay_rules import (
    BREAKDOWN_MINIMUM, SOURCE_COMPUTED, SOURCE_DEFAULT, SOURCE_PERSISTED,
    compute_pay, money, pay_breakdown, record_pay, resolve_pay_due,
)


def test_breakdown_floor_applies_below_fifty():
    assert compute_pay(1, 25, "Breakdown") == Decimal("50.00")
    assert compute_pay(Decimal("1.5"), 20, "Breakdown") == Decimal("50.00")


def test_breakdown_above_floor_is_plain_product():
    assert compute_pay(4, 25, "Breakdown") == Decimal("100")
    assert compute_pay(2, 25, "Breakdown") == Decimal("50")


def test_breakdown_match_is_case_insensitive():
    assert compute_pay(1, 25, "breakdown") == BREAKDOWN_MINIMUM
    assert compute_pay(1, 25, " BREAKDOWN ") == BREAKDOWN_MINIMUM


@pytest.mark.parametrize("shift_type", ["Setup", "Lights", "Shop", "Other", None])
def test_non_breakdown_has_no_floor(shift_type):
    assert compute_pay(4, 25, shift_type) == Decimal("100")
    assert compute_pay(1, 25, shift_type) == Decimal("25")


def test_persisted_pay_due_wins():
    assert compute_pay(1, 25, "Breakdown", Decimal("12.50")) == Decimal("12.50")
    assert compute_pay(10, 99, "Setup", "7") == Decimal("7")
    assert compute_pay(10, 99, "Setup", 0) == Decimal("0")


def test_empty_persisted_value_is_ignored():
    assert compute_pay(4, 25, "Setup", "") == Decimal("100")
    assert compute_pay(4, 25, "Setup", None) == Decimal("100")


def test_missing_rate_defaults_to_25():
    assert compute_pay(2, None, "Setup") == Decimal("50")


def test_bad_numbers_degrade_to_zero():
    assert compute_pay("abc", 25, "Setup") == Decimal("0")
    assert compute_pay(4, "n/a", "Setup") == Decimal("0")
    # the floor still applies to an unusable Breakdown row
    assert compute_pay(None, 25, "Breakdown") == BREAKDOWN_MINIMUM


def test_no_rounding_in_compute():
    assert compute_pay(Decimal("4.333"), 25, "Setup") == Decimal("108.325")
    assert money(Decimal("108.325")) == Decimal("108.33")


def test_resolve_tags_the_source():
    assert resolve_pay_due(4, 25, "Setup", "80").source == SOURCE_PERSISTED
    assert resolve_pay_due(4, 25, "Setup").source == SOURCE_COMPUTED
    assert resolve_pay_due(None, 25, "Setup").source == SOURCE_DEFAULT


def test_min_applied_is_derived():
    low = pay_breakdown(1, 25, "Breakdown")
    assert low.min_applied is True
    assert low.base == Decimal("25")
    assert low.amount == Decimal("50.00")

    assert pay_breakdown(3, 25, "Breakdown").min_applied is False
    assert pay_breakdown(1, 25, "Setup").min_applied is False


def test_record_pay_reads_record_fields():
    rec = SimpleNamespace(hours_worked=Decimal("1.00"), pay_rate=Decimal("25.00"), shift_type="Breakdown", pay_due=None)
    res = record_pay(rec)
    assert res.amount == Decimal("50.00")
    assert res.min_applied is True

    rec.pay_due = Decimal("40.00")
    assert record_pay(rec).amount == Decimal("40.00")
