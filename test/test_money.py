from decimal import Decimal

import pytest

from pms.domain.money import Paisa, average, clamp_percent, compute_bill_totals, percent_of


def test_bill_totals_discount_then_tax():
    totals = compute_bill_totals(10000, 10, 5)

    assert totals.discount_amount == 1000
    assert totals.taxable == 9000
    assert totals.tax_amount == 450
    assert totals.total == 9450


def test_bill_totals_identity_holds_after_rounding():
    assert compute_bill_totals(333, 0, 0).total == 333

    totals = compute_bill_totals(333, 10, 5)

    assert totals.total == totals.subtotal - totals.discount_amount + totals.tax_amount
    assert totals.discount_amount == 33
    assert totals.tax_amount == 15


def test_percentages_are_clamped():
    assert clamp_percent(-5) == 0
    assert clamp_percent(150) == 100
    totals = compute_bill_totals(5000, 120, 0)
    assert totals.total == 0


def test_percent_rounds_half_away_from_zero():
    assert percent_of(50, 1) == 1
    assert percent_of(49, 1) == 0
    assert percent_of(-50, 1) == -1


def test_average_of_empty_period_is_zero():
    assert average(0, 0) == 0
    assert average(1000, 3) == 333
    assert average(1001, 2) == 501


def test_paisa_from_rupees_is_exact():
    assert Paisa.from_rupees("12.34") == 1234
    assert Paisa.from_rupees(Decimal("0.1")) == 10
    assert Paisa.from_rupees("1,250") == 125000
    with pytest.raises(ValueError):
        Paisa.from_rupees("1.005")
    with pytest.raises(TypeError):
        Paisa.from_rupees(1.5)


def test_paisa_refuses_float_arithmetic():
    with pytest.raises(TypeError):
        Paisa(100) + 0.5
    with pytest.raises(TypeError):
        0.5 * Paisa(101)
    with pytest.raises(TypeError):
        0.5 + Paisa(100)
    with pytest.raises(TypeError):
        2.5 - Paisa(1)
    with pytest.raises(TypeError):
        Paisa(1.5)
    assert Paisa(1250).format_rupees() == "Rs. 12.50"


def test_paisa_behaves_like_a_whole_number():
    assert Paisa(300) + 200 == 500
    assert 1000 - Paisa(250) == Paisa(750)
    assert 3 * Paisa(40) == 120
    assert sum([Paisa(1), Paisa(2)]) == 3
    assert max(Paisa(0), Paisa(-5)) == 0
    assert int(Paisa(42)) == 42
    assert {Paisa(7): "x"}[7] == "x"
