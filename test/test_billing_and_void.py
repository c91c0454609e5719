from datetime import datetime
from pathlib import Path

import pytest
from conftest import FixedClock, add_stocked_medicine, admin_user, count_rows, new_repo, stock_of

from pms.domain.errors import (
    AlreadyVoidedError,
    InsufficientPaymentError,
    InsufficientStockError,
    MedicineNotFoundError,
    NotFoundError,
    ValidationError,
)
from pms.domain.models import PaymentMode, TransactionType
from pms.services.billing_service import BillingService
from pms.services.medicine_service import MedicineService
from pms.services.settings_service import SettingsService
from pms.services.void_service import VoidService


def test_bill_totals_numbering_and_stock(tmp_path: Path):
    repo = new_repo(tmp_path)
    clock = FixedClock(datetime(2026, 2, 1, 9, 15, 0))
    a = add_stocked_medicine(repo, "Paracetamol", 50)
    b = add_stocked_medicine(repo, "Cough Syrup", 10)
    billing = BillingService(repo, clock=clock)
    admin = admin_user(repo)

    detail = billing.create_bill(
        [{"medicine_id": a, "quantity": 4, "unit_price": 1500}, {"medicine_id": b, "quantity": 2, "unit_price": 2000}],
        customer_name="  Ali  ",
        discount_percent=10,
        tax_percent=5,
        payment_mode="cash",
        amount_received=10000,
        created_by=admin.id,
    )

    bill = detail.bill
    assert bill.bill_number == "BILL-20260201-0001"
    assert bill.subtotal == 10000
    assert bill.total_amount == 9450
    assert bill.change_due == 550
    assert bill.customer_name == "Ali"
    assert [i.quantity for i in detail.items] == [4, 2]
    assert stock_of(repo, a) == 46
    assert stock_of(repo, b) == 8

    out_rows, _ = repo.list_transactions(txn_type="out")
    assert {t.reference_id for t in out_rows} == {bill.id}
    assert all(t.reference_type == "bill" and t.reason == "Bill BILL-20260201-0001" for t in out_rows)

    second = billing.create_bill([{"medicine_id": a, "quantity": 1, "unit_price": 1500}], payment_mode="card")
    assert second.bill.bill_number == "BILL-20260201-0002"


def test_card_and_credit_bills_are_paid_in_full(tmp_path: Path):
    repo = new_repo(tmp_path)
    mid = add_stocked_medicine(repo, "Vitamin C", 10)
    billing = BillingService(repo)

    detail = billing.create_bill([{"medicine_id": mid, "quantity": 3, "unit_price": 333}], payment_mode=PaymentMode.CREDIT)

    assert detail.bill.amount_received == detail.bill.total_amount == 999
    assert detail.bill.change_due == 0


def test_bill_defaults_to_cash_payment(tmp_path: Path):
    repo = new_repo(tmp_path)
    mid = add_stocked_medicine(repo, "Ibuprofen", 10)
    billing = BillingService(repo)

    detail = billing.create_bill([{"medicine_id": mid, "quantity": 1, "unit_price": 80}], amount_received=100, tax_percent=0)

    assert detail.bill.payment_mode is PaymentMode.CASH
    assert detail.bill.change_due == 20
    card = billing.create_bill([{"medicine_id": mid, "quantity": 1, "unit_price": 80}], payment_mode=PaymentMode.CARD)
    assert card.bill.payment_mode is PaymentMode.CARD


def test_cash_bill_requires_enough_money(tmp_path: Path):
    repo = new_repo(tmp_path)
    mid = add_stocked_medicine(repo, "Aspirin", 10)
    billing = BillingService(repo)

    with pytest.raises(InsufficientPaymentError):
        billing.create_bill([{"medicine_id": mid, "quantity": 2, "unit_price": 500}], amount_received=999)

    assert stock_of(repo, mid) == 10
    assert count_rows(repo, "bills") == 0


def test_bill_is_all_or_nothing_when_a_later_line_oversells(tmp_path: Path):
    repo = new_repo(tmp_path)
    a = add_stocked_medicine(repo, "Loratadine", 10)
    b = add_stocked_medicine(repo, "Insulin", 1, batch_no="IN-2")
    c = add_stocked_medicine(repo, "Gauze", 7)
    billing = BillingService(repo)
    ledger_before = count_rows(repo, "stock_transactions")

    with pytest.raises(InsufficientStockError, match=r"Insulin \(Batch IN-2\)"):
        billing.create_bill(
            [
                {"medicine_id": a, "quantity": 2, "unit_price": 100},
                {"medicine_id": b, "quantity": 2, "unit_price": 900},
                {"medicine_id": c, "quantity": 1, "unit_price": 50},
            ],
            payment_mode="card",
        )

    assert stock_of(repo, a) == 10
    assert stock_of(repo, b) == 1
    assert stock_of(repo, c) == 7
    assert count_rows(repo, "bills") == 0
    assert count_rows(repo, "bill_items") == 0
    assert count_rows(repo, "stock_transactions") == ledger_before


def test_duplicate_lines_are_checked_against_their_combined_quantity(tmp_path: Path):
    repo = new_repo(tmp_path)
    mid = add_stocked_medicine(repo, "Antacid", 5)
    billing = BillingService(repo)

    with pytest.raises(InsufficientStockError):
        billing.create_bill(
            [{"medicine_id": mid, "quantity": 3, "unit_price": 100}, {"medicine_id": mid, "quantity": 3, "unit_price": 100}],
            payment_mode="card",
        )
    assert stock_of(repo, mid) == 5

    detail = billing.create_bill(
        [{"medicine_id": mid, "quantity": 2, "unit_price": 100}, {"medicine_id": mid, "quantity": 3, "unit_price": 100}],
        payment_mode="card",
    )
    assert len(detail.items) == 2
    assert stock_of(repo, mid) == 0


def test_bill_rejects_bad_lines(tmp_path: Path):
    repo = new_repo(tmp_path)
    mid = add_stocked_medicine(repo, "Zinc", 5)
    billing = BillingService(repo)

    with pytest.raises(ValidationError):
        billing.create_bill([])
    with pytest.raises(ValidationError):
        billing.create_bill([{"medicine_id": mid, "quantity": 0, "unit_price": 100}], payment_mode="card")
    with pytest.raises(ValidationError):
        billing.create_bill([{"medicine_id": mid, "quantity": 1, "unit_price": 100}], payment_mode="cheque")

    MedicineService(repo).delete_medicine(mid)
    with pytest.raises(MedicineNotFoundError, match="Cannot bill a deleted medicine: Zinc"):
        billing.create_bill([{"medicine_id": mid, "quantity": 1, "unit_price": 100}], payment_mode="card")


def test_default_tax_comes_from_settings(tmp_path: Path):
    repo = new_repo(tmp_path)
    mid = add_stocked_medicine(repo, "ORS", 10)
    settings = SettingsService(repo)
    settings.update({"gst_percent": "17"})
    billing = BillingService(repo, settings=settings)

    detail = billing.create_bill([{"medicine_id": mid, "quantity": 1, "unit_price": 1000}], payment_mode="card")

    assert detail.bill.tax_percent == 17
    assert detail.bill.total_amount == 1170


def test_void_restores_stock_exactly(tmp_path: Path):
    repo = new_repo(tmp_path)
    a = add_stocked_medicine(repo, "Azithromycin", 12)
    b = add_stocked_medicine(repo, "Salbutamol", 4)
    billing = BillingService(repo)
    voids = VoidService(repo)
    admin = admin_user(repo)

    detail = billing.create_bill(
        [{"medicine_id": a, "quantity": 5, "unit_price": 250}, {"medicine_id": b, "quantity": 4, "unit_price": 800}],
        payment_mode="card",
    )
    assert stock_of(repo, b) == 0

    voids.void_bill(detail.bill.id, "Customer returned sealed pack", admin.id)

    assert stock_of(repo, a) == 12
    assert stock_of(repo, b) == 4
    assert repo.ledger_balance(a) == 12
    bill = billing.get_bill(detail.bill.id).bill
    assert bill.is_voided
    assert bill.voided_reason == "Customer returned sealed pack"

    reversals, total = repo.list_transactions(txn_type="in", limit=None)
    reversals = [t for t in reversals if t.reference_type == "bill_void"]
    assert len(reversals) == 2
    assert {t.transaction_type for t in reversals} == {TransactionType.IN}
    assert all(t.reason.startswith(f"Void {bill.bill_number}") for t in reversals)


def test_double_void_is_rejected_without_moving_stock(tmp_path: Path):
    repo = new_repo(tmp_path)
    mid = add_stocked_medicine(repo, "Diclofenac", 6)
    billing = BillingService(repo)
    voids = VoidService(repo)
    admin = admin_user(repo)

    detail = billing.create_bill([{"medicine_id": mid, "quantity": 2, "unit_price": 100}], payment_mode="card")
    voids.void_bill(detail.bill.id, "Wrong item", admin.id)
    ledger_after_first = count_rows(repo, "stock_transactions")

    with pytest.raises(AlreadyVoidedError):
        voids.void_bill(detail.bill.id, "Again", admin.id)

    assert stock_of(repo, mid) == 6
    assert count_rows(repo, "stock_transactions") == ledger_after_first


def test_void_validation(tmp_path: Path):
    repo = new_repo(tmp_path)
    admin = admin_user(repo)
    voids = VoidService(repo)

    with pytest.raises(ValidationError):
        voids.void_bill(1, "   ", admin.id)
    with pytest.raises(NotFoundError):
        voids.void_bill(404, "No such bill", admin.id)


def test_void_works_after_medicine_was_deleted(tmp_path: Path):
    repo = new_repo(tmp_path)
    mid = add_stocked_medicine(repo, "Discontinued", 3)
    billing = BillingService(repo)
    detail = billing.create_bill([{"medicine_id": mid, "quantity": 3, "unit_price": 100}], payment_mode="card")
    MedicineService(repo).delete_medicine(mid)

    VoidService(repo).void_bill(detail.bill.id, "Refund", admin_user(repo).id)

    assert stock_of(repo, mid) == 3


def test_daily_summary_ignores_voided_bills(tmp_path: Path):
    repo = new_repo(tmp_path)
    clock = FixedClock(datetime(2026, 4, 2, 18, 0, 0))
    mid = add_stocked_medicine(repo, "Folic Acid", 20)
    billing = BillingService(repo, clock=clock)

    kept = billing.create_bill([{"medicine_id": mid, "quantity": 2, "unit_price": 300}], payment_mode="card")
    gone = billing.create_bill([{"medicine_id": mid, "quantity": 1, "unit_price": 300}], payment_mode="card")
    VoidService(repo, clock=clock).void_bill(gone.bill.id, "Duplicate", admin_user(repo).id)

    summary = billing.daily_summary()
    assert summary.date == "2026-04-02"
    assert summary.bill_count == 1
    assert summary.total_sales == kept.bill.total_amount

    rows, total = billing.list_bills(include_voided=False)
    assert total == 1
    assert rows[0].bill_number == kept.bill.bill_number
