from pathlib import Path

import pytest
from conftest import add_stocked_medicine, admin_user, count_rows, new_repo, stock_of

from pms.repositories.unit_of_work import RepositoryUnitOfWork
from pms.services.billing_service import BillingService
from pms.services.purchase_service import PurchaseService
from pms.services.supplier_service import SupplierService
from pms.services.void_service import VoidService


class FailingUnitOfWork(RepositoryUnitOfWork):
    """Blows up on the n-th ledger write, after earlier writes already ran."""

    fail_on = 2

    def __enter__(self):
        self.writes = 0
        return super().__enter__()

    def insert_stock_transaction(self, **kwargs):
        self.writes += 1
        if self.writes == self.fail_on:
            raise RuntimeError("boom")
        return super().insert_stock_transaction(**kwargs)


def test_bill_rolls_back_when_the_store_fails_midway(tmp_path: Path):
    repo = new_repo(tmp_path)
    a = add_stocked_medicine(repo, "First", 10)
    b = add_stocked_medicine(repo, "Second", 10)
    ledger_before = count_rows(repo, "stock_transactions")
    billing = BillingService(repo, uow_factory=lambda: FailingUnitOfWork(repo))

    with pytest.raises(RuntimeError):
        billing.create_bill(
            [{"medicine_id": a, "quantity": 1, "unit_price": 10}, {"medicine_id": b, "quantity": 1, "unit_price": 10}],
            payment_mode="card",
        )

    assert stock_of(repo, a) == 10
    assert stock_of(repo, b) == 10
    assert count_rows(repo, "bills") == 0
    assert count_rows(repo, "stock_transactions") == ledger_before

    detail = BillingService(repo).create_bill([{"medicine_id": a, "quantity": 1, "unit_price": 10}], payment_mode="card")
    assert detail.bill.bill_number.endswith("-0001")


def test_void_rolls_back_when_the_store_fails_midway(tmp_path: Path):
    repo = new_repo(tmp_path)
    a = add_stocked_medicine(repo, "First", 10)
    b = add_stocked_medicine(repo, "Second", 10)
    bill = BillingService(repo).create_bill(
        [{"medicine_id": a, "quantity": 2, "unit_price": 10}, {"medicine_id": b, "quantity": 3, "unit_price": 10}],
        payment_mode="card",
    ).bill

    failing = VoidService(repo, uow_factory=lambda: FailingUnitOfWork(repo))
    with pytest.raises(RuntimeError):
        failing.void_bill(bill.id, "Try", admin_user(repo).id)

    assert not repo.get_bill(bill.id).is_voided
    assert stock_of(repo, a) == 8
    assert stock_of(repo, b) == 7

    VoidService(repo).void_bill(bill.id, "Retry", admin_user(repo).id)
    assert stock_of(repo, a) == 10
    assert stock_of(repo, b) == 10


def test_receipt_rolls_back_when_the_store_fails_midway(tmp_path: Path):
    repo = new_repo(tmp_path)
    a = add_stocked_medicine(repo, "First", 0)
    b = add_stocked_medicine(repo, "Second", 0)
    sid = SupplierService(repo).create_supplier("Depot").id
    order = PurchaseService(repo).create_purchase_order(
        sid,
        [{"medicine_id": a, "quantity_ordered": 5, "unit_price": 1}, {"medicine_id": b, "quantity_ordered": 3, "unit_price": 1}],
    ).order

    failing = PurchaseService(repo, uow_factory=lambda: FailingUnitOfWork(repo))
    with pytest.raises(RuntimeError):
        failing.mark_order_received(order.id)

    assert repo.get_purchase_order(order.id).received_date is None
    assert stock_of(repo, a) == 0
    assert [i.quantity_received for i in repo.purchase_order_items(order.id)] == [0, 0]

    PurchaseService(repo).mark_order_received(order.id)
    assert stock_of(repo, a) == 5
    assert stock_of(repo, b) == 3
