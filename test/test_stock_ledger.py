from datetime import date, datetime
from pathlib import Path

import pytest
from conftest import FixedClock, add_stocked_medicine, count_rows, new_repo, stock_of

from pms.domain.errors import InsufficientStockError, MedicineNotFoundError, ValidationError
from pms.domain.models import TransactionType
from pms.repositories.unit_of_work import RepositoryUnitOfWork
from pms.services.inventory_service import InventoryService
from pms.services.medicine_service import MedicineService
from pms.services.sequence_service import SequenceService
from pms.services.stock_mutator import StockMutator


def test_opening_stock_writes_one_ledger_entry(tmp_path: Path):
    repo = new_repo(tmp_path)
    mid = add_stocked_medicine(repo, "Paracetamol", 100, batch_no="B1")

    txns, total = repo.list_transactions(medicine_id=mid)
    assert total == 1
    assert txns[0].transaction_type is TransactionType.IN
    assert txns[0].quantity == 100
    assert txns[0].reason == "Opening Stock"
    assert stock_of(repo, mid) == repo.ledger_balance(mid) == 100


def test_zero_opening_stock_writes_no_ledger_entry(tmp_path: Path):
    repo = new_repo(tmp_path)
    mid = add_stocked_medicine(repo, "Cetirizine", 0)

    assert stock_of(repo, mid) == 0
    assert repo.list_transactions(medicine_id=mid)[1] == 0


def test_mutator_rejects_sign_mismatch_and_zero(tmp_path: Path):
    repo = new_repo(tmp_path)
    mid = add_stocked_medicine(repo, "Ibuprofen", 10)
    stock = StockMutator()

    with pytest.raises(ValidationError):
        with RepositoryUnitOfWork(repo) as uow:
            stock.apply_delta(uow, mid, 5, TransactionType.OUT, "wrong sign")
    with pytest.raises(ValidationError):
        with RepositoryUnitOfWork(repo) as uow:
            stock.apply_delta(uow, mid, 0, TransactionType.IN, "nothing")
    with pytest.raises(ValidationError):
        with RepositoryUnitOfWork(repo) as uow:
            stock.apply_delta(uow, mid, 1, "gift", "unknown type")

    assert stock_of(repo, mid) == 10
    assert count_rows(repo, "stock_transactions") == 1


def test_mutator_refuses_to_go_negative(tmp_path: Path):
    repo = new_repo(tmp_path)
    mid = add_stocked_medicine(repo, "Amoxicillin", 3, batch_no="AX-9")

    with pytest.raises(InsufficientStockError, match=r"Amoxicillin \(Batch AX-9\)"):
        with RepositoryUnitOfWork(repo) as uow:
            StockMutator().apply_delta(uow, mid, -4, TransactionType.OUT, "too many")

    assert stock_of(repo, mid) == 3


def test_mutator_unknown_medicine(tmp_path: Path):
    repo = new_repo(tmp_path)
    with pytest.raises(MedicineNotFoundError):
        with RepositoryUnitOfWork(repo) as uow:
            StockMutator().apply_delta(uow, 999, 1, TransactionType.IN, "ghost")


def test_manual_transactions_keep_ledger_in_step(tmp_path: Path):
    repo = new_repo(tmp_path)
    clock = FixedClock(datetime(2026, 3, 14, 10, 30, 0))
    mid = add_stocked_medicine(repo, "Omeprazole", 20, clock=clock)
    inv = InventoryService(repo, clock=clock)

    inv.record_transaction(mid, "in", 5)
    inv.record_transaction(mid, "out", 7, reason="Damaged strip")
    inv.record_transaction(mid, "adjust", 3, txn_date="2026-03-10")

    assert stock_of(repo, mid) == 15
    assert inv.ledger_balance(mid) == 15

    txns, total = inv.list_transactions(medicine_id=mid, start_date="2026-03-10", end_date="2026-03-10")
    assert total == 1
    assert txns[0].transaction_type is TransactionType.ADJUST
    assert txns[0].created_at == "2026-03-10 10:30:00"


def test_manual_transaction_accepts_enum_members(tmp_path: Path):
    repo = new_repo(tmp_path)
    mid = add_stocked_medicine(repo, "Cetirizine", 4)
    inv = InventoryService(repo)

    inv.record_transaction(mid, TransactionType.IN, 2)
    inv.record_transaction(mid, TransactionType.ADJUST, 1)

    assert stock_of(repo, mid) == 5
    with pytest.raises(ValidationError):
        inv.record_transaction(mid, TransactionType.RETURN, 1)


def test_manual_transaction_validation(tmp_path: Path):
    repo = new_repo(tmp_path)
    mid = add_stocked_medicine(repo, "Metformin", 5)
    inv = InventoryService(repo)

    with pytest.raises(ValidationError):
        inv.record_transaction(mid, "return", 1)
    with pytest.raises(ValidationError):
        inv.record_transaction(mid, "in", -1)
    with pytest.raises(ValidationError):
        inv.record_transaction(mid, "in", 1.5)
    with pytest.raises(InsufficientStockError):
        inv.record_transaction(mid, "out", 6)

    MedicineService(repo).delete_medicine(mid)
    with pytest.raises(MedicineNotFoundError, match="deleted medicine: Metformin"):
        inv.record_transaction(mid, "in", 1)

    assert stock_of(repo, mid) == 5


def test_bill_numbers_reset_daily(tmp_path: Path):
    repo = new_repo(tmp_path)
    seq = SequenceService()

    with RepositoryUnitOfWork(repo) as uow:
        assert seq.next_bill_number(uow, date(2026, 1, 5)) == "BILL-20260105-0001"
        assert seq.next_order_number(uow) == "PO-00001"


def test_sequence_continues_past_padding(tmp_path: Path):
    repo = new_repo(tmp_path)
    conn = repo._conn()
    conn.execute(
        """
        INSERT INTO bills (bill_number, subtotal, discount_percent, tax_percent, total_amount,
                           payment_mode, amount_received, change_due, is_voided, created_at)
        VALUES ('BILL-20260105-9999', 0, 0, 0, 0, 'cash', 0, 0, 0, '2026-01-05 09:00:00')
        """
    )
    conn.commit()
    conn.close()
    seq = SequenceService()

    with RepositoryUnitOfWork(repo) as uow:
        nxt = seq.next_bill_number(uow, date(2026, 1, 5))
        assert nxt == "BILL-20260105-10000"
        uow.insert_bill(
            bill_number=nxt,
            customer_name=None,
            customer_phone=None,
            subtotal=0,
            discount_percent=0,
            tax_percent=0,
            total_amount=0,
            payment_mode="cash",
            amount_received=0,
            change_due=0,
            notes=None,
            created_by=None,
            created_at="2026-01-05 10:00:00",
        )

    with RepositoryUnitOfWork(repo) as uow:
        assert seq.next_bill_number(uow, date(2026, 1, 5)) == "BILL-20260105-10001"
        assert seq.next_bill_number(uow, date(2026, 1, 6)) == "BILL-20260106-0001"
