import sys
from datetime import datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


class FixedClock:
    """Callable clock that tests can move forward by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def new_repo(tmp_path: Path, name: str = "pms.db"):
    from pms.repositories.sqlite_repo import SqliteRepository

    repo = SqliteRepository(tmp_path / name)
    repo.init_db()
    return repo


def admin_user(repo):
    return repo.get_user_by_username("admin")


def add_stocked_medicine(repo, name: str, quantity: int, price: int = 1000, clock=None, **fields) -> int:
    from pms.services.medicine_service import MedicineService

    svc = MedicineService(repo, clock=clock)
    medicine = svc.add_medicine(name, unit_price_sell=price, opening_stock=quantity, **fields)
    return medicine.id


def stock_of(repo, medicine_id: int) -> int:
    medicine = repo.get_medicine(medicine_id, include_deleted=True)
    return medicine.current_quantity if medicine else 0


def count_rows(repo, table: str) -> int:
    conn = repo._conn()
    try:
        return int(conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])
    finally:
        conn.close()
