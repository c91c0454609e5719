from pathlib import Path

import pytest
from conftest import admin_user, new_repo

from pms.domain.errors import AuthorizationError, NotFoundError, ValidationError
from pms.repositories.sqlite_repo import SqliteRepository
from pms.services.settings_service import SettingsService
from pms.services.user_service import UserService


def test_migrations_seed_catalog_settings_and_admin(tmp_path: Path):
    repo = new_repo(tmp_path, "m.db")

    names = {c.name for c in repo.list_categories()}
    assert {"Tablet", "Syrup", "Injection", "Other"} <= names
    settings = SettingsService(repo).get_all()
    assert settings["pharmacy_name"] == "Pharmacy"
    assert settings["currency_symbol"] == "Rs."
    admin = admin_user(repo)
    assert admin is not None and admin.role == "admin" and admin.full_name == "Administrator"


def test_init_db_is_idempotent(tmp_path: Path):
    db = tmp_path / "again.db"
    SqliteRepository(db).init_db()
    repo = SqliteRepository(db)
    repo.init_db()

    assert len(repo.list_users()) == 1
    assert len(repo.list_categories()) == 10


def test_bootstrap_admin_name_from_environment(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("PMS_BOOTSTRAP_ADMIN", "owner")
    repo = SqliteRepository(tmp_path / "env.db")
    repo.init_db()

    assert repo.get_user_by_username("owner").role == "admin"


def test_migration_failure_restores_db(tmp_path: Path):
    class BrokenMigrationRepo(SqliteRepository):
        def _migration_v3_prescriptions_and_catalog(self, cur):
            raise RuntimeError("forced migration failure")

    db = tmp_path / "broken.db"
    repo = SqliteRepository(db)
    repo.init_db()

    conn = repo._conn()
    cur = conn.cursor()
    cur.execute("DELETE FROM schema_migrations WHERE version = 3")
    conn.commit()
    cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
    before = int(cur.fetchone()[0])
    conn.close()

    broken = BrokenMigrationRepo(db)

    with pytest.raises(RuntimeError, match="Original database restored"):
        broken.run_migrations()

    conn = repo._conn()
    cur = conn.cursor()
    cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
    after = int(cur.fetchone()[0])
    conn.close()

    assert after == before


def test_constraints_reject_negative_stock(tmp_path: Path):
    import sqlite3

    repo = new_repo(tmp_path, "c.db")
    conn = repo._conn()
    try:
        conn.execute(
            "INSERT INTO medicines (name, unit_price_buy, unit_price_sell, min_stock_level, is_deleted, created_at) "
            "VALUES ('X', 0, 0, 0, 0, '2026-01-01 00:00:00')"
        )
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute("INSERT INTO stock (medicine_id, current_quantity, last_updated) VALUES (1, -1, '2026-01-01')")
    finally:
        conn.close()


def test_admin_can_create_users_with_any_role(tmp_path: Path):
    repo = new_repo(tmp_path, "u.db")
    users = UserService(repo)
    admin = admin_user(repo)

    pharmacist = users.create_user(admin, "sana", "Sana Khan", "pharmacist")
    clerk = users.create_user(admin, "omar", "Omar Ali")

    roles = {u.username: u.role for u in users.list_users()}
    assert roles["sana"] == "pharmacist"
    assert roles["omar"] == "dataentry"
    assert clerk.is_active and pharmacist.full_name == "Sana Khan"

    with pytest.raises(ValidationError):
        users.create_user(admin, "sana", "Duplicate", "manager")
    with pytest.raises(ValidationError):
        users.create_user(admin, "zed", "Zed", "owner")


def test_non_admin_cannot_manage_users(tmp_path: Path):
    repo = new_repo(tmp_path, "ua.db")
    users = UserService(repo)
    admin = admin_user(repo)
    manager = users.create_user(admin, "mona", "Mona", "manager")

    with pytest.raises(AuthorizationError):
        users.create_user(manager, "x", "X", "dataentry")
    with pytest.raises(AuthorizationError):
        users.deactivate_user(manager, admin.id)


def test_permission_map(tmp_path: Path):
    repo = new_repo(tmp_path, "p.db")
    users = UserService(repo)
    admin = admin_user(repo)
    pharmacist = users.create_user(admin, "pia", "Pia", "pharmacist")
    clerk = users.create_user(admin, "dan", "Dan", "dataentry")

    assert users.can(admin, "void_bill")
    assert not users.can(pharmacist, "void_bill")
    assert users.can(pharmacist, "create_bill")
    assert not users.can(clerk, "create_bill")
    assert users.can(clerk, "import_excel")
    assert not users.can(admin, "launch_rockets")
    with pytest.raises(AuthorizationError, match="not allowed to perform 'view_reports'"):
        users.require_action(clerk, "view_reports")


def test_deactivation_guards(tmp_path: Path):
    repo = new_repo(tmp_path, "d.db")
    users = UserService(repo)
    admin = admin_user(repo)
    second_admin = users.create_user(admin, "boss2", "Second Admin", "admin")
    clerk = users.create_user(admin, "dan", "Dan", "dataentry")

    with pytest.raises(ValidationError, match="your own account"):
        users.deactivate_user(admin, admin.id)

    users.deactivate_user(admin, clerk.id)
    assert not users.get_user(clerk.id).is_active
    assert not users.can(users.get_user(clerk.id), "manage_medicines")

    users.deactivate_user(second_admin, admin.id)
    with pytest.raises(ValidationError, match="your own account"):
        users.deactivate_user(users.get_user(second_admin.id), second_admin.id)
    assert repo.count_active_admins() == 1
    with pytest.raises(NotFoundError):
        users.get_user(999)
