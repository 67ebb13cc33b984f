import sqlite3
from pathlib import Path

import pytest
from conftest import open_repo

from alem.application import build_container
from alem.domain.errors import StorageError, ValidationError
from alem.repositories.sqlite_repo import SqliteRepository
from alem.services.inventory_service import InventoryService


def test_fresh_store_is_migrated_to_latest(tmp_path: Path):
    repo = open_repo(tmp_path)

    assert repo.is_open
    assert repo.schema_version() == 3
    assert repo.integrity_check() == "ok"


def test_reopening_keeps_data_and_version(tmp_path: Path):
    repo = open_repo(tmp_path)
    pid = InventoryService(repo).create_product("Eggs", 4500, stock_pieces=12)
    repo.close()

    again = SqliteRepository(tmp_path / "alem.db").open()

    assert again.schema_version() == 3
    assert InventoryService(again).get_product(pid).stock_pieces == 12
    assert not list(tmp_path.glob("*.bak"))


def test_closed_store_refuses_operations(tmp_path: Path):
    repo = open_repo(tmp_path)
    inv = InventoryService(repo)
    repo.close()

    with pytest.raises(StorageError, match="closed"):
        inv.list_products()
    with pytest.raises(StorageError):
        inv.create_product("Eggs", 4500)


def test_repository_as_context_manager(tmp_path: Path):
    with SqliteRepository(tmp_path / "ctx.db") as repo:
        assert repo.is_open
    assert not repo.is_open


def test_malformed_row_surfaces_as_validation_error(tmp_path: Path):
    repo = open_repo(tmp_path)
    conn = sqlite3.connect(repo.db_path)
    conn.execute(
        """
        INSERT INTO products (name, price_per_dozen_cents, stock_pieces, created_at, updated_at)
        VALUES ('Broken', 100, 5, 'yesterday-ish', '2026-01-01 00:00:00')
        """
    )
    conn.commit()
    conn.close()

    with pytest.raises(ValidationError, match="Malformed product row"):
        InventoryService(repo).list_products()


def test_broken_database_file_is_a_storage_error(tmp_path: Path):
    db = tmp_path / "garbage.db"
    db.write_bytes(b"this is not a sqlite database" * 100)

    with pytest.raises(StorageError):
        SqliteRepository(db).open()

    assert db.read_bytes().startswith(b"this is not a sqlite database")


def test_container_wires_services_over_one_store(tmp_path: Path):
    with build_container(tmp_path / "app.db") as app:
        pid = app.inventory.create_product("Eggs", 4500, stock_pieces=24)
        sale_id = app.sales.create_sale([{"product_id": pid, "dozens": 1}], customer_name="Sara", is_credit=True)

        assert app.credit.receivables_cents() == 4500
        assert app.reporting.dashboard().metrics.transaction_count == 1
        assert app.sales.get_sale(sale_id).display_customer == "Sara"

    assert not app.repo.is_open
