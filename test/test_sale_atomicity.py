import sqlite3
from pathlib import Path

import pytest
from conftest import open_repo

from alem.domain.errors import StorageError
from alem.repositories.unit_of_work import SqliteUnitOfWork
from alem.services.inventory_service import InventoryService
from alem.services.sales_service import SalesService


class FailingStockUnitOfWork(SqliteUnitOfWork):
    """Blows up on the second stock decrement, after the header and items are written."""

    def __init__(self, repo):
        super().__init__(repo)
        self.calls = 0

    def decrement_stock(self, product_id, pieces, now):
        self.calls += 1
        if self.calls == 2:
            raise RuntimeError("disk unplugged")
        return super().decrement_stock(product_id, pieces, now)


class FailingDeleteUnitOfWork(SqliteUnitOfWork):
    def delete_sale(self, sale_id):
        raise RuntimeError("disk unplugged")


def _count(repo, table: str) -> int:
    conn = sqlite3.connect(repo.db_path)
    try:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
    finally:
        conn.close()


def test_failure_mid_sale_rolls_back_everything(tmp_path: Path):
    repo = open_repo(tmp_path, "atomic.db")
    inv = InventoryService(repo)
    a = inv.create_product("A", 1000, stock_pieces=48)
    b = inv.create_product("B", 500, stock_pieces=48)
    sales = SalesService(repo, uow_factory=lambda: FailingStockUnitOfWork(repo))

    with pytest.raises(RuntimeError):
        sales.create_sale([{"product_id": a, "dozens": 1}, {"product_id": b, "dozens": 1}])

    assert inv.get_product(a).stock_pieces == 48
    assert inv.get_product(b).stock_pieces == 48
    assert _count(repo, "sales") == 0
    assert _count(repo, "sale_items") == 0


def test_failure_mid_reversal_keeps_sale_and_stock(tmp_path: Path):
    repo = open_repo(tmp_path, "atomic.db")
    inv = InventoryService(repo)
    pid = inv.create_product("Eggs", 4500, stock_pieces=120)
    sale_id = SalesService(repo).create_sale([{"product_id": pid, "dozens": 3}])
    failing = SalesService(repo, uow_factory=lambda: FailingDeleteUnitOfWork(repo))

    with pytest.raises(RuntimeError):
        failing.delete_sale_and_revert_stock(sale_id)

    assert inv.get_product(pid).stock_pieces == 84
    assert SalesService(repo).get_sale(sale_id).sale.total_cents == 13500


def test_deleting_sale_removes_its_items(tmp_path: Path):
    repo = open_repo(tmp_path, "atomic.db")
    inv = InventoryService(repo)
    pid = inv.create_product("Eggs", 4500, stock_pieces=120)
    sales = SalesService(repo)
    keep = sales.create_sale([{"product_id": pid, "dozens": 1}])
    drop = sales.create_sale([{"product_id": pid, "dozens": 1}, {"product_id": pid, "pieces": 2}])

    sales.delete_sale_and_revert_stock(drop)

    assert _count(repo, "sale_items") == 1
    assert [s.id for s in sales.list_sales_with_details()] == [keep]


def test_unit_of_work_outside_block_is_an_error(tmp_path: Path):
    repo = open_repo(tmp_path, "atomic.db")
    uow = SqliteUnitOfWork(repo)

    with pytest.raises(StorageError):
        uow.get_product(1)
