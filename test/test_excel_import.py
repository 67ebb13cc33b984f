from pathlib import Path

import pytest
from conftest import open_repo
from openpyxl import Workbook

from alem.domain.errors import ValidationError
from alem.services.excel_service import ExcelService
from alem.services.inventory_service import InventoryService

HEADERS = ["name", "price_per_dozen", "cost_per_dozen", "stock_pieces", "low_stock_threshold"]


def _workbook(path: Path, rows, headers=HEADERS) -> Path:
    wb = Workbook()
    ws = wb.active
    ws.append(headers)
    for row in rows:
        ws.append(row)
    wb.save(path)
    return path


def _setup(tmp_path: Path):
    inv = InventoryService(open_repo(tmp_path, "import.db"))
    return inv, ExcelService(inv)


def test_import_creates_new_products_through_restock(tmp_path: Path):
    inv, excel = _setup(tmp_path)
    path = _workbook(tmp_path / "in.xlsx", [
        ["Eggs", 45, 30, 120, 24],
        ["Milk", "20.5", None, None, None],
    ])

    ok, skipped = excel.import_products_excel(path)

    assert (ok, skipped) == (2, 0)
    eggs = inv.find_product("eggs")
    assert eggs.price_per_dozen_cents == 4500
    assert eggs.cost_per_dozen_cents == 3000
    assert eggs.stock_pieces == 120
    assert eggs.low_stock_threshold == 24
    milk = inv.find_product("Milk")
    assert milk.price_per_dozen_cents == 2050
    assert milk.stock_pieces == 0
    assert [p.supplier for p in inv.list_purchases()] == ["EXCEL_IMPORT"]


def test_import_updates_existing_product_and_adds_stock(tmp_path: Path):
    inv, excel = _setup(tmp_path)
    pid = inv.create_product("Eggs", 4000, 3000, stock_pieces=24, low_stock_threshold=12)
    path = _workbook(tmp_path / "in.xlsx", [["EGGS", 48, 36, 12, None]])

    ok, skipped = excel.import_products_excel(path)

    assert (ok, skipped) == (1, 0)
    p = inv.get_product(pid)
    assert p.name == "EGGS"
    assert p.price_per_dozen_cents == 4800
    assert p.stock_pieces == 36
    assert p.cost_per_dozen_cents == 3200
    assert p.low_stock_threshold == 12


def test_import_skips_bad_rows_and_keeps_going(tmp_path: Path):
    inv, excel = _setup(tmp_path)
    path = _workbook(tmp_path / "in.xlsx", [
        [None, 10, None, None, None],
        ["Free", 0, None, None, None],
        ["Weird", "abc", None, None, None],
        ["Negative", 10, None, -5, None],
        ["Bread", 10, 6, 12, 6],
    ])

    ok, skipped = excel.import_products_excel(path)

    assert (ok, skipped) == (1, 4)
    assert [p.name for p in inv.list_products()] == ["Bread"]


def test_import_requires_all_headers(tmp_path: Path):
    _inv, excel = _setup(tmp_path)
    path = _workbook(tmp_path / "in.xlsx", [["Eggs", 45]], headers=["name", "price_per_dozen"])

    with pytest.raises(ValidationError, match="Missing column header: cost_per_dozen"):
        excel.import_products_excel(path)


def test_headers_are_matched_case_insensitively(tmp_path: Path):
    inv, excel = _setup(tmp_path)
    headers = [" Name", "PRICE_PER_DOZEN", "Cost_Per_Dozen", "stock_pieces", "low_stock_threshold"]
    path = _workbook(tmp_path / "in.xlsx", [["Eggs", 45, None, 6, None]], headers=headers)

    assert excel.import_products_excel(path) == (1, 0)
    assert inv.find_product("Eggs").stock_pieces == 6
