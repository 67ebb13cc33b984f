from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from alem.config import AppSettings
from alem.domain.errors import ValidationError
from alem.domain.models import Product, SaleItemView, SaleView, StockStatus
from alem.domain.quantities import div_round_half_up, line_total_cents

PERIODS = ("day", "week", "month", "year")
_ONE_TICK = timedelta(microseconds=1)


@dataclass(frozen=True)
class SalesMetrics:
    transaction_count: int
    total_sales_cents: int
    profit_cents: int
    margin_pct: float
    receivables_cents: int
    average_sale_cents: int
    customer_count: int


@dataclass(frozen=True)
class Alert:
    kind: str
    message: str
    product_id: Optional[int] = None


@dataclass(frozen=True)
class Dashboard:
    metrics: SalesMetrics
    alerts: list[Alert]
    recent_sales: list[SaleView]


@dataclass(frozen=True)
class Report:
    period: str
    start: datetime
    end: datetime
    sales: list[SaleView]
    metrics: SalesMetrics


# ---------- Pure functions ----------
def date_range(period: str, now: datetime) -> tuple[datetime, datetime]:
    """Inclusive [start, end] of the day/week/month/year containing `now`. Weeks start on Sunday."""
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "day":
        start = day_start
        next_start = start + timedelta(days=1)
    elif period == "week":
        start = day_start - timedelta(days=(now.weekday() + 1) % 7)
        next_start = start + timedelta(days=7)
    elif period == "month":
        start = day_start.replace(day=1)
        next_start = start.replace(year=start.year + 1, month=1) if start.month == 12 else start.replace(month=start.month + 1)
    elif period == "year":
        start = day_start.replace(month=1, day=1)
        next_start = start.replace(year=start.year + 1)
    else:
        raise ValidationError(f"Unknown period: {period!r}. Use one of {', '.join(PERIODS)}.")
    return start, next_start - _ONE_TICK


def filter_sales(
    sales: Iterable[SaleView],
    start: datetime,
    end: datetime,
    customer_query: Optional[str] = None,
) -> list[SaleView]:
    q = (customer_query or "").strip().lower()
    return [
        s for s in sales
        if start <= s.sale.created_at <= end and (not q or q in s.display_customer.lower())
    ]


def line_cost_cents(line: SaleItemView) -> int:
    # current product cost, not the cost at sale time
    product = line.product
    if product is None or product.cost_per_dozen_cents is None:
        return 0
    return line_total_cents(line.item.pieces, product.pack_size, product.cost_per_dozen_cents)


def line_profit_cents(line: SaleItemView) -> int:
    return line.item.line_total_cents - line_cost_cents(line)


def compute_metrics(sales: Sequence[SaleView]) -> SalesMetrics:
    count = len(sales)
    total = sum(s.sale.total_cents for s in sales)
    profit = sum(line_profit_cents(line) for s in sales for line in s.items)
    receivables = sum(s.balance_cents for s in sales if s.sale.is_credit)

    # explicit guards: an empty window reports zeros, never NaN or ZeroDivisionError
    average = div_round_half_up(total, count) if count else 0
    margin = (profit * 100.0 / total) if total else 0.0

    return SalesMetrics(
        transaction_count=count,
        total_sales_cents=total,
        profit_cents=profit,
        margin_pct=margin,
        receivables_cents=receivables,
        average_sale_cents=average,
        customer_count=len({s.display_customer for s in sales}),
    )


def stock_alerts(products: Iterable[Product], sales: Iterable[SaleView]) -> list[Alert]:
    alerts: list[Alert] = []
    for p in products:
        status = p.stock_status
        if status is StockStatus.OUT:
            alerts.append(Alert("out_of_stock", f"{p.name} out of stock", p.id))
        elif status is StockStatus.LOW:
            alerts.append(Alert("low_stock", f"{p.name} running low ({p.stock_pieces} pieces left)", p.id))

    overdue = sum(1 for s in sales if s.sale.is_credit and s.sale.paid_cents < s.sale.total_cents)
    if overdue > 0:
        alerts.append(Alert("overdue_payments", f"{overdue} overdue payments due today"))
    return alerts


# ---------- Service ----------
class ReportingService:
    def __init__(
        self,
        sales_service,
        inventory_service,
        settings: AppSettings | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.sales = sales_service
        self.inventory = inventory_service
        self.settings = settings or AppSettings()
        self.clock = clock

    def dashboard(self) -> Dashboard:
        sales = self.sales.list_sales_with_details()
        products = self.inventory.list_products()
        return Dashboard(
            metrics=compute_metrics(sales),
            alerts=stock_alerts(products, sales),
            recent_sales=sales[:3],
        )

    def report(self, period: str, customer_query: Optional[str] = None, now: Optional[datetime] = None) -> Report:
        if customer_query is not None and not isinstance(customer_query, str):
            raise ValidationError("Customer filter must be text.")
        start, end = date_range(period, now or self.clock())
        sales = filter_sales(self.sales.list_sales_with_details(), start, end, customer_query)
        return Report(period=period, start=start, end=end, sales=sales, metrics=compute_metrics(sales))

    def export_sales_report_excel(
        self,
        path: Path | str,
        period: str,
        customer_query: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Path:
        report = self.report(period, customer_query, now)
        m = report.metrics
        wb = Workbook()

        def money(cell):
            cell.number_format = "#,##0.00"

        def pct(cell):
            cell.number_format = "0.00%"

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def set_widths(ws, widths: dict[str, int]):
            for col, w in widths.items():
                ws.column_dimensions[col].width = w

        def add_table(ws, name: str, start_row: int, start_col: int, end_row: int, end_col: int):
            ref = f"{get_column_letter(start_col)}{start_row}:{get_column_letter(end_col)}{end_row}"
            tab = Table(displayName=name, ref=ref)
            tab.tableStyleInfo = TableStyleInfo(
                name="TableStyleMedium9",
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(tab)

        cur = self.settings.currency

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = "Summary"
        ws["A1"].font = Font(bold=True, size=14)

        ws["A3"] = "Window"
        ws["B3"] = f"{report.start:%Y-%m-%d %H:%M:%S}  ->  {report.end:%Y-%m-%d %H:%M:%S}"
        ws["A4"] = "Customer filter"
        ws["B4"] = customer_query or "(all)"

        rows = [
            ("Sales count", m.transaction_count, "int"),
            (f"Sales {cur}", m.total_sales_cents / 100, "money"),
            (f"Profit {cur}", m.profit_cents / 100, "money"),
            ("Margin", m.margin_pct / 100, "pct"),
            (f"Average sale {cur}", m.average_sale_cents / 100, "money"),
            (f"Receivables {cur}", m.receivables_cents / 100, "money"),
            ("Customers", m.customer_count, "int"),
        ]

        start_row = 6
        for i, (label, val, kind) in enumerate(rows):
            r = start_row + i
            ws[f"A{r}"] = label
            ws[f"B{r}"] = val
            if kind == "money":
                money(ws[f"B{r}"])
            elif kind == "pct":
                pct(ws[f"B{r}"])

        set_widths(ws, {"A": 24, "B": 46})

        # -------- 2) Sales Detail --------
        ws2 = wb.create_sheet("Sales Detail")
        ws2.append([
            "Sale ID", "Datetime", "Customer", "Credit",
            "Product", "Dozens", "Pieces",
            f"Line Total {cur}", f"Line Cost {cur}", f"Line Profit {cur}", "Margin %",
        ])
        bold_row(ws2, 1)

        out_row = 2
        for s in report.sales:
            for line in s.items:
                total = line.item.line_total_cents
                profit = line_profit_cents(line)
                ws2.append([
                    s.id, f"{s.sale.created_at:%Y-%m-%d %H:%M:%S}", s.display_customer,
                    "yes" if s.sale.is_credit else "no",
                    line.product.name if line.product else f"#{line.item.product_id}",
                    line.item.dozens, line.item.pieces,
                    total / 100, line_cost_cents(line) / 100, profit / 100,
                    (profit / total) if total else 0.0,
                ])
                for col in "HIJ":
                    money(ws2[f"{col}{out_row}"])
                pct(ws2[f"K{out_row}"])
                out_row += 1

        ws2.freeze_panes = "A2"
        set_widths(ws2, {
            "A": 10, "B": 22, "C": 24, "D": 8,
            "E": 30, "F": 8, "G": 8,
            "H": 16, "I": 16, "J": 16, "K": 10,
        })
        if ws2.max_row >= 2:
            add_table(ws2, "SalesDetail", 1, 1, ws2.max_row, 11)

        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        wb.save(target)
        return target
