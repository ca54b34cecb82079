from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from opos.domain.models import Sale


@dataclass(frozen=True)
class SalesSummary:
    pending_count: int
    pending_total: Decimal
    synced_count: int
    synced_total: Decimal
    totals_by_method: dict[str, Decimal]


class ReportingService:
    def __init__(self, reconciler):
        self.reconciler = reconciler

    def summary(self) -> SalesSummary:
        pending = self.reconciler.pending_sales()
        synced = self.reconciler.synced_sales()

        by_method: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for s in (*pending, *synced):
            by_method[s.payment_method.value] += s.total_amount

        return SalesSummary(
            pending_count=len(pending),
            pending_total=sum((s.total_amount for s in pending), Decimal("0")),
            synced_count=len(synced),
            synced_total=sum((s.total_amount for s in synced), Decimal("0")),
            totals_by_method=dict(by_method),
        )

    def export_sales_history_excel(self, path: str) -> None:
        wb = Workbook()

        def money(cell):
            cell.number_format = "#,##0.00"

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def set_widths(ws, widths: dict[str, int]):
            for col, w in widths.items():
                ws.column_dimensions[col].width = w

        def add_table(ws, name: str, end_row: int, end_col: int):
            ref = f"A1:{get_column_letter(end_col)}{end_row}"
            tab = Table(displayName=name, ref=ref)
            tab.tableStyleInfo = TableStyleInfo(
                name="TableStyleMedium9",
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(tab)

        summary = self.summary()

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = "Sales history"
        ws["A1"].font = Font(bold=True, size=14)

        rows = [
            ("Pending sales", summary.pending_count, "int"),
            ("Pending total", float(summary.pending_total), "money"),
            ("Synced sales", summary.synced_count, "int"),
            ("Synced total", float(summary.synced_total), "money"),
        ]
        rows.extend(
            (f"Total {method}", float(total), "money")
            for method, total in sorted(summary.totals_by_method.items())
        )

        start_row = 3
        for i, (label, val, kind) in enumerate(rows):
            r = start_row + i
            ws[f"A{r}"] = label
            ws[f"B{r}"] = val
            if kind == "money":
                money(ws[f"B{r}"])
        set_widths(ws, {"A": 24, "B": 18})

        # -------- 2) Pending / 3) Synced --------
        for title, table_name, sales in (
            ("Pending", "PendingSales", self.reconciler.pending_sales()),
            ("Synced", "SyncedSales", self.reconciler.synced_sales()),
        ):
            self._sales_sheet(wb, title, table_name, sales, money, bold_row, set_widths, add_table)

        wb.save(path)

    @staticmethod
    def _sales_sheet(wb, title, table_name, sales: list[Sale], money, bold_row, set_widths, add_table) -> None:
        ws = wb.create_sheet(title)
        ws.append([
            "Sale ID", "Created at", "Payment", "Customer",
            "Product ID", "Product Name", "Qty", "Unit Price", "Line Total",
        ])
        bold_row(ws, 1)

        out_row = 2
        for s in sales:
            customer = (s.customer_info.name or s.customer_info.email or "") if s.customer_info else ""
            for it in s.items:
                ws.append([
                    s.id, s.created_at, s.payment_method.value, customer,
                    it.id, it.name, it.quantity, float(it.price), float(it.line_total),
                ])
                money(ws[f"H{out_row}"])
                money(ws[f"I{out_row}"])
                out_row += 1

        ws.freeze_panes = "A2"
        set_widths(ws, {"A": 34, "B": 26, "C": 10, "D": 22, "E": 10, "F": 28, "G": 6, "H": 12, "I": 12})
        if ws.max_row >= 2:
            add_table(ws, table_name, ws.max_row, 9)
