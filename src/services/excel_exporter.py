"""Export a test's aggregated results to a multi-sheet Excel workbook."""
import io
import logging
from pathlib import Path
from typing import Any, Optional

from openpyxl import Workbook
from openpyxl.formatting.rule import CellIsRule
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from config import SKIN_LABELS
from src.services.insight_models import DRIVER_DIMENSIONS, VARIANTS, AggregationResult
from src.services.utils import sanitize_filename

logger = logging.getLogger(__name__)

# Style constants
_HEADER_FONT = Font(bold=True, size=11)
_HEADER_FILL = PatternFill(start_color="D9E1F2", end_color="D9E1F2", fill_type="solid")
_GREEN_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
_YELLOW_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
_RED_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
_GREEN_FONT = Font(color="006100")
_YELLOW_FONT = Font(color="9C5700")
_RED_FONT = Font(color="9C0006")
_BOLD_FONT = Font(bold=True)

# Same one-decimal rounding the PDF display strings use
_ONE_DECIMAL = "0.0"

SUMMARY_SHEET = "Summary Results"
DRIVERS_SHEET = "Purchase Drivers"
COMPETITIVE_SHEET = "Competitive Ratings"


def comments_sheet_name(variant: str) -> str:
    return f"Comments Variant {variant.upper()}"


def export_filename(skin: str, test_name: str) -> str:
    """``Amazon_<name>_export.xlsx`` or ``Walmart_<name>_export.xlsx``."""
    label = SKIN_LABELS.get(skin, SKIN_LABELS["amazon"])
    return f"{label}_{sanitize_filename(test_name)}_export.xlsx"


class ExcelExporter:
    """Export an AggregationResult to a formatted .xlsx workbook."""

    def build_workbook(self, result: AggregationResult) -> Workbook:
        """Create the workbook, leaving out any sheet that would be empty."""
        wb = Workbook()
        default = wb.active

        if result.summary:
            self._build_summary_sheet(wb.create_sheet(SUMMARY_SHEET), result)

        if result.purchase_drivers:
            self._build_drivers_sheet(wb.create_sheet(DRIVERS_SHEET), result)

        if result.competitive_rows():
            self._build_competitive_sheet(wb.create_sheet(COMPETITIVE_SHEET), result)

        for variant in VARIANTS:
            comments = result.comments_for(variant)
            if comments:
                self._build_comments_sheet(wb.create_sheet(comments_sheet_name(variant)), comments)

        # openpyxl refuses to save a workbook with no sheets at all
        if len(wb.sheetnames) > 1:
            wb.remove(default)
        else:
            default.title = SUMMARY_SHEET
            default.cell(row=1, column=1, value="No results have been collected for this test yet.")
        return wb

    def export(self, result: AggregationResult, output_path: str) -> str:
        """Export the test's results to an Excel workbook.

        Parameters
        ----------
        result : AggregationResult
            The reconciled results, as produced by the aggregation service.
        output_path : str
            Destination file path for the .xlsx file.

        Returns
        -------
        str  The absolute path of the created file.
        """
        wb = self.build_workbook(result)
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        wb.save(output_path)
        logger.info("Excel exported to %s", output_path)
        return str(Path(output_path).resolve())

    def export_bytes(self, result: AggregationResult) -> bytes:
        buf = io.BytesIO()
        self.build_workbook(result).save(buf)
        return buf.getvalue()

    # ------------------------------------------------------------------
    # Sheet builders
    # ------------------------------------------------------------------

    def _build_summary_sheet(self, ws: Any, result: AggregationResult) -> None:
        headers = ["Variant", "Share of Clicks", "Share of Buy", "Value Score", "Win"]
        self._write_header_row(ws, headers)

        for row_idx, row in enumerate(result.summary, start=2):
            ws.cell(row=row_idx, column=1, value=row.label)
            self._write_number(ws, row_idx, 2, row.share_of_clicks)
            self._write_number(ws, row_idx, 3, row.share_of_buy)
            self._write_number(ws, row_idx, 4, row.value_score)
            win_cell = ws.cell(row=row_idx, column=5, value=row.win_display)
            if row.win:
                win_cell.fill = _GREEN_FILL
                win_cell.font = _GREEN_FONT

        ws.freeze_panes = "A2"
        self._auto_column_width(ws)

    def _build_drivers_sheet(self, ws: Any, result: AggregationResult) -> None:
        labels = [label for _, label in DRIVER_DIMENSIONS]
        headers = ["Variant", "Product"] + labels + ["Responses", "Low Confidence"]
        self._write_header_row(ws, headers)

        for row_idx, row in enumerate(result.purchase_drivers, start=2):
            product = result.test.variants.get(row.variant)
            ws.cell(row=row_idx, column=1, value=row.variant.upper())
            ws.cell(row=row_idx, column=2, value=product.title if product else "")
            for offset, score in enumerate(row.scores()):
                self._write_number(ws, row_idx, 3 + offset, score)
            count_col = 3 + len(labels)
            ws.cell(row=row_idx, column=count_col, value=row.count)
            flag = ws.cell(row=row_idx, column=count_col + 1, value="Yes" if row.low_confidence else "No")
            if row.low_confidence:
                flag.fill = _YELLOW_FILL
                flag.font = _YELLOW_FONT

        ws.freeze_panes = "C2"
        self._auto_column_width(ws)

    def _build_competitive_sheet(self, ws: Any, result: AggregationResult) -> None:
        labels = [label for _, label in DRIVER_DIMENSIONS]
        headers = ["Variant", "Competitor", "Price", "Selections", "Share of Buy"] + labels
        self._write_header_row(ws, headers)

        row_idx = 2
        for variant in VARIANTS:
            group = result.competitive.get(variant)
            if group is None or not group.rows:
                continue
            for row in group.rows:
                ws.cell(row=row_idx, column=1, value=variant.upper())
                ws.cell(row=row_idx, column=2, value=row.title)
                price = ws.cell(row=row_idx, column=3, value=row.price)
                price.number_format = '"$"#,##0.00'
                ws.cell(row=row_idx, column=4, value=row.count)
                self._write_number(ws, row_idx, 5, row.share_of_buy)
                for offset, score in enumerate(row.scores()):
                    self._write_number(ws, row_idx, 6 + offset, score)
                row_idx += 1

            ws.cell(row=row_idx, column=1, value=variant.upper()).font = _BOLD_FONT
            ws.cell(row=row_idx, column=2, value="Average").font = _BOLD_FONT
            for offset, score in enumerate(group.average_scores()):
                self._write_number(ws, row_idx, 6 + offset, score).font = _BOLD_FONT
            row_idx += 1

        last_col = get_column_letter(5 + len(labels))
        self._add_rating_formatting(ws, f"F2:{last_col}{max(row_idx - 1, 2)}")
        ws.freeze_panes = "C2"
        self._auto_column_width(ws)

    def _build_comments_sheet(self, ws: Any, comments: list) -> None:
        headers = ["Comment Type", "Product", "Comment", "Age", "Sex", "Country"]
        self._write_header_row(ws, headers)

        for row_idx, comment in enumerate(comments, start=2):
            ws.cell(row=row_idx, column=1, value=comment.comment_type)
            ws.cell(row=row_idx, column=2, value=comment.product_title)
            text = ws.cell(row=row_idx, column=3, value=comment.comment)
            text.alignment = Alignment(wrap_text=True, vertical="top")
            ws.cell(row=row_idx, column=4, value=comment.age)
            ws.cell(row=row_idx, column=5, value=comment.sex)
            ws.cell(row=row_idx, column=6, value=comment.country)

        self._auto_column_width(ws, max_width=80)

    # ------------------------------------------------------------------
    # Formatting helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _write_number(ws: Any, row: int, column: int, value: Optional[float]) -> Any:
        cell = ws.cell(row=row, column=column, value=None if value is None else round(value, 1))
        cell.number_format = _ONE_DECIMAL
        return cell

    @staticmethod
    def _write_header_row(ws: Any, headers: list[str]) -> None:
        for col_idx, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col_idx, value=header)
            cell.font = _HEADER_FONT
            cell.fill = _HEADER_FILL
            cell.alignment = Alignment(horizontal="center")

    @staticmethod
    def _auto_column_width(ws: Any, min_width: int = 10, max_width: int = 50) -> None:
        for col_cells in ws.columns:
            max_len = min_width
            col_letter = get_column_letter(col_cells[0].column)
            for cell in col_cells:
                val = str(cell.value) if cell.value is not None else ""
                max_len = max(max_len, min(len(val) + 2, max_width))
            ws.column_dimensions[col_letter].width = max_len

    @staticmethod
    def _add_rating_formatting(ws: Any, cell_range: str) -> None:
        """Colour competitor ratings by sign: they are deltas against the tested item."""
        for operator, fill, font in (
            ("greaterThan", _GREEN_FILL, _GREEN_FONT),
            ("lessThan", _RED_FILL, _RED_FONT),
            ("equal", _YELLOW_FILL, _YELLOW_FONT),
        ):
            ws.conditional_formatting.add(
                cell_range,
                CellIsRule(operator=operator, formula=["0"], fill=fill, font=font),
            )
