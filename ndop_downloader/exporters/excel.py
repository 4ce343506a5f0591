"""
Excel exporter with conditional formatting.

Exports occurrence tables to Excel format with:
- Yellow highlighting for records without coordinates
- Proper column widths
- Frozen header row
"""

from __future__ import annotations

from pathlib import Path

import openpyxl
import pandas as pd
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from ndop_downloader.exporters.geojson import find_coordinate_columns
from ndop_downloader.utils import get_logger


class ExcelExporter:
    """
    Export an occurrence table to Excel format.

    Features:
    - Conditional formatting (yellow for records without coordinates)
    - Auto-adjusted column widths
    - Frozen header row

    Example:
        exporter = ExcelExporter()
        exporter.export(table, "output.xlsx", highlight_missing=True)
    """

    YELLOW_FILL = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")

    HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")

    HEADER_FONT = Font(color="FFFFFF", bold=True)

    def __init__(self):
        """Initialize the exporter."""
        self.logger = get_logger()

    def export(
        self,
        table: pd.DataFrame,
        output_path: str | Path,
        highlight_missing: bool = True,
        **kwargs,  # Accept extra args for compatibility
    ) -> Path:
        """
        Export a table to an Excel file.

        Args:
            table: Occurrence table
            output_path: Output file path
            highlight_missing: Highlight rows without coordinates

        Returns:
            Path to the created file
        """
        output_path = Path(output_path)

        if output_path.suffix.lower() != ".xlsx":
            output_path = output_path.with_suffix(".xlsx")

        self.logger.info(f"Exporting {len(table):,} records to Excel...")

        if not highlight_missing:
            table.to_excel(output_path, index=False, engine="openpyxl")
            self.logger.info(f"Excel file saved: {output_path}")
            return output_path

        self._export_with_styling(table, output_path)
        return output_path

    def _export_with_styling(self, table: pd.DataFrame, output_path: Path) -> None:
        """Export with header styling and highlighted rows."""
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "NDOP Data"

        for col_idx, column in enumerate(table.columns, start=1):
            cell = ws.cell(row=1, column=col_idx, value=str(column))
            cell.fill = self.HEADER_FILL
            cell.font = self.HEADER_FONT
            cell.alignment = Alignment(horizontal="center")

        coordinate_idx = {
            list(table.columns).index(name)
            for name in find_coordinate_columns(table)
            if name is not None
        }

        for row_idx, row in enumerate(table.itertuples(index=False), start=2):
            missing_coordinates = False

            for col_idx, value in enumerate(row, start=1):
                if pd.isna(value):
                    value = None
                ws.cell(row=row_idx, column=col_idx, value=value)

                if col_idx - 1 in coordinate_idx and value in (None, ""):
                    missing_coordinates = True

            if missing_coordinates:
                for col_idx in range(1, len(row) + 1):
                    ws.cell(row=row_idx, column=col_idx).fill = self.YELLOW_FILL

        # Auto-adjust column widths from the first 100 rows
        sample = table.head(100)
        for col_idx, column in enumerate(table.columns, start=1):
            max_length = len(str(column))
            for value in sample.iloc[:, col_idx - 1]:
                if not pd.isna(value):
                    max_length = max(max_length, len(str(value)))

            ws.column_dimensions[get_column_letter(col_idx)].width = min(max_length + 2, 50)

        ws.freeze_panes = "A2"

        wb.save(output_path)
        self.logger.info(f"Excel file saved with styling: {output_path}")
