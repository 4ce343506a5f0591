"""
CSV exporter for NDOP occurrence tables.

Re-encodes the portal's cp1250/semicolon export as UTF-8 CSV that any
spreadsheet or data tool can open.
"""

from __future__ import annotations

import csv
from pathlib import Path

import pandas as pd

from ndop_downloader.utils import get_logger


class CSVExporter:
    """
    Export an occurrence table to CSV format.

    Example:
        exporter = CSVExporter()
        exporter.export(table, "output.csv")
    """

    def __init__(self, delimiter: str = ",", encoding: str = "utf-8"):
        """
        Initialize the exporter.

        Args:
            delimiter: Field delimiter (default: comma)
            encoding: Output file encoding (default: utf-8)
        """
        self.delimiter = delimiter
        self.encoding = encoding
        self.logger = get_logger()

    def export(
        self,
        table: pd.DataFrame,
        output_path: str | Path,
        **kwargs,  # Accept extra args for compatibility
    ) -> Path:
        """
        Export a table to a CSV file.

        Args:
            table: Occurrence table
            output_path: Output file path

        Returns:
            Path to the created file
        """
        output_path = Path(output_path)

        if output_path.suffix.lower() != ".csv":
            output_path = output_path.with_suffix(".csv")

        self.logger.info(f"Exporting {len(table):,} records to CSV...")

        table.to_csv(
            output_path,
            index=False,
            encoding=self.encoding,
            sep=self.delimiter,
            quoting=csv.QUOTE_MINIMAL,
        )

        self.logger.info(f"CSV file saved: {output_path}")
        return output_path
