"""
GeoJSON exporter for NDOP occurrence tables.

Exports records as a GeoJSON FeatureCollection of points, suitable for
QGIS, ArcGIS or any other GIS software. Coordinates stay in S-JTSK
(EPSG:5514), as delivered by the portal; for records whose source geometry
is a line or polygon the point is its centroid.
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Any

import geojson
import pandas as pd
from geojson import Feature, FeatureCollection, Point

from ndop_downloader.utils import get_logger

# Coordinate column names, as exported by the portal or as column identifiers
X_COLUMNS = ("X", "CXLOKAL_X")
Y_COLUMNS = ("Y", "CXLOKAL_Y")
ID_COLUMNS = ("ID_NALEZ", "ID_ND_NALEZ")

SJTSK_CRS = {
    "type": "name",
    "properties": {"name": "urn:ogc:def:crs:EPSG::5514"},
}


def find_column(table: pd.DataFrame, candidates: tuple[str, ...]) -> str | None:
    """Return the first candidate column present in the table."""
    for name in candidates:
        if name in table.columns:
            return name
    return None


def find_coordinate_columns(table: pd.DataFrame) -> tuple[str | None, str | None]:
    """Return the (x, y) coordinate column names, or None where absent."""
    return find_column(table, X_COLUMNS), find_column(table, Y_COLUMNS)


def _to_float(value: Any) -> float | None:
    """Convert a cell to float, treating blanks and junk as missing."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", ".")
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def _clean_value(value: Any) -> Any:
    """Make a cell JSON-serializable."""
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if hasattr(value, "item"):  # numpy scalars
        return value.item()
    return value


class GeoJSONExporter:
    """
    Export an occurrence table to GeoJSON format.

    Creates a FeatureCollection with Point geometry for each record.
    Records without coordinates are skipped.

    Example:
        exporter = GeoJSONExporter()
        exporter.export(table, "output.geojson")
    """

    def __init__(self, include_all_properties: bool = True):
        """
        Initialize the exporter.

        Args:
            include_all_properties: Include all record fields in properties
        """
        self.include_all_properties = include_all_properties
        self.logger = get_logger()

    def export(
        self,
        table: pd.DataFrame,
        output_path: str | Path,
        **kwargs,  # Accept extra args for compatibility
    ) -> Path:
        """
        Export a table to a GeoJSON file.

        Args:
            table: Occurrence table
            output_path: Output file path

        Returns:
            Path to the created file

        Raises:
            ValueError: If the table has no coordinate columns
        """
        output_path = Path(output_path)

        if output_path.suffix.lower() not in (".geojson", ".json"):
            output_path = output_path.with_suffix(".geojson")

        self.logger.info(f"Exporting {len(table):,} records to GeoJSON...")

        feature_collection = self.create_feature_collection(table)

        with open(output_path, "w", encoding="utf-8") as f:
            f.write(geojson.dumps(feature_collection, indent=2, ensure_ascii=False))

        self.logger.info(f"GeoJSON file saved: {output_path}")
        return output_path

    def create_feature_collection(self, table: pd.DataFrame) -> FeatureCollection:
        """
        Build a FeatureCollection from the table rows.

        Args:
            table: Occurrence table

        Returns:
            GeoJSON FeatureCollection in S-JTSK
        """
        x_column, y_column = find_coordinate_columns(table)
        if x_column is None or y_column is None:
            raise ValueError("Table has no X/Y coordinate columns")

        id_column = find_column(table, ID_COLUMNS)
        features = []
        skipped = 0

        for row in table.to_dict(orient="records"):
            x = _to_float(row.get(x_column))
            y = _to_float(row.get(y_column))

            if x is None or y is None:
                skipped += 1
                continue

            feature_id = _clean_value(row.get(id_column)) if id_column else None

            features.append(
                Feature(
                    geometry=Point((x, y)),
                    properties=self._get_properties(row, x_column, y_column),
                    id=str(feature_id) if feature_id is not None else None,
                )
            )

        if skipped > 0:
            self.logger.warning(f"Skipped {skipped} records without coordinates")

        return FeatureCollection(features, crs=SJTSK_CRS)

    def _get_properties(
        self, row: dict[str, Any], x_column: str, y_column: str
    ) -> dict[str, Any]:
        """Properties for one feature, without the coordinate columns."""
        if self.include_all_properties:
            return {
                str(key): _clean_value(value)
                for key, value in row.items()
                if key not in (x_column, y_column)
            }

        # Minimal properties
        minimal = ("ID_NALEZ", "ID_ND_NALEZ", "DRUH", "CXTAXON_NAME", "DATUM_OD", "CXAKCE_DATI_OD")
        return {key: _clean_value(row[key]) for key in minimal if key in row}
