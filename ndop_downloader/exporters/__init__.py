"""
Export modules for NDOP occurrence tables.

This package provides exporters for various file formats:
- CSV (.csv) for universal compatibility
- Excel (.xlsx) with conditional formatting
- GeoJSON (.geojson) point features for GIS applications
"""

from ndop_downloader.exporters.excel import ExcelExporter
from ndop_downloader.exporters.csv import CSVExporter
from ndop_downloader.exporters.geojson import GeoJSONExporter

__all__ = ["ExcelExporter", "CSVExporter", "GeoJSONExporter", "get_exporter"]

EXTENSIONS = {"csv": ".csv", "excel": ".xlsx", "geojson": ".geojson"}


def get_exporter(format_name: str):
    """
    Get the appropriate exporter for a format name.

    Args:
        format_name: Format name (csv, excel, geojson)

    Returns:
        Exporter class

    Raises:
        ValueError: If format is not supported
    """
    exporters = {
        "excel": ExcelExporter,
        "xlsx": ExcelExporter,
        "csv": CSVExporter,
        "geojson": GeoJSONExporter,
        "json": GeoJSONExporter,
    }

    format_lower = format_name.lower()
    if format_lower not in exporters:
        supported = ", ".join(sorted(set(exporters.keys())))
        raise ValueError(
            f"Unsupported format: {format_name}. Supported formats: {supported}"
        )

    return exporters[format_lower]
