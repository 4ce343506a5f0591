"""
NDOP Downloader - Download species occurrence records from the NDOP portal.

This package retrieves records from the Czech nature conservation portal
(portal.nature.cz) through its search/export interface and assembles them
into a single pandas DataFrame, optionally together with the raw
localization layers.

Features:
- Search by species, family or predefined taxon group
- Paginated, session-bound export of all matching records
- Raw point/line/polygon localizations as GeoDataFrames
- Export to CSV, Excel, or GeoJSON formats

Example CLI usage:
    ndop-download --species "Mantis religiosa" --output mantis.csv
    ndop-download --family Mantidae --mode both

Example Python usage:
    from ndop_downloader import download

    table = download("Mantis religiosa", username="user", password="secret")
"""

__version__ = "1.0.0"

from ndop_downloader.api import (
    CountMismatchWarning,
    DownloadCancelledError,
    LocationError,
    NDOPClient,
    NDOPError,
    PageParseError,
    PageRequestError,
    SessionError,
)
from ndop_downloader.columns import DEFAULT_COLUMNS, ExportColumnSpec
from ndop_downloader.config import Config
from ndop_downloader.engine import ExportEngine, Mode, ProgressEvent, download
from ndop_downloader.pagination import PAGE_SIZE, Page, plan_pages
from ndop_downloader.search import SearchFilter, SessionDescriptor

__all__ = [
    "download",
    "ExportEngine",
    "Mode",
    "ProgressEvent",
    "NDOPClient",
    "NDOPError",
    "SessionError",
    "PageRequestError",
    "PageParseError",
    "LocationError",
    "DownloadCancelledError",
    "CountMismatchWarning",
    "ExportColumnSpec",
    "DEFAULT_COLUMNS",
    "SearchFilter",
    "SessionDescriptor",
    "Page",
    "PAGE_SIZE",
    "plan_pages",
    "Config",
    "__version__",
]
