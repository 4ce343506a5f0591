"""
Paginated export engine.

Turns an open search session into one DataFrame: plans fixed-size pages,
sends one authenticated export request per page, parses every page and
concatenates them in page order. Also decides whether the raw localization
layers, the table, or both are downloaded.
"""

from __future__ import annotations

import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Union

import geopandas as gpd
import pandas as pd

from ndop_downloader.api import (
    DEFAULT_TIMEOUT,
    CountMismatchWarning,
    DownloadCancelledError,
    NDOPClient,
    PageRequestError,
    build_export_request,
)
from ndop_downloader.columns import DEFAULT_COLUMNS, ExportColumnSpec
from ndop_downloader.locations import LocationFetcher
from ndop_downloader.pagination import PAGE_SIZE, Page, plan_pages
from ndop_downloader.parser import (
    check_header,
    concat_pages,
    convert_numeric,
    empty_table,
    parse_page,
)
from ndop_downloader.search import SearchFilter, SessionDescriptor
from ndop_downloader.utils import (
    format_record_range,
    get_logger,
    retry_with_backoff,
    validate_positive_int,
)

DownloadResult = Union[
    pd.DataFrame,
    list[gpd.GeoDataFrame],
    tuple[list[gpd.GeoDataFrame], pd.DataFrame],
]


class Mode(str, Enum):
    """What a download returns."""

    TABLE_ONLY = "table"
    LOCATIONS_ONLY = "locations"
    LOCATIONS_AND_TABLE = "both"

    @classmethod
    def parse(cls, value: Mode | str | int | None) -> Mode:
        """
        Convert user input to a Mode.

        Accepts Mode members, their string values, None (table only) and the
        numeric codes 0 (table), 1 (locations) and 2 (both).

        Raises:
            ValueError: If the value is not a known mode
        """
        if value is None:
            return cls.TABLE_ONLY
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            codes = {0: cls.TABLE_ONLY, 1: cls.LOCATIONS_ONLY, 2: cls.LOCATIONS_AND_TABLE}
            if value in codes:
                return codes[value]
        else:
            try:
                return cls(str(value).strip().lower())
            except ValueError:
                pass

        supported = ", ".join(m.value for m in cls)
        raise ValueError(f"Unknown mode: {value}. Supported modes: {supported}")


class EngineState(Enum):
    """Lifecycle of one download."""

    IDLE = "idle"
    SESSION_ESTABLISHED = "session_established"
    PAGINATING = "paginating"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class ProgressEvent:
    """
    Progress after one page has been downloaded and parsed.

    Attributes:
        page: The page just completed
        page_count: Total number of pages
        rows_downloaded: Rows assembled so far
        total_records: Record count reported by the search
    """

    page: Page
    page_count: int
    rows_downloaded: int
    total_records: int

    @property
    def pages_done(self) -> int:
        """Number of pages completed, including this one."""
        return self.page.index + 1

    @property
    def percentage(self) -> float:
        """Progress as a percentage (0-100)."""
        if self.total_records == 0:
            return 100.0
        return min(100.0, self.rows_downloaded / self.total_records * 100)


class ExportEngine:
    """
    Download the occurrence table of a search session page by page.

    Pages are fetched strictly one after another by default. With
    workers > 1 up to that many pages are in flight at once; results are
    still assembled in ascending page order.

    Example:
        with NDOPClient(username="user", password="secret") as client:
            engine = ExportEngine(client)
            table = engine.run(SearchFilter(species="Mantis religiosa"))
    """

    def __init__(
        self,
        client: NDOPClient,
        location_fetcher: LocationFetcher | None = None,
        columns: ExportColumnSpec = DEFAULT_COLUMNS,
        page_size: int = PAGE_SIZE,
        page_retries: int = 0,
        workers: int = 1,
        progress_callback: Callable[[ProgressEvent], None] | None = None,
        stop_check: Callable[[], bool] | None = None,
    ):
        """
        Initialize the engine.

        Args:
            client: Client used for negotiation and export requests
            location_fetcher: Collaborator for raw localization layers
            columns: Export column specification sent with every page
            page_size: Records per export request
            page_retries: Extra attempts for a failed page request (0 = none)
            workers: Maximum number of page requests in flight; each worker
                thread sends through its own HTTP session of the client
            progress_callback: Called with a ProgressEvent after each page
            stop_check: Function that returns True to stop between pages
        """
        self.client = client
        self.location_fetcher = location_fetcher or LocationFetcher(client)
        self.columns = columns
        self.page_size = validate_positive_int(page_size, "page_size")
        self.page_retries = validate_positive_int(
            page_retries, "page_retries", allow_zero=True
        )
        self.workers = validate_positive_int(workers, "workers")
        self.progress_callback = progress_callback
        self.stop_check = stop_check
        self.state = EngineState.IDLE
        self.logger = get_logger()

        self._send = retry_with_backoff(
            max_retries=self.page_retries,
            exceptions=(PageRequestError,),
        )(self.client.send_export_request)

    def _set_state(self, state: EngineState) -> None:
        self.logger.debug(f"Engine state: {self.state.value} -> {state.value}")
        self.state = state

    def run(
        self,
        search_filter: SearchFilter,
        mode: Mode | str | int | None = Mode.TABLE_ONLY,
    ) -> DownloadResult:
        """
        Negotiate a search session and download what the mode asks for.

        Args:
            search_filter: Search criteria
            mode: TABLE_ONLY, LOCATIONS_ONLY or LOCATIONS_AND_TABLE

        Returns:
            The table, the list of localization layers, or
            (layers, table) for LOCATIONS_AND_TABLE

        Raises:
            SessionError: If the search session cannot be established
            PageRequestError: If a page request fails
            PageParseError: If a page cannot be parsed
            LocationError: If the localization layers cannot be fetched
            DownloadCancelledError: If stop_check asked to stop
        """
        mode = Mode.parse(mode)
        self.state = EngineState.IDLE

        try:
            session = self.client.open_session(search_filter)
            self._set_state(EngineState.SESSION_ESTABLISHED)

            if mode is Mode.LOCATIONS_ONLY:
                layers = self.location_fetcher.fetch(session)
                self._set_state(EngineState.DONE)
                return layers

            if mode is Mode.LOCATIONS_AND_TABLE:
                layers = self.location_fetcher.fetch(session)
                return layers, self.download_table(session)

            return self.download_table(session)

        except Exception:
            self._set_state(EngineState.ERROR)
            raise

    def download_table(self, session: SessionDescriptor) -> pd.DataFrame:
        """
        Download every page of a session and concatenate them.

        Nothing is returned on failure: pages fetched before the error are
        discarded.

        Args:
            session: Open search session

        Returns:
            DataFrame with one row per record, in page order
        """
        pages = plan_pages(session.total_records, self.page_size)
        self._set_state(EngineState.PAGINATING)

        try:
            if not pages:
                self.logger.info("No records to download")
                table = empty_table(self.columns.export_headers())
            else:
                self.logger.info(
                    f"Downloading {session.total_records:,} records "
                    f"in {len(pages)} tables"
                )
                frames = self._download_pages(session, pages)
                table = convert_numeric(concat_pages(frames))
                self._check_count(table, session)
        except Exception:
            self._set_state(EngineState.ERROR)
            raise

        self._set_state(EngineState.DONE)
        return table

    def _download_pages(
        self, session: SessionDescriptor, pages: list[Page]
    ) -> list[pd.DataFrame]:
        """Fetch and parse pages, keeping them in page order."""
        frames: list[pd.DataFrame] = []

        if self.workers == 1:
            for page in pages:
                self._check_stop(page)
                payload = self._fetch_page(session, page)
                self._append_page(frames, page, payload, session, len(pages))
            return frames

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = [pool.submit(self._fetch_page, session, page) for page in pages]
            try:
                for page, future in zip(pages, futures):
                    self._check_stop(page)
                    payload = future.result()
                    self._append_page(frames, page, payload, session, len(pages))
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

        return frames

    def _fetch_page(self, session: SessionDescriptor, page: Page) -> bytes:
        """Build and send the export request for one page."""
        self.logger.info(format_record_range(page.first_record, page.last_record))
        request = build_export_request(session, page, self.columns, self.page_size)
        return self._send(request, page)

    def _append_page(
        self,
        frames: list[pd.DataFrame],
        page: Page,
        payload: bytes,
        session: SessionDescriptor,
        page_count: int,
    ) -> None:
        """Parse a page, check it against the first page's header and keep it."""
        frame = parse_page(payload, page)

        if frames:
            check_header(frame, [str(c) for c in frames[0].columns], page)

        frames.append(frame)

        if self.progress_callback:
            self.progress_callback(
                ProgressEvent(
                    page=page,
                    page_count=page_count,
                    rows_downloaded=sum(len(f) for f in frames),
                    total_records=session.total_records,
                )
            )

    def _check_stop(self, page: Page) -> None:
        if self.stop_check and self.stop_check():
            self.logger.info("Download stopped by user")
            raise DownloadCancelledError(f"Download stopped before {page.describe()}")

    def _check_count(self, table: pd.DataFrame, session: SessionDescriptor) -> None:
        """Warn when the assembled rows do not match the search total."""
        if len(table) == session.total_records:
            return

        message = (
            f"Downloaded {len(table):,} rows but the search reported "
            f"{session.total_records:,} records; the source may have changed "
            f"during the download."
        )
        self.logger.warning(message)
        warnings.warn(message, CountMismatchWarning, stacklevel=3)


def download(
    species: str | None = None,
    family: str | None = None,
    group: str | None = None,
    mode: Mode | str | int | None = Mode.TABLE_ONLY,
    *,
    username: str | None = None,
    password: str | None = None,
    login_hash: str | None = None,
    timeout: tuple[int, int] = DEFAULT_TIMEOUT,
    **engine_options,
) -> DownloadResult:
    """
    Download occurrence records from NDOP.

    Table data includes XY coordinates in S-JTSK (EPSG:5514). For records
    whose source is a line or polygon, the coordinates are the centroid of
    the source geometry; use mode="locations" or mode="both" to get the raw
    geometries.

    Args:
        species: Search by species or genus name
        family: Search by family name
        group: Search by predefined higher taxon category
        mode: "table" (default), "locations" or "both"
        username: Portal account name
        password: Portal account password
        login_hash: Existing isop_loginhash cookie value instead of a login
        timeout: Request timeout as (connect, read) seconds
        **engine_options: Passed to ExportEngine (columns, workers,
            page_retries, progress_callback, stop_check)

    Returns:
        DataFrame, list of GeoDataFrames, or (layers, DataFrame)

    Example:
        mr = download("Mantis religiosa", username="user", password="secret")
        layers, mr = download("Mantis religiosa", mode="both", login_hash=hash_)
    """
    search_filter = SearchFilter(species=species, family=family, group=group)

    with NDOPClient(
        username=username,
        password=password,
        login_hash=login_hash,
        timeout=timeout,
    ) as client:
        engine = ExportEngine(client, LocationFetcher(client), **engine_options)
        return engine.run(search_filter, mode)
