"""
NDOP portal client: login, filtered search and export requests.

This module provides a thin interface to the search/export web interface of
the Czech nature conservation portal (portal.nature.cz) with:
- Connection pooling and session management
- Login cookie acquisition and search session negotiation
- Construction of authenticated, paginated export requests
- Translation of transport failures into typed errors
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ndop_downloader.columns import ExportColumnSpec
from ndop_downloader.pagination import PAGE_SIZE, Page
from ndop_downloader.search import (
    SearchFilter,
    SessionDescriptor,
    extract_export_token,
    extract_record_count,
)
from ndop_downloader.utils import get_logger

# Portal base URLs
NDOP_BASE = "https://portal.nature.cz/nd/"
LOGIN_URL = "https://portal.nature.cz/nd/login.php"

# Endpoints
FIND_ENDPOINT = "find.php"
LOCATIONS_ENDPOINT = "export_lokalizace.php"

# Name of the portal's authentication cookie
AUTH_COOKIE_NAME = "isop_loginhash"

# Record id column used for stable export ordering
ORDER_FIELD = "ID_ND_NALEZ"
ORDER_DIRECTION = "DESC"

# Request configuration
DEFAULT_TIMEOUT = (10, 60)  # (connect, read) in seconds


class NDOPError(Exception):
    """Base exception for NDOP download errors."""

    pass


class SessionError(NDOPError):
    """Raised when a search session cannot be established."""

    pass


class PageError(NDOPError):
    """
    Base class for errors tied to one export page.

    The message is prefixed with the page number and record range.
    """

    def __init__(self, message: str, page: Page | None = None):
        self.page = page
        if page is not None:
            message = f"{page.describe()}: {message}"
        super().__init__(message)

    @property
    def page_index(self) -> int | None:
        """0-based index of the failing page, if known."""
        return self.page.index if self.page is not None else None


class PageRequestError(PageError):
    """Raised when an export request fails or returns a non-success status."""

    pass


class PageParseError(PageError):
    """Raised when an export page cannot be decoded or has unexpected columns."""

    pass


class LocationError(NDOPError):
    """Raised when raw localization layers cannot be downloaded or read."""

    pass


class DownloadCancelledError(NDOPError):
    """Raised when a download is stopped between pages."""

    pass


class CountMismatchWarning(UserWarning):
    """Issued when the assembled row count differs from the search total."""

    pass


@dataclass(frozen=True)
class ExportRequest:
    """
    A fully specified export request for one page.

    Attributes:
        url: Export endpoint URL
        params: Query parameters (paging, ordering, token)
        data: Form body (column specification)
        cookies: Transport credentials
    """

    url: str
    params: dict[str, Any] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)
    cookies: dict[str, str] = field(default_factory=dict)


def build_export_request(
    session: SessionDescriptor,
    page: Page,
    columns: ExportColumnSpec,
    page_size: int = PAGE_SIZE,
) -> ExportRequest:
    """
    Build the export request for a single page.

    Args:
        session: Open search session (token and login cookie)
        page: Page to fetch
        columns: Export column specification
        page_size: Records per page sent to the portal

    Returns:
        ExportRequest ready to send
    """
    params = {
        "akce": "seznam",
        "opener": "",
        "vztazne_id": 0,
        "order": ORDER_FIELD,
        "orderhow": ORDER_DIRECTION,
        "frompage": page.offset,
        "pagesize": page_size,
        "filtering": "",
        "searching": "",
        "export": 1,
        "ndtoken": session.export_token,
    }

    return ExportRequest(
        url=urljoin(NDOP_BASE, FIND_ENDPOINT),
        params=params,
        data=columns.to_payload(session.export_token),
        cookies={AUTH_COOKIE_NAME: session.auth_cookie},
    )


class NDOPClient:
    """
    Client for the NDOP search and export interface.

    Handles the HTTP session, login, search negotiation and the raw
    export/location downloads. It keeps no search state of its own: every
    export call takes the SessionDescriptor it should use.

    Example:
        with NDOPClient(username="user", password="secret") as client:
            session = client.open_session(SearchFilter(species="Mantis religiosa"))
            print(session.total_records)
    """

    def __init__(
        self,
        username: str | None = None,
        password: str | None = None,
        login_hash: str | None = None,
        timeout: tuple[int, int] = DEFAULT_TIMEOUT,
        max_retries: int = 3,
    ):
        """
        Initialize NDOP client.

        Args:
            username: Portal account name (used when login_hash is not given)
            password: Portal account password
            login_hash: Existing value of the isop_loginhash cookie
            timeout: Request timeout as (connect, read) seconds
            max_retries: Maximum transport retries for idempotent requests
        """
        self.username = username
        self.password = password
        self.login_hash = login_hash
        self.timeout = timeout
        self.max_retries = max_retries
        self.logger = get_logger()

        self._local = threading.local()
        self._sessions: list[requests.Session] = []
        self._sessions_lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        """
        HTTP session of the calling thread.

        Each thread gets its own requests.Session, created on first use and
        seeded with the cookies of the client's first session, so page
        requests running in worker threads never share one.
        """
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._create_session()
            with self._sessions_lock:
                if self._sessions:
                    session.cookies.update(self._sessions[0].cookies)
                self._sessions.append(session)
            self._local.session = session
        return session

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry logic."""
        session = requests.Session()

        # Export and search calls are POSTs and are never retried here
        retry_strategy = Retry(
            total=self.max_retries,
            backoff_factor=1.0,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        session.headers.update(
            {
                "User-Agent": "ndop-downloader/1.0 (Python)",
            }
        )

        return session

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """
        Perform a request and raise for non-success statuses.

        Raises:
            requests.exceptions.RequestException: On any transport failure
        """
        response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        response.raise_for_status()
        return response

    def login(self, username: str, password: str) -> str:
        """
        Log in to the portal and return the authentication cookie value.

        Args:
            username: Portal account name
            password: Portal account password

        Returns:
            Value of the isop_loginhash cookie

        Raises:
            SessionError: If the login request fails or no cookie is granted
        """
        self.logger.debug(f"Logging in as {username}")

        try:
            response = self._request(
                "POST",
                LOGIN_URL,
                data={"login": username, "password": password, "akce": "login"},
            )
        except requests.exceptions.RequestException as e:
            raise SessionError(f"Login request failed: {e}") from e

        login_hash = response.cookies.get(AUTH_COOKIE_NAME) or self.session.cookies.get(
            AUTH_COOKIE_NAME
        )
        if not login_hash:
            raise SessionError(
                "Login was not accepted by the portal. Check username and password."
            )

        return login_hash

    def _auth_cookie(self) -> str:
        """Return a login cookie, logging in if necessary."""
        if self.login_hash:
            return self.login_hash

        if not (self.username and self.password):
            raise SessionError(
                "NDOP requires an account: provide username and password "
                "or an existing login hash."
            )

        self.login_hash = self.login(self.username, self.password)
        return self.login_hash

    def open_session(self, search_filter: SearchFilter) -> SessionDescriptor:
        """
        Open a filtered search and describe the resulting session.

        Args:
            search_filter: Search criteria

        Returns:
            SessionDescriptor with export token, login cookie and record count

        Raises:
            SessionError: If the search cannot be opened or its page is unreadable
        """
        auth_cookie = self._auth_cookie()
        self.logger.debug(f"Opening search for {search_filter.to_payload()}")

        try:
            response = self._request(
                "POST",
                urljoin(NDOP_BASE, FIND_ENDPOINT),
                params={"akce": "seznam", "opener": "", "vztazne_id": 0},
                data=search_filter.to_payload(),
                cookies={AUTH_COOKIE_NAME: auth_cookie},
            )
        except requests.exceptions.RequestException as e:
            raise SessionError(f"Search request failed: {e}") from e

        html = response.text
        token = extract_export_token(html)
        if token is None:
            raise SessionError(
                f"The portal did not grant a search session for "
                f"'{search_filter.describe()}'."
            )

        total = extract_record_count(html)
        if total is None:
            raise SessionError("Could not read the record count from the search results.")

        self.logger.info(
            f"Search '{search_filter.describe()}' matched {total:,} records"
        )

        return SessionDescriptor(
            export_token=token,
            auth_cookie=auth_cookie,
            total_records=total,
        )

    def send_export_request(self, request: ExportRequest, page: Page) -> bytes:
        """
        Send one export request and return the raw response body.

        Args:
            request: Request built by build_export_request
            page: Page the request belongs to (for error context)

        Returns:
            Raw delimited-text payload

        Raises:
            PageRequestError: On timeout, connection failure or HTTP error
        """
        try:
            response = self._request(
                "POST",
                request.url,
                params=request.params,
                data=request.data,
                cookies=request.cookies,
            )
        except requests.exceptions.Timeout as e:
            raise PageRequestError(f"Request timeout: {e}", page) from e
        except requests.exceptions.HTTPError as e:
            raise PageRequestError(f"HTTP error: {e}", page) from e
        except requests.exceptions.ConnectionError as e:
            raise PageRequestError(f"Connection error: {e}", page) from e
        except requests.exceptions.RequestException as e:
            raise PageRequestError(f"Request failed: {e}", page) from e

        return response.content

    def fetch_locations_archive(self, session: SessionDescriptor) -> bytes:
        """
        Download the zipped shapefile export of raw localizations.

        Args:
            session: Open search session

        Returns:
            Zip archive bytes

        Raises:
            LocationError: If the download fails
        """
        try:
            response = self._request(
                "GET",
                urljoin(NDOP_BASE, LOCATIONS_ENDPOINT),
                params={"ndtoken": session.export_token},
                cookies={AUTH_COOKIE_NAME: session.auth_cookie},
            )
        except requests.exceptions.RequestException as e:
            raise LocationError(f"Localization download failed: {e}") from e

        return response.content

    def close(self) -> None:
        """Close every thread's session and release resources."""
        with self._sessions_lock:
            for session in self._sessions:
                session.close()
            self._sessions.clear()
        self._local = threading.local()

    def __enter__(self) -> NDOPClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args) -> None:
        """Context manager exit."""
        self.close()
