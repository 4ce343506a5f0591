"""Tests for the export engine."""

import time
from unittest.mock import MagicMock, Mock, patch

import pandas as pd
import pytest

from ndop_downloader.api import (
    CountMismatchWarning,
    DownloadCancelledError,
    NDOPClient,
    PageParseError,
    PageRequestError,
    SessionError,
)
from ndop_downloader.columns import DEFAULT_COLUMNS
from ndop_downloader.engine import (
    EngineState,
    ExportEngine,
    Mode,
    ProgressEvent,
    download,
)
from ndop_downloader.locations import LocationFetcher
from ndop_downloader.pagination import Page
from ndop_downloader.search import SearchFilter, SessionDescriptor


def make_session(total):
    """Create a session descriptor for `total` records."""
    return SessionDescriptor(
        export_token="token123", auth_cookie="hash456", total_records=total
    )


@pytest.fixture
def search_filter():
    """A species search."""
    return SearchFilter(species="Mantis religiosa")


@pytest.fixture
def fake_client(payload_factory):
    """
    Create a fake NDOPClient.

    Call fake_client.set_total(n) to open sessions with n records; export
    requests answer with generated rows for the requested page.
    """
    client = Mock(spec=NDOPClient)
    state = {"total": 0}

    def set_total(total):
        state["total"] = total
        client.open_session.return_value = make_session(total)

    def send(request, page):
        return payload_factory(page, state["total"])

    client.set_total = set_total
    client.send_export_request.side_effect = send
    set_total(0)
    return client


@pytest.fixture
def fake_fetcher():
    """Create a fake location fetcher returning three layers."""
    fetcher = Mock(spec=LocationFetcher)
    fetcher.fetch.return_value = ["points", "lines", "polygons"]
    return fetcher


@pytest.fixture(autouse=True)
def no_sleep():
    """Skip retry back-off delays."""
    with patch("ndop_downloader.utils.sleep"):
        yield


def requested_offsets(client):
    """Offsets of all export requests sent, in call order."""
    return [
        call.args[0].params["frompage"]
        for call in client.send_export_request.call_args_list
    ]


class TestMode:
    """Tests for Mode parsing."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, Mode.TABLE_ONLY),
            ("table", Mode.TABLE_ONLY),
            ("LOCATIONS", Mode.LOCATIONS_ONLY),
            ("both", Mode.LOCATIONS_AND_TABLE),
            (0, Mode.TABLE_ONLY),
            (1, Mode.LOCATIONS_ONLY),
            (2, Mode.LOCATIONS_AND_TABLE),
            (Mode.LOCATIONS_ONLY, Mode.LOCATIONS_ONLY),
        ],
    )
    def test_parse(self, value, expected):
        """Test accepted mode values."""
        assert Mode.parse(value) is expected

    @pytest.mark.parametrize("value", ["all", 3, True])
    def test_parse_invalid(self, value):
        """Test that unknown modes raise ValueError."""
        with pytest.raises(ValueError, match="Unknown mode"):
            Mode.parse(value)


class TestDownloadTable:
    """Tests for paginated table download."""

    def test_end_to_end_1500_records(self, fake_client, fake_fetcher, search_filter):
        """Test two requests at offsets 0 and 1000 giving 1500 rows."""
        fake_client.set_total(1500)
        engine = ExportEngine(fake_client, fake_fetcher)

        table = engine.run(search_filter)

        assert requested_offsets(fake_client) == [0, 1000]
        assert len(table) == 1500
        assert list(table.columns) == DEFAULT_COLUMNS.export_headers()
        assert engine.state is EngineState.DONE

    def test_requests_carry_session(self, fake_client, fake_fetcher, search_filter):
        """Test that every request carries token, cookie and column spec."""
        fake_client.set_total(2500)
        engine = ExportEngine(fake_client, fake_fetcher)

        engine.run(search_filter)

        for call in fake_client.send_export_request.call_args_list:
            request = call.args[0]
            assert request.params["ndtoken"] == "token123"
            assert request.params["pagesize"] == 1000
            assert request.cookies == {"isop_loginhash": "hash456"}
            assert request.data == DEFAULT_COLUMNS.to_payload("token123")

    def test_exact_multiple(self, fake_client, fake_fetcher, search_filter):
        """Test that 2000 records need exactly two requests."""
        fake_client.set_total(2000)
        engine = ExportEngine(fake_client, fake_fetcher)

        table = engine.run(search_filter)

        assert requested_offsets(fake_client) == [0, 1000]
        assert len(table) == 2000

    def test_rows_keep_page_order(self, fake_client, fake_fetcher, search_filter):
        """Test that rows appear in page order (descending record id)."""
        fake_client.set_total(2001)
        engine = ExportEngine(fake_client, fake_fetcher)

        table = engine.run(search_filter)

        assert table["ID_NALEZ"].tolist() == list(range(2001, 0, -1))
        assert table.index.tolist() == list(range(2001))

    def test_decimal_coordinates(self, fake_client, fake_fetcher, search_filter):
        """Test that coordinates are numeric on every page."""
        fake_client.set_total(1001)
        engine = ExportEngine(fake_client, fake_fetcher)

        table = engine.run(search_filter)

        assert pd.api.types.is_float_dtype(table["X"])
        assert table["X"].iloc[1000] == pytest.approx(-7451000.5)

    def test_zero_records(self, fake_client, fake_fetcher, search_filter):
        """Test that an empty search gives an empty table without requests."""
        fake_client.set_total(0)
        engine = ExportEngine(fake_client, fake_fetcher)

        table = engine.run(search_filter)

        fake_client.send_export_request.assert_not_called()
        assert table.empty
        assert list(table.columns) == DEFAULT_COLUMNS.export_headers()
        assert engine.state is EngineState.DONE

    def test_zero_records_match_real_headers(self, fake_client, fake_fetcher, search_filter):
        """Test that an empty result has the same columns as a non-empty one."""
        fake_client.set_total(0)
        empty = ExportEngine(fake_client, fake_fetcher).run(search_filter)

        fake_client.set_total(5)
        full = ExportEngine(fake_client, fake_fetcher).run(search_filter)

        assert list(empty.columns) == list(full.columns)
        assert "X" in empty.columns and "DATUM_OD" in empty.columns

    def test_column_types_uniform_across_pages(
        self, fake_client, fake_fetcher, search_filter, export_payload
    ):
        """Test that values typed differently on each page stay consistent."""
        fake_client.set_total(3)
        pages = {
            0: [("3", "0652", "3"), ("2", "0653", "1,5")],
            1: [("1", "6152a", "many")],
        }

        def send(request, page):
            header = ["ID_NALEZ", "SITMAP", "POCET"]
            return export_payload(header, pages[page.index])

        fake_client.send_export_request.side_effect = send
        engine = ExportEngine(fake_client, fake_fetcher, page_size=2)

        table = engine.run(search_filter)

        assert table["SITMAP"].tolist() == ["0652", "0653", "6152a"]
        assert table["POCET"].tolist() == ["3", "1,5", "many"]
        assert table["ID_NALEZ"].tolist() == [3, 2, 1]

    def test_grid_squares_keep_leading_zero(self, fake_client, fake_fetcher, search_filter):
        """Test that text columns are not read as numbers on any page."""
        fake_client.set_total(1500)
        engine = ExportEngine(fake_client, fake_fetcher)

        table = engine.run(search_filter)

        assert table["SITMAP"].iloc[0] == "06152"
        assert table["SITMAP"].iloc[1001] == "06153"
        assert table["NAZ_LOKAL"].iloc[1499] == "Pálava, Děvín"

    def test_header_mismatch(self, fake_client, fake_fetcher, search_filter, payload_factory):
        """Test that a page with different columns aborts the download."""
        fake_client.set_total(2500)

        def send(request, page):
            header = ["ID_NALEZ", "X"] if page.index == 1 else None
            return payload_factory(page, 2500, header=header)

        fake_client.send_export_request.side_effect = send
        engine = ExportEngine(fake_client, fake_fetcher)

        with pytest.raises(PageParseError, match="page 2") as exc_info:
            engine.run(search_filter)

        assert exc_info.value.page_index == 1
        assert fake_client.send_export_request.call_count == 2
        assert engine.state is EngineState.ERROR

    def test_failure_discards_partial_table(
        self, fake_client, fake_fetcher, search_filter, payload_factory
    ):
        """Test that a failure on page 2 of 3 returns nothing and stops."""
        fake_client.set_total(2500)

        def send(request, page):
            if page.index == 1:
                raise PageRequestError("HTTP error: 502", page)
            return payload_factory(page, 2500)

        fake_client.send_export_request.side_effect = send
        engine = ExportEngine(fake_client, fake_fetcher)
        result = None

        with pytest.raises(PageRequestError) as exc_info:
            result = engine.run(search_filter)

        assert result is None
        assert exc_info.value.page_index == 1
        assert requested_offsets(fake_client) == [0, 1000]
        assert engine.state is EngineState.ERROR

    def test_page_retries(self, fake_client, fake_fetcher, search_filter, payload_factory):
        """Test that a failed page is retried up to page_retries times."""
        fake_client.set_total(1500)
        failures = {"left": 2}

        def send(request, page):
            if page.index == 1 and failures["left"]:
                failures["left"] -= 1
                raise PageRequestError("Connection error", page)
            return payload_factory(page, 1500)

        fake_client.send_export_request.side_effect = send
        engine = ExportEngine(fake_client, fake_fetcher, page_retries=2)

        table = engine.run(search_filter)

        assert len(table) == 1500
        assert requested_offsets(fake_client) == [0, 1000, 1000, 1000]

    def test_page_retries_are_capped(self, fake_client, fake_fetcher, search_filter):
        """Test that retries stop after page_retries extra attempts."""
        fake_client.set_total(500)
        fake_client.send_export_request.side_effect = PageRequestError("down")
        engine = ExportEngine(fake_client, fake_fetcher, page_retries=1)

        with pytest.raises(PageRequestError):
            engine.run(search_filter)

        assert fake_client.send_export_request.call_count == 2

    def test_count_mismatch_warning(
        self, fake_client, fake_fetcher, search_filter, payload_factory
    ):
        """Test that fewer rows than reported issue a warning, not an error."""
        fake_client.set_total(1500)

        def send(request, page):
            if page.index == 1:
                page = Page(index=page.index, offset=page.offset, size=400)
            return payload_factory(page, 1500)

        fake_client.send_export_request.side_effect = send
        engine = ExportEngine(fake_client, fake_fetcher)

        with pytest.warns(CountMismatchWarning, match="1,400 rows"):
            table = engine.run(search_filter)

        assert len(table) == 1400
        assert engine.state is EngineState.DONE

    def test_progress_events(self, fake_client, fake_fetcher, search_filter):
        """Test that one progress event is reported per page."""
        fake_client.set_total(1500)
        events = []
        engine = ExportEngine(fake_client, fake_fetcher, progress_callback=events.append)

        engine.run(search_filter)

        assert all(isinstance(event, ProgressEvent) for event in events)
        assert [event.pages_done for event in events] == [1, 2]
        assert [event.rows_downloaded for event in events] == [1000, 1500]
        assert events[-1].page_count == 2
        assert events[-1].percentage == 100.0

    def test_stop_between_pages(self, fake_client, fake_fetcher, search_filter):
        """Test that stop_check cancels after the in-flight page."""
        fake_client.set_total(3000)
        events = []
        engine = ExportEngine(
            fake_client,
            fake_fetcher,
            progress_callback=events.append,
            stop_check=lambda: len(events) >= 1,
        )

        with pytest.raises(DownloadCancelledError, match="page 2"):
            engine.run(search_filter)

        assert fake_client.send_export_request.call_count == 1
        assert engine.state is EngineState.ERROR


class TestConcurrentDownload:
    """Tests for bounded-concurrency page fetching."""

    def test_order_independent_of_completion(
        self, fake_client, fake_fetcher, search_filter, payload_factory
    ):
        """Test that later pages finishing first do not change row order."""
        fake_client.set_total(4500)

        def send(request, page):
            # Earlier pages answer later
            time.sleep(0.02 * (5 - page.index))
            return payload_factory(page, 4500)

        fake_client.send_export_request.side_effect = send
        engine = ExportEngine(fake_client, fake_fetcher, workers=3)

        table = engine.run(search_filter)

        assert table["ID_NALEZ"].tolist() == list(range(4500, 0, -1))
        assert sorted(requested_offsets(fake_client)) == [0, 1000, 2000, 3000, 4000]

    def test_failure_aborts(self, fake_client, fake_fetcher, search_filter, payload_factory):
        """Test that a failing page aborts a concurrent download."""
        fake_client.set_total(3000)

        def send(request, page):
            if page.index == 1:
                raise PageRequestError("HTTP error: 500", page)
            return payload_factory(page, 3000)

        fake_client.send_export_request.side_effect = send
        engine = ExportEngine(fake_client, fake_fetcher, workers=2)

        with pytest.raises(PageRequestError):
            engine.run(search_filter)

        assert engine.state is EngineState.ERROR

    def test_invalid_workers(self, fake_client, fake_fetcher):
        """Test that workers must be positive."""
        with pytest.raises(ValueError, match="workers"):
            ExportEngine(fake_client, fake_fetcher, workers=0)


class TestModes:
    """Tests for mode branching."""

    def test_locations_only(self, fake_client, fake_fetcher, search_filter):
        """Test that locations-only sends no export requests."""
        fake_client.set_total(1500)
        engine = ExportEngine(fake_client, fake_fetcher)

        result = engine.run(search_filter, mode=Mode.LOCATIONS_ONLY)

        assert result == ["points", "lines", "polygons"]
        fake_client.send_export_request.assert_not_called()
        fake_fetcher.fetch.assert_called_once_with(make_session(1500))
        assert engine.state is EngineState.DONE

    def test_table_only(self, fake_client, fake_fetcher, search_filter):
        """Test that table-only never fetches locations."""
        fake_client.set_total(10)
        engine = ExportEngine(fake_client, fake_fetcher)

        result = engine.run(search_filter, mode="table")

        assert isinstance(result, pd.DataFrame)
        fake_fetcher.fetch.assert_not_called()

    def test_locations_and_table(self, fake_client, fake_fetcher, search_filter):
        """Test that both mode returns (layers, table)."""
        fake_client.set_total(10)
        engine = ExportEngine(fake_client, fake_fetcher)

        layers, table = engine.run(search_filter, mode=2)

        assert layers == ["points", "lines", "polygons"]
        assert len(table) == 10
        fake_fetcher.fetch.assert_called_once()
        assert fake_client.send_export_request.call_count == 1

    def test_session_error_stops_everything(self, fake_client, fake_fetcher, search_filter):
        """Test that a failed negotiation issues no further requests."""
        fake_client.open_session.side_effect = SessionError("no session")
        engine = ExportEngine(fake_client, fake_fetcher)

        with pytest.raises(SessionError):
            engine.run(search_filter, mode="both")

        fake_client.send_export_request.assert_not_called()
        fake_fetcher.fetch.assert_not_called()
        assert engine.state is EngineState.ERROR


class TestDownloadFunction:
    """Tests for the download() entry point."""

    @patch("ndop_downloader.engine.NDOPClient")
    def test_download(self, mock_client_class, fake_client):
        """Test that download() wires filter, credentials and mode."""
        fake_client.set_total(3)
        mock_client_class.return_value = MagicMock()
        mock_client_class.return_value.__enter__.return_value = fake_client

        table = download("Mantis religiosa", login_hash="hash456")

        assert len(table) == 3
        assert mock_client_class.call_args.kwargs["login_hash"] == "hash456"
        search_filter = fake_client.open_session.call_args.args[0]
        assert search_filter.species == "Mantis religiosa"

    def test_download_requires_filter(self):
        """Test that download() without criteria raises ValueError."""
        with pytest.raises(ValueError):
            download()
