"""Shared fixtures for NDOP Downloader tests."""

import pytest

from ndop_downloader.columns import DEFAULT_COLUMNS
from ndop_downloader.pagination import Page


def build_export_payload(columns, rows, encoding="cp1250"):
    """Render rows the way the export endpoint does: ';'-separated cp1250 text."""
    lines = [";".join(columns)]
    for row in rows:
        lines.append(";".join("" if value is None else str(value) for value in row))
    return ("\r\n".join(lines) + "\r\n").encode(encoding)


def page_rows(page, total, columns):
    """
    Fake records for one page, ordered by descending record id.

    The record id is total - position, X/Y use a decimal comma and the grid
    square keeps a leading zero.
    """
    rows = []
    for position in range(page.offset, page.offset + page.size):
        record_id = total - position
        values = []
        for column in columns:
            if column == "ID_NALEZ":
                values.append(record_id)
            elif column == "X":
                values.append(f"-745{position:03d},5")
            elif column == "Y":
                values.append(f"-1043{position:03d},25")
            elif column == "SITMAP":
                values.append(f"0{6152 + position % 10}")
            elif column == "DRUH":
                values.append("Mantis religiosa")
            elif column == "NAZ_LOKAL":
                values.append("Pálava, Děvín")
            else:
                values.append("")
        rows.append(values)
    return rows


@pytest.fixture
def columns():
    """Header names of the default export, as the portal writes them."""
    return DEFAULT_COLUMNS.export_headers()


@pytest.fixture
def payload_factory(columns):
    """Build the raw export payload for a page of a download of `total` records."""

    def factory(page, total, header=None):
        header = header or columns
        return build_export_payload(header, page_rows(page, total, header))

    return factory


@pytest.fixture
def first_page():
    """The first page of a download."""
    return Page(index=0, offset=0, size=1000)


@pytest.fixture
def export_payload():
    """Render explicit header and rows as an export payload."""
    return build_export_payload
