"""
Parsing of NDOP export pages into pandas DataFrames.

Export pages are delimited text in the legacy Windows-1250 encoding, with
";" between fields and "," as the decimal separator.
"""

from __future__ import annotations

import io

import pandas as pd

from ndop_downloader.api import PageParseError
from ndop_downloader.columns import NUMERIC_HEADERS
from ndop_downloader.pagination import Page
from ndop_downloader.utils import get_logger

# Export payload format
ENCODING = "cp1250"
SEPARATOR = ";"
DECIMAL = ","

logger = get_logger()


def parse_page(payload: bytes, page: Page, encoding: str = ENCODING) -> pd.DataFrame:
    """
    Decode one export page.

    Every column is read as text, blanks included, so pages never disagree
    on a column's type. Numbers are converted once for the whole table by
    convert_numeric.

    Args:
        payload: Raw response body
        page: Page the payload belongs to
        encoding: Text encoding of the payload

    Returns:
        DataFrame of strings with the page's rows, columns as named by its
        header row

    Raises:
        PageParseError: If the payload cannot be decoded or parsed
    """
    try:
        text = payload.decode(encoding)
    except UnicodeDecodeError as e:
        raise PageParseError(f"Cannot decode response as {encoding}: {e}", page) from e

    if not text.strip():
        raise PageParseError("Empty response body", page)

    try:
        frame = pd.read_csv(
            io.StringIO(text),
            sep=SEPARATOR,
            dtype=str,
            keep_default_na=False,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise PageParseError(f"Malformed export data: {e}", page) from e

    return _drop_blank_columns(frame)


def _drop_blank_columns(frame: pd.DataFrame) -> pd.DataFrame:
    """Drop unnamed, all-empty columns left by a trailing separator."""
    blank = [
        column
        for column in frame.columns
        if str(column).startswith("Unnamed:") and (frame[column] == "").all()
    ]
    if blank:
        frame = frame.drop(columns=blank)
    return frame


def convert_numeric(
    table: pd.DataFrame,
    headers: tuple[str, ...] = NUMERIC_HEADERS,
) -> pd.DataFrame:
    """
    Convert decimal-comma columns of an assembled table to numbers.

    A column is converted only when every non-blank value in it is a number;
    blanks become NaN. Any other column, or a listed column holding text,
    is left as text.

    Args:
        table: Concatenated table from parse_page frames
        headers: Column names to convert where present

    Returns:
        The table with numeric columns converted
    """
    table = table.copy()

    for column in headers:
        if column not in table.columns:
            continue

        values = table[column].astype(str).str.strip()
        blank = values == ""
        numbers = pd.to_numeric(
            values.str.replace(DECIMAL, ".", regex=False).where(~blank),
            errors="coerce",
        )

        if numbers[~blank].isna().any():
            logger.debug(f"Column {column} holds non-numeric values; kept as text")
            continue

        table[column] = numbers

    return table


def check_header(frame: pd.DataFrame, expected: list[str], page: Page) -> None:
    """
    Ensure a page has the same columns, in the same order, as the first page.

    Raises:
        PageParseError: If the columns differ
    """
    actual = [str(column) for column in frame.columns]
    if actual == list(expected):
        return

    missing = [c for c in expected if c not in actual]
    extra = [c for c in actual if c not in expected]
    detail = []
    if missing:
        detail.append(f"missing {', '.join(missing)}")
    if extra:
        detail.append(f"unexpected {', '.join(extra)}")
    if not detail:
        detail.append("columns in a different order")

    raise PageParseError(f"Column header mismatch ({'; '.join(detail)})", page)


def empty_table(columns: list[str]) -> pd.DataFrame:
    """An empty result table with the given columns."""
    return pd.DataFrame(columns=list(columns))


def concat_pages(frames: list[pd.DataFrame]) -> pd.DataFrame:
    """
    Concatenate parsed pages in the given order.

    Args:
        frames: Parsed pages in ascending page order (at least one)

    Returns:
        A single DataFrame with a fresh 0..n-1 index
    """
    return pd.concat(frames, ignore_index=True)
