"""
Page planning for the NDOP export endpoint.

The export endpoint hands out at most PAGE_SIZE records per request, so a
download of N records is split into ceil(N / PAGE_SIZE) offset-based pages.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from ndop_downloader.utils import format_record_range, validate_positive_int

# Records per export request accepted by the portal
PAGE_SIZE = 1000


@dataclass(frozen=True)
class Page:
    """
    One slice of the result set, fetched by a single export request.

    Attributes:
        index: 0-based page number
        offset: 0-based index of the first record on the page
        size: Number of records on the page (the last page may be smaller)
    """

    index: int
    offset: int
    size: int

    @property
    def first_record(self) -> int:
        """1-based number of the first record on this page."""
        return self.offset + 1

    @property
    def last_record(self) -> int:
        """1-based number of the last record on this page."""
        return self.offset + self.size

    def describe(self) -> str:
        """Human-readable description used in errors and logs."""
        return (
            f"page {self.index + 1} "
            f"(records {format_record_range(self.first_record, self.last_record)})"
        )


def page_count(total_records: int, page_size: int = PAGE_SIZE) -> int:
    """Number of pages needed for total_records."""
    validate_positive_int(total_records, "total_records", allow_zero=True)
    validate_positive_int(page_size, "page_size")
    return math.ceil(total_records / page_size)


def plan_pages(total_records: int, page_size: int = PAGE_SIZE) -> list[Page]:
    """
    Split a record count into consecutive pages.

    Args:
        total_records: Total number of matching records (>= 0)
        page_size: Records per page

    Returns:
        Pages in ascending offset order; empty when total_records is 0

    Raises:
        ValueError: If total_records is negative or page_size is not positive
    """
    pages = []

    for index in range(page_count(total_records, page_size)):
        offset = index * page_size
        size = min(page_size, total_records - offset)
        pages.append(Page(index=index, offset=offset, size=size))

    return pages
