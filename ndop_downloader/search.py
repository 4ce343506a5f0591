"""
Search filters and session descriptors for the NDOP portal.

A download starts by opening a filtered search on the portal. The portal
answers with a results page that carries an export token and the number of
matching records; together with the login cookie these form the session
every export request must present.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from ndop_downloader.utils import clean_optional_string, validate_positive_int

# Patterns for pulling the export token out of the results page
TOKEN_PATTERNS = (
    re.compile(r"ndtoken=([0-9A-Za-z]+)"),
    re.compile(r'name="ndtoken(?:export)?"\s+value="([0-9A-Za-z]+)"'),
)

# Patterns for the record count shown above the results table
COUNT_PATTERNS = (
    re.compile(r"Počet\s+záznamů\s*:?\s*(?:<[^>]+>\s*)*([\d \xa0.]+)", re.IGNORECASE),
    re.compile(r"Nalezeno\s*:?\s*(?:<[^>]+>\s*)*([\d \xa0.]+)", re.IGNORECASE),
)


@dataclass
class SearchFilter:
    """
    Criteria for a filtered search on the portal.

    Attributes:
        species: Species or genus name (e.g., "Mantis religiosa")
        family: Family name (e.g., "Mantidae")
        group: Predefined higher taxon category as named by the portal
    """

    species: str | None = None
    family: str | None = None
    group: str | None = None

    def __post_init__(self) -> None:
        self.species = clean_optional_string(self.species)
        self.family = clean_optional_string(self.family)
        self.group = clean_optional_string(self.group)

        if not (self.species or self.family or self.group):
            raise ValueError("At least one of species, family or group must be specified")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SearchFilter:
        """
        Create SearchFilter from a dictionary (e.g., from YAML config).

        Accepts either a nested "search" section or flat keys.
        """
        search = data.get("search", data) or {}

        return cls(
            species=search.get("species"),
            family=search.get("family"),
            group=search.get("group"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "search": {
                "species": self.species,
                "family": self.family,
                "group": self.group,
            }
        }

    def to_payload(self) -> dict[str, str]:
        """Search form fields understood by the portal."""
        return {
            "rfTaxon": self.species or "",
            "rfCeledi": self.family or "",
            "rfKategorie": self.group or "",
        }

    def describe(self) -> str:
        """Short label for logs and default file names."""
        return self.species or self.family or self.group or ""


@dataclass(frozen=True)
class SessionDescriptor:
    """
    An open search session on the portal.

    Attributes:
        export_token: Opaque token identifying the filtered result set
        auth_cookie: Value of the portal's login cookie
        total_records: Number of records the search matched
    """

    export_token: str
    auth_cookie: str
    total_records: int

    def __post_init__(self) -> None:
        validate_positive_int(self.total_records, "total_records", allow_zero=True)

    def __repr__(self) -> str:
        # Keep credentials out of logs and tracebacks
        return (
            f"SessionDescriptor(export_token='{self.export_token[:6]}...', "
            f"auth_cookie='***', total_records={self.total_records})"
        )


def extract_export_token(html: str) -> str | None:
    """
    Find the export token on a search results page.

    Returns:
        The token, or None if the page carries none
    """
    for pattern in TOKEN_PATTERNS:
        match = pattern.search(html)
        if match:
            return match.group(1)
    return None


def extract_record_count(html: str) -> int | None:
    """
    Find the number of matching records on a search results page.

    The portal formats counts with spaces (or non-breaking spaces) as
    thousands separators, e.g. "1 234".

    Returns:
        The count, or None if it could not be found
    """
    for pattern in COUNT_PATTERNS:
        match = pattern.search(html)
        if not match:
            continue

        digits = re.sub(r"[^\d]", "", match.group(1))
        if digits:
            return int(digits)

    return None
