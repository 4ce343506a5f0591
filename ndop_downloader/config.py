"""
Configuration management for NDOP Downloader.

Supports loading and saving search presets from YAML files. Passwords are
never written to disk.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from ndop_downloader.engine import Mode
from ndop_downloader.search import SearchFilter
from ndop_downloader.utils import get_logger, validate_positive_int

OUTPUT_FORMATS = ("csv", "excel", "geojson")


class Config:
    """
    Configuration manager for NDOP Downloader.

    Handles loading and saving search configurations from YAML files.

    Example:
        # Load from file
        config = Config.load("mantis.yaml")
        search_filter = config.get_search_filter()

        # Save to file
        config = Config(search_filter=search_filter, output_format="excel")
        config.save("mantis.yaml")
    """

    def __init__(
        self,
        search_filter: SearchFilter | None = None,
        mode: Mode | str | int | None = Mode.TABLE_ONLY,
        output_format: str = "csv",
        output_path: str | None = None,
        username: str | None = None,
        workers: int = 1,
        page_retries: int = 0,
        timeout: int = 60,
    ):
        """
        Initialize configuration.

        Args:
            search_filter: SearchFilter instance
            mode: Download mode (table, locations, both)
            output_format: Output format (csv, excel, geojson)
            output_path: Default output file path
            username: Portal account name
            workers: Maximum number of page requests in flight
            page_retries: Extra attempts for a failed page request
            timeout: Read timeout per request in seconds
        """
        if output_format not in OUTPUT_FORMATS:
            raise ValueError(
                f"Unsupported format: {output_format}. "
                f"Supported formats: {', '.join(OUTPUT_FORMATS)}"
            )

        self.search_filter = search_filter
        self.mode = Mode.parse(mode)
        self.output_format = output_format
        self.output_path = output_path
        self.username = username
        self.workers = validate_positive_int(workers, "workers")
        self.page_retries = validate_positive_int(
            page_retries, "page_retries", allow_zero=True
        )
        self.timeout = validate_positive_int(timeout, "timeout")
        self.logger = get_logger()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        """
        Create Config from a dictionary with search/download/auth/output sections.

        Raises:
            ValueError: If the search section is missing or invalid
        """
        search_filter = SearchFilter.from_dict(data)
        download = data.get("download") or {}
        auth = data.get("auth") or {}
        output = data.get("output") or {}

        return cls(
            search_filter=search_filter,
            mode=download.get("mode", Mode.TABLE_ONLY),
            output_format=output.get("format", "csv"),
            output_path=output.get("filename"),
            username=auth.get("username"),
            workers=download.get("workers", 1),
            page_retries=download.get("page_retries", 0),
            timeout=download.get("timeout", 60),
        )

    @classmethod
    def load(cls, path: str | Path) -> Config:
        """
        Load configuration from a YAML file.

        Args:
            path: Path to YAML file

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If file doesn't exist
            yaml.YAMLError: If file is invalid YAML
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if not data:
            raise ValueError(f"Empty config file: {path}")

        return cls.from_dict(data)

    def save(self, path: str | Path) -> None:
        """
        Save configuration to a YAML file.

        Args:
            path: Path to save to
        """
        path = Path(path)

        if self.search_filter is None:
            raise ValueError("No search configuration to save")

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False, allow_unicode=True)

        self.logger.info(f"Configuration saved to: {path}")

    def get_search_filter(self) -> SearchFilter:
        """
        Get the search filter.

        Raises:
            ValueError: If no search filter is set
        """
        if self.search_filter is None:
            raise ValueError("No search configuration set")
        return self.search_filter

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result = {}

        if self.search_filter:
            result.update(self.search_filter.to_dict())

        result["download"] = {
            "mode": self.mode.value,
            "workers": self.workers,
            "page_retries": self.page_retries,
            "timeout": self.timeout,
        }

        if self.username:
            result["auth"] = {"username": self.username}

        result["output"] = {"format": self.output_format}

        if self.output_path:
            result["output"]["filename"] = self.output_path

        return result


# Default config directory
DEFAULT_CONFIG_DIR = Path.home() / ".ndop_downloader"


def get_config_dir() -> Path:
    """
    Get the configuration directory, creating it if needed.

    Returns:
        Path to config directory
    """
    DEFAULT_CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    return DEFAULT_CONFIG_DIR


def list_presets() -> list[str]:
    """
    List available preset configurations.

    Returns:
        List of preset names (without .yaml extension)
    """
    return sorted(path.stem for path in get_config_dir().glob("*.yaml"))


def load_preset(name: str) -> Config:
    """
    Load a preset configuration by name.

    Raises:
        FileNotFoundError: If preset doesn't exist
    """
    return Config.load(get_config_dir() / f"{name}.yaml")


def save_preset(name: str, config: Config) -> Path:
    """
    Save a configuration as a preset.

    Returns:
        Path to saved file
    """
    path = get_config_dir() / f"{name}.yaml"
    config.save(path)
    return path


def delete_preset(name: str) -> bool:
    """
    Delete a preset configuration.

    Returns:
        True if deleted, False if not found
    """
    path = get_config_dir() / f"{name}.yaml"

    if path.exists():
        path.unlink()
        return True

    return False


# Example configuration template
EXAMPLE_CONFIG = """# NDOP Downloader Configuration
# Save this file and use with: ndop-download --config my_search.yaml

search:
  species: Mantis religiosa
  # Or search by family or taxon group instead:
  # family: Mantidae
  # group: hmyz

download:
  mode: table  # table, locations, or both
  workers: 1
  page_retries: 0
  timeout: 60

auth:
  username: my_account
  # The password is read from --password or the NDOP_PASSWORD variable

output:
  format: csv  # csv, excel, or geojson
  filename: mantis_religiosa.csv
"""


def create_example_config(path: str | Path | None = None) -> Path:
    """
    Create an example configuration file.

    Args:
        path: Where to save (default: config_dir/example.yaml)

    Returns:
        Path to created file
    """
    if path is None:
        path = get_config_dir() / "example.yaml"
    else:
        path = Path(path)

    with open(path, "w", encoding="utf-8") as f:
        f.write(EXAMPLE_CONFIG)

    return path
