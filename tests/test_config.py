"""Tests for the config module."""

import pytest
import yaml

from ndop_downloader.config import EXAMPLE_CONFIG, Config, create_example_config
from ndop_downloader.engine import Mode
from ndop_downloader.search import SearchFilter


class TestConfig:
    """Tests for Config."""

    def test_defaults(self):
        """Test default settings."""
        config = Config(search_filter=SearchFilter(species="Mantis religiosa"))

        assert config.mode is Mode.TABLE_ONLY
        assert config.output_format == "csv"
        assert config.workers == 1
        assert config.page_retries == 0

    def test_invalid_format_raises_error(self):
        """Test that unknown output formats are rejected."""
        with pytest.raises(ValueError, match="Unsupported format"):
            Config(search_filter=SearchFilter(species="x"), output_format="pdf")

    def test_invalid_workers_raises_error(self):
        """Test that workers must be positive."""
        with pytest.raises(ValueError, match="workers"):
            Config(search_filter=SearchFilter(species="x"), workers=0)

    def test_from_dict(self):
        """Test creating config from nested dictionary."""
        data = {
            "search": {"family": "Mantidae"},
            "download": {"mode": "both", "workers": 2},
            "auth": {"username": "user"},
            "output": {"format": "excel", "filename": "mantidae.xlsx"},
        }

        config = Config.from_dict(data)

        assert config.search_filter.family == "Mantidae"
        assert config.mode is Mode.LOCATIONS_AND_TABLE
        assert config.workers == 2
        assert config.username == "user"
        assert config.output_format == "excel"
        assert config.output_path == "mantidae.xlsx"

    def test_save_and_load(self, tmp_path):
        """Test that a saved config loads back unchanged."""
        path = tmp_path / "presets" / "mantis.yaml"
        config = Config(
            search_filter=SearchFilter(species="Mantis religiosa"),
            mode="locations",
            output_format="geojson",
            output_path="mantis.geojson",
            username="user",
        )

        config.save(path)
        loaded = Config.load(path)

        assert loaded.to_dict() == config.to_dict()
        assert "password" not in path.read_text(encoding="utf-8")

    def test_load_missing_file(self, tmp_path):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            Config.load(tmp_path / "missing.yaml")

    def test_load_empty_file(self, tmp_path):
        """Test that an empty file raises ValueError."""
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        with pytest.raises(ValueError, match="Empty config file"):
            Config.load(path)

    def test_save_without_filter_raises_error(self, tmp_path):
        """Test that a config without search cannot be saved."""
        with pytest.raises(ValueError, match="No search configuration"):
            Config().save(tmp_path / "x.yaml")

    def test_example_config_is_valid(self, tmp_path):
        """Test that the example template loads."""
        path = create_example_config(tmp_path / "example.yaml")

        config = Config.load(path)

        assert config.search_filter.species == "Mantis religiosa"
        assert config.username == "my_account"
        assert yaml.safe_load(EXAMPLE_CONFIG)["output"]["format"] == "csv"
