"""
Raw localization layers for a search session.

The portal exports record localizations as zipped ESRI shapefiles with one
layer per geometry kind. Each layer holds only geometries and the
localization id, in S-JTSK (EPSG:5514).
"""

from __future__ import annotations

import io
import tempfile
import zipfile
from pathlib import Path

import geopandas as gpd

from ndop_downloader.api import LocationError, NDOPClient
from ndop_downloader.search import SessionDescriptor
from ndop_downloader.utils import get_logger

# Layers are returned in this order
LAYER_ORDER = ("points", "lines", "polygons")

_GEOMETRY_KINDS = {
    "Point": "points",
    "MultiPoint": "points",
    "LineString": "lines",
    "MultiLineString": "lines",
    "Polygon": "polygons",
    "MultiPolygon": "polygons",
}


def layer_kind(name: str, layer: gpd.GeoDataFrame) -> str | None:
    """
    Classify a layer as points, lines or polygons.

    Uses the first geometry's type, falling back to the file name for
    empty layers.
    """
    geom_types = layer.geom_type.dropna()
    if len(geom_types):
        return _GEOMETRY_KINDS.get(geom_types.iloc[0])

    lowered = name.lower()
    for kind in LAYER_ORDER:
        if kind.rstrip("s") in lowered:
            return kind
    return None


def read_layers(archive: bytes) -> list[gpd.GeoDataFrame]:
    """
    Read every shapefile layer from a zip archive.

    Args:
        archive: Zip archive bytes

    Returns:
        GeoDataFrames ordered points, lines, polygons; unclassified layers last

    Raises:
        LocationError: If the archive is invalid or contains no layers
    """
    try:
        zip_file = zipfile.ZipFile(io.BytesIO(archive))
    except zipfile.BadZipFile as e:
        raise LocationError(f"Localization export is not a zip archive: {e}") from e

    layers = []

    with zip_file, tempfile.TemporaryDirectory(prefix="ndop_") as tmp_dir:
        zip_file.extractall(tmp_dir)

        for shp_path in sorted(Path(tmp_dir).rglob("*.shp")):
            layer = gpd.read_file(shp_path)
            kind = layer_kind(shp_path.stem, layer)
            rank = LAYER_ORDER.index(kind) if kind in LAYER_ORDER else len(LAYER_ORDER)
            layers.append((rank, shp_path.stem, layer))

    if not layers:
        raise LocationError("Localization export contains no shapefile layers")

    layers.sort(key=lambda item: (item[0], item[1]))
    return [layer for _, _, layer in layers]


class LocationFetcher:
    """
    Download the raw localization layers of a search session.

    Example:
        fetcher = LocationFetcher(client)
        points, lines, polygons = fetcher.fetch(session)
    """

    def __init__(self, client: NDOPClient):
        """
        Initialize the fetcher.

        Args:
            client: NDOPClient used for the download
        """
        self.client = client
        self.logger = get_logger()

    def fetch(self, session: SessionDescriptor) -> list[gpd.GeoDataFrame]:
        """
        Download and read the localization layers.

        Args:
            session: Open search session

        Returns:
            List of GeoDataFrames (points, lines, polygons)
        """
        self.logger.info("Downloading localizations...")
        archive = self.client.fetch_locations_archive(session)
        layers = read_layers(archive)
        self.logger.info(
            f"Read {len(layers)} localization layers "
            f"({sum(len(layer) for layer in layers):,} geometries)"
        )
        return layers
