"""GeoJSON export of geolocated endpoints.

A document looks like::

    {
      "type": "FeatureCollection",
      "features": [
        {
          "type": "Feature",
          "geometry": {"type": "Point", "coordinates": [-97.821999, 37.750999]},
          "properties": {
            "ip": "8.8.4.4",
            "autonomous_system_number": 15169,
            "autonomous_system_organization": "Google LLC",
            "country": "United States",
            "radius": 1000,
            "packets": 1,
            "bytes": 1543
          }
        }
      ]
    }

Coordinates are ``[longitude, latitude]``.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from importlib import resources
from pathlib import Path
from typing import IO, Any, Dict, Iterable, List, Optional, Union

from .errors import MapExportError, TemplateError
from .metrics import total_bytes, total_frames
from .records import EndpointRecord

logger = logging.getLogger(__name__)

IPMAP_TEMPLATE = "ipmap.html"
IPMAP_DATA_OPEN = '<script id="ipmap-data" type="application/json">\n'
IPMAP_DATA_CLOSE = "</script>\n"


class MapStatus(Enum):
    WRITTEN = "written"
    NOTHING_TO_MAP = "nothing_to_map"


@dataclass
class MapExportResult:
    status: MapStatus
    count: int = 0
    path: Optional[Path] = None

    @property
    def nothing_to_map(self) -> bool:
        return self.status is MapStatus.NOTHING_TO_MAP


# ---------------------------------------------------------------------------
def build_feature(endpoint: EndpointRecord, *, omit_city: bool = False) -> Optional[Dict[str, Any]]:
    """Feature for one endpoint, or ``None`` when it has no usable coordinates."""
    geo = endpoint.geo
    if geo is None or not geo.has_coords:
        return None

    properties: Dict[str, Any] = {"ip": str(endpoint.address)}
    if geo.as_number and geo.as_org:
        properties["autonomous_system_number"] = int(geo.as_number)
        properties["autonomous_system_organization"] = geo.as_org
    if geo.city and not omit_city:
        properties["city"] = geo.city
    if geo.country:
        properties["country"] = geo.country
    if geo.accuracy:
        properties["radius"] = geo.accuracy
    properties["packets"] = total_frames(endpoint)
    properties["bytes"] = total_bytes(endpoint)

    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [geo.longitude, geo.latitude]},
        "properties": properties,
    }


def build_feature_collection(
    endpoints: Iterable[EndpointRecord],
    *,
    omit_city: bool = False,
) -> Dict[str, Any]:
    features: List[Dict[str, Any]] = []
    for endpoint in endpoints:
        feature = build_feature(endpoint, omit_city=omit_city)
        if feature is not None:
            features.append(feature)
    return {"type": "FeatureCollection", "features": features}


def render_geojson(collection: Dict[str, Any]) -> str:
    """Indented JSON with ``</`` escaped so it can sit inside a script element."""
    text = json.dumps(collection, indent=4, ensure_ascii=False)
    return text.replace("</", "<\\/") + "\n"


def load_template(path: Optional[Union[str, Path]] = None) -> str:
    """Read the HTML map template, defaulting to the bundled ``ipmap.html``."""
    try:
        if path is None:
            return (
                resources.files("trafficstats")
                .joinpath("data")
                .joinpath(IPMAP_TEMPLATE)
                .read_text(encoding="utf-8")
            )
        return Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        source = path if path is not None else IPMAP_TEMPLATE
        raise TemplateError(f"Could not open base file {source} for reading: {exc}") from exc


def write_map(
    output: IO[str],
    collection: Dict[str, Any],
    *,
    json_only: bool,
    template: Optional[str] = None,
) -> None:
    """Write ``collection`` standalone or embedded after ``template``."""
    if not json_only:
        if template is None:
            template = load_template()
        output.write(template)
        if not template.endswith("\n"):
            output.write("\n")
        output.write(IPMAP_DATA_OPEN)
    output.write(render_geojson(collection))
    if not json_only:
        output.write(IPMAP_DATA_CLOSE)


def extract_embedded_json(html: str) -> str:
    """Return the JSON text between the map data markers of ``html``."""
    start = html.index(IPMAP_DATA_OPEN) + len(IPMAP_DATA_OPEN)
    end = html.index(IPMAP_DATA_CLOSE, start)
    return html[start:end]


def export_map(
    path: Union[str, Path],
    endpoints: Iterable[EndpointRecord],
    *,
    json_only: Optional[bool] = None,
    template: Optional[str] = None,
    omit_city: bool = False,
) -> MapExportResult:
    """Write a map of the geolocated ``endpoints`` to ``path``.

    ``json_only`` defaults to true for ``.json`` destinations. Nothing is
    written when no endpoint can be placed. The document is written to a
    temporary file next to ``path`` and moved into place once complete.
    """
    destination = Path(path)
    if json_only is None:
        json_only = destination.suffix.lower() == ".json"

    collection = build_feature_collection(endpoints, omit_city=omit_city)
    count = len(collection["features"])
    if count == 0:
        logger.warning("No endpoints available to map")
        return MapExportResult(MapStatus.NOTHING_TO_MAP)

    if not json_only and template is None:
        template = load_template()

    tmp_name: Optional[str] = None
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix="ipmap", suffix=destination.suffix, dir=destination.parent
        )
        with os.fdopen(fd, "w", encoding="utf-8") as output:
            write_map(output, collection, json_only=json_only, template=template)
        os.replace(tmp_name, destination)
        tmp_name = None
    except OSError as exc:
        raise MapExportError(destination, exc) from exc
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except OSError:
                logger.debug("Failed to remove temporary map file %s", tmp_name, exc_info=True)

    logger.info("Wrote %d map entries to %s", count, destination)
    return MapExportResult(MapStatus.WRITTEN, count=count, path=destination)


__all__ = [
    "IPMAP_DATA_OPEN",
    "IPMAP_DATA_CLOSE",
    "MapStatus",
    "MapExportResult",
    "build_feature",
    "build_feature_collection",
    "render_geojson",
    "load_template",
    "write_map",
    "extract_embedded_json",
    "export_map",
]
