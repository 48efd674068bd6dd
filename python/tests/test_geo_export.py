from __future__ import annotations

import json

import pytest

from trafficstats import Address, EndpointRecord, GeoLookup, MapExportError, TemplateError
from trafficstats.geo_export import (
    IPMAP_DATA_CLOSE,
    IPMAP_DATA_OPEN,
    MapStatus,
    build_feature,
    build_feature_collection,
    export_map,
    extract_embedded_json,
    load_template,
)


def _endpoint(*, geo=None, address=b"\x08\x08\x04\x04") -> EndpointRecord:
    return EndpointRecord(address=Address(address), tx_frames=1, tx_bytes=1543, geo=geo)


def _google_geo(**overrides) -> GeoLookup:
    values = dict(
        found=True,
        latitude=37.75,
        longitude=-97.82,
        country="United States",
        city="Wichita",
        as_number=15169,
        as_org="Google LLC",
        accuracy=1000,
    )
    values.update(overrides)
    return GeoLookup(**values)


def test_single_endpoint_feature():
    collection = build_feature_collection([_endpoint(geo=_google_geo())])

    assert collection["type"] == "FeatureCollection"
    assert len(collection["features"]) == 1
    feature = collection["features"][0]
    assert feature["geometry"] == {"type": "Point", "coordinates": [-97.82, 37.75]}
    properties = feature["properties"]
    assert properties["ip"] == "8.8.4.4"
    assert properties["packets"] == 1
    assert properties["bytes"] == 1543
    assert properties["autonomous_system_number"] == 15169
    assert properties["autonomous_system_organization"] == "Google LLC"
    assert properties["city"] == "Wichita"
    assert properties["country"] == "United States"
    assert properties["radius"] == 1000


def test_feature_skips_partial_and_omitted_fields():
    feature = build_feature(
        _endpoint(geo=_google_geo(as_org=None, accuracy=None, country=None)),
        omit_city=True,
    )
    assert feature is not None
    assert list(feature["properties"]) == ["ip", "packets", "bytes"]


@pytest.mark.parametrize(
    "geo",
    [
        None,
        GeoLookup(found=False, latitude=1.0, longitude=1.0),
        GeoLookup(found=True, latitude=None, longitude=1.0),
        GeoLookup(found=True, latitude=float("nan"), longitude=1.0),
        GeoLookup(found=True, latitude=91.0, longitude=1.0),
    ],
)
def test_endpoints_without_coordinates_are_skipped(geo):
    assert build_feature(_endpoint(geo=geo)) is None


def test_nothing_to_map_writes_nothing(tmp_path):
    destination = tmp_path / "map.html"
    result = export_map(destination, [_endpoint(), _endpoint(geo=GeoLookup(found=False))])

    assert result.status is MapStatus.NOTHING_TO_MAP
    assert result.nothing_to_map
    assert result.count == 0
    assert not destination.exists()
    assert list(tmp_path.iterdir()) == []


def test_json_export(tmp_path):
    destination = tmp_path / "endpoints.json"
    result = export_map(destination, [_endpoint(geo=_google_geo()), _endpoint()])

    assert result.status is MapStatus.WRITTEN
    assert result.count == 1
    assert result.path == destination
    document = json.loads(destination.read_text(encoding="utf-8"))
    assert document["features"][0]["geometry"]["coordinates"] == [-97.82, 37.75]
    assert document["features"][0]["properties"]["bytes"] == 1543
    assert [p.name for p in tmp_path.iterdir()] == ["endpoints.json"]


def test_html_embeds_the_same_json(tmp_path):
    endpoints = [_endpoint(geo=_google_geo())]
    json_path = tmp_path / "standalone.json"
    html_path = tmp_path / "map.html"

    export_map(json_path, endpoints)
    export_map(html_path, endpoints, template="<html><body>map</body></html>")

    html = html_path.read_text(encoding="utf-8")
    assert html.startswith("<html><body>map</body></html>\n")
    assert IPMAP_DATA_OPEN in html
    assert html.endswith(IPMAP_DATA_CLOSE)
    assert extract_embedded_json(html) == json_path.read_text(encoding="utf-8")


def test_bundled_template_is_used_by_default(tmp_path):
    destination = tmp_path / "map.html"
    export_map(destination, [_endpoint(geo=_google_geo())], omit_city=True)

    html = destination.read_text(encoding="utf-8")
    assert "ipmap-data" in load_template()
    embedded = json.loads(extract_embedded_json(html))
    assert "city" not in embedded["features"][0]["properties"]


def test_unwritable_destination_raises(tmp_path):
    destination = tmp_path / "missing" / "map.json"
    with pytest.raises(MapExportError) as excinfo:
        export_map(destination, [_endpoint(geo=_google_geo())])

    assert excinfo.value.path == destination
    assert excinfo.value.reason is not None
    assert str(destination) in str(excinfo.value)
    assert not destination.exists()


def test_missing_template_raises(tmp_path):
    with pytest.raises(TemplateError):
        load_template(tmp_path / "nope.html")


def test_script_closers_are_escaped(tmp_path):
    endpoints = [_endpoint(geo=_google_geo(city="</script><b>x", as_org="A</B"))]
    json_path = tmp_path / "standalone.json"
    html_path = tmp_path / "map.html"

    export_map(json_path, endpoints)
    export_map(html_path, endpoints, template="<html></html>")

    standalone = json_path.read_text(encoding="utf-8")
    assert "</" not in standalone
    html = html_path.read_text(encoding="utf-8")
    assert extract_embedded_json(html) == standalone
    assert html.count("</script>") == 1
    properties = json.loads(standalone)["features"][0]["properties"]
    assert properties["city"] == "</script><b>x"
    assert properties["autonomous_system_organization"] == "A</B"
