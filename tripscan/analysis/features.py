"""
Map features derived from a TimeMap, for the web map and the OpenLayers export.
"""
from tripscan.ingest.timemap import TimeMap
from tripscan.utils.validate import MapFeature


def map_features(time_map: TimeMap) -> list[MapFeature]:
    """
    One feature per bucket, in time order: the bucket's addresses joined by
    commas, placed at the bucket's first fix.
    """
    features: list[MapFeature] = []
    for ts in sorted(time_map):
        records = time_map[ts]
        if not records:
            continue
        fix = records[0].fix
        features.append(
            MapFeature(
                name=",".join(r.packet.src for r in records),
                lat=fix.latitude,
                lon=fix.longitude,
            )
        )
    return features


def render_openlayers(features: list[MapFeature]) -> str:
    """
    Render features as a `var mapFeatures = [...]` script for an OpenLayers page.
    """
    lines = ["var mapFeatures = ["]
    for f in features:
        lines.append(
            f"new ol.Feature({{name : '{f.name}', "
            f"geometry: new ol.geom.Point(ol.proj.fromLonLat([{f.lon:g}, {f.lat:g}]))}}),"
        )
    lines.append("]")
    return "\n".join(lines) + "\n"
