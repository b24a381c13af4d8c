"""
Geometry Codec
Translates between the store's WKT text and structured Point/Polygon values.

The grammar is deliberately bounded: ``POINT(lng lat)`` and a single-ring
``POLYGON((lng lat, ...))``, optionally prefixed with ``SRID=<n>;``. Anything
else (multi-geometries, holes, Z/M coordinates, garbage) is a DecodeError.
"""
from __future__ import annotations

import logging
import re
from typing import Any, List, Optional, Tuple, Union

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from roof_finder.core.exceptions import DecodeError, ValidationError
from roof_finder.schemas.geometry import Geometry, PointGeometry, PolygonGeometry

logger = logging.getLogger(__name__)

GeometryValue = Union[PointGeometry, PolygonGeometry]

_geometry_adapter = TypeAdapter(Geometry)

# ── Grammar ────────────────────────────────────────────────────────────────────

# Each digit run has exactly one way to match, so failed matches stay linear
_NUM = r"[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?"
_POS = rf"{_NUM}\s+{_NUM}"
_SRID = r"(?:SRID\s*=\s*\d+\s*;\s*)?"

# Far beyond any hand-drawn roof outline
MAX_WKT_LENGTH = 100_000

_POINT_RE = re.compile(rf"^\s*{_SRID}POINT\s*\(\s*({_NUM})\s+({_NUM})\s*\)\s*$", re.IGNORECASE)
_POLYGON_RE = re.compile(
    rf"^\s*{_SRID}POLYGON\s*\(\s*\(\s*({_POS}(?:\s*,\s*{_POS})*)\s*\)\s*\)\s*$",
    re.IGNORECASE,
)


def _parse_positions(text: str) -> List[List[float]]:
    return [[float(n) for n in pair.split()] for pair in text.split(",")]


def _close_ring(ring: List[List[float]]) -> List[List[float]]:
    if ring and ring[0] != ring[-1]:
        return ring + [list(ring[0])]
    return ring


def _closed(geometry: GeometryValue) -> GeometryValue:
    if isinstance(geometry, PolygonGeometry) and not geometry.is_closed:
        return PolygonGeometry(coordinates=[_close_ring(geometry.ring)])
    return geometry


def _record(errors: Optional[list], message: str, raw: Any) -> None:
    logger.warning(f"Geometry decode failed: {message} (raw={str(raw)[:80]!r})")
    if errors is not None:
        errors.append(DecodeError(message, raw=raw))


# ── Public API ─────────────────────────────────────────────────────────────────

def decode(raw: Any, errors: Optional[list] = None) -> Optional[GeometryValue]:
    """
    Decode stored geometry into a Point or Polygon.

    Accepts WKT text or an already structured GeoJSON-style mapping/model.
    Returns None on anything else and, when ``errors`` is given, appends a
    DecodeError to it. Never raises.
    """
    try:
        if raw is None:
            _record(errors, "geometry is empty", raw)
            return None

        if isinstance(raw, (PointGeometry, PolygonGeometry)):
            return _closed(raw)

        if isinstance(raw, dict):
            return _closed(_geometry_adapter.validate_python(raw))

        if not isinstance(raw, str):
            _record(errors, f"unsupported geometry value of type {type(raw).__name__}", raw)
            return None

        if len(raw) > MAX_WKT_LENGTH:
            _record(errors, f"geometry text longer than {MAX_WKT_LENGTH} characters", raw)
            return None

        match = _POINT_RE.match(raw)
        if match:
            return PointGeometry(coordinates=[float(match.group(1)), float(match.group(2))])

        match = _POLYGON_RE.match(raw)
        if match:
            ring = _close_ring(_parse_positions(match.group(1)))
            return PolygonGeometry(coordinates=[ring])

        _record(errors, "not a POINT or simple POLYGON", raw)
        return None

    except (PydanticValidationError, ValueError) as e:
        _record(errors, f"invalid geometry: {e}", raw)
        return None


def coerce(geometry: Any) -> GeometryValue:
    """Validate caller-supplied geometry, raising ValidationError when malformed."""
    if isinstance(geometry, (PointGeometry, PolygonGeometry)):
        return geometry
    try:
        return _geometry_adapter.validate_python(geometry)
    except PydanticValidationError as e:
        raise ValidationError(str(e.errors()[0].get("msg", e)), field="geometry")


def encode(geometry: Any) -> dict:
    """
    Build the submission payload for a geometry.

    Point coordinates pass through unchanged; an open Polygon ring gets a
    closing vertex equal to its first.
    """
    geometry = coerce(geometry)
    if isinstance(geometry, PointGeometry):
        return {"type": "Point", "coordinates": list(geometry.coordinates)}
    ring = _close_ring([list(p) for p in geometry.ring])
    return {"type": "Polygon", "coordinates": [ring]}


def _fmt(value: float) -> str:
    return repr(float(value))


def to_wkt(geometry: Any) -> str:
    """Serialize a geometry into the store's WKT text (rings closed)."""
    payload = encode(geometry)
    if payload["type"] == "Point":
        lng, lat = payload["coordinates"]
        return f"POINT({_fmt(lng)} {_fmt(lat)})"
    ring = ", ".join(f"{_fmt(lng)} {_fmt(lat)}" for lng, lat in payload["coordinates"][0])
    return f"POLYGON(({ring}))"


def envelope(geometry: Any) -> Tuple[float, float, float, float]:
    """Bounding box as (min_lng, min_lat, max_lng, max_lat)."""
    geometry = coerce(geometry)
    if isinstance(geometry, PointGeometry):
        lng, lat = geometry.coordinates
        return lng, lat, lng, lat
    lngs = [p[0] for p in geometry.ring]
    lats = [p[1] for p in geometry.ring]
    return min(lngs), min(lats), max(lngs), max(lats)


def marker_point(geometry: Optional[GeometryValue]) -> Optional[PointGeometry]:
    """Point used to place a map marker: the point itself or the ring's vertex average."""
    if geometry is None:
        return None
    if isinstance(geometry, PointGeometry):
        return geometry
    ring = geometry.ring[:-1] if geometry.is_closed else geometry.ring
    lng = sum(p[0] for p in ring) / len(ring)
    lat = sum(p[1] for p in ring) / len(ring)
    return PointGeometry(coordinates=[lng, lat])


def bbox_intersects(
    bbox: Optional[List[float]], bounds: Tuple[float, float, float, float]
) -> bool:
    """True when ``bounds`` touches the [minLng, minLat, maxLng, maxLat] box (None = unbounded)."""
    if bbox is None:
        return True
    min_lng, min_lat, max_lng, max_lat = bbox
    b_min_lng, b_min_lat, b_max_lng, b_max_lat = bounds
    return not (
        b_max_lng < min_lng or b_min_lng > max_lng or b_max_lat < min_lat or b_min_lat > max_lat
    )
