"""
Structured geometry used for editing, rendering and submission.

GeoJSON-shaped: ``{"type": "Point", "coordinates": [lng, lat]}`` or
``{"type": "Polygon", "coordinates": [[[lng, lat], ...]]}`` (one ring, no holes).
"""
from __future__ import annotations

import math
from typing import List, Literal, Union

from pydantic import BaseModel, Field, field_validator
from typing_extensions import Annotated


def validate_position(position: List[float]) -> List[float]:
    if len(position) != 2:
        raise ValueError("A position must be [lng, lat]")
    lng, lat = float(position[0]), float(position[1])
    if not (math.isfinite(lng) and math.isfinite(lat)):
        raise ValueError("Coordinates must be finite numbers")
    if not -180.0 <= lng <= 180.0:
        raise ValueError(f"Longitude {lng} out of range")
    if not -90.0 <= lat <= 90.0:
        raise ValueError(f"Latitude {lat} out of range")
    return [lng, lat]


class PointGeometry(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: List[float]

    @field_validator("coordinates")
    @classmethod
    def check_position(cls, v: List[float]) -> List[float]:
        return validate_position(v)


class PolygonGeometry(BaseModel):
    type: Literal["Polygon"] = "Polygon"
    coordinates: List[List[List[float]]] = Field(
        ...,
        description="A single ring [[[lng, lat], ...]]; may be submitted open",
    )

    @field_validator("coordinates")
    @classmethod
    def check_ring(cls, v: List[List[List[float]]]) -> List[List[List[float]]]:
        if len(v) != 1:
            raise ValueError("Only simple polygons with exactly one ring are supported")
        ring = [validate_position(p) for p in v[0]]
        if len({tuple(p) for p in ring}) < 3:
            raise ValueError("A polygon needs at least 3 distinct vertices")
        return [ring]

    @property
    def ring(self) -> List[List[float]]:
        return self.coordinates[0]

    @property
    def is_closed(self) -> bool:
        return self.ring[0] == self.ring[-1]


Geometry = Annotated[Union[PointGeometry, PolygonGeometry], Field(discriminator="type")]
