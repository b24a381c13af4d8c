"""
Drawing Controller
Turns map clicks into a finished Point or Polygon.

States: Idle -> PlacingPoint | DrawingPolygon(vertices) -> Idle.
The controller never renders anything; the finished geometry is simply the
return value of the call that completed it.
"""
from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from roof_finder.core.config import settings
from roof_finder.core.exceptions import ValidationError
from roof_finder.schemas.geometry import PointGeometry, PolygonGeometry, validate_position
from roof_finder.services import geometry_codec

logger = logging.getLogger(__name__)

ABORT_KEYS = {"Escape", "Esc"}

Coordinate = Sequence[float]


def wrap_longitude(lng: float) -> float:
    """Fold a longitude from a repeated world copy back into [-180, 180]."""
    if -180.0 <= lng <= 180.0:
        return lng
    return ((lng + 180.0) % 360.0) - 180.0


class DrawingMode(str, enum.Enum):
    IDLE = "idle"
    POINT = "point"
    POLYGON = "polygon"


@dataclass
class DrawingSession:
    mode: DrawingMode = DrawingMode.IDLE
    vertices: List[List[float]] = field(default_factory=list)


class DrawingController:
    def __init__(self, snap_tolerance: Optional[float] = None):
        self.snap_tolerance = (
            settings.POLYGON_SNAP_TOLERANCE if snap_tolerance is None else snap_tolerance
        )
        self.session = DrawingSession()

    # ── State ─────────────────────────────────────────────────────────────────

    @property
    def mode(self) -> DrawingMode:
        return self.session.mode

    @property
    def vertices(self) -> List[List[float]]:
        return list(self.session.vertices)

    @property
    def is_drawing(self) -> bool:
        return self.session.mode != DrawingMode.IDLE

    @property
    def can_finish(self) -> bool:
        """Polygon finish is only allowed with at least 3 vertices."""
        return self.session.mode == DrawingMode.POLYGON and len(self.session.vertices) >= 3

    # ── Transitions ───────────────────────────────────────────────────────────

    def start(self, mode: Union[DrawingMode, str]) -> None:
        """Enter point or polygon mode, discarding anything pending."""
        mode = DrawingMode(mode)
        if mode == DrawingMode.IDLE:
            self.cancel()
            return
        self.session = DrawingSession(mode=mode)
        logger.debug(f"Drawing started: {mode.value}")

    def click(self, coord: Coordinate) -> Optional[Union[PointGeometry, PolygonGeometry]]:
        """
        Feed one map click. Longitudes from wrapped world copies are folded
        back into [-180, 180]; a click that is still not a valid position is
        ignored and leaves the drawing as it was.
        """
        if self.session.mode == DrawingMode.IDLE:
            return None

        try:
            vertex = validate_position([wrap_longitude(float(coord[0])), float(coord[1])])
        except (TypeError, ValueError, IndexError) as e:
            logger.debug(f"Ignoring click at {coord!r}: {e}")
            return None

        if self.session.mode == DrawingMode.POINT:
            self._reset()
            return PointGeometry(coordinates=vertex)

        if self.can_finish and self._near_first_vertex(vertex):
            return self.finish()
        self.session.vertices.append(vertex)
        return None

    def finish(self) -> Optional[PolygonGeometry]:
        if not self.can_finish:
            # Callers gate the finish action on vertex count; nothing to report
            return None
        try:
            payload = geometry_codec.encode({"type": "Polygon", "coordinates": [self.session.vertices]})
        except ValidationError as e:
            # e.g. three clicks on the same spot: fewer than 3 distinct vertices
            logger.debug(f"Polygon not finished: {e}")
            return None
        self._reset()
        return PolygonGeometry(**payload)

    def double_click(self, coord: Optional[Coordinate] = None) -> Optional[PolygonGeometry]:
        """A double activation is a finish; the click position itself is not added."""
        if self.session.mode != DrawingMode.POLYGON:
            return None
        return self.finish()

    def cancel(self) -> None:
        if self.is_drawing:
            logger.debug("Drawing cancelled")
        self._reset()

    def handle_key(self, key: str) -> bool:
        """Cancel on the abort key. Returns True when the key was consumed."""
        if key in ABORT_KEYS and self.is_drawing:
            self.cancel()
            return True
        return False

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _reset(self) -> None:
        self.session = DrawingSession()

    def _near_first_vertex(self, vertex: List[float]) -> bool:
        first = self.session.vertices[0]
        return math.hypot(vertex[0] - first[0], vertex[1] - first[1]) < self.snap_tolerance
