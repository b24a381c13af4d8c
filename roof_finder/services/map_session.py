"""
Map Session
One per active map. Owns the drawing controller, the viewport query engine
and the lead store, and receives notifications from the map engine:

- ``on_bbox_settled`` once panning/zooming has come to rest
- ``on_map_click`` / ``on_double_click`` for drawing gestures
- ``on_cancel_key`` for the abort key

Finished drawings become new leads; edits and conversions patch the store
one record at a time.
"""
import logging
import uuid
from datetime import datetime
from typing import Any, List, Optional, Sequence, Union

from roof_finder.schemas.common import ServiceResult
from roof_finder.schemas.geometry import PointGeometry, PolygonGeometry
from roof_finder.schemas.roof_lead import RoofLeadDetail, RoofLeadOut
from roof_finder.services import geometry_codec
from roof_finder.services.drawing_controller import DrawingController, DrawingMode
from roof_finder.services.lead_store import LeadStore
from roof_finder.services.roof_leads_client import RoofLeadsClient
from roof_finder.services.viewport_query import ViewportQueryEngine

logger = logging.getLogger(__name__)

GeometryValue = Union[PointGeometry, PolygonGeometry]

DEFAULT_LEAD_NAMES = {"Point": "New Pin Lead", "Polygon": "New Area Lead"}


class MapSession:
    def __init__(
        self,
        client: RoofLeadsClient,
        debounce_seconds: Optional[float] = None,
        page_size: Optional[int] = None,
        snap_tolerance: Optional[float] = None,
    ):
        self.client = client
        self.store = LeadStore()
        self.drawing = DrawingController(snap_tolerance=snap_tolerance)
        self.query = ViewportQueryEngine(
            client.list_leads, self.store, debounce_seconds=debounce_seconds, page_size=page_size
        )

    # ── Map notifications ─────────────────────────────────────────────────────

    async def on_bbox_settled(self, bbox: Optional[List[float]]) -> ServiceResult:
        return await self.query.set_bbox(bbox)

    async def on_map_click(self, coord: Sequence[float]) -> Optional[ServiceResult]:
        """Feed a click to the drawing controller; returns the create result when a drawing completed."""
        geometry = self.drawing.click(coord)
        if geometry is None:
            return None
        return await self.submit_geometry(geometry)

    async def on_double_click(self, coord: Optional[Sequence[float]] = None) -> Optional[ServiceResult]:
        geometry = self.drawing.double_click(coord)
        if geometry is None:
            return None
        return await self.submit_geometry(geometry)

    def on_cancel_key(self, key: str) -> bool:
        return self.drawing.handle_key(key)

    # ── Drawing ───────────────────────────────────────────────────────────────

    def start_drawing(self, mode: Union[DrawingMode, str]) -> None:
        self.drawing.start(mode)

    async def finish_drawing(self) -> Optional[ServiceResult]:
        geometry = self.drawing.finish()
        if geometry is None:
            return None
        return await self.submit_geometry(geometry)

    def cancel_drawing(self) -> None:
        self.drawing.cancel()

    async def submit_geometry(self, geometry: GeometryValue, **metadata: Any) -> ServiceResult:
        """Create a lead for a finished drawing, show it, then reconcile with the server."""
        kind = "point" if geometry.type == "Point" else "polygon"
        payload = {
            "name": DEFAULT_LEAD_NAMES[geometry.type],
            "geometry": geometry_codec.encode(geometry),
            "condition_label": "other",
            "condition_score": 1,
            "tags": ["new"],
            "notes": f"Created via map drawing ({kind})",
        }
        payload.update(metadata)

        created = await self.client.create_lead(payload)
        if not created.success:
            logger.warning(f"Failed to create lead from drawing: {created.error}")
            return created

        lead_id = uuid.UUID(str(created.data["id"]))
        detail = await self.client.get_lead(lead_id)
        if detail.success:
            lead = RoofLeadDetail.model_validate(detail.data)
            if geometry_codec.bbox_intersects(self.query.bbox, geometry_codec.envelope(geometry)):
                self.store.insert(RoofLeadOut.model_validate(lead.model_dump()))
            self.store.select(lead)

        await self.query.refresh()
        return created

    # ── Filters and paging ────────────────────────────────────────────────────

    async def set_filters(self, **partial: Any) -> Optional[ServiceResult]:
        return await self.query.set_filters(**partial)

    async def load_more(self) -> ServiceResult:
        return await self.query.load_more()

    # ── Single-lead actions ───────────────────────────────────────────────────

    async def select_lead(self, lead_id: uuid.UUID) -> ServiceResult:
        result = await self.client.get_lead(lead_id)
        if result.success:
            self.store.select(RoofLeadDetail.model_validate(result.data))
        return result

    def clear_selection(self) -> None:
        self.store.clear_selection()

    async def _reload(self, lead_id: uuid.UUID) -> None:
        result = await self.client.get_lead(lead_id)
        if result.success:
            self.store.patch(RoofLeadDetail.model_validate(result.data))

    async def update_lead(self, lead_id: uuid.UUID, changes: dict) -> ServiceResult:
        result = await self.client.update_lead(lead_id, changes)
        if result.success:
            self.store.patch(RoofLeadDetail.model_validate(result.data))
        return result

    async def delete_lead(self, lead_id: uuid.UUID) -> ServiceResult:
        result = await self.client.delete_lead(lead_id)
        if result.success:
            self.store.remove(lead_id)
        return result

    async def convert_to_prospect(self, lead_id: uuid.UUID) -> ServiceResult:
        result = await self.client.convert_to_prospect(lead_id)
        if result.success:
            await self._reload(lead_id)
        return result

    async def create_property_from_lead(
        self, lead_id: uuid.UUID, account_id: Optional[uuid.UUID] = None
    ) -> ServiceResult:
        result = await self.client.create_property_from_lead(lead_id, account_id)
        if result.success:
            await self._reload(lead_id)
        return result

    async def create_follow_up_task(
        self,
        lead_id: uuid.UUID,
        due_date: Optional[datetime] = None,
        due_in_days: Optional[int] = None,
        priority: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ServiceResult:
        return await self.client.create_follow_up_task(
            lead_id, due_date=due_date, due_in_days=due_in_days, priority=priority, notes=notes
        )

    async def upload_image(
        self,
        lead_id: uuid.UUID,
        file_name: str,
        content: bytes,
        mime_type: str,
        description: Optional[str] = None,
    ) -> ServiceResult:
        result = await self.client.upload_image(lead_id, file_name, content, mime_type, description)
        if result.success and self.store.selected is not None and self.store.selected.id == lead_id:
            await self._reload(lead_id)
        return result

    async def delete_image(self, lead_id: uuid.UUID, image_id: uuid.UUID) -> ServiceResult:
        result = await self.client.delete_image(lead_id, image_id)
        if result.success and self.store.selected is not None and self.store.selected.id == lead_id:
            await self._reload(lead_id)
        return result

    # ── Teardown ──────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Drop pending input and wait for queued queries to settle."""
        self.drawing.cancel()
        self.query.close()
        await self.query.flush()
