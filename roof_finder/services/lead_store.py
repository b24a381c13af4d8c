"""
Lead Store
In-memory set of visible leads plus the selected lead's detail.

Bulk replacement belongs to the viewport query engine; everything else
(edits, conversions, deletes) goes through single-record patches.
"""
from __future__ import annotations

import logging
import uuid
from typing import Dict, List, Optional, Union

from roof_finder.schemas.geometry import PointGeometry
from roof_finder.schemas.roof_lead import RoofLeadDetail, RoofLeadOut
from roof_finder.services import geometry_codec

logger = logging.getLogger(__name__)

LeadRecord = Union[RoofLeadOut, RoofLeadDetail]


class LeadStore:
    def __init__(self):
        self._leads: List[RoofLeadOut] = []
        self.selected: Optional[RoofLeadDetail] = None
        self.applied_sequence: int = 0

    # ── Reads ─────────────────────────────────────────────────────────────────

    @property
    def leads(self) -> List[RoofLeadOut]:
        return list(self._leads)

    def __len__(self) -> int:
        return len(self._leads)

    def get(self, lead_id: uuid.UUID) -> Optional[RoofLeadOut]:
        for lead in self._leads:
            if lead.id == lead_id:
                return lead
        return None

    def markers(self) -> List[Dict]:
        """Marker points for the map; leads without decodable geometry get none."""
        markers = []
        for lead in self._leads:
            point: Optional[PointGeometry] = geometry_codec.marker_point(lead.coordinates)
            if point is None:
                continue
            markers.append({
                "id": lead.id,
                "geometry": point,
                "name": lead.name,
                "condition_label": lead.condition_label,
                "condition_score": lead.condition_score,
                "status": lead.status,
            })
        return markers

    # ── Bulk writer (query engine only) ───────────────────────────────────────

    def replace_all(self, leads: List[RoofLeadOut], sequence: int) -> None:
        self._leads = list(leads)
        self.applied_sequence = sequence
        logger.debug(f"Lead store replaced with {len(leads)} leads (seq={sequence})")

    def append_page(self, leads: List[RoofLeadOut], sequence: int) -> None:
        known = {lead.id for lead in self._leads}
        self._leads.extend(lead for lead in leads if lead.id not in known)
        self.applied_sequence = sequence

    # ── Single-record patches ─────────────────────────────────────────────────

    def patch(self, lead: LeadRecord) -> None:
        """Replace one lead in place (and the selection when it is the same lead)."""
        summary = RoofLeadOut.model_validate(lead.model_dump())
        for i, existing in enumerate(self._leads):
            if existing.id == lead.id:
                self._leads[i] = summary
                break
        if self.selected is not None and self.selected.id == lead.id:
            if isinstance(lead, RoofLeadDetail):
                self.selected = lead
            else:
                self.selected = RoofLeadDetail.model_validate(
                    {**self.selected.model_dump(), **lead.model_dump()}
                )

    def insert(self, lead: RoofLeadOut) -> None:
        """Put a just-created lead at the top until the next refresh reconciles it."""
        self._leads = [lead] + [existing for existing in self._leads if existing.id != lead.id]

    def remove(self, lead_id: uuid.UUID) -> None:
        self._leads = [lead for lead in self._leads if lead.id != lead_id]
        if self.selected is not None and self.selected.id == lead_id:
            self.selected = None

    # ── Selection ─────────────────────────────────────────────────────────────

    def select(self, detail: RoofLeadDetail) -> None:
        self.selected = detail

    def clear_selection(self) -> None:
        self.selected = None
