"""
Pydantic schemas for roof leads, their images and viewport queries.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from roof_finder.models.roof_lead import ConditionLabel, RoofLeadStatus
from roof_finder.models.task import TaskPriority
from roof_finder.schemas.geometry import Geometry


# ── Lead input schemas ─────────────────────────────────────────────────────────

class RoofLeadCreate(BaseModel):
    """
    Payload for a freshly drawn lead.

    ``name`` and ``geometry`` are optional here so the service can reject
    them with its own ValidationError message.
    """
    name: Optional[str] = None
    geometry: Optional[Geometry] = Field(
        None, validation_alias=AliasChoices("geometry", "geojson")
    )
    condition_label: ConditionLabel = ConditionLabel.OTHER
    condition_score: int = Field(1, ge=1, le=5)
    tags: List[str] = []
    notes: Optional[str] = ""
    address: Optional[str] = ""
    city: Optional[str] = ""
    state: Optional[str] = ""
    zip_code: Optional[str] = ""
    estimated_sqft: Optional[float] = Field(None, ge=0)
    estimated_repair_cost: Optional[float] = Field(None, ge=0)


class RoofLeadUpdate(BaseModel):
    """Editable fields; anything else in the payload is ignored."""
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = Field(None, max_length=255)
    condition_label: Optional[ConditionLabel] = None
    condition_score: Optional[int] = Field(None, ge=1, le=5)
    status: Optional[RoofLeadStatus] = None
    tags: Optional[List[str]] = None
    notes: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    estimated_sqft: Optional[float] = Field(None, ge=0)
    estimated_repair_cost: Optional[float] = Field(None, ge=0)
    linked_prospect_id: Optional[uuid.UUID] = None
    linked_account_id: Optional[uuid.UUID] = None
    linked_property_id: Optional[uuid.UUID] = None


# ── Query schema ───────────────────────────────────────────────────────────────

class LeadQuery(BaseModel):
    """Viewport + attribute filters for listing leads"""
    bbox: Optional[List[float]] = Field(
        None, description="[minLng, minLat, maxLng, maxLat]; None means unbounded"
    )
    search: str = ""
    status: Optional[RoofLeadStatus] = None
    condition_label: Optional[ConditionLabel] = None
    tags: List[str] = []
    min_score: Optional[int] = Field(None, ge=1, le=5)
    max_score: Optional[int] = Field(None, ge=1, le=5)
    limit: int = Field(50, ge=1, le=500)
    offset: int = Field(0, ge=0)

    @field_validator("bbox")
    @classmethod
    def check_bbox(cls, v: Optional[List[float]]) -> Optional[List[float]]:
        if v is None:
            return v
        if len(v) != 4:
            raise ValueError("bbox must be [minLng, minLat, maxLng, maxLat]")
        min_lng, min_lat, max_lng, max_lat = v
        if min_lng > max_lng or min_lat > max_lat:
            raise ValueError("bbox minimums must not exceed maximums")
        return v

    @model_validator(mode="after")
    def check_score_range(self) -> "LeadQuery":
        if self.min_score is not None and self.max_score is not None and self.min_score > self.max_score:
            raise ValueError("min_score must not exceed max_score")
        return self


# ── Output schemas ─────────────────────────────────────────────────────────────

class RoofLeadImageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    roof_lead_id: uuid.UUID
    file_name: str
    file_path: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    description: Optional[str] = None
    uploaded_by: Optional[uuid.UUID] = None
    created_at: datetime
    signed_url: Optional[str] = None


class RoofLeadOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    geometry: str
    geometry_type: str
    # Decoded geometry; None when the stored text could not be parsed
    coordinates: Optional[Geometry] = None
    condition_label: ConditionLabel
    condition_score: int
    status: RoofLeadStatus
    tags: List[str] = []
    notes: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    estimated_sqft: Optional[float] = None
    estimated_repair_cost: Optional[float] = None
    linked_prospect_id: Optional[uuid.UUID] = None
    linked_account_id: Optional[uuid.UUID] = None
    linked_property_id: Optional[uuid.UUID] = None
    created_by: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime


class LinkedProspect(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    status: str


class LinkedProperty(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    address: str


class RoofLeadDetail(RoofLeadOut):
    images: List[RoofLeadImageOut] = []
    linked_prospect: Optional[LinkedProspect] = None
    linked_property: Optional[LinkedProperty] = None


class CreatedLead(BaseModel):
    id: uuid.UUID


# ── Conversion schemas ─────────────────────────────────────────────────────────

class PropertyFromLeadRequest(BaseModel):
    account_id: Optional[uuid.UUID] = None


class FollowUpTaskRequest(BaseModel):
    due_date: Optional[datetime] = None
    due_in_days: Optional[int] = Field(None, ge=0, le=365)
    priority: Optional[TaskPriority] = None
    notes: Optional[str] = None


class ProspectConversion(BaseModel):
    roof_lead_id: uuid.UUID
    prospect_id: uuid.UUID


class PropertyConversion(BaseModel):
    roof_lead_id: uuid.UUID
    property_id: uuid.UUID
