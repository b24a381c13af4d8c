"""
Payloads exchanged with the CRM collaborators (prospects, properties, tasks).
"""
import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from roof_finder.models.task import TaskPriority, TaskStatus


class ProspectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    notes: Optional[str] = None
    tags: List[str] = []
    source: Optional[str] = None
    status: str = "uncontacted"


class ProspectOut(ProspectCreate):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    created_at: datetime


class PropertyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    address: str = Field(..., min_length=1)
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    building_type: str = "Commercial Office"
    square_footage: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None
    account_id: Optional[uuid.UUID] = None


class PropertyOut(PropertyCreate):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    created_at: datetime


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    due_date: datetime
    priority: TaskPriority = TaskPriority.MEDIUM
    category: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    account_id: Optional[uuid.UUID] = None
    property_id: Optional[uuid.UUID] = None
    prospect_id: Optional[uuid.UUID] = None
    roof_lead_id: Optional[uuid.UUID] = None


class TaskOut(TaskCreate):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    created_at: datetime
