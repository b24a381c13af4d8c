"""
CRM Collaborators
Minimal prospect, property and task creation used by the conversion workflow.
The full CRUD screens for these records live elsewhere in the CRM.
"""
import logging
import uuid
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from roof_finder.core.exceptions import TransportError, ValidationError
from roof_finder.models.property import Property
from roof_finder.models.prospect import Prospect
from roof_finder.models.task import Task
from roof_finder.schemas.common import ServiceResult
from roof_finder.schemas.crm import (
    PropertyCreate, PropertyOut, ProspectCreate, ProspectOut, TaskCreate, TaskOut,
)

logger = logging.getLogger(__name__)


class _CrmService:
    entity = "Record"

    def __init__(self, db: Session):
        self.db = db

    def _insert(self, record) -> None:
        try:
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create {self.entity.lower()}: {e}")
            raise TransportError(f"Failed to create {self.entity.lower()}: {e}")


class ProspectService(_CrmService):
    entity = "Prospect"

    def create_prospect(self, payload: ProspectCreate, created_by: Optional[uuid.UUID] = None) -> ServiceResult:
        if not payload.name.strip():
            return ServiceResult.fail(ValidationError("Prospect name is required", field="name"))

        prospect = Prospect(**payload.model_dump(), created_by=created_by)
        try:
            self._insert(prospect)
        except TransportError as e:
            return ServiceResult.fail(e)

        logger.info(f"Created prospect {prospect.id} ({prospect.name})")
        return ServiceResult.ok(ProspectOut.model_validate(prospect))


class PropertyService(_CrmService):
    entity = "Property"

    def create_property(self, payload: PropertyCreate) -> ServiceResult:
        prop = Property(**payload.model_dump())
        try:
            self._insert(prop)
        except TransportError as e:
            return ServiceResult.fail(e)

        logger.info(f"Created property {prop.id} ({prop.name})")
        return ServiceResult.ok(PropertyOut.model_validate(prop))


class TaskService(_CrmService):
    entity = "Task"

    def create_task(self, payload: TaskCreate, assigned_by: Optional[uuid.UUID] = None) -> ServiceResult:
        task = Task(**payload.model_dump(), assigned_by=assigned_by)
        try:
            self._insert(task)
        except TransportError as e:
            return ServiceResult.fail(e)

        logger.info(f"Created task {task.id} due {task.due_date}")
        return ServiceResult.ok(TaskOut.model_validate(task))
