"""
Conversion Workflow
Promotes a roof lead into a Prospect, a Property and/or a follow-up Task.

Prospect and property conversions are link-exclusive: a lead that already
carries the link is refused before anything is created. Creation and linking
are two separate writes; if linking fails the created record is kept and the
divergence is logged at ERROR with both ids.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from roof_finder.core.exceptions import ConflictError, RoofFinderError, TransportError, ValidationError
from roof_finder.db.base import utcnow
from roof_finder.models.roof_lead import RoofLeadStatus
from roof_finder.models.task import TaskPriority, TaskStatus
from roof_finder.schemas.common import ServiceResult
from roof_finder.schemas.crm import PropertyCreate, ProspectCreate, TaskCreate
from roof_finder.schemas.roof_lead import PropertyConversion, ProspectConversion
from roof_finder.services.crm_service import PropertyService, ProspectService, TaskService
from roof_finder.services.roof_lead_service import RoofLeadService, validation_error

logger = logging.getLogger(__name__)

CONVERSION_TAG = "roof-lead-conversion"
PROSPECT_SOURCE = "Roof Finder"
DEFAULT_PROPERTY_ADDRESS = "Address from roof lead"
DEFAULT_BUILDING_TYPE = "Commercial Office"
FOLLOW_UP_CATEGORY = "follow_up_call"


def derive_priority(condition_score: int) -> TaskPriority:
    """Badly rated roofs get chased first."""
    return TaskPriority.HIGH if condition_score >= 4 else TaskPriority.MEDIUM


def _condition(lead) -> str:
    return f"{lead.condition_label.value} (score: {lead.condition_score})"


class ConversionWorkflow:
    def __init__(
        self,
        db: Session,
        leads: Optional[RoofLeadService] = None,
        prospects: Optional[ProspectService] = None,
        properties: Optional[PropertyService] = None,
        tasks: Optional[TaskService] = None,
    ):
        self.db = db
        self.leads = leads or RoofLeadService(db)
        self.prospects = prospects or ProspectService(db)
        self.properties = properties or PropertyService(db)
        self.tasks = tasks or TaskService(db)

    @staticmethod
    def _check_convertible(lead) -> None:
        # A converted lead may still gain its other link; a rejected one is closed
        if lead.status == RoofLeadStatus.REJECTED:
            raise ConflictError(f"Roof lead {lead.id} is rejected and cannot be converted")

    def _link(self, lead_id: uuid.UUID, link_field: str, entity: str, entity_id: uuid.UUID) -> ServiceResult:
        result = self.leads.link_conversion(lead_id, link_field, entity_id)
        if result.success:
            return result

        logger.error(
            f"{entity} {entity_id} was created but roof lead {lead_id} could not be linked: "
            f"{result.error.message}"
        )
        return ServiceResult.fail(TransportError(
            f"{entity} {entity_id} was created but linking roof lead {lead_id} failed: {result.error.message}",
            data={"roof_lead_id": str(lead_id), f"{entity.lower()}_id": str(entity_id)},
        ))

    def convert_to_prospect(self, lead_id: uuid.UUID, created_by: Optional[uuid.UUID] = None) -> ServiceResult:
        try:
            lead = self.leads.load(lead_id)
            self._check_convertible(lead)
            if lead.linked_prospect_id:
                raise ConflictError(
                    f"Roof lead {lead_id} is already linked to prospect {lead.linked_prospect_id}"
                )
            try:
                payload = ProspectCreate(
                    name=lead.name,
                    address=lead.address,
                    city=lead.city,
                    state=lead.state,
                    zip_code=lead.zip_code,
                    notes=f"Converted from roof lead. Original condition: {_condition(lead)}. {lead.notes or ''}".strip(),
                    tags=[*lead.tags, CONVERSION_TAG],
                    source=PROSPECT_SOURCE,
                    status="uncontacted",
                )
            except PydanticValidationError as e:
                raise validation_error(e)
        except RoofFinderError as e:
            return ServiceResult.fail(e)

        created = self.prospects.create_prospect(payload, created_by=created_by)
        if not created.success:
            return created

        prospect_id = created.data.id
        linked = self._link(lead_id, "linked_prospect_id", "Prospect", prospect_id)
        if not linked.success:
            return linked

        return ServiceResult.ok(ProspectConversion(roof_lead_id=lead_id, prospect_id=prospect_id))

    def create_property_from_lead(
        self, lead_id: uuid.UUID, account_id: Optional[uuid.UUID] = None
    ) -> ServiceResult:
        try:
            lead = self.leads.load(lead_id)
            self._check_convertible(lead)
            if lead.linked_property_id:
                raise ConflictError(
                    f"Roof lead {lead_id} is already linked to property {lead.linked_property_id}"
                )
            try:
                payload = PropertyCreate(
                    name=lead.name,
                    address=lead.address or DEFAULT_PROPERTY_ADDRESS,
                    city=lead.city,
                    state=lead.state,
                    zip_code=lead.zip_code,
                    building_type=DEFAULT_BUILDING_TYPE,
                    square_footage=lead.estimated_sqft,
                    notes=f"Created from roof lead. Condition: {_condition(lead)}. {lead.notes or ''}".strip(),
                    account_id=account_id or lead.linked_account_id,
                )
            except PydanticValidationError as e:
                raise validation_error(e)
        except RoofFinderError as e:
            return ServiceResult.fail(e)

        created = self.properties.create_property(payload)
        if not created.success:
            return created

        property_id = created.data.id
        linked = self._link(lead_id, "linked_property_id", "Property", property_id)
        if not linked.success:
            return linked

        return ServiceResult.ok(PropertyConversion(roof_lead_id=lead_id, property_id=property_id))

    def create_follow_up_task(
        self,
        lead_id: uuid.UUID,
        due_date: Optional[datetime] = None,
        due_in_days: Optional[int] = None,
        priority: Union[TaskPriority, str, None] = None,
        notes: Optional[str] = None,
        assigned_by: Optional[uuid.UUID] = None,
    ) -> ServiceResult:
        """
        Schedule a follow-up call for a lead. Not link-exclusive: a lead may
        collect any number of follow-ups.

        Priority is the explicit value when given, otherwise derived from the
        condition score.
        """
        if due_date is None and due_in_days is None:
            return ServiceResult.fail(
                ValidationError("Either due_date or due_in_days is required", field="due_date")
            )

        try:
            if priority is not None:
                try:
                    priority = TaskPriority(priority)
                except ValueError:
                    raise ValidationError(f"Unknown priority '{priority}'", field="priority")

            lead = self.leads.load(lead_id)
            due = due_date or utcnow() + timedelta(days=due_in_days)

            try:
                payload = TaskCreate(
                    title=f"Follow up on roof lead: {lead.name}",
                    description=f"Follow up on roof lead with {lead.condition_label.value} condition "
                                f"(score: {lead.condition_score}). {notes or ''}".strip(),
                    due_date=due,
                    priority=priority or derive_priority(lead.condition_score),
                    category=FOLLOW_UP_CATEGORY,
                    status=TaskStatus.PENDING,
                    account_id=lead.linked_account_id,
                    property_id=lead.linked_property_id,
                    prospect_id=lead.linked_prospect_id,
                    roof_lead_id=lead.id,
                )
            except PydanticValidationError as e:
                raise validation_error(e)
        except RoofFinderError as e:
            return ServiceResult.fail(e)

        return self.tasks.create_task(payload, assigned_by=assigned_by)
