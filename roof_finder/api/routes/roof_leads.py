"""
Roof Lead Routes
Map-captured roof leads, their images and their conversion into CRM records.

Authenticated endpoints (JWT required):
  GET    /api/roof-leads                                list leads in a bbox
  POST   /api/roof-leads                                create lead from a drawing
  GET    /api/roof-leads/{id}                           lead detail with images
  PATCH  /api/roof-leads/{id}                           update whitelisted fields
  DELETE /api/roof-leads/{id}                           delete lead and its images
  POST   /api/roof-leads/{id}/convert/prospect          create + link a prospect
  POST   /api/roof-leads/{id}/convert/property          create + link a property
  POST   /api/roof-leads/{id}/follow-up-tasks           schedule a follow-up call
  GET    /api/roof-leads/{id}/images                    list images
  POST   /api/roof-leads/{id}/images                    upload image (multipart)
  DELETE /api/roof-leads/{id}/images/{image_id}         delete image

Signed URL endpoint (token is the credential):
  GET    /api/roof-leads/files/{token}                  serve a locally stored image

Every response body is a ServiceResult: {success, data, error{code, message}}.
"""
import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import FileResponse, JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from roof_finder.core.exceptions import HTTP_STATUS_BY_CODE, LeadReferenceError, ValidationError
from roof_finder.core.security import get_current_user_id
from roof_finder.database import get_db
from roof_finder.models.roof_lead import ConditionLabel, RoofLeadStatus
from roof_finder.schemas.common import ServiceResult
from roof_finder.schemas.roof_lead import (
    FollowUpTaskRequest, LeadQuery, PropertyFromLeadRequest, RoofLeadCreate, RoofLeadUpdate,
)
from roof_finder.services.conversion_service import ConversionWorkflow
from roof_finder.services.roof_lead_service import RoofLeadService, validation_error
from roof_finder.services.storage_service import LocalStorage, StorageBackend, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Roof Leads"])


# ── Dependencies ───────────────────────────────────────────────────────────────

def get_lead_service(
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
) -> RoofLeadService:
    return RoofLeadService(db, storage)


def get_conversion_workflow(
    db: Session = Depends(get_db),
    leads: RoofLeadService = Depends(get_lead_service),
) -> ConversionWorkflow:
    return ConversionWorkflow(db, leads=leads)


def respond(result: ServiceResult, success_status: int = status.HTTP_200_OK) -> JSONResponse:
    """Serialize a ServiceResult with the HTTP status matching its error code."""
    if result.success:
        code = success_status
    else:
        code = HTTP_STATUS_BY_CODE.get(result.error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return JSONResponse(status_code=code, content=result.model_dump(mode="json"))


def parse_bbox(raw: Optional[str]) -> Optional[List[float]]:
    if raw is None or not raw.strip():
        return None
    try:
        return [float(part) for part in raw.split(",")]
    except ValueError:
        raise ValidationError("bbox must be minLng,minLat,maxLng,maxLat", field="bbox")


# ── Signed files ───────────────────────────────────────────────────────────────

@router.get("/files/{token}")
def serve_file(token: str, storage: StorageBackend = Depends(get_storage)):
    """Serve a locally stored image; the signed token is the only credential."""
    path = storage.verify_signed_token(token) if isinstance(storage, LocalStorage) else None
    if path is None:
        return respond(ServiceResult.fail(LeadReferenceError("File")))
    return FileResponse(path)


# ── Leads ──────────────────────────────────────────────────────────────────────

@router.get("")
def list_leads(
    bbox: Optional[str] = Query(None, description="minLng,minLat,maxLng,maxLat"),
    search: str = Query(""),
    lead_status: Optional[RoofLeadStatus] = Query(None, alias="status"),
    condition_label: Optional[ConditionLabel] = Query(None),
    tags: Optional[List[str]] = Query(None),
    min_score: Optional[int] = Query(None),
    max_score: Optional[int] = Query(None),
    limit: int = Query(50),
    offset: int = Query(0),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: RoofLeadService = Depends(get_lead_service),
):
    try:
        query = LeadQuery(
            bbox=parse_bbox(bbox),
            search=search,
            status=lead_status,
            condition_label=condition_label,
            tags=tags or [],
            min_score=min_score,
            max_score=max_score,
            limit=limit,
            offset=offset,
        )
    except ValidationError as e:
        return respond(ServiceResult.fail(e))
    except PydanticValidationError as e:
        return respond(ServiceResult.fail(validation_error(e)))

    return respond(service.list_leads(query))


@router.post("")
def create_lead(
    payload: RoofLeadCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: RoofLeadService = Depends(get_lead_service),
):
    return respond(service.create_lead(payload, created_by=user_id), status.HTTP_201_CREATED)


@router.get("/{lead_id}")
def get_lead(
    lead_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: RoofLeadService = Depends(get_lead_service),
):
    return respond(service.get_lead(lead_id))


@router.patch("/{lead_id}")
def update_lead(
    lead_id: uuid.UUID,
    payload: RoofLeadUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: RoofLeadService = Depends(get_lead_service),
):
    return respond(service.update_lead(lead_id, payload))


@router.delete("/{lead_id}")
def delete_lead(
    lead_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: RoofLeadService = Depends(get_lead_service),
):
    return respond(service.delete_lead(lead_id))


# ── Conversion ─────────────────────────────────────────────────────────────────

@router.post("/{lead_id}/convert/prospect")
def convert_to_prospect(
    lead_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    workflow: ConversionWorkflow = Depends(get_conversion_workflow),
):
    return respond(workflow.convert_to_prospect(lead_id, created_by=user_id), status.HTTP_201_CREATED)


@router.post("/{lead_id}/convert/property")
def create_property_from_lead(
    lead_id: uuid.UUID,
    payload: Optional[PropertyFromLeadRequest] = None,
    user_id: uuid.UUID = Depends(get_current_user_id),
    workflow: ConversionWorkflow = Depends(get_conversion_workflow),
):
    account_id = payload.account_id if payload else None
    return respond(workflow.create_property_from_lead(lead_id, account_id), status.HTTP_201_CREATED)


@router.post("/{lead_id}/follow-up-tasks")
def create_follow_up_task(
    lead_id: uuid.UUID,
    payload: FollowUpTaskRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    workflow: ConversionWorkflow = Depends(get_conversion_workflow),
):
    result = workflow.create_follow_up_task(
        lead_id,
        due_date=payload.due_date,
        due_in_days=payload.due_in_days,
        priority=payload.priority,
        notes=payload.notes,
        assigned_by=user_id,
    )
    return respond(result, status.HTTP_201_CREATED)


# ── Images ─────────────────────────────────────────────────────────────────────

@router.get("/{lead_id}/images")
def list_images(
    lead_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: RoofLeadService = Depends(get_lead_service),
):
    return respond(service.list_images(lead_id))


@router.post("/{lead_id}/images")
async def upload_image(
    lead_id: uuid.UUID,
    file: UploadFile = File(...),
    description: Optional[str] = Form(None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: RoofLeadService = Depends(get_lead_service),
):
    content = await file.read()
    result = service.upload_image(
        lead_id,
        file_name=file.filename or "upload",
        content=content,
        mime_type=file.content_type,
        description=description,
        uploaded_by=user_id,
    )
    return respond(result, status.HTTP_201_CREATED)


@router.delete("/{lead_id}/images/{image_id}")
def delete_image(
    lead_id: uuid.UUID,
    image_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: RoofLeadService = Depends(get_lead_service),
):
    return respond(service.delete_image(lead_id, image_id))
