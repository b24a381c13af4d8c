"""
Roof Lead Service
Persistence for roof leads and their images: viewport listing, create,
whitelisted updates, cascading deletes and image upload/sign/delete.

Every public method returns a ServiceResult; anticipated failures never raise.
"""
from __future__ import annotations

import logging
import re
import secrets
import time
import uuid
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from roof_finder.core.config import settings
from roof_finder.core.exceptions import (
    ConflictError, LeadReferenceError, RoofFinderError, TransportError, ValidationError,
)
from roof_finder.models.roof_lead import (
    RoofLead, RoofLeadImage, RoofLeadStatus, RoofLeadTag, TERMINAL_STATUSES,
)
from roof_finder.schemas.common import ServiceResult
from roof_finder.schemas.roof_lead import (
    CreatedLead, LeadQuery, RoofLeadCreate, RoofLeadDetail, RoofLeadImageOut,
    RoofLeadOut, RoofLeadUpdate,
)
from roof_finder.services import geometry_codec
from roof_finder.services.storage_service import StorageBackend, get_storage

logger = logging.getLogger(__name__)

WRITE_ONCE_LINKS = ("linked_prospect_id", "linked_property_id")

# Columns that may not be set to NULL through an update
_NOT_NULL_FIELDS = ("name", "condition_label", "condition_score", "status", "tags")

_EXTENSION_RE = re.compile(r"[a-z0-9]{1,10}")


def validation_error(e: PydanticValidationError) -> ValidationError:
    """First pydantic error as our ValidationError."""
    first = e.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    return ValidationError(first.get("msg", str(e)), field=field)


def escape_like(text: str) -> str:
    """Make LIKE wildcards in user search text match literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def image_extension(file_name: Optional[str], mime_type: str) -> str:
    """Storage-key extension from the file name, else from the MIME subtype."""
    name = file_name or ""
    candidates = [name.rsplit(".", 1)[-1]] if "." in name else []
    candidates.append(mime_type.split("/", 1)[-1])
    for candidate in candidates:
        if _EXTENSION_RE.fullmatch(candidate.lower()):
            return candidate.lower()
    return "bin"


class RoofLeadService:
    def __init__(self, db: Session, storage: Optional[StorageBackend] = None):
        self.db = db
        self._storage = storage

    @property
    def storage(self) -> StorageBackend:
        if self._storage is None:
            self._storage = get_storage()
        return self._storage

    # ── Helpers ───────────────────────────────────────────────────────────────

    def load(self, lead_id: uuid.UUID) -> RoofLead:
        """Fetch the lead row or raise LeadReferenceError."""
        lead = self.db.query(RoofLead).filter(RoofLead.id == lead_id).first()
        if not lead:
            raise LeadReferenceError("Roof lead", str(lead_id))
        return lead

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {e}")
            raise TransportError(f"Failed to {action}: {e}")

    def to_summary(self, lead: RoofLead, errors: Optional[list] = None) -> RoofLeadOut:
        out = RoofLeadOut.model_validate(lead)
        return out.model_copy(update={"coordinates": geometry_codec.decode(lead.geometry, errors)})

    def to_detail(self, lead: RoofLead) -> RoofLeadDetail:
        detail = RoofLeadDetail.model_validate(lead)
        return detail.model_copy(update={
            "coordinates": geometry_codec.decode(lead.geometry),
            "images": [self._image_out(image) for image in lead.images],
        })

    def _image_out(self, image: RoofLeadImage) -> RoofLeadImageOut:
        out = RoofLeadImageOut.model_validate(image)
        try:
            signed = self.storage.signed_url(image.file_path, settings.SIGNED_URL_EXPIRY_SECONDS)
        except TransportError as e:
            logger.warning(f"Could not sign URL for image {image.id}: {e.message}")
            signed = None
        return out.model_copy(update={"signed_url": signed})

    # ── Leads ─────────────────────────────────────────────────────────────────

    def list_leads(self, query: Union[LeadQuery, Dict[str, Any], None] = None) -> ServiceResult:
        """
        Leads inside the bbox matching the filters, newest first.

        A lead whose stored geometry cannot be decoded is still returned,
        with ``coordinates`` set to None.
        """
        try:
            if not isinstance(query, LeadQuery):
                query = LeadQuery(**(query or {}))
        except PydanticValidationError as e:
            return ServiceResult.fail(validation_error(e))

        q = self.db.query(RoofLead)

        if query.bbox is not None:
            min_lng, min_lat, max_lng, max_lat = query.bbox
            q = q.filter(
                RoofLead.max_lng >= min_lng,
                RoofLead.min_lng <= max_lng,
                RoofLead.max_lat >= min_lat,
                RoofLead.min_lat <= max_lat,
            )

        search = query.search.strip()
        if search:
            term = f"%{escape_like(search)}%"
            q = q.filter(or_(
                RoofLead.name.ilike(term, escape="\\"),
                RoofLead.notes.ilike(term, escape="\\"),
                RoofLead.address.ilike(term, escape="\\"),
            ))

        if query.status:
            q = q.filter(RoofLead.status == query.status)
        if query.condition_label:
            q = q.filter(RoofLead.condition_label == query.condition_label)
        if query.min_score is not None:
            q = q.filter(RoofLead.condition_score >= query.min_score)
        if query.max_score is not None:
            q = q.filter(RoofLead.condition_score <= query.max_score)
        if query.tags:
            q = q.filter(RoofLead.tag_rows.any(RoofLeadTag.tag.in_(query.tags)))

        limit = min(query.limit, settings.MAX_PAGE_SIZE)
        try:
            rows = (
                q.order_by(RoofLead.created_at.desc(), RoofLead.id)
                .offset(query.offset)
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to list roof leads: {e}")
            return ServiceResult.fail(TransportError(f"Failed to list roof leads: {e}"))

        errors: list = []
        leads = [self.to_summary(row, errors) for row in rows]
        if errors:
            logger.warning(f"{len(errors)} of {len(rows)} roof leads have undecodable geometry")
        return ServiceResult.ok(leads)

    def get_lead(self, lead_id: uuid.UUID) -> ServiceResult:
        """Lead detail with its images (signed URLs) and linked records."""
        try:
            lead = self.load(lead_id)
        except RoofFinderError as e:
            return ServiceResult.fail(e)
        return ServiceResult.ok(self.to_detail(lead))

    def create_lead(
        self,
        data: Union[RoofLeadCreate, Dict[str, Any]],
        created_by: Optional[uuid.UUID] = None,
    ) -> ServiceResult:
        try:
            if not isinstance(data, RoofLeadCreate):
                try:
                    data = RoofLeadCreate.model_validate(data)
                except PydanticValidationError as e:
                    raise validation_error(e)

            name = (data.name or "").strip()
            if not name:
                raise ValidationError("Lead name is required", field="name")
            if data.geometry is None:
                raise ValidationError("Geometry is required", field="geometry")

            min_lng, min_lat, max_lng, max_lat = geometry_codec.envelope(data.geometry)
            lead = RoofLead(
                name=name,
                geometry=geometry_codec.to_wkt(data.geometry),
                geometry_type=data.geometry.type,
                min_lng=min_lng,
                min_lat=min_lat,
                max_lng=max_lng,
                max_lat=max_lat,
                condition_label=data.condition_label,
                condition_score=data.condition_score,
                status=RoofLeadStatus.NEW,
                notes=data.notes,
                address=data.address,
                city=data.city,
                state=data.state,
                zip_code=data.zip_code,
                estimated_sqft=data.estimated_sqft,
                estimated_repair_cost=data.estimated_repair_cost,
                created_by=created_by,
            )
            lead.tags = data.tags

            self.db.add(lead)
            self._commit("create roof lead")
            self.db.refresh(lead)
        except RoofFinderError as e:
            return ServiceResult.fail(e)

        logger.info(f"Created roof lead {lead.id} ({lead.geometry_type}) '{lead.name}'")
        return ServiceResult.ok(CreatedLead(id=lead.id))

    def update_lead(
        self,
        lead_id: uuid.UUID,
        changes: Union[RoofLeadUpdate, Dict[str, Any]],
    ) -> ServiceResult:
        """
        Apply whitelisted field changes.

        Geometry is not editable. Prospect/property links are write-once and
        ``converted`` is reserved for the conversion workflow.
        """
        try:
            if not isinstance(changes, RoofLeadUpdate):
                try:
                    changes = RoofLeadUpdate.model_validate(changes)
                except PydanticValidationError as e:
                    raise validation_error(e)

            fields = changes.model_dump(exclude_unset=True)
            for key in _NOT_NULL_FIELDS:
                if key in fields and fields[key] is None:
                    fields.pop(key)

            lead = self.load(lead_id)

            if "name" in fields:
                fields["name"] = fields["name"].strip()
                if not fields["name"]:
                    raise ValidationError("Lead name cannot be empty", field="name")

            for key in WRITE_ONCE_LINKS:
                if key not in fields:
                    continue
                current = getattr(lead, key)
                if fields[key] == current:
                    fields.pop(key)
                elif current is not None:
                    raise ConflictError(f"Roof lead {lead_id} is already linked ({key}={current})")

            new_status = fields.get("status")
            if new_status is not None and new_status != lead.status:
                if lead.status in TERMINAL_STATUSES:
                    raise ValidationError(
                        f"Lead is {lead.status.value} and its status can no longer change",
                        field="status",
                    )
                if new_status == RoofLeadStatus.CONVERTED:
                    raise ValidationError(
                        "Status 'converted' is set by the conversion workflow only",
                        field="status",
                    )

            for key, value in fields.items():
                setattr(lead, key, value)

            self._commit("update roof lead")
            self.db.refresh(lead)
        except RoofFinderError as e:
            return ServiceResult.fail(e)

        logger.info(f"Updated roof lead {lead_id}: {sorted(fields)}")
        return ServiceResult.ok(self.to_detail(lead))

    def delete_lead(self, lead_id: uuid.UUID) -> ServiceResult:
        """Delete a lead with its image rows, then its stored objects."""
        try:
            lead = self.load(lead_id)
            paths = [image.file_path for image in lead.images]
            self.db.delete(lead)
            self._commit("delete roof lead")
        except RoofFinderError as e:
            return ServiceResult.fail(e)

        if paths:
            try:
                self.storage.remove(paths)
            except TransportError as e:
                logger.warning(f"Could not remove {len(paths)} stored images for lead {lead_id}: {e.message}")

        logger.info(f"Deleted roof lead {lead_id} and {len(paths)} images")
        return ServiceResult.ok({"id": lead_id})

    def link_conversion(self, lead_id: uuid.UUID, link_field: str, entity_id: uuid.UUID) -> ServiceResult:
        """Set a write-once link created by a conversion and mark the lead converted."""
        if link_field not in WRITE_ONCE_LINKS:
            raise ValueError(f"Unknown link field: {link_field}")
        try:
            lead = self.load(lead_id)
            current = getattr(lead, link_field)
            if current is not None and current != entity_id:
                raise ConflictError(f"Roof lead {lead_id} is already linked ({link_field}={current})")

            setattr(lead, link_field, entity_id)
            lead.status = RoofLeadStatus.CONVERTED
            self._commit("link roof lead")
            self.db.refresh(lead)
        except RoofFinderError as e:
            return ServiceResult.fail(e)

        logger.info(f"Roof lead {lead_id} converted ({link_field}={entity_id})")
        return ServiceResult.ok(self.to_summary(lead))

    # ── Images ────────────────────────────────────────────────────────────────

    def upload_image(
        self,
        lead_id: uuid.UUID,
        file_name: str,
        content: bytes,
        mime_type: Optional[str],
        description: Optional[str] = None,
        uploaded_by: Optional[uuid.UUID] = None,
    ) -> ServiceResult:
        """Store an image for a lead and return its record with a signed URL."""
        try:
            if not mime_type or not mime_type.startswith("image/"):
                raise ValidationError(f"Only image files are allowed (got {mime_type})", field="file")
            if not content:
                raise ValidationError("Image file is empty", field="file")
            if len(content) > settings.max_image_size_bytes:
                raise ValidationError(
                    f"Image exceeds the {settings.MAX_IMAGE_SIZE_MB}MB limit", field="file"
                )

            lead = self.load(lead_id)

            ext = image_extension(file_name, mime_type)
            path = f"{lead.id}/{int(time.time() * 1000)}-{secrets.token_hex(6)}.{ext}"

            self.storage.upload(path, content, mime_type)

            image = RoofLeadImage(
                roof_lead_id=lead.id,
                file_name=file_name,
                file_path=path,
                file_size=len(content),
                mime_type=mime_type,
                description=description,
                uploaded_by=uploaded_by,
            )
            try:
                self.db.add(image)
                self._commit("save image record")
            except TransportError:
                # The row is gone, so the stored object would be unreachable
                try:
                    self.storage.remove([path])
                except TransportError as cleanup:
                    logger.warning(f"Orphaned stored image {path}: {cleanup.message}")
                raise
            self.db.refresh(image)
        except RoofFinderError as e:
            return ServiceResult.fail(e)

        logger.info(f"Uploaded image {image.id} for roof lead {lead_id} ({len(content)} bytes)")
        return ServiceResult.ok(self._image_out(image))

    def list_images(self, lead_id: uuid.UUID) -> ServiceResult:
        try:
            lead = self.load(lead_id)
        except RoofFinderError as e:
            return ServiceResult.fail(e)
        return ServiceResult.ok([self._image_out(image) for image in lead.images])

    def delete_image(self, lead_id: uuid.UUID, image_id: uuid.UUID) -> ServiceResult:
        """Delete the image row, then its stored object (best effort)."""
        try:
            image = (
                self.db.query(RoofLeadImage)
                .filter(RoofLeadImage.id == image_id, RoofLeadImage.roof_lead_id == lead_id)
                .first()
            )
            if not image:
                raise LeadReferenceError("Roof lead image", str(image_id))

            path = image.file_path
            self.db.delete(image)
            self._commit("delete image record")
        except RoofFinderError as e:
            return ServiceResult.fail(e)

        try:
            self.storage.remove([path])
        except TransportError as e:
            logger.warning(f"Could not remove stored image {path}: {e.message}")

        return ServiceResult.ok({"id": image_id})
