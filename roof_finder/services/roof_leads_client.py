"""
Roof Leads API Client
Async httpx client for the /roof-leads routes, used by a map session.

Responses are parsed back into ServiceResult; network failures and
unexpected bodies become TransportError results instead of exceptions.
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import httpx

from roof_finder.core.config import settings
from roof_finder.core.exceptions import TransportError
from roof_finder.schemas.common import ServiceResult
from roof_finder.schemas.roof_lead import LeadQuery

logger = logging.getLogger(__name__)


def query_params(query: LeadQuery) -> List[Tuple[str, Any]]:
    """Flatten a LeadQuery into URL parameters (tags repeat)."""
    params: List[Tuple[str, Any]] = [("limit", query.limit), ("offset", query.offset)]
    if query.bbox is not None:
        params.append(("bbox", ",".join(repr(float(v)) for v in query.bbox)))
    if query.search.strip():
        params.append(("search", query.search.strip()))
    if query.status:
        params.append(("status", query.status.value))
    if query.condition_label:
        params.append(("condition_label", query.condition_label.value))
    if query.min_score is not None:
        params.append(("min_score", query.min_score))
    if query.max_score is not None:
        params.append(("max_score", query.max_score))
    params.extend(("tags", tag) for tag in query.tags)
    return params


class RoofLeadsClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.prefix = f"{settings.API_PREFIX}/roof-leads"
        self.transport = transport
        self.timeout = timeout
        self.headers = {"Accept": "application/json"}
        if token:
            self.headers["Authorization"] = f"Bearer {token}"

    async def _request(self, method: str, path: str = "", **kwargs) -> ServiceResult:
        url = f"{self.base_url}{self.prefix}{path}"
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                response = await client.request(method, url, headers=self.headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Roof leads API {method} {path or '/'} failed: {e}")
            return ServiceResult.fail(TransportError(f"Request failed: {e}"))

        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and "success" in body:
            result = ServiceResult.model_validate(body)
            if result.success or result.error is not None:
                return result

        logger.error(f"Unexpected response from {method} {path or '/'}: HTTP {response.status_code}")
        return ServiceResult.fail(TransportError(f"Unexpected response (HTTP {response.status_code})"))

    # ── Leads ─────────────────────────────────────────────────────────────────

    async def list_leads(self, query: LeadQuery) -> ServiceResult:
        return await self._request("GET", params=query_params(query))

    async def get_lead(self, lead_id: uuid.UUID) -> ServiceResult:
        return await self._request("GET", f"/{lead_id}")

    async def create_lead(self, payload: Dict[str, Any]) -> ServiceResult:
        return await self._request("POST", json=payload)

    async def update_lead(self, lead_id: uuid.UUID, changes: Dict[str, Any]) -> ServiceResult:
        return await self._request("PATCH", f"/{lead_id}", json=changes)

    async def delete_lead(self, lead_id: uuid.UUID) -> ServiceResult:
        return await self._request("DELETE", f"/{lead_id}")

    # ── Conversion ────────────────────────────────────────────────────────────

    async def convert_to_prospect(self, lead_id: uuid.UUID) -> ServiceResult:
        return await self._request("POST", f"/{lead_id}/convert/prospect")

    async def create_property_from_lead(
        self, lead_id: uuid.UUID, account_id: Optional[uuid.UUID] = None
    ) -> ServiceResult:
        payload = {"account_id": str(account_id) if account_id else None}
        return await self._request("POST", f"/{lead_id}/convert/property", json=payload)

    async def create_follow_up_task(
        self,
        lead_id: uuid.UUID,
        due_date: Optional[datetime] = None,
        due_in_days: Optional[int] = None,
        priority: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ServiceResult:
        payload = {
            "due_date": due_date.isoformat() if due_date else None,
            "due_in_days": due_in_days,
            "priority": priority,
            "notes": notes,
        }
        return await self._request("POST", f"/{lead_id}/follow-up-tasks", json=payload)

    # ── Images ────────────────────────────────────────────────────────────────

    async def upload_image(
        self,
        lead_id: uuid.UUID,
        file_name: str,
        content: bytes,
        mime_type: str,
        description: Optional[str] = None,
    ) -> ServiceResult:
        files = {"file": (file_name, content, mime_type)}
        data = {"description": description} if description else None
        return await self._request("POST", f"/{lead_id}/images", files=files, data=data)

    async def list_images(self, lead_id: uuid.UUID) -> ServiceResult:
        return await self._request("GET", f"/{lead_id}/images")

    async def delete_image(self, lead_id: uuid.UUID, image_id: uuid.UUID) -> ServiceResult:
        return await self._request("DELETE", f"/{lead_id}/images/{image_id}")
