"""
Viewport Query Engine
Keeps the Lead Store in step with "leads matching the filters inside the
current bounding box".

* bbox changes (already settled by the map) query immediately;
* search text is debounced; other filter changes query immediately unless a
  search debounce window is open, in which case they ride along with it;
* every dispatch takes the next sequence number before the fetch starts and
  only the highest dispatched sequence may write to the store, whatever order
  responses arrive in.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from pydantic import BaseModel, ValidationError as PydanticValidationError

from roof_finder.core.config import settings
from roof_finder.core.exceptions import TransportError, ValidationError
from roof_finder.schemas.common import ErrorInfo, ServiceResult
from roof_finder.schemas.roof_lead import LeadQuery, RoofLeadOut
from roof_finder.services.lead_store import LeadStore

logger = logging.getLogger(__name__)

FetchFn = Callable[[LeadQuery], Awaitable[ServiceResult]]

FILTER_KEYS = ("search", "status", "condition_label", "tags", "min_score", "max_score")


class QueryOutcome(BaseModel):
    sequence: int
    applied: bool
    count: int


class ViewportQueryEngine:
    def __init__(
        self,
        fetch: FetchFn,
        store: LeadStore,
        debounce_seconds: Optional[float] = None,
        page_size: Optional[int] = None,
    ):
        self.fetch = fetch
        self.store = store
        self.debounce_seconds = (
            settings.search_debounce_seconds if debounce_seconds is None else debounce_seconds
        )
        self.limit = page_size or settings.DEFAULT_PAGE_SIZE
        self.offset = 0

        self.bbox: Optional[List[float]] = None
        self.filters: Dict[str, Any] = {"search": "", "tags": []}
        self._staged: Dict[str, Any] = {}

        self._sequence = 0
        self._window_open = False
        self._timer: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._in_flight = 0

        self.last_error: Optional[ErrorInfo] = None
        self.last_debounced_result: Optional[ServiceResult] = None

    # ── State ─────────────────────────────────────────────────────────────────

    @property
    def sequence(self) -> int:
        """Highest sequence number dispatched so far."""
        return self._sequence

    @property
    def debounce_pending(self) -> bool:
        return self._window_open

    @property
    def loading(self) -> bool:
        return self._in_flight > 0

    def build_query(self, offset: int = 0) -> LeadQuery:
        return LeadQuery(bbox=self.bbox, limit=self.limit, offset=offset, **self.filters)

    # ── Inputs ────────────────────────────────────────────────────────────────

    async def set_bbox(self, bbox: Optional[List[float]]) -> ServiceResult:
        """Record a settled viewport and query it right away."""
        try:
            LeadQuery(bbox=bbox)
        except PydanticValidationError as e:
            return ServiceResult.fail(ValidationError(e.errors()[0]["msg"], field="bbox"))
        self.bbox = list(bbox) if bbox is not None else None
        return await self.refresh()

    async def set_filters(self, **partial: Any) -> Optional[ServiceResult]:
        """
        Merge filter changes.

        Returns the query result when a query ran immediately, or None when
        the change is waiting on the search debounce window.
        """
        unknown = set(partial) - set(FILTER_KEYS)
        if unknown:
            return ServiceResult.fail(ValidationError(f"Unknown filters: {sorted(unknown)}"))

        candidate = {**self.filters, **self._staged, **partial}
        try:
            LeadQuery(**candidate)
        except PydanticValidationError as e:
            return ServiceResult.fail(ValidationError(e.errors()[0]["msg"]))

        search_changed = (
            "search" in partial
            and partial["search"] != self._staged.get("search", self.filters.get("search"))
        )
        self._staged.update(partial)

        if search_changed:
            self._restart_timer()
            return None
        if self._window_open:
            return None

        self._commit_staged()
        return await self.refresh()

    # ── Queries ───────────────────────────────────────────────────────────────

    async def refresh(self) -> ServiceResult:
        """Query the first page for the current bbox and filters."""
        query = self.build_query(offset=0)
        self._sequence += 1
        sequence = self._sequence

        result = await self._fetch(query)
        if not result.success:
            return result

        leads = self._coerce(result.data)
        if sequence != self._sequence:
            logger.debug(f"Discarding stale lead query (seq={sequence}, latest={self._sequence})")
            return ServiceResult.ok(QueryOutcome(sequence=sequence, applied=False, count=len(leads)))

        self.offset = 0
        self.store.replace_all(leads, sequence)
        return ServiceResult.ok(QueryOutcome(sequence=sequence, applied=True, count=len(leads)))

    async def load_more(self) -> ServiceResult:
        """Fetch the next page and append it, unless a newer query has replaced the base page."""
        base = self._sequence
        query = self.build_query(offset=self.offset + self.limit)

        result = await self._fetch(query)
        if not result.success:
            return result

        leads = self._coerce(result.data)
        if base != self._sequence or self.store.applied_sequence != base:
            logger.debug(f"Discarding stale page at offset {query.offset}")
            return ServiceResult.ok(QueryOutcome(sequence=base, applied=False, count=len(leads)))

        self.offset = query.offset
        self.store.append_page(leads, base)
        return ServiceResult.ok(QueryOutcome(sequence=base, applied=True, count=len(leads)))

    async def flush(self) -> None:
        """Wait for any pending debounced query to run and finish."""
        while True:
            pending = {task for task in self._tasks if not task.done()}
            if not pending:
                break
            await asyncio.wait(pending)

    def close(self) -> None:
        """Drop a pending debounce window; in-flight fetches are left to finish."""
        if self._window_open and self._timer is not None:
            self._timer.cancel()
        self._window_open = False
        self._staged.clear()

    # ── Internals ─────────────────────────────────────────────────────────────

    async def _fetch(self, query: LeadQuery) -> ServiceResult:
        self._in_flight += 1
        try:
            result = await self.fetch(query)
        except Exception as e:
            logger.error(f"Lead query failed: {e}")
            result = ServiceResult.fail(TransportError(f"Lead query failed: {e}"))
        finally:
            self._in_flight -= 1

        if not result.success:
            self.last_error = result.error
            logger.warning(f"Lead query returned an error: {result.error}")
        else:
            self.last_error = None
        return result

    def _coerce(self, data: Any) -> List[RoofLeadOut]:
        return [
            item if isinstance(item, RoofLeadOut) else RoofLeadOut.model_validate(item)
            for item in (data or [])
        ]

    def _commit_staged(self) -> None:
        self.filters.update(self._staged)
        self._staged.clear()

    def _restart_timer(self) -> None:
        if self._window_open and self._timer is not None:
            self._timer.cancel()
        self._window_open = True
        self._timer = asyncio.ensure_future(self._debounced_refresh())
        self._tasks.add(self._timer)
        self._timer.add_done_callback(self._tasks.discard)

    async def _debounced_refresh(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        self._window_open = False
        self._commit_staged()
        self.last_debounced_result = await self.refresh()
