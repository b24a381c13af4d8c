import asyncio

import httpx

from roof_finder.core.exceptions import TransportError
from roof_finder.models.roof_lead import RoofLeadStatus
from roof_finder.schemas.common import ServiceResult
from roof_finder.services.lead_store import LeadStore
from roof_finder.services.viewport_query import ViewportQueryEngine


class ControlledFetch:
    """Fetch stub whose responses are released by the test."""

    def __init__(self):
        self.calls = []

    async def __call__(self, query):
        future = asyncio.get_running_loop().create_future()
        self.calls.append((query, future))
        return await future


async def test_latest_dispatched_query_wins(lead_summary):
    fetch = ControlledFetch()
    store = LeadStore()
    engine = ViewportQueryEngine(fetch, store, debounce_seconds=0)

    task_a = asyncio.create_task(engine.set_bbox([-96.0, 29.0, -95.0, 30.0]))
    await asyncio.sleep(0)
    task_b = asyncio.create_task(engine.set_filters(status="new"))
    await asyncio.sleep(0)
    assert len(fetch.calls) == 2

    # B resolves first, A arrives late
    fetch.calls[1][1].set_result(ServiceResult.ok([lead_summary("B")]))
    result_b = await task_b
    fetch.calls[0][1].set_result(ServiceResult.ok([lead_summary("A")]))
    result_a = await task_a

    assert result_b.data.applied is True
    assert result_a.data.applied is False
    assert [lead.name for lead in store.leads] == ["B"]
    assert store.applied_sequence == 2


async def test_stale_response_arriving_first_is_discarded(lead_summary):
    fetch = ControlledFetch()
    store = LeadStore()
    engine = ViewportQueryEngine(fetch, store, debounce_seconds=0)

    task_a = asyncio.create_task(engine.refresh())
    await asyncio.sleep(0)
    task_b = asyncio.create_task(engine.refresh())
    await asyncio.sleep(0)

    fetch.calls[0][1].set_result(ServiceResult.ok([lead_summary("A")]))
    await task_a
    assert store.leads == []

    fetch.calls[1][1].set_result(ServiceResult.ok([lead_summary("B")]))
    await task_b
    assert [lead.name for lead in store.leads] == ["B"]


async def test_search_is_debounced_and_other_filters_ride_along():
    calls = []

    async def fetch(query):
        calls.append(query)
        return ServiceResult.ok([])

    engine = ViewportQueryEngine(fetch, LeadStore(), debounce_seconds=0.05)

    assert await engine.set_filters(search="w") is None
    assert await engine.set_filters(search="wa") is None
    assert await engine.set_filters(status="new") is None
    assert engine.debounce_pending
    assert calls == []

    await engine.flush()

    assert len(calls) == 1
    assert calls[0].search == "wa"
    assert calls[0].status == RoofLeadStatus.NEW
    assert engine.last_debounced_result.success


async def test_non_search_filter_queries_immediately():
    calls = []

    async def fetch(query):
        calls.append(query)
        return ServiceResult.ok([])

    engine = ViewportQueryEngine(fetch, LeadStore(), debounce_seconds=10)
    result = await engine.set_filters(tags=["flat"], min_score=3)

    assert result.success
    assert len(calls) == 1
    assert calls[0].tags == ["flat"]
    assert calls[0].min_score == 3


async def test_failure_leaves_store_untouched(lead_summary):
    responses = [ServiceResult.ok([lead_summary("Kept")]), ServiceResult.fail(TransportError("boom"))]

    async def fetch(query):
        return responses.pop(0)

    store = LeadStore()
    engine = ViewportQueryEngine(fetch, store, debounce_seconds=0)
    await engine.refresh()

    result = await engine.set_bbox([-96.0, 29.0, -95.0, 30.0])

    assert not result.success
    assert result.error_code == "TransportError"
    assert engine.last_error.code == "TransportError"
    assert [lead.name for lead in store.leads] == ["Kept"]


async def test_fetch_exception_becomes_transport_error():
    async def fetch(query):
        raise httpx.ConnectError("connection refused")

    engine = ViewportQueryEngine(fetch, LeadStore(), debounce_seconds=0)
    result = await engine.refresh()

    assert result.error_code == "TransportError"
    assert not engine.loading


async def test_invalid_inputs_are_rejected_without_querying():
    calls = []

    async def fetch(query):
        calls.append(query)
        return ServiceResult.ok([])

    engine = ViewportQueryEngine(fetch, LeadStore(), debounce_seconds=0)

    assert (await engine.set_filters(min_score=9)).error_code == "ValidationError"
    assert (await engine.set_filters(colour="red")).error_code == "ValidationError"
    assert (await engine.set_bbox([1.0, 1.0, 0.0, 0.0])).error_code == "ValidationError"
    assert calls == []


async def test_load_more_appends_next_page(lead_summary):
    pages = [[lead_summary("1"), lead_summary("2")], [lead_summary("3")]]
    offsets = []

    async def fetch(query):
        offsets.append(query.offset)
        return ServiceResult.ok(pages.pop(0))

    store = LeadStore()
    engine = ViewportQueryEngine(fetch, store, debounce_seconds=0, page_size=2)
    await engine.refresh()
    result = await engine.load_more()

    assert result.data.applied
    assert offsets == [0, 2]
    assert [lead.name for lead in store.leads] == ["1", "2", "3"]


async def test_load_more_discarded_after_newer_query(lead_summary):
    fetch = ControlledFetch()
    store = LeadStore()
    engine = ViewportQueryEngine(fetch, store, debounce_seconds=0, page_size=1)

    first = asyncio.create_task(engine.refresh())
    await asyncio.sleep(0)
    fetch.calls[0][1].set_result(ServiceResult.ok([lead_summary("page-1")]))
    await first

    more = asyncio.create_task(engine.load_more())
    await asyncio.sleep(0)
    newer = asyncio.create_task(engine.refresh())
    await asyncio.sleep(0)

    fetch.calls[2][1].set_result(ServiceResult.ok([lead_summary("fresh")]))
    await newer
    fetch.calls[1][1].set_result(ServiceResult.ok([lead_summary("page-2")]))
    result = await more

    assert result.data.applied is False
    assert [lead.name for lead in store.leads] == ["fresh"]


async def test_close_drops_pending_debounce():
    calls = []

    async def fetch(query):
        calls.append(query)
        return ServiceResult.ok([])

    engine = ViewportQueryEngine(fetch, LeadStore(), debounce_seconds=0.05)
    await engine.set_filters(search="roof")
    engine.close()
    await engine.flush()

    assert calls == []
    assert not engine.debounce_pending
