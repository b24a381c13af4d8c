import uuid

import httpx
import pytest

from roof_finder.models.roof_lead import RoofLeadStatus
from roof_finder.schemas.roof_lead import LeadQuery
from roof_finder.services.drawing_controller import DrawingMode
from roof_finder.services.map_session import MapSession
from roof_finder.services.roof_leads_client import RoofLeadsClient, query_params

HOUSTON = [-96.0, 29.0, -95.0, 30.0]


@pytest.fixture
def api_client(app, token):
    return RoofLeadsClient(
        base_url="http://testserver",
        token=token,
        transport=httpx.ASGITransport(app=app),
    )


@pytest.fixture
def session(api_client):
    return MapSession(api_client, debounce_seconds=0.01)


async def test_pin_drop_creates_selects_and_lists_lead(session):
    await session.on_bbox_settled(HOUSTON)
    session.start_drawing("point")

    result = await session.on_map_click((-95.37, 29.76))

    assert result.success
    assert session.drawing.mode == DrawingMode.IDLE
    assert [lead.name for lead in session.store.leads] == ["New Pin Lead"]
    selected = session.store.selected
    assert selected.tags == ["new"]
    assert selected.notes == "Created via map drawing (point)"
    assert [m["name"] for m in session.store.markers()] == ["New Pin Lead"]


async def test_polygon_drawing_creates_area_lead(session):
    await session.on_bbox_settled(HOUSTON)
    session.start_drawing("polygon")
    for coord in [(-95.4, 29.8), (-95.3, 29.8), (-95.3, 29.7)]:
        assert await session.on_map_click(coord) is None

    result = await session.on_double_click((-95.35, 29.75))

    assert result.success
    lead = session.store.leads[0]
    assert lead.name == "New Area Lead"
    assert lead.coordinates.ring[0] == lead.coordinates.ring[-1]
    assert len(lead.coordinates.ring) == 4


async def test_lead_outside_viewport_is_not_listed(session):
    await session.on_bbox_settled([0.0, 0.0, 1.0, 1.0])
    session.start_drawing("point")

    result = await session.on_map_click((-95.37, 29.76))

    assert result.success
    assert session.store.leads == []
    assert session.store.selected.name == "New Pin Lead"


async def test_finish_button_and_reselect(session):
    await session.on_bbox_settled(HOUSTON)
    session.start_drawing("polygon")
    assert await session.finish_drawing() is None
    for coord in [(-95.4, 29.8), (-95.3, 29.8), (-95.3, 29.7)]:
        await session.on_map_click(coord)

    created = await session.finish_drawing()
    lead_id = session.store.leads[0].id
    session.clear_selection()
    assert session.store.selected is None

    selected = await session.select_lead(lead_id)

    assert created.success and selected.success
    assert session.store.selected.id == lead_id
    assert session.store.selected.images == []


async def test_cancel_key_discards_drawing(session):
    session.start_drawing("polygon")
    await session.on_map_click((-95.4, 29.8))

    assert session.on_cancel_key("Escape") is True
    assert session.drawing.mode == DrawingMode.IDLE
    assert await session.on_double_click() is None


async def test_edits_and_conversion_patch_the_store(session):
    await session.on_bbox_settled(HOUSTON)
    session.start_drawing("point")
    await session.on_map_click((-95.37, 29.76))
    lead_id = session.store.leads[0].id

    updated = await session.update_lead(lead_id, {"name": "Renamed", "condition_score": 4})
    assert updated.success
    assert session.store.get(lead_id).name == "Renamed"

    converted = await session.convert_to_prospect(lead_id)
    assert converted.success
    assert session.store.get(lead_id).status == RoofLeadStatus.CONVERTED
    assert session.store.selected.linked_prospect is not None

    again = await session.convert_to_prospect(lead_id)
    assert again.error.code == "ConflictError"

    task = await session.create_follow_up_task(lead_id, due_in_days=1)
    assert task.data["priority"] == "high"


async def test_image_upload_refreshes_selected_lead(session):
    await session.on_bbox_settled(HOUSTON)
    session.start_drawing("point")
    await session.on_map_click((-95.37, 29.76))
    lead_id = session.store.selected.id

    uploaded = await session.upload_image(lead_id, "roof.png", b"png", "image/png", "Overview")

    assert uploaded.success
    assert [image.id for image in session.store.selected.images] == [uuid.UUID(uploaded.data["id"])]


async def test_delete_removes_lead_from_store(session):
    await session.on_bbox_settled(HOUSTON)
    session.start_drawing("point")
    await session.on_map_click((-95.37, 29.76))
    lead_id = session.store.leads[0].id

    result = await session.delete_lead(lead_id)

    assert result.success
    assert session.store.leads == []
    assert session.store.selected is None


async def test_debounced_search_through_session(session):
    await session.on_bbox_settled(HOUSTON)
    session.start_drawing("point")
    await session.on_map_click((-95.37, 29.76))

    assert await session.set_filters(search="no such roof") is None
    await session.query.flush()
    assert session.store.leads == []

    await session.set_filters(search="pin")
    await session.close()
    assert session.store.leads == []


async def test_transport_failure_keeps_previous_results(session):
    await session.on_bbox_settled(HOUSTON)
    session.start_drawing("point")
    await session.on_map_click((-95.37, 29.76))

    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    session.client.transport = httpx.MockTransport(refuse)
    result = await session.on_bbox_settled([-95.5, 29.5, -95.0, 30.0])

    assert result.error.code == "TransportError"
    assert [lead.name for lead in session.store.leads] == ["New Pin Lead"]


def test_query_params_flatten_filters():
    query = LeadQuery(bbox=[-96, 29, -95, 30], search=" roof ", tags=["a", "b"], min_score=2)

    params = query_params(query)

    assert ("bbox", "-96.0,29.0,-95.0,30.0") in params
    assert ("search", "roof") in params
    assert ("tags", "a") in params and ("tags", "b") in params
    assert ("min_score", 2) in params


async def test_click_on_wrapped_world_copy_creates_lead(session):
    await session.on_bbox_settled([-180.0, 0.0, 180.0, 60.0])
    session.start_drawing("point")

    result = await session.on_map_click((264.63, 29.76))

    assert result.success
    assert session.store.selected.coordinates.coordinates == [pytest.approx(-95.37), 29.76]
