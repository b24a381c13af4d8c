import uuid

import pytest
from sqlalchemy.exc import OperationalError

from roof_finder.core.config import settings
from roof_finder.models.roof_lead import RoofLead, RoofLeadStatus
from roof_finder.schemas.geometry import PointGeometry, PolygonGeometry
from roof_finder.schemas.roof_lead import LeadQuery

POINT = {"type": "Point", "coordinates": [-95.37, 29.76]}
SQUARE = {
    "type": "Polygon",
    "coordinates": [[[-95.4, 29.8], [-95.3, 29.8], [-95.3, 29.7], [-95.4, 29.7], [-95.4, 29.8]]],
}


def names(result):
    return [lead.name for lead in result.data]


def test_create_point_lead_and_find_it_in_bbox(lead_service, make_lead):
    lead_id = make_lead(name="Pin", geometry=POINT)

    result = lead_service.list_leads(LeadQuery(bbox=[-95.5, 29.5, -95.0, 30.0]))

    assert result.success
    assert [lead.id for lead in result.data] == [lead_id]
    assert result.data[0].coordinates == PointGeometry(coordinates=[-95.37, 29.76])


def test_create_stores_wkt_and_envelope(db, make_lead):
    lead_id = make_lead(geometry={
        "type": "Polygon",
        "coordinates": [[[-95.4, 29.8], [-95.3, 29.8], [-95.3, 29.7]]],
    })

    row = db.get(RoofLead, lead_id)

    assert row.geometry == "POLYGON((-95.4 29.8, -95.3 29.8, -95.3 29.7, -95.4 29.8))"
    assert row.geometry_type == "Polygon"
    assert (row.min_lng, row.min_lat, row.max_lng, row.max_lat) == (-95.4, 29.7, -95.3, 29.8)
    assert row.status == RoofLeadStatus.NEW


@pytest.mark.parametrize("payload", [
    {"name": "", "geometry": POINT},
    {"name": "   ", "geometry": POINT},
    {"name": "No geometry"},
    {"name": "Bad score", "geometry": POINT, "condition_score": 6},
    {"name": "Bad score", "geometry": POINT, "condition_score": 0},
    {"name": "Negative", "geometry": POINT, "estimated_sqft": -1},
    {"name": "Flat", "geometry": {"type": "Polygon", "coordinates": [[[0, 0], [1, 1], [0, 0]]]}},
])
def test_create_rejects_invalid_payload(lead_service, payload):
    result = lead_service.create_lead(payload)

    assert not result.success
    assert result.error.code == "ValidationError"


def test_list_excludes_leads_outside_bbox(lead_service, make_lead):
    make_lead(name="Houston", geometry=POINT)
    make_lead(name="Elsewhere", geometry={"type": "Point", "coordinates": [10.0, 10.0]})

    result = lead_service.list_leads(LeadQuery(bbox=[-96.0, 29.0, -95.0, 30.0]))

    assert names(result) == ["Houston"]


def test_polygon_intersecting_bbox_edge_is_included(lead_service, make_lead):
    make_lead(name="Area", geometry=SQUARE)

    result = lead_service.list_leads(LeadQuery(bbox=[-95.35, 29.75, -95.0, 30.0]))

    assert names(result) == ["Area"]
    assert isinstance(result.data[0].coordinates, PolygonGeometry)


def test_list_filters(lead_service, make_lead):
    make_lead(name="Dirty warehouse", condition_label="dirty", condition_score=2, tags=["flat", "tpo"])
    make_lead(name="Ponding mall", condition_label="ponding", condition_score=5, tags=["mall"],
              notes="Standing water near drains")
    make_lead(name="Aged school", condition_label="aged", condition_score=4, address="12 Ponding Rd")

    assert names(lead_service.list_leads({"search": "ponding"})) == ["Aged school", "Ponding mall"]
    assert names(lead_service.list_leads({"search": "WATER"})) == ["Ponding mall"]
    assert names(lead_service.list_leads({"condition_label": "dirty"})) == ["Dirty warehouse"]
    assert names(lead_service.list_leads({"min_score": 4, "max_score": 4})) == ["Aged school"]
    assert names(lead_service.list_leads({"tags": ["tpo", "mall"]})) == ["Ponding mall", "Dirty warehouse"]


def test_list_is_newest_first_and_paged(lead_service, make_lead):
    for i in range(3):
        make_lead(name=f"Lead {i}")

    first = lead_service.list_leads({"limit": 2})
    second = lead_service.list_leads({"limit": 2, "offset": 2})

    assert names(first) == ["Lead 2", "Lead 1"]
    assert names(second) == ["Lead 0"]


def test_undecodable_geometry_is_listed_with_null_coordinates(db, lead_service, make_lead):
    lead_id = make_lead(name="Broken")
    row = db.get(RoofLead, lead_id)
    row.geometry = "GARBAGE"
    db.commit()

    result = lead_service.list_leads()

    assert result.success
    assert result.data[0].id == lead_id
    assert result.data[0].coordinates is None


def test_get_lead_missing_is_reference_error(lead_service):
    result = lead_service.get_lead(uuid.uuid4())
    assert result.error.code == "ReferenceError"


def test_update_whitelisted_fields(lead_service, make_lead):
    lead_id = make_lead()

    result = lead_service.update_lead(lead_id, {
        "name": "Renamed",
        "condition_score": 5,
        "status": "qualified",
        "tags": ["a", "b", "a"],
        "geometry": {"type": "Point", "coordinates": [0, 0]},
    })

    assert result.success
    assert result.data.name == "Renamed"
    assert result.data.condition_score == 5
    assert result.data.status == RoofLeadStatus.QUALIFIED
    assert result.data.tags == ["a", "b"]
    assert result.data.geometry_type == "Point"
    assert result.data.coordinates.coordinates == [-95.37, 29.76]


def test_update_cannot_set_converted(lead_service, make_lead):
    result = lead_service.update_lead(make_lead(), {"status": "converted"})
    assert result.error.code == "ValidationError"


def test_update_on_terminal_status_is_refused(lead_service, make_lead):
    lead_id = make_lead()
    assert lead_service.update_lead(lead_id, {"status": "rejected"}).success

    result = lead_service.update_lead(lead_id, {"status": "new"})

    assert result.error.code == "ValidationError"
    assert lead_service.update_lead(lead_id, {"notes": "still editable"}).success


def test_update_rejects_reassigning_a_link(db, lead_service, make_lead):
    lead_id = make_lead()
    prospect_id = uuid.uuid4()
    assert lead_service.link_conversion(lead_id, "linked_prospect_id", prospect_id).success

    same = lead_service.update_lead(lead_id, {"linked_prospect_id": str(prospect_id)})
    cleared = lead_service.update_lead(lead_id, {"linked_prospect_id": None})
    other = lead_service.update_lead(lead_id, {"linked_prospect_id": str(uuid.uuid4())})

    assert same.success
    assert cleared.error.code == "ConflictError"
    assert other.error.code == "ConflictError"
    assert db.get(RoofLead, lead_id).linked_prospect_id == prospect_id


def test_delete_lead_removes_images(db, lead_service, storage, make_lead):
    lead_id = make_lead()
    image = lead_service.upload_image(lead_id, "roof.jpg", b"jpeg-bytes", "image/jpeg").data
    stored = storage.root / image.file_path
    assert stored.exists()

    result = lead_service.delete_lead(lead_id)

    assert result.success
    assert not stored.exists()
    assert db.get(RoofLead, lead_id) is None
    assert lead_service.delete_lead(lead_id).error.code == "ReferenceError"


def test_upload_image_returns_signed_url(lead_service, make_lead):
    lead_id = make_lead()

    result = lead_service.upload_image(lead_id, "Roof.PNG", b"png-bytes", "image/png", "North side")

    assert result.success
    image = result.data
    assert image.file_path.startswith(f"{lead_id}/")
    assert image.file_path.endswith(".png")
    assert image.file_size == len(b"png-bytes")
    assert "/api/roof-leads/files/" in image.signed_url

    listed = lead_service.list_images(lead_id)
    assert [i.id for i in listed.data] == [image.id]


@pytest.mark.parametrize("mime_type, content", [
    ("application/pdf", b"%PDF"),
    (None, b"data"),
    ("image/png", b""),
])
def test_upload_rejects_bad_files(lead_service, make_lead, mime_type, content):
    result = lead_service.upload_image(make_lead(), "file", content, mime_type)
    assert result.error.code == "ValidationError"


def test_upload_rejects_oversized_image(lead_service, make_lead, monkeypatch):
    monkeypatch.setattr(settings, "MAX_IMAGE_SIZE_MB", 0)

    result = lead_service.upload_image(make_lead(), "big.jpg", b"x", "image/jpeg")

    assert result.error.code == "ValidationError"


def test_delete_image(lead_service, storage, make_lead):
    lead_id = make_lead()
    image = lead_service.upload_image(lead_id, "roof.jpg", b"jpeg", "image/jpeg").data

    assert lead_service.delete_image(lead_id, image.id).success
    assert not (storage.root / image.file_path).exists()
    assert lead_service.list_images(lead_id).data == []
    assert lead_service.delete_image(lead_id, image.id).error.code == "ReferenceError"


def test_delete_image_tolerates_missing_object(lead_service, storage, make_lead):
    lead_id = make_lead()
    image = lead_service.upload_image(lead_id, "roof.jpg", b"jpeg", "image/jpeg").data
    (storage.root / image.file_path).unlink()

    assert lead_service.delete_image(lead_id, image.id).success


def test_search_treats_like_wildcards_literally(lead_service, make_lead):
    make_lead(name="100% tear-off")
    make_lead(name="1000 sqft flat")
    make_lead(name="dock_a")
    make_lead(name="dockXa")

    assert names(lead_service.list_leads({"search": "100%"})) == ["100% tear-off"]
    assert names(lead_service.list_leads({"search": "dock_a"})) == ["dock_a"]


def test_failed_delete_keeps_stored_images(db, lead_service, storage, make_lead, monkeypatch):
    lead_id = make_lead()
    image = lead_service.upload_image(lead_id, "roof.jpg", b"jpeg", "image/jpeg").data

    def broken_commit():
        raise OperationalError("DELETE", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "commit", broken_commit)
    result = lead_service.delete_lead(lead_id)
    monkeypatch.undo()

    assert result.error.code == "TransportError"
    assert (storage.root / image.file_path).exists()
    assert db.get(RoofLead, lead_id) is not None


@pytest.mark.parametrize("file_name, mime_type, ext", [
    ("a.png/x", "image/png", "png"),
    ("../../etc.JPG", "image/jpeg", "jpg"),
    ("scan", "image/svg+xml", "bin"),
])
def test_storage_key_extension_is_sanitized(lead_service, make_lead, file_name, mime_type, ext):
    lead_id = make_lead()

    image = lead_service.upload_image(lead_id, file_name, b"bytes", mime_type).data

    key = image.file_path
    assert key.count("/") == 1
    assert key.startswith(f"{lead_id}/")
    assert key.endswith(f".{ext}")
