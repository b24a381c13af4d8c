from roof_finder.schemas.roof_lead import RoofLeadDetail
from roof_finder.services.lead_store import LeadStore


def test_replace_all_records_sequence(lead_summary):
    store = LeadStore()
    store.replace_all([lead_summary("A"), lead_summary("B")], sequence=3)

    assert [lead.name for lead in store.leads] == ["A", "B"]
    assert store.applied_sequence == 3


def test_append_page_skips_known_ids(lead_summary):
    store = LeadStore()
    a, b = lead_summary("A"), lead_summary("B")
    store.replace_all([a], sequence=1)

    store.append_page([a, b], sequence=1)

    assert [lead.name for lead in store.leads] == ["A", "B"]


def test_markers_skip_undecodable_leads(lead_summary):
    store = LeadStore()
    good = lead_summary("Good")
    broken = lead_summary("Broken", geometry="GARBAGE", coordinates=None)
    store.replace_all([good, broken], sequence=1)

    markers = store.markers()

    assert [m["name"] for m in markers] == ["Good"]
    assert markers[0]["geometry"].coordinates == [-95.37, 29.76]


def test_patch_updates_list_and_selection(lead_summary):
    store = LeadStore()
    lead = lead_summary("Old name")
    store.replace_all([lead], sequence=1)
    store.select(RoofLeadDetail.model_validate(lead.model_dump()))

    store.patch(lead.model_copy(update={"name": "New name"}))

    assert store.get(lead.id).name == "New name"
    assert store.selected.name == "New name"


def test_insert_and_remove(lead_summary):
    store = LeadStore()
    existing, created = lead_summary("Existing"), lead_summary("Created")
    store.replace_all([existing], sequence=1)

    store.insert(created)
    assert [lead.name for lead in store.leads] == ["Created", "Existing"]

    store.select(RoofLeadDetail.model_validate(created.model_dump()))
    store.remove(created.id)
    assert len(store) == 1
    assert store.selected is None
