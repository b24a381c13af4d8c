import os
import uuid
from datetime import datetime, timezone

# Settings are read at import time
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from roof_finder.core.security import create_access_token
from roof_finder.database import get_db, init_db, make_engine
from roof_finder.main import app as fastapi_app
from roof_finder.schemas.roof_lead import RoofLeadOut
from roof_finder.services.roof_lead_service import RoofLeadService
from roof_finder.services.storage_service import LocalStorage, get_storage

TEST_DATABASE_URL = "sqlite://"

POINT = {"type": "Point", "coordinates": [-95.37, 29.76]}


@pytest.fixture
def engine():
    engine = make_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(root=tmp_path)


@pytest.fixture
def lead_service(db, storage):
    return RoofLeadService(db, storage)


@pytest.fixture
def make_lead(lead_service):
    """Create a lead through the service and return its id."""
    def _make(**overrides):
        payload = {
            "name": "Warehouse on 5th",
            "geometry": POINT,
            "condition_label": "aged",
            "condition_score": 3,
            "tags": ["flat"],
            "notes": "Visible patches",
            "address": "500 5th St",
            "city": "Houston",
            "state": "TX",
            "zip_code": "77002",
            "estimated_sqft": 12000,
        }
        payload.update(overrides)
        result = lead_service.create_lead(payload, created_by=uuid.uuid4())
        assert result.success, result.error
        return result.data.id
    return _make


@pytest.fixture
def lead_summary():
    """Build an in-memory RoofLeadOut without touching the database."""
    def _summary(name="Lead", **overrides):
        now = datetime.now(timezone.utc)
        data = {
            "id": uuid.uuid4(),
            "name": name,
            "geometry": "POINT(-95.37 29.76)",
            "geometry_type": "Point",
            "coordinates": POINT,
            "condition_label": "other",
            "condition_score": 1,
            "status": "new",
            "created_at": now,
            "updated_at": now,
        }
        data.update(overrides)
        return RoofLeadOut.model_validate(data)
    return _summary


@pytest.fixture
def app(db, storage):
    def override_get_db():
        yield db

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_storage] = lambda: storage
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def token(user_id):
    return create_access_token({"sub": str(user_id)})


@pytest.fixture
def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}
