import json
import os
import tempfile

# CRITICAL: Set environment variables BEFORE any prism imports
# These must be set before prism.config.settings is loaded
_TEST_DB_PATH = os.path.join(tempfile.gettempdir(), "test_prism.db")
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{_TEST_DB_PATH}"
os.environ["ENVIRONMENT"] = "test"
os.environ["API_V1_STR"] = "/api"  # Ensure /api prefix is used in tests
os.environ["STORAGE_DIR"] = tempfile.mkdtemp(prefix="prism-test-storage-")
os.environ["PRISM_API_URL"] = "http://prism.test"
os.environ["MAX_ATTACHMENT_MB"] = "1"

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

# Now import prism modules - they will use the test DATABASE_URL
from prism.database import Base, get_db, engine as app_engine
from prism.main import app

# Use the same engine that the app uses
TEST_ENGINE = app_engine

TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=TEST_ENGINE, future=True
)


def override_get_db():
    """Test database session that uses the test engine."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


# Override the ORIGINAL function from the database module
app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(scope="function", autouse=True)
def setup_test_database():
    """
    Create all tables before each test and drop them after.
    Also restores dependency overrides so tests stay isolated.
    """
    original_overrides = dict(app.dependency_overrides)

    Base.metadata.drop_all(bind=TEST_ENGINE)
    Base.metadata.create_all(bind=TEST_ENGINE)

    yield

    app.dependency_overrides.clear()
    app.dependency_overrides.update(original_overrides)

    Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client():
    return TestClient(app)


class FakePrismApi:
    """httpx.MockTransport handler standing in for the Prism REST API."""

    def __init__(self, *, fail_create=False, fail_attachments=(), fail_split_schedules=()):
        self.calls = []
        self.fail_create = fail_create
        self.fail_attachments = set(fail_attachments)
        self.fail_split_schedules = set(fail_split_schedules)

    @staticmethod
    def created_deal(payload: dict) -> dict:
        # Echo the create request back with ids and ISO timestamps.
        products = []
        n = 0
        for i, p in enumerate(payload.get("products", [])):
            schedules = []
            for s in p["schedules"]:
                n += 1
                schedules.append(
                    {
                        "id": f"up-s{n}",
                        "ScheduleDate": f"{s['ScheduleDate']}T00:00:00.000Z",
                        "Description": s["Description"],
                    }
                )
            products.append({"id": f"up-p{i + 1}", "schedules": schedules})
        return {"id": "deal-1", "products": products}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        self.calls.append((request.method, request.url.path, body))

        if request.url.path == "/api/deals":
            if self.fail_create:
                return httpx.Response(500, json={"success": False, "error": "boom"})
            return httpx.Response(201, json={"success": True, "data": self.created_deal(body)})

        if request.url.path == "/api/attachments":
            if body["fileName"] in self.fail_attachments:
                return httpx.Response(500, json={"success": False})
            return httpx.Response(201, json={"success": True, "data": {"id": "att-1"}})

        if request.url.path.endswith("/splits/batch"):
            schedule_id = request.url.path.split("/")[3]
            if schedule_id in self.fail_split_schedules:
                return httpx.Response(500, json={"success": False})
            return httpx.Response(200, json={"success": True, "data": body["splits"]})

        return httpx.Response(404)

    def paths(self):
        return [path for _, path, _ in self.calls]


@pytest.fixture
def fake_prism_api():
    return FakePrismApi
