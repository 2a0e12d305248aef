import httpx

from prism import models
from prism.api import deps
from prism.database import SessionLocal
from prism.main import app
from prism.services.attachment_storage import resolve_local_path_from_storage_uri
from prism.services.backend_client import PrismBackendClient


def _use_fake_backend(api):
    app.dependency_overrides[deps.get_backend_client] = lambda: PrismBackendClient(
        "http://prism.test", transport=httpx.MockTransport(api)
    )


def _create_draft(client, **overrides):
    payload = {
        "name": "Spring Campaign",
        "division": "Talent",
        "owner": {"id": "owner", "name": "Olivia"},
        "additional_agents": [{"id": "a1", "name": "Avery"}],
    }
    payload.update(overrides)
    r = client.post("/api/drafts", json=payload, headers={"X-User-Id": "user-7"})
    assert r.status_code == 201, r.text
    return r.json()


def _add_product_with_schedule(client, draft_id):
    r = client.post(
        f"/api/drafts/{draft_id}/products",
        json={"product_name": "Posts", "unit_price": "250", "quantity": "2"},
    )
    assert r.status_code == 201, r.text
    product = r.json()
    r = client.post(
        f"/api/drafts/{draft_id}/schedules",
        json={
            "product_id": product["id"],
            "description": "Q1",
            "schedule_date": "2025-01-15",
            "revenue": "1000",
            "split_percent": "20",
        },
    )
    assert r.status_code == 201, r.text
    return product, r.json()


def test_healthcheck_and_request_id_header(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert "uptime_seconds" in body
    assert "X-Request-ID" in r.headers

    r = client.get("/", headers={"X-Request-ID": "req-123"})
    assert r.headers["X-Request-ID"] == "req-123"


def test_create_draft_seeds_agent_splits_and_audits(client, db_session):
    body = _create_draft(client)

    assert body["status"] == "open"
    assert body["created_by"] == "user-7"
    assert body["deal"]["agent_splits"] == {"a1": "50.00", "owner": "50.00"}
    assert body["amount_locked"] is False

    actions = [a.action for a in db_session.query(models.AuditLog).all()]
    assert "deal_draft.created" in actions


def test_list_and_get_drafts(client):
    first = _create_draft(client, name="First")
    _create_draft(client, name="Second", division="Brillstein")

    r = client.get("/api/drafts")
    assert [d["name"] for d in r.json()] == ["Second", "First"]

    r = client.get("/api/drafts", params={"division": "Brillstein"})
    assert [d["name"] for d in r.json()] == ["Second"]

    r = client.get(f"/api/drafts/{first['id']}")
    assert r.status_code == 200
    assert r.json()["deal"]["name"] == "First"

    assert client.get("/api/drafts/9999").status_code == 404


def test_product_and_schedule_cascade(client):
    draft = _create_draft(client)
    product, schedule = _add_product_with_schedule(client, draft["id"])

    assert product["total_price"] == "500.00"
    assert schedule["commission_amount"] == "200.00"
    assert schedule["talent_amount"] == "800.00"

    body = client.get(f"/api/drafts/{draft['id']}").json()
    assert body["deal"]["amount"] == "1000.00"
    assert body["deal"]["products"][0]["total_price"] == "1000.00"
    assert body["deal"]["split_percent"] == "20.00"
    assert body["amount_locked"] is True
    assert body["split_percent_locked"] is True

    r = client.patch(
        f"/api/drafts/{draft['id']}/schedules/{schedule['id']}", json={"talent_amount": "900"}
    )
    assert r.status_code == 200
    assert r.json()["commission_amount"] == "100.00"
    assert r.json()["split_percent"] == "10.00"


def test_derived_fields_are_read_only(client):
    draft = _create_draft(client)
    product, _ = _add_product_with_schedule(client, draft["id"])

    r = client.patch(f"/api/drafts/{draft['id']}", json={"amount": "5"})
    assert r.status_code == 409
    r = client.patch(f"/api/drafts/{draft['id']}", json={"split_percent": "5"})
    assert r.status_code == 409
    r = client.patch(
        f"/api/drafts/{draft['id']}/products/{product['id']}", json={"total_price": "1"}
    )
    assert r.status_code == 409

    r = client.patch(f"/api/drafts/{draft['id']}", json={"stage": "Negotiation"})
    assert r.status_code == 200
    assert r.json()["deal"]["stage"] == "Negotiation"


def test_remove_product_removes_its_schedules(client):
    draft = _create_draft(client)
    product, _ = _add_product_with_schedule(client, draft["id"])

    r = client.delete(f"/api/drafts/{draft['id']}/products/{product['id']}")
    assert r.status_code == 200
    assert r.json()["deal"]["products"] == []
    assert r.json()["deal"]["schedules"] == []

    r = client.delete(f"/api/drafts/{draft['id']}/products/{product['id']}")
    assert r.status_code == 404


def test_schedule_split_mode_and_payees(client):
    draft = _create_draft(client)
    _, schedule = _add_product_with_schedule(client, draft["id"])
    base = f"/api/drafts/{draft['id']}"

    r = client.post(f"{base}/schedules/{schedule['id']}/payees", json={"custom_name": "Jane"})
    assert r.status_code == 400

    r = client.put(f"{base}/split-mode", json={"enabled": True})
    assert r.status_code == 200
    assert r.json()["deal"]["schedules"][0]["agent_splits"] == {"a1": "50.00", "owner": "50.00"}

    r = client.post(f"{base}/schedules/{schedule['id']}/payees", json={"custom_name": "Jane"})
    assert r.status_code == 201
    assert r.json()["agent_splits"] == {"a1": "33.33", "owner": "33.33", "custom_Jane": "33.33"}

    r = client.put(f"{base}/schedules/{schedule['id']}/payees/custom_Jane", json={"percent": "34"})
    assert r.status_code == 200
    assert r.json()["agent_splits"]["custom_Jane"] == "34"

    r = client.delete(f"{base}/schedules/{schedule['id']}/payees/a1")
    assert r.status_code == 200
    assert r.json()["agent_splits"] == {"owner": "50.00", "custom_Jane": "50.00"}

    r = client.put(f"{base}/agent-splits/a1", json={"percent": "10"})
    assert r.status_code == 409


def test_set_agents_and_deal_level_percent(client):
    draft = _create_draft(client, owner=None, additional_agents=[])
    base = f"/api/drafts/{draft['id']}"

    r = client.put(
        f"{base}/agents",
        json={"owner": {"id": "o1", "name": "Olivia"}, "additional_agents": [{"id": "a9"}]},
    )
    assert r.status_code == 200
    assert r.json()["deal"]["agent_splits"] == {"a9": "50.00", "o1": "50.00"}

    r = client.put(f"{base}/agent-splits/o1", json={"percent": "75"})
    assert r.status_code == 200
    assert r.json()["deal"]["agent_splits"]["o1"] == "75"

    r = client.put(f"{base}/agent-splits/ghost", json={"percent": "5"})
    assert r.status_code == 404


def test_summary_survives_huge_manual_percent(client):
    draft = _create_draft(client, amount="1000", split_percent="20")
    base = f"/api/drafts/{draft['id']}"

    r = client.put(f"{base}/agent-splits/owner", json={"percent": "1e30"})
    assert r.status_code == 200
    assert r.json()["deal"]["agent_splits"]["owner"] == "1e30"

    r = client.get(f"{base}/summary")
    assert r.status_code == 200, r.text
    summary = r.json()
    assert summary["agent_splits_balanced"] is False
    assert summary["agent_splits_total"].endswith(".00")


def test_summary_carries_division_labels(client):
    draft = _create_draft(client, division="Brillstein", amount="1000", split_percent="20")

    r = client.get(f"/api/drafts/{draft['id']}/summary")
    assert r.status_code == 200
    body = r.json()
    assert body["labels"] == {"agent": "Manager", "agents": "Managers", "deal": "Slip", "deals": "Slips"}
    assert body["commission_amount"] == "200.00"
    assert body["talent_amount"] == "800.00"
    assert body["agent_splits_balanced"] is True


def test_attachment_lifecycle(client):
    draft = _create_draft(client)
    base = f"/api/drafts/{draft['id']}"

    r = client.post(
        f"{base}/attachments",
        files={"file": ("brief.pdf", b"x" * 1536, "application/pdf")},
        data={"description": "Brief"},
    )
    assert r.status_code == 201, r.text
    attachment = r.json()
    assert attachment["file_size_label"] == "1.5 KB"
    assert attachment["icon"] == "pdf"

    r = client.patch(f"{base}/attachments/{attachment['id']}", json={"description": "Signed"})
    assert r.json()["description"] == "Signed"

    stored = client.get(base).json()["deal"]["attachments"]
    assert [a["id"] for a in stored] == [attachment["id"]]

    r = client.delete(f"{base}/attachments/{attachment['id']}")
    assert r.status_code == 204
    assert client.get(base).json()["deal"]["attachments"] == []


def test_attachment_limits(client):
    draft = _create_draft(client)
    base = f"/api/drafts/{draft['id']}"

    too_big = b"x" * (1024 * 1024 + 1)
    r = client.post(f"{base}/attachments", files={"file": ("big.bin", too_big, "application/octet-stream")})
    assert r.status_code == 413

    r = client.post(f"{base}/attachments", files={"file": ("empty.txt", b"", "text/plain")})
    assert r.status_code == 400


def test_submit_marks_draft_read_only(client, db_session, fake_prism_api):
    api = fake_prism_api()
    _use_fake_backend(api)
    draft = _create_draft(client)
    _add_product_with_schedule(client, draft["id"])
    client.put(f"/api/drafts/{draft['id']}/split-mode", json={"enabled": True})
    r = client.post(
        f"/api/drafts/{draft['id']}/attachments",
        files={"file": ("brief.pdf", b"%PDF", "application/pdf")},
    )
    storage_uri = db_session.get(models.DealDraftRecord, draft["id"]).document["attachments"][0][
        "storage_uri"
    ]

    r = client.post(f"/api/drafts/{draft['id']}/submit", headers={"X-User-Id": "user-7"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["deal_id"] == "deal-1"
    assert body["outcome"] == "succeeded"
    assert sorted(api.paths()) == [
        "/api/attachments",
        "/api/deals",
        "/api/schedules/up-s1/splits/batch",
    ]
    assert not resolve_local_path_from_storage_uri(storage_uri).exists()

    detail = client.get(f"/api/drafts/{draft['id']}").json()
    assert detail["status"] == "submitted"
    assert detail["upstream_deal_id"] == "deal-1"

    assert client.patch(f"/api/drafts/{draft['id']}", json={"name": "Late edit"}).status_code == 409
    assert client.post(f"/api/drafts/{draft['id']}/submit").status_code == 409

    log = client.get(f"/api/drafts/{draft['id']}/submissions").json()
    assert [entry["outcome"] for entry in log] == ["succeeded"]


def test_submit_failure_keeps_draft_open(client, fake_prism_api):
    _use_fake_backend(fake_prism_api(fail_create=True))
    draft = _create_draft(client)

    r = client.post(f"/api/drafts/{draft['id']}/submit")
    assert r.status_code == 502

    detail = client.get(f"/api/drafts/{draft['id']}").json()
    assert detail["status"] == "open"
    log = client.get(f"/api/drafts/{draft['id']}/submissions").json()
    assert [entry["outcome"] for entry in log] == ["failed"]


def test_submit_claims_draft_before_calling_upstream(client, fake_prism_api):
    seen = []

    class StatusRecordingApi(fake_prism_api):
        def __call__(self, request):
            if request.url.path == "/api/deals":
                with SessionLocal() as db:
                    seen.append(db.get(models.DealDraftRecord, draft["id"]).status)
            return super().__call__(request)

    _use_fake_backend(StatusRecordingApi())
    draft = _create_draft(client)

    r = client.post(f"/api/drafts/{draft['id']}/submit")
    assert r.status_code == 200, r.text
    assert seen == [models.DraftStatus.submitting]


def test_submit_in_flight_draft_is_rejected(client, db_session, fake_prism_api):
    api = fake_prism_api()
    _use_fake_backend(api)
    draft = _create_draft(client)
    record = db_session.get(models.DealDraftRecord, draft["id"])
    record.status = models.DraftStatus.submitting
    db_session.commit()

    base = f"/api/drafts/{draft['id']}"
    r = client.post(f"{base}/submit")
    assert r.status_code == 409
    assert "being submitted" in r.json()["detail"]
    assert api.calls == []

    assert client.patch(base, json={"name": "Edit"}).status_code == 409
    assert client.delete(base).status_code == 409
    assert client.get(base).json()["status"] == "submitting"


def test_discard_draft(client):
    draft = _create_draft(client)
    assert client.delete(f"/api/drafts/{draft['id']}").status_code == 204
    assert client.get(f"/api/drafts/{draft['id']}").status_code == 404
