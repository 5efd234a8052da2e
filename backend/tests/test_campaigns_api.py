import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from couponhub.db.base import Base
from couponhub.db.session import get_session
from couponhub.main import app


@pytest.fixture
def test_app() -> TestClient:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async def init_models() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(init_models())

    async def override_get_session():
        async with SessionLocal() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    client = TestClient(app)
    yield client
    client.close()
    app.dependency_overrides.clear()


def campaign_body(code: str = "SPRING10", **overrides) -> dict:  # type: ignore[no-untyped-def]
    now = datetime.now(timezone.utc)
    body = {
        "code": code,
        "name": "Spring sale",
        "description": "Ten percent off everything",
        "discount": {"type": "percentage", "rate": "10"},
        "start_date": (now - timedelta(days=1)).isoformat(),
        "end_date": (now + timedelta(days=7)).isoformat(),
        "max_issuance": 2,
    }
    body.update(overrides)
    return body


def create_active_campaign(client: TestClient, **overrides) -> dict:  # type: ignore[no-untyped-def]
    res = client.post("/api/v1/campaigns", json=campaign_body(**overrides))
    assert res.status_code == 201, res.text
    campaign_id = res.json()["id"]
    res = client.put(f"/api/v1/campaigns/{campaign_id}/activate")
    assert res.status_code == 200, res.text
    return res.json()


def test_create_campaign(test_app: TestClient) -> None:
    res = test_app.post("/api/v1/campaigns", json=campaign_body(code="spring10"))
    assert res.status_code == 201, res.text
    body = res.json()
    assert body["code"] == "SPRING10"
    assert body["status"] == "created"
    assert body["issued_count"] == 0
    assert body["discount"]["type"] == "percentage"
    assert float(body["discount"]["rate"]) == 10
    assert body["is_available"] is False
    assert body["created_at"]

    res = test_app.get(f"/api/v1/campaigns/{body['id']}")
    assert res.status_code == 200
    assert res.json()["code"] == "SPRING10"


def test_create_campaign_validation_failure(test_app: TestClient) -> None:
    res = test_app.post(
        "/api/v1/campaigns",
        json=campaign_body(name="", discount={"type": "percentage", "rate": "150"}),
    )
    assert res.status_code == 400
    body = res.json()
    assert body["code"] == "validation_failed"
    assert len(body["detail"]) == 2


def test_create_campaign_duplicate_code(test_app: TestClient) -> None:
    assert test_app.post("/api/v1/campaigns", json=campaign_body(code="DUP")).status_code == 201
    res = test_app.post("/api/v1/campaigns", json=campaign_body(code="dup"))
    assert res.status_code == 409
    assert res.json()["code"] == "duplicate_code"


def test_create_campaign_unknown_discount_type(test_app: TestClient) -> None:
    res = test_app.post("/api/v1/campaigns", json=campaign_body(discount={"type": "bogo"}))
    assert res.status_code == 422
    body = res.json()
    assert body["code"] == "validation_error"
    assert isinstance(body["detail"], list)


@pytest.mark.parametrize("discount", [{"type": "fixed_amount"}, {"type": "percentage"}])
def test_create_campaign_missing_discount_payload(test_app: TestClient, discount: dict) -> None:
    res = test_app.post("/api/v1/campaigns", json=campaign_body(discount=discount))
    assert res.status_code == 400
    body = res.json()
    assert body["code"] == "validation_failed"
    assert len(body["detail"]) == 1


@pytest.mark.parametrize(
    "discount",
    [{"type": "fixed_amount", "amount": "0.001"}, {"type": "percentage", "rate": "0.001"}],
)
def test_create_campaign_rejects_sub_cent_discounts(test_app: TestClient, discount: dict) -> None:
    res = test_app.post("/api/v1/campaigns", json=campaign_body(discount=discount))
    assert res.status_code == 400
    assert res.json()["code"] == "validation_failed"

    assert test_app.get("/api/v1/campaigns").json()["total"] == 0


def test_created_discount_matches_stored_value(test_app: TestClient) -> None:
    res = test_app.post(
        "/api/v1/campaigns", json=campaign_body(discount={"type": "fixed_amount", "amount": "12.50"})
    )
    assert res.status_code == 201, res.text
    created = res.json()

    stored = test_app.get(f"/api/v1/campaigns/{created['id']}").json()
    assert float(stored["discount"]["amount"]) == float(created["discount"]["amount"]) == 12.5
    assert stored["created_at"]
    assert stored["updated_at"]


def test_missing_campaign_returns_not_found(test_app: TestClient) -> None:
    res = test_app.get("/api/v1/campaigns/9999")
    assert res.status_code == 404
    assert res.json() == {"detail": "Campaign not found: 9999", "code": "campaign_not_found"}

    res = test_app.post("/api/v1/campaigns/9999/issue", json={"holder_id": "holder-1"})
    assert res.status_code == 404
    assert res.json()["code"] == "campaign_not_found"


def test_list_campaigns_paginates(test_app: TestClient) -> None:
    for idx in range(3):
        assert test_app.post("/api/v1/campaigns", json=campaign_body(code=f"PAGE{idx}")).status_code == 201

    res = test_app.get("/api/v1/campaigns", params={"page": 1, "size": 2})
    assert res.status_code == 200
    body = res.json()
    assert body["total"] == 3
    assert body["page"] == 1
    assert body["size"] == 2
    assert [item["code"] for item in body["items"]] == ["PAGE2"]

    res = test_app.get("/api/v1/campaigns")
    assert res.json()["size"] == 10


def test_update_activate_deactivate(test_app: TestClient) -> None:
    created = test_app.post("/api/v1/campaigns", json=campaign_body()).json()
    campaign_id = created["id"]

    res = test_app.put(f"/api/v1/campaigns/{campaign_id}", json={"name": "Renamed"})
    assert res.status_code == 200
    assert res.json()["name"] == "Renamed"
    assert res.json()["description"] == "Ten percent off everything"

    res = test_app.put(f"/api/v1/campaigns/{campaign_id}", json={"name": "  "})
    assert res.status_code == 400
    assert res.json()["code"] == "validation_failed"

    res = test_app.put(f"/api/v1/campaigns/{campaign_id}/activate")
    assert res.json()["status"] == "active"
    assert res.json()["is_available"] is True

    res = test_app.put(f"/api/v1/campaigns/{campaign_id}/deactivate")
    assert res.json()["status"] == "disabled"
    assert res.json()["is_available"] is False


def test_available_campaigns(test_app: TestClient) -> None:
    create_active_campaign(test_app, code="OPEN")
    test_app.post("/api/v1/campaigns", json=campaign_body(code="DRAFT"))

    res = test_app.get("/api/v1/campaigns/available")
    assert res.status_code == 200
    assert [item["code"] for item in res.json()] == ["OPEN"]


def test_issue_until_capacity_is_exhausted(test_app: TestClient) -> None:
    campaign = create_active_campaign(test_app, max_issuance=2)
    campaign_id = campaign["id"]

    for holder in ("holder-1", "holder-2"):
        res = test_app.post(f"/api/v1/campaigns/{campaign_id}/issue", json={"holder_id": holder})
        assert res.status_code == 201, res.text
        assert res.json()["status"] == "issued"
        assert res.json()["holder_id"] == holder
        assert res.json()["campaign_id"] == campaign_id

    res = test_app.post(f"/api/v1/campaigns/{campaign_id}/issue", json={"holder_id": "holder-3"})
    assert res.status_code == 409
    assert res.json()["code"] == "not_eligible"

    body = test_app.get(f"/api/v1/campaigns/{campaign_id}").json()
    assert body["issued_count"] == 2
    assert body["status"] == "expired"

    metrics = test_app.get("/api/v1/metrics").json()
    assert metrics["coupons_issued"] == 2
    assert metrics["issuance_rejected"] == 1


def test_issue_requires_holder_id(test_app: TestClient) -> None:
    campaign = create_active_campaign(test_app)
    res = test_app.post(f"/api/v1/campaigns/{campaign['id']}/issue", json={"holder_id": ""})
    assert res.status_code == 422
    assert res.json()["code"] == "validation_error"


def test_delete_campaign_without_history(test_app: TestClient) -> None:
    campaign_id = test_app.post("/api/v1/campaigns", json=campaign_body()).json()["id"]

    res = test_app.delete(f"/api/v1/campaigns/{campaign_id}")
    assert res.status_code == 200
    assert res.json() == {"campaign_id": campaign_id, "action": "delete"}
    assert test_app.get(f"/api/v1/campaigns/{campaign_id}").status_code == 404


def test_delete_campaign_with_history_disables(test_app: TestClient) -> None:
    campaign = create_active_campaign(test_app)
    issued = test_app.post(f"/api/v1/campaigns/{campaign['id']}/issue", json={"holder_id": "holder-1"}).json()
    test_app.post(f"/api/v1/coupons/{issued['id']}/redeem")

    res = test_app.delete(f"/api/v1/campaigns/{campaign['id']}")
    assert res.status_code == 200
    assert res.json() == {"campaign_id": campaign["id"], "action": "disable"}

    body = test_app.get(f"/api/v1/campaigns/{campaign['id']}").json()
    assert body["status"] == "disabled"
    assert body["issued_count"] == 1
