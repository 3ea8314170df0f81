"""HTTP surface, with repositories and the service swapped for in-memory doubles."""
import pytest
from httpx import ASGITransport, AsyncClient

from app.api.deps import activity_repo_dep, product_repo_dep, recommendation_service_dep
from app.domain.errors import UpstreamUnavailable
from app.main import app

from conftest import make_activity

BASE = "http://test"
PREFIX = "/api/recommendations"


@pytest.fixture
async def client(service, catalog, activity_repo):
    app.dependency_overrides[recommendation_service_dep] = lambda: service
    app.dependency_overrides[activity_repo_dep] = lambda: activity_repo
    app.dependency_overrides[product_repo_dep] = lambda: catalog
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=BASE) as c:
        yield c
    app.dependency_overrides.clear()


async def test_create_activity(client, activity_repo, clock):
    resp = await client.post(f"{PREFIX}/activities",
                             json={"user_id": "u1", "product_id": "phone", "activity_type": "view",
                                   "metadata": {"view_duration": 42}})
    assert resp.status_code == 201
    data = resp.json()
    assert data["activity_type"] == "view"
    assert data["metadata"] == {"view_duration": 42}
    assert len(activity_repo.records) == 1


async def test_create_activity_unknown_product(client):
    resp = await client.post(f"{PREFIX}/activities",
                             json={"user_id": "u1", "product_id": "ghost", "activity_type": "view"})
    assert resp.status_code == 404


async def test_create_activity_invalid_type(client):
    resp = await client.post(f"{PREFIX}/activities",
                             json={"user_id": "u1", "product_id": "phone", "activity_type": "like"})
    assert resp.status_code == 422


async def test_generate_then_get(client, activity_repo):
    activity_repo.records.append(make_activity("u1", "phone", "purchase"))

    resp = await client.post(f"{PREFIX}/users/u1/generate")
    assert resp.status_code == 200
    rec = resp.json()
    assert rec["sent"] is False
    assert rec["products"][0]["reason"] == "similar_purchase"

    resp = await client.get(f"{PREFIX}/users/u1")
    assert resp.status_code == 200
    view = resp.json()
    assert view["recommendation_id"] == rec["recommendation_id"]
    assert view["sent"] is True
    assert view["products"][0]["product"]["product_id"] == rec["products"][0]["product_id"]


async def test_generate_with_preferences(client):
    resp = await client.post(f"{PREFIX}/users/new/generate", json={"preferences": {"categories": ["clothing"]}})
    assert resp.status_code == 200
    assert resp.json()["products"][0]["product_id"] == "tshirt"


async def test_get_with_nothing_to_recommend(client, catalog):
    catalog.items.clear()
    resp = await client.get(f"{PREFIX}/users/u1")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "No recommendations available for this user"


async def test_upstream_failure_maps_to_503(client, activity_repo):
    async def boom(*a, **kw):
        raise UpstreamUnavailable("mongo down")
    activity_repo.find_by_user = boom
    resp = await client.post(f"{PREFIX}/users/u1/generate")
    assert resp.status_code == 503


async def test_mark_sent(client, activity_repo):
    activity_repo.records.append(make_activity("u1", "phone", "view"))
    rec = (await client.post(f"{PREFIX}/users/u1/generate")).json()

    resp = await client.patch(f"{PREFIX}/{rec['recommendation_id']}/sent")
    assert resp.status_code == 200
    first = resp.json()
    assert first["sent"] is True

    again = (await client.patch(f"{PREFIX}/{rec['recommendation_id']}/sent")).json()
    assert again["sent_at"] == first["sent_at"]

    assert (await client.patch(f"{PREFIX}/missing/sent")).status_code == 404


async def test_batch(client, activity_repo):
    activity_repo.records += [make_activity("u1", "phone", "view"), make_activity("u2", "laptop", "cart")]
    resp = await client.post(f"{PREFIX}/batch")
    assert resp.status_code == 200
    assert resp.json() == {"success": 2, "failed": 0, "total": 2, "timed_out": False}


async def test_health_without_mongo(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "error"
    assert data["checks"]["mongodb"].startswith("error")
    assert data["checks"]["redis"] == "skipped"
    assert data["checks"]["kafka"] == "skipped"
