"""
HTTP and WebSocket tests for the FastAPI host.
"""
import httpx
import pytest
from fastapi.testclient import TestClient

from caseworker.context import WorkerContext
from caseworker.host import create_app
from caseworker.worker import ServiceWorker

from conftest import SHELL_ASSETS


@pytest.fixture
def client(settings, upstream):
    worker = ServiceWorker(
        WorkerContext.from_settings(settings, transport=httpx.MockTransport(upstream.handler))
    )
    app = create_app(worker=worker, periodic_sync_interval=0, performance_interval=0)
    with TestClient(app) as test_client:
        yield test_client


def test_health_endpoint_returns_200(client):
    """Test that the worker health endpoint returns HTTP 200"""
    response = client.get("/__worker__/health")
    assert response.status_code == 200


def test_health_endpoint_reports_active_worker(client):
    """Test that health reports the activated state and version"""
    data = client.get("/__worker__/health").json()
    assert data["status"] == "ok"
    assert data["state"] == "activated"
    assert data["version"] == "v1"


def test_stats_endpoint(client):
    """Test that stats lists stores, queue length and metrics"""
    data = client.get("/__worker__/stats").json()
    assert data["caches"] == ["static-v1"]
    assert data["queued"] == 0
    assert data["pending_sync_tags"] == []
    assert "hit_rate_percent" in data["metrics"]


def test_precached_page_served_from_cache(client, upstream):
    """Test that a precached page is served from cache offline"""
    upstream.online = False
    response = client.get("/index.html")
    assert response.status_code == 200
    assert response.content == SHELL_ASSETS["/index.html"]
    assert response.headers["X-Worker-Source"] == "cache"


def test_api_read_offline_without_copy(client, upstream):
    """Test that an uncached API read offline returns 503"""
    upstream.online = False
    response = client.get("/api/cases")
    assert response.status_code == 503
    assert response.json() == {"error": "Network unavailable", "offline": True}


def test_api_read_online_then_offline(client, upstream):
    """Test that an API read offline returns the stored copy"""
    upstream.set("/api/cases?doctor=A", [{"id": 3}])
    assert client.get("/api/cases", params={"doctor": "A"}).headers["X-Worker-Source"] == "network"

    upstream.online = False
    response = client.get("/api/cases", params={"doctor": "A"})
    assert response.json() == [{"id": 3}]
    assert response.headers["X-Worker-Source"] == "cache"


def test_offline_post_is_queued_then_synced(client, upstream):
    """Test that an offline POST is queued and replayed on connectivity"""
    upstream.online = False
    response = client.post("/api/cases", json={"patient_id": "P1", "exam_type": "EEG"})

    assert response.status_code == 200
    assert response.json()["queued"] is True
    assert response.headers["X-Worker-Source"] == "queued"
    assert client.get("/__worker__/stats").json()["queued"] == 1
    [entry] = client.get("/__worker__/queue").json()
    assert entry["method"] == "POST"
    assert entry["url"] == "http://casetrack.test/api/cases"

    upstream.online = True
    syncs = client.post("/__worker__/connectivity").json()["syncs"]

    assert len(syncs) == 1
    assert syncs[0]["replayed"] == [response.json()["id"]]
    assert client.get("/__worker__/stats").json()["queued"] == 0


def test_offline_navigation_gets_app_shell(client, upstream):
    """Test that an offline navigation gets the app shell"""
    upstream.online = False
    response = client.get("/styles/print.css", headers={"Sec-Fetch-Dest": "document"})
    assert response.status_code == 200
    assert response.content == SHELL_ASSETS["/offline.html"]
    assert response.headers["X-Worker-Source"] == "fallback"


def test_uncached_page_offline_is_bad_gateway(client, upstream):
    """Test that an uncached page offline returns 502"""
    upstream.online = False
    response = client.get("/reports/monthly")
    assert response.status_code == 502
    assert response.json()["offline"] is True


def test_offline_options_is_bad_gateway_not_queued(client, upstream):
    """Test that an offline OPTIONS request is answered 502 and not queued"""
    upstream.online = False
    response = client.options("/api/cases")
    assert response.status_code == 502
    assert client.get("/__worker__/stats").json()["queued"] == 0


def test_messages_endpoint(client):
    """Test that commands posted over HTTP are answered"""
    assert client.post("/__worker__/messages", json={"type": "GET_VERSION"}).json() == {
        "type": "VERSION",
        "version": "v1",
    }
    assert client.post("/__worker__/messages", json={"type": "SKIP_WAITING"}).json() == {"status": "ok"}


def test_messages_endpoint_rejects_unknown_command(client):
    """Test that an unknown command returns 422"""
    response = client.post("/__worker__/messages", json={"type": "LAUNCH"})
    assert response.status_code == 422


def test_websocket_round_trip(client, upstream):
    """Test that the page channel carries replies and notifications"""
    with client.websocket_connect("/__worker__/clients?url=/index.html") as websocket:
        websocket.send_json({"type": "GET_VERSION"})
        assert websocket.receive_json() == {"type": "VERSION", "version": "v1"}

        client.post("/__worker__/sync")
        message = websocket.receive_json()
        assert message["type"] == "SYNC_COMPLETE"
