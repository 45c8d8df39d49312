"""
HTTP API Tests
==============

FastAPI endpoints exercised through TestClient with an injected gateway.
"""

import base64
import random

import pytest
from fastapi.testclient import TestClient

from visual_guide.gateway import AnalysisGateway, AnalysisQueue, ResultCache
from visual_guide.main import client_id_from, create_app

from conftest import FakeBackend, sample_result


def encode(payload: bytes) -> str:
    return base64.b64encode(payload).decode("ascii")


@pytest.fixture
def backend():
    return FakeBackend([sample_result()])


@pytest.fixture
def api(backend):
    gateway = AnalysisGateway(
        backend=backend,
        cache=ResultCache(sweep_probability=0.0),
        queue=AnalysisQueue(backend.analyze, pacing_seconds=0),
        rng=random.Random(3),
    )
    with TestClient(create_app(gateway=gateway)) as client:
        yield client


class TestServiceEndpoints:
    """Test informational endpoints."""

    def test_root(self, api):
        response = api.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_health(self, api):
        response = api.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_metrics(self, api):
        api.post("/analyze-image", json={"image": encode(b"frame-1")})
        metrics = api.get("/metrics").json()
        assert metrics["requests"] == 1
        assert metrics["queue"]["completed"] == 1
        assert metrics["cache"]["entries"] == 1


class TestAnalyzeImage:
    """Test POST /analyze-image."""

    def test_fresh_result(self, api, backend):
        response = api.post("/analyze-image", json={"image": encode(b"frame-1")})

        assert response.status_code == 200
        body = response.json()
        assert body["type"] == "obstacle"
        assert body["severity"] == "warning"
        assert body["fromCache"] is False
        assert "waitTime" not in body
        assert backend.payloads == [b"frame-1"]

    def test_data_url_and_legacy_field(self, api, backend):
        data_url = "data:image/jpeg;base64," + encode(b"frame-2")
        response = api.post("/analyze-image", json={"imageData": data_url})

        assert response.status_code == 200
        assert backend.payloads == [b"frame-2"]

    def test_repeat_is_served_from_cache(self, api, backend):
        api.post("/analyze-image", json={"image": encode(b"frame-1")})
        body = api.post("/analyze-image", json={"image": encode(b"frame-1")}).json()

        assert body["fromCache"] is True
        assert backend.call_count == 1

    def test_rate_limited_is_200_with_wait_time(self, api):
        headers = {"X-Forwarded-For": "10.0.0.7"}
        api.post("/analyze-image", json={"image": encode(b"frame-1")}, headers=headers)
        response = api.post("/analyze-image", json={"image": encode(b"frame-2")}, headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert body["rateLimited"] is True
        assert body["waitTime"] >= 1

    def test_clients_are_limited_separately(self, api):
        first = api.post(
            "/analyze-image",
            json={"image": encode(b"frame-1")},
            headers={"X-Forwarded-For": "10.0.0.7, 172.16.0.1"},
        ).json()
        second = api.post(
            "/analyze-image",
            json={"image": encode(b"frame-2")},
            headers={"X-Real-IP": "10.0.0.8"},
        ).json()

        assert not first["rateLimited"]
        assert not second["rateLimited"]

    def test_invalid_base64_is_400(self, api, backend):
        response = api.post("/analyze-image", json={"image": "not base64 !!"})
        assert response.status_code == 400
        assert backend.call_count == 0

    def test_missing_image_is_422(self, api):
        response = api.post("/analyze-image", json={"picture": encode(b"x")})
        assert response.status_code == 422


class FakeRequest:
    def __init__(self, headers=None, host=None):
        self.headers = headers or {}
        self.client = type("Client", (), {"host": host})() if host else None


class TestClientId:
    """Test client identification order."""

    def test_forwarded_for_first_entry(self):
        request = FakeRequest({"x-forwarded-for": "1.1.1.1, 2.2.2.2", "x-real-ip": "3.3.3.3"}, "4.4.4.4")
        assert client_id_from(request) == "1.1.1.1"

    def test_real_ip(self):
        assert client_id_from(FakeRequest({"x-real-ip": "3.3.3.3"}, "4.4.4.4")) == "3.3.3.3"

    def test_peer_host(self):
        assert client_id_from(FakeRequest({}, "4.4.4.4")) == "4.4.4.4"

    def test_unknown(self):
        assert client_id_from(FakeRequest()) == "unknown-client"
