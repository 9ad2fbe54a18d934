"""HTTP and WebSocket route tests with container providers overridden."""

import asyncio

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from starlette.websockets import WebSocketDisconnect

from core.cache import CacheService
from core.container import container
from main import app
from models.generation import GenerationRequest, GenerationResult
from models.jobs import JobRecord

from fakes import make_cards


@pytest.fixture
def overrides(settings, generation_service, queue, adapter_manager, breakers):
    with container.generation_service.override(providers.Object(generation_service)), \
            container.queue.override(providers.Object(queue)), \
            container.adapter_manager.override(providers.Object(adapter_manager)), \
            container.breakers.override(providers.Object(breakers)), \
            container.cache.override(providers.Object(CacheService(settings))):
        yield


@pytest.fixture
async def async_client(overrides):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


class TestGenerateRoute:

    async def test_queued_request_returns_202(self, async_client, queue):
        response = await async_client.post("/api/generate", json={"topic": "react", "count": 5})

        assert response.status_code == 202
        body = response.json()
        assert body["success"] is True
        assert body["status"] == "queued"
        assert body["statusUrl"] == f"/api/jobs/{body['jobId']}"
        assert (await queue.stats())["waiting"] == 1

    async def test_cached_request(self, async_client, generation_cache):
        request = GenerationRequest(topic="react", count=5)
        cached = GenerationResult(cards=make_cards("react", 5), recommended_topics=["Hooks"])
        await generation_cache.set_for_request(request, cached.to_cache())

        response = await async_client.post("/api/generate", json={"topic": "React", "count": 5})

        assert response.status_code == 200
        body = response.json()
        assert body["cached"] is True
        assert len(body["cards"]) == 5
        assert body["recommendedTopics"] == ["Hooks"]

    async def test_direct_generation_when_queue_disabled(self, async_client, queue):
        queue.enabled = False

        response = await async_client.post("/api/generate", json={
            "topic": "react", "count": 2, "knowledgeSource": "ai-only", "runtime": "secondary"})

        assert response.status_code == 200
        body = response.json()
        assert body["cached"] is False
        assert [c["id"] for c in body["cards"]] == ["secondary-0", "secondary-1"]
        assert body["metadata"]["runtime"] == "secondary"
        assert body["metadata"]["queueFallback"] is False

    async def test_all_providers_failed_is_503(self, async_client, queue, primary, secondary):
        queue.enabled = False
        primary.error = RuntimeError("down")
        secondary.error = RuntimeError("rate limited")

        response = await async_client.post("/api/generate", json={
            "topic": "react", "knowledgeSource": "ai-only", "runtime": "primary"})

        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert body["providers"] == {"primary": "down", "secondary": "rate limited"}

    async def test_blank_topic_rejected(self, async_client):
        response = await async_client.post("/api/generate", json={"topic": "   "})

        assert response.status_code == 422


class TestJobRoutes:

    async def test_job_status(self, async_client, queue):
        job_id = await queue.enqueue({"topic": "react"})

        response = await async_client.get(f"/api/jobs/{job_id}")

        assert response.status_code == 200
        assert response.json() == {"id": job_id, "status": "queued", "progress": 0,
                                   "result": None, "error": None}

    async def test_unknown_job_is_404(self, async_client):
        response = await async_client.get("/api/jobs/does-not-exist")

        assert response.status_code == 404

    async def test_queue_stats(self, async_client, queue):
        await queue.enqueue({"topic": "react"})

        response = await async_client.get("/api/queue/stats")

        assert response.status_code == 200
        assert response.json()["counts"]["waiting"] == 1

    async def test_dead_letters(self, async_client):
        response = await async_client.get("/api/queue/dead-letters")

        assert response.status_code == 200
        assert response.json() == {"success": True, "enabled": True, "entries": []}


class TestHealth:

    async def test_reports_checks(self, async_client):
        response = await async_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"]["remote_cache"] is False
        assert body["checks"]["adapters"] == {"primary": True, "secondary": True}
        assert body["priority"] == ["primary", "secondary"]

    async def test_degraded_without_providers(self, async_client, primary, secondary):
        primary.available = False
        secondary.available = False

        response = await async_client.get("/health")

        assert response.json()["status"] == "degraded"


class TestJobWebSocket:

    def test_finished_job_sends_status_and_closes(self, overrides, queue_backend):
        job = JobRecord.create({"topic": "react"})
        job.mark_completed({"cards": []})
        asyncio.run(queue_backend.save(job))

        client = TestClient(app)
        with client.websocket_connect(f"/ws/jobs/{job.id}") as ws:
            event = ws.receive_json()
            assert event["status"] == "completed"
            assert event["progress"] == 100
            with pytest.raises(WebSocketDisconnect):
                ws.receive_json()

    def test_unknown_job_closes_with_not_found(self, overrides):
        client = TestClient(app)
        with client.websocket_connect("/ws/jobs/missing") as ws:
            assert ws.receive_json()["status"] is None
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()

        assert exc_info.value.code == 4404
