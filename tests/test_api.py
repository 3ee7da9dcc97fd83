"""Tests for API routes."""
import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from nexus.agents.orchestrator import ResearchOrchestrator
from nexus.api.routes import research
from nexus.llm_client import GenerationError
from nexus.models.events import EventType
from nexus.models.schemas import MemoryContext, ResearchResult, RunResearchRequest
from nexus.services import supabase as db
from nexus.services.cancellation import CancellationToken
from test_orchestrator import FakeGenerator


@pytest.fixture
def app():
    from nexus.main import app
    return app


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient
    return TestClient(app)


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "nexus"


def test_list_models(client):
    with patch.object(research.settings, "openai_api_key", "sk-test"), patch.object(
        research.settings, "nvidia_api_key", ""
    ):
        response = client.get("/api/models")
    assert response.status_code == 200
    providers = {p["id"]: p for p in response.json()["providers"]}
    assert set(providers) == {"anthropic", "openai", "gemini", "nvidia"}
    assert providers["openai"]["configured"] is True
    assert providers["nvidia"]["configured"] is False
    assert {"value": "gpt-4o", "label": "GPT-4o"} in providers["openai"]["models"]


class TestGenerateProxy:
    def test_returns_result(self, client):
        with patch("nexus.api.routes.research.generate", new=AsyncMock(return_value="text out")) as generate:
            response = client.post(
                "/api/research",
                json={
                    "provider": "openai",
                    "model": "gpt-4o",
                    "systemPrompt": "SYS",
                    "userPrompt": "USER",
                    "maxTokens": 500,
                    "temperature": 0.2,
                },
            )

        assert response.status_code == 200
        assert response.json() == {"result": "text out"}
        assert generate.await_args.args == ("openai", "gpt-4o", "SYS", "USER", 500, 0.2)

    def test_upstream_failure_is_502_with_message(self, client):
        with patch(
            "nexus.api.routes.research.generate",
            new=AsyncMock(side_effect=GenerationError("Rate limit exceeded")),
        ):
            response = client.post(
                "/api/research",
                json={"provider": "openai", "model": "gpt-4o", "systemPrompt": "s", "userPrompt": "u"},
            )

        assert response.status_code == 502
        assert response.json() == {"error": "Rate limit exceeded"}


class TestHistoryAndMemory:
    def test_list_history(self, client):
        result = ResearchResult(
            id="1", query="q", answer="a", confidence=64, provider="openai", model="gpt-4o", depth="quick", timestamp=1
        )
        with patch("nexus.services.supabase.load_results", new=AsyncMock(return_value=[result])) as load:
            response = client.get("/api/history", params={"user_id": "u1"})

        assert response.status_code == 200
        assert response.json()["data"][0]["confidence"] == 64
        load.assert_awaited_once_with("u1")

    def test_storage_outage_is_503(self, client):
        with patch(
            "nexus.services.supabase.load_memory",
            new=AsyncMock(side_effect=db.PersistenceError("Supabase not configured")),
        ):
            response = client.get("/api/memory")

        assert response.status_code == 503
        assert "not configured" in response.json()["error"]

    def test_clear_memory(self, client):
        with patch("nexus.services.supabase.clear_memory", new=AsyncMock()) as clear:
            response = client.delete("/api/memory", params={"user_id": "u1"})

        assert response.json() == {"success": True}
        clear.assert_awaited_once_with("u1")

    def test_history_with_empty_answer_is_rejected(self, client):
        with patch("nexus.services.supabase.save_result", new=AsyncMock()) as save:
            response = client.post(
                "/api/history",
                json={
                    "query": "q",
                    "answer": "",
                    "confidence": 60,
                    "provider": "openai",
                    "model": "gpt-4o",
                    "depth": "quick",
                    "timestamp": 1,
                },
            )

        assert response.status_code == 422
        save.assert_not_awaited()

    def test_history_skips_rows_that_no_longer_validate(self, client):
        rows = [
            {"id": 1, "query": "old", "answer": "", "confidence": 10, "timestamp": 1},
            {"id": 2, "query": "new", "answer": "ok", "confidence": 70, "depth": "quick", "timestamp": 2},
        ]
        with patch("nexus.services.supabase._execute", new=AsyncMock(return_value=SimpleNamespace(data=rows))):
            response = client.get("/api/history")

        assert response.status_code == 200
        assert [item["id"] for item in response.json()["data"]] == ["2"]


class TestRunEndpoint:
    def test_cancel_without_active_run(self, client):
        response = client.post("/api/research/cancel", params={"user_id": "nobody"})
        assert response.json() == {"cancelled": False}

    def test_cancel_fires_active_token(self, client):
        token = CancellationToken()
        with patch.dict(research._active_runs, {"u1": token}):
            response = client.post("/api/research/cancel", params={"user_id": "u1"})

        assert response.json() == {"cancelled": True}
        assert token.is_cancelled

    def test_second_run_for_same_user_is_rejected(self, client):
        with patch.dict(research._active_runs, {"u1": CancellationToken()}):
            response = client.post("/api/research/run", json={"query": "tides", "user_id": "u1"})
        assert response.status_code == 409

    def test_blank_query_is_rejected(self, client):
        response = client.post("/api/research/run", json={"query": "   "})
        assert response.status_code == 422

    def test_too_many_memory_contexts_is_rejected(self, client):
        response = client.post(
            "/api/research/run",
            json={"query": "tides", "memory_ids": ["1", "2", "3", "4", "5", "6"]},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_stream_never_started_still_frees_the_user_slot(self):
        run = RunResearchRequest(query="tides", user_id="u-dropped")

        response = await research.run_research(run)
        token = research._active_runs["u-dropped"]
        # Client gone before the first event: only the response cleanup runs.
        await response.background()

        assert "u-dropped" not in research._active_runs
        assert token.is_cancelled

        again = await research.run_research(run)
        assert research._active_runs["u-dropped"] is not token
        await again.background()
        assert "u-dropped" not in research._active_runs


async def _collect(run, token, orchestrator):
    events = [event async for event in research.research_events(run, token, orchestrator)]
    if research._background_tasks:
        await asyncio.gather(*research._background_tasks)
    return events


class TestResearchEvents:
    @pytest.mark.asyncio
    async def test_completed_run_streams_thoughts_then_result(self):
        run = RunResearchRequest(query="tides", depth="quick", memory_enabled=True, user_id="u1")
        with patch("nexus.services.supabase.persist_research_result", new=AsyncMock(return_value=True)) as persist:
            events = await _collect(run, CancellationToken(), ResearchOrchestrator(FakeGenerator()))

        kinds = [event.event for event in events]
        assert kinds[:-1] == [EventType.THOUGHT] * 4
        assert kinds[-1] == EventType.RESEARCH_COMPLETE
        assert events[0].data["type"] == "INITIALIZE"
        assert events[0].data["progress"] == 8
        assert events[0].data["time"].startswith("+")
        final = events[-1].data
        assert 22 <= final["confidence"] <= 97
        assert final["confidence_level"] in ("low", "medium", "high")
        assert "runtime_ms" in final
        persist.assert_awaited_once()
        assert persist.await_args.kwargs == {"user_id": "u1", "remember": True}
        json.loads(events[-1].to_sse()["data"])

    @pytest.mark.asyncio
    async def test_cancelled_run_ends_with_aborted_event(self):
        token = CancellationToken()
        token.cancel()
        run = RunResearchRequest(query="tides", depth="deep")
        with patch("nexus.services.supabase.persist_research_result", new=AsyncMock()) as persist:
            events = await _collect(run, token, ResearchOrchestrator(FakeGenerator()))

        assert events[-1].event == EventType.RESEARCH_ABORTED
        assert events[-1].data == {"message": "Research stopped by user", "completed_passes": 0}
        assert all(event.event != EventType.ERROR for event in events)
        persist.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_run_ends_with_error_event(self):
        run = RunResearchRequest(query="tides", depth="standard")
        events = await _collect(run, CancellationToken(), ResearchOrchestrator(FakeGenerator(fail_on_call=1)))

        assert events[-1].event == EventType.ERROR
        assert events[-1].data == {"message": "upstream exploded"}
        assert events[-2].data["type"] == "ERROR"

    @pytest.mark.asyncio
    async def test_memory_outage_does_not_stop_the_run(self):
        run = RunResearchRequest(query="tides", depth="quick", memory_ids=["m1"])
        fake = FakeGenerator()
        with patch(
            "nexus.services.supabase.load_selected_memory",
            new=AsyncMock(side_effect=db.PersistenceError("down")),
        ), patch("nexus.services.supabase.persist_research_result", new=AsyncMock(return_value=True)):
            events = await _collect(run, CancellationToken(), ResearchOrchestrator(fake))

        assert events[-1].event == EventType.RESEARCH_COMPLETE
        assert "PRIOR RESEARCH CONTEXTS" not in fake.calls[0]["user"]

    @pytest.mark.asyncio
    async def test_selected_memory_is_injected(self):
        run = RunResearchRequest(query="tides", depth="quick", memory_ids=["m1"])
        fake = FakeGenerator()
        memory = [MemoryContext(id="m1", query="earlier", answer="the moon")]
        with patch("nexus.services.supabase.load_selected_memory", new=AsyncMock(return_value=memory)), patch(
            "nexus.services.supabase.persist_research_result", new=AsyncMock(return_value=True)
        ):
            events = await _collect(run, CancellationToken(), ResearchOrchestrator(fake))

        assert "Previous Query: earlier" in fake.calls[0]["user"]
        assert events[1].data["type"] == "MEMORY RETRIEVAL"
