from __future__ import annotations

import asyncio
import json as _json
import time
from typing import AsyncGenerator

from fastapi import APIRouter, BackgroundTasks, HTTPException
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse

from nexus.agents.orchestrator import ResearchOrchestrator
from nexus.config import settings
from nexus.llm_client import generate
from nexus.models.events import SSEEvent
from nexus.models.research import RunState
from nexus.models.schemas import (
    CancelResponse,
    GenerateRequest,
    GenerateResponse,
    RunResearchRequest,
)
from nexus.services import logger as log_service
from nexus.services import streaming
from nexus.services import supabase as db
from nexus.services.cancellation import CancellationToken

router = APIRouter(prefix="/api/research", tags=["research"])

# One active run per user; the engine itself does not guard against overlap.
_active_runs: dict[str, CancellationToken] = {}
_background_tasks: set[asyncio.Task] = set()


def _release_run(user_id: str, cancel_token: CancellationToken) -> None:
    """Stop the run if it is still going and free the user's slot. Idempotent."""
    cancel_token.cancel()
    if _active_runs.get(user_id) is cancel_token:
        del _active_runs[user_id]


def _persist_in_background(run: RunResearchRequest, orchestrator: ResearchOrchestrator) -> None:
    result = orchestrator.result
    if result is None:
        return
    task = asyncio.create_task(
        db.persist_research_result(result, user_id=run.user_id, remember=run.memory_enabled)
    )
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


@router.post("", response_model=GenerateResponse)
async def generate_once(request: GenerateRequest):
    """Single generation call. Failures surface as 502 with an `error` message."""
    text = await generate(
        request.provider,
        request.model,
        request.system_prompt,
        request.user_prompt,
        request.max_tokens,
        request.temperature,
        caller="api",
    )
    return GenerateResponse(result=text)


async def research_events(
    run: RunResearchRequest,
    cancel_token: CancellationToken,
    orchestrator: ResearchOrchestrator | None = None,
) -> AsyncGenerator[SSEEvent, None]:
    """Run the engine and yield its progress, ending with exactly one terminal event."""
    orchestrator = orchestrator or ResearchOrchestrator()
    queue: asyncio.Queue[SSEEvent | None] = asyncio.Queue()
    orchestrator.subscribe(
        lambda event: queue.put_nowait(
            streaming.thought(event, phase=orchestrator.phase, progress=orchestrator.progress)
        )
    )

    memory_contexts = []
    if run.memory_ids:
        try:
            memory_contexts = await db.load_selected_memory(run.memory_ids, run.user_id)
        except db.PersistenceError as e:
            log_service.log_event(
                event_type="persistence_error",
                message="Failed to load memory contexts, continuing without memory",
                error=str(e),
                user_id=run.user_id,
            )

    started_at = time.monotonic()
    task = asyncio.create_task(
        orchestrator.start(run.to_research_request(), memory_contexts, cancel_token)
    )
    task.add_done_callback(lambda _: queue.put_nowait(None))
    try:
        while (event := await queue.get()) is not None:
            yield event

        result = task.result()
        if result is not None:
            yield streaming.research_complete(
                result, runtime_ms=int((time.monotonic() - started_at) * 1000)
            )
            _persist_in_background(run, orchestrator)
        elif orchestrator.state == RunState.ABORTED:
            yield streaming.research_aborted(len(orchestrator.passes))
        else:
            yield streaming.error(orchestrator.error or "Research failed")
    finally:
        if not task.done():
            # Client went away mid-run.
            cancel_token.cancel()


@router.post("/run")
async def run_research(run: RunResearchRequest):
    """Start a research run and stream its progress as server-sent events."""
    try:
        run.to_research_request()
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=_json.loads(e.json()))
    if run.user_id in _active_runs:
        raise HTTPException(status_code=409, detail="A research run is already active")

    cancel_token = CancellationToken()
    _active_runs[run.user_id] = cancel_token
    log_service.log_event(
        event_type="research_started",
        message="Research started",
        user_id=run.user_id,
        provider=run.provider,
        model=run.model,
        depth=run.depth,
        query=run.query[:100],
    )

    async def event_generator():
        try:
            async for event in research_events(run, cancel_token):
                yield event.to_sse()
        except Exception as e:
            log_service.log_event(
                event_type="stream_error",
                message="Unhandled error in research stream",
                error=str(e),
                user_id=run.user_id,
            )
            error_event = streaming.error("Research stream failed unexpectedly.")
            yield error_event.to_sse()
        finally:
            _release_run(run.user_id, cancel_token)

    # Runs after the response even when the stream was never iterated.
    cleanup = BackgroundTasks()
    cleanup.add_task(_release_run, run.user_id, cancel_token)
    return EventSourceResponse(event_generator(), background=cleanup)


@router.post("/cancel", response_model=CancelResponse)
async def cancel_research(user_id: str = settings.default_user_id):
    """Stop the user's active run. Calling it with nothing running is a no-op."""
    cancel_token = _active_runs.get(user_id)
    if cancel_token is None:
        return CancelResponse(cancelled=False)
    cancel_token.cancel()
    log_service.log_event(event_type="research_cancel_requested", message="Cancel requested", user_id=user_id)
    return CancelResponse(cancelled=True)
