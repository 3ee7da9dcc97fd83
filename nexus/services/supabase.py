"""Supabase-backed storage for research history and memory contexts.

Every call here is subordinate to the research engine: callers log a
PersistenceError and carry on, a completed result stays valid.
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable, TypeVar

from supabase import Client, create_client

from nexus.config import settings
from nexus.models.schemas import MemoryContext, ResearchResult
from nexus.services import logger as log_service

T = TypeVar("T")


class PersistenceError(Exception):
    """Failure to save or load history or memory."""


def get_client() -> Client:
    if not settings.supabase_url or not settings.supabase_anon_key:
        raise PersistenceError("Supabase not configured. Set SUPABASE_URL and SUPABASE_ANON_KEY in .env")
    return create_client(settings.supabase_url, settings.supabase_anon_key)


_client: Client | None = None


def client() -> Client:
    global _client
    if _client is None:
        _client = get_client()
    return _client


async def _execute(operation: str, table: str, build_query) -> Any:
    """Build and run a blocking Supabase query in a worker thread."""
    try:
        query = build_query(client().table(table))
        result = await asyncio.to_thread(query.execute)
    except PersistenceError as e:
        log_service.log_db_operation(operation, table, "error", error=str(e))
        raise
    except Exception as e:
        log_service.log_db_operation(operation, table, "error", error=str(e))
        raise PersistenceError(f"{operation} on {table} failed: {e}") from e
    log_service.log_db_operation(operation, table, "success")
    return result


def _to_result(row: dict[str, Any]) -> ResearchResult:
    return ResearchResult(
        id=str(row["id"]),
        query=row["query"],
        answer=row["answer"],
        confidence=int(row["confidence"]),
        provider=row.get("provider") or "",
        model=row.get("model") or "",
        depth=row.get("depth") or "",
        timestamp=int(row.get("timestamp") or 0),
    )


def _to_memory(row: dict[str, Any]) -> MemoryContext:
    created_at = row.get("created_at")
    return MemoryContext(
        id=str(row["id"]),
        query=row["query"],
        answer=row["answer"],
        provider=row.get("provider") or "",
        model=row.get("model") or "",
        created_at=str(created_at) if created_at is not None else None,
    )


def _convert_rows(
    table: str,
    rows: list[dict[str, Any]] | None,
    convert: Callable[[dict[str, Any]], T],
) -> list[T]:
    """Convert stored rows, skipping (and logging) any that no longer validate."""
    converted: list[T] = []
    for row in rows or []:
        try:
            converted.append(convert(row))
        except (KeyError, TypeError, ValueError) as e:
            log_service.log_db_operation(
                "convert", table, "skipped", details=f"row id={row.get('id')!r}", error=str(e)
            )
    return converted


# --- History ---


async def save_result(result: ResearchResult, user_id: str | None = None) -> dict[str, Any]:
    row = result.model_dump(exclude={"id"})
    row["user_id"] = user_id or settings.default_user_id
    response = await _execute("insert", settings.history_table, lambda t: t.insert(row))
    return response.data[0] if response.data else row


async def load_results(user_id: str | None = None, limit: int | None = None) -> list[ResearchResult]:
    """Most recent first."""
    uid = user_id or settings.default_user_id
    response = await _execute(
        "select",
        settings.history_table,
        lambda t: t.select("*")
        .eq("user_id", uid)
        .order("timestamp", desc=True)
        .limit(limit or settings.history_limit),
    )
    return _convert_rows(settings.history_table, response.data, _to_result)


# --- Memory ---


async def save_memory(
    query: str,
    answer: str,
    provider: str,
    model: str,
    user_id: str | None = None,
) -> dict[str, Any]:
    row = {
        "query": query,
        "answer": answer,
        "provider": provider,
        "model": model,
        "user_id": user_id or settings.default_user_id,
    }
    response = await _execute("insert", settings.memory_table, lambda t: t.insert(row))
    return response.data[0] if response.data else row


async def load_memory(user_id: str | None = None) -> list[MemoryContext]:
    uid = user_id or settings.default_user_id
    response = await _execute(
        "select",
        settings.memory_table,
        lambda t: t.select("*").eq("user_id", uid).order("created_at", desc=True),
    )
    return _convert_rows(settings.memory_table, response.data, _to_memory)


async def clear_memory(user_id: str | None = None) -> None:
    uid = user_id or settings.default_user_id
    await _execute("delete", settings.memory_table, lambda t: t.delete().eq("user_id", uid))


async def load_selected_memory(ids: list[str], user_id: str | None = None) -> list[MemoryContext]:
    """Selected contexts in the order the ids were given; unknown ids are skipped."""
    if not ids:
        return []
    by_id = {context.id: context for context in await load_memory(user_id)}
    return [by_id[i] for i in ids if i in by_id]


async def persist_research_result(
    result: ResearchResult,
    *,
    user_id: str | None = None,
    remember: bool = False,
) -> bool:
    """Save a finished run to history (and memory when `remember`).

    Failures are logged and reported through the return value only.
    """
    ok = True
    try:
        await save_result(result, user_id)
    except PersistenceError as e:
        ok = False
        log_service.log_event(
            event_type="persistence_error",
            message="Failed to save research history",
            error=str(e),
            result_id=result.id,
        )
    if remember:
        try:
            await save_memory(result.query, result.answer, result.provider, result.model, user_id)
        except PersistenceError as e:
            ok = False
            log_service.log_event(
                event_type="persistence_error",
                message="Failed to save memory context",
                error=str(e),
                result_id=result.id,
            )
    return ok
