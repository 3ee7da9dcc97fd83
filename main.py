"""NEXUS - Deep Research Tool

Simple CLI for running research queries.
"""

import argparse
import asyncio
import contextlib
import signal
import sys
import time

from pydantic import ValidationError

from nexus.agents.orchestrator import ResearchOrchestrator
from nexus.config import settings
from nexus.models.events import ThoughtEvent
from nexus.models.providers import PROVIDERS, default_model_for
from nexus.models.research import DEPTH_PASSES, RunState
from nexus.models.schemas import MAX_ACTIVE_MEMORY_CONTEXTS, ResearchRequest
from nexus.services import supabase as db
from nexus.services.cancellation import CancellationToken


def time_ago(timestamp_ms: int, now_ms: int | None = None) -> str:
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    seconds = (now_ms - timestamp_ms) // 1000
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"


def print_thought(event: ThoughtEvent) -> None:
    print(f"  {event.time:>9}  [{event.type}] {event.detail}")


async def show_history(user_id: str) -> None:
    try:
        results = await db.load_results(user_id)
    except db.PersistenceError as e:
        print(f"[!] Could not load history: {e}")
        return
    if not results:
        print("No research history yet.")
        return
    for item in results:
        print(f"  {time_ago(item.timestamp):>9}  {item.confidence:>2}%  [{item.depth}] {item.query[:80]}")


def build_request(args: argparse.Namespace) -> ResearchRequest:
    model = args.model or (
        settings.default_model if args.provider == settings.default_provider else default_model_for(args.provider)
    )
    return ResearchRequest(
        query=args.query,
        provider=args.provider,
        model=model,
        depth=args.depth,
        max_tokens=args.max_tokens,
        temperature=args.temperature,
    )


async def run_research(args: argparse.Namespace, request: ResearchRequest) -> int:
    """Run research on the given query."""
    memory_contexts = []
    if args.memory_id:
        try:
            memory_contexts = await db.load_selected_memory(args.memory_id, args.user_id)
        except db.PersistenceError as e:
            print(f"[!] Memory unavailable, continuing without it: {e}")

    print(f"Research query: {request.query}")
    print("-" * 50)

    cancel_token = CancellationToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_token.cancel)
    except NotImplementedError:
        pass  # Windows: Ctrl+C raises KeyboardInterrupt instead

    orchestrator = ResearchOrchestrator()
    orchestrator.subscribe(print_thought)
    try:
        result = await orchestrator.start(request, memory_contexts, cancel_token)
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)

    if result is None:
        if orchestrator.state == RunState.ABORTED:
            print("\n[-] Research stopped by user.")
            return 130
        print(f"\n[!] Error: {orchestrator.error or 'Unknown error'}")
        return 1

    print(f"\n{'=' * 50}")
    print(f"ANSWER (confidence {result.confidence}%, {result.confidence_level})")
    print(f"{'=' * 50}")
    print(result.answer)

    if not args.no_save:
        saved = await db.persist_research_result(result, user_id=args.user_id, remember=args.remember)
        if not saved:
            print("\n[!] Result could not be saved to history.")
    return 0


def main():
    parser = argparse.ArgumentParser(description="NEXUS Deep Research Tool")
    parser.add_argument("--query", "-q", help="Research query")
    parser.add_argument(
        "--provider", "-p", default=settings.default_provider, choices=sorted(PROVIDERS), help="Generation provider"
    )
    parser.add_argument("--model", "-m", help="Model to use (default: provider's first model)")
    parser.add_argument(
        "--depth", "-d", default=settings.default_depth, help=f"Depth tier: {', '.join(DEPTH_PASSES)}"
    )
    parser.add_argument("--max-tokens", type=int, default=settings.default_max_tokens)
    parser.add_argument("--temperature", type=float, default=settings.default_temperature)
    parser.add_argument("--memory-id", action="append", default=[], help="Memory context id to inject (repeatable)")
    parser.add_argument("--remember", action="store_true", help="Save the answer as a memory context")
    parser.add_argument("--no-save", action="store_true", help="Do not save the result to history")
    parser.add_argument("--user-id", default=settings.default_user_id)
    parser.add_argument("--history", action="store_true", help="List past research and exit")

    args = parser.parse_args()

    if args.history:
        asyncio.run(show_history(args.user_id))
        return
    if not args.query:
        parser.error("--query is required")
    if len(args.memory_id) > MAX_ACTIVE_MEMORY_CONTEXTS:
        parser.error(f"at most {MAX_ACTIVE_MEMORY_CONTEXTS} memory contexts can be active")

    try:
        request = build_request(args)
    except ValidationError as e:
        parser.error(f"invalid request: {', '.join(err['msg'] for err in e.errors())}")

    sys.exit(asyncio.run(run_research(args, request)))


if __name__ == "__main__":
    main()
