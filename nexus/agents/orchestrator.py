from __future__ import annotations

import asyncio
import time
from typing import Callable, Iterable
from uuid import uuid4

from loguru import logger

from nexus.agents.pass_executor import PassExecutor
from nexus.agents.synthesizer import SYNTHESIS_LABEL, Synthesizer, should_synthesize
from nexus.llm_client import GenerateFn, GenerationError
from nexus.llm_client import generate as llm_generate
from nexus.models.providers import provider_name
from nexus.models.research import PassRecord, RunState, pass_count_for_depth, pass_label
from nexus.models.schemas import MemoryContext, ResearchRequest, ResearchResult
from nexus.services import logger as log_service
from nexus.services.cancellation import CancellationToken, ResearchCancelled
from nexus.services.confidence import compute_confidence, word_count
from nexus.services.memory_injector import build_memory_section
from nexus.services.thought_log import ThoughtLog, ThoughtObserver


class ResearchOrchestrator:
    """Runs one deep-research session as a chain of dependent passes.

    Flow:
      1. INIT: resolve the pass count from the depth tier, build the memory block
      2. RUNNING_PASS: one generation call per pass, each prompt carrying
         excerpts of every earlier pass
      3. SYNTHESIZING: merge the passes into one report (only when more than
         one pass completed and nothing was cancelled)
      4. SCORING: confidence heuristic over the final answer
      5. DONE: hand the ResearchResult back to the caller

    A cancellation ends the run ABORTED; any other error ends it FAILED with a
    single ERROR thought. Neither produces a result. Persisting the result is
    the caller's job.

    Progress is published through the thought log: observers registered with
    `subscribe` receive every ThoughtEvent, and may read `phase` and
    `progress` while handling it.
    """

    def __init__(
        self,
        generate: GenerateFn | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.generate = generate or llm_generate
        self.pass_executor = PassExecutor(self.generate)
        self.synthesizer = Synthesizer(self.generate)
        self._clock = clock
        self._observers: list[ThoughtObserver] = []
        self._cancel_token: CancellationToken | None = None

        self.run_id: str | None = None
        self.state = RunState.INIT
        self.phase = ""
        self.progress = 0.0
        self.error: str | None = None
        self.result: ResearchResult | None = None
        self.passes: list[PassRecord] = []
        self.thought_log = ThoughtLog(clock=clock)

    def subscribe(self, observer: ThoughtObserver) -> None:
        self._observers.append(observer)
        self.thought_log.subscribe(observer)

    def cancel(self) -> None:
        """Request cancellation of the active run. Safe to call at any time."""
        if self._cancel_token is not None:
            self._cancel_token.cancel()

    def _reset(self, cancel_token: CancellationToken) -> None:
        self._cancel_token = cancel_token
        self.run_id = str(uuid4())
        self.state = RunState.INIT
        self.phase = ""
        self.progress = 0.0
        self.error = None
        self.result = None
        self.passes = []
        self.thought_log = ThoughtLog(observers=self._observers, clock=self._clock)

    def _transition(self, state: RunState, phase: str, progress: float, **data) -> None:
        self.state = state
        self.phase = phase
        self.progress = progress
        log_service.log_research_step(self.run_id or "", state.value, "entered", data or None)

    async def start(
        self,
        request: ResearchRequest,
        memory_contexts: Iterable[MemoryContext] = (),
        cancel_token: CancellationToken | None = None,
    ) -> ResearchResult | None:
        """Run the research pipeline; returns None when aborted or failed."""
        token = cancel_token or CancellationToken()
        self._reset(token)
        contexts = list(memory_contexts)
        has_memory = bool(contexts)
        pass_count = pass_count_for_depth(request.depth)
        logger.info(
            f"Starting research run {self.run_id}: provider={request.provider} "
            f"model={request.model} passes={pass_count} query={request.query[:100]!r}"
        )

        try:
            memory_section = build_memory_section(contexts)
            self._transition(RunState.INIT, "Initializing...", 8, passes=pass_count, memory=len(contexts))
            self.thought_log.add(
                "INITIALIZE",
                f"Provider: {provider_name(request.provider)} · Model: {request.model} · Passes: {pass_count}",
            )
            if has_memory:
                self.thought_log.add(
                    "MEMORY RETRIEVAL",
                    f"Injecting {len(contexts)} prior context(s) for cross-session continuity",
                )

            for index in range(pass_count):
                if token.is_cancelled:
                    break
                await self._run_pass(index, pass_count, request, memory_section, token)

            # An aborted run never reaches synthesis or scoring.
            token.raise_if_cancelled()

            outputs = [record.output for record in self.passes]
            if should_synthesize(pass_count, len(outputs), token.is_cancelled):
                self._transition(RunState.SYNTHESIZING, "Synthesizing...", 85, passes=len(outputs))
                self.thought_log.add(
                    SYNTHESIS_LABEL,
                    f"Synthesizing {len(outputs)} passes into final response...",
                )
                final_answer = await self.synthesizer.run(request, memory_section, outputs, token)
            else:
                final_answer = outputs[-1] if outputs else ""

            token.raise_if_cancelled()
            if not final_answer.strip():
                raise GenerationError("Generation returned an empty answer", provider=request.provider)

            self._transition(RunState.SCORING, "Scoring...", 95)
            confidence = compute_confidence(final_answer, len(self.passes), 0, has_memory)
            self.thought_log.add(
                "COMPLETE",
                f"Done in {self.thought_log.elapsed():.1f}s · Confidence: {confidence}%",
            )

            self.result = ResearchResult(
                id=self.run_id,
                query=request.query,
                answer=final_answer,
                confidence=confidence,
                provider=request.provider,
                model=request.model,
                depth=request.depth,
                timestamp=int(time.time() * 1000),
            )
            self._transition(RunState.DONE, "", 100, confidence=confidence)
            logger.info(f"Research run {self.run_id} complete with confidence {confidence}")
            return self.result
        except ResearchCancelled:
            logger.info(f"Research run {self.run_id} stopped by user after {len(self.passes)} pass(es)")
            self._transition(RunState.ABORTED, "", 0, completed_passes=len(self.passes))
            return None
        except asyncio.CancelledError:
            self._transition(RunState.ABORTED, "", 0, completed_passes=len(self.passes))
            raise
        except Exception as e:
            self.error = str(e) or e.__class__.__name__
            logger.exception(f"Research run {self.run_id} failed: {self.error}")
            self.thought_log.add("ERROR", self.error)
            self._transition(RunState.FAILED, "", self.progress, error=self.error)
            return None
        finally:
            self._cancel_token = None

    async def _run_pass(
        self,
        index: int,
        pass_count: int,
        request: ResearchRequest,
        memory_section: str,
        token: CancellationToken,
    ) -> PassRecord:
        label = pass_label(index)
        self._transition(
            RunState.RUNNING_PASS,
            f"Pass {index + 1}/{pass_count}: {label}",
            16 + (index / pass_count) * 60,
            index=index,
        )
        self.thought_log.add(label, f"Executing research pass {index + 1} of {pass_count}...")

        output = await self.pass_executor.run(
            index,
            pass_count,
            request,
            memory_section,
            [record.output for record in self.passes],
            token,
        )
        record = PassRecord(index=index, label=label, output=output)
        self.passes.append(record)
        self.thought_log.add(f"PASS {index + 1} COMPLETE", f"{word_count(output):,} words generated")
        return record
