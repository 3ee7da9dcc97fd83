from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from nexus.llm_client import GenerateFn
from nexus.models.research import pass_label
from nexus.models.schemas import ResearchRequest
from nexus.services.cancellation import CancellationToken
from nexus.services.prompt_store import render_prompt

PREVIOUS_PASS_EXCERPT_CHARS = 500


@dataclass(frozen=True)
class PassPrompt:
    label: str
    system: str
    user: str


def build_previous_passes(outputs: Sequence[str]) -> str:
    """Excerpts of earlier pass outputs, in pass order; "" before the first pass."""
    if not outputs:
        return ""
    entries = "\n\n".join(
        render_prompt(
            "research_pass.previous_pass_entry",
            pass_number=j + 1,
            excerpt=output[:PREVIOUS_PASS_EXCERPT_CHARS],
        )
        for j, output in enumerate(outputs)
    )
    return render_prompt("research_pass.previous_passes_header") + entries


def build_pass_prompt(
    index: int,
    total: int,
    request: ResearchRequest,
    memory_section: str,
    previous_outputs: Sequence[str],
) -> PassPrompt:
    label = pass_label(index)
    system = render_prompt(
        "research_pass.system_prompt",
        pass_number=index + 1,
        pass_total=total,
        pass_label=label,
    )
    user = render_prompt(
        "research_pass.user_prompt",
        query=request.query,
        memory_section=memory_section,
        previous_passes=build_previous_passes(previous_outputs),
        pass_label=label,
    )
    return PassPrompt(label=label, system=system, user=user)


class PassExecutor:
    """Runs one analysis pass: build its prompts, make one generation call.

    Generation failures propagate unchanged; there is no retry.
    """

    def __init__(self, generate: GenerateFn):
        self.generate = generate

    async def run(
        self,
        index: int,
        total: int,
        request: ResearchRequest,
        memory_section: str,
        previous_outputs: Sequence[str],
        cancel_token: CancellationToken,
    ) -> str:
        prompt = build_pass_prompt(index, total, request, memory_section, previous_outputs)
        return await self.generate(
            request.provider,
            request.model,
            prompt.system,
            prompt.user,
            request.max_tokens,
            request.temperature,
            cancel_token,
        )
