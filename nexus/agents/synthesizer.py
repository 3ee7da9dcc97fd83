from __future__ import annotations

from typing import Sequence

from nexus.agents.pass_executor import PassPrompt
from nexus.llm_client import GenerateFn
from nexus.models.schemas import ResearchRequest
from nexus.services.cancellation import CancellationToken
from nexus.services.prompt_store import render_prompt

SYNTHESIS_LABEL = "SYNTHESIS"


def should_synthesize(pass_count: int, completed_passes: int, cancelled: bool) -> bool:
    return pass_count > 1 and completed_passes > 1 and not cancelled


def build_synthesis_prompt(
    request: ResearchRequest,
    memory_section: str,
    pass_outputs: Sequence[str],
) -> PassPrompt:
    system = render_prompt("synthesis.system_prompt", pass_count=len(pass_outputs))
    pass_blocks = "\n\n".join(
        render_prompt("synthesis.pass_block", pass_number=i + 1, output=output)
        for i, output in enumerate(pass_outputs)
    )
    user = render_prompt(
        "synthesis.user_prompt",
        query=request.query,
        memory_section=memory_section,
        pass_blocks=pass_blocks,
    )
    return PassPrompt(label=SYNTHESIS_LABEL, system=system, user=user)


class Synthesizer:
    """Merges every completed pass into one definitive report with one extra call."""

    def __init__(self, generate: GenerateFn):
        self.generate = generate

    async def run(
        self,
        request: ResearchRequest,
        memory_section: str,
        pass_outputs: Sequence[str],
        cancel_token: CancellationToken,
    ) -> str:
        prompt = build_synthesis_prompt(request, memory_section, pass_outputs)
        return await self.generate(
            request.provider,
            request.model,
            prompt.system,
            prompt.user,
            request.max_tokens,
            request.temperature,
            cancel_token,
        )
