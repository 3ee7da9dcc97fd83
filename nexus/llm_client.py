"""Generation client: one system+user prompt in, one text out, per provider.

Anthropic goes through its own SDK; OpenAI, Gemini and NVIDIA NIM are all
reached through the OpenAI SDK against their OpenAI-compatible endpoints.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Protocol

from nexus.config import settings
from nexus.services import logger as log_service
from nexus.services.cancellation import CancellationToken, ResearchCancelled

ANTHROPIC = "anthropic"
OPENAI_COMPATIBLE = ("openai", "gemini", "nvidia")


class GenerationError(Exception):
    """Upstream generation failure carrying a human-readable message."""

    def __init__(self, message: str, *, provider: str = "", status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class GenerateFn(Protocol):
    async def __call__(
        self,
        provider: str,
        model: str,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
        cancel_token: CancellationToken | None = None,
    ) -> str: ...


@dataclass
class Completion:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0


def _api_key(provider: str) -> str:
    return {
        "anthropic": settings.anthropic_api_key,
        "openai": settings.openai_api_key,
        "gemini": settings.gemini_api_key,
        "nvidia": settings.nvidia_api_key,
    }.get(provider, "")


def _base_url(provider: str) -> str:
    return {
        "openai": settings.openai_base_url,
        "gemini": settings.gemini_base_url,
        "nvidia": settings.nvidia_base_url,
    }[provider]


def is_configured(provider: str) -> bool:
    return bool(_api_key(provider).strip())


def get_client(provider: str) -> Any:
    """Create the SDK client for a provider."""
    if provider == ANTHROPIC:
        import anthropic

        return anthropic.AsyncAnthropic(
            api_key=settings.anthropic_api_key,
            timeout=settings.llm_request_timeout,
        )
    if provider in OPENAI_COMPATIBLE:
        from openai import AsyncOpenAI

        return AsyncOpenAI(
            api_key=_api_key(provider),
            base_url=_base_url(provider).strip(),
            timeout=settings.llm_request_timeout,
        )
    raise GenerationError(f"Unknown provider: {provider}", provider=provider)


_clients: dict[str, Any] = {}


def client(provider: str) -> Any:
    """Get or create the cached client for a provider."""
    if provider not in _clients:
        _clients[provider] = get_client(provider)
    return _clients[provider]


def _is_reasoning_model(model: str) -> bool:
    # o1-style models reject system messages and temperature.
    lowered = (model or "").lower()
    return lowered.startswith("o1") or "/o1" in lowered


async def _anthropic_completion(
    sdk_client: Any,
    model: str,
    system_prompt: str,
    user_prompt: str,
    max_tokens: int,
    temperature: float,
) -> Completion:
    response = await sdk_client.messages.create(
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
        system=system_prompt,
        messages=[{"role": "user", "content": user_prompt}],
    )
    text = "".join(
        getattr(block, "text", "") for block in response.content if getattr(block, "type", "") == "text"
    )
    usage = getattr(response, "usage", None)
    return Completion(
        text=text,
        input_tokens=getattr(usage, "input_tokens", 0) or 0,
        output_tokens=getattr(usage, "output_tokens", 0) or 0,
    )


async def _openai_completion(
    sdk_client: Any,
    model: str,
    system_prompt: str,
    user_prompt: str,
    max_tokens: int,
    temperature: float,
) -> Completion:
    kwargs: dict[str, Any] = {"model": model}
    if _is_reasoning_model(model):
        kwargs["messages"] = [{"role": "user", "content": f"{system_prompt}\n\n{user_prompt}"}]
        kwargs["max_completion_tokens"] = max_tokens
    else:
        kwargs["messages"] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        kwargs["max_tokens"] = max_tokens
        kwargs["temperature"] = temperature

    response = await sdk_client.chat.completions.create(**kwargs)
    choices = getattr(response, "choices", None) or []
    text = ""
    if choices:
        text = getattr(choices[0].message, "content", None) or ""
    usage = getattr(response, "usage", None)
    return Completion(
        text=text,
        input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        output_tokens=getattr(usage, "completion_tokens", 0) or 0,
    )


def _error_message(exc: Exception) -> tuple[str, int | None]:
    status_code = getattr(exc, "status_code", None)
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"]), status_code
        if isinstance(body.get("message"), str):
            return body["message"], status_code
    message = str(exc) or exc.__class__.__name__
    if status_code:
        return f"API error {status_code}: {message}", status_code
    return message, status_code


async def generate(
    provider: str,
    model: str,
    system_prompt: str,
    user_prompt: str,
    max_tokens: int,
    temperature: float,
    cancel_token: CancellationToken | None = None,
    *,
    caller: str = "research",
) -> str:
    """Run one generation call and return its text.

    Raises GenerationError on upstream failure and ResearchCancelled when
    `cancel_token` fires before the call returns.
    """
    if provider != ANTHROPIC and provider not in OPENAI_COMPATIBLE:
        raise GenerationError(f"Unknown provider: {provider}", provider=provider)
    if not is_configured(provider):
        raise GenerationError(f"API key not configured for provider: {provider}", provider=provider)

    if cancel_token is not None:
        cancel_token.raise_if_cancelled()

    completion_fn = _anthropic_completion if provider == ANTHROPIC else _openai_completion
    call = completion_fn(client(provider), model, system_prompt, user_prompt, max_tokens, temperature)

    t0 = time.monotonic()
    try:
        if cancel_token is not None:
            completion = await cancel_token.guard(call)
        else:
            completion = await call
    except ResearchCancelled:
        log_service.log_event(
            event_type="llm_call_cancelled",
            message="Generation call cancelled",
            provider=provider,
            model=model,
            caller=caller,
        )
        raise
    except GenerationError:
        raise
    except Exception as e:
        message, status_code = _error_message(e)
        log_service.log_llm_call(
            provider=provider,
            model=model,
            caller=caller,
            duration_ms=int((time.monotonic() - t0) * 1000),
            status="error",
            error=message,
        )
        raise GenerationError(message, provider=provider, status_code=status_code) from e

    log_service.log_llm_call(
        provider=provider,
        model=model,
        caller=caller,
        input_tokens=completion.input_tokens,
        output_tokens=completion.output_tokens,
        duration_ms=int((time.monotonic() - t0) * 1000),
    )
    return completion.text
