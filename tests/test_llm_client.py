from __future__ import annotations

import asyncio
import sys
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from nexus import llm_client
from nexus.llm_client import GenerationError
from nexus.services.cancellation import CancellationToken, ResearchCancelled


def _openai_response(text, prompt_tokens=12, completion_tokens=34):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


def _fake_openai_client(create):
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


@pytest.fixture
def openai_configured():
    with patch.object(llm_client.settings, "openai_api_key", "sk-test"), patch.dict(llm_client._clients, clear=True):
        yield


def test_get_client_anthropic_uses_sdk():
    fake_module = MagicMock()
    with patch.dict(sys.modules, {"anthropic": fake_module}), patch.object(
        llm_client.settings, "anthropic_api_key", "ak-test"
    ):
        llm_client.get_client("anthropic")

    kwargs = fake_module.AsyncAnthropic.call_args.kwargs
    assert kwargs["api_key"] == "ak-test"
    assert kwargs["timeout"] == llm_client.settings.llm_request_timeout


def test_get_client_gemini_uses_openai_compatible_endpoint():
    fake_module = MagicMock()
    with patch.dict(sys.modules, {"openai": fake_module}), patch.object(
        llm_client.settings, "gemini_api_key", "g-test"
    ), patch.object(llm_client.settings, "gemini_base_url", "https://gemini.example/v1/ "):
        llm_client.get_client("gemini")

    kwargs = fake_module.AsyncOpenAI.call_args.kwargs
    assert kwargs["api_key"] == "g-test"
    assert kwargs["base_url"] == "https://gemini.example/v1/"


def test_is_configured_ignores_whitespace_keys():
    with patch.object(llm_client.settings, "nvidia_api_key", "   "):
        assert llm_client.is_configured("nvidia") is False
    with patch.object(llm_client.settings, "nvidia_api_key", "nv-key"):
        assert llm_client.is_configured("nvidia") is True
    assert llm_client.is_configured("mystery") is False


@pytest.mark.asyncio
async def test_generate_rejects_unknown_provider():
    with pytest.raises(GenerationError, match="Unknown provider: mystery"):
        await llm_client.generate("mystery", "m", "s", "u", 10, 0.1)


@pytest.mark.asyncio
async def test_generate_requires_api_key():
    with patch.object(llm_client.settings, "openai_api_key", ""):
        with pytest.raises(GenerationError, match="API key not configured"):
            await llm_client.generate("openai", "gpt-4o", "s", "u", 10, 0.1)


class TestCompletions:
    @pytest.mark.asyncio
    async def test_openai_completion_sends_system_and_user_messages(self):
        create = AsyncMock(return_value=_openai_response("hello"))

        completion = await llm_client._openai_completion(
            _fake_openai_client(create), "gpt-4o", "SYS", "USER", 256, 0.4
        )

        assert completion.text == "hello"
        assert completion.input_tokens == 12
        assert completion.output_tokens == 34
        kwargs = create.await_args.kwargs
        assert kwargs["messages"] == [
            {"role": "system", "content": "SYS"},
            {"role": "user", "content": "USER"},
        ]
        assert kwargs["max_tokens"] == 256
        assert kwargs["temperature"] == 0.4

    @pytest.mark.asyncio
    async def test_reasoning_models_get_merged_prompt_and_no_temperature(self):
        create = AsyncMock(return_value=_openai_response("thought"))

        await llm_client._openai_completion(_fake_openai_client(create), "o1-preview", "SYS", "USER", 256, 0.4)

        kwargs = create.await_args.kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "SYS\n\nUSER"}]
        assert kwargs["max_completion_tokens"] == 256
        assert "temperature" not in kwargs
        assert "max_tokens" not in kwargs

    @pytest.mark.asyncio
    async def test_openai_completion_without_choices_is_empty(self):
        create = AsyncMock(return_value=SimpleNamespace(choices=[], usage=None))

        completion = await llm_client._openai_completion(_fake_openai_client(create), "gpt-4o", "s", "u", 1, 0)

        assert completion.text == ""
        assert completion.output_tokens == 0

    @pytest.mark.asyncio
    async def test_anthropic_completion_joins_text_blocks(self):
        response = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="Part one. "),
                SimpleNamespace(type="tool_use", name="ignored"),
                SimpleNamespace(type="text", text="Part two."),
            ],
            usage=SimpleNamespace(input_tokens=5, output_tokens=7),
        )
        create = AsyncMock(return_value=response)
        sdk_client = SimpleNamespace(messages=SimpleNamespace(create=create))

        completion = await llm_client._anthropic_completion(sdk_client, "claude-sonnet-4-5", "SYS", "USER", 99, 0.2)

        assert completion.text == "Part one. Part two."
        assert completion.input_tokens == 5
        kwargs = create.await_args.kwargs
        assert kwargs["system"] == "SYS"
        assert kwargs["messages"] == [{"role": "user", "content": "USER"}]
        assert kwargs["max_tokens"] == 99


class TestGenerate:
    @pytest.mark.asyncio
    async def test_returns_text(self, openai_configured):
        create = AsyncMock(return_value=_openai_response("final text"))
        llm_client._clients["openai"] = _fake_openai_client(create)

        text = await llm_client.generate("openai", "gpt-4o", "s", "u", 10, 0.1, CancellationToken())

        assert text == "final text"

    @pytest.mark.asyncio
    async def test_upstream_error_message_is_surfaced(self, openai_configured):
        class UpstreamError(Exception):
            status_code = 429
            body = {"error": {"message": "Rate limit exceeded"}}

        llm_client._clients["openai"] = _fake_openai_client(AsyncMock(side_effect=UpstreamError("boom")))

        with pytest.raises(GenerationError) as excinfo:
            await llm_client.generate("openai", "gpt-4o", "s", "u", 10, 0.1)

        assert str(excinfo.value) == "Rate limit exceeded"
        assert excinfo.value.status_code == 429
        assert excinfo.value.provider == "openai"

    @pytest.mark.asyncio
    async def test_error_without_body_uses_status_code(self, openai_configured):
        class UpstreamError(Exception):
            status_code = 500

        llm_client._clients["openai"] = _fake_openai_client(AsyncMock(side_effect=UpstreamError("server down")))

        with pytest.raises(GenerationError, match="API error 500: server down"):
            await llm_client.generate("openai", "gpt-4o", "s", "u", 10, 0.1)

    @pytest.mark.asyncio
    async def test_pre_cancelled_token_skips_the_call(self, openai_configured):
        create = AsyncMock(return_value=_openai_response("never"))
        llm_client._clients["openai"] = _fake_openai_client(create)
        token = CancellationToken()
        token.cancel()

        with pytest.raises(ResearchCancelled):
            await llm_client.generate("openai", "gpt-4o", "s", "u", 10, 0.1, token)
        create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_interrupts_in_flight_call(self, openai_configured):
        async def hang(**kwargs):
            await asyncio.sleep(30)

        llm_client._clients["openai"] = _fake_openai_client(hang)
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.01, token.cancel)

        with pytest.raises(ResearchCancelled):
            await asyncio.wait_for(
                llm_client.generate("openai", "gpt-4o", "s", "u", 10, 0.1, token),
                timeout=5,
            )
