from __future__ import annotations

import json

import httpx
import pytest

from app.services.ai_client import AIClient, AIConfigurationError, AIRequestError, AIResponseFormatError
from app.services.ai_providers import (
    AnthropicMessagesProvider,
    NestedEnvelopeProvider,
    OllamaProvider,
    OpenAICompatibleProvider,
    build_provider,
)


def test_openai_compatible_payload_headers_and_extraction() -> None:
    provider = build_provider("deepseek", model="deepseek-chat", api_key="sk-test", max_tokens=2000, temperature=0.7)

    payload = provider.build_payload("hello", force_json=True)

    assert provider.api_url == "https://api.deepseek.com/v1/chat/completions"
    assert payload == {
        "model": "deepseek-chat",
        "messages": [{"role": "user", "content": "hello"}],
        "temperature": 0.7,
        "max_tokens": 2000,
        "response_format": {"type": "json_object"},
    }
    assert provider.build_headers()["Authorization"] == "Bearer sk-test"
    assert provider.extract_text({"choices": [{"message": {"content": "hi"}}]}) == "hi"


def test_anthropic_messages_format() -> None:
    provider = build_provider("claude", model="claude-x", api_key="key", anthropic_version="2023-06-01")

    payload = provider.build_payload("hello", force_json=True)
    headers = provider.build_headers()

    assert isinstance(provider, AnthropicMessagesProvider)
    assert "response_format" not in payload
    assert payload["messages"] == [{"role": "user", "content": "hello"}]
    assert headers["x-api-key"] == "key"
    assert headers["anthropic-version"] == "2023-06-01"
    assert "Authorization" not in headers
    text = provider.extract_text(
        {"content": [{"type": "text", "text": "part one, "}, {"type": "text", "text": "part two"}]}
    )
    assert text == "part one, part two"


def test_nested_envelope_format() -> None:
    provider = build_provider("qwen", model="qwen-plus", api_key="key", max_tokens=1500, temperature=0.2)

    payload = provider.build_payload("hello")

    assert isinstance(provider, NestedEnvelopeProvider)
    assert payload == {
        "model": "qwen-plus",
        "input": {"messages": [{"role": "user", "content": "hello"}]},
        "parameters": {"temperature": 0.2, "max_tokens": 1500, "result_format": "message"},
    }
    assert provider.extract_text({"output": {"choices": [{"message": {"content": "ok"}}]}}) == "ok"
    assert provider.extract_text({"output": {"text": "plain"}}) == "plain"


def test_missing_text_field_raises_format_error() -> None:
    with pytest.raises(AIResponseFormatError):
        OpenAICompatibleProvider(model="m").extract_text({"choices": []})
    with pytest.raises(AIResponseFormatError):
        NestedEnvelopeProvider(model="m").extract_text({"output": {}})


def test_unknown_provider_is_rejected() -> None:
    with pytest.raises(ValueError):
        build_provider("gemini", model="x")


def test_ollama_sends_no_auth_header_without_key() -> None:
    provider = OllamaProvider(model="llama3")

    assert "Authorization" not in provider.build_headers()
    AIClient(provider).check_configuration()


@pytest.mark.asyncio
async def test_client_posts_provider_payload_and_retries_transient_errors() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if len(requests) == 1:
            return httpx.Response(502, text="bad gateway")
        return httpx.Response(200, json={"output": {"choices": [{"message": {"content": "translated"}}]}})

    provider = NestedEnvelopeProvider(model="qwen-plus", api_key="secret")
    client = AIClient(provider, max_retries=2, retry_delay_seconds=0, transport=httpx.MockTransport(handler))

    text = await client.complete("translate me")

    assert text == "translated"
    assert len(requests) == 2
    body = json.loads(requests[-1].content)
    assert body["input"]["messages"][0]["content"] == "translate me"
    assert requests[-1].headers["Authorization"] == "Bearer secret"


@pytest.mark.asyncio
async def test_client_wraps_exhausted_failures() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ReadTimeout("timed out", request=request)

    client = AIClient(
        OpenAICompatibleProvider(model="gpt", api_key="k"),
        max_retries=1,
        retry_delay_seconds=0,
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(AIRequestError):
        await client.complete("hello")
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_client_requires_api_key_for_hosted_providers() -> None:
    client = AIClient(OpenAICompatibleProvider(model="gpt", api_key=None))

    with pytest.raises(AIConfigurationError):
        await client.complete("hello")
