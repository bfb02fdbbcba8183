"""Tests for the DeepSeek client against a mocked transport."""

import json

import httpx
import pytest

from chat_cache.entities import to_conversation
from chat_cache.errors import ConfigurationError, UpstreamError
from chat_cache.models import GenerationParams
from chat_cache.repositories import DeepSeekClient

CONVERSATION = to_conversation(
    [
        {"role": "user", "content": "Hello"},
        {"role": "assistant", "content": "Hi!"},
        {"role": "user", "content": "What is the capital of Bangladesh?"},
    ]
)
PARAMS = GenerationParams(
    model="deepseek-chat", system_prompt="Be brief.", temperature=0.7, max_tokens=2048
)


def make_client(handler, api_key: str = "sk-test") -> DeepSeekClient:
    return DeepSeekClient(
        api_key=api_key,
        base_url="https://api.deepseek.test",
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


def sse(*events: str) -> bytes:
    return "".join(f"data: {event}\n\n" for event in events).encode()


def delta(content: str) -> str:
    return json.dumps({"choices": [{"delta": {"content": content}}]})


async def test_generate_sends_system_prompt_and_conversation() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200, json={"choices": [{"message": {"content": "Dhaka."}}]}
        )

    client = make_client(handler)
    answer = await client.generate(CONVERSATION, PARAMS)
    await client.close()

    assert answer == "Dhaka."
    request = seen[0]
    assert request.url.path == "/chat/completions"
    assert request.headers["authorization"] == "Bearer sk-test"

    payload = json.loads(request.content)
    assert payload["model"] == "deepseek-chat"
    assert payload["stream"] is False
    assert payload["temperature"] == 0.7
    assert payload["max_tokens"] == 2048
    assert payload["messages"][0] == {"role": "system", "content": "Be brief."}
    assert [m["role"] for m in payload["messages"][1:]] == ["user", "assistant", "user"]


async def test_generate_stream_yields_deltas_until_done() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content)["stream"] is True
        body = sse(
            delta("Dhaka "),
            json.dumps({"choices": [{"delta": {"role": "assistant"}}]}),
            delta("is the capital."),
            "[DONE]",
            delta("ignored"),
        )
        return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

    client = make_client(handler)
    chunks = [chunk async for chunk in client.generate_stream(CONVERSATION, PARAMS)]
    await client.close()

    assert chunks == ["Dhaka ", "is the capital."]


async def test_http_error_status_becomes_upstream_error() -> None:
    client = make_client(lambda request: httpx.Response(500, json={"error": "boom"}))

    with pytest.raises(UpstreamError) as exc_info:
        await client.generate(CONVERSATION, PARAMS)
    assert exc_info.value.status_code == 500

    with pytest.raises(UpstreamError) as exc_info:
        async for _ in client.generate_stream(CONVERSATION, PARAMS):
            pass
    assert exc_info.value.status_code == 500
    await client.close()


async def test_transport_failure_becomes_upstream_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)

    with pytest.raises(UpstreamError):
        await client.generate(CONVERSATION, PARAMS)
    with pytest.raises(UpstreamError):
        async for _ in client.generate_stream(CONVERSATION, PARAMS):
            pass
    await client.close()


async def test_unexpected_response_shape_becomes_upstream_error() -> None:
    client = make_client(lambda request: httpx.Response(200, json={"choices": []}))

    with pytest.raises(UpstreamError, match="Unexpected response format"):
        await client.generate(CONVERSATION, PARAMS)
    await client.close()


async def test_malformed_stream_chunk_becomes_upstream_error() -> None:
    client = make_client(lambda request: httpx.Response(200, content=sse("{not json")))

    with pytest.raises(UpstreamError, match="Malformed stream chunk"):
        async for _ in client.generate_stream(CONVERSATION, PARAMS):
            pass
    await client.close()


async def test_missing_api_key_never_reaches_network() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client = make_client(handler, api_key="")

    with pytest.raises(ConfigurationError):
        client.ensure_configured()
    with pytest.raises(ConfigurationError):
        await client.generate(CONVERSATION, PARAMS)
    assert await client.is_available() is False


async def test_is_available_checks_models_endpoint() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200 if request.url.path == "/models" else 404, json={})

    client = make_client(handler)
    assert await client.is_available() is True
    await client.close()

    down = make_client(lambda request: httpx.Response(401, json={}))
    assert await down.is_available() is False
    await down.close()
