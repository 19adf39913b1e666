import asyncio
import json

import httpx
import pytest

from effectiveness_audit.config import Settings
from effectiveness_audit.errors import LLMError
from effectiveness_audit.insights import PromptContent, get_provider
from effectiveness_audit.insights.providers import AnthropicProvider, GoogleProvider, OpenAIProvider


PROMPT = PromptContent(system="Be brief.", user="Score this site.", temperature=0.0, max_tokens=50)


def recording(response):
    requests = []

    def handler(request):
        requests.append(request)
        return response

    return requests, httpx.MockTransport(handler)


async def drain(stream):
    return [chunk async for chunk in stream]


def test_openai_complete():
    requests, transport = recording(httpx.Response(200, json={
        "choices": [{"message": {"content": '  {"ok": true}  '}}],
    }))
    provider = OpenAIProvider(api_key="sk-test", transport=transport)
    response = asyncio.run(provider.complete(PROMPT))

    assert response.text == '{"ok": true}'
    assert response.provider == "OpenAI"
    body = json.loads(requests[0].content)
    assert requests[0].headers["Authorization"] == "Bearer sk-test"
    assert body["response_format"] == {"type": "json_object"}
    assert body["messages"][1] == {"role": "user", "content": "Score this site."}


def test_openai_sends_images_as_content_parts():
    requests, transport = recording(httpx.Response(200, json={"choices": [{"message": {"content": "{}"}}]}))
    provider = OpenAIProvider(api_key="sk-test", transport=transport)
    prompt = PromptContent(system="s", user="look", image_url="https://cdn.example/shot.png")
    asyncio.run(provider.complete(prompt, json_mode=False))

    body = json.loads(requests[0].content)
    assert "response_format" not in body
    assert body["messages"][1]["content"][1] == {
        "type": "image_url", "image_url": {"url": "https://cdn.example/shot.png"},
    }


def test_rate_limit_becomes_llm_error():
    _, transport = recording(httpx.Response(429, text="slow down"))
    provider = OpenAIProvider(api_key="sk-test", transport=transport)

    with pytest.raises(LLMError) as info:
        asyncio.run(provider.complete(PROMPT))
    assert info.value.status_code == 429
    assert "rate limit" in str(info.value)


def test_missing_key_raises_before_sending():
    requests, transport = recording(httpx.Response(200))
    with pytest.raises(LLMError, match="OPENAI_API_KEY"):
        asyncio.run(OpenAIProvider(transport=transport).complete(PROMPT))
    assert requests == []


def test_openai_stream_parses_server_sent_events():
    events = [
        {"choices": [{"delta": {"content": '{"insight": '}}]},
        {"choices": [{"delta": {}}]},
        {"choices": [{"delta": {"content": '"ok"}'}}]},
    ]
    body = "".join(f"data: {json.dumps(e)}\n\n" for e in events) + "data: [DONE]\n\n"
    requests, transport = recording(httpx.Response(200, text=body))
    provider = OpenAIProvider(api_key="sk-test", transport=transport)

    chunks = asyncio.run(drain(provider.stream(PROMPT)))
    assert chunks == ['{"insight": ', '"ok"}']
    assert json.loads(requests[0].content)["stream"] is True


def test_anthropic_complete_and_image():
    requests, transport = recording(httpx.Response(200, json={
        "content": [{"type": "text", "text": "OK"}, {"type": "tool_use"}],
    }))
    provider = AnthropicProvider(api_key="ak-test", transport=transport)
    prompt = PromptContent(system="s", user="look", image_url="https://cdn.example/shot.png")
    response = asyncio.run(provider.complete(prompt))

    assert response.text == "OK"
    assert requests[0].headers["x-api-key"] == "ak-test"
    body = json.loads(requests[0].content)
    assert body["system"] == "s"
    assert body["messages"][0]["content"][0] == {
        "type": "image", "source": {"type": "url", "url": "https://cdn.example/shot.png"},
    }


def test_anthropic_stream():
    events = [
        {"type": "message_start"},
        {"type": "content_block_delta", "delta": {"text": "Hel"}},
        {"type": "content_block_delta", "delta": {"text": "lo"}},
        {"type": "message_stop"},
    ]
    body = "".join(f"event: {e['type']}\ndata: {json.dumps(e)}\n\n" for e in events)
    _, transport = recording(httpx.Response(200, text=body))
    provider = AnthropicProvider(api_key="ak-test", transport=transport)

    assert asyncio.run(drain(provider.stream(PROMPT))) == ["Hel", "lo"]


def test_google_complete():
    requests, transport = recording(httpx.Response(200, json={
        "candidates": [{"content": {"parts": [{"text": " {} "}]}}],
    }))
    provider = GoogleProvider(api_key="g-test", transport=transport)
    response = asyncio.run(provider.complete(PROMPT))

    assert response.text == "{}"
    assert requests[0].url.params["key"] == "g-test"
    body = json.loads(requests[0].content)
    assert body["generationConfig"]["responseMimeType"] == "application/json"


def test_google_stream_defaults_to_one_chunk():
    _, transport = recording(httpx.Response(200, json={
        "candidates": [{"content": {"parts": [{"text": "whole reply"}]}}],
    }))
    provider = GoogleProvider(api_key="g-test", transport=transport)
    assert asyncio.run(drain(provider.stream(PROMPT))) == ["whole reply"]


def test_get_provider():
    settings = Settings(openai_api_key="sk-test", llm_model="gpt-4o-mini")
    provider = get_provider(settings)
    assert isinstance(provider, OpenAIProvider)
    assert provider.model == "gpt-4o-mini"

    assert get_provider(Settings(llm_provider="anthropic")) is None

    with pytest.raises(ValueError):
        get_provider(Settings(llm_provider="nope"))
