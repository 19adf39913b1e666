"""LLM provider interfaces used for insights and AI criteria."""

import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator

import httpx

from ..errors import LLMError


@dataclass(frozen=True)
class PromptContent:
    """A prompt ready to send to a provider."""
    system: str
    user: str
    temperature: float = 0.1
    max_tokens: int = 1000
    image_url: str | None = None


@dataclass
class LLMResponse:
    """Response from an LLM."""
    provider: str
    model: str
    text: str
    latency_ms: int


def _error_from_response(provider: str, resp: httpx.Response) -> LLMError:
    snippet = resp.text[:200] if resp.text else ""
    if resp.status_code == 429:
        message = f"{provider} rate limit exceeded (HTTP 429)"
    elif resp.status_code >= 500:
        message = f"{provider} server error (HTTP {resp.status_code}): {snippet}"
    else:
        message = f"{provider} request failed (HTTP {resp.status_code}): {snippet}"
    return LLMError(message, status_code=resp.status_code, provider=provider)


class LLMProvider(ABC):
    """Base class for LLM providers.

    Subclasses raise LLMError for HTTP failures and let httpx transport errors
    propagate so callers can classify them.
    """

    name: str
    model: str

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None, timeout: float = 60.0):
        self._transport = transport
        self._timeout = timeout

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if the provider is properly configured."""

    @abstractmethod
    async def complete(self, prompt: PromptContent, json_mode: bool = True) -> LLMResponse:
        """Send a prompt and return the full text response."""

    async def stream(self, prompt: PromptContent, json_mode: bool = True) -> AsyncIterator[str]:
        """Yield text chunks. Providers without streaming yield one chunk."""
        response = await self.complete(prompt, json_mode=json_mode)
        yield response.text

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _require_key(self, api_key: str | None, env_name: str) -> str:
        if not api_key:
            raise LLMError(f"{env_name} not set", provider=self.name)
        return api_key


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions."""

    name = "OpenAI"

    def __init__(self, api_key: str | None = None, model: str = "gpt-4o", **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.model = model
        self.base_url = "https://api.openai.com/v1"

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _payload(self, prompt: PromptContent, json_mode: bool, stream: bool = False) -> dict:
        user_content = prompt.user
        if prompt.image_url:
            user_content = [
                {"type": "text", "text": prompt.user},
                {"type": "image_url", "image_url": {"url": prompt.image_url}},
            ]
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": prompt.system},
                {"role": "user", "content": user_content},
            ],
            "max_tokens": prompt.max_tokens,
            "temperature": prompt.temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        if stream:
            payload["stream"] = True
        return payload

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._require_key(self.api_key, 'OPENAI_API_KEY')}",
            "Content-Type": "application/json",
        }

    async def complete(self, prompt: PromptContent, json_mode: bool = True) -> LLMResponse:
        start = time.time()
        async with self._client() as client:
            resp = await client.post(
                f"{self.base_url}/chat/completions",
                headers=self._headers(),
                json=self._payload(prompt, json_mode),
            )
            if resp.status_code >= 400:
                raise _error_from_response(self.name, resp)
            data = resp.json()

        try:
            text = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            raise LLMError("Unexpected response shape from OpenAI", provider=self.name)
        return LLMResponse(
            provider=self.name,
            model=self.model,
            text=text.strip(),
            latency_ms=int((time.time() - start) * 1000),
        )

    async def stream(self, prompt: PromptContent, json_mode: bool = True) -> AsyncIterator[str]:
        async with self._client() as client:
            async with client.stream(
                "POST",
                f"{self.base_url}/chat/completions",
                headers=self._headers(),
                json=self._payload(prompt, json_mode, stream=True),
            ) as resp:
                if resp.status_code >= 400:
                    await resp.aread()
                    raise _error_from_response(self.name, resp)
                async for line in resp.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        break
                    chunk = json.loads(data)
                    choices = chunk.get("choices") or [{}]
                    content = (choices[0].get("delta") or {}).get("content")
                    if content:
                        yield content


class AnthropicProvider(LLMProvider):
    """Anthropic messages API."""

    name = "Anthropic"

    def __init__(self, api_key: str | None = None, model: str = "claude-3-5-haiku-20241022", **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.model = model
        self.base_url = "https://api.anthropic.com/v1"

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _payload(self, prompt: PromptContent, stream: bool = False) -> dict:
        user_content = prompt.user
        if prompt.image_url:
            user_content = [
                {"type": "image", "source": {"type": "url", "url": prompt.image_url}},
                {"type": "text", "text": prompt.user},
            ]
        payload = {
            "model": self.model,
            "max_tokens": prompt.max_tokens,
            "temperature": prompt.temperature,
            "system": prompt.system,
            "messages": [{"role": "user", "content": user_content}],
        }
        if stream:
            payload["stream"] = True
        return payload

    def _headers(self) -> dict:
        return {
            "x-api-key": self._require_key(self.api_key, "ANTHROPIC_API_KEY"),
            "anthropic-version": "2023-06-01",
            "Content-Type": "application/json",
        }

    async def complete(self, prompt: PromptContent, json_mode: bool = True) -> LLMResponse:
        start = time.time()
        async with self._client() as client:
            resp = await client.post(f"{self.base_url}/messages", headers=self._headers(), json=self._payload(prompt))
            if resp.status_code >= 400:
                raise _error_from_response(self.name, resp)
            data = resp.json()

        try:
            text = "".join(block.get("text", "") for block in data["content"] if block.get("type") == "text")
        except (KeyError, TypeError):
            raise LLMError("Unexpected response shape from Anthropic", provider=self.name)
        return LLMResponse(
            provider=self.name,
            model=self.model,
            text=text.strip(),
            latency_ms=int((time.time() - start) * 1000),
        )

    async def stream(self, prompt: PromptContent, json_mode: bool = True) -> AsyncIterator[str]:
        async with self._client() as client:
            async with client.stream(
                "POST",
                f"{self.base_url}/messages",
                headers=self._headers(),
                json=self._payload(prompt, stream=True),
            ) as resp:
                if resp.status_code >= 400:
                    await resp.aread()
                    raise _error_from_response(self.name, resp)
                async for line in resp.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    event = json.loads(line[len("data:"):].strip())
                    if event.get("type") == "content_block_delta":
                        text = (event.get("delta") or {}).get("text")
                        if text:
                            yield text
                    elif event.get("type") == "message_stop":
                        break


class GoogleProvider(LLMProvider):
    """Google Gemini provider."""

    name = "Google"

    def __init__(self, api_key: str | None = None, model: str = "gemini-2.0-flash", **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.model = model

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def complete(self, prompt: PromptContent, json_mode: bool = True) -> LLMResponse:
        start = time.time()
        api_key = self._require_key(self.api_key, "GOOGLE_API_KEY")
        url = f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
        generation_config = {"temperature": prompt.temperature, "maxOutputTokens": prompt.max_tokens}
        if json_mode:
            generation_config["responseMimeType"] = "application/json"

        async with self._client() as client:
            resp = await client.post(
                url,
                params={"key": api_key},
                headers={"Content-Type": "application/json"},
                json={
                    "systemInstruction": {"parts": [{"text": prompt.system}]},
                    "contents": [{"parts": [{"text": prompt.user}]}],
                    "generationConfig": generation_config,
                },
            )
            if resp.status_code >= 400:
                raise _error_from_response(self.name, resp)
            data = resp.json()

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise LLMError("Unexpected response shape from Google", provider=self.name)
        return LLMResponse(
            provider=self.name,
            model=self.model,
            text=text.strip(),
            latency_ms=int((time.time() - start) * 1000),
        )


PROVIDERS = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "google": GoogleProvider,
}


def get_provider(settings) -> LLMProvider | None:
    """Build the configured provider from Settings, or None if it has no key."""
    name = settings.llm_provider
    if name not in PROVIDERS:
        raise ValueError(f"Unknown LLM provider {name!r}, expected one of {', '.join(PROVIDERS)}")

    keys = {
        "openai": settings.openai_api_key,
        "anthropic": settings.anthropic_api_key,
        "google": settings.google_api_key,
    }
    kwargs = {"api_key": keys[name]}
    if settings.llm_model:
        kwargs["model"] = settings.llm_model
    provider = PROVIDERS[name](**kwargs)
    return provider if provider.is_configured() else None
