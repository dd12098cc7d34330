"""
Generative-text oracle clients.

Every client exposes the same capability, ``await generate(prompt) -> str``.
Provider exceptions, timeouts and empty payloads surface as ``OracleFailure``
so callers only deal with one error type.
"""
import asyncio
import logging
import re
from typing import Any, Dict, Optional, Tuple

import anthropic
import httpx
from google import genai
from google.genai import types

from remarker_backend.config import ANTHROPIC_API_KEY, GEMINI_API_KEY
from remarker_backend.errors import OracleFailure
from remarker_backend.services.oracle_config import get_env_oracle_defaults

logger = logging.getLogger("remarker_backend")

_ORACLE_CACHE: Dict[Tuple[Any, ...], "TextOracle"] = {}
API_LOG_PREVIEW_CHARS = 280


def _preview_text(value: Any, limit: int = API_LOG_PREVIEW_CHARS) -> str:
    text = str(value or "")
    if len(text) <= limit:
        return text
    return f"{text[:limit]}...<truncated {len(text) - limit} chars>"


def strip_reasoning(text: Optional[str]) -> str:
    # Local models often wrap chain-of-thought in <think> tags ahead of the answer.
    return re.sub(r"<think>.*?</think>", "", str(text or ""), flags=re.IGNORECASE | re.DOTALL).strip()


class TextOracle:
    """Text-in/text-out generative oracle."""

    provider = "base"

    def __init__(
        self,
        model: str,
        temperature: float = 0.3,
        max_tokens: int = 1024,
        timeout_seconds: float = 30,
        trace_calls: bool = True,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds
        self.trace_calls = trace_calls

    async def generate(self, prompt: str) -> str:
        if self.trace_calls:
            logger.info("[ORACLE] %s model=%s prompt=%s", self.provider, self.model, _preview_text(prompt))
        try:
            text = await asyncio.wait_for(self._complete(prompt), timeout=self.timeout_seconds)
        except OracleFailure:
            raise
        except asyncio.TimeoutError as exc:
            raise OracleFailure(
                f"{self.provider} call timed out after {self.timeout_seconds}s", provider=self.provider
            ) from exc
        except Exception as exc:
            raise OracleFailure(f"{self.provider} call failed: {exc}", provider=self.provider) from exc

        text = strip_reasoning(text)
        if self.trace_calls:
            logger.info("[ORACLE] %s response=%s", self.provider, _preview_text(text))
        return text

    async def _complete(self, prompt: str) -> str:
        raise NotImplementedError


class GeminiOracle(TextOracle):
    provider = "gemini"

    def __init__(self, model: str, api_key: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(model, **kwargs)
        self.api_key = api_key or GEMINI_API_KEY
        self._client: Optional[genai.Client] = None

    def _get_client(self) -> genai.Client:
        if not self.api_key:
            raise OracleFailure("GEMINI_API_KEY not found in environment", provider=self.provider)
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def _complete(self, prompt: str) -> str:
        client = self._get_client()
        response = await client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=types.GenerateContentConfig(
                temperature=self.temperature,
                max_output_tokens=self.max_tokens,
            ),
        )
        return response.text or ""


class AnthropicOracle(TextOracle):
    provider = "anthropic"

    def __init__(self, model: str, api_key: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(model, **kwargs)
        self.api_key = api_key or ANTHROPIC_API_KEY
        self._client: Optional[anthropic.AsyncAnthropic] = None

    def _get_client(self) -> anthropic.AsyncAnthropic:
        if not self.api_key:
            raise OracleFailure("ANTHROPIC_API_KEY not found in environment", provider=self.provider)
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def _complete(self, prompt: str) -> str:
        client = self._get_client()
        message = await client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            messages=[{"role": "user", "content": prompt}],
        )
        if not message.content:
            return ""
        return message.content[0].text


class LocalOracle(TextOracle):
    """OpenAI-compatible chat completions endpoint (LM Studio, llama.cpp server, vLLM)."""

    provider = "local"

    def __init__(
        self,
        model: str,
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(model, **kwargs)
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    async def _complete(self, prompt: str) -> str:
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        url = f"{self.base_url}/v1/chat/completions"
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            response = await client.post(url, json=payload)
            response.raise_for_status()
            data = response.json()
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise OracleFailure(
                f"Unexpected completion payload: {_preview_text(data)}", provider=self.provider
            ) from exc


def build_oracle(config: Dict[str, Any]) -> TextOracle:
    common = {
        "temperature": float(config.get("temperature", 0.3)),
        "max_tokens": int(config.get("max_tokens", 1024)),
        "timeout_seconds": float(config.get("timeout_seconds", 30)),
        "trace_calls": bool(config.get("trace_calls", True)),
    }
    provider = config.get("provider", "gemini")
    model = str(config.get("model"))
    if provider == "anthropic":
        return AnthropicOracle(model, **common)
    if provider == "local":
        return LocalOracle(model, base_url=str(config.get("base_url", "")), **common)
    return GeminiOracle(model, **common)


def get_oracle(config: Optional[Dict[str, Any]] = None) -> TextOracle:
    resolved = config or get_env_oracle_defaults()
    key = (
        resolved.get("provider"),
        resolved.get("model"),
        resolved.get("base_url"),
        float(resolved.get("temperature", 0.3)),
        float(resolved.get("timeout_seconds", 30)),
    )
    if key not in _ORACLE_CACHE:
        _ORACLE_CACHE[key] = build_oracle(resolved)
    return _ORACLE_CACHE[key]
