"""LLM client: HTTP connection to a text-generation backend.

The oracle injects an LLM callable matching the protocol:

    async def __call__(self, stage: str, prompt: str) -> str: ...

`stage` identifies which oracle operation is calling ("world", "turn",
"npc_mind", "summary"). HttpLLM uses it to pick a sampling temperature and
for logging.

Two implementations are provided:

    HttpLLM:   real HTTP client, supports Gemini, OpenAI-compatible and
                 KoboldCpp backends. Selected by provider_format.
    EchoLLM:   returns the prompt back unchanged. Useful for smoke-testing
                 the wiring without a running model.

Production code constructs an HttpLLM from config and hands it to the Oracle.
Tests use AsyncMock stubs instead.
"""

from __future__ import annotations

import logging
from typing import Literal, Protocol

import httpx

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol: every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(self, stage: str, prompt: str) -> str: ...


# ---------------------------------------------------------------------------
# HttpLLM: connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["gemini", "openai", "koboldcpp"]

STAGE_TEMPERATURES: dict[str, float] = {
    "world": 0.9,
    "turn": 0.8,
    "npc_mind": 0.7,
    "summary": 0.7,
}
DEFAULT_TEMPERATURE = 0.8

# Formats that refuse to run without a key
_KEYED_FORMATS = ("gemini", "openai")


class HttpLLM:
    """Async HTTP client for text-generation backends.

    Supported formats:
      "gemini":     POST /v1beta/models/{model}:generateContent?key=...
                     Response: {"candidates": [{"content": {"parts": [{"text": ...}]}}]}
      "openai":     POST /v1/chat/completions  {"model": ..., "messages": [...]}
                     Response: {"choices": [{"message": {"content": "..."}}]}
      "koboldcpp":  POST /api/v1/generate  {"prompt": ...}
                     Response: {"results": [{"text": "..."}]}

    Args:
        provider_url:    Base URL of the backend.
        api_key:         API key, or empty string if not required.
        provider_format: Wire format to use. Defaults to "gemini".
        model:           Model identifier (gemini and openai formats).
        timeout:         HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "gemini",
        model: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout

    @property
    def has_credential(self) -> bool:
        return bool(self._api_key) or self._format not in _KEYED_FORMATS

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key and self._format != "gemini":
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, stage: str, prompt: str) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        temperature = STAGE_TEMPERATURES.get(stage, DEFAULT_TEMPERATURE)

        if self._format == "gemini":
            url = (
                f"{self._base_url}/v1beta/models/{self._model}:generateContent"
                f"?key={self._api_key}"
            )
            body: dict = {
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": {
                    "temperature": temperature,
                    "responseMimeType": "application/json",
                },
            }
            return url, body

        if self._format == "openai":
            url = f"{self._base_url}/v1/chat/completions"
            body = {
                "messages": [{"role": "user", "content": prompt}],
                "temperature": temperature,
                "response_format": {"type": "json_object"},
            }
            if self._model:
                body["model"] = self._model
            return url, body

        # koboldcpp
        url = f"{self._base_url}/api/v1/generate"
        return url, {"prompt": prompt, "temperature": temperature}

    def _parse_response(self, data: dict) -> str:
        """Extract the completion text from the response body."""
        if self._format == "gemini":
            try:
                parts = data["candidates"][0]["content"]["parts"]
                text = "".join(p.get("text", "") for p in parts)
            except (KeyError, IndexError, TypeError, AttributeError):
                raise LLMError("Unexpected response format from Gemini backend")
            if not text:
                raise LLMError("Gemini backend returned an empty response")
            return text

        if self._format == "openai":
            try:
                content = data["choices"][0]["message"]["content"]
            except (KeyError, IndexError, TypeError):
                raise LLMError("Unexpected response format from OpenAI-compatible backend")
            if not isinstance(content, str):
                raise LLMError("OpenAI-compatible backend returned no text content")
            return content

        # koboldcpp
        try:
            text = data["results"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise LLMError("Unexpected response format from KoboldCpp backend")
        if not isinstance(text, str):
            raise LLMError("KoboldCpp backend returned no text content")
        return text

    async def __call__(self, stage: str, prompt: str) -> str:
        if not self.has_credential:
            raise MissingCredentialError(f"An API key is required for the {self._format} backend")

        url, body = self._build_request(stage, prompt)
        logger.debug("llm call stage=%s format=%s prompt_len=%d", stage, self._format, len(prompt))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in (401, 403):
                raise MissingCredentialError(
                    f"LLM backend rejected the API key (HTTP {status})"
                ) from e
            raise LLMError(f"LLM backend returned HTTP {status}") from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise LLMError(f"LLM backend request failed: {e!r}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError("LLM backend returned a body that is not JSON") from e
        text = self._parse_response(data)
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text


# ---------------------------------------------------------------------------
# EchoLLM: returns the prompt unchanged; useful for wiring smoke tests
# ---------------------------------------------------------------------------

class EchoLLM:
    """Returns the prompt text as-is. No network calls.

    The output won't be valid JSON for the oracle stages: use AsyncMock
    stubs in tests when you need controlled responses.
    """

    async def __call__(self, stage: str, prompt: str) -> str:
        logger.debug("EchoLLM stage=%s prompt_len=%d", stage, len(prompt))
        return prompt


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""


class MissingCredentialError(LLMError):
    """Raised when the backend needs an API key that is missing or rejected."""


def from_config(llm_config: dict) -> HttpLLM:
    """Build an HttpLLM from the `llm` section of the app config."""
    return HttpLLM(
        provider_url=llm_config.get("provider_url", ""),
        api_key=llm_config.get("api_key", ""),
        provider_format=llm_config.get("provider_format", "gemini"),
        model=llm_config.get("model", ""),
        timeout=float(llm_config.get("timeout", 120)),
    )
