"""Async HTTP clients for generative-text providers.

WHY: Refinement only needs one capability from a provider: submit a
prompt, get text back. This module hides each vendor's endpoint,
authentication, and response envelope behind that single ``submit``
method so the batching core never sees HTTP details.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. Each provider is an
async context manager. Enter it to get an authenticated client, exit
to close the connection pool. ``submit`` posts the vendor request and
unwraps the generated text from the response envelope.

RULES:
- Always use the async context manager (async with OpenAIProvider(...) as p:)
- Non-2xx responses raise ProviderError; 401/403 raise ProviderAuthError
- Network failures and timeouts are wrapped in ProviderError
- A response envelope without generated text raises ProviderError
- Temperature 0.3 and a 16,000 token output cap for every call
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from transcript_refiner.config import (
    GEMINI_BASE_URL,
    GEMINI_MODEL,
    OPENAI_BASE_URL,
    OPENAI_MODEL,
    PROVIDER_MAX_OUTPUT_TOKENS,
    PROVIDER_TEMPERATURE,
    load_api_key,
)

logger = logging.getLogger(__name__)

_RATE_LIMIT_HINT = (
    "Request limit exceeded. The free quota may be used up or too many "
    "requests were sent in a short time; wait a few minutes and retry."
)


class ProviderError(Exception):
    """Raised when a provider is unreachable or returns an error response.

    RULES:
    - status_code is the HTTP status, or 0 for network-level failures
    - message is the response body text or a summary
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__("Provider error {}: {}".format(status_code, message))


class ProviderAuthError(ProviderError):
    """Raised when a provider rejects the configured credentials."""


class BaseProvider(ABC):
    """Abstract base for providers: async context manager with ``submit``.

    To add a new provider:
    1. Subclass BaseProvider
    2. Implement ``_build_client()`` and ``submit()``
    3. Register in PROVIDERS in providers/__init__.py
    """

    name = "provider"
    default_base_url = ""
    default_model = ""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key or load_api_key(self.name)
        self._base_url = (base_url or self.default_base_url).rstrip("/")
        self.model = model or self.default_model
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> BaseProvider:
        self._client = self._build_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    @abstractmethod
    def _build_client(self) -> httpx.AsyncClient:
        """Create the authenticated httpx client."""

    @abstractmethod
    async def submit(self, prompt: str) -> str:
        """Send a prompt and return the generated text."""

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "{} must be used as an async context manager: "
                "async with {}() as provider: ...".format(
                    type(self).__name__, type(self).__name__
                )
            )
        return self._client

    async def _post_json(
        self,
        path: str,
        body: Dict[str, Any],
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        client = self._ensure_client()
        try:
            resp = await client.post(path, json=body, params=params)
        except httpx.HTTPError as exc:
            raise ProviderError(0, "{}: {}".format(type(exc).__name__, exc)) from exc

        if resp.status_code in (401, 403):
            raise ProviderAuthError(
                resp.status_code,
                "{} API key is invalid or lacks permission: {}".format(self.name, resp.text),
            )
        if resp.status_code == 429:
            raise ProviderError(resp.status_code, "{} {}".format(_RATE_LIMIT_HINT, resp.text))
        if resp.status_code != 200:
            raise ProviderError(resp.status_code, resp.text)

        try:
            return resp.json()
        except ValueError as exc:
            raise ProviderError(resp.status_code, "Response body is not JSON") from exc


class OpenAIProvider(BaseProvider):
    """Chat-completions client (OpenAI-compatible endpoints)."""

    name = "openai"
    default_base_url = OPENAI_BASE_URL
    default_model = OPENAI_MODEL

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Authorization": "Bearer {}".format(self._api_key)},
            timeout=httpx.Timeout(300.0, connect=30.0),
            transport=self._transport,
        )

    async def submit(self, prompt: str) -> str:
        data = await self._post_json("/chat/completions", {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": PROVIDER_TEMPERATURE,
            "max_tokens": PROVIDER_MAX_OUTPUT_TOKENS,
        })
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError(200, "Unexpected chat completion shape") from exc
        logger.debug("openai/%s returned %d chars", self.model, len(content or ""))
        return content or ""


class GeminiProvider(BaseProvider):
    """generateContent client with optional search grounding."""

    name = "gemini"
    default_base_url = GEMINI_BASE_URL
    default_model = GEMINI_MODEL

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        enable_web_search: bool = False,
    ) -> None:
        super().__init__(api_key=api_key, base_url=base_url, model=model, transport=transport)
        self.enable_web_search = enable_web_search

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers={"x-goog-api-key": self._api_key},
            timeout=httpx.Timeout(300.0, connect=30.0),
            transport=self._transport,
        )

    async def submit(self, prompt: str) -> str:
        body: Dict[str, Any] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": PROVIDER_TEMPERATURE,
                "maxOutputTokens": PROVIDER_MAX_OUTPUT_TOKENS,
            },
        }
        if self.enable_web_search:
            body["tools"] = [{
                "google_search_retrieval": {
                    "dynamic_retrieval_config": {
                        "mode": "MODE_DYNAMIC",
                        "dynamic_threshold": 0.3,
                    }
                }
            }]
        data = await self._post_json("/models/{}:generateContent".format(self.model), body)
        try:
            parts = data["candidates"][0]["content"]["parts"]
            content = "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise ProviderError(200, "Unexpected generateContent shape") from exc
        logger.debug("gemini/%s returned %d chars", self.model, len(content))
        return content
