"""Tests for the provider HTTP clients and the API call log.

WHY: Provider clients turn vendor HTTP envelopes into plain text and
vendor failures into typed errors. A mis-mapped status code would turn
a bad key into a silent fallback, or a quota error into a crash.

HOW: httpx.MockTransport stands in for the network, so requests are
inspected and responses scripted without any sockets. Async code is
driven with asyncio.run().
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from transcript_refiner import config
from transcript_refiner.providers import (
    PROVIDERS,
    ApiCallLog,
    GeminiProvider,
    OpenAIProvider,
    ProviderAuthError,
    ProviderError,
    create_provider,
)


def _submit(provider, prompt: str = "hello") -> str:
    async def _run():
        async with provider:
            return await provider.submit(prompt)

    return asyncio.run(_run())


def _openai_ok(text: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


# ---------------------------------------------------------------------------
# TestOpenAIProvider
# ---------------------------------------------------------------------------


class TestOpenAIProvider:
    """OpenAIProvider posts chat completions and unwraps the message."""

    def test_request_shape_and_result(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_openai_ok('{"transcript": []}'))

        provider = OpenAIProvider(api_key="sk-test", transport=httpx.MockTransport(handler))
        assert _submit(provider, "edit this") == '{"transcript": []}'
        assert seen["path"] == "/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["model"] == config.OPENAI_MODEL
        assert seen["body"]["messages"] == [{"role": "user", "content": "edit this"}]
        assert seen["body"]["temperature"] == 0.3
        assert seen["body"]["max_tokens"] == 16000

    def test_model_override(self):
        seen = {}

        def handler(request):
            seen["model"] = json.loads(request.content)["model"]
            return httpx.Response(200, json=_openai_ok("x"))

        provider = OpenAIProvider(
            api_key="k", model="gpt-4o-mini", transport=httpx.MockTransport(handler)
        )
        _submit(provider)
        assert seen["model"] == "gpt-4o-mini"

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_failure(self, status):
        transport = httpx.MockTransport(lambda request: httpx.Response(status, text="bad key"))
        with pytest.raises(ProviderAuthError) as exc_info:
            _submit(OpenAIProvider(api_key="k", transport=transport))
        assert exc_info.value.status_code == status

    def test_rate_limit(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(429, text="slow down"))
        with pytest.raises(ProviderError) as exc_info:
            _submit(OpenAIProvider(api_key="k", transport=transport))
        assert exc_info.value.status_code == 429
        assert "slow down" in exc_info.value.message
        assert not isinstance(exc_info.value, ProviderAuthError)

    def test_server_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="oops"))
        with pytest.raises(ProviderError) as exc_info:
            _submit(OpenAIProvider(api_key="k", transport=transport))
        assert exc_info.value.status_code == 500

    def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderError) as exc_info:
            _submit(OpenAIProvider(api_key="k", transport=httpx.MockTransport(handler)))
        assert exc_info.value.status_code == 0

    def test_unexpected_envelope(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"choices": []}))
        with pytest.raises(ProviderError):
            _submit(OpenAIProvider(api_key="k", transport=transport))

    def test_non_json_body(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ProviderError):
            _submit(OpenAIProvider(api_key="k", transport=transport))

    def test_requires_context_manager(self):
        provider = OpenAIProvider(api_key="k")
        with pytest.raises(RuntimeError):
            asyncio.run(provider.submit("hello"))


# ---------------------------------------------------------------------------
# TestGeminiProvider
# ---------------------------------------------------------------------------


class TestGeminiProvider:
    """GeminiProvider posts generateContent and joins the text parts."""

    @staticmethod
    def _ok(*parts):
        return {"candidates": [{"content": {"parts": [{"text": p} for p in parts]}}]}

    def test_request_shape_and_result(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["key"] = request.headers["x-goog-api-key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=self._ok('{"transcript": ', "[]}"))

        provider = GeminiProvider(api_key="g-key", transport=httpx.MockTransport(handler))
        assert _submit(provider, "edit") == '{"transcript": []}'
        assert seen["path"] == "/v1beta/models/{}:generateContent".format(config.GEMINI_MODEL)
        assert seen["key"] == "g-key"
        assert seen["body"]["contents"] == [{"parts": [{"text": "edit"}]}]
        assert seen["body"]["generationConfig"] == {"temperature": 0.3, "maxOutputTokens": 16000}
        assert "tools" not in seen["body"]

    def test_web_search_adds_grounding_tool(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=self._ok("x"))

        provider = GeminiProvider(
            api_key="k", enable_web_search=True, transport=httpx.MockTransport(handler)
        )
        _submit(provider)
        assert "google_search_retrieval" in seen["body"]["tools"][0]

    def test_missing_candidates(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={}))
        with pytest.raises(ProviderError):
            _submit(GeminiProvider(api_key="k", transport=transport))

    def test_auth_failure(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(403, text="denied"))
        with pytest.raises(ProviderAuthError):
            _submit(GeminiProvider(api_key="k", transport=transport))


# ---------------------------------------------------------------------------
# TestRegistry
# ---------------------------------------------------------------------------


class TestRegistry:
    """create_provider() and API key loading."""

    def test_registered_providers(self):
        assert PROVIDERS == {"openai": OpenAIProvider, "gemini": GeminiProvider}

    def test_create_with_key(self):
        provider = create_provider("gemini", api_key="k", model="gemini-custom")
        assert isinstance(provider, GeminiProvider)
        assert provider.model == "gemini-custom"

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            create_provider("claude")

    def test_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        assert config.load_api_key("openai") == "sk-env"

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        with pytest.raises(ValueError, match="GEMINI_API_KEY"):
            create_provider("gemini")

    def test_unknown_key_name(self):
        with pytest.raises(ValueError):
            config.load_api_key("nobody")


# ---------------------------------------------------------------------------
# TestApiCallLog
# ---------------------------------------------------------------------------


class TestApiCallLog:
    """ApiCallLog keeps recent calls newest first and summarizes them."""

    def test_newest_first(self):
        log = ApiCallLog()
        log.log("openai", "gpt-4o", "refine", 100)
        log.log("gemini", "gemini-2.0-flash", "refine", 300)
        assert [entry["provider"] for entry in log.get_logs()] == ["gemini", "openai"]

    def test_bounded(self):
        log = ApiCallLog(max_entries=3)
        for n in range(5):
            log.log("openai", "m", "refine", n)
        durations = [entry["duration_ms"] for entry in log.get_logs()]
        assert durations == [4, 3, 2]

    def test_stats(self):
        log = ApiCallLog()
        log.log("openai", "gpt-4o", "refine", 100, batches=2)
        log.log("openai", "gpt-4o", "refine", 200, success=False, error="boom")
        log.log("gemini", "gemini-2.0-flash", "refine", 300)

        stats = log.get_stats()
        assert stats["total_calls"] == 3
        assert stats["success_count"] == 2
        assert stats["failure_count"] == 1
        assert stats["by_provider"]["openai"] == {"count": 2, "success": 1, "failed": 1}
        assert stats["by_model"]["gemini-2.0-flash"] == {"count": 1, "provider": "gemini"}
        assert stats["by_action"] == {"refine": 3}
        assert stats["avg_duration_ms"] == 200

    def test_empty_stats(self):
        stats = ApiCallLog().get_stats()
        assert stats["total_calls"] == 0
        assert stats["avg_duration_ms"] == 0

    def test_clear(self):
        log = ApiCallLog()
        log.log("openai", "m", "refine", 1)
        log.clear()
        assert log.get_logs() == []

    def test_missing_names_become_unknown(self):
        entry = ApiCallLog().log("", "", "", 5)
        assert (entry.provider, entry.model, entry.action) == ("unknown", "unknown", "unknown")
