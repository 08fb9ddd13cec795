"""Tests for void_echoes.llm: HttpLLM and EchoLLM."""

import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock, patch

from void_echoes.llm import EchoLLM, HttpLLM, LLMError, MissingCredentialError, from_config


# ---------------------------------------------------------------------------
# EchoLLM
# ---------------------------------------------------------------------------

class TestEchoLLM:
    async def test_returns_prompt_unchanged(self) -> None:
        llm = EchoLLM()
        result = await llm("turn", "hello world")
        assert result == "hello world"

    async def test_stage_name_ignored(self) -> None:
        llm = EchoLLM()
        assert await llm("turn", "x") == await llm("summary", "x")


def _mock_response(body: dict, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.raise_for_status = MagicMock(
        side_effect=None if status < 400 else httpx.HTTPStatusError(
            "", request=MagicMock(), response=resp
        )
    )
    return resp


# ---------------------------------------------------------------------------
# HttpLLM: Gemini format
# ---------------------------------------------------------------------------

class TestHttpLLMGemini:
    @pytest.fixture
    def llm(self) -> HttpLLM:
        return HttpLLM(
            provider_url="https://generativelanguage.googleapis.com",
            api_key="k3y",
            model="gemini-2.5-flash",
        )

    async def test_happy_path(self, llm: HttpLLM) -> None:
        body = {"candidates": [{"content": {"parts": [{"text": '{"summary": "'}, {"text": 'x"}'}]}}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await llm("summary", "prompt")
        assert result == '{"summary": "x"}'

    async def test_posts_to_model_url_with_key(self, llm: HttpLLM) -> None:
        body = {"candidates": [{"content": {"parts": [{"text": "{}"}]}}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("turn", "prompt")
        url = mock_post.call_args[0][0]
        assert url == (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            "gemini-2.5-flash:generateContent?key=k3y"
        )
        headers = mock_post.call_args.kwargs["headers"]
        assert "Authorization" not in headers

    async def test_stage_temperature_and_json_mode(self, llm: HttpLLM) -> None:
        body = {"candidates": [{"content": {"parts": [{"text": "{}"}]}}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("world", "prompt")
        config = mock_post.call_args.kwargs["json"]["generationConfig"]
        assert config == {"temperature": 0.9, "responseMimeType": "application/json"}

    async def test_missing_key_raises_before_request(self) -> None:
        llm = HttpLLM(provider_url="https://example.test", model="m")
        mock_post = AsyncMock()
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(MissingCredentialError):
                await llm("turn", "prompt")
        mock_post.assert_not_called()

    @pytest.mark.parametrize("status", [401, 403])
    async def test_rejected_key_is_missing_credential(self, llm: HttpLLM, status: int) -> None:
        mock_post = AsyncMock(return_value=_mock_response({}, status=status))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(MissingCredentialError, match=f"HTTP {status}"):
                await llm("turn", "prompt")

    async def test_empty_candidate_raises(self, llm: HttpLLM) -> None:
        body = {"candidates": [{"content": {"parts": []}}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="empty"):
                await llm("turn", "prompt")

    async def test_malformed_response_raises_llm_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"error": "quota"}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="Unexpected response format"):
                await llm("turn", "prompt")


# ---------------------------------------------------------------------------
# HttpLLM: OpenAI format
# ---------------------------------------------------------------------------

class TestHttpLLMOpenAI:
    @pytest.fixture
    def llm(self) -> HttpLLM:
        return HttpLLM(
            provider_url="http://localhost:8080",
            api_key="secret",
            provider_format="openai",
            model="mistral-7b",
        )

    async def test_posts_to_correct_url(self, llm: HttpLLM) -> None:
        body = {"choices": [{"message": {"content": "ok"}}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("turn", "prompt")
        url = mock_post.call_args[0][0]
        assert url == "http://localhost:8080/v1/chat/completions"

    async def test_sends_model_and_bearer(self, llm: HttpLLM) -> None:
        body = {"choices": [{"message": {"content": "ok"}}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("npc_mind", "prompt")
        sent_body = mock_post.call_args.kwargs["json"]
        assert sent_body["model"] == "mistral-7b"
        assert sent_body["temperature"] == 0.7
        assert sent_body["messages"] == [{"role": "user", "content": "prompt"}]
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer secret"

    async def test_happy_path(self, llm: HttpLLM) -> None:
        body = {"choices": [{"message": {"content": "A stormy night."}}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await llm("turn", "prompt")
        assert result == "A stormy night."

    async def test_malformed_response_raises_llm_error(self, llm: HttpLLM) -> None:
        body = {"results": [{"text": "kobold format accidentally"}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="Unexpected response format"):
                await llm("turn", "prompt")

    async def test_null_content_raises_llm_error(self, llm: HttpLLM) -> None:
        body = {"choices": [{"message": {"content": None}}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="no text content"):
                await llm("turn", "prompt")

    async def test_html_body_raises_llm_error(self, llm: HttpLLM) -> None:
        request = httpx.Request("POST", "http://localhost:8080/v1/chat/completions")
        resp = httpx.Response(200, text="<html>bad gateway</html>", request=request)
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=resp)):
            with pytest.raises(LLMError, match="not JSON"):
                await llm("turn", "prompt")

    async def test_empty_provider_url_raises_llm_error(self) -> None:
        llm = HttpLLM(provider_url="", api_key="secret", provider_format="openai")
        with pytest.raises(LLMError, match="request failed"):
            await llm("turn", "prompt")


# ---------------------------------------------------------------------------
# HttpLLM: KoboldCpp format
# ---------------------------------------------------------------------------

class TestHttpLLMKoboldCpp:
    @pytest.fixture
    def llm(self) -> HttpLLM:
        return HttpLLM(provider_url="http://localhost:5001/", provider_format="koboldcpp")

    async def test_runs_without_key(self, llm: HttpLLM) -> None:
        assert llm.has_credential
        body = {"results": [{"text": "The ward is dark."}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await llm("turn", "Describe the ward.")
        assert result == "The ward is dark."
        assert mock_post.call_args[0][0] == "http://localhost:5001/api/v1/generate"

    async def test_connect_error_raises_llm_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="Cannot connect"):
                await llm("turn", "prompt")

    async def test_timeout_raises_llm_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(side_effect=httpx.TimeoutException("timeout"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="timed out"):
                await llm("turn", "prompt")

    async def test_read_error_raises_llm_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(side_effect=httpx.ReadError("connection reset"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="request failed"):
                await llm("turn", "prompt")

    async def test_null_text_raises_llm_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"results": [{"text": None}]}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="no text content"):
                await llm("turn", "prompt")

    async def test_http_error_raises_llm_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({}, status=503))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="HTTP 503") as info:
                await llm("turn", "prompt")
        assert not isinstance(info.value, MissingCredentialError)


class TestFromConfig:
    def test_builds_from_llm_section(self) -> None:
        llm = from_config({"provider_url": "http://x", "provider_format": "openai", "api_key": ""})
        assert not llm.has_credential
