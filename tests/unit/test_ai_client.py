"""
Unit tests for the AI service clients.

AnthropicClient is exercised over httpx.MockTransport.
"""

import json

import httpx
import pytest

from setup_assistant.services.ai.client import (
    AIAttachment,
    AIConfig,
    AnthropicClient,
    MockAIClient,
)
from setup_assistant.utils.errors import AIServiceError, ConfigurationError, RateLimitError


def _client_with(handler) -> AnthropicClient:
    client = AnthropicClient(AIConfig(api_key="test-key", model="test-model"))
    client._client = httpx.AsyncClient(
        base_url="https://ai.test",
        transport=httpx.MockTransport(handler),
    )
    return client


class TestAttachment:
    """Tests for document content blocks."""

    def test_pdf_is_document_block(self) -> None:
        block = AIAttachment(data=b"%PDF-1.4", media_type="application/pdf").to_content_block()

        assert block["type"] == "document"
        assert block["source"]["media_type"] == "application/pdf"
        assert block["source"]["data"] == "JVBERi0xLjQ="

    def test_image_block(self) -> None:
        block = AIAttachment(data=b"\x89PNG", media_type="image/png").to_content_block()

        assert block["type"] == "image"


class TestAnthropicClient:
    """Tests for the Messages API client."""

    @pytest.mark.asyncio
    async def test_complete_sends_attachment_and_reads_text(self) -> None:
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "model": "test-model",
                "content": [{"type": "text", "text": '{"ok": true}'}],
                "usage": {"input_tokens": 10, "output_tokens": 5},
                "stop_reason": "end_turn",
            })

        client = _client_with(handler)
        response = await client.complete(
            "Extract entities",
            system_prompt="You are precise.",
            attachment=AIAttachment(data=b"%PDF-1.4", media_type="application/pdf"),
            max_tokens=1000,
        )
        await client.close()

        body = captured["body"]
        assert body["model"] == "test-model"
        assert body["max_tokens"] == 1000
        assert body["system"] == "You are precise."
        content = body["messages"][0]["content"]
        assert content[0]["type"] == "document"
        assert content[1] == {"type": "text", "text": "Extract entities"}
        assert response.content == '{"ok": true}'
        assert response.tokens_used == 15

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [429, 529])
    async def test_rate_limit_statuses(self, status_code) -> None:
        client = _client_with(lambda request: httpx.Response(status_code, text="overloaded"))

        with pytest.raises(RateLimitError) as exc_info:
            await client.complete("hi")

        assert exc_info.value.status_code == status_code

    @pytest.mark.asyncio
    async def test_server_error(self) -> None:
        client = _client_with(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(AIServiceError) as exc_info:
            await client.complete("hi")

        assert not isinstance(exc_info.value, RateLimitError)
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_html_body_with_200(self) -> None:
        """A gateway page instead of the API answer is a service error, not a crash."""
        client = _client_with(lambda request: httpx.Response(200, text="<html>gateway</html>"))

        with pytest.raises(AIServiceError, match="non-JSON response") as exc_info:
            await client.complete("hi")

        assert not isinstance(exc_info.value, RateLimitError)
        assert exc_info.value.status_code == 200
        assert exc_info.value.details["body"] == "<html>gateway</html>"

    @pytest.mark.asyncio
    async def test_json_that_is_not_an_object(self) -> None:
        client = _client_with(lambda request: httpx.Response(200, json=["unexpected"]))

        with pytest.raises(AIServiceError, match="unexpected response"):
            await client.complete("hi")

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _client_with(handler)

        with pytest.raises(AIServiceError, match="AI service request failed"):
            await client.complete("hi")

    @pytest.mark.asyncio
    async def test_missing_api_key(self) -> None:
        client = AnthropicClient(AIConfig(api_key=None))

        with pytest.raises(ConfigurationError, match="API key"):
            await client.complete("hi")


class TestMockAIClient:
    """Tests for the scripted test client."""

    @pytest.mark.asyncio
    async def test_scripted_responses_then_default(self) -> None:
        client = MockAIClient(["first", RateLimitError("limited")], default="fallback")

        assert (await client.complete("a")).content == "first"
        with pytest.raises(RateLimitError):
            await client.complete("b")
        assert (await client.complete("c")).content == "fallback"
        assert [call["prompt"] for call in client.calls] == ["a", "b", "c"]
