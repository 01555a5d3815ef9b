"""AI document-understanding service client.

The rest of the pipeline only sees ``AIClient.complete()``: a prompt, an
optional system prompt and an optional attached document (PDF or image)
go in, raw response text comes out. Prompt wording and response-shape
quirks stay in the classifier/extractor and in ``response_parser``.

Backends:
- AnthropicClient: Messages API over httpx
- MockAIClient: scripted responses for tests

Example:
    client = AnthropicClient(AIConfig.from_settings(get_settings()))
    response = await client.complete("Classify this table: ...")
    print(response.content)
"""

import base64
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from setup_assistant.config.settings import Settings, get_settings
from setup_assistant.utils.errors import AIServiceError, ConfigurationError, RateLimitError
from setup_assistant.utils.logger import get_logger

logger = get_logger(__name__)

# 429 = too many requests, 529 = service overloaded
RATE_LIMIT_STATUSES = frozenset({429, 529})


@dataclass
class AIConfig:
    """Connection settings for the AI service."""
    base_url: str = "https://api.anthropic.com"
    api_key: Optional[str] = None
    api_version: str = "2023-06-01"
    model: str = "claude-sonnet-4-20250514"
    timeout: float = 60.0
    max_tokens: int = 8000

    @classmethod
    def from_settings(cls, settings: Settings) -> "AIConfig":
        return cls(
            base_url=settings.ai_base_url,
            api_key=settings.ai_api_key,
            api_version=settings.ai_api_version,
            model=settings.ai_model,
            timeout=settings.ai_timeout_seconds,
            max_tokens=settings.ai_max_tokens,
        )


@dataclass(frozen=True)
class AIAttachment:
    """A whole document sent along with the prompt."""
    data: bytes
    media_type: str

    @property
    def is_pdf(self) -> bool:
        return self.media_type == "application/pdf"

    def to_content_block(self) -> dict[str, Any]:
        return {
            "type": "document" if self.is_pdf else "image",
            "source": {
                "type": "base64",
                "media_type": self.media_type,
                "data": base64.b64encode(self.data).decode("ascii"),
            },
        }


@dataclass
class AIResponse:
    """Response from the AI service."""
    content: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)
    stop_reason: Optional[str] = None

    @property
    def tokens_used(self) -> int:
        return self.usage.get("input_tokens", 0) + self.usage.get("output_tokens", 0)


class AIClient(ABC):
    """Abstract AI service client."""

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        attachment: Optional[AIAttachment] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> AIResponse:
        """Send one request and return the response text.

        Raises:
            RateLimitError: The service rejected the call for rate/capacity reasons
            AIServiceError: Any other transport or HTTP failure
        """

    async def close(self) -> None:
        """Release network resources."""


class AnthropicClient(AIClient):
    """Client for the Anthropic Messages API."""

    def __init__(self, config: Optional[AIConfig] = None):
        self.config = config or AIConfig.from_settings(get_settings())
        self._client: Optional[httpx.AsyncClient] = None
        self._log = logger.bind(component="AnthropicClient", model=self.config.model)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            if not self.config.api_key:
                raise ConfigurationError(
                    message="AI service API key is not configured",
                    details={"setting": "AI_API_KEY"},
                )
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                headers={
                    "x-api-key": self.config.api_key,
                    "anthropic-version": self.config.api_version,
                    "content-type": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        attachment: Optional[AIAttachment] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> AIResponse:
        client = await self._get_client()

        content: list[dict[str, Any]] = []
        if attachment is not None:
            content.append(attachment.to_content_block())
        content.append({"type": "text", "text": prompt})

        payload: dict[str, Any] = {
            "model": model or self.config.model,
            "max_tokens": max_tokens or self.config.max_tokens,
            "messages": [{"role": "user", "content": content}],
        }
        if system_prompt:
            payload["system"] = system_prompt

        try:
            response = await client.post("/v1/messages", json=payload)
        except httpx.HTTPError as e:
            self._log.warning("ai_request_failed", error=str(e), error_type=type(e).__name__)
            raise AIServiceError(
                message=f"AI service request failed: {e}",
                details={"error_type": type(e).__name__},
            ) from e

        if response.status_code in RATE_LIMIT_STATUSES:
            self._log.warning("ai_rate_limited", status=response.status_code)
            raise RateLimitError(
                message="AI service rate limit exceeded",
                details={"body": response.text[:500]},
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            self._log.error("ai_http_error", status=response.status_code, body=response.text[:500])
            raise AIServiceError(
                message=f"AI service returned HTTP {response.status_code}",
                details={"body": response.text[:500]},
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            # Proxies and gateways answer 200 with an HTML page
            self._log.error("ai_invalid_response", status=response.status_code, body=response.text[:500])
            raise AIServiceError(
                message="AI service returned a non-JSON response",
                details={"body": response.text[:500]},
                status_code=response.status_code,
            ) from e
        if not isinstance(data, dict):
            raise AIServiceError(
                message="AI service returned an unexpected response",
                details={"body": response.text[:500]},
                status_code=response.status_code,
            )

        text = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        usage = data.get("usage", {})
        self._log.debug(
            "ai_response_received",
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
            stop_reason=data.get("stop_reason"),
        )
        return AIResponse(
            content=text,
            model=data.get("model", payload["model"]),
            usage={k: v for k, v in usage.items() if isinstance(v, int)},
            stop_reason=data.get("stop_reason"),
        )


class MockAIClient(AIClient):
    """Mock AI client for testing.

    Returns the scripted responses in order; an Exception instance in the
    script is raised instead of returned. Once the script runs out,
    ``default`` is returned.
    """

    def __init__(
        self,
        responses: Optional[Iterable[str | Exception]] = None,
        default: str = "{}",
    ):
        self.responses: list[str | Exception] = list(responses or [])
        self.default = default
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        attachment: Optional[AIAttachment] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> AIResponse:
        self.calls.append({
            "prompt": prompt,
            "system_prompt": system_prompt,
            "attachment": attachment,
            "model": model,
            "max_tokens": max_tokens,
        })

        item = self.responses.pop(0) if self.responses else self.default
        if isinstance(item, Exception):
            raise item
        return AIResponse(content=item, model=model or "mock", usage={"output_tokens": len(item)})


# Global client instance
_global_client: Optional[AIClient] = None


def get_ai_client() -> AIClient:
    """Get or create the shared AI client."""
    global _global_client
    if _global_client is None:
        _global_client = AnthropicClient(AIConfig.from_settings(get_settings()))
    return _global_client


async def reset_ai_client() -> None:
    """Close and drop the shared AI client."""
    global _global_client
    if _global_client is not None:
        await _global_client.close()
        _global_client = None
