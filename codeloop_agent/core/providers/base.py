"""
Abstract base class for model clients.
All clients (OpenAI-compatible, Anthropic) implement this interface.

``chat_completion`` is an async generator of stream events.  Transient
transport failures are retried with exponential backoff; once retries are
exhausted (or on a non-transient error) a single ``StreamError`` ends the
sequence instead of an exception.
"""

from __future__ import annotations
import asyncio
import dataclasses
import importlib
import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, AsyncIterator, Optional

from ..models import ToolSchema
from ..retry import RetryExecutor, RetryPolicy
from ..stream_events import MessageComplete, StreamError, StreamEvent

if TYPE_CHECKING:
    from ...config.settings import Config

logger = logging.getLogger(__name__)


def parse_tool_arguments(raw: Optional[str]) -> dict:
    """Decode tool-call argument JSON; undecodable text is kept under ``raw_arguments``."""
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {"raw_arguments": raw}
    if not isinstance(parsed, dict):
        return {"raw_arguments": raw}
    return parsed


class BaseModelClient(ABC):
    """Abstract streaming model client."""

    def __init__(self, model: str, api_key: Optional[str] = None,
                 base_url: Optional[str] = None, **kwargs):
        self.model = model
        self.base_url = base_url
        self._api_key = api_key
        self.temperature = kwargs.get("temperature", 1.0)
        self.max_tokens = kwargs.get("max_tokens", 8192)
        self.timeout = kwargs.get("timeout", 300)
        policy = kwargs.get("retry_policy") or RetryPolicy()
        policy = dataclasses.replace(
            policy, retryable_exceptions=policy.retryable_exceptions + self.transient_errors(),
        )
        self._retry = RetryExecutor(policy)

    @property
    def api_key(self) -> Optional[str]:
        """Access the API key (property to avoid accidental logging)."""
        return self._api_key

    def __repr__(self) -> str:
        """Mask API key in repr to prevent accidental logging."""
        masked = f"***{self._api_key[-4:]}" if self._api_key and len(self._api_key) > 4 else "***"
        return (
            f"{self.__class__.__name__}(model={self.model!r}, "
            f"api_key={masked!r})"
        )

    @property
    def provider_name(self) -> str:
        return self.__class__.__name__

    def transient_errors(self) -> tuple[type[BaseException], ...]:
        """SDK exception types worth retrying (subclasses extend)."""
        return ()

    async def chat_completion(
        self,
        messages: list[dict],
        tools: Optional[list[ToolSchema]] = None,
        stream: bool = True,
    ) -> AsyncIterator[StreamEvent]:
        """
        Send *messages* (system prompt first) and yield stream events.

        Non-streamed requests yield exactly one ``MessageComplete`` that carries
        the full text, tool calls and usage.
        """
        max_retries = self._retry.policy.max_retries
        for attempt in range(max_retries + 1):
            try:
                if stream:
                    async for event in self._stream(messages, tools):
                        yield event
                else:
                    yield await self._complete(messages, tools)
                return
            except Exception as e:
                if self._retry.should_retry(e, attempt):
                    delay = self._retry.calculate_delay(attempt)
                    logger.warning(
                        f"{self.provider_name}: request failed ({e}); "
                        f"retry {attempt + 1}/{max_retries} in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.error(f"{self.provider_name}: request failed: {e}")
                yield StreamError(message=str(e) or e.__class__.__name__)
                return

    @abstractmethod
    async def _stream(self, messages: list[dict],
                      tools: Optional[list[ToolSchema]]) -> AsyncIterator[StreamEvent]:
        """Yield events for one streamed attempt; raise on transport failure."""

    @abstractmethod
    async def _complete(self, messages: list[dict],
                        tools: Optional[list[ToolSchema]]) -> MessageComplete:
        """One non-streamed attempt; raise on transport failure."""

    async def close(self) -> None:
        """Release the underlying SDK client."""


class ClientFactory:
    """Create a model client from config."""

    # provider name -> (module, class name, default base url)
    _clients: dict[str, tuple[str, str, Optional[str]]] = {
        "openai": (".openai_provider", "OpenAIClient", None),
        "gemini": (".openai_provider", "OpenAIClient",
                   "https://generativelanguage.googleapis.com/v1beta/openai/"),
        "groq": (".openai_provider", "OpenAIClient", "https://api.groq.com/openai/v1"),
        "anthropic": (".anthropic_provider", "AnthropicClient", None),
    }

    @classmethod
    def register(cls, name: str, module: str, class_name: str,
                 default_base_url: Optional[str] = None) -> None:
        cls._clients[name] = (module, class_name, default_base_url)

    @classmethod
    def available(cls) -> list[str]:
        return list(cls._clients)

    @classmethod
    def create(cls, config: Config) -> BaseModelClient:
        if config.provider not in cls._clients:
            raise ValueError(
                f"Unknown provider: {config.provider}. "
                f"Available: {cls.available()}"
            )
        module_name, class_name, default_url = cls._clients[config.provider]
        module = importlib.import_module(module_name, package=__package__)
        client_class = getattr(module, class_name)
        return client_class(
            model=config.model.name,
            api_key=config.api_key,
            base_url=config.base_url or default_url,
            temperature=config.model.temperature,
        )


def create_client(config: Config) -> BaseModelClient:
    return ClientFactory.create(config)
