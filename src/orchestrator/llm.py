"""LLM Integration Layer using LlamaIndex.

Supports multiple LLM providers via LlamaIndex-compatible packages:
- Azure OpenAI
- OpenAI
- Mock provider for tests

Providers only translate between the agent's message model and the
provider wire format. They never execute tools themselves.
"""

from abc import ABC, abstractmethod
from collections import deque
from typing import Any, AsyncIterator, Optional

from shared.config import LLMSettings
from shared.logging import get_logger
from shared.models import LLMResponse, Message, ToolCall

logger = get_logger(__name__)


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    A provider either returns a complete response, possibly carrying tool
    calls, or streams plain text deltas without tools.
    """

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        tools: Optional[list[dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Conversation history
            tools: Available tools in OpenAI function format
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Returns:
            LLM response with content and/or tool calls
        """
        pass

    @abstractmethod
    def stream(
        self,
        messages: list[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> AsyncIterator[str]:
        """
        Stream a tool-free completion as text deltas.

        Args:
            messages: Conversation history
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Yields:
            Text fragments in generation order
        """
        pass


def _extract_tool_calls(additional_kwargs: dict[str, Any]) -> list[ToolCall]:
    """Read tool calls from a LlamaIndex message, accepting objects or dicts."""
    calls: list[ToolCall] = []
    for raw in additional_kwargs.get("tool_calls") or []:
        if isinstance(raw, dict):
            calls.append(ToolCall.from_openai(raw))
        else:
            calls.append(ToolCall(
                id=raw.id,
                name=raw.function.name,
                arguments=raw.function.arguments or "{}",
            ))
    return calls


class LlamaIndexProvider(LLMProvider):
    """Shared message conversion and calls for LlamaIndex-backed providers."""

    def __init__(self, settings: LLMSettings) -> None:
        self.settings = settings
        self._llm = None

    def _build_llm(self):
        raise NotImplementedError

    def _get_llm(self):
        """Lazy initialization of LlamaIndex LLM."""
        if self._llm is None:
            self._llm = self._build_llm()
        return self._llm

    def _convert_messages(self, messages: list[Message]) -> list:
        """Convert internal messages to LlamaIndex format."""
        from llama_index.core.llms import ChatMessage, MessageRole

        role_map = {
            "user": MessageRole.USER,
            "assistant": MessageRole.ASSISTANT,
            "system": MessageRole.SYSTEM,
            "tool": MessageRole.TOOL,
        }

        result = []
        for msg in messages:
            additional_kwargs: dict[str, Any] = {}
            if msg.tool_calls:
                additional_kwargs["tool_calls"] = [tc.to_openai() for tc in msg.tool_calls]
            if msg.tool_call_id:
                additional_kwargs["tool_call_id"] = msg.tool_call_id

            result.append(ChatMessage(
                role=role_map.get(msg.role.value, MessageRole.USER),
                content=msg.content,
                additional_kwargs=additional_kwargs,
            ))

        return result

    def _apply_overrides(self, llm, temperature: Optional[float], max_tokens: Optional[int]) -> None:
        if temperature is not None:
            llm.temperature = temperature
        if max_tokens is not None:
            llm.max_tokens = max_tokens

    async def complete(
        self,
        messages: list[Message],
        tools: Optional[list[dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> LLMResponse:
        llm = self._get_llm()
        chat_messages = self._convert_messages(messages)
        self._apply_overrides(llm, temperature, max_tokens)

        try:
            if tools:
                response = await llm.achat(chat_messages, tools=tools)
            else:
                response = await llm.achat(chat_messages)
        except Exception as e:
            logger.error("LLM completion failed", error=str(e))
            raise

        message = response.message
        tool_calls = _extract_tool_calls(message.additional_kwargs or {}) if message else []

        usage: dict[str, int] = {}
        raw_usage = getattr(response.raw, "usage", None) if response.raw is not None else None
        if raw_usage is not None:
            usage = {
                "prompt_tokens": getattr(raw_usage, "prompt_tokens", 0) or 0,
                "completion_tokens": getattr(raw_usage, "completion_tokens", 0) or 0,
            }

        return LLMResponse(
            content=message.content if message else None,
            tool_calls=tool_calls or None,
            finish_reason="tool_calls" if tool_calls else "stop",
            usage=usage,
        )

    async def stream(
        self,
        messages: list[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> AsyncIterator[str]:
        llm = self._get_llm()
        chat_messages = self._convert_messages(messages)
        self._apply_overrides(llm, temperature, max_tokens)

        generator = await llm.astream_chat(chat_messages)
        try:
            async for chunk in generator:
                if chunk.delta:
                    yield chunk.delta
        finally:
            await generator.aclose()


class AzureOpenAIProvider(LlamaIndexProvider):
    """Azure OpenAI LLM provider using LlamaIndex."""

    def _build_llm(self):
        from llama_index.llms.azure_openai import AzureOpenAI

        return AzureOpenAI(
            engine=self.settings.deployment_name or self.settings.model,
            model=self.settings.model,
            api_key=self.settings.api_key,
            azure_endpoint=self.settings.api_base,
            api_version=self.settings.api_version,
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens,
        )


class OpenAIProvider(LlamaIndexProvider):
    """OpenAI LLM provider using LlamaIndex."""

    def _build_llm(self):
        from llama_index.llms.openai import OpenAI

        return OpenAI(
            model=self.settings.model,
            api_key=self.settings.api_key,
            api_base=self.settings.api_base,
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens,
        )


class MockLLMProvider(LLMProvider):
    """Mock LLM provider for testing without API calls."""

    def __init__(self, settings: Optional[LLMSettings] = None) -> None:
        self.settings = settings
        self.call_history: list[dict[str, Any]] = []
        self.stream_history: list[list[Message]] = []
        self._responses: deque[LLMResponse | Exception] = deque()
        self._stream_chunks: list[str] = ["This is a mock ", "streamed response."]
        self._stream_error: Optional[Exception] = None

    def set_next_response(self, response: LLMResponse | Exception) -> None:
        """Queue the next response; an exception is raised instead of returned."""
        self._responses.append(response)

    def set_stream_chunks(self, chunks: list[str], error: Optional[Exception] = None) -> None:
        """Set the fragments yielded by `stream`, optionally failing after them."""
        self._stream_chunks = list(chunks)
        self._stream_error = error

    async def complete(
        self,
        messages: list[Message],
        tools: Optional[list[dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> LLMResponse:
        """Return mock response."""
        self.call_history.append({
            "messages": list(messages),
            "tools": tools,
            "temperature": temperature,
            "max_tokens": max_tokens
        })

        if self._responses:
            response = self._responses.popleft()
            if isinstance(response, Exception):
                raise response
            return response

        # Default mock response
        return LLMResponse(
            content="This is a mock response.",
            tool_calls=None,
            finish_reason="stop",
            usage={"prompt_tokens": 10, "completion_tokens": 5}
        )

    async def stream(
        self,
        messages: list[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> AsyncIterator[str]:
        """Yield the configured fragments."""
        self.stream_history.append(list(messages))
        for chunk in self._stream_chunks:
            yield chunk
        if self._stream_error is not None:
            raise self._stream_error


def create_llm_provider(settings: LLMSettings) -> LLMProvider:
    """
    Factory function to create appropriate LLM provider.

    Supports:
    - azure_openai: Azure OpenAI Service
    - openai: OpenAI API
    - mock: Mock provider for testing

    Args:
        settings: LLM configuration settings

    Returns:
        Configured LLM provider

    Raises:
        ValueError: If provider is not supported
    """
    providers = {
        "azure_openai": AzureOpenAIProvider,
        "openai": OpenAIProvider,
        "mock": MockLLMProvider,
    }

    provider_class = providers.get(settings.provider)
    if not provider_class:
        raise ValueError(
            f"Unsupported LLM provider: {settings.provider}. "
            f"Supported: {list(providers.keys())}"
        )

    logger.info("Creating LLM provider", provider=settings.provider, model=settings.model)
    return provider_class(settings)
