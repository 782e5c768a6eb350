"""Model gateway: chat-completion providers over plain HTTP."""

import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from clippy.exceptions import ModelUnavailableError
from clippy.logging import get_logger

log = get_logger(__name__)


OPENAI_BASE_URL = "https://api.openai.com/v1"
OLLAMA_NATIVE_BASE_URL = "http://127.0.0.1:11434"


@dataclass
class ToolCall:
    """A tool call requested by the model.

    ``arguments`` is the raw JSON payload; the tool decodes it.
    """

    id: str
    name: str
    arguments: str = "{}"


@dataclass
class Message:
    """A message in the model context."""

    role: str  # "system", "user", "assistant", "tool"
    content: str
    tool_call_id: str | None = None
    tool_name: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)


@dataclass
class LLMResponse:
    """Response from the model: a final answer or tool-call requests."""

    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    model: str = ""
    usage: dict[str, int] = field(default_factory=dict)


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Run one completion.

        Raises:
            ModelUnavailableError on transport, HTTP or decode failures
        """

    async def close(self) -> None:
        """Release provider resources."""
        return None


def _function_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Wrap registry definitions in the function-tool envelope."""
    result = []
    for tool in tools:
        name = tool.get("name")
        if not name:
            continue
        result.append({
            "type": "function",
            "function": {
                "name": name,
                "description": tool.get("description", "") or "",
                "parameters": tool.get("parameters") or {"type": "object", "properties": {}},
            },
        })
    return result


class _HTTPProvider(LLMProvider):
    """Shared request plumbing for JSON-over-HTTP providers."""

    def __init__(
        self,
        model: str,
        base_url: str,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        api_key: str | None = None,
        timeout: float = 60.0,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_key = api_key
        self.client = httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, url: str, body: dict[str, Any]) -> dict[str, Any]:
        label = type(self).__name__
        try:
            log.debug("Calling model", provider=label, model=self.model, url=url)
            response = await self.client.post(url, json=body, headers=self._headers())
        except httpx.HTTPError as e:
            raise ModelUnavailableError(f"{label} HTTP error: {e}") from e

        log.debug("Model response status", provider=label, status=response.status_code)
        if not response.is_success:
            raise ModelUnavailableError(
                f"{label} API error {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise ModelUnavailableError(f"{label} response decode error: {e}") from e
        if not isinstance(data, dict):
            raise ModelUnavailableError(f"{label} returned an unexpected payload")
        return data

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


class OpenAIProvider(_HTTPProvider):
    """OpenAI-compatible ``/chat/completions`` provider."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        base_url: str = OPENAI_BASE_URL,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        api_key: str | None = None,
        timeout: float = 60.0,
    ):
        super().__init__(
            model=model,
            base_url=base_url,
            temperature=temperature,
            max_tokens=max_tokens,
            api_key=api_key,
            timeout=timeout,
        )

    @staticmethod
    def _convert_messages(messages: list[Message]) -> list[dict[str, Any]]:
        """Convert messages to chat-completions format."""
        result: list[dict[str, Any]] = []
        for msg in messages:
            if msg.role == "tool":
                result.append({
                    "role": "tool",
                    "tool_call_id": msg.tool_call_id or "",
                    "content": msg.content or "",
                })
            elif msg.role == "assistant" and msg.tool_calls:
                result.append({
                    "role": "assistant",
                    "content": msg.content or None,
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {"name": tc.name, "arguments": tc.arguments},
                        }
                        for tc in msg.tool_calls
                    ],
                })
            else:
                result.append({"role": msg.role, "content": msg.content or ""})
        return result

    async def complete(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion."""
        body: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(messages),
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.max_tokens,
        }
        function_tools = _function_tools(tools) if tools else []
        if function_tools:
            body["tools"] = function_tools

        data = await self._post(f"{self.base_url}/chat/completions", body)

        try:
            message = data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as e:
            raise ModelUnavailableError(f"OpenAIProvider response missing choices: {e}") from e

        tool_calls = []
        for tc in message.get("tool_calls") or []:
            function = tc.get("function", {})
            arguments = function.get("arguments", "{}")
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments)
            tool_calls.append(ToolCall(
                id=str(tc.get("id", "")),
                name=function.get("name", ""),
                arguments=arguments or "{}",
            ))

        return LLMResponse(
            content=message.get("content") or "",
            tool_calls=tool_calls,
            model=data.get("model", self.model),
            usage=dict(data.get("usage") or {}),
        )


class OllamaProvider(_HTTPProvider):
    """Direct Ollama API provider."""

    def __init__(
        self,
        model: str = "llama3.2",
        base_url: str = OLLAMA_NATIVE_BASE_URL,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        api_key: str | None = None,
        timeout: float = 120.0,
    ):
        super().__init__(
            model=model,
            base_url=base_url,
            temperature=temperature,
            max_tokens=max_tokens,
            api_key=api_key,
            timeout=timeout,
        )

    @staticmethod
    def _convert_messages(messages: list[Message]) -> list[dict[str, Any]]:
        """Convert messages to Ollama format."""
        result: list[dict[str, Any]] = []
        for msg in messages:
            entry: dict[str, Any] = {"role": msg.role, "content": msg.content or ""}
            if msg.role == "tool" and msg.tool_name:
                entry["tool_name"] = msg.tool_name
            if msg.role == "assistant" and msg.tool_calls:
                entry["tool_calls"] = [
                    {"function": {"name": tc.name, "arguments": _decode_arguments(tc.arguments)}}
                    for tc in msg.tool_calls
                ]
            result.append(entry)
        return result

    async def complete(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion."""
        body: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(messages),
            "stream": False,
            "options": {
                "temperature": self.temperature if temperature is None else temperature,
                "num_predict": max_tokens or self.max_tokens,
            },
        }
        function_tools = _function_tools(tools) if tools else []
        if function_tools:
            body["tools"] = function_tools

        data = await self._post(f"{self.base_url}/api/chat", body)
        message = data.get("message") or {}

        tool_calls = []
        for idx, tc in enumerate(message.get("tool_calls") or []):
            function = tc.get("function", {})
            arguments = function.get("arguments", {})
            tool_calls.append(ToolCall(
                id=str(tc.get("id") or f"ollama_call_{idx}"),
                name=function.get("name", ""),
                arguments=arguments if isinstance(arguments, str) else json.dumps(arguments),
            ))

        prompt_tokens = int(data.get("prompt_eval_count", 0) or 0)
        completion_tokens = int(data.get("eval_count", 0) or 0)
        return LLMResponse(
            content=message.get("content") or "",
            tool_calls=tool_calls,
            model=self.model,
            usage={
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
        )


def _decode_arguments(raw: str) -> Any:
    try:
        return json.loads(raw or "{}")
    except json.JSONDecodeError:
        return {}


def create_provider(
    provider: str = "openai",
    model: str = "gpt-4o-mini",
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float = 0.7,
    max_tokens: int = 1024,
    timeout: float = 60.0,
) -> LLMProvider:
    """Create an LLM provider.

    Args:
        provider: Provider name (openai, ollama)
        model: Model name
        api_key: Optional API key; openai falls back to OPENAI_API_KEY
        base_url: Optional base URL
        temperature: Default temperature
        max_tokens: Default max tokens
        timeout: HTTP timeout in seconds

    Returns:
        Configured LLMProvider instance
    """
    name = (provider or "").strip().lower()
    if name in {"openai", "chatgpt"}:
        return OpenAIProvider(
            model=model,
            base_url=base_url or OPENAI_BASE_URL,
            temperature=temperature,
            max_tokens=max_tokens,
            api_key=api_key or os.environ.get("OPENAI_API_KEY") or None,
            timeout=timeout,
        )
    if name == "ollama":
        return OllamaProvider(
            model=model,
            base_url=base_url or OLLAMA_NATIVE_BASE_URL,
            temperature=temperature,
            max_tokens=max_tokens,
            api_key=api_key,
            timeout=timeout,
        )
    raise ValueError(f"Provider '{provider}' not supported. Use 'openai' or 'ollama'.")

