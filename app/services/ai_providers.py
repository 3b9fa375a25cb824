"""AI provider wire formats.

Each provider family knows how to shape a request payload, which headers
authenticate it and where the generated text lives in the response. Adding a
provider means subclassing `AIProvider` and registering it in `PROVIDERS`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional


class AIProviderError(Exception):
    """Base error for AI backend calls."""


class AIResponseFormatError(AIProviderError):
    """Response body does not carry text where the provider puts it."""


class AIProvider(ABC):
    """One chat-style JSON-over-HTTPS wire format"""

    name: str = "base"
    default_api_url: Optional[str] = None
    requires_api_key: bool = True

    def __init__(
        self,
        *,
        model: str,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        max_tokens: int = 2000,
        temperature: float = 0.7,
    ) -> None:
        self.model = model
        self.api_key = api_key
        self.api_url = api_url or self.default_api_url
        self.max_tokens = max_tokens
        self.temperature = temperature

    @abstractmethod
    def build_payload(self, prompt: str, *, force_json: bool = False) -> dict[str, Any]:
        """Request body carrying `prompt` as the single user message."""

    @abstractmethod
    def build_headers(self) -> dict[str, str]:
        """Authentication and content headers."""

    @abstractmethod
    def extract_text(self, data: Any) -> str:
        """Generated text from a decoded response body."""

    def _user_messages(self, prompt: str) -> list[dict[str, str]]:
        return [{"role": "user", "content": prompt}]


class OpenAICompatibleProvider(AIProvider):
    """OpenAI chat-completions format (OpenAI, DeepSeek, Ollama, ...)."""

    name = "openai"
    default_api_url = "https://api.openai.com/v1/chat/completions"

    def build_payload(self, prompt: str, *, force_json: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": self._user_messages(prompt),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if force_json:
            payload["response_format"] = {"type": "json_object"}
        return payload

    def build_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def extract_text(self, data: Any) -> str:
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise AIResponseFormatError(f"Missing choices[0].message.content: {exc}") from exc
        if not isinstance(content, str):
            raise AIResponseFormatError("choices[0].message.content is not text")
        return content


class DeepSeekProvider(OpenAICompatibleProvider):
    name = "deepseek"
    default_api_url = "https://api.deepseek.com/v1/chat/completions"


class OllamaProvider(OpenAICompatibleProvider):
    name = "ollama"
    default_api_url = "http://localhost:11434/v1/chat/completions"
    requires_api_key = False


class AnthropicMessagesProvider(AIProvider):
    """Anthropic messages format."""

    name = "anthropic"
    default_api_url = "https://api.anthropic.com/v1/messages"

    def __init__(self, *, anthropic_version: str = "2023-06-01", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.anthropic_version = anthropic_version

    def build_payload(self, prompt: str, *, force_json: bool = False) -> dict[str, Any]:
        # No structured-output flag; JSON is requested in the prompt itself
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": self._user_messages(prompt),
        }

    def build_headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key or "",
            "anthropic-version": self.anthropic_version,
            "Content-Type": "application/json",
        }

    def extract_text(self, data: Any) -> str:
        try:
            blocks = data["content"]
            texts = [block["text"] for block in blocks if block.get("type", "text") == "text"]
        except (KeyError, TypeError, AttributeError) as exc:
            raise AIResponseFormatError(f"Missing content[].text: {exc}") from exc
        if not texts:
            raise AIResponseFormatError("Response has no text content blocks")
        return "".join(texts)


class NestedEnvelopeProvider(AIProvider):
    """DashScope/Qwen format: messages under `input`, sampling under `parameters`."""

    name = "qwen"
    default_api_url = "https://dashscope.aliyuncs.com/api/v1/services/aigc/text-generation/generation"

    def build_payload(self, prompt: str, *, force_json: bool = False) -> dict[str, Any]:
        return {
            "model": self.model,
            "input": {"messages": self._user_messages(prompt)},
            "parameters": {
                "temperature": self.temperature,
                "max_tokens": self.max_tokens,
                "result_format": "message",
            },
        }

    def build_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key or ''}",
            "Content-Type": "application/json",
        }

    def extract_text(self, data: Any) -> str:
        try:
            output = data["output"]
            choices = output.get("choices")
            if choices:
                content = choices[0]["message"]["content"]
            else:
                content = output["text"]
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise AIResponseFormatError(f"Missing output.choices[0].message.content: {exc}") from exc
        if not isinstance(content, str):
            raise AIResponseFormatError("output content is not text")
        return content


PROVIDERS: dict[str, type[AIProvider]] = {
    "openai": OpenAICompatibleProvider,
    "deepseek": DeepSeekProvider,
    "ollama": OllamaProvider,
    "anthropic": AnthropicMessagesProvider,
    "claude": AnthropicMessagesProvider,
    "qwen": NestedEnvelopeProvider,
    "dashscope": NestedEnvelopeProvider,
}


def build_provider(
    provider: str,
    *,
    model: str,
    api_key: Optional[str] = None,
    api_url: Optional[str] = None,
    max_tokens: int = 2000,
    temperature: float = 0.7,
    anthropic_version: str = "2023-06-01",
) -> AIProvider:
    """Instantiate the configured wire format."""
    key = (provider or "").strip().lower()
    provider_cls = PROVIDERS.get(key)
    if provider_cls is None:
        raise ValueError(f"Unsupported AI provider: {provider}")

    kwargs: dict[str, Any] = {
        "model": model,
        "api_key": api_key,
        "api_url": api_url,
        "max_tokens": max_tokens,
        "temperature": temperature,
    }
    if issubclass(provider_cls, AnthropicMessagesProvider):
        kwargs["anthropic_version"] = anthropic_version
    return provider_cls(**kwargs)
