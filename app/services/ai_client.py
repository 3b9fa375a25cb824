"""HTTP transport for the configured AI backend"""

from __future__ import annotations

import logging
import time
from typing import Optional

import httpx

from app.config.settings import settings
from app.services.ai_providers import (
    AIProvider,
    AIProviderError,
    AIResponseFormatError,
    build_provider,
)
from app.utils.http import request_with_retry
from app.utils.log_sanitizer import sanitize_log_extra

logger = logging.getLogger(__name__)

__all__ = [
    "AIClient",
    "AIConfigurationError",
    "AIProviderError",
    "AIRequestError",
    "AIResponseFormatError",
]


class AIConfigurationError(AIProviderError):
    """Provider URL, model or API key is missing."""


class AIRequestError(AIProviderError):
    """The AI backend could not be reached or rejected the request."""


class AIClient:
    """Sends one rendered prompt to the AI backend and returns its text"""

    def __init__(
        self,
        provider: Optional[AIProvider] = None,
        *,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay_seconds: Optional[float] = None,
        slow_call_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.provider = provider or build_provider(
            settings.AI_PROVIDER,
            model=settings.AI_MODEL,
            api_key=settings.AI_API_KEY,
            api_url=settings.AI_API_URL,
            max_tokens=settings.AI_MAX_TOKENS,
            temperature=settings.AI_TEMPERATURE,
            anthropic_version=settings.ANTHROPIC_VERSION,
        )
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.AI_TIMEOUT_SECONDS
        self.max_retries = max_retries if max_retries is not None else settings.AI_MAX_RETRIES
        self.retry_delay_seconds = (
            retry_delay_seconds if retry_delay_seconds is not None else settings.AI_RETRY_DELAY_SECONDS
        )
        self.slow_call_seconds = (
            slow_call_seconds if slow_call_seconds is not None else settings.AI_SLOW_CALL_SECONDS
        )
        self._transport = transport

    def check_configuration(self) -> None:
        """Raise AIConfigurationError when the provider cannot be called."""
        provider = self.provider
        if not provider.api_url:
            raise AIConfigurationError(f"AI API URL is not configured for provider '{provider.name}'")
        if not provider.model:
            raise AIConfigurationError(f"AI model is not configured for provider '{provider.name}'")
        if provider.requires_api_key and not provider.api_key:
            raise AIConfigurationError(f"AI_API_KEY is required for provider '{provider.name}'")

    async def complete(self, prompt: str, *, force_json: bool = False) -> str:
        """
        Send `prompt` as a single user message and return the generated text

        Transient transport failures are retried with a fixed delay; anything
        else surfaces as an AIProviderError subclass.
        """
        self.check_configuration()
        provider = self.provider
        payload = provider.build_payload(prompt, force_json=force_json)
        started = time.monotonic()

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await request_with_retry(
                    client,
                    "POST",
                    provider.api_url,
                    json=payload,
                    headers=provider.build_headers(),
                    max_attempts=self.max_retries + 1,
                    backoff_seconds=self.retry_delay_seconds,
                )
        except httpx.HTTPError as e:
            status_code = e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None
            logger.error(
                "AI request failed",
                extra=sanitize_log_extra(
                    provider=provider.name,
                    model=provider.model,
                    api_url=provider.api_url,
                    status_code=status_code,
                    duration_ms=_elapsed_ms(started),
                    error=str(e),
                ),
            )
            raise AIRequestError(f"{provider.name} request failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise AIResponseFormatError(f"{provider.name} returned a non-JSON body") from e
        text = provider.extract_text(data)

        duration_ms = _elapsed_ms(started)
        log_extra = sanitize_log_extra(
            provider=provider.name,
            model=provider.model,
            duration_ms=duration_ms,
            response_chars=len(text),
        )
        if duration_ms >= self.slow_call_seconds * 1000:
            logger.warning(f"Slow AI call: {duration_ms}ms", extra=log_extra)
        else:
            logger.debug(f"AI call completed in {duration_ms}ms", extra=log_extra)
        return text


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
