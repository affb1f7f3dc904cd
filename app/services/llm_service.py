"""LLM chat completion client with provider fallback."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx
from loguru import logger
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.config import settings


@dataclass
class LLMResult:
    """Structured response returned by the :class:`LLMService`."""

    provider: str
    model: str
    content: str
    prompt_tokens: int
    completion_tokens: int
    raw_response: Dict[str, Any]


class LLMProviderError(RuntimeError):
    """Raised when a provider returns an error response."""


class LLMRetryableError(LLMProviderError):
    """Provider error worth retrying (rate limits and server-side failures)."""


class LLMNotConfiguredError(ValueError):
    """Raised when no provider has credentials configured."""


class BaseLLMProvider(Protocol):
    """Protocol shared by provider implementations."""

    name: str

    def generate(self, messages: Sequence[Dict[str, str]], **kwargs: Any) -> LLMResult:  # pragma: no cover - interface definition
        """Generate a chat completion."""


def _raise_for_status(provider: str, response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    logger.error(f"{provider} returned error", status=response.status_code, body=response.text[:500])
    if response.status_code == 429 or response.status_code >= 500:
        raise LLMRetryableError(f"{provider} error {response.status_code}")
    raise LLMProviderError(f"{provider} error {response.status_code}: {response.text[:200]}")


def _retrying(max_attempts: int) -> Retrying:
    return Retrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type((httpx.TransportError, LLMRetryableError)),
        before_sleep=before_sleep_log(logger, "WARNING"),
        reraise=True,
    )


@dataclass
class OpenAIProvider:
    """Generate chat completions using the OpenAI API."""

    api_key: str
    model: str
    base_url: str = "https://api.openai.com/v1"
    request_timeout: float = 30.0
    max_retries: int = 3

    name: str = "openai"

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        with httpx.Client(base_url=self.base_url, timeout=self.request_timeout) as client:
            response = client.post("/chat/completions", json=payload, headers=headers)
        _raise_for_status("OpenAI", response)
        return response.json()

    def generate(self, messages: Sequence[Dict[str, str]], **kwargs: Any) -> LLMResult:
        payload: Dict[str, Any] = {
            "model": kwargs.get("model", self.model),
            "messages": list(messages),
            "temperature": kwargs.get("temperature", 0.0),
            "max_tokens": kwargs.get("max_tokens", 512),
        }
        if "response_format" in kwargs:
            payload["response_format"] = kwargs["response_format"]

        for attempt in _retrying(self.max_retries):
            with attempt:
                data = self._post(payload)

        choices = data.get("choices")
        choice = choices[0] if isinstance(choices, list) and choices and isinstance(choices[0], dict) else {}
        message = choice.get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        if not content or not isinstance(content, str):
            raise LLMProviderError("OpenAI response did not include content")

        usage = data.get("usage", {})
        return LLMResult(
            provider=self.name,
            model=payload["model"],
            content=content.strip(),
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            raw_response=data,
        )


@dataclass
class AnthropicProvider:
    """Generate chat completions using the Anthropic Messages API."""

    api_key: str
    model: str
    base_url: str = "https://api.anthropic.com/v1"
    request_timeout: float = 30.0
    max_retries: int = 3

    name: str = "anthropic"

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }
        with httpx.Client(base_url=self.base_url, timeout=self.request_timeout) as client:
            response = client.post("/messages", json=payload, headers=headers)
        _raise_for_status("Anthropic", response)
        return response.json()

    def generate(self, messages: Sequence[Dict[str, str]], **kwargs: Any) -> LLMResult:
        payload: Dict[str, Any] = {
            "model": kwargs.get("model", self.model),
            "max_tokens": kwargs.get("max_tokens", 512),
            "temperature": kwargs.get("temperature", 0.0),
            "messages": [
                {"role": message["role"], "content": message["content"]}
                for message in messages
            ],
        }
        if "system" in kwargs:
            payload["system"] = kwargs["system"]

        for attempt in _retrying(self.max_retries):
            with attempt:
                data = self._post(payload)

        chunks = [
            chunk.get("text")
            for chunk in data.get("content") or []
            if isinstance(chunk, dict) and chunk.get("type") == "text" and isinstance(chunk.get("text"), str)
        ]
        content = "\n".join(filter(None, chunks)).strip()
        if not content:
            raise LLMProviderError("Anthropic response did not include content")

        usage = data.get("usage", {})
        return LLMResult(
            provider=self.name,
            model=payload["model"],
            content=content,
            prompt_tokens=usage.get("input_tokens", 0),
            completion_tokens=usage.get("output_tokens", 0),
            raw_response=data,
        )


class LLMService:
    """Coordinate chat completion requests across providers."""

    def __init__(
        self,
        providers: Optional[Sequence[BaseLLMProvider]] = None,
        primary: Optional[str] = None,
        secondary: Optional[str] = None,
    ) -> None:
        if providers is not None:
            self._providers = list(providers)
        else:
            self._providers = self._build_default_providers()
        if not self._providers:
            raise LLMNotConfiguredError("LLMService requires at least one provider")

        self._providers_by_name = {provider.name: provider for provider in self._providers}
        self._provider_order = self._build_order(
            primary or settings.PRIMARY_LLM_PROVIDER,
            secondary or settings.SECONDARY_LLM_PROVIDER,
        )

    def _build_default_providers(self) -> List[BaseLLMProvider]:
        provider_list: List[BaseLLMProvider] = []
        if settings.ANTHROPIC_API_KEY:
            provider_list.append(
                AnthropicProvider(
                    api_key=settings.ANTHROPIC_API_KEY,
                    model=settings.ANTHROPIC_MODEL,
                    base_url=str(settings.ANTHROPIC_API_BASE or "https://api.anthropic.com/v1"),
                    request_timeout=settings.LLM_REQUEST_TIMEOUT_SECONDS,
                    max_retries=settings.LLM_MAX_RETRIES,
                )
            )
        if settings.OPENAI_API_KEY:
            provider_list.append(
                OpenAIProvider(
                    api_key=settings.OPENAI_API_KEY,
                    model=settings.OPENAI_MODEL,
                    base_url=str(settings.OPENAI_API_BASE or "https://api.openai.com/v1"),
                    request_timeout=settings.LLM_REQUEST_TIMEOUT_SECONDS,
                    max_retries=settings.LLM_MAX_RETRIES,
                )
            )
        return provider_list

    def _build_order(self, primary: Optional[str], secondary: Optional[str]) -> List[BaseLLMProvider]:
        ordered: List[BaseLLMProvider] = []
        for name in (primary, secondary):
            provider = self._providers_by_name.get(name) if name else None
            if provider is not None and provider not in ordered:
                ordered.append(provider)
        ordered.extend(provider for provider in self._providers if provider not in ordered)
        return ordered

    def generate_chat_completion(
        self,
        messages: Sequence[Dict[str, str]],
        *,
        temperature: float = 0.0,
        max_tokens: int = 512,
        response_format: Optional[Dict[str, Any]] = None,
        system_prompt: Optional[str] = None,
    ) -> LLMResult:
        """Generate a chat completion, falling back to the next provider on failure."""

        errors: List[str] = []
        for provider in self._provider_order:
            payload_kwargs: Dict[str, Any] = {
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
            provider_messages = list(messages)
            if provider.name == "openai":
                if response_format:
                    payload_kwargs["response_format"] = response_format
                if system_prompt:
                    provider_messages = [{"role": "system", "content": system_prompt}, *messages]
            elif system_prompt:
                payload_kwargs["system"] = system_prompt
            try:
                result = provider.generate(provider_messages, **payload_kwargs)
            except (LLMProviderError, httpx.HTTPError, ValueError) as exc:
                logger.warning("LLM provider failure", provider=provider.name, error=str(exc))
                errors.append(f"{provider.name}: {exc}")
                continue
            logger.debug(
                "LLM provider success",
                provider=provider.name,
                prompt_tokens=result.prompt_tokens,
                completion_tokens=result.completion_tokens,
            )
            return result
        raise LLMProviderError("; ".join(errors))


__all__ = [
    "LLMService",
    "LLMResult",
    "LLMProviderError",
    "LLMNotConfiguredError",
    "AnthropicProvider",
    "OpenAIProvider",
]
