"""Tests for the content moderation gate."""
from __future__ import annotations

import pytest

from app.config import settings
from app.services.llm_service import (
    AnthropicProvider,
    LLMProviderError,
    LLMResult,
    LLMService,
    OpenAIProvider,
)
from app.services.moderation import ContentModerator, MODERATION_POLICY, parse_verdict
from app.utils.exceptions import (
    ModerationMalformedResponseError,
    ModerationServiceError,
    ModerationUnavailableError,
)


class StubLLMService:
    def __init__(self, content: str | None = None, error: Exception | None = None):
        self.content = content
        self.error = error
        self.calls: list[dict] = []

    def generate_chat_completion(self, messages, **kwargs):
        self.calls.append({"messages": list(messages), **kwargs})
        if self.error is not None:
            raise self.error
        return LLMResult(
            provider="stub",
            model="stub-model",
            content=self.content,
            prompt_tokens=40,
            completion_tokens=12,
            raw_response={},
        )


def test_approved_verdict():
    service = StubLLMService('{"isApproved": true, "reasons": [], "severity": "low"}')

    verdict = ContentModerator(llm_service=service).moderate("Sale", "20% off today")

    assert verdict.is_approved is True
    assert verdict.reasons == []
    assert verdict.severity == "low"
    call = service.calls[0]
    assert call["system_prompt"] == MODERATION_POLICY
    assert call["temperature"] == 0.0
    assert '"Sale"' in call["messages"][0]["content"]


def test_rejection_is_a_verdict_not_an_error():
    reply = (
        "Here is my assessment:\n"
        '{"isApproved": false, "reasons": ["Political content"], "severity": "medium"}\n'
        "Let me know if you need anything else."
    )

    verdict = ContentModerator(llm_service=StubLLMService(reply)).moderate("Vote", "Vote for us")

    assert verdict.is_approved is False
    assert verdict.reasons == ["Political content"]
    assert verdict.severity == "medium"


@pytest.mark.parametrize(
    "content",
    [
        "I think this is fine.",
        "{not json}",
        '{"isApproved": "yes", "reasons": [], "severity": "low"}',
        '{"isApproved": true, "reasons": []}',
        '{"isApproved": true, "reasons": [], "severity": "extreme"}',
    ],
)
def test_malformed_replies_fail_closed(content):
    moderator = ContentModerator(llm_service=StubLLMService(content))

    with pytest.raises(ModerationMalformedResponseError):
        moderator.moderate("Sale", "20% off today")


def test_provider_failure_is_a_service_error():
    moderator = ContentModerator(llm_service=StubLLMService(error=LLMProviderError("anthropic: timeout")))

    with pytest.raises(ModerationServiceError) as exc_info:
        moderator.moderate("Sale", "20% off today")

    assert exc_info.value.kind == "moderation_failed"


def test_missing_credentials_is_unavailable(monkeypatch):
    monkeypatch.setattr(settings, "ANTHROPIC_API_KEY", None)
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)

    with pytest.raises(ModerationUnavailableError) as exc_info:
        ContentModerator().moderate("Sale", "20% off today")

    assert exc_info.value.kind == "moderation_unavailable"
    assert exc_info.value.status_code == 503


def test_parse_verdict_ignores_extra_keys():
    verdict = parse_verdict('{"isApproved": true, "reasons": [], "severity": "low", "confidence": 0.9}')
    assert verdict.is_approved is True


@pytest.mark.parametrize(
    "provider_cls, reply",
    [
        (OpenAIProvider, {"choices": []}),
        (OpenAIProvider, {"choices": [{"message": None}]}),
        (OpenAIProvider, {"choices": [{"message": {"content": {"isApproved": True}}}]}),
        (AnthropicProvider, {"content": ["not a block", {"type": "text", "text": None}]}),
        (AnthropicProvider, {"content": None}),
    ],
)
def test_empty_provider_replies_are_service_errors(monkeypatch, provider_cls, reply):
    provider = provider_cls(api_key="test-key", model="test-model", max_retries=1)
    monkeypatch.setattr(provider_cls, "_post", lambda self, payload: reply)
    moderator = ContentModerator(llm_service=LLMService(providers=[provider], primary=provider.name))

    with pytest.raises(ModerationServiceError) as exc_info:
        moderator.moderate("Sale", "20% off today")

    assert exc_info.value.kind == "moderation_failed"
