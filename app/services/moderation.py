"""Content moderation gate for notification copy.

The gate asks an LLM classifier whether a title/body pair is acceptable for a
loyalty program audience. It fails closed: when the classifier is missing,
unreachable, or answers with something that is not a verdict, an error is
raised instead of a verdict, so a broken service can never read as approval.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Protocol, Sequence

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from app.services.llm_service import LLMNotConfiguredError, LLMProviderError, LLMResult, LLMService
from app.utils.exceptions import (
    ModerationMalformedResponseError,
    ModerationServiceError,
    ModerationUnavailableError,
)

Severity = Literal["low", "medium", "high"]

MODERATION_POLICY = """You are the content moderation system for a retail loyalty program.
Businesses use it to send push notifications to their enrolled customers.

APPROVE content that is:
- About products, offers, promotions, campaigns or events of the business
- About loyalty rewards, points, discounts or purchase benefits
- Informative about new features or program updates
- Professional and respectful

REJECT content that contains:
- Sexual or adult content
- Profanity or vulgar language
- Harassment, threats or intimidation
- Hate speech or discriminatory language
- Spam or misleading information
- Political or controversial topics
- Personal attacks or offensive remarks
- Anything unrelated to the commercial purpose of the program

Respond ONLY with a valid JSON object in exactly this format:
{"isApproved": true or false, "reasons": ["reason 1", "reason 2"], "severity": "low" or "medium" or "high"}

If approved: isApproved is true, reasons is an empty array and severity is "low".
If rejected: isApproved is false, reasons lists the specific problems and severity
reflects how inappropriate the content is."""

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class ModerationVerdict:
    """Approve/reject judgment for one notification."""

    is_approved: bool
    severity: Severity
    reasons: List[str] = field(default_factory=list)


class _VerdictPayload(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore")

    is_approved: bool = Field(alias="isApproved")
    reasons: List[str]
    severity: Severity


class SupportsChatCompletion(Protocol):
    """Protocol satisfied by the LLM service."""

    def generate_chat_completion(
        self,
        messages: Sequence[Dict[str, str]],
        *,
        temperature: float = ...,
        max_tokens: int = ...,
        response_format: Optional[Dict[str, Any]] = ...,
        system_prompt: Optional[str] = ...,
    ) -> LLMResult:
        ...


def parse_verdict(content: str) -> ModerationVerdict:
    """Extract the JSON verdict object from a classifier reply."""

    match = _JSON_OBJECT.search(content or "")
    if not match:
        raise ModerationMalformedResponseError("Moderation response did not contain a JSON object")
    try:
        payload = _VerdictPayload.model_validate(json.loads(match.group(0)))
    except (json.JSONDecodeError, PydanticValidationError) as exc:
        raise ModerationMalformedResponseError(
            "Moderation response was not a valid verdict",
            details={"reason": str(exc).splitlines()[0]},
        ) from exc
    return ModerationVerdict(
        is_approved=payload.is_approved,
        severity=payload.severity,
        reasons=list(payload.reasons),
    )


class ContentModerator:
    """Submit notification copy to the classifier and return its verdict."""

    def __init__(self, llm_service: Optional[SupportsChatCompletion] = None) -> None:
        self._llm_service = llm_service

    def _service(self) -> SupportsChatCompletion:
        if self._llm_service is None:
            try:
                self._llm_service = LLMService()
            except LLMNotConfiguredError as exc:
                raise ModerationUnavailableError(
                    "Content moderation is not configured. Please contact support."
                ) from exc
        return self._llm_service

    def moderate(self, title: str, body: str) -> ModerationVerdict:
        service = self._service()
        user_message = (
            "Review the following push notification.\n\n"
            f"Title: {json.dumps(title, ensure_ascii=False)}\n"
            f"Body: {json.dumps(body, ensure_ascii=False)}"
        )
        try:
            result = service.generate_chat_completion(
                [{"role": "user", "content": user_message}],
                temperature=0.0,
                max_tokens=512,
                response_format={"type": "json_object"},
                system_prompt=MODERATION_POLICY,
            )
        except (LLMProviderError, httpx.HTTPError) as exc:
            logger.error("Moderation classifier call failed", error=str(exc))
            raise ModerationServiceError(
                "Content moderation failed. Please try again."
            ) from exc

        verdict = parse_verdict(result.content)
        logger.info(
            "Moderation verdict",
            provider=result.provider,
            approved=verdict.is_approved,
            severity=verdict.severity,
            reasons=len(verdict.reasons),
        )
        return verdict


__all__ = ["ContentModerator", "ModerationVerdict", "MODERATION_POLICY", "parse_verdict"]
