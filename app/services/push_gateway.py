"""Expo push service client.

The client turns the Expo response for one batch into a list of
:class:`DeliveryResult` values, one per submitted message and in the same
order. Anything that prevents Expo from evaluating the batch is raised as
:class:`PushTransportError`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

import httpx
from loguru import logger

from app.config import settings

EXPO_BATCH_LIMIT = 100

# Ticket error codes meaning the token will never accept messages again.
PERMANENT_FAILURE_CODES = frozenset({"DeviceNotRegistered"})


@dataclass(frozen=True)
class PushMessage:
    """One delivery attempt to a single device token."""

    to: str
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)
    sound: Optional[str] = "default"

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "to": self.to,
            "title": self.title,
            "body": self.body,
            "data": self.data,
        }
        if self.sound:
            payload["sound"] = self.sound
        return payload


@dataclass(frozen=True)
class Delivered:
    ticket_id: Optional[str] = None


@dataclass(frozen=True)
class RejectedPermanent:
    reason: str
    message: Optional[str] = None


@dataclass(frozen=True)
class RejectedTransient:
    reason: str
    message: Optional[str] = None


DeliveryResult = Union[Delivered, RejectedPermanent, RejectedTransient]


class PushTransportError(RuntimeError):
    """The batch call failed before Expo evaluated individual messages."""


class PushResponseMismatchError(RuntimeError):
    """Expo returned a different number of tickets than messages submitted."""


class PushClient(Protocol):
    def send_batch(self, messages: Sequence[PushMessage]) -> List[DeliveryResult]:  # pragma: no cover - interface definition
        ...


def classify_ticket(ticket: Any) -> DeliveryResult:
    """Map one Expo push ticket onto a delivery result."""

    if not isinstance(ticket, dict):
        return RejectedTransient(reason="InvalidTicket")
    if ticket.get("status") == "ok":
        return Delivered(ticket_id=ticket.get("id"))

    details = ticket.get("details") or {}
    reason = details.get("error") if isinstance(details, dict) else None
    if not isinstance(reason, str) or not reason:
        reason = "UnknownError"
    message = ticket.get("message")
    if reason in PERMANENT_FAILURE_CODES:
        return RejectedPermanent(reason=reason, message=message)
    return RejectedTransient(reason=reason, message=message)


class ExpoPushClient:
    """Send message batches to the Expo push API."""

    def __init__(
        self,
        *,
        url: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.url = url or settings.EXPO_PUSH_URL
        self.access_token = access_token if access_token is not None else settings.EXPO_ACCESS_TOKEN
        self.timeout = timeout if timeout is not None else settings.PUSH_REQUEST_TIMEOUT_SECONDS
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/json",
        }
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def send_batch(self, messages: Sequence[PushMessage]) -> List[DeliveryResult]:
        if len(messages) > EXPO_BATCH_LIMIT:
            raise ValueError(f"Expo accepts at most {EXPO_BATCH_LIMIT} messages per request")
        if not messages:
            return []

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(
                    self.url,
                    json=[message.to_payload() for message in messages],
                    headers=self._headers(),
                )
        except httpx.HTTPError as exc:
            logger.warning("Expo push request failed", error=str(exc), batch_size=len(messages))
            raise PushTransportError(f"Expo push request failed: {exc}") from exc

        if response.status_code >= 400:
            logger.warning(
                "Expo push service returned error",
                status=response.status_code,
                body=response.text[:500],
            )
            raise PushTransportError(f"Expo push service error {response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise PushTransportError("Expo push service returned invalid JSON") from exc

        tickets = body.get("data") if isinstance(body, dict) else None
        if not isinstance(tickets, list):
            errors = body.get("errors") if isinstance(body, dict) else None
            raise PushTransportError(f"Expo push service rejected the request: {errors}")

        if len(tickets) != len(messages):
            raise PushResponseMismatchError(
                f"Expo returned {len(tickets)} tickets for {len(messages)} messages"
            )
        return [classify_ticket(ticket) for ticket in tickets]


__all__ = [
    "EXPO_BATCH_LIMIT",
    "Delivered",
    "DeliveryResult",
    "ExpoPushClient",
    "PushClient",
    "PushMessage",
    "PushResponseMismatchError",
    "PushTransportError",
    "RejectedPermanent",
    "RejectedTransient",
    "classify_ticket",
]
