"""Delivery of agent events to subscriber endpoints."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.context import get_request_id
from app.db.models.agent_event import AgentEvent
from app.db.models.calendar_event import CalendarEvent

logger = logging.getLogger(__name__)

SUBSCRIBER_PATHS = {
    "guardian": "/guardian-check",
    "orchestrator": "/agent-orchestrator",
}


class SubscriberDispatchError(RuntimeError):
    """A subscriber did not acknowledge an event."""

    def __init__(self, subscriber: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{subscriber}: {message}")
        self.subscriber = subscriber
        self.status_code = status_code


class SubscriberDispatcher(Protocol):
    def dispatch(self, db: Session, subscriber: str, event: AgentEvent) -> None:
        """Deliver ``event``; return on acknowledgement, raise on failure."""


class HttpSubscriberDispatcher:
    """POSTs events to the agent endpoints of this (or a sibling) deployment."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        service_token: Optional[str] = None,
        compose_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        self._base_url = (base_url or settings.subscriber_base_url).rstrip("/")
        self._service_token = service_token if service_token is not None else settings.service_token
        self._compose_url = compose_url if compose_url is not None else settings.compose_endpoint_url
        self._client = client or httpx.Client(timeout=timeout or settings.subscriber_timeout_seconds)

    def dispatch(self, db: Session, subscriber: str, event: AgentEvent) -> None:
        if subscriber == "guardian":
            body = _guardian_body(db, event)
            if body is None:
                return
            self._post(subscriber, f"{self._base_url}{SUBSCRIBER_PATHS[subscriber]}", body)
        elif subscriber == "orchestrator":
            payload = event.payload or {}
            body = {
                "trigger": "conflict_detected",
                "context": {"alert_id": payload.get("alert_id"), "user_id": str(event.user_id)},
            }
            self._post(subscriber, f"{self._base_url}{SUBSCRIBER_PATHS[subscriber]}", body)
        elif subscriber == "compose":
            if not self._compose_url:
                logger.info("No compose endpoint configured; acknowledging event %s without dispatch", event.id)
                return
            body = {"user_id": str(event.user_id), "event_type": event.event_type, "payload": event.payload or {}}
            self._post(subscriber, self._compose_url, body)
        else:
            raise SubscriberDispatchError(subscriber, "no endpoint registered for subscriber")

    def close(self) -> None:
        self._client.close()

    def _post(self, subscriber: str, url: str, body: Dict[str, Any]) -> None:
        headers = {"Content-Type": "application/json"}
        if self._service_token:
            headers["Authorization"] = f"Bearer {self._service_token}"
        request_id = get_request_id()
        if request_id:
            headers["X-Request-Id"] = request_id

        try:
            response = self._client.post(url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise SubscriberDispatchError(subscriber, f"transport failure: {exc}") from exc

        if response.is_success:
            logger.debug("Subscriber %s acknowledged (%s)", subscriber, response.status_code)
            return
        raise SubscriberDispatchError(
            subscriber,
            f"HTTP {response.status_code}: {response.text[:200]}",
            status_code=response.status_code,
        )


def _guardian_body(db: Session, event: AgentEvent) -> Optional[Dict[str, Any]]:
    """Translate the synced external calendar id into the stored event id."""
    payload = event.payload or {}
    external_id = payload.get("event_id") or payload.get("external_id")
    if not external_id:
        logger.warning("calendar.event.synced %s carries no event id; skipping guardian", event.id)
        return None

    stored = (
        db.query(CalendarEvent.id)
        .filter(CalendarEvent.user_id == event.user_id, CalendarEvent.external_id == str(external_id))
        .one_or_none()
    )
    if stored is None:
        stored_id = _as_uuid(external_id)
        if stored_id is None or db.get(CalendarEvent, stored_id) is None:
            logger.warning(
                "Calendar event %s not found for user %s; skipping guardian",
                external_id,
                event.user_id,
            )
            return None
        return {"event_id": str(stored_id), "user_id": str(event.user_id)}
    return {"event_id": str(stored.id), "user_id": str(event.user_id)}


def _as_uuid(value: Any) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except ValueError:
        return None
