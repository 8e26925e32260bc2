"""Push notification copy (title/body) per outbox event type."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from app.core.logging import get_logger

logger = get_logger(__name__)

PREVIEW_MAX_CHARS = 120


class _EventPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class MessageNewEvent(_EventPayload):
    event_type: Literal["message_new"] = "message_new"
    preview_text: str | None = None


class CallRingingEvent(_EventPayload):
    event_type: Literal["call_ringing"] = "call_ringing"
    call_type: str | None = None


class RitualReminderEvent(_EventPayload):
    event_type: Literal["ritual_reminder"] = "ritual_reminder"


class PartnerJoinedEvent(_EventPayload):
    event_type: Literal["partner_joined"] = "partner_joined"


class SystemEvent(_EventPayload):
    event_type: Literal["system"] = "system"


class UnknownEvent(_EventPayload):
    event_type: str


KnownEvent = Annotated[
    Union[MessageNewEvent, CallRingingEvent, RitualReminderEvent, PartnerJoinedEvent, SystemEvent],
    Field(discriminator="event_type"),
]
NotificationEvent = Union[
    MessageNewEvent, CallRingingEvent, RitualReminderEvent, PartnerJoinedEvent, SystemEvent, UnknownEvent
]

_known_event = TypeAdapter(KnownEvent)
_defaults_by_type = {
    model.model_fields["event_type"].default: model
    for model in (MessageNewEvent, CallRingingEvent, RitualReminderEvent, PartnerJoinedEvent, SystemEvent)
}


@dataclass(frozen=True)
class NotificationCopy:
    title: str
    body: str


def parse_event(event_type: str, payload: dict[str, Any] | None) -> NotificationEvent:
    """
    Narrow an outbox row's untyped payload to its event variant.

    Unknown event types become UnknownEvent. A known type with malformed
    fields (e.g. a non-string preview) keeps its type but loses the fields.
    """
    model = _defaults_by_type.get(event_type)
    if model is None:
        return UnknownEvent(event_type=str(event_type))

    data = dict(payload or {})
    data["event_type"] = event_type
    try:
        return _known_event.validate_python(data)
    except ValidationError as e:
        logger.warning("payload ignored for event_type=%s: %s", event_type, e.errors()[0].get("msg"))
        return model()


def truncate_preview(text: str, limit: int = PREVIEW_MAX_CHARS) -> str:
    if not text.strip():
        return ""
    return text[:limit]


def build_copy(event: NotificationEvent) -> NotificationCopy:
    if isinstance(event, MessageNewEvent):
        preview = truncate_preview(event.preview_text or "")
        return NotificationCopy(
            title="New message from your partner",
            body=preview or "Open your shared chat to read it.",
        )

    if isinstance(event, CallRingingEvent):
        if event.call_type == "video":
            return NotificationCopy(title="Incoming call", body="Your partner started a video call.")
        return NotificationCopy(title="Incoming call", body="Your partner started a voice call.")

    if isinstance(event, RitualReminderEvent):
        return NotificationCopy(
            title="Daily ritual reminder",
            body="Take a moment to complete today’s ritual together.",
        )

    if isinstance(event, PartnerJoinedEvent):
        return NotificationCopy(title="Your partner joined", body="Your constellation is now complete.")

    # system and anything we don't recognise
    return NotificationCopy(title="OurSpace update", body="There’s something new in your shared space.")


def build_copy_for(event_type: str, payload: dict[str, Any] | None) -> NotificationCopy:
    return build_copy(parse_event(event_type, payload))
