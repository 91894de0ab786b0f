"""Room events that affect the search indices.

Every event handed over by the homeserver is classified into exactly one of the
kinds below, or ignored.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional, Union

from synapse.api.constants import EventTypes, RelationTypes
from synapse.events import EventBase

EVENT_ID_PATTERN = re.compile(r"^\$[0-9A-Za-z_\-+/=.:]+$")


@dataclass(frozen=True)
class RoomNameChanged:
    room_id: str
    name: str


@dataclass(frozen=True)
class RoomEncryptionChanged:
    room_id: str
    algorithm: str


@dataclass(frozen=True)
class MessageSent:
    room_id: str
    event_id: str
    sender: str
    body: str


@dataclass(frozen=True)
class MessageEdited:
    room_id: str
    target_event_id: str
    body: str


@dataclass(frozen=True)
class MessageRedacted:
    room_id: str
    redacted_event_id: str


@dataclass(frozen=True)
class DisplayNameChanged:
    room_id: str
    user_id: str
    display_name: str


IndexEvent = Union[
    RoomNameChanged,
    RoomEncryptionChanged,
    MessageSent,
    MessageEdited,
    MessageRedacted,
    DisplayNameChanged,
]


def _non_empty_string(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


def classify_event(
    event: EventBase, prev_content: Optional[Mapping[str, Any]] = None
) -> Optional[IndexEvent]:
    """Map a homeserver event to the index change it requires.

    Args:
        event: The new event.
        prev_content: For membership events, the content of the membership event
            it replaces.

    Returns:
        The classified event, or None when the search indices are not affected.
    """
    content = event.content

    if event.type == EventTypes.Name and event.is_state():
        name = content.get("name")
        if isinstance(name, str):
            return RoomNameChanged(room_id=event.room_id, name=name)
        return None

    if event.type == EventTypes.RoomEncryption and event.is_state():
        algorithm = _non_empty_string(content.get("algorithm"))
        if algorithm:
            return RoomEncryptionChanged(room_id=event.room_id, algorithm=algorithm)
        return None

    if event.type == EventTypes.Message:
        return _classify_message(event)

    if event.type == EventTypes.Redaction:
        redacts = event.redacts
        if isinstance(redacts, str) and EVENT_ID_PATTERN.match(redacts):
            return MessageRedacted(room_id=event.room_id, redacted_event_id=redacts)
        return None

    if event.type == EventTypes.Member:
        display_name = _non_empty_string(content.get("displayname"))
        previous = _non_empty_string((prev_content or {}).get("displayname"))
        if display_name and previous and display_name != previous:
            return DisplayNameChanged(
                room_id=event.room_id,
                user_id=event.state_key,
                display_name=display_name,
            )
        return None

    return None


def _classify_message(event: EventBase) -> Optional[IndexEvent]:
    content = event.content
    relates_to = content.get("m.relates_to")

    if (
        isinstance(relates_to, Mapping)
        and relates_to.get("rel_type") == RelationTypes.REPLACE
    ):
        # the fallback body of an edit is never indexed on its own
        new_content = content.get("m.new_content")
        target = _non_empty_string(relates_to.get("event_id"))
        if target is None or not isinstance(new_content, Mapping):
            return None
        body = new_content.get("body")
        if not isinstance(body, str):
            return None
        return MessageEdited(room_id=event.room_id, target_event_id=target, body=body)

    return _message_sent(event)


def _message_sent(event: EventBase) -> Optional[MessageSent]:
    body = event.content.get("body")
    if not isinstance(body, str):
        return None
    return MessageSent(
        room_id=event.room_id,
        event_id=event.event_id,
        sender=event.sender,
        body=body,
    )
