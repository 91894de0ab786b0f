"""Keeps the rooms and messages indices in line with room events."""

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Optional

from synapse.api.constants import EventTypes
from synapse.events import EventBase

from ..opensearch import (
    MESSAGES_INDEX,
    ROOMS_INDEX,
    Document,
    MessageDocument,
    RoomDocument,
    SearchEngineClient,
)
from ..rooms.store import RoomStore
from .events import (
    DisplayNameChanged,
    IndexEvent,
    MessageEdited,
    MessageRedacted,
    MessageSent,
    RoomEncryptionChanged,
    RoomNameChanged,
    classify_event,
)

if TYPE_CHECKING:
    from synapse.storage.databases.main import DataStore

logger = logging.getLogger(__name__)

UPDATE_DISPLAY_NAME_SCRIPT = "ctx._source.display_name = params.display_name"


class IndexSynchronizer:
    """Applies room events to the search indices.

    Room encryption is read from the store for every event and never cached, so a
    room that became encrypted is never written to again. Failures are logged and
    never reach the caller: the homeserver keeps processing events, and a restore
    repairs the indices.
    """

    def __init__(
        self,
        client: SearchEngineClient,
        store: RoomStore,
        main_store: "DataStore",
    ):
        self.client = client
        self.store = store
        self.main_store = main_store

    async def on_new_event(self, event: EventBase, *args: Any) -> None:
        try:
            prev_content = await self._get_prev_content(event)
            index_event = classify_event(event, prev_content)
            if index_event is None:
                return

            await self.apply(index_event)
        except Exception as e:
            logger.error(
                f"Failed to apply {event.type} event {event.event_id} "
                f"from {event.sender} in {event.room_id} to the search indices: {e}"
            )

    async def _get_prev_content(self, event: EventBase) -> Optional[Mapping]:
        if event.type != EventTypes.Member or "displayname" not in event.content:
            return None

        prev_content = event.unsigned.get("prev_content")
        if prev_content is not None:
            return prev_content

        replaces_state = event.unsigned.get("replaces_state")
        if not replaces_state:
            return None

        prev_event = await self.main_store.get_event(replaces_state, allow_none=True)
        return prev_event.content if prev_event else None

    async def apply(self, index_event: IndexEvent) -> None:
        if isinstance(index_event, RoomNameChanged):
            await self._update_room_name(index_event)
        elif isinstance(index_event, RoomEncryptionChanged):
            await self._deindex_room(index_event)
        elif isinstance(index_event, MessageSent):
            await self._index_message(index_event)
        elif isinstance(index_event, MessageEdited):
            await self._update_message_content(index_event)
        elif isinstance(index_event, MessageRedacted):
            await self._deindex_message(index_event)
        elif isinstance(index_event, DisplayNameChanged):
            await self._update_display_name(index_event)
        else:
            raise TypeError(f"Unknown index event {index_event!r}")

    async def _update_room_name(self, index_event: RoomNameChanged):
        if await self.store.is_encrypted_room(index_event.room_id):
            return

        document = RoomDocument(id=index_event.room_id, name=index_event.name)
        await self.client.index_document(ROOMS_INDEX, document.to_document())

    async def _deindex_room(self, index_event: RoomEncryptionChanged):
        logger.info(
            f"{index_event.room_id} is now encrypted ({index_event.algorithm}), "
            "removing it from the search indices"
        )
        await self.client.delete_document(ROOMS_INDEX, index_event.room_id)
        await self.client.delete_documents(
            MESSAGES_INDEX, {"term": {"room_id": index_event.room_id}}
        )

    async def _index_message(self, index_event: MessageSent):
        room = await self.store.get_room_detail(index_event.room_id)
        if room.is_encrypted:
            return

        display_name = await self.store.get_user_display_name(
            index_event.room_id, index_event.sender
        )
        message = MessageDocument(
            id=index_event.event_id,
            room_id=index_event.room_id,
            content=index_event.body,
            sender=index_event.sender,
            display_name=display_name,
        )
        documents = {MESSAGES_INDEX: [message.to_document()]}

        if room.name is not None and not await self.client.document_exists(
            ROOMS_INDEX, room.room_id
        ):
            documents[ROOMS_INDEX] = [
                RoomDocument(id=room.room_id, name=room.name).to_document()
            ]

        await self.client.index_documents(documents)

    async def _update_message_content(self, index_event: MessageEdited):
        if await self.store.is_encrypted_room(index_event.room_id):
            return

        await self.client.update_document(
            MESSAGES_INDEX,
            Document(
                id=index_event.target_event_id,
                fields={"content": index_event.body},
            ),
        )

    async def _deindex_message(self, index_event: MessageRedacted):
        await self.client.delete_document(
            MESSAGES_INDEX, index_event.redacted_event_id
        )

    async def _update_display_name(self, index_event: DisplayNameChanged):
        # Every indexed message of the user is updated, whatever its room.
        await self.client.update_documents(
            MESSAGES_INDEX,
            UPDATE_DISPLAY_NAME_SCRIPT,
            {"term": {"sender": index_event.user_id}},
            {"display_name": index_event.display_name},
        )
