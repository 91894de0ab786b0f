"""Creation and backfill of the rooms and messages indices."""

import logging

from .opensearch import (
    MESSAGES_INDEX,
    ROOMS_INDEX,
    IndexingAction,
    MessageDocument,
    RoomDocument,
    SearchEngineClient,
)
from .opensearch.mappings import INDEX_MAPPINGS
from .rooms.store import RoomStore

logger = logging.getLogger(__name__)


class IndexBootstrapper:
    """Creates the missing indices and backfills them from the homeserver database.

    An index that already exists is left untouched. Backfilled documents are
    written with the "create" action, so a document that is already present makes
    the backfill fail instead of being written twice.
    """

    def __init__(self, client: SearchEngineClient, store: RoomStore):
        self.client = client
        self.store = store

    async def create_indices(self) -> None:
        rooms_index_exists = await self.client.index_exists(ROOMS_INDEX)
        messages_index_exists = await self.client.index_exists(MESSAGES_INDEX)

        if not rooms_index_exists:
            await self.client.create_index(ROOMS_INDEX, INDEX_MAPPINGS[ROOMS_INDEX])
            await self._backfill_rooms()

        if not messages_index_exists:
            await self.client.create_index(
                MESSAGES_INDEX, INDEX_MAPPINGS[MESSAGES_INDEX]
            )
            await self._backfill_messages()

    async def _backfill_rooms(self):
        rooms = await self.store.get_all_clear_rooms_names()
        logger.info(f"Backfilling {len(rooms)} rooms into {ROOMS_INDEX}")
        if not rooms:
            return

        await self.client.index_documents(
            {
                ROOMS_INDEX: [
                    RoomDocument(id=room_id, name=name).to_document(
                        IndexingAction.CREATE
                    )
                    for room_id, name in rooms
                ]
            }
        )

    async def _backfill_messages(self):
        messages = await self.store.get_all_clear_rooms_messages()
        logger.info(f"Backfilling {len(messages)} messages into {MESSAGES_INDEX}")
        if not messages:
            return

        await self.client.index_documents(
            {
                MESSAGES_INDEX: [
                    MessageDocument(
                        id=message.event_id,
                        room_id=message.room_id,
                        content=message.body,
                        sender=message.sender,
                        display_name=message.display_name,
                    ).to_document(IndexingAction.CREATE)
                    for message in messages
                ]
            }
        )
