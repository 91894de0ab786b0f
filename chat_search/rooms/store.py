"""Read-only queries against the homeserver's room and event tables."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Collection, Optional

from synapse.api.constants import EventTypes, Membership, RelationTypes
from synapse.storage._base import db_to_json
from synapse.storage.database import (
    DatabasePool,
    LoggingTransaction,
    make_in_list_sql_clause,
)

from ..errors import AmbiguousRoom, MembershipError, RoomNotFound

logger = logging.getLogger(__name__)


@dataclass
class RoomDetail:
    """A row of `room_stats_state`."""

    room_id: str
    name: Optional[str] = None
    canonical_alias: Optional[str] = None
    join_rules: Optional[str] = None
    history_visibility: Optional[str] = None
    encryption: Optional[str] = None
    avatar: Optional[str] = None
    guest_access: Optional[str] = None
    is_federatable: Optional[bool] = None
    topic: Optional[str] = None
    room_type: Optional[str] = None

    @property
    def is_encrypted(self) -> bool:
        return self.encryption is not None


ROOM_DETAIL_COLUMNS = [
    "room_id",
    "name",
    "canonical_alias",
    "join_rules",
    "history_visibility",
    "encryption",
    "avatar",
    "guest_access",
    "is_federatable",
    "topic",
    "room_type",
]


@dataclass
class ClearRoomMessage:
    """A message of a clear room, with its sender's current display name."""

    event_id: str
    room_id: str
    sender: str
    body: str
    display_name: Optional[str] = None


class RoomStore:
    """A class that handles the room read-model queries."""

    def __init__(self, db_pool: DatabasePool):
        self.db_pool = db_pool

    @staticmethod
    def _check_single_room(room_id: str, rows: list[Any]):
        if not rows:
            raise RoomNotFound(room_id)
        if len(rows) > 1:
            logger.error(f"room_stats_state holds {len(rows)} rows for {room_id}")
            raise AmbiguousRoom(room_id, len(rows))

    async def get_all_clear_rooms_ids(self) -> list[str]:
        def select(txn: LoggingTransaction) -> list[str]:
            txn.execute(
                "SELECT room_id FROM room_stats_state WHERE encryption IS NULL"
            )
            return [r[0] for r in txn]

        return await self.db_pool.runInteraction(
            "get_all_clear_rooms_ids", select, db_autocommit=True
        )

    async def get_all_clear_rooms_names(self) -> list[tuple[str, str]]:
        """Get the id and name of every clear room that has a name."""

        def select(txn: LoggingTransaction) -> list[tuple[str, str]]:
            txn.execute(
                "SELECT room_id, name FROM room_stats_state "
                "WHERE encryption IS NULL AND name IS NOT NULL"
            )
            return [(r[0], r[1]) for r in txn]

        return await self.db_pool.runInteraction(
            "get_all_clear_rooms_names", select, db_autocommit=True
        )

    async def is_encrypted_room(self, room_id: str) -> bool:
        rows = await self.db_pool.simple_select_list(
            "room_stats_state",
            keyvalues={"room_id": room_id},
            retcols=["encryption"],
            desc="is_encrypted_room",
        )
        self._check_single_room(room_id, rows)
        return rows[0][0] is not None

    async def get_room_detail(self, room_id: str) -> RoomDetail:
        rows = await self.db_pool.simple_select_list(
            "room_stats_state",
            keyvalues={"room_id": room_id},
            retcols=ROOM_DETAIL_COLUMNS,
            desc="get_room_detail",
        )
        self._check_single_room(room_id, rows)
        return RoomDetail(*rows[0])

    async def get_rooms_details(
        self, room_ids: Collection[str]
    ) -> dict[str, RoomDetail]:
        if not room_ids:
            return {}

        rows = await self.db_pool.simple_select_many_batch(
            table="room_stats_state",
            column="room_id",
            iterable=room_ids,
            retcols=ROOM_DETAIL_COLUMNS,
            desc="get_rooms_details",
        )
        return {row[0]: RoomDetail(*row) for row in rows}

    async def get_user_display_name(
        self, room_id: str, user_id: str
    ) -> Optional[str]:
        """Get the display name of a user who is currently joined to a room.

        Raises:
            MembershipError: the user has no membership in the room, or their
                latest membership is not "join".
        """

        def select(txn: LoggingTransaction) -> list[tuple[Optional[str], str]]:
            txn.execute(
                "SELECT display_name, membership FROM room_memberships "
                "WHERE room_id = ? AND user_id = ? "
                "ORDER BY event_stream_ordering",
                (room_id, user_id),
            )
            return [(r[0], r[1]) for r in txn]

        memberships = await self.db_pool.runInteraction(
            "get_user_display_name", select, db_autocommit=True
        )
        if not memberships:
            raise MembershipError(user_id, room_id, None)

        display_name, membership = memberships[-1]
        if membership != Membership.JOIN:
            raise MembershipError(user_id, room_id, membership)

        return display_name

    async def get_members_display_names(
        self, room_ids: Collection[str]
    ) -> dict[str, Optional[str]]:
        """Map every member of the given rooms to their latest display name."""
        if not room_ids:
            return {}

        def select(txn: LoggingTransaction) -> dict[str, Optional[str]]:
            clause, args = make_in_list_sql_clause(
                txn.database_engine, "room_id", room_ids
            )
            txn.execute(
                "SELECT user_id, display_name FROM room_memberships "
                f"WHERE {clause} ORDER BY event_stream_ordering",  # noqa: S608
                args,
            )
            # later rows override earlier ones
            return {user_id: display_name for user_id, display_name in txn}

        return await self.db_pool.runInteraction(
            "get_members_display_names", select, db_autocommit=True
        )

    async def get_all_clear_rooms_messages(self) -> list[ClearRoomMessage]:
        """Get the current text of every message of every clear room.

        Redacted messages are skipped and edits are applied to the message they
        replace, so each message is returned once with its latest body.
        """

        def select(txn: LoggingTransaction) -> list[tuple[str, str, str]]:
            txn.execute(
                """
                SELECT e.event_id, e.room_id, ej.json
                FROM events e
                JOIN event_json ej ON e.event_id = ej.event_id
                JOIN room_stats_state rss ON e.room_id = rss.room_id
                LEFT JOIN redactions r ON r.redacts = e.event_id
                WHERE e.type = ? AND rss.encryption IS NULL AND r.redacts IS NULL
                ORDER BY e.stream_ordering
                """,
                (EventTypes.Message,),
            )
            return [(r[0], r[1], r[2]) for r in txn]

        rows = await self.db_pool.runInteraction(
            "get_all_clear_rooms_messages", select, db_autocommit=True
        )

        messages: dict[str, ClearRoomMessage] = {}
        edits: list[tuple[str, str]] = []
        for event_id, room_id, raw_json in rows:
            event = db_to_json(raw_json)
            content = event.get("content")
            if not isinstance(content, Mapping):
                continue

            relates_to = content.get("m.relates_to")
            if not isinstance(relates_to, Mapping):
                relates_to = {}
            new_content = content.get("m.new_content")

            if relates_to.get("rel_type") == RelationTypes.REPLACE:
                target_id = relates_to.get("event_id")
                if (
                    isinstance(target_id, str)
                    and isinstance(new_content, Mapping)
                    and isinstance(new_content.get("body"), str)
                ):
                    edits.append((target_id, new_content["body"]))
                continue

            body = content.get("body")
            if not isinstance(body, str):
                continue

            messages[event_id] = ClearRoomMessage(
                event_id=event_id,
                room_id=room_id,
                sender=event["sender"],
                body=body,
            )

        for target_id, body in edits:
            if target_id in messages:
                messages[target_id].body = body

        display_names = await self.get_members_display_names(
            {message.room_id for message in messages.values()}
        )
        for message in messages.values():
            message.display_name = display_names.get(message.sender)

        return list(messages.values())

    async def get_user_rooms_ids(self, user_id: str) -> list[str]:
        """Get the rooms in which the user has any membership, past or present."""
        room_ids = await self.db_pool.simple_select_onecol(
            "room_memberships",
            keyvalues={"user_id": user_id},
            retcol="room_id",
            desc="get_user_rooms_ids",
        )
        return list(dict.fromkeys(room_ids))

    async def get_direct_rooms_ids(self, room_ids: Collection[str]) -> list[str]:
        """Get the rooms, among `room_ids`, that were created as direct chats."""
        if not room_ids:
            return []

        def select(txn: LoggingTransaction) -> list[tuple[str, str]]:
            clause, args = make_in_list_sql_clause(
                txn.database_engine, "e.room_id", room_ids
            )
            txn.execute(
                "SELECT e.room_id, ej.json FROM events e "
                "JOIN event_json ej ON e.event_id = ej.event_id "
                f"WHERE e.type = ? AND {clause}",  # noqa: S608
                [EventTypes.Member] + list(args),
            )
            return [(r[0], r[1]) for r in txn]

        rows = await self.db_pool.runInteraction(
            "get_direct_rooms_ids", select, db_autocommit=True
        )

        direct_room_ids = set()
        for room_id, raw_json in rows:
            content = db_to_json(raw_json).get("content")
            if isinstance(content, Mapping) and content.get("is_direct") is True:
                direct_room_ids.add(room_id)
        return [room_id for room_id in room_ids if room_id in direct_room_ids]

    async def get_direct_rooms_avatar_url(
        self, room_ids: Collection[str], user_id: str
    ) -> dict[str, Optional[str]]:
        """Map each direct room to the avatar of the member who is not `user_id`."""
        if not room_ids:
            return {}

        def select(txn: LoggingTransaction) -> dict[str, Optional[str]]:
            clause, args = make_in_list_sql_clause(
                txn.database_engine, "room_id", room_ids
            )
            txn.execute(
                "SELECT room_id, avatar_url FROM room_memberships "
                f"WHERE user_id != ? AND {clause} "  # noqa: S608
                "ORDER BY event_stream_ordering",
                [user_id] + list(args),
            )
            return {room_id: avatar_url for room_id, avatar_url in txn}

        return await self.db_pool.runInteraction(
            "get_direct_rooms_avatar_url", select, db_autocommit=True
        )

    async def get_user_email(self, user_id: str) -> Optional[str]:
        addresses = await self.db_pool.simple_select_onecol(
            "user_threepids",
            keyvalues={"user_id": user_id, "medium": "email"},
            retcol="address",
            desc="get_user_email",
        )
        return addresses[0] if addresses else None
