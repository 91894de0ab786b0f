"""Search handler."""

import logging
import re
from http import HTTPStatus
from typing import Any, Tuple

from synapse.api.errors import Codes, SynapseError
from synapse.types import JsonDict

from ..errors import AuthorizationResolutionError
from ..opensearch import MESSAGES_INDEX, ROOMS_INDEX, SearchEngineClient
from ..opensearch.mappings import (
    MAIL_PARTICIPANT_FIELDS,
    MAILS_SEARCH_FIELDS,
    MESSAGES_SEARCH_FIELDS,
    ROOMS_SEARCH_FIELDS,
)
from ..rooms.store import RoomStore

logger = logging.getLogger(__name__)

# Lucene regular expression operators
REGEXP_RESERVED = re.compile(r'([.?+*|{}\[\]()"\\#@&<>~])')


def to_regexp(search_value: str) -> str:
    """Build a regexp matching any term that contains `search_value`."""
    escaped = REGEXP_RESERVED.sub(r"\\\1", search_value)
    return f".*{escaped}.*"


class SearchHandler:
    """Searches rooms, messages and mails, keeping only what the user may see.

    The indices are never trusted for authorization: room and message hits are
    filtered against the user's room memberships, and mail hits against the
    user's e-mail address.
    """

    def __init__(
        self,
        client: SearchEngineClient,
        store: RoomStore,
        mails_index: str,
        max_hits_per_index: int,
    ):
        self.client = client
        self.store = store
        self.mails_index = mails_index
        self.max_hits_per_index = max_hits_per_index

    async def handle_search(
        self, user_id: str, content: JsonDict
    ) -> Tuple[int, JsonDict]:
        search_value = self._parse_search_value(content)

        user_email = await self.store.get_user_email(user_id)
        if user_email is None:
            raise AuthorizationResolutionError(user_id)

        return HTTPStatus.OK, await self.search(search_value, user_id, user_email)

    def _parse_search_value(self, content: JsonDict) -> str:
        if "searchValue" not in content:
            raise SynapseError(
                HTTPStatus.BAD_REQUEST,
                "'searchValue' key-value is missing",
                Codes.MISSING_PARAM,
            )

        search_value = content["searchValue"]
        if not isinstance(search_value, str) or not search_value:
            raise SynapseError(
                HTTPStatus.BAD_REQUEST,
                "'searchValue' is not a non-empty string",
                Codes.INVALID_PARAM,
            )

        return search_value

    async def search(
        self, search_value: str, user_id: str, user_email: str
    ) -> dict[str, list[JsonDict]]:
        rooms_hits, messages_hits, mails_hits = (
            await self.client.search_on_multiple_indexes(
                to_regexp(search_value),
                {
                    ROOMS_INDEX: ROOMS_SEARCH_FIELDS,
                    MESSAGES_INDEX: MESSAGES_SEARCH_FIELDS,
                    self.mails_index: MAILS_SEARCH_FIELDS,
                },
                self.max_hits_per_index,
            )
        )

        user_rooms_ids = set(await self.store.get_user_rooms_ids(user_id))

        rooms_hits = [hit for hit in rooms_hits if hit["_id"] in user_rooms_ids]
        messages_hits = [
            hit for hit in messages_hits if hit["_source"]["room_id"] in user_rooms_ids
        ]
        mails_hits = [
            hit for hit in mails_hits if self._is_mail_participant(hit, user_email)
        ]
        logger.debug(
            f"Search by {user_id} kept {len(rooms_hits)} rooms, "
            f"{len(messages_hits)} messages and {len(mails_hits)} mails"
        )

        rooms_details = await self.store.get_rooms_details(user_rooms_ids)
        direct_rooms_ids = set(await self.store.get_direct_rooms_ids(user_rooms_ids))
        direct_rooms_avatars = await self.store.get_direct_rooms_avatar_url(
            direct_rooms_ids, user_id
        )

        rooms = []
        for hit in rooms_hits:
            room = rooms_details.get(hit["_id"])
            rooms.append(
                {
                    "room_id": hit["_id"],
                    "name": hit["_source"]["name"],
                    "avatar_url": room.avatar if room else None,
                }
            )

        messages = []
        for hit in messages_hits:
            source = hit["_source"]
            room_id = source["room_id"]
            room = rooms_details.get(room_id)
            if room_id in direct_rooms_ids:
                avatar_url = direct_rooms_avatars.get(room_id)
                room_name = None
            else:
                avatar_url = room.avatar if room else None
                room_name = room.name if room else None
            messages.append(
                {
                    "room_id": room_id,
                    "event_id": hit["_id"],
                    "content": source["content"],
                    "display_name": source.get("display_name"),
                    "avatar_url": avatar_url,
                    "room_name": room_name,
                }
            )

        mails = [
            {"id": hit.get("_id") or hit["_source"].get("messageId"), **hit["_source"]}
            for hit in mails_hits
        ]

        return {"rooms": rooms, "messages": messages, "mails": mails}

    @staticmethod
    def _is_mail_participant(hit: JsonDict, user_email: str) -> bool:
        source: dict[str, Any] = hit["_source"]
        return any(
            participant.get("address") == user_email
            for field in MAIL_PARTICIPANT_FIELDS
            for participant in source.get(field) or []
        )
