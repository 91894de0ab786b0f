"""Errors raised by the search engine module."""

import json
from http import HTTPStatus
from typing import Any, Optional

from synapse.api.errors import Codes, StoreError, SynapseError


class SearchEngineError(Exception):
    """The search engine rejected a request or could not be reached."""

    def __init__(self, operation: str, status: int, body: Any = None):
        self.operation = operation
        self.status = status
        self.body = body
        super().__init__(
            f"{operation} failed with status {status}: {self._format_body(body)}"
        )

    @staticmethod
    def _format_body(body: Any) -> str:
        if isinstance(body, (dict, list)):
            return json.dumps(body, indent=2, default=str)
        return str(body)


class BulkIndexingError(SearchEngineError):
    """At least one document of a bulk request failed."""

    def __init__(self, operation: str, failures: list[dict[str, Any]]):
        self.failures = failures
        status = max((f["status"] for f in failures), default=500)
        super().__init__(operation, status, failures)


class ByQueryError(SearchEngineError):
    """An update or delete by query reported shard or document failures."""

    def __init__(self, operation: str, failures: list[dict[str, Any]]):
        self.failures = failures
        status = max((f.get("status", 500) for f in failures), default=500)
        super().__init__(operation, status, failures)


class RoomNotFound(StoreError):
    def __init__(self, room_id: str):
        super().__init__(
            HTTPStatus.NOT_FOUND,
            f"No room stats state found with id {room_id}",
            Codes.NOT_FOUND,
        )


class AmbiguousRoom(StoreError):
    def __init__(self, room_id: str, count: int):
        super().__init__(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            f"{count} rooms found with id {room_id}",
            Codes.UNKNOWN,
        )


class MembershipError(StoreError):
    def __init__(self, user_id: str, room_id: str, membership: Optional[str]):
        if membership is None:
            message = f"No memberships found for user {user_id} in room {room_id}"
        else:
            message = (
                f"User {user_id} is not allowed to participate in room {room_id} "
                f"({membership})"
            )
        super().__init__(HTTPStatus.FORBIDDEN, message, Codes.FORBIDDEN)


class AuthorizationResolutionError(SynapseError):
    def __init__(self, user_id: str):
        super().__init__(
            HTTPStatus.FORBIDDEN,
            f"No e-mail address is associated with {user_id}",
            Codes.FORBIDDEN,
        )
