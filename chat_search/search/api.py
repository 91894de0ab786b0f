"""Routes for search and index restoration."""

import logging
import re
from http import HTTPStatus
from typing import TYPE_CHECKING, Tuple

from synapse.api.errors import Codes, SynapseError
from synapse.http.server import JsonResource
from synapse.http.servlet import RestServlet
from synapse.http.site import SynapseRequest
from synapse.module_api import parse_json_object_from_request
from synapse.types import JsonDict

from ..bootstrap import IndexBootstrapper
from .handler import SearchHandler

if TYPE_CHECKING:
    from synapse.server import HomeServer

logger = logging.getLogger(__name__)


class SearchResource(JsonResource):
    def __init__(self, hs: "HomeServer", handler: SearchHandler):
        JsonResource.__init__(self, hs, canonical_json=False)
        SearchServlet(hs, handler).register(self)


class RestoreResource(JsonResource):
    def __init__(self, hs: "HomeServer", bootstrapper: IndexBootstrapper):
        JsonResource.__init__(self, hs, canonical_json=False)
        RestoreServlet(hs, bootstrapper).register(self)


class SearchServlet(RestServlet):
    PATTERNS = [re.compile("^/_connect/search$")]
    CATEGORY = "Search requests"

    def __init__(self, hs: "HomeServer", handler: SearchHandler):
        super().__init__()
        self.auth = hs.get_auth()
        self.handler = handler

    async def on_POST(self, request: SynapseRequest) -> Tuple[int, JsonDict]:
        requester = await self.auth.get_user_by_req(request)
        user_id = requester.user.to_string()

        content = parse_json_object_from_request(request)
        try:
            return await self.handler.handle_search(user_id, content)
        except SynapseError:
            raise
        except Exception as e:
            logger.error(
                f"{request.get_method()} {request.get_redacted_uri()} by {user_id} "
                f"failed: {e}"
            )
            raise SynapseError(
                HTTPStatus.INTERNAL_SERVER_ERROR,
                "Internal server error",
                Codes.UNKNOWN,
            ) from e


class RestoreServlet(RestServlet):
    """Creates and backfills the missing search indices."""

    PATTERNS = [re.compile("^/_connect/opensearch/restore$")]
    CATEGORY = "Search requests"

    def __init__(self, hs: "HomeServer", bootstrapper: IndexBootstrapper):
        super().__init__()
        self.auth = hs.get_auth()
        self.bootstrapper = bootstrapper

    async def on_POST(self, request: SynapseRequest) -> Tuple[int, JsonDict]:
        requester = await self.auth.get_user_by_req(request)
        if not await self.auth.is_server_admin(requester):
            raise SynapseError(
                HTTPStatus.FORBIDDEN,
                f"{requester.user.to_string()} is not a server admin",
                Codes.FORBIDDEN,
            )

        try:
            await self.bootstrapper.create_indices()
        except Exception as e:
            logger.error(f"Search indices restoration failed: {e}")
            raise SynapseError(
                HTTPStatus.INTERNAL_SERVER_ERROR,
                "Internal server error",
                Codes.UNKNOWN,
            ) from e

        return HTTPStatus.NO_CONTENT, {}
