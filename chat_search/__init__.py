"""Search over rooms, messages and mails backed by OpenSearch.

Keeps a rooms index and a messages index in line with the homeserver's clear
rooms, and serves searches across them and an externally fed mails index.
"""

import logging

from pydantic import PositiveInt
from synapse.module_api import ModuleApi
from twisted.internet import defer

from .bootstrap import IndexBootstrapper
from .custom_types import INDEX_NAME, BaseConfig
from .opensearch import OpenSearchClient, OpenSearchConfig
from .rooms.store import RoomStore
from .search.api import RestoreResource, SearchResource
from .search.handler import SearchHandler
from .sync.synchronizer import IndexSynchronizer

logger = logging.getLogger(__name__)


class Config(BaseConfig):
    """Configuration for the search module."""

    opensearch: OpenSearchConfig
    max_hits_per_index: PositiveInt = 1000
    mails_index: INDEX_NAME = "mails"
    restore_on_startup: bool = True


class Module:
    """A module that indexes clear rooms and serves searches."""

    def __init__(self, config: dict, api: ModuleApi):
        self.config = Config.model_validate(config)
        self.api = api
        hs = api._hs
        main_store = hs.get_datastores().main

        store = RoomStore(main_store.db_pool)
        self.client = OpenSearchClient(api, self.config.opensearch)
        self.bootstrapper = IndexBootstrapper(self.client, store)
        handler = SearchHandler(
            self.client,
            store,
            self.config.mails_index,
            self.config.max_hits_per_index,
        )

        api.register_web_resource(
            path="/_connect/search",
            resource=SearchResource(hs, handler),
        )
        api.register_web_resource(
            path="/_connect/opensearch",
            resource=RestoreResource(hs, self.bootstrapper),
        )

        if api.worker_name is not None:
            logger.info(f"Not synchronizing search indices on {api.worker_name}")
            return

        self.synchronizer = IndexSynchronizer(self.client, store, main_store)
        api.register_third_party_rules_callbacks(
            on_new_event=self.synchronizer.on_new_event
        )

        if self.config.restore_on_startup:
            self.startup: defer.Deferred = api.run_as_background_process(
                "create_search_indices", self._create_indices
            )

    async def _create_indices(self) -> None:
        try:
            await self.bootstrapper.create_indices()
        except Exception as e:
            logger.error(f"Failed to create the search indices: {e}")
