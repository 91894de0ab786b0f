"""Tests for the OpenSearch client."""

import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from opensearchpy.exceptions import ConnectionError, NotFoundError, TransportError

from chat_search.errors import BulkIndexingError, ByQueryError, SearchEngineError
from chat_search.opensearch import (
    Document,
    IndexingAction,
    MessageDocument,
    OpenSearchClient,
    OpenSearchConfig,
    RoomDocument,
)

room_id = "!abc:localhost"
event_id = "$event:localhost"


class OpenSearchClientTestSuite(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        patcher = patch("chat_search.opensearch.client.OpenSearch")
        self.opensearch_class = patcher.start()
        self.addCleanup(patcher.stop)
        self.opensearch = self.opensearch_class.return_value

        self.api = MagicMock()
        self.api.defer_to_thread = AsyncMock(
            side_effect=lambda func, **kwargs: func(**kwargs)
        )
        self.config = OpenSearchConfig(
            host="opensearch:9200", wait_for_active_shards="all"
        )
        self.client = OpenSearchClient(self.api, self.config)

    def test__init__client_options(self):
        self.opensearch_class.assert_called_once_with(
            hosts=["http://opensearch:9200"], max_retries=3, retry_on_timeout=True
        )

    async def test__create_index__ok(self):
        mapping = {"properties": {"name": {"type": "text"}}}

        await self.client.create_index("rooms", mapping)

        self.opensearch.indices.create.assert_called_once_with(
            index="rooms",
            body={
                "mappings": mapping,
                "settings": {
                    "index": {"number_of_shards": 1, "number_of_replicas": 1}
                },
            },
            wait_for_active_shards="all",
        )

    async def test__create_index__engine_error(self):
        self.opensearch.indices.create.side_effect = TransportError(
            400, "resource_already_exists_exception", {"error": "exists"}
        )

        with self.assertRaises(SearchEngineError) as ctx:
            await self.client.create_index("rooms", {})

        self.assertEqual(ctx.exception.status, 400)
        self.assertEqual(ctx.exception.operation, "PUT /rooms")
        self.assertEqual(ctx.exception.body, {"error": "exists"})

    async def test__create_index__connection_error(self):
        self.opensearch.indices.create.side_effect = ConnectionError(
            "N/A", "connection refused", Exception("refused")
        )

        with self.assertRaises(SearchEngineError) as ctx:
            await self.client.create_index("rooms", {})

        self.assertEqual(ctx.exception.status, 500)

    async def test__index_exists__true(self):
        self.opensearch.indices.exists.return_value = True

        self.assertTrue(await self.client.index_exists("rooms"))
        self.opensearch.indices.exists.assert_called_once_with(index="rooms")

    async def test__index_exists__not_found(self):
        self.opensearch.indices.exists.side_effect = NotFoundError(404, "not found")

        self.assertFalse(await self.client.index_exists("rooms"))

    async def test__index_document__ok(self):
        document = RoomDocument(id=room_id, name="Skywalkers").to_document()

        await self.client.index_document("rooms", document)

        self.opensearch.index.assert_called_once_with(
            index="rooms",
            id=room_id,
            body={"name": "Skywalkers"},
            refresh=True,
            wait_for_active_shards="all",
        )

    async def test__index_documents__bulk_body(self):
        self.opensearch.bulk.return_value = {"errors": False, "items": []}
        room = RoomDocument(id=room_id, name="Skywalkers").to_document()
        message = MessageDocument(
            id=event_id, room_id=room_id, content="Hello", sender="@a:localhost"
        ).to_document(IndexingAction.CREATE)

        await self.client.index_documents({"messages": [message], "rooms": [room]})

        self.opensearch.bulk.assert_called_once_with(
            body=[
                {"create": {"_index": "messages", "_id": event_id}},
                {"room_id": room_id, "content": "Hello", "sender": "@a:localhost"},
                {"index": {"_index": "rooms", "_id": room_id}},
                {"name": "Skywalkers"},
            ],
            refresh=True,
            wait_for_active_shards="all",
        )

    async def test__index_documents__empty(self):
        await self.client.index_documents({"rooms": []})

        self.opensearch.bulk.assert_not_called()

    async def test__index_documents__item_failure(self):
        self.opensearch.bulk.return_value = {
            "errors": True,
            "items": [
                {"create": {"_index": "rooms", "_id": "!ok:localhost", "status": 201}},
                {
                    "create": {
                        "_index": "rooms",
                        "_id": room_id,
                        "status": 409,
                        "error": {"type": "version_conflict_engine_exception"},
                    }
                },
            ],
        }
        documents = [
            RoomDocument(id="!ok:localhost", name="A").to_document(
                IndexingAction.CREATE
            ),
            RoomDocument(id=room_id, name="B").to_document(IndexingAction.CREATE),
        ]

        with self.assertRaises(BulkIndexingError) as ctx:
            await self.client.index_documents({"rooms": documents})

        self.assertEqual(ctx.exception.status, 409)
        self.assertEqual(len(ctx.exception.failures), 1)
        self.assertEqual(ctx.exception.failures[0]["id"], room_id)
        self.assertEqual(ctx.exception.failures[0]["action"], "create")

    async def test__update_document__partial_doc(self):
        await self.client.update_document(
            "messages", Document(id=event_id, fields={"content": "edited"})
        )

        self.opensearch.update.assert_called_once_with(
            index="messages",
            id=event_id,
            body={"doc": {"content": "edited"}},
            refresh=True,
            wait_for_active_shards="all",
        )

    async def test__update_documents__script_and_conflicts(self):
        self.opensearch.update_by_query.return_value = {
            "updated": 2,
            "version_conflicts": 1,
            "failures": [],
        }

        with self.assertLogs("chat_search.opensearch.client", level="WARNING"):
            await self.client.update_documents(
                "messages",
                "ctx._source.display_name = params.display_name",
                {"term": {"sender": "@a:localhost"}},
                {"display_name": "Anakin"},
            )

        self.opensearch.update_by_query.assert_called_once_with(
            index="messages",
            body={
                "script": {
                    "source": "ctx._source.display_name = params.display_name",
                    "lang": "painless",
                    "params": {"display_name": "Anakin"},
                },
                "query": {"term": {"sender": "@a:localhost"}},
            },
            conflicts="proceed",
            refresh=True,
            wait_for_active_shards="all",
        )

    async def test__update_documents__failures(self):
        self.opensearch.update_by_query.return_value = {
            "failures": [{"status": 503, "cause": {"type": "unavailable"}}]
        }

        with self.assertRaises(ByQueryError) as ctx:
            await self.client.update_documents("messages", "", {"match_all": {}})

        self.assertEqual(ctx.exception.status, 503)

    async def test__document_exists__not_found(self):
        self.opensearch.exists.side_effect = NotFoundError(404, "not found")

        self.assertFalse(await self.client.document_exists("rooms", room_id))

    async def test__delete_document__missing(self):
        self.opensearch.exists.return_value = False

        await self.client.delete_document("messages", event_id)

        self.opensearch.delete.assert_not_called()

    async def test__delete_document__ok(self):
        self.opensearch.exists.return_value = True

        await self.client.delete_document("messages", event_id)

        self.opensearch.delete.assert_called_once_with(
            index="messages",
            id=event_id,
            refresh=True,
            wait_for_active_shards="all",
        )

    async def test__delete_document__deleted_meanwhile(self):
        self.opensearch.exists.return_value = True
        self.opensearch.delete.side_effect = NotFoundError(404, "not_found")

        await self.client.delete_document("messages", event_id)

    async def test__delete_documents__ok(self):
        self.opensearch.delete_by_query.return_value = {"deleted": 3, "failures": []}

        await self.client.delete_documents("messages", {"term": {"room_id": room_id}})

        self.opensearch.delete_by_query.assert_called_once_with(
            index="messages",
            body={"query": {"term": {"room_id": room_id}}},
            conflicts="proceed",
            refresh=True,
            wait_for_active_shards="all",
        )

    async def test__search_on_multiple_indexes__ok(self):
        room_hit = {"_id": room_id, "_source": {"name": "Skywalkers"}}
        self.opensearch.msearch.return_value = {
            "responses": [
                {"status": 200, "hits": {"hits": [room_hit]}},
                {"status": 200, "hits": {"hits": []}},
            ]
        }

        hits = await self.client.search_on_multiple_indexes(
            ".*sky.*", {"rooms": ["name"], "messages": ["display_name", "content"]}, 10
        )

        self.assertEqual(hits, [[room_hit], []])
        body = self.opensearch.msearch.call_args.kwargs["body"]
        self.assertEqual(body[0], {"index": "rooms"})
        self.assertEqual(
            body[1],
            {
                "size": 10,
                "query": {
                    "bool": {
                        "should": [
                            {
                                "regexp": {
                                    "name": {
                                        "value": ".*sky.*",
                                        "case_insensitive": True,
                                    }
                                }
                            }
                        ],
                        "minimum_should_match": 1,
                    }
                },
            },
        )
        self.assertEqual(body[2], {"index": "messages"})
        self.assertEqual(len(body[3]["query"]["bool"]["should"]), 2)

    async def test__search_on_multiple_indexes__index_error(self):
        self.opensearch.msearch.return_value = {
            "responses": [
                {"status": 200, "hits": {"hits": []}},
                {"status": 404, "error": {"type": "index_not_found_exception"}},
            ]
        }

        with self.assertRaises(SearchEngineError) as ctx:
            await self.client.search_on_multiple_indexes(
                ".*a.*", {"rooms": ["name"], "mails": ["subject"]}, 10
            )

        self.assertEqual(ctx.exception.status, 404)

    async def test__search_on_multiple_indexes__missing_responses(self):
        self.opensearch.msearch.return_value = {"responses": []}

        with self.assertRaises(SearchEngineError):
            await self.client.search_on_multiple_indexes(
                ".*a.*", {"rooms": ["name"]}, 1
            )
