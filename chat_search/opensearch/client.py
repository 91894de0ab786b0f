"""Search engine client.

The synchronization and query logic only depend on the `SearchEngineClient`
protocol, so any Elasticsearch-compatible engine can back them. `OpenSearchClient`
implements it with opensearch-py, whose blocking calls run on Synapse's thread pool.
"""

import logging
from http import HTTPStatus
from typing import Any, Callable, Collection, Optional, Protocol

from opensearchpy import OpenSearch
from opensearchpy.exceptions import TransportError
from synapse.module_api import ModuleApi
from synapse.types import JsonDict

from ..errors import BulkIndexingError, ByQueryError, SearchEngineError
from .config import OpenSearchConfig
from .types import Document

logger = logging.getLogger(__name__)


def is_success(status: Any) -> bool:
    return isinstance(status, int) and HTTPStatus.OK <= status <= 208


class SearchEngineClient(Protocol):
    async def create_index(self, name: str, mapping: JsonDict) -> None: ...

    async def index_exists(self, name: str) -> bool: ...

    async def index_document(self, index: str, document: Document) -> None: ...

    async def index_documents(
        self, documents_by_index: dict[str, list[Document]]
    ) -> None: ...

    async def update_document(self, index: str, document: Document) -> None: ...

    async def update_documents(
        self,
        index: str,
        script: str,
        query: JsonDict,
        params: Optional[JsonDict] = None,
    ) -> None: ...

    async def document_exists(self, index: str, id: str) -> bool: ...

    async def delete_document(self, index: str, id: str) -> None: ...

    async def delete_documents(self, index: str, query: JsonDict) -> None: ...

    async def search_on_multiple_indexes(
        self, regex_value: str, fields_by_index: dict[str, list[str]], size: int
    ) -> list[list[JsonDict]]: ...


class OpenSearchClient:
    """A `SearchEngineClient` talking to an OpenSearch cluster."""

    def __init__(self, api: ModuleApi, config: OpenSearchConfig):
        self.api = api
        self.config = config
        self.client = OpenSearch(**config.client_options())

    @property
    def _write_options(self) -> dict[str, Any]:
        return {
            "refresh": True,
            "wait_for_active_shards": self.config.wait_for_active_shards,
        }

    async def _perform(
        self,
        operation: str,
        func: Callable[..., Any],
        allowed_statuses: Collection[int] = (),
        **kwargs: Any,
    ) -> Any:
        """Run a blocking client call off the reactor and map its failures.

        Returns None when the engine answered with one of `allowed_statuses`.
        """
        try:
            return await self.api.defer_to_thread(func, **kwargs)
        except TransportError as e:
            status = (
                e.status_code
                if isinstance(e.status_code, int)
                else HTTPStatus.INTERNAL_SERVER_ERROR
            )
            if status in allowed_statuses:
                return None
            raise SearchEngineError(operation, status, e.info or e.error) from e

    async def create_index(self, name: str, mapping: JsonDict) -> None:
        await self._perform(
            f"PUT /{name}",
            self.client.indices.create,
            index=name,
            body={"mappings": mapping, "settings": self.config.index_settings()},
            wait_for_active_shards=self.config.wait_for_active_shards,
        )
        logger.info(f"Index {name} created")

    async def index_exists(self, name: str) -> bool:
        exists = await self._perform(
            f"HEAD /{name}",
            self.client.indices.exists,
            allowed_statuses=(HTTPStatus.NOT_FOUND,),
            index=name,
        )
        return bool(exists)

    async def index_document(self, index: str, document: Document) -> None:
        await self._perform(
            f"PUT /{index}/_doc/{document.id}",
            self.client.index,
            index=index,
            id=document.id,
            body=document.source(),
            **self._write_options,
        )

    async def index_documents(
        self, documents_by_index: dict[str, list[Document]]
    ) -> None:
        """Write documents of one or more indices in a single bulk request."""
        body: list[JsonDict] = []
        for index, documents in documents_by_index.items():
            for document in documents:
                body.append(
                    {document.action.value: {"_index": index, "_id": document.id}}
                )
                body.append(document.source())

        if not body:
            return

        operation = "POST /_bulk"
        response = await self._perform(
            operation, self.client.bulk, body=body, **self._write_options
        )
        if response and response.get("errors"):
            raise BulkIndexingError(operation, self._bulk_failures(response))

    @staticmethod
    def _bulk_failures(response: JsonDict) -> list[JsonDict]:
        failures = []
        for item in response.get("items", []):
            for action, result in item.items():
                if not is_success(result.get("status")):
                    failures.append(
                        {
                            "index": result.get("_index"),
                            "id": result.get("_id"),
                            "action": action,
                            "status": result.get("status"),
                            "error": result.get("error"),
                        }
                    )
        return failures

    async def update_document(self, index: str, document: Document) -> None:
        await self._perform(
            f"POST /{index}/_update/{document.id}",
            self.client.update,
            index=index,
            id=document.id,
            body={"doc": document.source()},
            **self._write_options,
        )

    async def update_documents(
        self,
        index: str,
        script: str,
        query: JsonDict,
        params: Optional[JsonDict] = None,
    ) -> None:
        """Apply `script` to every document matching `query`.

        Version conflicts do not stop the update, they are only counted.
        """
        script_body: JsonDict = {"source": script, "lang": "painless"}
        if params:
            script_body["params"] = params

        operation = f"POST /{index}/_update_by_query"
        response = await self._perform(
            operation,
            self.client.update_by_query,
            index=index,
            body={"script": script_body, "query": query},
            conflicts="proceed",
            **self._write_options,
        )
        self._check_by_query_response(operation, response)

    async def document_exists(self, index: str, id: str) -> bool:
        exists = await self._perform(
            f"HEAD /{index}/_doc/{id}",
            self.client.exists,
            allowed_statuses=(HTTPStatus.NOT_FOUND,),
            index=index,
            id=id,
        )
        return bool(exists)

    async def delete_document(self, index: str, id: str) -> None:
        if not await self.document_exists(index, id):
            return

        await self._perform(
            f"DELETE /{index}/_doc/{id}",
            self.client.delete,
            allowed_statuses=(HTTPStatus.NOT_FOUND,),
            index=index,
            id=id,
            **self._write_options,
        )

    async def delete_documents(self, index: str, query: JsonDict) -> None:
        operation = f"POST /{index}/_delete_by_query"
        response = await self._perform(
            operation,
            self.client.delete_by_query,
            index=index,
            body={"query": query},
            conflicts="proceed",
            **self._write_options,
        )
        self._check_by_query_response(operation, response)

    @staticmethod
    def _check_by_query_response(operation: str, response: Optional[JsonDict]) -> None:
        if not response:
            return

        conflicts = response.get("version_conflicts", 0)
        if conflicts:
            logger.warning(
                f"{operation}: skipped {conflicts} documents on version conflict"
            )

        failures = response.get("failures") or []
        if failures:
            raise ByQueryError(operation, failures)

    async def search_on_multiple_indexes(
        self, regex_value: str, fields_by_index: dict[str, list[str]], size: int
    ) -> list[list[JsonDict]]:
        """Run one regexp search per index in a single request.

        Returns the raw hits of each index, in the order of `fields_by_index`.
        """
        body: list[JsonDict] = []
        for index, fields in fields_by_index.items():
            body.append({"index": index})
            body.append(
                {
                    "size": size,
                    "query": {
                        "bool": {
                            "should": [
                                {
                                    "regexp": {
                                        field: {
                                            "value": regex_value,
                                            "case_insensitive": True,
                                        }
                                    }
                                }
                                for field in fields
                            ],
                            "minimum_should_match": 1,
                        }
                    },
                }
            )

        operation = "POST /_msearch"
        response = await self._perform(operation, self.client.msearch, body=body)
        responses = response.get("responses", [])
        if len(responses) != len(fields_by_index):
            raise SearchEngineError(operation, HTTPStatus.BAD_GATEWAY, response)

        hits_by_index = []
        for index, result in zip(fields_by_index, responses):
            if "error" in result or not is_success(result.get("status", HTTPStatus.OK)):
                raise SearchEngineError(
                    f"{operation} ({index})",
                    result.get("status", HTTPStatus.INTERNAL_SERVER_ERROR),
                    result.get("error", result),
                )
            hits_by_index.append(result["hits"]["hits"])
        return hits_by_index
