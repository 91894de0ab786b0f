"""OpenSearch access for the search engine module."""

from .client import OpenSearchClient, SearchEngineClient
from .config import OpenSearchConfig
from .mappings import MESSAGES_INDEX, ROOMS_INDEX
from .types import Document, IndexingAction, MessageDocument, RoomDocument

__all__ = [
    "Document",
    "IndexingAction",
    "MESSAGES_INDEX",
    "MessageDocument",
    "OpenSearchClient",
    "OpenSearchConfig",
    "ROOMS_INDEX",
    "RoomDocument",
    "SearchEngineClient",
]
