"""Documents written to the search engine."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional


class IndexingAction(str, Enum):
    """Bulk action used to write a document."""

    # fails if a document with the same id exists
    CREATE = "create"
    # upsert
    INDEX = "index"


@dataclass
class Document:
    """A document to write, identified by `id`, with arbitrary source fields."""

    id: str
    fields: dict[str, Any] = field(default_factory=dict)
    action: IndexingAction = IndexingAction.INDEX

    def source(self) -> dict[str, Any]:
        return dict(self.fields)


@dataclass
class RoomDocument:
    """Source of a document in the rooms index."""

    id: str
    name: str

    def to_document(self, action: IndexingAction = IndexingAction.INDEX) -> Document:
        return Document(id=self.id, fields={"name": self.name}, action=action)


@dataclass
class MessageDocument:
    """Source of a document in the messages index.

    `display_name` is the sender's display name at the time the document was written.
    """

    id: str
    room_id: str
    content: str
    sender: str
    display_name: Optional[str] = None

    def to_document(self, action: IndexingAction = IndexingAction.INDEX) -> Document:
        fields = asdict(self)
        del fields["id"]
        if fields["display_name"] is None:
            del fields["display_name"]
        return Document(id=self.id, fields=fields, action=action)
