"""Index names, mappings and searchable fields."""

ROOMS_INDEX = "rooms"
MESSAGES_INDEX = "messages"

ROOMS_MAPPING = {
    "properties": {
        "name": {"type": "text"},
    }
}

MESSAGES_MAPPING = {
    "properties": {
        "room_id": {"type": "keyword"},
        "content": {"type": "text"},
        "sender": {"type": "keyword"},
        "display_name": {"type": "text"},
    }
}

INDEX_MAPPINGS = {
    ROOMS_INDEX: ROOMS_MAPPING,
    MESSAGES_INDEX: MESSAGES_MAPPING,
}

ROOMS_SEARCH_FIELDS = ["name"]

MESSAGES_SEARCH_FIELDS = ["display_name", "content"]

# Must match the schema of the mail index, which is populated by the mail server.
MAILS_SEARCH_FIELDS = [
    "attachments.fileName",
    "attachments.textContent",
    "bcc.address",
    "bcc.name",
    "cc.address",
    "cc.name",
    "from.address",
    "from.name",
    "to.address",
    "to.name",
    "subject",
    "textBody",
    "userFlags",
]

MAIL_PARTICIPANT_FIELDS = ("from", "to", "cc", "bcc")
