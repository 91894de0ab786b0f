"""Pydantic building blocks for the module configuration."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class BaseConfig(BaseModel):
    """Base of every configuration section; secrets never show up in errors."""

    model_config = ConfigDict(hide_input_in_errors=True)


# host name or IPv4 address, with an optional port
HOSTNAME = Annotated[
    str,
    Field(
        pattern=(
            r"^((([a-zA-Z0-9][-a-zA-Z0-9]*)?[a-zA-Z0-9][.])*"
            r"([a-zA-Z][-a-zA-Z0-9]*[a-zA-Z0-9]|[a-zA-Z])"
            r"|\d{1,3}(\.\d{1,3}){3})(:\d{1,5})?$"
        )
    ),
]

WAIT_FOR_ACTIVE_SHARDS = Annotated[str, Field(pattern=r"^(all|\d+)$")]

INDEX_NAME = Annotated[str, Field(pattern=r"^[a-z0-9][a-z0-9_.-]*$", max_length=255)]
