"""OpenSearch connection configuration."""

from typing import Any, Optional

from pydantic import FilePath, NonNegativeInt, PositiveInt, SecretStr, model_validator

from ..custom_types import HOSTNAME, WAIT_FOR_ACTIVE_SHARDS, BaseConfig


class OpenSearchConfig(BaseConfig):
    """Connection and index settings for the OpenSearch cluster."""

    host: HOSTNAME
    ssl: bool = False
    user: Optional[str] = None
    password: Optional[SecretStr] = None
    ca_cert_path: Optional[FilePath] = None
    max_retries: NonNegativeInt = 3
    number_of_shards: PositiveInt = 1
    number_of_replicas: NonNegativeInt = 1
    wait_for_active_shards: WAIT_FOR_ACTIVE_SHARDS = "1"

    @model_validator(mode="after")
    def check_credentials(self) -> "OpenSearchConfig":
        if self.user is None and self.password is not None:
            raise ValueError("opensearch user is missing")
        if self.user is not None and self.password is None:
            raise ValueError("opensearch password is missing")
        return self

    @property
    def protocol(self) -> str:
        return "https" if self.ssl else "http"

    def client_options(self) -> dict[str, Any]:
        """Keyword arguments for `opensearchpy.OpenSearch`."""
        options: dict[str, Any] = {
            "hosts": [f"{self.protocol}://{self.host}"],
            "max_retries": self.max_retries,
            "retry_on_timeout": True,
        }
        if self.user is not None:
            options["http_auth"] = (self.user, self.password.get_secret_value())
        if self.ssl:
            options["use_ssl"] = True
            options["verify_certs"] = True
            if self.ca_cert_path is not None:
                options["ca_certs"] = str(self.ca_cert_path)
        return options

    def index_settings(self) -> dict[str, Any]:
        return {
            "index": {
                "number_of_shards": self.number_of_shards,
                "number_of_replicas": self.number_of_replicas,
            }
        }
