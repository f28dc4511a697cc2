"""Client options handed to the connector and the success envelope."""

import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from documentdb_tunnel.models.options import ConnectionMode

logger = logging.getLogger(__name__)


class ClientAuth(BaseModel):
    """Credentials passed alongside the URI."""

    model_config = ConfigDict(frozen=True)

    user: str
    password: str


class ClientOptions(BaseModel):
    """Options for the database client.

    Credentials are duplicated from the URI; drivers negotiating TLS auth
    read them from here.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    use_new_url_parser: bool = Field(True, alias="useNewUrlParser")
    tls: bool = Field(True, alias="ssl")
    tls_ca: str = Field(..., alias="sslCA")
    auth: ClientAuth
    direct_connection: Optional[bool] = Field(None, alias="directConnection")
    server_selection_timeout_ms: Optional[int] = Field(None, alias="serverSelectionTimeoutMS")

    def to_context(self) -> dict:
        """Dump for an error's diagnostic context."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ConnectionSuccess:
    """A connected client, plus the tunnel that carries it when one was made."""

    def __init__(
        self,
        message: str,
        client: Any,
        mode: ConnectionMode,
        database_name: str,
        tunnel: Optional[Any] = None,
    ):
        self.message = message
        self.client = client
        self.mode = mode
        self.database_name = database_name
        self.tunnel = tunnel

    @property
    def database(self) -> Any:
        """Database named by the cluster options."""
        return self.client[self.database_name]

    def as_dict(self) -> dict:
        return {"message": self.message, "client": self.client}

    async def close(self) -> None:
        """Close the client, then the tunnel under it."""
        try:
            if self.client is not None:
                self.client.close()
                self.client = None
        finally:
            if self.tunnel is not None:
                await self.tunnel.close()
                self.tunnel = None
        logger.info("Remote DocumentDB connection closed")

    def __repr__(self) -> str:
        return f"ConnectionSuccess(mode={self.mode.value!r}, message={self.message!r})"
