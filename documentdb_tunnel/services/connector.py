"""Default database connector backed by motor."""

import logging
import os
import tempfile
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Iterator

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from documentdb_tunnel.models.result import ClientOptions

logger = logging.getLogger(__name__)

Connector = Callable[[str, ClientOptions], Awaitable[Any]]

_PEM_MARKER = "-----BEGIN"


@contextmanager
def ca_file(material: str) -> Iterator[str]:
    """
    Yield a CA bundle path for ``material``.

    A path to an existing file is used as-is. PEM text is written to a
    private temporary file that is removed on exit.
    """
    if _PEM_MARKER not in material and os.path.isfile(os.path.expanduser(material)):
        yield os.path.expanduser(material)
        return

    fd, path = tempfile.mkstemp(prefix="documentdb-ca-", suffix=".pem")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(material)
        yield path
    finally:
        os.unlink(path)


def client_kwargs(options: ClientOptions, ca_path: str) -> dict:
    """Translate client options into AsyncIOMotorClient keyword arguments."""
    kwargs = {
        "tls": options.tls,
        "tlsCAFile": ca_path,
        "username": options.auth.user,
        "password": options.auth.password,
    }
    if options.direct_connection is not None:
        kwargs["directConnection"] = options.direct_connection
    if options.server_selection_timeout_ms is not None:
        kwargs["serverSelectionTimeoutMS"] = options.server_selection_timeout_ms
    return kwargs


async def connect_client(uri: str, options: ClientOptions) -> AsyncIOMotorClient:
    """
    Connect to the cluster and confirm the handshake with a ping.

    The CA bundle is read while the client is constructed, so a temporary
    bundle does not outlive this call.

    Raises:
        PyMongoError: On URI, handshake, TLS or authentication failure
    """
    with ca_file(options.tls_ca) as ca_path:
        client = AsyncIOMotorClient(uri, **client_kwargs(options, ca_path))

    try:
        await client.admin.command("ping")
    except PyMongoError:
        client.close()
        raise
    return client
