"""SSH local port forwarding to the DocumentDB cluster."""

import asyncio
import io
import logging
import os
from typing import Any, Dict, Optional

import paramiko
from sshtunnel import BaseSSHTunnelForwarderError, SSHTunnelForwarder

from documentdb_tunnel.core.config import settings
from documentdb_tunnel.core.errors import TunnelError
from documentdb_tunnel.core.metrics import metrics
from documentdb_tunnel.core.redaction import redact_mapping
from documentdb_tunnel.models.options import SshTunnelSpec

logger = logging.getLogger(__name__)

# Tried in order when the key type is not known up front
_KEY_CLASSES = (paramiko.RSAKey, paramiko.ECDSAKey, paramiko.Ed25519Key)

_TUNNEL_ERRORS = (
    BaseSSHTunnelForwarderError,
    paramiko.SSHException,
    OSError,
    ValueError,
    asyncio.TimeoutError,
)


def load_private_key(material: str) -> paramiko.PKey:
    """
    Load an SSH private key from a file path or from PEM text.

    Args:
        material: Path to a key file, or the key itself

    Returns:
        Parsed key

    Raises:
        paramiko.SSHException: If no supported key type can parse the material
    """
    from_file = os.path.isfile(os.path.expanduser(material))
    errors = []
    for key_class in _KEY_CLASSES:
        try:
            if from_file:
                return key_class.from_private_key_file(os.path.expanduser(material))
            return key_class.from_private_key(io.StringIO(material))
        except paramiko.SSHException as e:
            errors.append(f"{key_class.__name__}: {e}")
    raise paramiko.SSHException(
        "Unsupported or unreadable private key (" + "; ".join(errors) + ")"
    )


class SshTunnel:
    """A live local forward, owned by whoever holds this handle."""

    def __init__(
        self,
        forwarder: SSHTunnelForwarder,
        spec: SshTunnelSpec,
        local_host: str,
        log: Optional[logging.Logger] = None,
    ):
        self.spec = spec
        self.local_host = local_host
        self._forwarder = forwarder
        self._log = log or logger
        self._closed = False

    @property
    def local_port(self) -> int:
        return self._forwarder.local_bind_port

    @property
    def is_active(self) -> bool:
        return not self._closed and self._forwarder.is_active

    async def close(self) -> None:
        """Stop forwarding. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await asyncio.to_thread(self._forwarder.stop)
        metrics.record_tunnel_close()
        self._log.info("SSH tunnel on %s:%s closed", self.local_host, self.spec.local_port)

    async def __aenter__(self) -> "SshTunnel":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return (
            f"SshTunnel({self.local_host}:{self.spec.local_port} -> "
            f"{self.spec.destination_host}:{self.spec.destination_port} "
            f"via {self.spec.ssh_host}:{self.spec.ssh_port})"
        )


def _create_forwarder(
    spec: SshTunnelSpec, local_host: str, log: logging.Logger
) -> SSHTunnelForwarder:
    return SSHTunnelForwarder(
        (spec.ssh_host, spec.ssh_port),
        ssh_username=spec.ssh_username,
        ssh_pkey=load_private_key(spec.private_key),
        allow_agent=False,
        host_pkey_directories=[],
        remote_bind_address=(spec.destination_host, spec.destination_port),
        local_bind_address=(local_host, spec.local_port),
        logger=log,
    )


async def open_tunnel(
    spec: SshTunnelSpec,
    *,
    context: Optional[Dict[str, Any]] = None,
    local_host: Optional[str] = None,
    timeout: Optional[float] = None,
    log: Optional[logging.Logger] = None,
) -> SshTunnel:
    """
    Open a local forward to the cluster through the SSH jump host.

    The forwarder is started in a worker thread. No timeout applies unless
    one is given.

    Args:
        spec: Tunnel specification
        context: Options recorded in the error details on failure
            (defaults to the tunnel spec, redacted unless verbose diagnostics are on)
        local_host: Address to listen on (defaults to settings.tunnel_local_host)
        timeout: Seconds to wait for the tunnel (None waits for the library)
        log: Logger to report on (defaults to this module's logger)

    Returns:
        Handle of the open tunnel

    Raises:
        TunnelError: If the forward cannot be opened
    """
    log = log or logger
    local_host = local_host or settings.tunnel_local_host
    if context is None:
        context = spec.model_dump()
        if not settings.verbose_error_context:
            context = redact_mapping(context)

    log.debug(
        "Opening SSH tunnel %s:%s -> %s:%s via %s@%s:%s",
        local_host,
        spec.local_port,
        spec.destination_host,
        spec.destination_port,
        spec.ssh_username,
        spec.ssh_host,
        spec.ssh_port,
    )

    forwarder = None
    starting = None
    try:
        forwarder = _create_forwarder(spec, local_host, log)
        starting = asyncio.ensure_future(asyncio.to_thread(forwarder.start))
        if timeout is not None:
            await asyncio.wait_for(asyncio.shield(starting), timeout=timeout)
        else:
            await starting
    except _TUNNEL_ERRORS as e:
        log.error("SSH tunnel to %s:%s failed: %s", spec.ssh_host, spec.ssh_port, e)
        metrics.record_tunnel_open("failed")
        if forwarder is not None:
            await _stop_quietly(forwarder, log, starting)
        raise TunnelError(e, context) from e

    metrics.record_tunnel_open("success")
    log.info("Tunnel listening on port %s.", spec.local_port)
    return SshTunnel(forwarder, spec, local_host, log)


async def _stop_quietly(
    forwarder: SSHTunnelForwarder,
    log: logging.Logger,
    starting: Optional["asyncio.Future[None]"] = None,
) -> None:
    """Stop a forwarder that failed to start; stop errors are logged only."""
    if starting is not None and not starting.done():
        # start() runs on in its thread after a timeout; stop() must come after it
        await asyncio.wait([starting])
        if not starting.cancelled() and starting.exception() is not None:
            log.debug("Late SSH tunnel start failed: %s", starting.exception())
    try:
        await asyncio.to_thread(forwarder.stop)
    except _TUNNEL_ERRORS as e:
        log.warning(f"Error stopping failed SSH tunnel: {e}")
