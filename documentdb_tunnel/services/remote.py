"""Connect to a remote DocumentDB cluster, through an SSH tunnel when needed."""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Optional, Union

from documentdb_tunnel.core.config import Settings, settings as default_settings
from documentdb_tunnel.core.errors import (
    ConnectError,
    OptionsValidationError,
    TunnelError,
    record_failure,
)
from documentdb_tunnel.core.metrics import metrics
from documentdb_tunnel.core.redaction import redact_mapping, redact_uri
from documentdb_tunnel.models.options import (
    ConnectionMode,
    ConnectionPlan,
    RemoteOptions,
    SshTunnelSpec,
    TunneledPlan,
    validate_options,
)
from documentdb_tunnel.models.result import ClientAuth, ClientOptions, ConnectionSuccess
from documentdb_tunnel.services.connector import Connector, connect_client
from documentdb_tunnel.services.strategy import build_plan
from documentdb_tunnel.services.tunnel import SshTunnel, open_tunnel
from documentdb_tunnel.services.uri import build_uri

logger = logging.getLogger(__name__)

TunnelOpener = Callable[..., Awaitable[SshTunnel]]

SUCCESS_MESSAGES = {
    ConnectionMode.TUNNELED: "Connected to remote DocumentDB through our EC2 ssh tunnel with MongoDB.",
    ConnectionMode.DIRECT: "Connected to remote DocumentDB with MongoDB.",
}

FAILURE_MESSAGES = {
    ConnectionMode.TUNNELED: "Error. Could not connect to remote DocumentDB through our EC2 ssh tunnel with MongoDB.",
    ConnectionMode.DIRECT: "Error. Could not connect to remote DocumentDB with MongoDB.",
}


def client_options_for(plan: ConnectionPlan, config: Settings) -> ClientOptions:
    """Client options for a plan; credentials ride in both URI and options."""
    return ClientOptions(
        tls_ca=plan.tls_ca,
        auth=ClientAuth(user=plan.credentials.username, password=plan.credentials.password),
        direct_connection=True if isinstance(plan, TunneledPlan) else None,
        server_selection_timeout_ms=config.server_selection_timeout_ms,
    )


def _diagnostics(data: Mapping[str, Any], config: Settings) -> dict:
    return dict(data) if config.verbose_error_context else redact_mapping(data)


def connection_failure(
    plan: ConnectionPlan,
    cause: BaseException,
    uri: str,
    client_options: ClientOptions,
    config: Settings,
) -> ConnectError:
    """Wrap a connector failure with the attempted URI and client options."""
    uri_shown = uri if config.verbose_error_context else redact_uri(uri)
    return ConnectError(
        FAILURE_MESSAGES[plan.mode],
        cause,
        uri=uri_shown,
        options=_diagnostics(client_options.to_context(), config),
    )


async def connect(
    raw: Union[RemoteOptions, Mapping[str, Any]],
    *,
    config: Optional[Settings] = None,
    log: Optional[logging.Logger] = None,
    connector: Optional[Connector] = None,
    tunnel_opener: Optional[TunnelOpener] = None,
) -> ConnectionSuccess:
    """
    Connect to a remote DocumentDB cluster.

    Validates the options, opens an SSH tunnel when ``makeTunnel`` is set,
    then makes a single connection attempt. Every failure is terminal.

    Args:
        raw: Remote options (camelCase mapping or RemoteOptions)
        config: Settings (defaults to the module settings)
        log: Logger for this attempt (defaults to this module's logger)
        connector: ``(uri, ClientOptions) -> client`` coroutine (defaults to motor)
        tunnel_opener: Coroutine opening an SshTunnel (defaults to open_tunnel)

    Returns:
        ConnectionSuccess holding the client and, when tunneled, the tunnel.
        The caller owns both and releases them with ``close()``.

    Raises:
        OptionsValidationError: Options fail the schema (nothing is opened)
        TunnelError: SSH tunnel could not be opened
        ConnectError: Database handshake or authentication failed
    """
    config = config or default_settings
    log = log or logger
    connector = connector or connect_client
    tunnel_opener = tunnel_opener or open_tunnel

    log.debug("Connecting to remote MongoDB.")

    options = validate_options(raw)
    if isinstance(options, OptionsValidationError):
        log.warning("Remote options rejected: %s", options.message)
        record_failure(options)
        raise options

    plan = build_plan(options)

    tunnel: Optional[SshTunnel] = None
    if isinstance(plan, TunneledPlan):
        log.debug("Client is outside VPC, connecting to cluster through SSH tunnel.")
        tunnel = await _establish_tunnel(plan.tunnel, options, config, log, tunnel_opener)
    else:
        log.debug("Client is inside VPC, connecting directly to cluster.")

    uri = build_uri(
        plan.mode, plan.credentials, plan.target_host, plan.target_port, scheme=config.uri_scheme
    )
    client_options = client_options_for(plan, config)

    log.debug("Connecting to %s.", redact_uri(uri))

    start_time = time.monotonic()
    try:
        client = await connector(uri, client_options)
    except Exception as e:
        metrics.record_db_connection_attempt(plan.mode.value, "failed", time.monotonic() - start_time)
        log.error("Database connection failed", exc_info=True)
        error = connection_failure(plan, e, uri, client_options, config)
        record_failure(error)
        if tunnel is not None:
            await tunnel.close()
        raise error from e
    except BaseException:
        # Cancelled mid-handshake: the tunnel still belongs to this attempt
        if tunnel is not None:
            await tunnel.close()
        raise

    metrics.record_db_connection_attempt(plan.mode.value, "success", time.monotonic() - start_time)
    log.info(
        "Connected to database %s on %s:%s",
        plan.credentials.database,
        plan.target_host,
        plan.target_port,
    )
    return ConnectionSuccess(
        message=SUCCESS_MESSAGES[plan.mode],
        client=client,
        mode=plan.mode,
        database_name=plan.credentials.database,
        tunnel=tunnel,
    )


async def _establish_tunnel(
    spec: SshTunnelSpec,
    options: RemoteOptions,
    config: Settings,
    log: logging.Logger,
    tunnel_opener: TunnelOpener,
) -> SshTunnel:
    try:
        return await tunnel_opener(
            spec,
            context=_diagnostics(options.to_wire(), config),
            local_host=config.tunnel_local_host,
            timeout=config.tunnel_timeout,
            log=log,
        )
    except TunnelError as e:
        record_failure(e)
        raise


@asynccontextmanager
async def remote_connection(
    raw: Union[RemoteOptions, Mapping[str, Any]],
    **kwargs: Any,
) -> AsyncIterator[ConnectionSuccess]:
    """
    Scoped remote connection.

    Yields the ConnectionSuccess of ``connect`` and closes the client and
    any tunnel on exit, whether or not the body raised.
    """
    connection = await connect(raw, **kwargs)
    try:
        yield connection
    finally:
        await connection.close()
