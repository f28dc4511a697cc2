"""Remote connection options and the connection plans derived from them."""

import logging
from enum import Enum
from typing import Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from documentdb_tunnel.core.errors import OptionsValidationError

logger = logging.getLogger(__name__)


class ConnectionMode(str, Enum):
    """How the cluster is reached."""

    DIRECT = "direct"
    TUNNELED = "tunneled"


class RemoteOptions(BaseModel):
    """Options for connecting to a DocumentDB cluster, as supplied by callers.

    Keys are the camelCase names callers send; attributes are snake_case.
    Every field is required whether or not a tunnel is made.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        str_min_length=1,
    )

    env: Literal["remote"]
    make_tunnel: bool = Field(..., alias="makeTunnel")
    ssl_ca: str = Field(..., alias="sslCA", description="CA bundle as PEM text or file path")
    vpc_tunnel_ec2_username: str = Field(..., alias="vpcTunnelEC2Username")
    vpc_tunnel_ec2_host: str = Field(..., alias="vpcTunnelEC2Host")
    vpc_tunnel_ec2_port: int = Field(..., alias="vpcTunnelEC2Port", ge=1, le=65535)
    vpc_tunnel_ec2_port_local: int = Field(..., alias="vpcTunnelEC2PortLocal", ge=1, le=65535)
    vpc_tunnel_ec2_private_key: str = Field(
        ..., alias="vpcTunnelEC2PrivateKey", description="Private key as PEM text or file path"
    )
    documentdb_cluster_endpoint: str = Field(..., alias="documentdbClusterEndpoint")
    documentdb_cluster_port: int = Field(..., alias="documentdbClusterPort", ge=1, le=65535)
    documentdb_cluster_db_name: str = Field(..., alias="documentdbClusterDbName")
    documentdb_cluster_username: str = Field(..., alias="documentdbClusterUsername")
    documentdb_cluster_password: str = Field(..., alias="documentdbClusterPassword")
    documentdb_endpoint: str = Field(..., alias="documentdbEndpoint")
    documentdb_port: int = Field(..., alias="documentdbPort", ge=1, le=65535)

    def to_wire(self) -> dict:
        """Dump back to the camelCase shape callers supplied."""
        return self.model_dump(by_alias=True, mode="json")


class SshTunnelSpec(BaseModel):
    """Local port forwarding through an SSH jump host."""

    model_config = ConfigDict(frozen=True)

    ssh_username: str
    ssh_host: str
    ssh_port: int
    local_port: int
    private_key: str
    destination_host: str
    destination_port: int


class ClusterCredentials(BaseModel):
    """Credentials and address of the DocumentDB cluster."""

    model_config = ConfigDict(frozen=True)

    username: str
    password: str
    host: str
    port: int
    database: str


class DirectPlan(BaseModel):
    """Connect straight to the cluster endpoint (caller is inside the VPC)."""

    model_config = ConfigDict(frozen=True)

    mode: Literal[ConnectionMode.DIRECT] = ConnectionMode.DIRECT
    credentials: ClusterCredentials
    tls_ca: str
    target_host: str
    target_port: int


class TunneledPlan(BaseModel):
    """Connect through a local SSH forward (caller is outside the VPC)."""

    model_config = ConfigDict(frozen=True)

    mode: Literal[ConnectionMode.TUNNELED] = ConnectionMode.TUNNELED
    credentials: ClusterCredentials
    tls_ca: str
    tunnel: SshTunnelSpec
    target_host: str
    target_port: int


ConnectionPlan = Union[DirectPlan, TunneledPlan]


def _first_violation(exc: ValidationError) -> OptionsValidationError:
    errors = exc.errors(include_url=False, include_context=False, include_input=False)
    first = errors[0]
    field = ".".join(str(part) for part in first["loc"])
    return OptionsValidationError(field, first["msg"], errors=errors)


def validate_options(
    raw: Union[RemoteOptions, Mapping[str, Any]],
) -> Union[RemoteOptions, OptionsValidationError]:
    """
    Validate caller-supplied options.

    Pure: bad input is returned as an OptionsValidationError, never raised.

    Args:
        raw: Mapping with the camelCase option keys, or already-parsed options

    Returns:
        RemoteOptions on success, OptionsValidationError on the first violation
    """
    if isinstance(raw, RemoteOptions):
        return raw
    if not isinstance(raw, Mapping):
        return OptionsValidationError("", f"options must be a mapping, got {type(raw).__name__}")
    try:
        options = RemoteOptions.model_validate(raw)
    except ValidationError as e:
        return _first_violation(e)

    if options.make_tunnel and options.documentdb_port != options.vpc_tunnel_ec2_port_local:
        logger.warning(
            "documentdbPort %s differs from vpcTunnelEC2PortLocal %s; "
            "the tunnel local port is used",
            options.documentdb_port,
            options.vpc_tunnel_ec2_port_local,
        )
    return options


def parse_options(raw: Union[RemoteOptions, Mapping[str, Any]]) -> RemoteOptions:
    """Validate options and raise OptionsValidationError on failure."""
    result = validate_options(raw)
    if isinstance(result, OptionsValidationError):
        raise result
    return result
