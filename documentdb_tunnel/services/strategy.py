"""Choose between a direct and a tunneled connection."""

from documentdb_tunnel.models.options import (
    ClusterCredentials,
    ConnectionMode,
    ConnectionPlan,
    DirectPlan,
    RemoteOptions,
    SshTunnelSpec,
    TunneledPlan,
)


def select_mode(options: RemoteOptions) -> ConnectionMode:
    """Tunnel when the caller runs outside the cluster's VPC."""
    return ConnectionMode.TUNNELED if options.make_tunnel else ConnectionMode.DIRECT


def build_plan(options: RemoteOptions) -> ConnectionPlan:
    """
    Build the connection plan for the selected mode.

    Direct plans target the cluster endpoint and port. Tunneled plans target
    the public endpoint on the tunnel's local port, and forward that port to
    the cluster endpoint through the EC2 jump host.
    """
    credentials = ClusterCredentials(
        username=options.documentdb_cluster_username,
        password=options.documentdb_cluster_password,
        host=options.documentdb_cluster_endpoint,
        port=options.documentdb_cluster_port,
        database=options.documentdb_cluster_db_name,
    )

    if select_mode(options) is ConnectionMode.DIRECT:
        return DirectPlan(
            credentials=credentials,
            tls_ca=options.ssl_ca,
            target_host=options.documentdb_cluster_endpoint,
            target_port=options.documentdb_cluster_port,
        )

    return TunneledPlan(
        credentials=credentials,
        tls_ca=options.ssl_ca,
        tunnel=SshTunnelSpec(
            ssh_username=options.vpc_tunnel_ec2_username,
            ssh_host=options.vpc_tunnel_ec2_host,
            ssh_port=options.vpc_tunnel_ec2_port,
            local_port=options.vpc_tunnel_ec2_port_local,
            private_key=options.vpc_tunnel_ec2_private_key,
            destination_host=options.documentdb_cluster_endpoint,
            destination_port=options.documentdb_cluster_port,
        ),
        target_host=options.documentdb_endpoint,
        target_port=options.vpc_tunnel_ec2_port_local,
    )
