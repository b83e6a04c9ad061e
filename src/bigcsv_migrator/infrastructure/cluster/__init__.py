"""Cluster request forwarding."""

from bigcsv_migrator.infrastructure.cluster.forwarder import (
    FORWARDED_HEADER,
    ClusterForwarder,
    ForwardedResponse,
)

__all__ = ["FORWARDED_HEADER", "ClusterForwarder", "ForwardedResponse"]
