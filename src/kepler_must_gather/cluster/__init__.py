"""Cluster access layer: queries against the API and the bundle they are written to."""

from kepler_must_gather.cluster.client import ClusterQueryClient, connect
from kepler_must_gather.cluster.models import (
    CollectionResult,
    CollectionTarget,
    Outcome,
    ResourceQuery,
    RunTally,
)
from kepler_must_gather.cluster.sink import OutputSink

__all__ = [
    "ClusterQueryClient",
    "CollectionResult",
    "CollectionTarget",
    "Outcome",
    "OutputSink",
    "ResourceQuery",
    "RunTally",
    "connect",
]
