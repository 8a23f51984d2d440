"""Discovery layer: identifiers later stages depend on."""

from kepler_must_gather.discovery.models import DiscoveryResult, MonitoringContext
from kepler_must_gather.discovery.resolver import (
    discover_monitoring,
    discover_workload_pods,
    resolve_workload_namespace,
)

__all__ = [
    "DiscoveryResult",
    "MonitoringContext",
    "discover_monitoring",
    "discover_workload_pods",
    "resolve_workload_namespace",
]
