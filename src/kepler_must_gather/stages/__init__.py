"""Collection stages, in the order a run executes them."""

from kepler_must_gather.stages.instances import collect_instances
from kepler_must_gather.stages.monitoring import collect_monitoring
from kepler_must_gather.stages.olm import collect_olm_info
from kepler_must_gather.stages.operator import collect_operator_info
from kepler_must_gather.stages.workload import PodDiagnosticSet, collect_workload

__all__ = [
    "PodDiagnosticSet",
    "collect_instances",
    "collect_monitoring",
    "collect_olm_info",
    "collect_operator_info",
    "collect_workload",
]
