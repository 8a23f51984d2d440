"""Exporter workload: namespace objects and per-pod node diagnostics."""

from __future__ import annotations

import logging

from pydantic import BaseModel

from kepler_must_gather.cluster import kinds
from kepler_must_gather.cluster.client import ClusterQueryClient
from kepler_must_gather.cluster.models import CollectionResult, ResourceQuery
from kepler_must_gather.cluster.sink import OutputSink
from kepler_must_gather.config import Settings
from kepler_must_gather.discovery.models import DiscoveryResult

logger = logging.getLogger(__name__)

PODS_DIR = "kepler-info"

# filename -> command run inside the exporter container
POD_COMMANDS: dict[str, list[str]] = {
    "node-cpuid-info": ["cpuid", "-1"],
    "env-variables": ["env"],
    "kernel-info": ["uname", "-a"],
    "ebpf-info": ["cat", "/sys/kernel/debug/kprobes/list"],
}


class PodDiagnosticSet(BaseModel):
    """The six diagnostics gathered for one exporter pod."""

    pod_name: str
    container_name: str
    output_dir: str

    def path(self, filename: str) -> str:
        return f"{self.output_dir}/{filename}"

    def collect(
        self,
        cluster: ClusterQueryClient,
        sink: OutputSink,
        namespace: str,
        tail_lines: int | None = None,
    ) -> list[CollectionResult]:
        """Run every diagnostic; each one is attempted regardless of the others."""
        sink.makedirs(self.output_dir)
        results = [
            cluster.get(
                ResourceQuery(
                    kind="Pod",
                    name=self.pod_name,
                    namespace=namespace,
                    output_path=self.path("kepler-pod.yaml"),
                ),
                sink,
            )
        ]
        for filename, command in POD_COMMANDS.items():
            results.append(
                cluster.exec(self.pod_name, self.container_name, namespace, command, self.path(filename), sink)
            )
        results.append(
            cluster.logs(
                self.pod_name,
                self.container_name,
                namespace,
                self.path("kepler.log"),
                sink,
                tail_lines=tail_lines,
            )
        )
        return results


def collect_workload(
    cluster: ClusterQueryClient,
    sink: OutputSink,
    settings: Settings,
    discovery: DiscoveryResult,
) -> None:
    ns = discovery.workload_namespace
    if ns is None:
        logger.info("exporter namespace unknown; skipping workload diagnostics")
        return

    selector = settings.exporter_selector
    cluster.get(
        ResourceQuery(kind="Event", namespace=ns, output_format="wide", output_path=f"{ns}_events"),
        sink,
    )
    for kind, api_version, filename in (
        ("DaemonSet", kinds.APPS, "kepler-ds.yaml"),
        ("ConfigMap", kinds.CORE, "kepler-cm.yaml"),
        ("ServiceAccount", kinds.CORE, "kepler-sa.yaml"),
    ):
        cluster.get(
            ResourceQuery(kind=kind, api_version=api_version, selector=selector, namespace=ns, output_path=filename),
            sink,
        )
    cluster.get(
        ResourceQuery(
            kind="SecurityContextConstraints",
            api_version=kinds.SCC,
            selector=selector,
            output_path="kepler-scc.yaml",
        ),
        sink,
    )

    for pod in discovery.workload_pods:
        diagnostics = PodDiagnosticSet(
            pod_name=pod,
            container_name=settings.exporter_container,
            output_dir=f"{PODS_DIR}/{pod}",
        )
        logger.info("collecting diagnostics for exporter pod %s", pod)
        try:
            diagnostics.collect(cluster, sink, ns, tail_lines=settings.log_tail_lines)
        except Exception as e:
            # one pod going wrong must not stop the rest
            logger.exception("diagnostics for pod %s aborted", pod)
            cluster.tally.record_failure(f"pod {ns}/{pod}", str(e))
