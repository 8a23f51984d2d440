"""User-workload monitoring snapshot: alerting rules and per-prometheus status."""

from __future__ import annotations

import logging

from kepler_must_gather.cluster.client import ClusterQueryClient
from kepler_must_gather.cluster.sink import OutputSink
from kepler_must_gather.config import Settings
from kepler_must_gather.discovery.models import MonitoringContext

logger = logging.getLogger(__name__)

UWM_DIR = "uwm-info"
PROMETHEUS_URL = "http://localhost:9090"

# output file (relative to the pod directory) -> prometheus API path
PROMETHEUS_ENDPOINTS: dict[str, str] = {
    "status/runtimeinfo.json": "api/v1/status/runtimeinfo",
    "status/config.json": "api/v1/status/config",
    "active-targets.json": "api/v1/targets?state=active",
    "status/tsdb.json": "api/v1/status/tsdb",
}


def collect_monitoring(
    cluster: ClusterQueryClient,
    sink: OutputSink,
    settings: Settings,
    context: MonitoringContext,
) -> None:
    cluster.fetch_url(
        context.rules_url,
        context.service_account_token.get_secret_value(),
        context.ca_bundle_path,
        f"{UWM_DIR}/rules.json",
        sink,
    )

    for pod in context.prometheus_pods:
        logger.info("collecting prometheus status from %s", pod)
        for filename, endpoint in PROMETHEUS_ENDPOINTS.items():
            cluster.exec(
                pod,
                settings.prometheus_container,
                settings.uwm_namespace,
                ["curl", "-sS", "--fail", f"{PROMETHEUS_URL}/{endpoint}"],
                f"{UWM_DIR}/{pod}/{filename}",
                sink,
            )
