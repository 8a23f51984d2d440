"""OLM control plane: its pods, logs, the operator's package and the catalogs."""

from __future__ import annotations

import logging

from kepler_must_gather.cluster import kinds
from kepler_must_gather.cluster.client import ClusterQueryClient
from kepler_must_gather.cluster.models import CollectionTarget, ResourceQuery
from kepler_must_gather.cluster.sink import OutputSink
from kepler_must_gather.config import Settings
from kepler_must_gather.stages.common import pod_names

logger = logging.getLogger(__name__)

OLM_DIR = "olm-info"
OLM_APPS = ("olm-operator", "catalog-operator")


def collect_olm_info(
    cluster: ClusterQueryClient,
    sink: OutputSink,
    target: CollectionTarget,
    settings: Settings,
) -> None:
    olm_ns = settings.olm_namespace
    marketplace = settings.marketplace_namespace

    cluster.get(
        ResourceQuery(kind="Pod", namespace=olm_ns, output_path=f"{OLM_DIR}/olm-pods.yaml"),
        sink,
    )
    for app in OLM_APPS:
        for pod in pod_names(cluster, f"app={app}", olm_ns):
            cluster.logs(pod, app, olm_ns, f"{OLM_DIR}/{pod}.log", sink, tail_lines=settings.log_tail_lines)

    cluster.get(
        ResourceQuery(
            kind="PackageManifest",
            api_version=kinds.PACKAGES,
            name=target.operator_name,
            namespace=marketplace,
            output_path=f"{OLM_DIR}/packagemanifest.yaml",
        ),
        sink,
    )
    cluster.get(
        ResourceQuery(
            kind="CatalogSource",
            api_version=kinds.OLM,
            namespace=marketplace,
            output_path=f"{OLM_DIR}/catalogsources.yaml",
        ),
        sink,
    )
