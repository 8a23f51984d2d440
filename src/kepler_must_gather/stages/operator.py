"""Operator install state: subscription through running pod, plus a wide summary."""

from __future__ import annotations

import logging

from kepler_must_gather.cluster import kinds
from kepler_must_gather.cluster.client import ClusterQueryClient
from kepler_must_gather.cluster.models import CollectionTarget, ResourceQuery
from kepler_must_gather.cluster.sink import OutputSink
from kepler_must_gather.config import Settings
from kepler_must_gather.errors import QueryError

logger = logging.getLogger(__name__)

SUMMARY_FILE = "summary.txt"


def _catalog_source_query(
    cluster: ClusterQueryClient,
    target: CollectionTarget,
    settings: Settings,
    info_dir: str,
) -> ResourceQuery:
    """The subscription names its catalog source; fall back to the OLM label."""
    try:
        subs = cluster.fetch(
            "Subscription", kinds.OLM, selector=target.olm_selector, namespace=target.operator_namespace
        )
    except QueryError as e:
        logger.debug("cannot read subscription for catalog source: %s", e)
        subs = {}
    for sub in subs.get("items") or []:
        spec = sub.get("spec") or {}
        if spec.get("source"):
            return ResourceQuery(
                kind="CatalogSource",
                api_version=kinds.OLM,
                name=spec["source"],
                namespace=spec.get("sourceNamespace") or settings.marketplace_namespace,
                output_path=f"{info_dir}/catalogsource.yaml",
            )
    return ResourceQuery(
        kind="CatalogSource",
        api_version=kinds.OLM,
        selector=target.olm_selector,
        namespace=settings.marketplace_namespace,
        output_path=f"{info_dir}/catalogsource.yaml",
    )


def _operator_logs(
    cluster: ClusterQueryClient,
    sink: OutputSink,
    target: CollectionTarget,
    settings: Settings,
    info_dir: str,
) -> None:
    ns = target.operator_namespace
    try:
        pods = cluster.fetch("Pod", kinds.CORE, selector=target.olm_selector, namespace=ns)
    except QueryError as e:
        logger.warning("cannot list operator pods in %s: %s", ns, e)
        cluster.tally.record_failure(f"list operator pods -n {ns}", str(e))
        return
    for pod in pods.get("items") or []:
        name = pod["metadata"]["name"]
        for container in (pod.get("spec") or {}).get("containers") or []:
            cluster.logs(
                name,
                container["name"],
                ns,
                f"{info_dir}/{name}-{container['name']}.log",
                sink,
                tail_lines=settings.log_tail_lines,
            )


def collect_operator_info(
    cluster: ClusterQueryClient,
    sink: OutputSink,
    target: CollectionTarget,
    settings: Settings,
) -> None:
    """Everything OLM installed for the operator, filtered by its OLM label."""
    info_dir = f"{target.operator_name}-info"
    ns = target.operator_namespace
    selector = target.olm_selector

    def labeled(kind: str, api_version: str, filename: str) -> ResourceQuery:
        return ResourceQuery(
            kind=kind,
            api_version=api_version,
            selector=selector,
            namespace=ns,
            output_path=f"{info_dir}/{filename}",
        )

    catalog = _catalog_source_query(cluster, target, settings, info_dir)
    subscription = labeled("Subscription", kinds.OLM, "subscription.yaml")
    install_plan = labeled("InstallPlan", kinds.OLM, "installplan.yaml")
    csv = labeled("ClusterServiceVersion", kinds.OLM, "csv.yaml")
    deployment = labeled("Deployment", kinds.APPS, "deployment.yaml")
    pod = labeled("Pod", kinds.CORE, "pod.yaml")

    for query in (subscription, catalog, install_plan, csv, deployment, pod):
        cluster.get(query, sink)
    _operator_logs(cluster, sink, target, settings, info_dir)

    summary = f"{info_dir}/{SUMMARY_FILE}"
    sink.write(summary, f"# {target.operator_name} in {ns}\n\n")
    for query in (catalog, subscription, install_plan, csv, deployment, pod):
        cluster.get(query.model_copy(update={"output_format": "wide", "output_path": summary}), sink, append=True)
