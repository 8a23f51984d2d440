"""Derive the namespaces, pods and monitoring endpoints later stages need."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import SecretStr

from kepler_must_gather.cluster import kinds
from kepler_must_gather.cluster.client import ClusterQueryClient
from kepler_must_gather.cluster.sink import OutputSink
from kepler_must_gather.config import Settings
from kepler_must_gather.discovery.models import MonitoringContext
from kepler_must_gather.errors import DiscoveryError, QueryError, ResourceNotFound

logger = logging.getLogger(__name__)

CA_BUNDLE_KEY = "ca-bundle.crt"
CA_BUNDLE_PATH = "uwm-info/ca-bundle.crt"


def _field(obj: dict[str, Any], *path: str) -> Any:
    """Walk nested dict keys, returning None at the first gap."""
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def resolve_workload_namespace(cluster: ClusterQueryClient, settings: Settings) -> str | None:
    """Namespace the exporter runs in, or None when there is no Kepler instance.

    The namespace is read from the KeplerInternal that the operator derives
    from the Kepler instance of the same name; if that object or field is
    missing the default exporter namespace is assumed.
    """
    name = settings.instance_name
    try:
        if not cluster.exists("Kepler", kinds.KEPLER, name):
            logger.info("no Kepler instance %r found; skipping exporter discovery", name)
            return None
        internal = cluster.fetch("KeplerInternal", kinds.KEPLER, name=name)
    except ResourceNotFound:
        logger.info("no KeplerInternal %r; assuming namespace %s", name, settings.default_workload_namespace)
        return settings.default_workload_namespace
    except QueryError as e:
        raise DiscoveryError(f"cannot resolve exporter namespace: {e}") from e
    namespace = _field(internal, "spec", "exporter", "deployment", "namespace")
    return namespace or settings.default_workload_namespace


def discover_workload_pods(cluster: ClusterQueryClient, namespace: str, settings: Settings) -> list[str]:
    """Exporter pod names in namespace, sorted; an empty list is a valid answer."""
    try:
        pods = cluster.list_names("Pod", kinds.CORE, selector=settings.exporter_selector, namespace=namespace)
    except QueryError as e:
        raise DiscoveryError(f"cannot list exporter pods in {namespace}: {e}") from e
    logger.info("found %d exporter pod(s) in %s", len(pods), namespace)
    return pods


def discover_monitoring(cluster: ClusterQueryClient, sink: OutputSink, settings: Settings) -> MonitoringContext:
    """Resolve the thanos route, a short-lived token, the CA bundle and prometheus pods.

    Any failure raises DiscoveryError; the caller skips the monitoring stage.
    """
    try:
        route = cluster.fetch(
            "Route", kinds.ROUTE, name=settings.thanos_route, namespace=settings.monitoring_namespace
        )
        host = _field(route, "spec", "host")
        if not host:
            raise DiscoveryError(f"route {settings.thanos_route} has no host")

        token = cluster.issue_token(
            settings.token_service_account,
            settings.monitoring_namespace,
            expiration_seconds=settings.token_expiration_seconds,
        )

        cm = cluster.fetch(
            "ConfigMap", kinds.CORE, name=settings.ca_bundle_configmap, namespace=settings.ca_bundle_namespace
        )
        ca_bundle = _field(cm, "data", CA_BUNDLE_KEY)
        if not ca_bundle:
            raise DiscoveryError(f"config map {settings.ca_bundle_configmap} has no {CA_BUNDLE_KEY}")

        pods = cluster.list_names(
            "Pod", kinds.CORE, selector=settings.prometheus_selector, namespace=settings.uwm_namespace
        )

        # written only once every lookup succeeded
        ca_path = sink.write(CA_BUNDLE_PATH, ca_bundle)
    except (QueryError, OSError) as e:
        raise DiscoveryError(f"monitoring discovery failed: {e}") from e

    logger.info("monitoring: route %s, %d prometheus pod(s)", host, len(pods))
    return MonitoringContext(
        route_host=host,
        ca_bundle_path=ca_path,
        service_account_token=SecretStr(token),
        prometheus_pods=pods,
    )
