"""Helpers shared by the collection stages."""

from __future__ import annotations

import logging

from kepler_must_gather.cluster import kinds
from kepler_must_gather.cluster.client import ClusterQueryClient
from kepler_must_gather.errors import QueryError

logger = logging.getLogger(__name__)


def pod_names(cluster: ClusterQueryClient, selector: str | None, namespace: str) -> list[str]:
    """Pod names for a selector; a failed listing is recorded and treated as no pods."""
    try:
        return cluster.list_names("Pod", kinds.CORE, selector=selector, namespace=namespace)
    except QueryError as e:
        logger.warning("cannot list pods -l %s -n %s: %s", selector, namespace, e)
        cluster.tally.record_failure(f"list pods -l {selector} -n {namespace}", str(e))
        return []
