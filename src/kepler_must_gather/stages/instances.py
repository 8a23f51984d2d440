"""Kepler custom resource instances."""

from __future__ import annotations

import logging

from kepler_must_gather.cluster import kinds
from kepler_must_gather.cluster.client import ClusterQueryClient
from kepler_must_gather.cluster.models import ResourceQuery
from kepler_must_gather.cluster.sink import OutputSink
from kepler_must_gather.errors import QueryError

logger = logging.getLogger(__name__)

INTERNALS_FILE = "kepler-internals.yaml"


def collect_instances(cluster: ClusterQueryClient, sink: OutputSink) -> bool:
    """Write keplers.yaml and, only if that found instances, kepler-internals.yaml.

    Each KeplerInternal is derived from the Kepler instance of the same name,
    so only those names are looked up. Returns whether Kepler instances exist.
    """
    keplers = cluster.get(
        ResourceQuery(kind="Kepler", api_version=kinds.KEPLER, output_path="keplers.yaml"),
        sink,
    )
    if not keplers.written:
        logger.info("no Kepler instances collected (%s); skipping internals", keplers.outcome.value)
        return False

    try:
        names = cluster.list_names("Kepler", kinds.KEPLER)
    except QueryError as e:
        logger.warning("cannot list Kepler instance names: %s", e)
        cluster.tally.record_failure("list Kepler names", str(e))
        return True

    written_any = False
    for name in names:
        result = cluster.get(
            ResourceQuery(kind="KeplerInternal", api_version=kinds.KEPLER, name=name, output_path=INTERNALS_FILE),
            sink,
            append=written_any,
        )
        written_any = written_any or result.written
    return True
