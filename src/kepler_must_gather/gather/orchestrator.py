"""Orchestrator: OLM → operator → instances → workload → monitoring, each isolated."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel

from kepler_must_gather.cluster import ClusterQueryClient, CollectionTarget, OutputSink, RunTally, connect
from kepler_must_gather.config import Settings, get_settings
from kepler_must_gather.discovery import (
    DiscoveryResult,
    discover_monitoring,
    discover_workload_pods,
    resolve_workload_namespace,
)
from kepler_must_gather.errors import DiscoveryError, GatherError
from kepler_must_gather.gather.environment import run_environment
from kepler_must_gather.gather.messages import (
    REPORT_HEADER,
    REPORT_SECTION_BUNDLE,
    REPORT_SECTION_FAILURES,
    REPORT_SECTION_STAGES,
    REPORT_SECTION_TALLY,
)
from kepler_must_gather.stages import (
    collect_instances,
    collect_monitoring,
    collect_olm_info,
    collect_operator_info,
    collect_workload,
)

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    """Run states, in execution order."""

    INIT = "init"
    OLM = "olm"
    OPERATOR_INFO = "operator-info"
    INSTANCES = "instances"
    WORKLOAD = "workload-diagnostics"
    MONITORING_DISCOVERY = "monitoring-discovery"
    MONITORING = "monitoring"
    SKIP_MONITORING = "skip-monitoring"
    DONE = "done"


class StageStatus(str, Enum):
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class GatherResult:
    """Result of a full gather run."""

    target: CollectionTarget
    tally: RunTally
    log_file: Path | None = None
    discovery: DiscoveryResult = field(default_factory=DiscoveryResult)
    stages: list[tuple[Stage, StageStatus]] = field(default_factory=list)
    state: Stage = Stage.INIT

    def status_of(self, stage: Stage) -> StageStatus | None:
        for name, status in self.stages:
            if name == stage:
                return status
        return None

    def report(self) -> str:
        parts = [
            REPORT_HEADER,
            REPORT_SECTION_BUNDLE.format(dest_dir=self.target.dest_dir, log_file=self.log_file),
            REPORT_SECTION_TALLY.format(
                written=self.tally.written, skipped=self.tally.skipped, failed=self.tally.failed
            ),
            REPORT_SECTION_STAGES.format(
                stages="\n".join(f"- {stage.value}: {status.value}" for stage, status in self.stages)
            ),
        ]
        if self.tally.failures:
            parts.append(REPORT_SECTION_FAILURES.format(failures="\n".join(f"- {f}" for f in self.tally.failures)))
        return "\n".join(parts)


def _run_stage(result: GatherResult, stage: Stage, fn: Callable[..., Any], *args: Any) -> Any:
    """Run one stage; anything escaping it is logged and the run moves on."""
    result.state = stage
    logger.info("gathering %s", stage.value)
    try:
        value = fn(*args)
    except Exception as e:
        logger.exception("stage %s failed", stage.value)
        result.tally.record_failure(f"stage {stage.value}", str(e))
        result.stages.append((stage, StageStatus.FAILED))
        return None
    result.stages.append((stage, StageStatus.DONE))
    return value


def _skip_stage(result: GatherResult, stage: Stage, reason: str) -> None:
    logger.info("skipping %s: %s", stage.value, reason)
    result.tally.skipped_stages.append(f"{stage.value}: {reason}")
    result.stages.append((stage, StageStatus.SKIPPED))


def _skip_all(result: GatherResult, reason: str) -> None:
    for stage in (Stage.OLM, Stage.OPERATOR_INFO, Stage.INSTANCES, Stage.WORKLOAD, Stage.SKIP_MONITORING):
        _skip_stage(result, stage, reason)
    result.state = Stage.DONE


def _discover_workload(
    cluster: ClusterQueryClient, settings: Settings, result: GatherResult
) -> DiscoveryResult:
    try:
        namespace = resolve_workload_namespace(cluster, settings)
    except DiscoveryError as e:
        logger.warning("%s", e)
        result.tally.record_failure("resolve exporter namespace", str(e))
        return DiscoveryResult()
    if namespace is None:
        return DiscoveryResult()
    try:
        pods = discover_workload_pods(cluster, namespace, settings)
    except DiscoveryError as e:
        logger.warning("%s", e)
        result.tally.record_failure(f"list exporter pods -n {namespace}", str(e))
        pods = []
    return DiscoveryResult(workload_namespace=namespace, workload_pods=pods)


def run_gather(
    target: CollectionTarget,
    settings: Settings | None = None,
    cluster: ClusterQueryClient | None = None,
) -> GatherResult:
    """
    Run every collection stage in order against the cluster and write the bundle.

    Only failing to create the destination (FatalIOError) escapes. An
    unreachable cluster is recorded as a failure and every stage is skipped;
    everything else is recorded in the tally.
    """
    opts = settings or get_settings()
    sink = OutputSink(target.dest_dir)
    sink.ensure_root()

    with run_environment(target.dest_dir) as env:
        logger.info(
            "must-gather for %s in %s into %s", target.operator_name, target.operator_namespace, target.dest_dir
        )
        if cluster is None:
            try:
                cluster = connect(
                    kubeconfig=str(opts.kubeconfig) if opts.kubeconfig else None,
                    context=opts.context,
                    cache_dir=str(env.cache_dir),
                )
            except GatherError as e:
                logger.error("%s", e)
                result = GatherResult(target=target, tally=RunTally(), log_file=env.log_file)
                result.tally.record_failure("connect to cluster", str(e))
                _skip_all(result, "cluster unreachable")
                return result
        result = GatherResult(target=target, tally=cluster.tally, log_file=env.log_file)

        _run_stage(result, Stage.OLM, collect_olm_info, cluster, sink, target, opts)
        _run_stage(result, Stage.OPERATOR_INFO, collect_operator_info, cluster, sink, target, opts)
        has_instances = _run_stage(result, Stage.INSTANCES, collect_instances, cluster, sink)

        if has_instances:
            result.discovery = _discover_workload(cluster, opts, result)
        if result.discovery.workload_namespace is None:
            _skip_stage(result, Stage.WORKLOAD, "no Kepler instance, exporter namespace unknown")
        else:
            _run_stage(result, Stage.WORKLOAD, collect_workload, cluster, sink, opts, result.discovery)

        result.state = Stage.MONITORING_DISCOVERY
        try:
            monitoring = discover_monitoring(cluster, sink, opts)
        except DiscoveryError as e:
            _skip_stage(result, Stage.SKIP_MONITORING, str(e))
        except Exception as e:
            logger.exception("monitoring discovery failed")
            result.tally.record_failure("monitoring discovery", str(e))
            _skip_stage(result, Stage.SKIP_MONITORING, str(e))
        else:
            result.discovery = result.discovery.model_copy(update={"monitoring": monitoring})
            _run_stage(result, Stage.MONITORING, collect_monitoring, cluster, sink, opts, monitoring)

        result.state = Stage.DONE
        logger.info(
            "done: %d written, %d skipped, %d failed",
            result.tally.written,
            result.tally.skipped,
            result.tally.failed,
        )
    return result


def print_result(result: GatherResult, console: Console | None = None) -> None:
    """Print the completion banner using Rich."""
    c = console or Console()
    style = "green" if not result.tally.failed else "yellow"
    c.print(Panel(Markdown(result.report()), title="Kepler must-gather", border_style=style))
