"""Gather: run the collection stages in order and report the outcome."""

from kepler_must_gather.gather.orchestrator import GatherResult, Stage, print_result, run_gather

__all__ = [
    "GatherResult",
    "Stage",
    "print_result",
    "run_gather",
]
