"""CLI entrypoint for kepler-must-gather."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from kepler_must_gather import __version__
from kepler_must_gather.cluster import CollectionTarget
from kepler_must_gather.config import get_settings
from kepler_must_gather.errors import FatalIOError
from kepler_must_gather.gather import print_result, run_gather


class _ArgumentParser(argparse.ArgumentParser):
    """Exit 1 (not argparse's 2) on bad arguments, after printing usage."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = _ArgumentParser(
        prog="kepler-must-gather",
        description="Collect Kepler operator, exporter and user-workload monitoring state for troubleshooting.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--ns",
        "-n",
        dest="namespace",
        default=None,
        help="Namespace the operator is installed in (default: from env or 'openshift-operators')",
    )
    parser.add_argument(
        "--operator",
        "-o",
        default=None,
        help="Operator name used for OLM labels and output paths (default: from env or 'kepler-operator')",
    )
    parser.add_argument(
        "--dest-dir",
        "-d",
        type=Path,
        default=None,
        help="Directory to write the bundle into (default: from env or ./must-gather)",
    )
    parser.add_argument(
        "--kubeconfig",
        type=Path,
        default=None,
        help="Path to kubeconfig (default: KUBECONFIG env or ~/.kube/config)",
    )
    parser.add_argument(
        "--context",
        default=None,
        help="Kubernetes context to use",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entrypoint for kepler-must-gather CLI."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(level=logging.DEBUG if args.verbose else logging.INFO, rich_tracebacks=True)],
    )
    for noisy in ("kubernetes", "urllib3", "websocket"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    try:
        settings = get_settings()
        if args.namespace:
            settings.operator_namespace = args.namespace
        if args.operator:
            settings.operator_name = args.operator
        if args.dest_dir:
            settings.dest_dir = args.dest_dir
        if args.kubeconfig:
            settings.kubeconfig = args.kubeconfig
        if args.context:
            settings.context = args.context

        target = CollectionTarget(
            operator_name=settings.operator_name,
            operator_namespace=settings.operator_namespace,
            dest_dir=settings.dest_dir,
        )
    except ValidationError as e:
        logging.error("Invalid configuration")
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1

    try:
        result = run_gather(target, settings)
    except FatalIOError as e:
        logging.error("%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print_result(result, Console())
    return 0


if __name__ == "__main__":
    sys.exit(main())
