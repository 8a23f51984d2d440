"""Process environment and debug log for the duration of one run."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

CACHE_ENV = "KUBECACHEDIR"
LOGFILE_ENV = "LOGFILE_PATH"
LOG_FILENAME = "gather-debug.log"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

PACKAGE_LOGGER = "kepler_must_gather"


@dataclass(frozen=True)
class RunEnvironment:
    cache_dir: Path
    log_file: Path


@contextmanager
def run_environment(dest_dir: Path) -> Iterator[RunEnvironment]:
    """Isolate the API discovery cache and mirror all package logging to the bundle.

    KUBECACHEDIR points at a fresh temporary directory and LOGFILE_PATH at
    <dest_dir>/gather-debug.log; both are restored (and the cache removed)
    on exit.
    """
    saved = {key: os.environ.get(key) for key in (CACHE_ENV, LOGFILE_ENV)}
    cache_dir = Path(tempfile.mkdtemp(prefix="kepler-must-gather-cache-"))
    log_file = Path(dest_dir) / LOG_FILENAME

    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    previous_level = pkg_logger.level
    pkg_logger.addHandler(handler)
    pkg_logger.setLevel(logging.DEBUG)

    os.environ[CACHE_ENV] = str(cache_dir)
    os.environ[LOGFILE_ENV] = str(log_file)
    try:
        yield RunEnvironment(cache_dir=cache_dir, log_file=log_file)
    finally:
        for key, value in saved.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        pkg_logger.removeHandler(handler)
        pkg_logger.setLevel(previous_level)
        handler.close()
        shutil.rmtree(cache_dir, ignore_errors=True)
