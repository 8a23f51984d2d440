"""Write collected output into the bundle directory."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from kepler_must_gather.errors import FatalIOError

logger = logging.getLogger(__name__)

FILE_MODE = 0o666


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


class OutputSink:
    """Owns the on-disk bundle rooted at an absolute directory."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def ensure_root(self) -> Path:
        """Create the bundle root; failure aborts the run."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FatalIOError(f"cannot create destination directory {self.root}: {e}") from e
        return self.root

    def path(self, relpath: str | Path) -> Path:
        """Absolute path for a bundle-relative path; rejects paths outside the root."""
        target = (self.root / relpath).resolve()
        if target != self.root.resolve() and self.root.resolve() not in target.parents:
            raise ValueError(f"{relpath} is outside the bundle root")
        return target

    def write(self, relpath: str | Path, content: str | bytes) -> Path:
        """Write content, replacing any existing file.

        Data goes to a temporary sibling first and is renamed over the target,
        so a failed write never leaves a truncated file behind.
        """
        target = self.path(relpath)
        target.parent.mkdir(parents=True, exist_ok=True)
        data = content.encode("utf-8") if isinstance(content, str) else content
        fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            # mkstemp creates 0600; bundle files get the usual 0666 & ~umask
            os.chmod(tmp, FILE_MODE & ~_current_umask())
            os.replace(tmp, target)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.debug("wrote %s (%d bytes)", target, len(data))
        return target

    def append(self, relpath: str | Path, content: str) -> Path:
        target = self.path(relpath)
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("a", encoding="utf-8") as fh:
            fh.write(content)
        return target

    def makedirs(self, relpath: str | Path) -> Path:
        target = self.path(relpath)
        target.mkdir(parents=True, exist_ok=True)
        return target
