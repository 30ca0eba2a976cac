"""Per-run scratch directory on a RAM-backed filesystem."""

from __future__ import annotations

from contextlib import contextmanager
import logging
import os
from pathlib import Path
import shutil
import signal
import tempfile
from typing import Iterator

import psutil

from server_audit.config import WorkspaceConfig

RAM_FILESYSTEMS = {"tmpfs", "ramfs"}
CLEANUP_SIGNALS = (signal.SIGINT, signal.SIGTERM)

logger = logging.getLogger("Workspace")


def is_ram_backed(path: str | Path) -> bool:
    """Whether ``path`` lives on a tmpfs/ramfs mount."""
    target = os.path.realpath(path)
    best_match = ""
    fstype = ""
    for partition in psutil.disk_partitions(all=True):
        mountpoint = partition.mountpoint
        if target == mountpoint or target.startswith(mountpoint.rstrip("/") + "/"):
            if len(mountpoint) > len(best_match):
                best_match = mountpoint
                fstype = partition.fstype
    return fstype in RAM_FILESYSTEMS


def _resolve_base(base_dir: str) -> str | None:
    if os.path.isdir(base_dir) and is_ram_backed(base_dir):
        return base_dir
    logger.warning(
        "%s is not a RAM-backed filesystem; using the system temp directory.", base_dir
    )
    return None


def _raise_exit(signum: int, frame: object) -> None:
    raise SystemExit(128 + signum)


@contextmanager
def scratch_workspace(config: WorkspaceConfig | None = None) -> Iterator[Path]:
    """Create the scratch directory and remove it on every exit path.

    SIGINT and SIGTERM are turned into ``SystemExit(128 + signum)`` while the
    workspace is open so the removal below still runs; the previous handlers
    are restored afterwards.
    """
    config = config or WorkspaceConfig()
    # mkdtemp creates the directory with mode 0700
    path = Path(tempfile.mkdtemp(prefix=config.prefix, dir=_resolve_base(config.base_dir)))
    logger.debug("Scratch workspace created at %s.", path)
    previous = {}
    try:
        for signum in CLEANUP_SIGNALS:
            try:
                previous[signum] = signal.signal(signum, _raise_exit)
            except ValueError:
                # signal handlers can only be installed from the main thread
                logger.debug("Cannot install handler for signal %s.", signum)
        yield path
    finally:
        # remove first; our handlers stay active until the directory is gone
        shutil.rmtree(path, ignore_errors=True)
        logger.debug("Scratch workspace %s removed.", path)
        for signum, handler in previous.items():
            signal.signal(signum, handler)
