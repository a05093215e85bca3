"""Process-wide registry of scratch directories owned by tool runs."""

import atexit
import os
import shutil
import signal
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from cityscan.utils.logging import logger

SCRATCH_PREFIX = "cityscan-"


class TempDirRegistry:
    """Tracks live scratch directories so survivors can be removed at shutdown."""

    def __init__(self):
        self._lock = threading.Lock()
        self._dirs: set[str] = set()

    def create(self, label: str = "run") -> Path:
        """Create a 0o700 directory under the OS temp root with a random suffix."""
        path = tempfile.mkdtemp(prefix=f"{SCRATCH_PREFIX}{label}-")
        os.chmod(path, 0o700)
        with self._lock:
            self._dirs.add(path)
        logger.debug(f"Created scratch dir {path}")
        return Path(path)

    def release(self, path: Path | str) -> None:
        """Remove a scratch directory recursively and forget it."""
        path = str(path)
        with self._lock:
            self._dirs.discard(path)
        shutil.rmtree(path, onexc=_log_rmtree_failure)

    def live(self) -> list[str]:
        with self._lock:
            return sorted(self._dirs)

    def cleanup_all(self) -> int:
        """Remove every directory still registered. Returns how many were removed."""
        with self._lock:
            survivors = sorted(self._dirs)
            self._dirs.clear()
        for path in survivors:
            shutil.rmtree(path, onexc=_log_rmtree_failure)
        if survivors:
            logger.debug(f"Removed {len(survivors)} leftover scratch dirs")
        return len(survivors)


def _log_rmtree_failure(func, path, exc) -> None:
    if isinstance(exc, FileNotFoundError):
        return
    logger.warning(f"Could not remove {path}: {exc}")


REGISTRY = TempDirRegistry()

atexit.register(REGISTRY.cleanup_all)


@contextmanager
def scratch_dir(label: str = "run", registry: TempDirRegistry | None = None) -> Iterator[Path]:
    """Yield a private scratch directory that is removed on every exit path."""
    registry = registry or REGISTRY
    path = registry.create(label)
    try:
        yield path
    finally:
        registry.release(path)


def cleanup_all() -> int:
    return REGISTRY.cleanup_all()


def install_signal_cleanup() -> None:
    """Remove scratch dirs when the process is terminated by SIGTERM or SIGHUP."""

    def _handler(signum, frame):
        REGISTRY.cleanup_all()
        signal.signal(signum, signal.SIG_DFL)
        os.kill(os.getpid(), signum)

    for sig in (signal.SIGTERM, getattr(signal, "SIGHUP", None)):
        if sig is not None:
            signal.signal(sig, _handler)
