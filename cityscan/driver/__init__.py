"""Sandboxed external-tool driver."""

from .kernel import CancelToken, RunOptions, RunResult, probe_version, run
from .sandbox import PYTHON_ENV, build_env, validate_args
from .tempdirs import REGISTRY, TempDirRegistry, cleanup_all, scratch_dir

__all__ = [
    "CancelToken",
    "PYTHON_ENV",
    "REGISTRY",
    "RunOptions",
    "RunResult",
    "TempDirRegistry",
    "build_env",
    "cleanup_all",
    "probe_version",
    "run",
    "scratch_dir",
    "validate_args",
]
