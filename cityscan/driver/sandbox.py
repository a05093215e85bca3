"""Argument and environment policy for external tool invocations."""

import os
import re
from collections.abc import Iterable, Mapping

from cityscan.errors import UnsafeArgumentError

SAFE_ARG_PATTERN = re.compile(r"^[A-Za-z0-9_\-.,=:/@+]*$")

# Host variables that survive scrubbing.
PASSTHROUGH_ENV = ("PATH", "HOME")

# Per-language additions and the only values they may take.
PYTHON_ENV = {
    "PYTHONDONTWRITEBYTECODE": "1",
    "PYTHONPATH": "",
    "MYPYPATH": "",
}

_FIXED_ADDITIONS = dict(PYTHON_ENV)
_NUMERIC_ADDITIONS = ("CBMC_MAX_MEMORY",)


def is_safe_arg(arg) -> bool:
    if not isinstance(arg, str) or "\x00" in arg:
        return False
    if arg.startswith("/"):
        return "\n" not in arg
    return bool(SAFE_ARG_PATTERN.match(arg))


def validate_args(args: Iterable) -> list[str]:
    """Return argv as a list, or raise UnsafeArgumentError on the first bad element."""
    validated = []
    for index, arg in enumerate(args):
        if not isinstance(arg, str):
            raise UnsafeArgumentError(
                f"Argument {index} is not a string: {type(arg).__name__}",
                {"index": index, "type": type(arg).__name__},
            )
        if not is_safe_arg(arg):
            raise UnsafeArgumentError(
                f"Argument {index} contains disallowed characters: {arg!r}",
                {"index": index, "argument": arg},
            )
        validated.append(arg)
    return validated


def build_env(
    additions: Mapping[str, str] | None = None,
    host_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Construct a scrubbed child environment.

    Only PATH and HOME are copied from the host. Additions are limited to
    the per-language whitelist and must carry their policy values.
    """
    host = os.environ if host_env is None else host_env
    env = {key: host[key] for key in PASSTHROUGH_ENV if key in host}

    for key, value in (additions or {}).items():
        if key in _FIXED_ADDITIONS:
            if value != _FIXED_ADDITIONS[key]:
                raise UnsafeArgumentError(
                    f"Environment variable {key} must be {_FIXED_ADDITIONS[key]!r}",
                    {"variable": key, "value": value},
                )
        elif key in _NUMERIC_ADDITIONS:
            if not isinstance(value, str) or not value.isdigit():
                raise UnsafeArgumentError(
                    f"Environment variable {key} must be a decimal number",
                    {"variable": key, "value": str(value)},
                )
        else:
            raise UnsafeArgumentError(
                f"Environment variable {key} is not on the whitelist",
                {"variable": key},
            )
        env[key] = value

    return env
