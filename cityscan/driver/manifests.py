"""Synthetic manifests used to drive ecosystem scanners against one package."""

import json
import re
from pathlib import Path

from cityscan.errors import UnsafeArgumentError

_NAME_PATTERN = re.compile(r"^(@[A-Za-z0-9_\-.]+/)?[A-Za-z0-9_\-.]+$")
_VERSION_PATTERN = re.compile(r"^[A-Za-z0-9_\-.+*^~<>=]*$")


def _check(name: str, version: str | None) -> None:
    if not _NAME_PATTERN.match(name or ""):
        raise UnsafeArgumentError(f"Invalid package name: {name!r}", {"name": name})
    if version is not None and not _VERSION_PATTERN.match(version):
        raise UnsafeArgumentError(f"Invalid package version: {version!r}", {"version": version})


def write_package_json(directory: Path, name: str, version: str | None = None) -> Path:
    """package.json listing one dependency with a version or ``*``."""
    _check(name, version)
    manifest = {
        "name": "cityscan-probe",
        "version": "0.0.0",
        "private": True,
        "dependencies": {name: version or "*"},
    }
    path = Path(directory) / "package.json"
    path.write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")
    return path


def write_requirements(directory: Path, name: str, version: str | None = None) -> Path:
    """requirements.txt with a single line."""
    _check(name, version)
    line = f"{name}=={version}" if version and version != "*" else name
    path = Path(directory) / "requirements.txt"
    path.write_text(line + "\n", encoding="utf-8")
    return path


def write_cargo_toml(directory: Path, name: str, version: str | None = None) -> Path:
    """Minimal Cargo.toml with one ``[dependencies]`` entry."""
    _check(name, version)
    content = (
        "[package]\n"
        'name = "cityscan-probe"\n'
        'version = "0.0.0"\n'
        'edition = "2021"\n'
        "\n"
        "[dependencies]\n"
        f'{name} = "{version or "*"}"\n'
    )
    src = Path(directory) / "src"
    src.mkdir(exist_ok=True)
    (src / "lib.rs").write_text("", encoding="utf-8")
    path = Path(directory) / "Cargo.toml"
    path.write_text(content, encoding="utf-8")
    return path


WRITERS = {
    "npm": write_package_json,
    "pypi": write_requirements,
    "cargo": write_cargo_toml,
}


# Scanners read lockfiles, not manifests. Each entry resolves the synthetic
# manifest into the lockfile named last, without installing anything.
LOCKFILE_COMMANDS = {
    "npm": (
        "npm",
        ("install", "--package-lock-only", "--no-audit", "--no-fund", "--ignore-scripts"),
        "package-lock.json",
    ),
    "cargo": ("cargo", ("generate-lockfile",), "Cargo.lock"),
}
