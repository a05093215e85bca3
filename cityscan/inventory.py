"""Project file inventory used for language detection and file-list tools."""

import os
from dataclasses import dataclass, field
from pathlib import Path

from cityscan.utils.logging import logger

# Root-level files that mark an ecosystem.
MANIFEST_INDICATORS = (
    "package.json",
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "Cargo.toml",
    "Cargo.lock",
    "go.mod",
    "go.sum",
    "requirements.txt",
    "Pipfile.lock",
    "poetry.lock",
    "pyproject.toml",
)

SOURCE_EXTENSIONS = (".py", ".go", ".rs", ".c", ".cpp", ".h", ".js", ".jsx", ".ts", ".tsx", ".mjs")


@dataclass(frozen=True)
class ProjectInventory:
    """Outcome of walking a project tree.

    Unreadable directories are listed in ``errors`` instead of aborting the
    walk; ``truncated`` is set once ``max_files`` source files were seen.
    """

    root: str
    manifests: tuple[str, ...] = ()
    files: tuple[str, ...] = ()
    skipped_dirs: int = 0
    errors: tuple[str, ...] = ()
    truncated: bool = False
    stats: dict[str, int] = field(default_factory=dict, compare=False)

    def has(self, name: str) -> bool:
        return name in self.manifests

    def with_extension(self, *extensions: str) -> list[str]:
        return [f for f in self.files if f.endswith(extensions)]

    def extensions(self) -> set[str]:
        return {os.path.splitext(f)[1] for f in self.files}


def scan_project(
    root: str | Path,
    skip_dirs: tuple[str, ...] | list[str] = (),
    max_files: int = 1000,
    max_file_size: int = 10 * 1024 * 1024,
) -> ProjectInventory:
    """Walk ``root`` collecting manifests and source files.

    Args:
        root: Absolute project root
        skip_dirs: Directory names never descended into
        max_files: Stop collecting source files after this many
        max_file_size: Files at or above this size are ignored

    Returns:
        ProjectInventory with root-relative posix paths, sorted.
    """
    root_path = Path(root)
    skip = set(skip_dirs)
    errors: list[str] = []
    files: list[str] = []
    skipped = 0
    large = 0
    truncated = False

    manifests = tuple(name for name in MANIFEST_INDICATORS if (root_path / name).is_file())

    def on_error(error: OSError) -> None:
        errors.append(f"{error.filename}: {error.strerror}")

    for dirpath, dirnames, filenames in os.walk(root_path, onerror=on_error):
        skipped += len([d for d in dirnames if d in skip])
        dirnames[:] = sorted(d for d in dirnames if d not in skip)

        for filename in sorted(filenames):
            if not filename.endswith(SOURCE_EXTENSIONS):
                continue
            path = Path(dirpath) / filename
            try:
                if path.is_symlink() or path.stat().st_size >= max_file_size:
                    large += 1
                    continue
            except OSError as e:
                errors.append(f"{path}: {e.strerror}")
                continue
            files.append(path.relative_to(root_path).as_posix())
            if len(files) >= max_files:
                truncated = True
                break
        if truncated:
            break

    if errors:
        logger.debug(f"Inventory skipped {len(errors)} unreadable paths under {root_path}")
    if truncated:
        logger.warning(f"Inventory stopped at {max_files} source files")

    return ProjectInventory(
        root=str(root_path),
        manifests=manifests,
        files=tuple(sorted(files)),
        skipped_dirs=skipped,
        errors=tuple(errors),
        truncated=truncated,
        stats={"sourceFiles": len(files), "ignoredFiles": large},
    )
