"""Path and identifier canonicalization.

All mappers route tool-reported paths through ``normalize`` so that the same
file produces the same canonical path (and therefore the same entity id)
regardless of how each tool was invoked.
"""

import hashlib
import os
import posixpath
from collections.abc import Iterable

DEFAULT_TEMP_PATTERNS = ("/tmp/", "/var/folders/", "/private/tmp/")

# Synthetic namespaces for out-of-tree dependencies, keyed by ecosystem.
PACKAGE_NAMESPACES = {
    "npm": "node_modules",
    "pypi": "site-packages",
    "cargo": "target/package",
    "go": "go/pkg",
}

# Ecosystem spellings used by the different tools.
ECOSYSTEM_ALIASES = {
    "npm": "npm",
    "node": "npm",
    "pypi": "pypi",
    "pip": "pypi",
    "python": "pypi",
    "cargo": "cargo",
    "crates.io": "cargo",
    "rust": "cargo",
    "go": "go",
    "golang": "go",
}


def _to_posix(path: str) -> str:
    return path.replace("\\", "/")


def _strip_dot_prefix(path: str) -> str:
    while path.startswith("./"):
        path = path[2:]
    return path


def is_temp_path(path: str, temp_patterns: Iterable[str] = DEFAULT_TEMP_PATTERNS) -> bool:
    """True if the path lies under one of the configured temp prefixes."""
    posix = _to_posix(path)
    return any(pattern in posix for pattern in temp_patterns)


def normalize(
    path: str,
    project_root: str,
    temp_patterns: Iterable[str] = DEFAULT_TEMP_PATTERNS,
) -> str:
    """Canonicalize a tool-reported path relative to the project root.

    Args:
        path: Absolute or root-relative path as emitted by a tool
        project_root: Absolute project root
        temp_patterns: Substrings marking scratch locations outside the tree

    Returns:
        Empty string for the root itself or an empty input.
        Root-relative forward-slash path when inside the root; the last two
        segments when outside but under a temp prefix; otherwise the input
        with separators converted.

    The transform is idempotent: normalizing an already-canonical path
    yields the same string.
    """
    if not path:
        return ""

    posix = _to_posix(path)
    root = _to_posix(project_root)
    if not posixpath.isabs(root):
        root = _to_posix(os.path.abspath(project_root))
    root = posixpath.normpath(root)

    if posixpath.isabs(posix):
        resolved = posixpath.normpath(posix)
    else:
        resolved = posixpath.normpath(posixpath.join(root, _strip_dot_prefix(posix)))

    if resolved == root:
        # The root itself is not a file.
        return ""
    if resolved.startswith(root.rstrip("/") + "/"):
        return posixpath.relpath(resolved, root)

    if is_temp_path(resolved, temp_patterns):
        segments = [seg for seg in resolved.split("/") if seg]
        return "/".join(segments[-2:])

    return _strip_dot_prefix(posix)


def canonical_ecosystem(ecosystem: str | None) -> str:
    """Fold tool-specific ecosystem spellings onto one token."""
    token = (ecosystem or "").strip().lower()
    return ECOSYSTEM_ALIASES.get(token, token)


def package_path(ecosystem: str | None, name: str) -> str:
    """Synthetic canonical path for a dependency package."""
    eco = canonical_ecosystem(ecosystem)
    namespace = PACKAGE_NAMESPACES.get(eco)
    if namespace:
        return f"{namespace}/{name}"
    return f"dependencies/{eco or 'unknown'}/{name}"


def entity_id(kind, canonical_path: str) -> str:
    """Stable entity id: first 16 hex chars of sha256("<kind>|<path>")."""
    kind_token = getattr(kind, "value", kind)
    digest = hashlib.sha256(f"{kind_token}|{canonical_path}".encode()).hexdigest()
    return digest[:16]


def short_hash(*parts) -> str:
    """16-char sha256 prefix over '|'-joined parts."""
    joined = "|".join("" if part is None else str(getattr(part, "value", part)) for part in parts)
    return hashlib.sha256(joined.encode()).hexdigest()[:16]
