"""Correlation key derivation."""

from cityscan.model.paths import short_hash


def correlation_key(canonical_path: str, line: int | None, category, tool: str) -> str:
    """hash(canonical-path | line | category | tool).

    The tool is part of the key so per-tool identity survives; grouping
    across tools happens later on path, proximity and shared patterns.
    """
    return short_hash(canonical_path, "" if line is None else line, category, tool)
