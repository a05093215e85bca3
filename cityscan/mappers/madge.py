"""madge mapper (``madge --circular --json``).

madge prints a bare array of cycles, each a list of module paths. Some
versions wrap it as ``{"circular": [...]}``.
"""

from collections.abc import Mapping
from typing import Any

from cityscan.errors import ParseError
from cityscan.mappers.base import MapperContext, ResultBuilder, mapper
from cityscan.model.schema import AnalysisResult
from cityscan.model.taxonomy import AnalysisCategory, Severity, SeverityVocabulary

TOOL = "madge"
CATEGORY = AnalysisCategory.ARCHITECTURE

SEVERITY = SeverityVocabulary({"cycle": Severity.HIGH})

RULE_ID = "circular-dependency"


def _map_cycle(builder: ResultBuilder, chain: list[str]) -> None:
    if len(chain) < 2 or not all(isinstance(member, str) and member for member in chain):
        raise ValueError("cycle needs at least two module paths")

    entities = [builder.file_entity(member) for member in chain]
    canonical_chain = [entity.canonical_path for entity in entities]
    loop = " -> ".join(canonical_chain + [canonical_chain[0]])

    builder.issue(
        entities[0],
        severity=SEVERITY("cycle"),
        title=f"Circular dependency: {loop}",
        rule_id=RULE_ID,
        description=f"Modules import each other in a cycle of length {len(chain)}: {loop}",
        metadata={
            "dependencyChain": canonical_chain,
            "cycleLength": len(chain),
        },
    )


@mapper(TOOL, CATEGORY)
def map_madge(raw: Any, ctx: MapperContext) -> AnalysisResult:
    cycles = raw.get("circular") if isinstance(raw, Mapping) else raw
    if not isinstance(cycles, list):
        raise ParseError("madge output must be a JSON array of cycles")

    builder = ResultBuilder(TOOL, CATEGORY, ctx)
    for chain in cycles:
        if not isinstance(chain, list):
            builder.drop("cycle is not a list", chain)
            continue
        builder.guard(chain, lambda: _map_cycle(builder, chain))

    return builder.build({"cycleCount": len(cycles)})
