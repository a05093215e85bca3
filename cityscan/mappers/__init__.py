"""Per-tool mappers: pure functions from raw tool output to AnalysisResult."""

from cityscan.mappers.bandit import map_bandit
from cityscan.mappers.base import MapperContext, ResultBuilder, location_from, mapper
from cityscan.mappers.cargo_audit import map_cargo_audit
from cityscan.mappers.cbmc import map_cbmc
from cityscan.mappers.eslint import map_eslint
from cityscan.mappers.gosec import map_gosec
from cityscan.mappers.madge import map_madge
from cityscan.mappers.mypy import map_mypy
from cityscan.mappers.npm_audit import map_npm_audit
from cityscan.mappers.osv import map_osv
from cityscan.mappers.pylint import map_pylint

MAPPERS = {
    func.tool: func
    for func in (
        map_npm_audit,
        map_osv,
        map_cargo_audit,
        map_pylint,
        map_mypy,
        map_eslint,
        map_bandit,
        map_gosec,
        map_madge,
        map_cbmc,
    )
}

__all__ = [
    "MAPPERS",
    "MapperContext",
    "ResultBuilder",
    "location_from",
    "mapper",
    "map_bandit",
    "map_cargo_audit",
    "map_cbmc",
    "map_eslint",
    "map_gosec",
    "map_madge",
    "map_mypy",
    "map_npm_audit",
    "map_osv",
    "map_pylint",
]
