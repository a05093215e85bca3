"""Adapters: a driver invocation paired with a mapper, one per tool."""

from cityscan.adapters.base import AdapterCapabilities, BaseAdapter
from cityscan.adapters.dependencies import CargoAuditAdapter, NpmAuditAdapter, OsvScannerAdapter
from cityscan.adapters.go import GosecAdapter
from cityscan.adapters.javascript import EslintAdapter, MadgeAdapter
from cityscan.adapters.native import CbmcAdapter
from cityscan.adapters.python import BanditAdapter, MypyAdapter, PylintAdapter

ADAPTERS: dict[str, type[BaseAdapter]] = {
    adapter.name: adapter
    for adapter in (
        NpmAuditAdapter,
        OsvScannerAdapter,
        CargoAuditAdapter,
        PylintAdapter,
        MypyAdapter,
        EslintAdapter,
        BanditAdapter,
        GosecAdapter,
        MadgeAdapter,
        CbmcAdapter,
    )
}

__all__ = [
    "ADAPTERS",
    "AdapterCapabilities",
    "BaseAdapter",
    "BanditAdapter",
    "CargoAuditAdapter",
    "CbmcAdapter",
    "EslintAdapter",
    "GosecAdapter",
    "MadgeAdapter",
    "MypyAdapter",
    "NpmAuditAdapter",
    "OsvScannerAdapter",
    "PylintAdapter",
]
