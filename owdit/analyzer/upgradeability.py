"""Upgradeability classification from raw source text.

A case-insensitive pattern scan, not an AST walk. The caller ORs this
verdict with the bytecode-side check; a positive verdict vetoes caching.
"""

from __future__ import annotations

import re

UPGRADE_FUNCTION_PATTERNS = (
    "function upgradeto(",
    "function upgradetoandcall(",
    "function changeadmin(",
    "function implementation()",
)

UPGRADEABLE_IMPORT_PREFIXES = (
    "@openzeppelin/contracts-upgradeable/",
    "@openzeppelin/contracts/proxy/",
    "hardhat/upgradeable/",
)

UPGRADEABLE_BASE_MARKERS = (
    "upgradeable",
    "uups",
    "diamond",
    "beacon",
    "proxy",
    "transparent",
    "factory",
)

UPGRADEABLE_NAME_MARKERS = ("upgradeable", "proxy")

_IMPORT_PATH_RE = re.compile(r"""\bimport\b[^;]*?["']([^"']+)["']""")
_INHERITANCE_RE = re.compile(r"\b(?:contract|interface)\s+\w+\s+is\s+([^{]+)\{")
_CONTRACT_NAME_RE = re.compile(r"\bcontract\s+(\w+)")


def _imports_upgradeable_path(lowered: str) -> bool:
    return any(
        path.startswith(UPGRADEABLE_IMPORT_PREFIXES)
        for path in _IMPORT_PATH_RE.findall(lowered)
    )


def _inherits_upgradeable_base(lowered: str) -> bool:
    for bases in _INHERITANCE_RE.findall(lowered):
        for base in bases.split(","):
            if any(marker in base for marker in UPGRADEABLE_BASE_MARKERS):
                return True
    return False


def _declares_upgradeable_contract(lowered: str) -> bool:
    return any(
        any(marker in name for marker in UPGRADEABLE_NAME_MARKERS)
        for name in _CONTRACT_NAME_RE.findall(lowered)
    )


def is_upgradeable_from_source_code(source_code: str | None) -> bool:
    """Return True if the source shows a proxy or upgradeable pattern.

    Signals: ``delegatecall`` usage, upgrade-admin function signatures,
    imports from upgradeable library paths, inheritance from an
    upgradeable-sounding base, or a contract named like a proxy.
    """
    if not source_code or not source_code.strip():
        return False

    lowered = source_code.lower()

    if "delegatecall" in lowered:
        return True
    if any(pattern in lowered for pattern in UPGRADE_FUNCTION_PATTERNS):
        return True
    if _imports_upgradeable_path(lowered):
        return True
    if _inherits_upgradeable_base(lowered):
        return True
    return _declares_upgradeable_contract(lowered)
