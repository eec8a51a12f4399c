"""Helpers over verified source file sets.

Normalises the file shapes callers hand us, concatenates files for the
scoring service, and extracts coarse pattern flags from the combined text.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

from owdit.core.types import ParsedFiles, SourceFeatures, SourceFile

_FUNCTION_RE = re.compile(r"\bfunction\s+\w+")
_LOW_LEVEL_CALL_RE = re.compile(r"\.call\s*[({]")
_TRANSFER_RE = re.compile(r"\.(?:transfer|send)\s*\(")


def coerce_files(files: Iterable[Any] | None) -> list[SourceFile]:
    """Accept SourceFile objects, ``{"path", "content"}`` mappings or pairs.

    Entries that cannot be interpreted are dropped rather than raising.
    """
    result: list[SourceFile] = []
    for item in files or ():
        if isinstance(item, SourceFile):
            result.append(item)
        elif isinstance(item, Mapping):
            result.append(SourceFile(
                path=str(item.get("path") or ""),
                content=str(item.get("content") or ""),
            ))
        elif isinstance(item, (tuple, list)) and len(item) == 2:
            result.append(SourceFile(path=str(item[0]), content=str(item[1] or "")))
    return result


def combine_files_for_analysis(files: Iterable[Any]) -> str:
    """Concatenate files with a banner line before each one."""
    parts: list[str] = []
    for f in coerce_files(files):
        parts.append(f"\n// ===== FILE: {f.path} =====\n{f.content}\n\n")
    return "".join(parts)


def extract_source_features(
    files: Iterable[Any],
    parsed: ParsedFiles | None = None,
) -> SourceFeatures:
    """Compute pattern flags over the combined source text."""
    file_list = coerce_files(files)
    code = combine_files_for_analysis(file_list)

    return SourceFeatures(
        file_count=len(file_list),
        contract_count=len(parsed.contracts) if parsed else 0,
        line_count=len(code.split("\n")),
        function_count=len(_FUNCTION_RE.findall(code)),
        has_modifiers="modifier" in code,
        has_events="event" in code,
        has_structs="struct" in code,
        has_enums="enum" in code,
        has_libraries="library" in code,
        has_interfaces="interface" in code,
        has_delegate_call="delegatecall" in code,
        has_self_destruct="selfdestruct" in code,
        has_assembly="assembly" in code,
        has_unchecked="unchecked" in code,
        has_low_level_call=bool(_LOW_LEVEL_CALL_RE.search(code)),
        has_transfer=bool(_TRANSFER_RE.search(code)),
        has_reentrancy_guard="nonReentrant" in code or "ReentrancyGuard" in code,
        has_ownable="Ownable" in code or "onlyOwner" in code,
        has_pausable="Pausable" in code or "whenNotPaused" in code,
    )
