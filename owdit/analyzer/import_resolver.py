"""Solidity import extraction, provenance classification and resolution.

Each distinct import path across a file set becomes exactly one record:
either resolved (with content) or missing (with a reason). Lookups for
different paths run concurrently and fail independently; an I/O error on
one import is converted into a missing entry and never aborts the rest.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import re
from collections.abc import Iterable
from typing import Any

from owdit.analyzer.library_registry import BuiltinLibrarySource, LibrarySource
from owdit.analyzer.sources import coerce_files
from owdit.core.types import (
    ImportRecord,
    ImportType,
    MissingImport,
    ResolvedImport,
    ResolvedImports,
    SourceFile,
)

logger = logging.getLogger(__name__)

# ── Import syntax ────────────────────────────────────────────────────────────
#   import "path";
#   import "path" as Name;
#   import * as Name from "path";
#   import {A, B as C} from "path";
_IMPORT_RE = re.compile(
    r"""\bimport\s+(?:"""
    r"""["']([^"']+)["'](?:\s+as\s+\w+)?|"""
    r"""\*\s+as\s+\w+\s+from\s+["']([^"']+)["']|"""
    r"""\{[^}]*\}\s+from\s+["']([^"']+)["']"""
    r""")"""
)

_RELATIVE_RE = re.compile(r"^\.\.?/")

NPM_PREFIXES = (
    "@openzeppelin/",
    "@chainlink/",
    "@uniswap/",
    "@aave/",
    "hardhat/",
    "forge-std/",
    "ds-test/",
    "solmate/",
    "solady/",
)

GITHUB_HOSTS = (
    "github.com/",
    "raw.githubusercontent.com/",
)

ERR_FILE_NOT_FOUND = "File not found in provided files"
ERR_UNKNOWN_PACKAGE = "Unknown package: not found in built-in library registry"
ERR_GITHUB_UNSUPPORTED = "GitHub imports not yet implemented"
ERR_UNKNOWN_SOURCE = "Unresolved import: unrecognized import source"


# ── Extraction & classification ──────────────────────────────────────────────


def extract_imports(content: str) -> list[str]:
    """Return the distinct import paths of one file in order of appearance."""
    seen: dict[str, None] = {}
    for match in _IMPORT_RE.finditer(content or ""):
        path = next(g for g in match.groups() if g is not None)
        seen.setdefault(path, None)
    return list(seen)


def classify_import(import_path: str) -> ImportType:
    """Tag an import path by where its content would come from."""
    if _RELATIVE_RE.match(import_path):
        return ImportType.RELATIVE
    if import_path.startswith(NPM_PREFIXES):
        return ImportType.NPM
    if any(host in import_path for host in GITHUB_HOSTS):
        return ImportType.GITHUB
    return ImportType.UNKNOWN


def _find_local_file(
    import_path: str,
    importers: list[str],
    files: list[SourceFile],
) -> SourceFile | None:
    """Locate a relative import in the caller's file set.

    Tries the path joined onto each importing file's directory, then an
    exact path match, then a segment-aligned suffix match with leading
    ``./`` and ``../`` stripped.
    """
    by_path = {f.path: f for f in files}

    for importer in importers:
        joined = posixpath.normpath(posixpath.join(posixpath.dirname(importer), import_path))
        if joined in by_path:
            return by_path[joined]

    if import_path in by_path:
        return by_path[import_path]

    tail = import_path
    while tail.startswith(("./", "../")):
        tail = tail.split("/", 1)[1]
    if not tail:
        return None
    for f in files:
        if f.path == tail or f.path.endswith("/" + tail):
            return f
    return None


# ── Resolution ───────────────────────────────────────────────────────────────


async def _resolve_single(
    import_path: str,
    importers: list[str],
    files: list[SourceFile],
    library_source: LibrarySource,
    fetch_timeout: float | None,
) -> tuple[ImportRecord, bool]:
    """Resolve one import. Returns the record and whether it was auto-fetched."""
    import_type = classify_import(import_path)

    try:
        if import_type is ImportType.RELATIVE:
            local = _find_local_file(import_path, importers, files)
            if local is None:
                return MissingImport(path=import_path, type=import_type, error=ERR_FILE_NOT_FOUND), False
            return ResolvedImport(path=import_path, type=import_type, content=local.content), False

        if import_type is ImportType.NPM:
            for f in files:
                if f.path == import_path:
                    return ResolvedImport(path=import_path, type=import_type, content=f.content), False
            body = await asyncio.wait_for(library_source.fetch(import_path), timeout=fetch_timeout)
            if body is None:
                return MissingImport(path=import_path, type=import_type, error=ERR_UNKNOWN_PACKAGE), False
            return ResolvedImport(path=import_path, type=import_type, content=body), True

        if import_type is ImportType.GITHUB:
            return MissingImport(path=import_path, type=import_type, error=ERR_GITHUB_UNSUPPORTED), False

        return MissingImport(path=import_path, type=import_type, error=ERR_UNKNOWN_SOURCE), False

    except asyncio.TimeoutError:
        logger.warning("Timed out resolving import %s", import_path, extra={"import_path": import_path})
        return MissingImport(
            path=import_path, type=import_type, error=f"Timed out fetching {import_path}",
        ), False
    except Exception as exc:
        logger.warning("Failed to resolve import %s: %s", import_path, exc, extra={"import_path": import_path})
        return MissingImport(
            path=import_path, type=import_type, error=str(exc) or exc.__class__.__name__,
        ), False


async def resolve_imports(
    files: Iterable[Any],
    library_source: LibrarySource | None = None,
    fetch_timeout: float | None = 5.0,
) -> ResolvedImports:
    """Resolve every distinct import referenced by a file set.

    Args:
        files: Source files (SourceFile objects or path/content mappings)
        library_source: Where npm-style imports are looked up; defaults to
            the built-in registry
        fetch_timeout: Per-import lookup timeout in seconds

    Returns:
        ResolvedImports where each distinct path appears once in either
        ``resolved`` or ``missing``
    """
    file_list = coerce_files(files)
    source = library_source or BuiltinLibrarySource()

    importers_by_path: dict[str, list[str]] = {}
    for f in file_list:
        for import_path in extract_imports(f.content):
            importers_by_path.setdefault(import_path, []).append(f.path)

    outcomes = await asyncio.gather(*(
        _resolve_single(path, importers, file_list, source, fetch_timeout)
        for path, importers in importers_by_path.items()
    ))

    result = ResolvedImports()
    for record, auto_fetched in outcomes:
        if isinstance(record, ResolvedImport):
            result.resolved.append(record)
            if auto_fetched:
                result.auto_fetched.append(record)
        else:
            result.missing.append(record)

    logger.info(
        "Resolved %d imports, %d missing, %d auto-fetched",
        len(result.resolved), len(result.missing), len(result.auto_fetched),
    )
    return result


# ── Dependency graphs ────────────────────────────────────────────────────────


def build_dependency_graph(files: Iterable[Any]) -> dict[str, list[str]]:
    """Map each file to the import paths it declares, resolved or not."""
    return {f.path: extract_imports(f.content) for f in coerce_files(files)}


def build_import_dependency_graph(
    files: Iterable[Any],
    resolved_imports: ResolvedImports,
) -> dict[str, list[str]]:
    """Map each file to the imports it declares that were resolved.

    Only one hop per file is recorded, so import cycles need no special
    handling.
    """
    resolved_paths = {r.path for r in resolved_imports.resolved}
    graph: dict[str, list[str]] = {}
    for f in coerce_files(files):
        graph[f.path] = [p for p in extract_imports(f.content) if p in resolved_paths]
    return graph
