"""Tests for owdit.analyzer.import_resolver and the library sources."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from owdit.analyzer.import_resolver import (
    ERR_FILE_NOT_FOUND,
    ERR_GITHUB_UNSUPPORTED,
    ERR_UNKNOWN_PACKAGE,
    ERR_UNKNOWN_SOURCE,
    build_dependency_graph,
    build_import_dependency_graph,
    classify_import,
    extract_imports,
    resolve_imports,
)
from owdit.analyzer.library_registry import (
    BUILTIN_LIBRARIES,
    BuiltinLibrarySource,
    CdnLibrarySource,
    ChainedLibrarySource,
)
from owdit.core.types import ImportType, SourceFile

OWNABLE = "@openzeppelin/contracts/access/Ownable.sol"


def _file(path: str, *imports: str) -> SourceFile:
    body = "\n".join(f'import "{p}";' for p in imports)
    return SourceFile(path=path, content=f"pragma solidity ^0.8.0;\n{body}\ncontract X {{}}\n")


class _SlowSource:
    async def fetch(self, import_path: str) -> str | None:
        await asyncio.sleep(5)
        return "never"


class _BrokenSource:
    async def fetch(self, import_path: str) -> str | None:
        raise RuntimeError("registry exploded")


# ── Extraction & classification ──────────────────────────────────────────


class TestExtractImports:

    def test_all_import_forms(self):
        content = (
            'import "./A.sol";\n'
            "import './B.sol' as B;\n"
            'import * as C from "./C.sol";\n'
            'import {D, E as F} from "./D.sol";\n'
        )
        assert extract_imports(content) == ["./A.sol", "./B.sol", "./C.sol", "./D.sol"]

    def test_duplicates_collapse(self):
        assert extract_imports('import "./A.sol";\nimport "./A.sol";\n') == ["./A.sol"]

    def test_empty(self):
        assert extract_imports("") == []


class TestClassifyImport:

    @pytest.mark.parametrize("path,expected", [
        ("./A.sol", ImportType.RELATIVE),
        ("../lib/B.sol", ImportType.RELATIVE),
        (OWNABLE, ImportType.NPM),
        ("@chainlink/contracts/src/v0.8/Feed.sol", ImportType.NPM),
        ("https://github.com/org/repo/blob/main/A.sol", ImportType.GITHUB),
        ("contracts/A.sol", ImportType.UNKNOWN),
    ])
    def test_classification(self, path, expected):
        assert classify_import(path) is expected


# ── Resolution ───────────────────────────────────────────────────────────


class TestResolveImports:

    @pytest.mark.asyncio
    async def test_project_files(self, project_files):
        result = await resolve_imports(project_files)
        resolved = {r.path: r for r in result.resolved}
        assert set(resolved) == {OWNABLE, "./interfaces/IVault.sol", "./Token.sol"}
        assert resolved[OWNABLE].type is ImportType.NPM
        assert resolved[OWNABLE].content == BUILTIN_LIBRARIES[OWNABLE]
        assert [a.path for a in result.auto_fetched] == [OWNABLE]
        assert result.missing == []

    @pytest.mark.asyncio
    async def test_relative_import_missing(self):
        result = await resolve_imports([_file("A.sol", "./Nope.sol")])
        assert result.resolved == []
        assert result.missing[0].path == "./Nope.sol"
        assert result.missing[0].error == ERR_FILE_NOT_FOUND
        assert result.missing[0].resolved is False

    @pytest.mark.asyncio
    async def test_relative_import_from_subdirectory(self):
        files = [
            _file("contracts/token/T.sol", "../utils/U.sol"),
            SourceFile(path="contracts/utils/U.sol", content="library U {}"),
        ]
        result = await resolve_imports(files)
        assert result.resolved[0].content == "library U {}"

    @pytest.mark.asyncio
    async def test_unknown_npm_package(self):
        result = await resolve_imports([_file("A.sol", "@openzeppelin/contracts/token/ERC20/ERC20.sol")])
        assert result.missing[0].error == ERR_UNKNOWN_PACKAGE
        assert result.auto_fetched == []

    @pytest.mark.asyncio
    async def test_npm_path_supplied_by_caller_is_not_auto_fetched(self):
        path = "@openzeppelin/contracts/token/ERC20/ERC20.sol"
        files = [_file("A.sol", path), SourceFile(path=path, content="contract ERC20 {}")]
        result = await resolve_imports(files)
        assert result.resolved[0].content == "contract ERC20 {}"
        assert result.auto_fetched == []

    @pytest.mark.asyncio
    async def test_github_and_unknown_sources(self):
        github = "https://github.com/org/repo/blob/main/A.sol"
        result = await resolve_imports([_file("A.sol", github, "contracts/B.sol")])
        errors = {m.path: m.error for m in result.missing}
        assert errors == {github: ERR_GITHUB_UNSUPPORTED, "contracts/B.sol": ERR_UNKNOWN_SOURCE}

    @pytest.mark.asyncio
    async def test_each_path_recorded_once_across_files(self):
        files = [_file("A.sol", OWNABLE), _file("B.sol", OWNABLE)]
        result = await resolve_imports(files)
        assert len(result.resolved) == 1
        assert len(result.auto_fetched) == 1

    @pytest.mark.asyncio
    async def test_timeout_becomes_missing_entry(self):
        result = await resolve_imports(
            [_file("A.sol", OWNABLE, "./B.sol"), SourceFile(path="B.sol", content="")],
            library_source=_SlowSource(),
            fetch_timeout=0.01,
        )
        assert [r.path for r in result.resolved] == ["./B.sol"]
        assert result.missing[0].path == OWNABLE
        assert "Timed out" in result.missing[0].error

    @pytest.mark.asyncio
    async def test_source_error_becomes_missing_entry(self):
        result = await resolve_imports([_file("A.sol", OWNABLE)], library_source=_BrokenSource())
        assert result.missing[0].error == "registry exploded"

    @pytest.mark.asyncio
    async def test_no_imports(self):
        result = await resolve_imports([SourceFile(path="A.sol", content="contract A {}")])
        assert result.resolved == [] and result.missing == [] and result.auto_fetched == []

    @pytest.mark.asyncio
    async def test_serialises_with_wire_names(self):
        data = (await resolve_imports([_file("A.sol", OWNABLE)])).to_dict()
        assert data["autoFetched"][0]["resolved"] is True
        assert data["autoFetched"][0]["type"] == "npm"


# ── Library sources ──────────────────────────────────────────────────────


class TestLibrarySources:

    @pytest.mark.asyncio
    async def test_cdn_fetch_and_404(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("ERC20.sol"):
                return httpx.Response(200, text="contract ERC20 {}")
            return httpx.Response(404)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        cdn = CdnLibrarySource(base_url="https://cdn.test/npm", client=client)
        assert await cdn.fetch("@openzeppelin/contracts/token/ERC20/ERC20.sol") == "contract ERC20 {}"
        assert await cdn.fetch("@openzeppelin/contracts/Nope.sol") is None
        await client.aclose()

    @pytest.mark.asyncio
    async def test_cdn_server_error_becomes_missing_entry(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(503)))
        source = ChainedLibrarySource(BuiltinLibrarySource(), CdnLibrarySource(client=client))
        path = "@openzeppelin/contracts/token/ERC20/ERC20.sol"
        result = await resolve_imports([_file("A.sol", OWNABLE, path)], library_source=source)
        assert [r.path for r in result.auto_fetched] == [OWNABLE]
        assert result.missing[0].path == path
        assert "503" in result.missing[0].error
        await client.aclose()

    @pytest.mark.asyncio
    async def test_chain_prefers_first_source(self):
        source = ChainedLibrarySource(
            BuiltinLibrarySource({"x.sol": "first"}),
            BuiltinLibrarySource({"x.sol": "second", "y.sol": "only"}),
        )
        assert await source.fetch("x.sol") == "first"
        assert await source.fetch("y.sol") == "only"
        assert await source.fetch("z.sol") is None


# ── Dependency graphs ────────────────────────────────────────────────────


class TestDependencyGraphs:

    @pytest.mark.asyncio
    async def test_only_resolved_imports_are_edges(self):
        files = [_file("A.sol", "./B.sol", "./Missing.sol"), _file("B.sol")]
        imports = await resolve_imports(files)
        graph = build_import_dependency_graph(files, imports)
        assert graph == {"A.sol": ["./B.sol"], "B.sol": []}

    @pytest.mark.asyncio
    async def test_cycles_are_fine(self):
        files = [_file("A.sol", "./B.sol"), _file("B.sol", "./A.sol")]
        imports = await resolve_imports(files)
        assert build_import_dependency_graph(files, imports) == {"A.sol": ["./B.sol"], "B.sol": ["./A.sol"]}

    def test_raw_graph_lists_every_import(self):
        files = [_file("A.sol", "./B.sol", "./Missing.sol")]
        assert build_dependency_graph(files) == {"A.sol": ["./B.sol", "./Missing.sol"]}
