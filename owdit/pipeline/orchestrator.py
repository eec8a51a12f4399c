"""Analysis orchestrator: coordinates fetching, analysis and caching."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
from pydantic import TypeAdapter

from owdit.analyzer.bytecode_analyzer import (
    analyze_bytecode,
    is_upgradeable_contract,
    looks_like_eip1167,
)
from owdit.analyzer.import_resolver import build_import_dependency_graph, resolve_imports
from owdit.analyzer.library_registry import (
    BuiltinLibrarySource,
    CdnLibrarySource,
    ChainedLibrarySource,
    LibrarySource,
)
from owdit.analyzer.source_parser import parse_multi_file_contracts
from owdit.analyzer.sources import combine_files_for_analysis, extract_source_features
from owdit.analyzer.upgradeability import is_upgradeable_from_source_code
from owdit.core.cache import AnalysisCache
from owdit.core.config import Settings, get_settings
from owdit.core.errors import SourceFetchError
from owdit.core.logging import analysis_scope
from owdit.core.types import (
    AnalysisInput,
    AnalysisRecord,
    BytecodeInput,
    ProxyInfo,
    VerifiedInput,
)
from owdit.ingestion.contract_source import ContractSourceFetcher, validate_address

logger = logging.getLogger(__name__)

_INPUT_ADAPTER: TypeAdapter[AnalysisInput] = TypeAdapter(AnalysisInput)


# ── Retry helper for explorer and RPC failures ──────────────────────────────

# Throttling and gateway errors from explorers and public RPC nodes
_RETRYABLE_STATUS = frozenset({429, 502, 503, 504})

T = TypeVar("T")


def _is_transient(exc: BaseException) -> bool:
    """True for network failures and throttling, looking through SourceFetchError."""
    if isinstance(exc, SourceFetchError) and exc.__cause__ is not None:
        exc = exc.__cause__
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in _RETRYABLE_STATUS
    return False


async def _retry_async(
    coro_factory: Callable[[], Awaitable[T]],
    *,
    retries: int,
    base_delay: float,
    label: str,
) -> T:
    """Await ``coro_factory()``, retrying transient fetch errors with back-off."""
    attempt = 0
    while True:
        try:
            return await coro_factory()
        except (SourceFetchError, httpx.HTTPError) as exc:
            if attempt >= retries or not _is_transient(exc):
                raise
            delay = base_delay * 2 ** attempt
            attempt += 1
            logger.warning(
                "%s failed (retry %d/%d in %.1fs): %s",
                label, attempt, retries, delay, exc,
            )
            await asyncio.sleep(delay)


def build_library_source(settings: Settings) -> tuple[LibrarySource, CdnLibrarySource | None]:
    """Built-in registry, chained with the CDN when enabled.

    Returns the source plus the CDN source (if any) so the caller can close it.
    """
    builtin = BuiltinLibrarySource()
    if not settings.import_cdn_enabled:
        return builtin, None
    cdn = CdnLibrarySource(
        base_url=settings.import_cdn_url,
        timeout=settings.import_fetch_timeout_seconds,
    )
    return ChainedLibrarySource(builtin, cdn), cdn


class AnalysisOrchestrator:
    """Coordinates a single contract analysis.

    Verified flow:
    1. PARSE: contracts, call graph, main contract
    2. IMPORTS: resolve every import, build the dependency graph
    3. FEATURES: pattern flags over the combined source
    4. UPGRADEABILITY: source-text classification

    Bytecode flow:
    1. ANALYZE: opcode histogram, selectors, archetype, risk
    2. UPGRADEABILITY: DELEGATECALL or proxy-admin selectors, EIP-1167 shape

    Upgradeable results are never cached.
    """

    def __init__(
        self,
        fetcher: ContractSourceFetcher | None = None,
        cache: AnalysisCache | None = None,
        settings: Settings | None = None,
        library_source: LibrarySource | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._fetcher = fetcher
        self._cache = cache
        self._library_source = library_source

    # ── Analysis ─────────────────────────────────────────────────────────────

    async def analyze(self, analysis_input: AnalysisInput | dict[str, Any]) -> AnalysisRecord:
        """Analyze verified source or raw bytecode."""
        if isinstance(analysis_input, dict):
            analysis_input = _INPUT_ADAPTER.validate_python(analysis_input)

        with analysis_scope() as analysis_id:
            start = time.monotonic()
            if isinstance(analysis_input, VerifiedInput):
                record = await self._analyze_verified(analysis_input)
            else:
                record = self._analyze_bytecode(analysis_input)
            record.analysis_id = analysis_id

            logger.info(
                "Analysis complete: verified=%s upgradeable=%s",
                record.verified, record.is_upgradeable,
                extra={
                    "address": record.address,
                    "chain_id": record.chain_id,
                    "duration_ms": round((time.monotonic() - start) * 1000, 1),
                },
            )
        return record

    async def _analyze_verified(self, source: VerifiedInput) -> AnalysisRecord:
        parsed = parse_multi_file_contracts(source.files)

        cdn: CdnLibrarySource | None = None
        library_source = self._library_source
        if library_source is None:
            library_source, cdn = build_library_source(self._settings)
        try:
            imports = await resolve_imports(
                source.files,
                library_source=library_source,
                fetch_timeout=self._settings.import_fetch_timeout_seconds,
            )
        finally:
            if cdn is not None:
                await cdn.close()

        features = extract_source_features(source.files, parsed)
        is_upgradeable = is_upgradeable_from_source_code(combine_files_for_analysis(source.files))

        return AnalysisRecord(
            address=source.address,
            chain_id=source.chain_id,
            verified=True,
            contract_name=source.contract_name or parsed.main_contract or "",
            parsed=parsed,
            imports=imports,
            dependency_graph=build_import_dependency_graph(source.files, imports),
            features=features,
            is_upgradeable=is_upgradeable,
            cache_eligible=not is_upgradeable,
        )

    def _analyze_bytecode(self, source: BytecodeInput) -> AnalysisRecord:
        result = analyze_bytecode(
            source.address,
            source.bytecode_hex,
            selfdestruct_high_threshold=self._settings.selfdestruct_high_threshold,
            selfdestruct_critical_threshold=self._settings.selfdestruct_critical_threshold,
            access_control_min_selectors=self._settings.access_control_min_selectors,
        )
        eip1167 = looks_like_eip1167(source.bytecode_hex)
        is_upgradeable = eip1167 or is_upgradeable_contract(source.bytecode_hex, result.function_selectors)

        return AnalysisRecord(
            address=source.address,
            chain_id=source.chain_id,
            verified=False,
            bytecode_analysis=result,
            proxy=ProxyInfo(eip1167=eip1167),
            is_upgradeable=is_upgradeable,
            cache_eligible=not is_upgradeable,
        )

    # ── Address flow ─────────────────────────────────────────────────────────

    async def analyze_address(
        self,
        chain_id: int,
        address: str,
        use_cache: bool = True,
    ) -> AnalysisRecord:
        """Fetch, analyze and cache the contract at ``address``.

        The lookup, the fetch and the analysis share one analysis id.

        Raises:
            InvalidAddressError: If the address is malformed
            UnsupportedChainError: If the chain is unknown
            SourceFetchError: If neither source nor bytecode can be fetched
        """
        validate_address(address)
        with analysis_scope():
            return await self._fetch_and_analyze(chain_id, address, use_cache)

    async def _fetch_and_analyze(self, chain_id: int, address: str, use_cache: bool) -> AnalysisRecord:
        if use_cache and self._cache is not None:
            cached = await self._cache.get(address, chain_id)
            if cached is not None:
                logger.info("Cache hit", extra={"address": address, "chain_id": chain_id})
                return cached

        fetcher = self._fetcher or ContractSourceFetcher(settings=self._settings)
        try:
            analysis_input = await _retry_async(
                lambda: fetcher.resolve(chain_id, address),
                retries=self._settings.fetch_retries,
                base_delay=self._settings.fetch_retry_base_delay_seconds,
                label=f"resolve {address}",
            )
        finally:
            if self._fetcher is None:
                await fetcher.close()

        record = await self.analyze(analysis_input)

        if use_cache and self._cache is not None:
            await self._cache.store(record)

        return record
