"""Fetch verified contract source, or deployed bytecode, for an address.

Resolution order: Sourcify (no key needed), then Etherscan v2 when an API
key is configured, then ``eth_getCode`` over JSON-RPC for unverified
contracts.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

import httpx

from owdit.core.chains import ChainConfig, get_chain_config
from owdit.core.config import Settings, get_settings
from owdit.core.errors import InvalidAddressError, SourceFetchError, UnsupportedChainError
from owdit.core.types import AnalysisInput, BytecodeInput, SourceFile, VerifiedInput

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_SOURCE_EXT_RE = re.compile(r"\.(sol|vy)$")


def validate_address(address: str) -> str:
    """Return the address unchanged, or raise InvalidAddressError."""
    if not _ADDRESS_RE.match(address or ""):
        raise InvalidAddressError(f"Invalid contract address format: {address}")
    return address


def _parse_standard_json(source_code: str) -> list[SourceFile] | None:
    """Extract files from Solidity standard JSON input, double-braced or not."""
    text = source_code.strip()
    if text.startswith("{{") and text.endswith("}}"):
        text = text[1:-1]
    try:
        json_input = json.loads(text)
    except json.JSONDecodeError:
        return None
    sources = json_input.get("sources") if isinstance(json_input, dict) else None
    if not isinstance(sources, dict):
        return None
    return [
        SourceFile(path=name, content=(src or {}).get("content", ""))
        for name, src in sources.items()
    ]


class ContractSourceFetcher:
    """Fetch verified sources and runtime bytecode over HTTP."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._client = client or httpx.AsyncClient(
            timeout=self.settings.http_timeout_seconds,
            headers={"Accept": "application/json"},
        )
        self._owns_client = client is None

    async def __aenter__(self) -> "ContractSourceFetcher":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ── Sourcify ─────────────────────────────────────────────────────────────

    async def fetch_from_sourcify(self, chain_id: int, address: str) -> VerifiedInput | None:
        """Fetch from Sourcify API v2. Returns None when not verified there."""
        addr = address.lower()
        url = f"{self.settings.sourcify_api_url.rstrip('/')}/v2/contract/{chain_id}/{addr}"
        try:
            response = await self._client.get(url, params={"fields": "sources,abi,compilation"})
            if response.status_code == 404:
                logger.debug("Contract not verified on Sourcify", extra={"address": addr, "chain_id": chain_id})
                return None
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Sourcify fetch failed: %s", exc, extra={"address": addr, "chain_id": chain_id})
            return None

        if not data.get("match"):
            return None

        files = [
            SourceFile(path=path, content=content or "")
            for path, content in (data.get("sources") or {}).items()
        ]
        if not files:
            logger.debug("Sourcify returned no source files", extra={"address": addr, "chain_id": chain_id})
            return None

        compilation = data.get("compilation") or {}
        return VerifiedInput(
            address=addr,
            chain_id=chain_id,
            contract_name=compilation.get("name") or _SOURCE_EXT_RE.sub("", files[0].path),
            compiler_version=compilation.get("compilerVersion") or "",
            files=files,
            abi=data.get("abi") or [],
        )

    # ── Etherscan ────────────────────────────────────────────────────────────

    async def fetch_from_etherscan(self, chain_id: int, address: str) -> VerifiedInput | None:
        """Fetch from the Etherscan v2 multichain API. Requires an API key."""
        api_key = self.settings.etherscan_api_key
        if not api_key:
            return None

        params = {
            "chainid": chain_id,
            "module": "contract",
            "action": "getsourcecode",
            "address": address,
            "apikey": api_key,
        }
        try:
            response = await self._client.get(self.settings.etherscan_api_url, params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Etherscan fetch failed: %s", exc, extra={"address": address, "chain_id": chain_id})
            return None

        results = data.get("result")
        if data.get("status") != "1" or not isinstance(results, list) or not results:
            return None
        result = results[0]
        source_code = result.get("SourceCode", "")
        if not source_code:
            return None

        contract_name = result.get("ContractName", "")
        files: list[SourceFile] | None = None
        if source_code.lstrip().startswith("{"):
            files = _parse_standard_json(source_code)
            if files is None:
                logger.warning("Failed to parse multi-file source", extra={"address": address})
        if not files:
            files = [SourceFile(path=f"{contract_name or 'Contract'}.sol", content=source_code)]

        abi: list[dict[str, Any]] = []
        try:
            abi = json.loads(result.get("ABI") or "[]")
        except json.JSONDecodeError:
            # "Contract source code not verified" and similar plain-text ABIs
            abi = []

        return VerifiedInput(
            address=address,
            chain_id=chain_id,
            contract_name=contract_name,
            compiler_version=result.get("CompilerVersion", ""),
            files=files,
            abi=abi if isinstance(abi, list) else [],
        )

    # ── RPC ──────────────────────────────────────────────────────────────────

    def _rpc_url(self, chain: ChainConfig) -> str:
        return self.settings.rpc_url_overrides.get(chain.chain_id, chain.rpc_url)

    async def fetch_bytecode(self, chain_id: int, address: str) -> str:
        """Return deployed runtime bytecode via ``eth_getCode``.

        Raises:
            UnsupportedChainError: If the chain is unknown
            SourceFetchError: If the RPC request fails or returns an error
        """
        chain = get_chain_config(chain_id)
        if chain is None:
            raise UnsupportedChainError(f"Unsupported chain: {chain_id}")

        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "eth_getCode",
            "params": [address, "latest"],
        }
        try:
            response = await self._client.post(self._rpc_url(chain), json=payload)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise SourceFetchError(f"eth_getCode failed on {chain.name}: {exc}") from exc

        if data.get("error"):
            raise SourceFetchError(f"eth_getCode error on {chain.name}: {data['error']}")
        return data.get("result") or "0x"

    # ── Resolution ───────────────────────────────────────────────────────────

    async def resolve(self, chain_id: int, address: str) -> AnalysisInput:
        """Resolve an address to verified source or, failing that, bytecode.

        Raises:
            InvalidAddressError: If the address is malformed
            UnsupportedChainError: If the chain is unknown
            SourceFetchError: If even the bytecode cannot be fetched
        """
        validate_address(address)
        if get_chain_config(chain_id) is None:
            raise UnsupportedChainError(f"Unsupported chain: {chain_id}")

        verified = await self.fetch_from_sourcify(chain_id, address)
        if verified is not None:
            logger.info("Found verified source on Sourcify", extra={"address": address, "chain_id": chain_id})
            return verified

        verified = await self.fetch_from_etherscan(chain_id, address)
        if verified is not None:
            logger.info("Found verified source on Etherscan", extra={"address": address, "chain_id": chain_id})
            return verified

        logger.info("No verified source; falling back to bytecode", extra={"address": address, "chain_id": chain_id})
        bytecode = await self.fetch_bytecode(chain_id, address)
        return BytecodeInput(address=address, chain_id=chain_id, bytecode_hex=bytecode)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._owns_client:
            await self._client.aclose()
