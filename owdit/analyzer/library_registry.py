"""Library sources for npm-style Solidity imports.

The built-in registry embeds canonical bodies of widely used security
primitives. Supporting another library is a matter of adding an entry to
``BUILTIN_LIBRARIES``. A CDN-backed source can be chained behind it when
remote fetching is enabled.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


class LibrarySource(Protocol):
    """Anything that can look up the body of a library import path."""

    async def fetch(self, import_path: str) -> str | None:
        """Return source text, None when unknown. May raise on I/O failure."""
        ...


# ── Built-in registry ────────────────────────────────────────────────────────

_OWNABLE = """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.0;

abstract contract Ownable {
    address private _owner;

    event OwnershipTransferred(address indexed previousOwner, address indexed newOwner);

    constructor() {
        _transferOwnership(msg.sender);
    }

    function owner() public view virtual returns (address) {
        return _owner;
    }

    modifier onlyOwner() {
        require(owner() == msg.sender, "Ownable: caller is not the owner");
        _;
    }

    function renounceOwnership() public virtual onlyOwner {
        _transferOwnership(address(0));
    }

    function transferOwnership(address newOwner) public virtual onlyOwner {
        require(newOwner != address(0), "Ownable: new owner is the zero address");
        _transferOwnership(newOwner);
    }

    function _transferOwnership(address newOwner) internal virtual {
        address oldOwner = _owner;
        _owner = newOwner;
        emit OwnershipTransferred(oldOwner, newOwner);
    }
}
"""

_REENTRANCY_GUARD = """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.0;

abstract contract ReentrancyGuard {
    uint256 private constant _NOT_ENTERED = 1;
    uint256 private constant _ENTERED = 2;
    uint256 private _status;

    constructor() {
        _status = _NOT_ENTERED;
    }

    modifier nonReentrant() {
        require(_status != _ENTERED, "ReentrancyGuard: reentrant call");
        _status = _ENTERED;
        _;
        _status = _NOT_ENTERED;
    }
}
"""

_PAUSABLE = """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.0;

import "../utils/Context.sol";

abstract contract Pausable is Context {
    bool private _paused;

    event Paused(address account);
    event Unpaused(address account);

    constructor() {
        _paused = false;
    }

    function paused() public view virtual returns (bool) {
        return _paused;
    }

    modifier whenNotPaused() {
        require(!paused(), "Pausable: paused");
        _;
    }

    modifier whenPaused() {
        require(paused(), "Pausable: not paused");
        _;
    }

    function _pause() internal virtual whenNotPaused {
        _paused = true;
        emit Paused(_msgSender());
    }

    function _unpause() internal virtual whenPaused {
        _paused = false;
        emit Unpaused(_msgSender());
    }
}
"""

_CONTEXT = """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.0;

abstract contract Context {
    function _msgSender() internal view virtual returns (address) {
        return msg.sender;
    }

    function _msgData() internal view virtual returns (bytes calldata) {
        return msg.data;
    }
}
"""

BUILTIN_LIBRARIES: dict[str, str] = {
    "@openzeppelin/contracts/access/Ownable.sol": _OWNABLE,
    "@openzeppelin/contracts/security/ReentrancyGuard.sol": _REENTRANCY_GUARD,
    "@openzeppelin/contracts/utils/ReentrancyGuard.sol": _REENTRANCY_GUARD,
    "@openzeppelin/contracts/security/Pausable.sol": _PAUSABLE,
    "@openzeppelin/contracts/utils/Pausable.sol": _PAUSABLE,
    "@openzeppelin/contracts/utils/Context.sol": _CONTEXT,
}


class BuiltinLibrarySource:
    """Serve library bodies from the embedded registry."""

    def __init__(self, libraries: dict[str, str] | None = None) -> None:
        self._libraries = BUILTIN_LIBRARIES if libraries is None else libraries

    async def fetch(self, import_path: str) -> str | None:
        return self._libraries.get(import_path)


class CdnLibrarySource:
    """Fetch npm package files from a jsDelivr-style CDN."""

    def __init__(
        self,
        base_url: str = "https://cdn.jsdelivr.net/npm",
        client: httpx.AsyncClient | None = None,
        timeout: float = 5.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def fetch(self, import_path: str) -> str | None:
        url = f"{self._base_url}/{import_path}"
        response = await self._client.get(url)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        logger.debug("Fetched %s from CDN (%d bytes)", import_path, len(response.text))
        return response.text

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class ChainedLibrarySource:
    """Try each source in order; the first non-None body wins."""

    def __init__(self, *sources: LibrarySource) -> None:
        self._sources = sources

    async def fetch(self, import_path: str) -> str | None:
        for source in self._sources:
            body = await source.fetch(import_path)
            if body is not None:
                return body
        return None
