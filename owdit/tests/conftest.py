"""Shared fixtures for the Owdit engine test suite."""

from __future__ import annotations

import fnmatch

import pytest

from owdit.core.config import get_settings
from owdit.core.types import SourceFile


# ── Settings ─────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Keep the cached settings free of the developer's environment."""
    monkeypatch.delenv("OWDIT_ETHERSCAN_API_KEY", raising=False)
    monkeypatch.delenv("OWDIT_IMPORT_CDN_ENABLED", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ── Source fixtures ──────────────────────────────────────────────────────────

TOKEN_SOL = """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.0;

import "@openzeppelin/contracts/access/Ownable.sol";
import "./interfaces/IVault.sol";

contract Token is Ownable {
    event Transfer(address indexed from, address indexed to, uint256 value);

    mapping(address => uint256) public balances;

    modifier nonZero(address account) {
        require(account != address(0), "zero");
        _;
    }

    function transfer(address to, uint256 amount) external nonZero(to) returns (bool) {
        balances[msg.sender] -= amount;
        balances[to] += amount;
        emit Transfer(msg.sender, to, amount);
        return true;
    }

    function mint(address to, uint256 amount) external onlyOwner {
        balances[to] += amount;
    }
}
"""

VAULT_INTERFACE_SOL = """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.0;

interface IVault {
    function deposit(uint256 amount) external;
}
"""

FACTORY_SOL = """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.0;

import "./Token.sol";

contract Deployer {
    event Deployed(address token);

    function deploy() external returns (address) {
        Token token = new Token();
        emit Deployed(address(token));
        return address(token);
    }
}
"""


@pytest.fixture
def token_file() -> SourceFile:
    return SourceFile(path="Token.sol", content=TOKEN_SOL)


@pytest.fixture
def project_files() -> list[SourceFile]:
    """A small multi-file project with one relative and one npm import each."""
    return [
        SourceFile(path="Token.sol", content=TOKEN_SOL),
        SourceFile(path="interfaces/IVault.sol", content=VAULT_INTERFACE_SOL),
        SourceFile(path="Deployer.sol", content=FACTORY_SOL),
    ]


# ── Bytecode fixtures ────────────────────────────────────────────────────────

# PUSH4 <selector> per ERC20 function, then CALL and SSTORE
ERC20_BYTECODE = (
    "0x6080604052"
    "6370a08231"  # balanceOf
    "63a9059cbb"  # transfer
    "6323b872dd"  # transferFrom
    "63095ea7b3"  # approve
    "6318160ddd"  # totalSupply
    "f1"          # CALL
    "55"          # SSTORE
)

# EIP-1167 minimal proxy pointing at 0xbebebebe...
EIP1167_BYTECODE = (
    "0x363d3d373d3d3d363d73"
    "bebebebebebebebebebebebebebebebebebebebe"
    "5af43d82803e903d91602b57fd5bf3"
)


@pytest.fixture
def erc20_bytecode() -> str:
    return ERC20_BYTECODE


@pytest.fixture
def eip1167_bytecode() -> str:
    return EIP1167_BYTECODE


# ── Redis fake ───────────────────────────────────────────────────────────────


class FakeRedis:
    """Minimal async Redis mock for testing."""

    def __init__(self):
        self._store: dict[str, str] = {}
        self._ttls: dict[str, int] = {}
        self._zsets: dict[str, dict[str, float]] = {}

    async def ping(self):
        return True

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        self._store[key] = value
        if ex:
            self._ttls[key] = ex

    async def incr(self, key: str) -> int:
        value = int(self._store.get(key, "0")) + 1
        self._store[key] = str(value)
        return value

    async def delete(self, *keys: str) -> int:
        count = 0
        for key in keys:
            if key in self._store:
                del self._store[key]
                count += 1
        return count

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        zset = self._zsets.setdefault(key, {})
        added = sum(1 for member in mapping if member not in zset)
        zset.update(mapping)
        return added

    async def zrem(self, key: str, *members: str) -> int:
        zset = self._zsets.get(key, {})
        return sum(1 for member in members if zset.pop(member, None) is not None)

    async def zcard(self, key: str) -> int:
        return len(self._zsets.get(key, {}))

    async def zrevrange(self, key: str, start: int, end: int) -> list[str]:
        members = sorted(self._zsets.get(key, {}).items(), key=lambda kv: kv[1], reverse=True)
        names = [m for m, _ in members]
        return names[start:] if end == -1 else names[start:end + 1]

    async def scan_iter(self, match: str = "*", count: int = 100):
        for key in list(self._store.keys()):
            if fnmatch.fnmatch(key, match):
                yield key

    async def info(self, section: str = "") -> dict:
        if section == "stats":
            return {"keyspace_hits": 42, "keyspace_misses": 7}
        return {}

    async def close(self):
        self._store.clear()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
