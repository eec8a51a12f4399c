"""EVM bytecode analyzer: opcode histogram, selector recovery, archetype, risk.

Structural approximation, not a full disassembler:
  - every byte position is treated as a potential opcode (PUSH immediate
    data is NOT skipped), so the histogram over-counts opcodes hidden in
    push data
  - selectors are recovered by matching well-known 4-byte values at
    byte-aligned positions in the raw hex
  - risk findings are independent boolean signals over opcode counts

Nothing here raises on malformed input; invalid hex pairs are ignored.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from enum import Enum

from owdit.analyzer.signatures import (
    ACCESS_CONTROL_SELECTORS,
    ERC20_SELECTORS,
    ERC721_OWNER_OF,
    ERC721_TRANSFER_SELECTORS,
    ERC1155_BALANCE_OF,
    ERC1155_TRANSFER_SELECTORS,
    KNOWN_SELECTORS,
    OWNERSHIP_SELECTORS,
    PROXY_ADMIN_SELECTORS,
    describe_selector,
)
from owdit.core.types import (
    BytecodeAnalysisResult,
    FunctionSelector,
    RiskAssessment,
    RiskSeverity,
)

logger = logging.getLogger(__name__)

SELFDESTRUCT_HIGH_THRESHOLD = 10
SELFDESTRUCT_CRITICAL_THRESHOLD = 100
ACCESS_CONTROL_MIN_SELECTORS = 5

CONTRACT_TYPE_ERC20 = "ERC20 Token"
CONTRACT_TYPE_ERC721 = "ERC721 NFT"
CONTRACT_TYPE_ERC1155 = "ERC1155 Multi-Token"
CONTRACT_TYPE_OWNABLE = "Ownable Contract"
CONTRACT_TYPE_PROXY = "Proxy Contract"
CONTRACT_TYPE_CUSTOM = "Custom Contract"

# EIP-1167 minimal proxy runtime: prefix, 20-byte implementation, suffix
EIP1167_PREFIX = "363d3d373d3d3d363d73"
EIP1167_SUFFIX = "5af43d82803e903d91602b57fd5bf3"

_WHITESPACE_RE = re.compile(r"\s+")
_HEX_PAIR_RE = re.compile(r"^[0-9a-f]{2}$")


# ── EVM Opcode Table ─────────────────────────────────────────────────────────

class Opcode(Enum):
    """Named single-byte EVM opcodes."""
    STOP = 0x00
    ADD = 0x01
    MUL = 0x02
    SUB = 0x03
    DIV = 0x04
    SDIV = 0x05
    MOD = 0x06
    SMOD = 0x07
    ADDMOD = 0x08
    MULMOD = 0x09
    EXP = 0x0A
    SIGNEXTEND = 0x0B
    LT = 0x10
    GT = 0x11
    SLT = 0x12
    SGT = 0x13
    EQ = 0x14
    ISZERO = 0x15
    AND = 0x16
    OR = 0x17
    XOR = 0x18
    NOT = 0x19
    BYTE = 0x1A
    SHL = 0x1B
    SHR = 0x1C
    SAR = 0x1D
    SHA3 = 0x20
    ADDRESS = 0x30
    BALANCE = 0x31
    ORIGIN = 0x32
    CALLER = 0x33
    CALLVALUE = 0x34
    CALLDATALOAD = 0x35
    CALLDATASIZE = 0x36
    CALLDATACOPY = 0x37
    CODESIZE = 0x38
    CODECOPY = 0x39
    GASPRICE = 0x3A
    EXTCODESIZE = 0x3B
    EXTCODECOPY = 0x3C
    RETURNDATASIZE = 0x3D
    RETURNDATACOPY = 0x3E
    EXTCODEHASH = 0x3F
    BLOCKHASH = 0x40
    COINBASE = 0x41
    TIMESTAMP = 0x42
    NUMBER = 0x43
    PREVRANDAO = 0x44
    GASLIMIT = 0x45
    CHAINID = 0x46
    SELFBALANCE = 0x47
    BASEFEE = 0x48
    BLOBHASH = 0x49
    BLOBBASEFEE = 0x4A
    POP = 0x50
    MLOAD = 0x51
    MSTORE = 0x52
    MSTORE8 = 0x53
    SLOAD = 0x54
    SSTORE = 0x55
    JUMP = 0x56
    JUMPI = 0x57
    PC = 0x58
    MSIZE = 0x59
    GAS = 0x5A
    JUMPDEST = 0x5B
    TLOAD = 0x5C
    TSTORE = 0x5D
    MCOPY = 0x5E
    PUSH0 = 0x5F
    CREATE = 0xF0
    CALL = 0xF1
    CALLCODE = 0xF2
    RETURN = 0xF3
    DELEGATECALL = 0xF4
    CREATE2 = 0xF5
    STATICCALL = 0xFA
    REVERT = 0xFD
    INVALID = 0xFE
    SELFDESTRUCT = 0xFF


# Mnemonic for every recognised byte value
OPCODE_NAMES: dict[int, str] = {}
for _op in Opcode:
    OPCODE_NAMES[_op.value] = _op.name
# Fill PUSH range
for _i in range(0x60, 0x80):
    OPCODE_NAMES[_i] = f"PUSH{_i - 0x5F}"
# Fill DUP range
for _i in range(0x80, 0x90):
    OPCODE_NAMES[_i] = f"DUP{_i - 0x7F}"
# Fill SWAP range
for _i in range(0x90, 0xA0):
    OPCODE_NAMES[_i] = f"SWAP{_i - 0x8F}"
# Fill LOG range
for _i in range(0xA0, 0xA5):
    OPCODE_NAMES[_i] = f"LOG{_i - 0xA0}"


def normalize_bytecode(bytecode: str | None) -> str:
    """Lowercase hex without a ``0x`` prefix or embedded whitespace."""
    hex_str = _WHITESPACE_RE.sub("", bytecode or "").lower()
    if hex_str.startswith("0x"):
        hex_str = hex_str[2:]
    return hex_str


# ── Opcode histogram ─────────────────────────────────────────────────────────


def count_opcodes(hex_str: str) -> dict[str, int]:
    """Tally recognised mnemonics over every byte position.

    ``hex_str`` must already be normalised. A trailing odd nibble and
    pairs that are not valid hex are skipped.
    """
    counts: Counter[str] = Counter()
    for i in range(0, len(hex_str) - 1, 2):
        pair = hex_str[i:i + 2]
        if not _HEX_PAIR_RE.match(pair):
            continue
        name = OPCODE_NAMES.get(int(pair, 16))
        if name is not None:
            counts[name] += 1
    return dict(counts)


# ── Selector recovery ────────────────────────────────────────────────────────


def extract_function_selectors(hex_str: str) -> list[FunctionSelector]:
    """Recover well-known selectors in order of first occurrence, deduplicated."""
    found: list[FunctionSelector] = []
    seen: set[str] = set()
    for i in range(0, len(hex_str) - 7, 2):
        candidate = "0x" + hex_str[i:i + 8]
        if candidate in seen or candidate not in KNOWN_SELECTORS:
            continue
        seen.add(candidate)
        described = describe_selector(candidate)
        if described is not None:
            found.append(described)
    return found


def determine_contract_type(selectors: list[FunctionSelector]) -> str:
    """Classify the archetype from the recovered selector set.

    Priority: ERC20, ERC721, ERC1155, Ownable, Proxy, Custom.
    """
    present = {s.selector for s in selectors}
    if ERC20_SELECTORS <= present:
        return CONTRACT_TYPE_ERC20
    if ERC721_OWNER_OF in present and present & ERC721_TRANSFER_SELECTORS:
        return CONTRACT_TYPE_ERC721
    if ERC1155_BALANCE_OF in present and present & ERC1155_TRANSFER_SELECTORS:
        return CONTRACT_TYPE_ERC1155
    if present & OWNERSHIP_SELECTORS:
        return CONTRACT_TYPE_OWNABLE
    if present & PROXY_ADMIN_SELECTORS:
        return CONTRACT_TYPE_PROXY
    return CONTRACT_TYPE_CUSTOM


# ── Risk assessment ──────────────────────────────────────────────────────────


def severity_for(finding_count: int) -> RiskSeverity:
    if finding_count >= 3:
        return RiskSeverity.HIGH
    if finding_count == 2:
        return RiskSeverity.MEDIUM
    return RiskSeverity.LOW


def assess_risks(
    opcode_counters: dict[str, int],
    selectors: list[FunctionSelector],
    *,
    selfdestruct_high_threshold: int = SELFDESTRUCT_HIGH_THRESHOLD,
    selfdestruct_critical_threshold: int = SELFDESTRUCT_CRITICAL_THRESHOLD,
    access_control_min_selectors: int = ACCESS_CONTROL_MIN_SELECTORS,
) -> RiskAssessment:
    """Derive findings, recommendations and a count-based severity.

    Each signal contributes at most one finding. SELFDESTRUCT escalation
    only changes the wording of that finding, never the count.
    """
    risks: list[str] = []
    recommendations: list[str] = []

    selfdestructs = opcode_counters.get("SELFDESTRUCT", 0)
    if selfdestructs > selfdestruct_critical_threshold:
        risks.append(
            f"CRITICAL: Excessive SELFDESTRUCT opcodes ({selfdestructs}) - likely malicious contract"
        )
        recommendations.append("DO NOT INTERACT: contract can be destroyed from many code paths")
    elif selfdestructs > selfdestruct_high_threshold:
        risks.append(
            f"HIGH: Multiple SELFDESTRUCT opcodes ({selfdestructs}) - verify destruction paths"
        )
        recommendations.append("Verify who can trigger contract destruction")
    elif selfdestructs:
        risks.append("Contract can self-destruct")
        recommendations.append("Verify self-destruct functionality is intentional")

    if opcode_counters.get("DELEGATECALL", 0):
        risks.append("Contract uses delegatecall - potential proxy pattern")
        recommendations.append("Verify delegatecall usage is secure")

    if opcode_counters.get("CREATE", 0) or opcode_counters.get("CREATE2", 0):
        risks.append("Contract can create new contracts")
        recommendations.append("Verify contract creation logic")

    if opcode_counters.get("CALL", 0) and opcode_counters.get("SSTORE", 0):
        risks.append("Potential reentrancy vulnerability")
        recommendations.append("Implement reentrancy guards")

    if len(selectors) > access_control_min_selectors and not any(
        s.selector in ACCESS_CONTROL_SELECTORS for s in selectors
    ):
        risks.append("No apparent access control mechanisms")
        recommendations.append("Add access control to privileged functions")

    return RiskAssessment(
        severity=severity_for(len(risks)),
        risks=risks,
        recommendations=recommendations,
    )


def calculate_complexity(opcode_total: int, selector_count: int) -> int:
    """Bounded [0, 100] score, non-decreasing in both inputs."""
    score = round(opcode_total / 100 + selector_count * 5)
    return max(0, min(100, int(score)))


# ── Upgradeability & proxy shape ─────────────────────────────────────────────


def is_upgradeable_contract(bytecode: str | None, selectors: list[FunctionSelector]) -> bool:
    """True when DELEGATECALL appears or a proxy-admin selector was recovered."""
    if count_opcodes(normalize_bytecode(bytecode)).get("DELEGATECALL", 0):
        return True
    return any(s.selector in PROXY_ADMIN_SELECTORS for s in selectors)


def looks_like_eip1167(bytecode: str | None) -> bool:
    """Detect the EIP-1167 minimal proxy runtime layout."""
    hex_str = normalize_bytecode(bytecode)
    return hex_str.startswith(EIP1167_PREFIX) and EIP1167_SUFFIX in hex_str[len(EIP1167_PREFIX) + 40:]


# ── Entry point ──────────────────────────────────────────────────────────────


def analyze_bytecode(
    address: str,
    bytecode_hex: str | None,
    *,
    selfdestruct_high_threshold: int = SELFDESTRUCT_HIGH_THRESHOLD,
    selfdestruct_critical_threshold: int = SELFDESTRUCT_CRITICAL_THRESHOLD,
    access_control_min_selectors: int = ACCESS_CONTROL_MIN_SELECTORS,
) -> BytecodeAnalysisResult:
    """Analyze runtime bytecode.

    Args:
        address: Contract address, carried through unchanged
        bytecode_hex: Hex string, with or without ``0x``
        selfdestruct_high_threshold: Count above which SELFDESTRUCT is HIGH
        selfdestruct_critical_threshold: Count above which it is CRITICAL
        access_control_min_selectors: Selector count above which a missing
            owner/role surface is reported

    Returns:
        BytecodeAnalysisResult; ``is_contract`` is False for empty code
    """
    hex_str = normalize_bytecode(bytecode_hex)
    original = bytecode_hex or "0x"

    if len(hex_str) < 2:
        return BytecodeAnalysisResult(
            address=address,
            bytecode=original,
            is_contract=False,
            risk_assessment=RiskAssessment(severity=RiskSeverity.LOW),
            estimated_complexity=0,
        )

    opcode_counters = count_opcodes(hex_str)
    selectors = extract_function_selectors(hex_str)
    contract_type = determine_contract_type(selectors)
    risk = assess_risks(
        opcode_counters,
        selectors,
        selfdestruct_high_threshold=selfdestruct_high_threshold,
        selfdestruct_critical_threshold=selfdestruct_critical_threshold,
        access_control_min_selectors=access_control_min_selectors,
    )
    complexity = calculate_complexity(sum(opcode_counters.values()), len(selectors))

    logger.info(
        "Bytecode analysis complete: %d bytes, %d selectors, type=%s, severity=%s",
        len(hex_str) // 2, len(selectors), contract_type, risk.severity.value,
        extra={"address": address},
    )

    return BytecodeAnalysisResult(
        address=address,
        bytecode=original,
        is_contract=True,
        function_selectors=selectors,
        opcode_counters=opcode_counters,
        contract_type=contract_type,
        risk_assessment=risk,
        estimated_complexity=complexity,
    )
