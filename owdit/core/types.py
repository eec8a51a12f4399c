"""Shared enums and schemas used across the engine.

Every schema here is a value object produced fresh per analysis. Python
attributes are snake_case; JSON dumps use the camelCase names consumed by
the scoring and cache collaborators (``calledBy``, ``autoFetched``, ...).
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel


class _Schema(BaseModel):
    """Base schema with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        """Dump to JSON-compatible primitives using the wire field names."""
        return self.model_dump(mode="json", by_alias=True)


# ── Enums ────────────────────────────────────────────────────────────────────


class ImportType(str, enum.Enum):
    """Provenance of a Solidity import path."""

    RELATIVE = "relative"
    NPM = "npm"
    GITHUB = "github"
    UNKNOWN = "unknown"


class RiskSeverity(str, enum.Enum):
    """Heuristic severity of a bytecode risk assessment."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ── Engine input ─────────────────────────────────────────────────────────────


class SourceFile(_Schema):
    """One source file of a verified contract."""

    path: str
    content: str = ""


class VerifiedInput(_Schema):
    """Verified multi-file source for a contract address."""

    kind: Literal["verified"] = "verified"
    address: str = ""
    chain_id: int = 1
    contract_name: str = ""
    compiler_version: str = ""
    files: list[SourceFile] = Field(default_factory=list)
    abi: list[dict[str, Any]] = Field(default_factory=list)


class BytecodeInput(_Schema):
    """Deployed runtime bytecode for an unverified contract."""

    kind: Literal["bytecode"] = "bytecode"
    address: str = ""
    chain_id: int = 1
    bytecode_hex: str = "0x"


AnalysisInput = Annotated[Union[VerifiedInput, BytecodeInput], Field(discriminator="kind")]


# ── Source parser ────────────────────────────────────────────────────────────


class ContractInfo(_Schema):
    """Structural facts recovered from one contract body."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str
    path: str
    functions: list[str] = Field(default_factory=list)
    events: list[str] = Field(default_factory=list)
    modifiers: list[str] = Field(default_factory=list)
    is_abstract: bool = False
    inherits: list[str] = Field(default_factory=list)
    line_count: int = 0


class CallGraphNode(_Schema):
    """Incoming and outgoing contract references for one contract."""

    calls: set[str] = Field(default_factory=set)
    called_by: set[str] = Field(default_factory=set)

    @field_serializer("calls", "called_by")
    def _sorted(self, value: set[str]) -> list[str]:
        return sorted(value)


class ParsedFiles(_Schema):
    """Aggregate result of parsing a multi-file source set."""

    contracts: list[ContractInfo] = Field(default_factory=list)
    call_graph: dict[str, CallGraphNode] = Field(default_factory=dict)
    main_contract: str | None = None
    total_lines: int = 0
    total_functions: int = 0
    total_events: int = 0


class SourceFeatures(_Schema):
    """Pattern flags over the combined source of a verified contract."""

    file_count: int = 0
    contract_count: int = 0
    line_count: int = 0
    function_count: int = 0
    has_modifiers: bool = False
    has_events: bool = False
    has_structs: bool = False
    has_enums: bool = False
    has_libraries: bool = False
    has_interfaces: bool = False
    has_delegate_call: bool = False
    has_self_destruct: bool = False
    has_assembly: bool = False
    has_unchecked: bool = False
    has_low_level_call: bool = False
    has_transfer: bool = False
    has_reentrancy_guard: bool = False
    has_ownable: bool = False
    has_pausable: bool = False


# ── Import resolver ──────────────────────────────────────────────────────────


class ResolvedImport(_Schema):
    """An import whose content was located."""

    path: str
    type: ImportType
    resolved: Literal[True] = True
    content: str


class MissingImport(_Schema):
    """An import that could not be located, with the reason."""

    path: str
    type: ImportType
    resolved: Literal[False] = False
    error: str


ImportRecord = Union[ResolvedImport, MissingImport]


class ResolvedImports(_Schema):
    """Outcome of resolving every distinct import path of a file set."""

    resolved: list[ResolvedImport] = Field(default_factory=list)
    missing: list[MissingImport] = Field(default_factory=list)
    auto_fetched: list[ResolvedImport] = Field(default_factory=list)


# ── Bytecode analyzer ────────────────────────────────────────────────────────


class FunctionSelector(_Schema):
    """A public function recovered from a 4-byte selector match."""

    selector: str
    name: str
    signature: str
    inputs: list[str] = Field(default_factory=list)


class RiskAssessment(_Schema):
    """Heuristic risk findings derived from opcode counts."""

    severity: RiskSeverity = RiskSeverity.LOW
    risks: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class BytecodeAnalysisResult(_Schema):
    """Complete result of a bytecode analysis pass."""

    address: str = ""
    bytecode: str = "0x"
    is_contract: bool = False
    function_selectors: list[FunctionSelector] = Field(default_factory=list)
    opcode_counters: dict[str, int] = Field(default_factory=dict)
    contract_type: str = "Custom Contract"
    risk_assessment: RiskAssessment = Field(default_factory=RiskAssessment)
    estimated_complexity: int = Field(default=0, ge=0, le=100)


# ── Assembled record ─────────────────────────────────────────────────────────


class ProxyInfo(_Schema):
    """Proxy signals that do not come from the selector table."""

    eip1167: bool = False


class AnalysisRecord(_Schema):
    """Single analysis record handed to the scoring and cache collaborators."""

    address: str
    chain_id: int
    verified: bool
    contract_name: str = ""
    parsed: ParsedFiles | None = None
    imports: ResolvedImports | None = None
    dependency_graph: dict[str, list[str]] = Field(default_factory=dict)
    features: SourceFeatures | None = None
    bytecode_analysis: BytecodeAnalysisResult | None = None
    proxy: ProxyInfo = Field(default_factory=ProxyInfo)
    is_upgradeable: bool = False
    cache_eligible: bool = True
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    analysis_id: str = ""
