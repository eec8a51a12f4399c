"""Line-oriented structural scanner for multi-file Solidity sources.

Structural approximation, not a compiler front-end:
  - contract bodies are delimited by brace counting from a line that
    declares ``contract <Name> [is A, B] {``
  - functions, events and modifiers are picked up by keyword regexes on
    each body line
  - the call graph only records ``new <Contract>`` construction sites
    between contracts of the same analysis

Malformed input yields partial results; nothing here raises.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from owdit.analyzer.sources import coerce_files
from owdit.core.types import CallGraphNode, ContractInfo, ParsedFiles

logger = logging.getLogger(__name__)

_CONTRACT_RE = re.compile(r"\bcontract\s+(\w+)(?:\s+is\s+([^{]+))?\s*\{")
_FUNCTION_RE = re.compile(r"\bfunction\s+(\w+)")
_EVENT_RE = re.compile(r"\bevent\s+(\w+)")
_MODIFIER_RE = re.compile(r"\bmodifier\s+(\w+)")
_ABSTRACT_RE = re.compile(r"\babstract\b")
_NEW_RE = re.compile(r"\bnew\s+(\w+)")

MAIN_CONTRACT_KEYWORDS = ("main", "primary", "core", "master", "factory")


# ── Scanner ──────────────────────────────────────────────────────────────────


@dataclass
class _OpenContract:
    """Mutable accumulator for a contract body still being scanned."""
    name: str
    path: str
    start_line: int
    inherits: list[str] = field(default_factory=list)
    functions: list[str] = field(default_factory=list)
    events: list[str] = field(default_factory=list)
    modifiers: list[str] = field(default_factory=list)
    is_abstract: bool = False
    body: list[str] = field(default_factory=list)

    def scan(self, text: str) -> None:
        self.functions.extend(_FUNCTION_RE.findall(text))
        self.events.extend(_EVENT_RE.findall(text))
        self.modifiers.extend(_MODIFIER_RE.findall(text))
        if _ABSTRACT_RE.search(text):
            self.is_abstract = True
        self.body.append(text)

    def freeze(self, end_line: int) -> ContractInfo:
        return ContractInfo(
            name=self.name,
            path=self.path,
            functions=list(self.functions),
            events=list(self.events),
            modifiers=list(self.modifiers),
            is_abstract=self.is_abstract,
            inherits=list(self.inherits),
            line_count=max(end_line - self.start_line + 1, 1),
        )


@dataclass
class ScannedContract:
    """A parsed contract plus the raw body text used for call detection."""
    info: ContractInfo
    body: str


def scan_file(path: str, content: str) -> list[ScannedContract]:
    """Scan one file and return every contract body found, in order."""
    lines = content.split("\n")
    found: list[ScannedContract] = []
    current: _OpenContract | None = None
    depth = 0

    def close(end_line: int) -> None:
        nonlocal current
        if current is None:
            return
        found.append(ScannedContract(current.freeze(end_line), "\n".join(current.body)))
        current = None

    for idx, raw in enumerate(lines):
        line = raw.strip()

        match = _CONTRACT_RE.search(line)
        if match:
            if current is not None:
                # A new declaration before the previous body closed
                close(idx - 1)
            bases = match.group(2)
            current = _OpenContract(
                name=match.group(1),
                path=path,
                start_line=idx,
                inherits=[b.strip() for b in bases.split(",") if b.strip()] if bases else [],
                is_abstract=bool(_ABSTRACT_RE.search(line[: match.start()])),
            )
            rest = line[match.end() - 1:]
            depth = rest.count("{") - rest.count("}")
            current.scan(rest[1:])
            if depth <= 0:
                close(idx)
            continue

        if current is None:
            continue

        depth += line.count("{") - line.count("}")
        current.scan(line)
        if depth <= 0:
            close(idx)

    if current is not None:
        # Unterminated body: keep what we have
        close(len(lines) - 1)

    return found


# ── Call graph ───────────────────────────────────────────────────────────────


class CallGraphBuilder:
    """Build contract-level call edges from ``new <Contract>`` sites."""

    def build(self, scanned: list[ScannedContract]) -> dict[str, CallGraphNode]:
        graph: dict[str, CallGraphNode] = {}
        for sc in scanned:
            graph.setdefault(sc.info.name, CallGraphNode())

        known = set(graph)
        for sc in scanned:
            caller = sc.info.name
            # Whole body, not just function names: `new X` only appears in statements
            for callee in _NEW_RE.findall(sc.body):
                if callee == caller or callee not in known:
                    continue
                graph[caller].calls.add(callee)
                graph[callee].called_by.add(caller)

        return graph


def identify_main_contract(
    contracts: list[ContractInfo],
    call_graph: dict[str, CallGraphNode],
) -> str | None:
    """Pick the most likely entry contract.

    Priority: a name containing a main-ish keyword, then the most
    referenced contract, then the contract with the most functions.
    Ties go to the earliest contract in parse order.
    """
    if not contracts:
        return None
    if len(contracts) == 1:
        return contracts[0].name

    for contract in contracts:
        lowered = contract.name.lower()
        if any(keyword in lowered for keyword in MAIN_CONTRACT_KEYWORDS):
            return contract.name

    most_referenced: str | None = None
    max_refs = 0
    for contract in contracts:
        refs = len(call_graph.get(contract.name, CallGraphNode()).called_by)
        if refs > max_refs:
            max_refs = refs
            most_referenced = contract.name
    if most_referenced is not None:
        return most_referenced

    most_functions = contracts[0]
    for contract in contracts[1:]:
        if len(contract.functions) > len(most_functions.functions):
            most_functions = contract
    return most_functions.name


# ── Entry point ──────────────────────────────────────────────────────────────


def parse_multi_file_contracts(files: Iterable[Any]) -> ParsedFiles:
    """Parse a set of Solidity files into contracts, a call graph and totals."""
    scanned: list[ScannedContract] = []
    total_lines = 0

    for source in coerce_files(files):
        total_lines += len(source.content.split("\n"))
        scanned.extend(scan_file(source.path, source.content))

    contracts = [sc.info for sc in scanned]
    call_graph = CallGraphBuilder().build(scanned)
    main_contract = identify_main_contract(contracts, call_graph)

    logger.debug(
        "Parsed %d contracts (%d lines), main=%s",
        len(contracts), total_lines, main_contract,
    )

    return ParsedFiles(
        contracts=contracts,
        call_graph=call_graph,
        main_contract=main_contract,
        total_lines=total_lines,
        total_functions=sum(len(c.functions) for c in contracts),
        total_events=sum(len(c.events) for c in contracts),
    )
