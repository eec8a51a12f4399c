"""Tests for owdit.analyzer.source_parser."""

from __future__ import annotations

from owdit.analyzer.source_parser import (
    CallGraphBuilder,
    identify_main_contract,
    parse_multi_file_contracts,
    scan_file,
)
from owdit.core.types import CallGraphNode, ContractInfo, SourceFile


class TestScanFile:
    """Brace-counted contract extraction from a single file."""

    def test_extracts_members(self, token_file: SourceFile):
        scanned = scan_file(token_file.path, token_file.content)
        assert len(scanned) == 1
        info = scanned[0].info
        assert info.name == "Token"
        assert info.path == "Token.sol"
        assert info.functions == ["transfer", "mint"]
        assert info.events == ["Transfer"]
        assert info.modifiers == ["nonZero"]
        assert info.inherits == ["Ownable"]
        assert info.is_abstract is False

    def test_line_count_spans_declaration_to_closing_brace(self):
        content = "pragma solidity ^0.8.0;\ncontract A {\n    function f() public {}\n}\n"
        info = scan_file("A.sol", content)[0].info
        assert info.line_count == 3

    def test_multiple_bases_are_trimmed(self):
        content = "contract C is A, B ,  D {\n}\n"
        info = scan_file("C.sol", content)[0].info
        assert info.inherits == ["A", "B", "D"]

    def test_abstract_keyword_on_declaration(self):
        content = "abstract contract Base {\n    function f() public virtual;\n}\n"
        info = scan_file("Base.sol", content)[0].info
        assert info.is_abstract is True

    def test_one_line_contract(self):
        scanned = scan_file("E.sol", "contract Empty {}\ncontract Next {\n}\n")
        assert [s.info.name for s in scanned] == ["Empty", "Next"]
        assert scanned[0].info.line_count == 1

    def test_two_functions_on_one_line(self):
        content = "contract A {\n    function a() public {} function b() public {}\n}\n"
        info = scan_file("A.sol", content)[0].info
        assert info.functions == ["a", "b"]

    def test_unterminated_body_is_still_emitted(self):
        content = "contract Broken {\n    function f() public {\n"
        scanned = scan_file("Broken.sol", content)
        assert len(scanned) == 1
        assert scanned[0].info.functions == ["f"]

    def test_stray_closing_braces_are_ignored(self):
        content = "}\n}\ncontract A {\n    function f() public {}\n}\n}\n}\n"
        scanned = scan_file("A.sol", content)
        assert [sc.info.name for sc in scanned] == ["A"]
        assert scanned[0].info.line_count == 3

    def test_back_to_back_declarations_close_the_previous_body(self):
        content = "contract A {\ncontract B {\n}\n"
        assert [sc.info.name for sc in scan_file("AB.sol", content)] == ["A", "B"]

    def test_interfaces_and_libraries_are_not_contracts(self):
        content = "interface I {\n}\nlibrary L {\n}\n"
        assert scan_file("I.sol", content) == []

    def test_no_contracts(self):
        assert scan_file("Empty.sol", "") == []


class TestCallGraph:
    """Contract-level edges from `new <Contract>` sites."""

    def test_new_creates_symmetric_edge(self, project_files):
        parsed = parse_multi_file_contracts(project_files)
        assert parsed.call_graph["Deployer"].calls == {"Token"}
        assert parsed.call_graph["Token"].called_by == {"Deployer"}
        assert parsed.call_graph["Token"].calls == set()

    def test_unknown_contract_is_ignored(self):
        scanned = scan_file("A.sol", "contract A {\n    function f() public { new Missing(); }\n}\n")
        graph = CallGraphBuilder().build(scanned)
        assert graph["A"].calls == set()
        assert set(graph) == {"A"}

    def test_self_reference_is_ignored(self):
        scanned = scan_file("A.sol", "contract A {\n    function f() public { new A(); }\n}\n")
        graph = CallGraphBuilder().build(scanned)
        assert graph["A"].calls == set()
        assert graph["A"].called_by == set()

    def test_serialises_sorted_camel_case(self, project_files):
        data = parse_multi_file_contracts(project_files).to_dict()
        assert data["callGraph"]["Token"] == {"calls": [], "calledBy": ["Deployer"]}


class TestMainContract:
    """Entry-contract heuristics."""

    def _contract(self, name: str, functions: int = 0) -> ContractInfo:
        return ContractInfo(name=name, path=f"{name}.sol", functions=[f"f{i}" for i in range(functions)])

    def test_empty(self):
        assert identify_main_contract([], {}) is None

    def test_single_contract(self):
        assert identify_main_contract([self._contract("Only")], {}) == "Only"

    def test_keyword_wins(self):
        contracts = [self._contract("Helper", 10), self._contract("TokenFactory")]
        assert identify_main_contract(contracts, {}) == "TokenFactory"

    def test_most_referenced_wins_without_keyword(self, project_files):
        parsed = parse_multi_file_contracts(project_files)
        assert parsed.main_contract == "Token"

    def test_most_functions_fallback(self):
        contracts = [self._contract("A", 1), self._contract("B", 3), self._contract("C", 3)]
        graph = {c.name: CallGraphNode() for c in contracts}
        assert identify_main_contract(contracts, graph) == "B"


class TestParseMultiFile:
    """Aggregates across files."""

    def test_totals(self, project_files):
        parsed = parse_multi_file_contracts(project_files)
        assert [c.name for c in parsed.contracts] == ["Token", "Deployer"]
        assert parsed.total_functions == 3
        assert parsed.total_events == 2
        assert parsed.total_lines == sum(len(f.content.split("\n")) for f in project_files)

    def test_empty_input(self):
        parsed = parse_multi_file_contracts([])
        assert parsed.contracts == []
        assert parsed.main_contract is None
        assert parsed.total_lines == 0

    def test_accepts_plain_mappings(self):
        parsed = parse_multi_file_contracts([{"path": "A.sol", "content": "contract A {\n}\n"}])
        assert parsed.contracts[0].name == "A"

    def test_malformed_entries_are_dropped(self):
        parsed = parse_multi_file_contracts([42, None, {"path": "A.sol", "content": "contract A {}"}])
        assert [c.name for c in parsed.contracts] == ["A"]

    def test_empty_file_counts_one_line(self):
        parsed = parse_multi_file_contracts([SourceFile(path="Empty.sol", content="")])
        assert parsed.contracts == []
        assert parsed.total_lines == 1

    def test_empty_file_alongside_others(self, token_file):
        alone = parse_multi_file_contracts([token_file]).total_lines
        both = parse_multi_file_contracts([token_file, SourceFile(path="Empty.sol", content="")])
        assert both.total_lines == alone + 1

    def test_inherited_sibling_contract(self):
        content = (
            "contract ERC20 {\n"
            "    function transfer(address to, uint256 amount) public returns (bool) {}\n"
            "}\n"
            "\n"
            "contract MyToken is ERC20 {\n"
            "    function mint() external {}\n"
            "}\n"
        )
        parsed = parse_multi_file_contracts([SourceFile(path="MyToken.sol", content=content)])
        by_name = {c.name: c for c in parsed.contracts}
        assert by_name["MyToken"].inherits == ["ERC20"]
        assert by_name["ERC20"].inherits == []
        assert by_name["MyToken"].functions == ["mint"]
