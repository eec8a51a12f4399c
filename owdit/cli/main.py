"""Owdit CLI: local smart contract static analysis.

Usage:
    owdit analyze <path...>                    Analyze Solidity files or directories
    owdit analyze --bytecode <hex>             Analyze raw runtime bytecode
    owdit analyze --bytecode-file <file>       Analyze bytecode read from a file
    owdit analyze --address <addr> --chain-id N
                                               Fetch and analyze a deployed contract
    owdit config                               Show current configuration
    owdit --version                            Print version

Examples:
    owdit analyze ./contracts/
    owdit analyze ./contracts/Token.sol --format json
    owdit analyze --address 0x1234...abcd --chain-id 137 --no-cache
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from owdit.core.errors import OwditError
from owdit.core.types import AnalysisRecord, SourceFile

__version__ = "0.1.0"


# ── Coloured output helpers ──────────────────────────────────────────────────

_RESET = "\033[0m"
_BOLD = "\033[1m"
_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"

_SEV_COLOR = {
    "critical": _RED,
    "high": "\033[38;5;208m",  # orange
    "medium": _YELLOW,
    "low": _CYAN,
}


def _c(text: str, code: str) -> str:
    return f"{code}{text}{_RESET}"


# ── Banner ───────────────────────────────────────────────────────────────────

BANNER = rf"""
{_BOLD}{_CYAN}  ___  _    _ ___  ___ _____
 / _ \| |  | |   \|_ _|_   _|
| (_) | |/\| | |) || |  | |
 \___/|__/\__|___/|___| |_|{_RESET}
  {_DIM}Smart Contract Static Analysis - v{__version__}{_RESET}
"""


# ── CLI argument parser ─────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="owdit",
        description="Owdit - smart contract static analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    parser.add_argument("--no-banner", action="store_true", help="Suppress the startup banner")
    parser.add_argument("--quiet", "-q", action="store_true", help="Minimal output")

    sub = parser.add_subparsers(dest="command")

    # ── analyze ──────────────────────────────────────────────────────────────
    analyze_p = sub.add_parser("analyze", help="Analyze Solidity sources, bytecode or an address")
    analyze_p.add_argument("paths", nargs="*", help="Solidity files or directories")
    analyze_p.add_argument("--bytecode", "-b", help="Runtime bytecode as hex")
    analyze_p.add_argument("--bytecode-file", help="File containing runtime bytecode as hex")
    analyze_p.add_argument("--address", "-a", help="On-chain contract address to fetch & analyze")
    analyze_p.add_argument("--chain-id", type=int, default=1, help="Chain id (default: 1)")
    analyze_p.add_argument(
        "--format",
        "-f",
        default="table",
        choices=["table", "json"],
        help="Output format (default: table)",
    )
    analyze_p.add_argument("--output", "-o", help="Write output to file instead of stdout")
    analyze_p.add_argument("--no-cache", action="store_true", help="Bypass the analysis cache")

    # ── config ───────────────────────────────────────────────────────────────
    sub.add_parser("config", help="Show current configuration")

    return parser


# ── Input collection ─────────────────────────────────────────────────────────


def _read_source(path: Path) -> str:
    # invalid UTF-8 becomes U+FFFD
    return path.read_text(encoding="utf-8", errors="replace")


def _collect_sources(paths: list[str]) -> list[SourceFile]:
    """Read .sol files; directories are searched recursively.

    Raises:
        FileNotFoundError: If a path does not exist
    """
    files: list[SourceFile] = []
    for raw in paths:
        path = Path(raw)
        if not path.exists():
            raise FileNotFoundError(f"path '{path}' does not exist")
        if path.is_file():
            files.append(SourceFile(path=path.name, content=_read_source(path)))
            continue
        for sf in sorted(path.rglob("*.sol")):
            files.append(SourceFile(path=sf.relative_to(path).as_posix(), content=_read_source(sf)))
    return files


# ── Rendering ────────────────────────────────────────────────────────────────


def _print_verified(record: AnalysisRecord, quiet: bool = False) -> None:
    parsed = record.parsed
    imports = record.imports
    if parsed is None or imports is None:
        return

    if not quiet:
        print(f"\n{_BOLD}Analysis complete{_RESET} - main contract: {_c(parsed.main_contract or '(none)', _CYAN)}")
        print(
            f"  Contracts: {len(parsed.contracts)}"
            f"  |  Functions: {parsed.total_functions}"
            f"  |  Events: {parsed.total_events}"
            f"  |  Lines: {parsed.total_lines}\n"
        )

    for contract in parsed.contracts:
        tag = _c(" abstract", _DIM) if contract.is_abstract else ""
        bases = _c(f" is {', '.join(contract.inherits)}", _DIM) if contract.inherits else ""
        print(f"  {_BOLD}{contract.name}{_RESET}{bases}{tag}  {_DIM}{contract.path}{_RESET}")
        if not quiet:
            print(
                f"       {_DIM}{len(contract.functions)} functions, "
                f"{len(contract.events)} events, {len(contract.modifiers)} modifiers, "
                f"{contract.line_count} lines{_RESET}"
            )

    print(
        f"\n  Imports: {_c(str(len(imports.resolved)), _GREEN)} resolved"
        f" ({len(imports.auto_fetched)} auto-fetched), "
        f"{_c(str(len(imports.missing)), _YELLOW if imports.missing else _GREEN)} missing"
    )
    if not quiet:
        for missing in imports.missing:
            print(f"       {_DIM}{missing.path}: {missing.error}{_RESET}")

    _print_upgradeability(record)


def _print_bytecode(record: AnalysisRecord, quiet: bool = False) -> None:
    result = record.bytecode_analysis
    if result is None:
        return

    if not result.is_contract:
        print(_c("  No contract code at this address.", _YELLOW))
        return

    severity = result.risk_assessment.severity.value
    badge = _c(f" {severity.upper()} ", _SEV_COLOR.get(severity, "") + _BOLD)
    print(f"\n{_BOLD}Bytecode analysis complete{_RESET} - {_c(result.contract_type, _CYAN)} {badge}")
    print(
        f"  Selectors: {len(result.function_selectors)}"
        f"  |  Complexity: {result.estimated_complexity}/100\n"
    )

    if not quiet:
        for selector in result.function_selectors:
            print(f"  {_DIM}{selector.selector}{_RESET}  {selector.signature}")
        if result.function_selectors:
            print()

    if result.risk_assessment.risks:
        for risk in result.risk_assessment.risks:
            print(f"  {_c('!', _RED)} {risk}")
        for rec in result.risk_assessment.recommendations:
            print(f"    {_DIM}-> {rec}{_RESET}")
    else:
        print(_c("  No risk signals found.", _GREEN))

    _print_upgradeability(record)


def _print_upgradeability(record: AnalysisRecord) -> None:
    if record.is_upgradeable:
        proxy = " (EIP-1167 minimal proxy)" if record.proxy.eip1167 else ""
        print(_c(f"\n  Upgradeable or proxy pattern detected{proxy} - result not cached.", _YELLOW))
    else:
        print(_c("\n  No upgradeability pattern detected.", _GREEN))
    print()


def _emit(record: AnalysisRecord, args: argparse.Namespace) -> None:
    if args.format == "json":
        output = json.dumps(record.to_dict(), indent=2)
        if args.output:
            Path(args.output).write_text(output)
            if not args.quiet:
                print(f"  Written to {_c(args.output, _CYAN)}")
        else:
            print(output)
        return

    if record.verified:
        _print_verified(record, quiet=args.quiet)
    else:
        _print_bytecode(record, quiet=args.quiet)


# ── Analyze command ──────────────────────────────────────────────────────────


async def _run_analyze(args: argparse.Namespace) -> int:
    """Execute an analysis and print results."""
    from owdit.core.cache import AnalysisCache
    from owdit.core.types import BytecodeInput, VerifiedInput
    from owdit.pipeline.orchestrator import AnalysisOrchestrator

    modes = sum(bool(m) for m in (args.paths, args.bytecode, args.bytecode_file, args.address))
    if modes != 1:
        print(
            _c("Error: provide exactly one of <paths>, --bytecode, --bytecode-file or --address.", _RED),
            file=sys.stderr,
        )
        return 2

    try:
        if args.address:
            if not args.quiet:
                print(f"  Fetching contract {_c(args.address, _CYAN)} on chain {args.chain_id}...", file=sys.stderr)
            if args.no_cache:
                record = await AnalysisOrchestrator().analyze_address(
                    args.chain_id, args.address, use_cache=False,
                )
            else:
                async with AnalysisCache() as cache:
                    record = await AnalysisOrchestrator(cache=cache).analyze_address(
                        args.chain_id, args.address,
                    )
        elif args.bytecode or args.bytecode_file:
            bytecode = args.bytecode or Path(args.bytecode_file).read_text(encoding="utf-8")
            record = await AnalysisOrchestrator().analyze(
                BytecodeInput(chain_id=args.chain_id, bytecode_hex=bytecode),
            )
        else:
            files = _collect_sources(args.paths)
            if not files:
                print(_c("Error: no .sol files found.", _RED), file=sys.stderr)
                return 1
            if not args.quiet:
                print(f"  Analyzing {_c(str(len(files)), _CYAN)} Solidity files...", file=sys.stderr)
            record = await AnalysisOrchestrator().analyze(
                VerifiedInput(chain_id=args.chain_id, files=files),
            )
    except (OwditError, OSError, UnicodeDecodeError) as exc:
        print(_c(f"\nAnalysis failed: {exc}", _RED), file=sys.stderr)
        return 1

    _emit(record, args)
    return 0


# ── Config command ───────────────────────────────────────────────────────────


def _run_config() -> int:
    """Print current settings (redacted)."""
    from owdit.core.config import get_settings

    s = get_settings()
    print(f"\n{_BOLD}Owdit Configuration{_RESET}\n")
    for field_name in sorted(type(s).model_fields.keys()):
        val = getattr(s, field_name, "")
        # Redact secrets
        if any(kw in field_name for kw in ("password", "secret", "key", "token")):
            val = "****" if val else "(not set)"
        print(f"  {_DIM}{field_name}:{_RESET}  {val}")
    print()
    return 0


# ── Entrypoint ───────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> int:
    from owdit.core.config import get_settings
    from owdit.core.logging import setup_logging

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"owdit {__version__}")
        return 0

    settings = get_settings()
    setup_logging(settings.app_env, "WARNING" if args.quiet else settings.log_level)

    if not args.no_banner and not args.quiet:
        print(BANNER, file=sys.stderr)

    if not args.command:
        parser.print_help()
        return 0

    if args.command == "config":
        return _run_config()

    if args.command == "analyze":
        return asyncio.run(_run_analyze(args))

    parser.print_help()
    return 0


def run() -> None:
    """Console-script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
