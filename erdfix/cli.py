# File: erdfix/cli.py
"""
NexaFlow ERDFix - Command-Line Interface
==========================================

Usage examples::

    # Validate a diagram (default mode)
    erdfix -d model.mmd

    # Apply every auto-fixable fix and write the result
    erdfix -d model.mmd --fix autoFixableOnly -o fixed.mmd

    # Only fix duplicates
    erdfix -d model.mmd --fix-types duplicate_attribute,duplicate_relationship

    # Fix a single warning from a previous validation
    erdfix -d model.mmd --fix-warning warning_123456

    # Machine-readable output
    erdfix -d model.mmd --json

    # Serve the HTTP API
    erdfix --serve --port 8000

Exit codes:
    0 — success
    1 — validation errors
    2 — fix failure
    3 — output error
    4 — input/argument error
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, NoReturn, Optional, Sequence

from pydantic import BaseModel

# ---------------------------------------------------------------------------
# Logger (configured in _setup_logging)
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("erdfix.cli")


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_VALIDATION_ERROR: int = 1
EXIT_FIX_ERROR: int = 2
EXIT_OUTPUT_ERROR: int = 3
EXIT_INPUT_ERROR: int = 4

STDIN_MARKER: str = "-"


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure the ``erdfix`` logger.

    Args:
        verbosity: 0 = WARNING, 1 = INFO, 2+ = DEBUG.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    handler: logging.StreamHandler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    fmt: str = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"
    formatter: logging.Formatter = logging.Formatter(fmt, datefmt="%H:%M:%S")
    handler.setFormatter(formatter)

    root_logger: logging.Logger = logging.getLogger("erdfix")
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    from erdfix import __version__

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="erdfix",
        description=(
            "NexaFlow ERDFix — validation and auto-remediation for Mermaid "
            "ER diagrams.\n\n"
            "Validates entities, relationships and naming, then rewrites the "
            "diagram text to resolve the fixable findings."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s -d model.mmd\n"
            "  %(prog)s -d model.mmd --fix autoFixableOnly -o fixed.mmd\n"
            "  %(prog)s -d model.mmd --fix-warning warning_123456 --json\n"
            "  %(prog)s --serve --port 8000\n"
        ),
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"NexaFlow ERDFix v{__version__}",
    )

    parser.add_argument(
        "-d", "--diagram",
        type=str,
        default=None,
        metavar="PATH",
        help="Diagram source file ('-' reads stdin). Required unless --serve.",
    )
    parser.add_argument(
        "-o", "--output",
        type=str,
        default=None,
        metavar="PATH",
        help=(
            "Write the fixed diagram (fix modes) or the corrected ERD "
            "(validate mode) to PATH."
        ),
    )

    # --- Modes ---
    mode_group = parser.add_argument_group("operation modes")
    exclusive = mode_group.add_mutually_exclusive_group()
    exclusive.add_argument(
        "--fix",
        type=str,
        default=None,
        choices=["all", "autoFixableOnly"],
        metavar="MODE",
        help="Bulk-fix mode: 'all' or 'autoFixableOnly'.",
    )
    exclusive.add_argument(
        "--fix-types",
        type=str,
        default=None,
        metavar="T1,T2",
        help="Bulk-fix only these diagnostic types (comma-separated).",
    )
    exclusive.add_argument(
        "--fix-warning",
        type=str,
        default=None,
        metavar="ID",
        help="Fix a single warning by id.",
    )
    exclusive.add_argument(
        "--serve",
        action="store_true",
        default=False,
        help="Serve the HTTP API with uvicorn.",
    )

    # --- Server ---
    server_group = parser.add_argument_group("server")
    server_group.add_argument("--host", type=str, default="127.0.0.1", help="Bind address.")
    server_group.add_argument("--port", type=int, default=8000, help="Bind port.")

    # --- Configuration ---
    config_group = parser.add_argument_group("configuration")
    config_group.add_argument(
        "--config",
        type=str,
        default=None,
        metavar="PATH",
        help="Engine configuration file (JSON or YAML).",
    )
    config_group.add_argument(
        "--no-known-entities",
        action="store_true",
        default=False,
        help="Disable known-entity detection.",
    )
    config_group.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Print the full result as camelCase JSON.",
    )

    # --- Verbosity ---
    verbosity_group = parser.add_argument_group("verbosity")
    verbosity_group.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG).",
    )
    verbosity_group.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="Suppress all output except errors.",
    )

    return parser


# ---------------------------------------------------------------------------
# Service construction
# ---------------------------------------------------------------------------


def _build_service(args: argparse.Namespace):
    """Service configured from ``--config`` and ``--no-known-entities``."""
    from erdfix.models import EngineConfig
    from erdfix.service import ERDValidationService, load_config_file

    config: EngineConfig = (
        load_config_file(Path(args.config)) if args.config else EngineConfig()
    )
    if args.no_known_entities:
        config = config.model_copy(update={"detect_known_entities": False})
    return ERDValidationService(config=config)


def _read_source(diagram: str) -> str:
    from erdfix.service import read_diagram_file

    if diagram == STDIN_MARKER:
        return sys.stdin.read()
    return read_diagram_file(Path(diagram).resolve())


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def _print_json(model: BaseModel) -> None:
    print(json.dumps(model.model_dump(mode="json", by_alias=True), indent=2))


def _write_output(path: Optional[str], content: str) -> int:
    if path is None:
        return EXIT_SUCCESS
    target: Path = Path(path).resolve()
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    except OSError as exc:
        logger.error("Failed to write %s: %s", target, exc)
        return EXIT_OUTPUT_ERROR
    logger.info("Wrote %d characters to %s.", len(content), target)
    return EXIT_SUCCESS


def _print_diagnostics(warnings: Sequence) -> None:
    for diag in warnings:
        marker: str = "✎" if diag.auto_fixable else "⚠"
        print(f"    {marker} {diag.id}  [{diag.severity}] {diag.type}: {diag.message}")


# ---------------------------------------------------------------------------
# Validate mode
# ---------------------------------------------------------------------------


def _run_validate(service, source: str, args: argparse.Namespace) -> int:
    from erdfix.utils import Timer

    with Timer("validation") as t:
        response = service.validate(source)

    if args.json:
        _print_json(response)
    elif not args.quiet:
        print(f"\n{'='*60}")
        print("  ERD Validation Report")
        print(f"{'='*60}")
        print(f"  Entities:       {response.summary.entity_count}")
        print(f"  Relationships:  {response.summary.relationship_count}")
        print(f"  Known entities: {response.summary.known_entity_match_count}")
        print(f"  Time:           {t.elapsed:.3f}s")
        print(f"  Valid:          {'Yes' if response.validation.is_valid else 'No'}")

        if response.validation.errors:
            print(f"\n  Errors ({len(response.validation.errors)}):")
            for err in response.validation.errors:
                print(f"    ✗ {err}")

        if response.warnings:
            print(f"\n  Warnings ({len(response.warnings)}, ✎ = auto-fixable):")
            _print_diagnostics(response.warnings)

        if response.validation.is_valid and not response.warnings:
            print("\n  ✅ No findings.")
        print(f"{'='*60}\n")

    if response.corrected_erd:
        code: int = _write_output(args.output, response.corrected_erd)
        if code != EXIT_SUCCESS:
            return code

    return EXIT_SUCCESS if response.validation.is_valid else EXIT_VALIDATION_ERROR


# ---------------------------------------------------------------------------
# Fix modes
# ---------------------------------------------------------------------------


def _run_bulk_fix(service, source: str, args: argparse.Namespace) -> int:
    fix_types = args.fix
    if args.fix_types is not None:
        fix_types = [t.strip() for t in args.fix_types.split(",") if t.strip()]
        if not fix_types:
            logger.error("--fix-types needs at least one diagnostic type.")
            return EXIT_INPUT_ERROR

    result = service.bulk_fix(source, None, fix_types)

    if args.json:
        _print_json(result)
    elif not args.quiet:
        summary = result.summary
        print(f"\n{'='*60}")
        print("  ERD Bulk Fix Report")
        print(f"{'='*60}")
        print(f"  Warnings:   {summary.total_warnings} ({summary.selected_warnings} selected)")
        print(f"  Applied:    {summary.fixes_applied}")
        print(f"  Failed:     {summary.fixes_failed}")
        print(f"  Remaining:  {summary.remaining_warning_count}")
        for applied in result.applied_fixes:
            note: str = "  (review)" if applied.requires_manual_review else ""
            print(f"    ✓ {applied.warning_type}: {applied.description}{note}")
        for failed in result.failed_fixes:
            print(f"    ✗ {failed.warning_type}: {failed.error}")
        print(f"{'='*60}\n")
        if args.output is None:
            print(result.fixed_content, end="")

    code: int = _write_output(args.output, result.fixed_content)
    if code != EXIT_SUCCESS:
        return code
    return EXIT_SUCCESS if result.success else EXIT_FIX_ERROR


def _run_fix_warning(service, source: str, args: argparse.Namespace) -> int:
    result = service.fix_warning(source, args.fix_warning)

    if args.json:
        _print_json(result)
    elif not args.quiet:
        print(result.message)
        if result.success and args.output is None and result.fixed_content is not None:
            print(result.fixed_content, end="")

    if not result.success:
        return EXIT_FIX_ERROR
    if result.fixed_content is not None:
        return _write_output(args.output, result.fixed_content)
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Serve mode
# ---------------------------------------------------------------------------


def _run_serve(service, args: argparse.Namespace) -> int:
    import uvicorn

    from erdfix.api import create_app

    logger.info("Serving ERDFix API on %s:%d.", args.host, args.port)
    uvicorn.run(create_app(service), host=args.host, port=args.port)
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def cli_main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """
    Main CLI entry point.

    Args:
        argv: Optional argument list (defaults to sys.argv[1:]).
    """
    parser: argparse.ArgumentParser = _build_parser()
    args: argparse.Namespace = parser.parse_args(argv)

    if args.quiet:
        verbosity: int = -1
    else:
        verbosity = args.verbose
    _setup_logging(verbosity)
    if args.quiet:
        logging.getLogger("erdfix").setLevel(logging.ERROR)

    try:
        service = _build_service(args)
    except (FileNotFoundError, ValueError) as exc:
        # pydantic's ValidationError is a ValueError
        logger.error("Failed to load config: %s", exc)
        sys.exit(EXIT_INPUT_ERROR)

    if args.serve:
        sys.exit(_run_serve(service, args))

    if args.diagram is None:
        logger.error("A diagram is required: use -d/--diagram PATH or --serve.")
        parser.print_usage(sys.stderr)
        sys.exit(EXIT_INPUT_ERROR)

    try:
        source: str = _read_source(args.diagram)
    except (FileNotFoundError, ValueError, OSError) as exc:
        logger.error("Failed to read diagram: %s", exc)
        sys.exit(EXIT_INPUT_ERROR)

    logger.info("Diagram: %s (%d chars)", args.diagram, len(source))

    if args.fix_warning is not None:
        exit_code: int = _run_fix_warning(service, source, args)
    elif args.fix is not None or args.fix_types is not None:
        exit_code = _run_bulk_fix(service, source, args)
    else:
        exit_code = _run_validate(service, source, args)

    if exit_code != EXIT_SUCCESS:
        logger.info("Finished with exit code %d.", exit_code)
    sys.exit(exit_code)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "cli_main",
    "EXIT_SUCCESS",
    "EXIT_VALIDATION_ERROR",
    "EXIT_FIX_ERROR",
    "EXIT_OUTPUT_ERROR",
    "EXIT_INPUT_ERROR",
]

logger.debug("erdfix.cli loaded.")
