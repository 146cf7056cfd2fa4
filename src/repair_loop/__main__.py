"""Command line entry point for the Code Repair Loop.

Subcommands:
- analyze: classify an error message
- context: show the smart context for an error location in a file
- fix: run one fix attempt through the configured completion backend

Results go to stdout as JSON (or code, for ``fix``); logs go to stderr.
"""

import argparse
import asyncio
import sys
from pathlib import Path

import structlog
from pydantic import TypeAdapter

from repair_loop._version import __version__
from repair_loop.models.context import SmartContext
from repair_loop.models.errors import AnalyzedError, BuildError, BuildResult, DetectedError

log = structlog.get_logger()


def setup_logging(debug: bool = False, log_format: str = "console") -> None:
    """Configure structured logging with secret sanitization.

    Args:
        debug: Enable debug logging if True
        log_format: Output format ("json" or "console")
    """
    from repair_loop.utils.logging import LogFormat, LogLevel, configure_logging

    configure_logging(
        level=LogLevel.DEBUG if debug else LogLevel.WARNING,
        log_format=LogFormat(log_format.lower()),
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser.

    Returns:
        Configured parser with one subparser per command
    """
    parser = argparse.ArgumentParser(
        prog="repair-loop",
        description="Code Repair Loop - classify, contextualize and fix generated code errors",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    parser.add_argument(
        "--format",
        choices=["json", "console"],
        default="console",
        help="Log output format (default: console)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="Classify an error message")
    analyze.add_argument("error", help="Raw error text")

    context = subparsers.add_parser("context", help="Extract smart context for an error")
    context.add_argument("file", type=Path, help="Source file")
    context.add_argument("--line", type=int, required=True, help="1-based error line")
    context.add_argument("--column", type=int, default=None, help="1-based error column")
    context.add_argument("--error", default="Unknown error", help="Error message")
    context.add_argument("--attempt", type=int, default=1, help="Attempt number (default: 1)")

    fix = subparsers.add_parser("fix", help="Generate one fix for an error")
    fix.add_argument("file", type=Path, help="Source file")
    fix.add_argument("--error", required=True, help="Error message")
    fix.add_argument("--line", type=int, default=None, help="1-based error line")
    fix.add_argument("--column", type=int, default=None, help="1-based error column")
    fix.add_argument("--prompt", default=None, help="Original request that produced the code")
    fix.add_argument("--attempt", type=int, default=1, help="Attempt number (default: 1)")
    fix.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config/config.yaml"),
        help="Path to configuration file (default: config/config.yaml)",
    )
    fix.add_argument("-o", "--output", type=Path, default=None, help="Write fixed code here")
    fix.add_argument(
        "--metrics",
        type=Path,
        default=None,
        help="Write Prometheus metrics for the attempt to this file",
    )

    return parser


def _detect(message: str, line: int | None, column: int | None) -> DetectedError:
    from repair_loop.core.error_detection import ErrorDetectionService

    result = ErrorDetectionService().detect_build_errors(
        BuildResult(
            success=False,
            errors=(BuildError(message=message, line=line, column=column),),
        )
    )
    if result.primary_error is None:
        raise ValueError(f"No error could be detected from: {message!r}")
    return result.primary_error


def run_analyze(args: argparse.Namespace) -> int:
    from repair_loop.core.error_analyzer import ErrorAnalyzer

    analysis = ErrorAnalyzer.analyze(args.error)
    print(TypeAdapter(AnalyzedError).dump_json(analysis, indent=2).decode())
    return 0


def run_context(args: argparse.Namespace) -> int:
    from repair_loop.core.context_extractor import SmartContextExtractor

    source = args.file.read_text()
    error = _detect(args.error, args.line, args.column)
    context = SmartContextExtractor().extract(source, error, args.attempt)
    print(TypeAdapter(SmartContext).dump_json(context, indent=2).decode())
    return 0


async def run_fix(args: argparse.Namespace) -> int:
    """Run a single fix attempt.

    Returns:
        Exit code (0 when a fix was produced)
    """
    from repair_loop.adapters.llm.anthropic import AnthropicCompletionAdapter
    from repair_loop.config.loader import load_config
    from repair_loop.core.fix_generator import IncrementalFixGenerator
    from repair_loop.utils.logging import configure_from_config
    from repair_loop.utils.metrics import get_metrics

    log.info("loading_configuration", path=str(args.config))
    config = load_config(args.config)

    configure_from_config(config.logging, debug=args.debug)

    if config.llm.anthropic is None:
        raise ValueError("llm.anthropic configuration is required for fix")

    adapter = AnthropicCompletionAdapter(
        config.llm.anthropic,
        timeout_ms=config.feedback.timeouts.llm_timeout_ms,
    )
    generator = IncrementalFixGenerator(adapter, config=config.feedback)

    source = args.file.read_text()
    error = _detect(args.error, args.line, args.column)
    result = await generator.generate_fix(source, error, args.attempt, args.prompt)

    if args.metrics:
        args.metrics.write_text(get_metrics().to_prometheus_format())

    if not result.success:
        log.error("fix_failed", strategy=str(result.strategy), error=result.error)
        return 1

    if args.output:
        args.output.write_text(result.fixed_code + "\n")
        log.info("fix_written", path=str(args.output), strategy=str(result.strategy))
    else:
        print(result.fixed_code)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    setup_logging(debug=args.debug, log_format=args.format)

    try:
        if args.command == "analyze":
            return run_analyze(args)
        if args.command == "context":
            return run_context(args)
        return asyncio.run(run_fix(args))
    except FileNotFoundError as e:
        log.error("file_not_found", error=str(e))
        return 1
    except ValueError as e:
        log.error("configuration_invalid", error=str(e))
        return 1
    except KeyboardInterrupt:
        log.info("interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
