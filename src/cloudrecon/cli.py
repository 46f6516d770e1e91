"""
CloudRecon CLI entry point.

This module provides the command-line interface for the analysis engine.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any

from cloudrecon import __version__
from cloudrecon.analysis import AnalysisOrchestrator, SnapshotFetchError
from cloudrecon.config import AnalysisConfig, load_config_from_env
from cloudrecon.export import export_report
from cloudrecon.observability import configure_logging_from_env
from cloudrecon.storage import InMemoryResourceStore, ResourceStore, get_store

logger = logging.getLogger(__name__)

ANALYSES = ("all", "dependencies", "security", "cost", "insights")


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="cloudrecon",
        description="CloudRecon - Cloud inventory dependency, security and cost analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"cloudrecon {__version__}",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (can be repeated)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    analyze_parser = subparsers.add_parser(
        "analyze", help="Analyze the discovered resource inventory"
    )
    analyze_parser.add_argument(
        "analysis",
        choices=ANALYSES,
        nargs="?",
        default="all",
        help="Analysis to run (default: all)",
    )
    analyze_parser.add_argument(
        "--config",
        help="Path to a JSON or YAML configuration file",
    )
    analyze_parser.add_argument(
        "--db",
        help="SQLite resource database (overrides configuration)",
    )
    analyze_parser.add_argument(
        "--input",
        help="JSON or JSON Lines resources file to analyze instead of a store",
    )
    analyze_parser.add_argument(
        "--format",
        choices=["table", "json", "yaml", "csv"],
        default="table",
        help="Output format (default: table)",
    )
    analyze_parser.add_argument(
        "--output",
        help="Write the report to this file instead of stdout",
    )

    return parser


def load_config(args: argparse.Namespace) -> AnalysisConfig:
    """Build the configuration from a file or the environment, then CLI overrides."""
    if getattr(args, "config", None):
        config = AnalysisConfig.from_file(args.config)
    else:
        config = load_config_from_env()

    if getattr(args, "db", None):
        config.storage.backend = "local"
        config.storage.db_path = args.db
    return config


def open_store(args: argparse.Namespace, config: AnalysisConfig) -> ResourceStore:
    if getattr(args, "input", None):
        return InMemoryResourceStore.from_file(args.input)
    return get_store(config.storage.backend, **config.storage.store_kwargs())


def format_table(data: list[dict[str, Any]]) -> str:
    """
    Format data as ASCII table.

    Args:
        data: List of dictionaries sharing the same keys

    Returns:
        Formatted table string
    """
    if not data:
        return ""

    headers = list(data[0].keys())
    widths = {h: len(str(h)) for h in headers}
    for row in data:
        for h in headers:
            widths[h] = max(widths[h], len(str(row.get(h, ""))))

    separator = "+" + "+".join("-" * (widths[h] + 2) for h in headers) + "+"
    lines = [
        separator,
        "|" + "|".join(f" {str(h):<{widths[h]}} " for h in headers) + "|",
        separator,
    ]
    for row in data:
        lines.append(
            "|" + "|".join(f" {str(row.get(h, '')):<{widths[h]}} " for h in headers) + "|"
        )
    lines.append(separator)
    return "\n".join(lines)


def _table_rows(analysis: str, result: Any) -> list[dict[str, Any]]:
    if analysis == "dependencies":
        return [
            {
                "source": d.source_id,
                "relationship": d.relationship,
                "target": d.target_id,
                "confidence": d.confidence,
            }
            for d in result.dependencies
        ]
    if analysis == "security":
        return [
            {
                "severity": f.severity.value,
                "resource": f.resource_id,
                "title": f.title,
            }
            for f in result.findings
        ]
    if analysis == "cost":
        return [
            {
                "resource": e.resource_id,
                "provider": e.provider,
                "service": e.service,
                "monthly_cost": f"{e.monthly_cost:.2f}",
            }
            for e in result.estimates
        ]
    return [{"metric": key, "value": value} for key, value in result.summary.to_dict().items()]


def _log_level(args: argparse.Namespace, config: AnalysisConfig) -> str:
    verbose = getattr(args, "verbose", 0)
    if verbose > 1:
        return "DEBUG"
    if verbose == 1:
        return "INFO"
    return config.logging.level


def cmd_analyze(args: argparse.Namespace) -> int:
    """
    Run an analysis and print or write the result.

    Returns:
        Exit code
    """
    try:
        config = load_config(args)
        configure_logging_from_env(
            default_level=_log_level(args, config),
            default_format=config.logging.format,
        )
        store = open_store(args, config)
    except (OSError, ValueError, KeyError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    orchestrator = AnalysisOrchestrator(store, config.performance)
    analysis = args.analysis

    try:
        if analysis == "insights":
            for line in orchestrator.get_analysis_insights():
                print(line)
            return 0
        if analysis == "dependencies":
            result: Any = orchestrator.analyze_dependencies()
        elif analysis == "security":
            result = orchestrator.analyze_security()
        elif analysis == "cost":
            result = orchestrator.analyze_cost()
        else:
            result = orchestrator.analyze_all()
    except SnapshotFetchError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.format == "table":
        output = format_table(_table_rows(analysis, result))
        if args.output:
            with open(args.output, "w", encoding="utf-8") as f:
                f.write(output + "\n")
        else:
            print(output)
    else:
        output = export_report(result, args.format, args.output)
        if not args.output:
            print(output)

    errors = getattr(result, "errors", {})
    for name, message in errors.items():
        print(f"Warning: {name} analysis failed: {message}", file=sys.stderr)

    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    command_handlers = {
        "analyze": cmd_analyze,
    }

    handler = command_handlers.get(args.command)
    if handler:
        return handler(args)

    print(f"Unknown command: {args.command}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
