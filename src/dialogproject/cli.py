"""Command-line entry point for importing and checking dialog projects."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Sequence, TextIO

from .export import export_project
from .ingestion import ImportFailure, ProjectImporter
from .migration import MigrationPlan, describe_migration
from .settings import EngineSettings
from .validation import format_validation_report, validate_project


def format_migration_plan(plan: MigrationPlan) -> str:
    """Return a human-friendly summary of a dry-run migration."""

    lines = [
        "Migration Plan",
        "==============",
        f"Current version: {plan.current_version or '(unrecognised)'}",
        f"Target version: {plan.target_version}",
    ]
    if not plan.needs_migration:
        lines.append("No migration needed.")
    elif plan.current_version is None:
        lines.append("The document is not a recognised project and cannot be migrated.")
    else:
        lines.append(
            f"Will migrate {plan.node_count} nodes, {plan.edge_count} edges "
            f"and {plan.tag_count} tags."
        )
    return "\n".join(lines)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="dialogproject",
        description="Import a dialog project file, upgrading and validating it.",
    )
    parser.add_argument("project_file", type=Path, help="Path to a JSON project file.")
    parser.add_argument(
        "--output",
        type=Path,
        help="Write the migrated project to this path when the import succeeds.",
    )
    parser.add_argument(
        "--no-isolation",
        action="store_true",
        help="Run the import in this process instead of a worker process.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Seconds to wait for the isolated import before giving up.",
    )
    parser.add_argument(
        "--plan",
        action="store_true",
        help="Only describe the migration that would be applied.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None, *, stdout: TextIO | None = None) -> int:
    """Entry point used by ``python -m dialogproject``."""

    args = _parse_args(argv)
    out = stdout or sys.stdout
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    try:
        payload = args.project_file.read_bytes()
    except OSError as exc:
        print(f"Unable to read {args.project_file}: {exc}", file=out)
        return 2

    if args.plan:
        try:
            document = json.loads(payload)
        except ValueError:
            print("The file is not valid JSON.", file=out)
            return 1
        print(format_migration_plan(describe_migration(document)), file=out)
        return 0

    settings = EngineSettings.from_env()
    if args.no_isolation:
        settings = replace(settings, use_isolation=False)
    if args.timeout is not None:
        settings = replace(settings, timeout_seconds=args.timeout)

    result = ProjectImporter(settings).import_project(
        payload, origin_name=str(args.project_file)
    )
    if isinstance(result, ImportFailure):
        print(f"Import failed [{result.error_code.value}]: {result.human_message}", file=out)
        return 1

    info = result.migration_info
    if info is not None and info.was_migrated:
        print(f"Migrated from schema {info.from_version} to {info.to_version}.", file=out)
    print(format_validation_report(validate_project(result.project)), file=out)

    if args.output is not None:
        args.output.write_text(export_project(result.project), encoding="utf-8")
        print(f"Wrote {args.output}", file=out)
    return 0


if __name__ == "__main__":  # pragma: no cover - convenience CLI
    raise SystemExit(main())
