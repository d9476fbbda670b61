"""Create, edit and inspect result set files.

Usage:
    python -m scripts.manage_resultset create results/all.yaml --name nightly
    python -m scripts.manage_resultset add results/all.yaml results/docker-slim/results.yaml
    python -m scripts.manage_resultset add results/all.yaml new.yaml --replace
    python -m scripts.manage_resultset remove results/all.yaml docker-slim-linux-x86_64-python-3.12.4
    python -m scripts.manage_resultset show results/all.yaml
    python -m scripts.manage_resultset show results/all.yaml --operation parse --size large --format json
    python -m scripts.manage_resultset validate results/*/results.yaml

Exit codes:
    0: success.
    1: the requested change or validation was rejected.
"""

import argparse
import logging
import sys
from pathlib import Path

import yaml
from dotenv import load_dotenv

from codecbench.core.errors import DuplicateResultError, ResultValidationError
from codecbench.core.models import DataSize, Format, Operation
from codecbench.core.report import format_comparison_table
from codecbench.core.result import Result
from codecbench.core.resultset import MergedMeasurements, ResultSet
from codecbench.core.settings import Settings

logger: logging.Logger = logging.getLogger("scripts.manage_resultset")


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def cmd_create(args: argparse.Namespace) -> int:
    if args.resultset.exists() and not args.force:
        logger.error("%s already exists (use --force to overwrite)", args.resultset)
        return 1
    result_set: ResultSet = ResultSet(name=args.name, description=args.description)
    for path in args.results:
        result_set.add_result_file(path)
    result_set.save(args.resultset, embed=args.embed)
    print(f"Created {args.resultset} with {len(result_set)} result(s)")
    return 0


def cmd_add(args: argparse.Namespace) -> int:
    result_set: ResultSet = ResultSet.load(args.resultset)
    for path in args.results:
        result: Result = result_set.add_result_file(path, replace=args.replace)
        print(f"Added {result.platform_string}")
    result_set.save(args.resultset, embed=args.embed)
    return 0


def cmd_remove(args: argparse.Namespace) -> int:
    result_set: ResultSet = ResultSet.load(args.resultset)
    try:
        result_set.remove_result(args.platform)
    except KeyError:
        logger.error(
            "No result for %s (known: %s)",
            args.platform, ", ".join(result_set.platform_strings) or "none",
        )
        return 1
    result_set.save(args.resultset)
    print(f"Removed {args.platform}")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    """Print members, then one comparison table per requested triple."""
    result_set: ResultSet = ResultSet.load(args.resultset)
    print(f"Result set: {result_set.name} ({len(result_set)} result(s))")
    if result_set.description:
        print(f"  {result_set.description}")
    for result in result_set:
        print(f"  - {result.platform_string}  [{', '.join(result.metadata.tags)}]")

    operations: list[Operation] = (
        [Operation(args.operation)] if args.operation else list(Operation)
    )
    sizes: list[DataSize] = [DataSize(args.size)] if args.size else list(DataSize)
    formats: list[Format] = [Format(args.format)] if args.format else list(Format)

    measured: MergedMeasurements = result_set.merge_measurements()
    for operation in operations:
        for data_size in sizes:
            for fmt in formats:
                if not measured.select(operation, data_size, fmt):
                    continue
                print()
                print(format_comparison_table(result_set, operation, data_size, fmt))
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Check result files (or set files) without writing anything."""
    failures: int = 0
    for path in args.paths:
        try:
            if args.set:
                loaded: ResultSet = ResultSet.load(path)
                print(f"OK    {path} ({len(loaded)} result(s))")
            else:
                result: Result = Result.load(path)
                ResultSet.validate_result(result)
                print(f"OK    {path} ({result.platform_string})")
        except (
            ResultValidationError, DuplicateResultError, ValueError, OSError, yaml.YAMLError,
        ) as exc:
            failures += 1
            print(f"FAIL  {path}: {exc}")
    return 1 if failures else 0


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Manage codecbench result sets",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Create a new result set")
    create.add_argument("resultset", type=Path, help="Result set file to write")
    create.add_argument("results", type=Path, nargs="*", help="Result files to include")
    create.add_argument("--name", type=str, default="resultset", help="Set name")
    create.add_argument("--description", type=str, default="", help="Set description")
    create.add_argument("--embed", action="store_true", help="Embed results in the file")
    create.add_argument("--force", action="store_true", help="Overwrite an existing file")
    create.set_defaults(handler=cmd_create)

    add = sub.add_parser("add", help="Add result files to a set")
    add.add_argument("resultset", type=Path, help="Result set file")
    add.add_argument("results", type=Path, nargs="+", help="Result files to add")
    add.add_argument("--replace", action="store_true", help="Replace same-platform results")
    add.add_argument("--embed", action="store_true", help="Embed results in the file")
    add.set_defaults(handler=cmd_add)

    remove = sub.add_parser("remove", help="Remove a result by platform string")
    remove.add_argument("resultset", type=Path, help="Result set file")
    remove.add_argument("platform", type=str, help="Platform string to remove")
    remove.set_defaults(handler=cmd_remove)

    show = sub.add_parser("show", help="Print members and comparison tables")
    show.add_argument("resultset", type=Path, help="Result set file")
    show.add_argument("--operation", choices=[o.value for o in Operation], default=None)
    show.add_argument("--size", choices=[s.value for s in DataSize], default=None)
    show.add_argument("--format", choices=[f.value for f in Format], default=None)
    show.set_defaults(handler=cmd_show)

    validate = sub.add_parser("validate", help="Validate result or set files")
    validate.add_argument("paths", type=Path, nargs="+", help="Files to check")
    validate.add_argument("--set", action="store_true", help="Paths are result set files")
    validate.set_defaults(handler=cmd_validate)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Dispatch to the selected subcommand."""
    args: argparse.Namespace = build_parser().parse_args(argv)

    load_dotenv()
    settings: Settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        code: int = args.handler(args)
    except (ResultValidationError, DuplicateResultError) as exc:
        logger.error("%s", exc)
        code = 1
    except FileNotFoundError as exc:
        logger.error("File not found: %s", exc.filename)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
