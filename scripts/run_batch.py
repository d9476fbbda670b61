"""Run one benchmark across many environments and aggregate the results.

Each environment is prepared (image build, interpreter install) and run
by its runner; successful results are merged into a result set written
next to the per-environment directories.

Usage:
    python -m scripts.run_batch \\
        --benchmark-config config/benchmarks/short.yaml \\
        --environment-config config/environments/local.yaml \\
        --environment-config config/environments/docker-slim-312.yaml \\
        --output-dir results/

    python -m scripts.run_batch -b config/benchmarks/full.yaml \\
        -e config/environments/*.yaml --max-workers 4 --deadline 1800

Output:
    ``{output-dir}/{environment}/results.yaml`` per environment,
    ``{output-dir}/resultset.yaml`` for the set, summary on stdout.

Exit codes:
    0: at least one environment succeeded.
    1: every environment failed.
    2: invalid configuration.
    130: interrupted (Ctrl+C); running children are terminated.
"""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from codecbench.core.errors import BatchExhaustionError
from codecbench.core.models import BenchmarkConfig, EnvironmentConfig
from codecbench.core.result import ResultCodec
from codecbench.core.settings import Settings
from codecbench.infra.batch import BatchConfig, BatchOrchestrator, BatchReport

logger: logging.Logger = logging.getLogger("scripts.run_batch")

RESULTSET_FILENAME: str = "resultset.yaml"


def main() -> None:
    """Run the batch and write the result set."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Run a codec benchmark across several environments",
    )
    parser.add_argument(
        "-b",
        "--benchmark-config",
        type=Path,
        required=True,
        help="Benchmark configuration YAML",
    )
    parser.add_argument(
        "-e",
        "--environment-config",
        type=Path,
        nargs="+",
        action="extend",
        required=True,
        help="Environment configuration YAML (repeatable)",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("results"),
        help="Root output directory (default: results)",
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=2,
        help="Concurrent non-local environments (default: 2)",
    )
    parser.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Per-environment run deadline in seconds (default: none)",
    )
    parser.add_argument(
        "--format",
        choices=[c.value for c in ResultCodec],
        default=ResultCodec.YAML.value,
        help="Per-environment result codec (default: yaml)",
    )
    parser.add_argument(
        "--name",
        type=str,
        default="batch",
        help="Result set name (default: batch)",
    )
    parser.add_argument(
        "--description",
        type=str,
        default="",
        help="Result set description",
    )
    parser.add_argument(
        "--embed",
        action="store_true",
        help="Embed results in the set file instead of referencing them",
    )
    args: argparse.Namespace = parser.parse_args()

    load_dotenv()
    settings: Settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        benchmark_config: BenchmarkConfig = BenchmarkConfig.from_file(args.benchmark_config)
        environments: list[EnvironmentConfig] = [
            EnvironmentConfig.from_file(path) for path in args.environment_config
        ]
        batch_config: BatchConfig = BatchConfig(
            output_dir=args.output_dir,
            max_workers=args.max_workers,
            deadline_seconds=args.deadline,
            result_codec=ResultCodec(args.format),
            resultset_name=args.name,
            resultset_description=args.description,
        )
    except (OSError, ValidationError, ValueError) as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(2)

    orchestrator: BatchOrchestrator = BatchOrchestrator(batch_config, settings=settings)
    try:
        report: BatchReport = orchestrator.run(
            benchmark_config,
            environments,
            benchmark_config_path=args.benchmark_config,
        )
    except KeyboardInterrupt:
        orchestrator.cancel()
        print("\nInterrupted, running environments terminated", file=sys.stderr)
        sys.exit(130)
    except BatchExhaustionError as exc:
        print("=" * 70, file=sys.stderr)
        print("BATCH FAILED: no environment produced a result", file=sys.stderr)
        print("=" * 70, file=sys.stderr)
        for outcome in exc.outcomes:
            print(
                f"  {outcome.status.value:<15} {outcome.environment:<24} {outcome.error}",
                file=sys.stderr,
            )
        sys.exit(1)
    except ValueError as exc:
        logger.error("Invalid batch: %s", exc)
        sys.exit(2)

    resultset_path: Path = report.result_set.save(
        args.output_dir / RESULTSET_FILENAME, embed=args.embed,
    )
    print(report.summary())
    print(f"\nResult set written to {resultset_path}")


if __name__ == "__main__":
    main()
