"""Run one benchmark in the current interpreter and write a result file.

This is both the operator's entry point for a quick local run and the
command the Docker and asdf environments execute as their child
process. The fingerprint is taken here, so the result always describes
the interpreter and machine that actually measured.

Usage:
    python -m scripts.run_benchmark --benchmark-config config/benchmarks/short.yaml
    python -m scripts.run_benchmark \\
        --benchmark-config config/benchmarks/full.yaml \\
        --environment-config config/environments/local.yaml \\
        --output results/local/results.json

Output:
    Result file at ``--output`` (codec chosen from the suffix, or by
    ``--format``). Progress is logged to stderr.

Exit codes:
    0: result written.
    2: a configuration file is missing or invalid.
"""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from codecbench.core import execution
from codecbench.core.models import BenchmarkConfig, EnvironmentConfig, EnvironmentKind
from codecbench.core.result import Result, ResultCodec
from codecbench.core.settings import Settings

logger: logging.Logger = logging.getLogger("scripts.run_benchmark")


def default_environment() -> EnvironmentConfig:
    """Environment used when no ``--environment-config`` is given."""
    return EnvironmentConfig(name="local", kind=EnvironmentKind.LOCAL)


def main() -> None:
    """Parse arguments, run the engine, write the result."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Run a codec benchmark in this interpreter",
    )
    parser.add_argument(
        "--benchmark-config",
        type=Path,
        required=True,
        help="Benchmark configuration YAML",
    )
    parser.add_argument(
        "--environment-config",
        type=Path,
        default=None,
        help="Environment configuration YAML (default: plain local environment)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("results/results.yaml"),
        help="Result file to write (default: results/results.yaml)",
    )
    parser.add_argument(
        "--format",
        choices=[c.value for c in ResultCodec],
        default=None,
        help="Result codec (default: from the output suffix)",
    )
    parser.add_argument(
        "--benchmark-config-ref",
        type=str,
        default=None,
        help="Benchmark config path to record instead of --benchmark-config",
    )
    parser.add_argument(
        "--environment-config-ref",
        type=str,
        default=None,
        help="Environment config path to record instead of --environment-config",
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
        environment_config: EnvironmentConfig = (
            EnvironmentConfig.from_file(args.environment_config)
            if args.environment_config
            else default_environment()
        )
    except (OSError, ValidationError, ValueError) as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(2)

    result: Result = execution.run(
        benchmark_config,
        environment_config,
        settings=settings,
        benchmark_config_path=args.benchmark_config_ref or args.benchmark_config,
        environment_config_path=args.environment_config_ref or args.environment_config,
        in_child=True,
    )

    codec: ResultCodec = (
        ResultCodec(args.format) if args.format else ResultCodec.for_path(args.output)
    )
    result.save(args.output, codec)

    omitted: int = len(result.benchmark_result.omissions)
    print(
        f"Wrote {result.platform_string} to {args.output} ({omitted} omission(s))",
        file=sys.stderr,
    )


if __name__ == "__main__":
    main()
