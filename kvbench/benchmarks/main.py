from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from ..engine import EngineError
from .charts import render_results
from .collector import BenchmarkResultCollector, write_manifest
from .config import DEFAULT_BENCHMARKS, DEFAULT_SEED, ConfigurationError, RunConfig, default_db_dir
from .harness import Benchmark

LOGGER = logging.getLogger("kvbench.benchmark")


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise ConfigurationError(message)


def _flag(value: str) -> bool:
    if value not in {"0", "1"}:
        raise argparse.ArgumentTypeError(f"expected 0 or 1, got {value!r}")
    return value == "1"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = _ArgumentParser(
        description="Key-value storage engine benchmark harness",
        allow_abbrev=False,
    )
    parser.add_argument(
        "--benchmarks",
        default=DEFAULT_BENCHMARKS,
        help="Comma-separated list of scenarios to run in order",
    )
    parser.add_argument("--num", type=int, default=1_000_000, help="Number of entries to write")
    parser.add_argument(
        "--reads",
        type=int,
        default=-1,
        help="Number of read operations (negative means --num)",
    )
    parser.add_argument("--value_size", type=int, default=100, help="Size of each value in bytes")
    parser.add_argument(
        "--histogram",
        type=_flag,
        default=False,
        help="Print a latency histogram per scenario (0 or 1)",
    )
    parser.add_argument(
        "--compression_ratio",
        type=float,
        default=0.5,
        help="Fraction of its size a generated value shrinks to when compressed",
    )
    parser.add_argument(
        "--use_existing_db",
        type=_flag,
        default=False,
        help="Keep the existing store; scenarios that need a fresh store are skipped (0 or 1)",
    )
    parser.add_argument("--page_size", type=int, default=4096, help="Engine page size in bytes")
    parser.add_argument(
        "--num_pages",
        type=int,
        default=1024,
        help="Cache size in pages (cache budget = page_size * num_pages)",
    )
    parser.add_argument(
        "--db",
        default=None,
        help="Directory for the benchmark store files (default: $KVBENCH_DB or <tmp>/kvbench)",
    )
    parser.add_argument(
        "--checkpoint_pages",
        type=int,
        default=8,
        help="Checkpoint after this many pages worth of payload bytes",
    )
    parser.add_argument("--seed", type=int, default=DEFAULT_SEED, help="Random seed for keys and values")
    parser.add_argument(
        "--output_dir",
        default=os.environ.get("KVBENCH_OUTPUT_DIR"),
        help="Optional directory for CSV results and charts",
    )
    parser.add_argument(
        "--log_level",
        default=os.environ.get("KVBENCH_LOG_LEVEL", "WARNING"),
        help="Logging level",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> RunConfig:
    return RunConfig(
        benchmarks=args.benchmarks,
        num=args.num,
        reads=args.reads,
        value_size=args.value_size,
        histogram=args.histogram,
        compression_ratio=args.compression_ratio,
        page_size=args.page_size,
        num_pages=args.num_pages,
        use_existing_db=args.use_existing_db,
        db=Path(args.db) if args.db else default_db_dir(),
        checkpoint_pages=args.checkpoint_pages,
        seed=args.seed,
        output_dir=Path(args.output_dir) if args.output_dir else None,
    )


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def export_results(benchmark: Benchmark, output_dir: Path) -> Path:
    collector = BenchmarkResultCollector(benchmark.results)
    artefacts: dict[str, object] = dict(collector.write(output_dir))
    charts = render_results(
        collector.build_dataframe(),
        collector.build_histogram_dataframe(),
        output_dir,
    )
    artefacts["charts"] = [str(path) for path in charts]
    return write_manifest(output_dir, artefacts)


def main(argv: list[str] | None = None) -> int:
    try:
        args = parse_args(argv)
        config = build_config(args)
    except ConfigurationError as exc:
        print(f"Invalid flag: {exc}", file=sys.stderr)
        return 1

    setup_logging(args.log_level)
    LOGGER.info("Benchmark store directory: %s", config.db)

    benchmark = Benchmark(config)
    try:
        benchmark.run()
    except EngineError as exc:
        print(f"engine error: {exc}", file=sys.stderr)
        return 1

    if config.output_dir is not None:
        export_results(benchmark, config.output_dir)
    return 0


if __name__ == "__main__":
    sys.exit(main())
