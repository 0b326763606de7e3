"""
Benchmarking harness for key-value storage engines.

This package drives write, point-read and scan workloads against an engine,
reports per-scenario latency and throughput in the classic db_bench layout, and
can export the results as CSV files and presentation-ready charts.
"""

from .main import main

__all__ = ["main"]
