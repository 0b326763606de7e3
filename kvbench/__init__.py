"""
Benchmark harness for transactional key-value storage engines.
"""

__version__ = "0.1.0"
