"""Sparkscan Batch Analyzer.

Batch balance lookups for Spark addresses against the Sparkscan API, with
per-address tracking, rate pacing, retries and CSV/JSON export.
"""

__version__ = "1.0.0"
