"""Utilities package for the Sparkscan Batch Analyzer.

This package provides the rate gate that paces lookups within a job run.
"""

from .rate_gate import RateGate, RateGateStats

__all__ = [
    "RateGate",
    "RateGateStats",
]
