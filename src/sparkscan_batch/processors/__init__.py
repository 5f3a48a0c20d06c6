"""Processors package for the Sparkscan Batch Analyzer.

This package provides the batch execution engine: the runner that works
through one job's address list, the controller that starts and observes
jobs, and result export.
"""

from .batch_runner import BatchRunner
from .batch_types import ProgressCallback, ProgressEvent
from .export import (
    CSV_HEADERS,
    export_csv,
    export_dict,
    export_filename,
    export_json,
    summarize_results,
)
from .job_controller import JobController, normalize_address_list

__all__ = [
    # Main processors
    "BatchRunner",
    "JobController",
    # Progress reporting
    "ProgressEvent",
    "ProgressCallback",
    # Export
    "CSV_HEADERS",
    "export_csv",
    "export_dict",
    "export_json",
    "export_filename",
    "summarize_results",
    # Utility functions
    "normalize_address_list",
]
