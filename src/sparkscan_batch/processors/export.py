"""CSV/JSON export and summary statistics of a job's results."""

import csv
import io
import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..clients import (
    AddressSummary,
    get_btc_balance_sats,
    get_token_balance,
    get_token_count,
    get_token_identifiers,
    get_total_value_usd,
    get_transaction_count,
)
from ..storage import AddressResult, AddressStatus, Job

CSV_HEADERS = [
    "Address",
    "BTC Balance (sats)",
    "Token Count",
    "Transactions",
    "Total Value USD",
    "Target Token Balance",
    "Status",
]


def _successful_payload(result: AddressResult) -> Optional[Dict[str, Any]]:
    if result.status == AddressStatus.SUCCESS and isinstance(result.data, dict):
        return result.data
    return None


def result_to_row(result: AddressResult, target_token_address: Optional[str]) -> List[str]:
    """Flatten one address result into a CSV row."""
    payload = _successful_payload(result)
    if payload is None:
        return [result.address, "0", "0", "0", "0", "0", result.status.value]

    return [
        result.address,
        str(get_btc_balance_sats(payload)),
        str(get_token_count(payload)),
        str(get_transaction_count(payload)),
        str(get_total_value_usd(payload)),
        str(get_token_balance(payload, target_token_address)),
        result.status.value,
    ]


def export_csv(job: Job, results: List[AddressResult]) -> str:
    """Render results as CSV text, one row per address."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for result in results:
        writer.writerow(result_to_row(result, job.target_token_address))
    return buffer.getvalue()


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def job_to_export(job: Job) -> Dict[str, Any]:
    """Job header of the JSON export, keyed like the result entries."""
    return {
        "id": job.id,
        "name": job.name,
        "targetTokenAddress": job.target_token_address,
        "rateLimit": job.rate_limit,
        "status": job.status.value,
        "totalAddresses": job.total_addresses,
        "processedAddresses": job.processed_addresses,
        "successfulLookups": job.successful_lookups,
        "failedLookups": job.failed_lookups,
        "createdAt": _isoformat(job.created_at),
        "completedAt": _isoformat(job.completed_at),
    }


def export_dict(job: Job, results: List[AddressResult]) -> Dict[str, Any]:
    """Build the JSON export document."""
    return {
        "batchJob": job_to_export(job),
        "results": [
            {
                "address": result.address,
                "status": result.status.value,
                "data": result.data,
                "errorMessage": result.error_message,
                "processedAt": _isoformat(result.processed_at),
            }
            for result in results
        ],
    }


def export_json(job: Job, results: List[AddressResult], indent: Optional[int] = 2) -> str:
    return json.dumps(export_dict(job, results), indent=indent, default=str)


def export_filename(job: Job, export_format: str) -> str:
    return f"batch-{job.id}.{export_format}"


def summarize_results(job: Job, results: List[AddressResult]) -> AddressSummary:
    """Aggregate counters and payload totals for display."""
    summary = AddressSummary(
        total_addresses=job.total_addresses,
        processed_addresses=job.processed_addresses,
        successful_lookups=job.successful_lookups,
        failed_lookups=job.failed_lookups,
    )

    total_value = Decimal("0")
    for result in results:
        payload = _successful_payload(result)
        if payload is None:
            continue
        total_value += get_total_value_usd(payload)
        summary.total_transactions += get_transaction_count(payload)
        summary.unique_tokens |= get_token_identifiers(payload)

    summary.total_value_usd = total_value
    return summary
