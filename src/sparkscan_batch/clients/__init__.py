"""API clients package for the Sparkscan Batch Analyzer.

This package provides the Sparkscan address lookup client and the
types describing a lookup outcome.
"""

from .sparkscan_client import SparkscanClient
from .sparkscan_types import (
    AddressSummary,
    FailureKind,
    FailureReason,
    LookupFailure,
    LookupOutcome,
    LookupSuccess,
    extract_addresses_from_text,
    find_token,
    get_btc_balance_sats,
    get_token_balance,
    get_token_count,
    get_token_identifiers,
    get_total_value_usd,
    get_transaction_count,
    is_valid_spark_address,
)

__all__ = [
    # Sparkscan client
    "SparkscanClient",
    # Lookup outcome types
    "LookupOutcome",
    "LookupSuccess",
    "LookupFailure",
    "FailureReason",
    "FailureKind",
    "AddressSummary",
    # Utility functions
    "is_valid_spark_address",
    "extract_addresses_from_text",
    "find_token",
    "get_btc_balance_sats",
    "get_token_balance",
    "get_token_count",
    "get_token_identifiers",
    "get_total_value_usd",
    "get_transaction_count",
]
