"""Type definitions for Sparkscan lookup outcomes and payload helpers."""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any


class FailureKind(str, Enum):
    """Why a single lookup failed."""

    RATE_LIMITED = "rate_limited"
    HTTP_ERROR = "http_error"
    NETWORK_ERROR = "network_error"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class FailureReason:
    """Normalized failure of one lookup."""

    kind: FailureKind
    message: str
    status_code: int | None = None
    last_kind: FailureKind | None = None  # what was being retried, for EXHAUSTED

    @classmethod
    def rate_limited(cls, message: str = "Rate limited") -> "FailureReason":
        return cls(FailureKind.RATE_LIMITED, message, status_code=429)

    @classmethod
    def http_error(cls, status_code: int, message: str) -> "FailureReason":
        return cls(FailureKind.HTTP_ERROR, message, status_code=status_code)

    @classmethod
    def network_error(cls, message: str) -> "FailureReason":
        return cls(FailureKind.NETWORK_ERROR, message)

    @classmethod
    def exhausted(cls, last: "FailureReason") -> "FailureReason":
        """Wrap the last retried failure once the retry budget is spent."""
        if last.kind == FailureKind.RATE_LIMITED:
            message = "Rate limited after multiple retries"
        else:
            message = last.message
        return cls(FailureKind.EXHAUSTED, message, status_code=last.status_code, last_kind=last.kind)

    @property
    def is_retriable(self) -> bool:
        return self.kind in (FailureKind.RATE_LIMITED, FailureKind.NETWORK_ERROR)

    def describe(self) -> str:
        """Human-readable reason stored on the address result."""
        return self.message or self.kind.value.replace("_", " ")


@dataclass(frozen=True)
class LookupSuccess:
    """Lookup returned a payload."""

    payload: Any
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return True

    @property
    def retries(self) -> int:
        return self.attempts - 1


@dataclass(frozen=True)
class LookupFailure:
    """Lookup ended without a payload."""

    reason: FailureReason
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return False

    @property
    def retries(self) -> int:
        return self.attempts - 1


LookupOutcome = LookupSuccess | LookupFailure


@dataclass
class AddressSummary:
    """Aggregate figures over the successful payloads of one job."""

    total_addresses: int = 0
    processed_addresses: int = 0
    successful_lookups: int = 0
    failed_lookups: int = 0
    total_value_usd: Decimal = Decimal("0")
    total_transactions: int = 0
    unique_tokens: set[str] = field(default_factory=set)

    @property
    def unique_token_count(self) -> int:
        return len(self.unique_tokens)

    @property
    def progress_percentage(self) -> int:
        if self.total_addresses == 0:
            return 0
        return round(self.processed_addresses / self.total_addresses * 100)


SPARK_ADDRESS_PREFIX = "sp"
SPARK_ADDRESS_MIN_LENGTH = 21


def is_valid_spark_address(address: Any) -> bool:
    """Check if string looks like a Spark address."""
    if not isinstance(address, str):
        return False
    return address.startswith(SPARK_ADDRESS_PREFIX) and len(address) >= SPARK_ADDRESS_MIN_LENGTH


def extract_addresses_from_text(text: str) -> list[str]:
    """Extract one address per line, skipping blanks and anything that is not a Spark address."""
    return [line.strip() for line in text.splitlines() if is_valid_spark_address(line.strip())]


def _to_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value)) if value is not None else Decimal("0")
    except (InvalidOperation, ValueError):
        return Decimal("0")


def _to_int(value: Any) -> int:
    try:
        return int(value) if value is not None else 0
    except (TypeError, ValueError):
        return 0


def get_btc_balance_sats(payload: dict[str, Any]) -> int:
    """Hard BTC balance in satoshis."""
    balance = payload.get("balance") or {}
    return _to_int(balance.get("btcHardBalanceSats"))


def get_token_count(payload: dict[str, Any]) -> int:
    return _to_int(payload.get("tokenCount"))


def get_transaction_count(payload: dict[str, Any]) -> int:
    return _to_int(payload.get("transactionCount"))


def get_total_value_usd(payload: dict[str, Any]) -> Decimal:
    return _to_decimal(payload.get("totalValueUsd"))


def find_token(payload: dict[str, Any], token_address: str) -> dict[str, Any] | None:
    """Find a token holding by its token address."""
    for token in payload.get("tokens") or []:
        if token.get("tokenAddress") == token_address:
            return token
    return None


def get_token_balance(payload: dict[str, Any], token_address: str | None) -> Decimal:
    """Raw balance of the target token, zero when not held or no target set."""
    if not token_address:
        return Decimal("0")
    token = find_token(payload, token_address)
    if token is None:
        return Decimal("0")
    return _to_decimal(token.get("balance"))


def get_token_identifiers(payload: dict[str, Any]) -> set[str]:
    return {
        token["tokenIdentifier"]
        for token in payload.get("tokens") or []
        if token.get("tokenIdentifier")
    }
