"""Type definitions for batch run progress reporting."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable, Dict, Optional

from ..storage import AddressStatus


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted once per address after its outcome has been written."""

    job_id: str
    address_index: int
    address: str
    status: AddressStatus
    processed: int
    total: int
    reason: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_success(self) -> bool:
        return self.status == AddressStatus.SUCCESS

    @property
    def is_last(self) -> bool:
        return self.processed >= self.total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "address_index": self.address_index,
            "address": self.address,
            "status": self.status.value,
            "reason": self.reason,
            "processed": self.processed,
            "total": self.total,
            "timestamp": self.timestamp.isoformat(),
        }


ProgressCallback = Callable[[ProgressEvent], None]
