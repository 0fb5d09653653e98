"""Ledger-facing value types."""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, Literal, Optional


LedgerSource = Literal["transaction", "withdrawal", "deposit"]


@dataclass(frozen=True)
class DateRange:
    """Inclusive [start, end] window in naive local time."""
    start: datetime
    end: datetime
    label: str


@dataclass
class LookupResult:
    """A ledger hit projected onto the field set shared by all three ledgers."""
    source: LedgerSource
    id: Any = None
    order_id: Any = None
    reference: Optional[str] = None
    tracking_code: Optional[str] = None
    status: Optional[str] = None
    amount: float = 0.0
    currency: str = "MXN"
    payment_method: Optional[str] = None
    created_at: Any = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
