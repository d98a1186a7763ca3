# taxfolio/errors.py
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Optional


class TaxfolioError(Exception):
    """Base class for errors surfaced to callers of the import pipeline."""
    retryable: bool = False


class MalformedRecordError(TaxfolioError, ValueError):
    """A raw row could not be normalized. Aborts the whole batch."""

    def __init__(self, row_index: int, field_name: str, value: Any, reason: str = ""):
        self.row_index = row_index
        self.field_name = field_name
        self.value = value
        self.reason = reason
        message = f"Malformed record at row {row_index}: field '{field_name}' has unusable value {value!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class PersistenceFailureError(TaxfolioError):
    """Saving or loading processed transactions failed. Partial writes were rolled back."""
    retryable = True


@dataclass(frozen=True)
class UnmatchedOptionEvent:
    """
    Option event that found no (or too few) open lots on the side it acts on.

    Assignments, exercises and expiries are skipped for the unmatched quantity. A closing
    trade opens a lot on the opposite side for it instead (`opened_opposite_lot`).
    """
    event_date: date
    contract_description: str
    order_type: str
    quantity: Decimal
    sequence: int
    reason: str
    opened_opposite_lot: bool = False


@dataclass(frozen=True)
class OversoldPosition:
    """Sale quantity not covered by open lots, matched against an implicit zero-cost lot."""
    sale_date: date
    instrument_id: str
    product_name: str
    uncovered_quantity: Decimal
    sequence: int
    order_id: Optional[str] = None
