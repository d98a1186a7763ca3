# taxfolio/utils/sorting_utils.py
from datetime import date
from typing import Tuple

from taxfolio.domain.transactions import ProcessedTransaction

# Tie-breaking ON THE SAME DAY ONLY. Lower value sorts earlier.
_INTRA_DAY_SORT_ORDER_NATIVE = 0     # Rows recorded in the export
_INTRA_DAY_SORT_ORDER_SYNTHETIC = 1  # Equity legs generated by option assignment/exercise


def get_transaction_sort_key(transaction: ProcessedTransaction) -> Tuple[date, int, int]:
    """
    Deterministic sort key for processed transactions.
    Primary key: transaction date. Synthetic transactions sort after natively recorded
    ones on the same day; insertion sequence breaks the remaining ties.
    """
    intra_day_order = _INTRA_DAY_SORT_ORDER_SYNTHETIC if transaction.is_synthetic else _INTRA_DAY_SORT_ORDER_NATIVE
    return (transaction.date, intra_day_order, transaction.sequence)
