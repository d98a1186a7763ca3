# taxfolio/engine/cash_movement_processor.py
import logging
from decimal import Decimal, Context
from typing import Dict, Iterable, List

from taxfolio.domain.enums import CashDirection
from taxfolio.domain.results import CashMovement, CashBalanceSummary
from taxfolio.domain.transactions import ProcessedTransaction
from taxfolio.utils.sorting_utils import get_transaction_sort_key
from taxfolio import config as global_config

logger = logging.getLogger(__name__)


class CashMovementProcessor:
    """
    Ledger of money moved into and out of the account, one movement per transaction
    with a non-zero amount, whatever its order type. `order_type` is carried so callers
    can narrow the ledger down, for example to deposits and withdrawals.
    """

    def process(self, transactions: Iterable[ProcessedTransaction]) -> List[CashMovement]:
        transactions = sorted(transactions, key=get_transaction_sort_key)
        movements: List[CashMovement] = []
        for txn in transactions:
            if txn.amount == Decimal(0):
                continue
            movements.append(CashMovement(
                date=txn.date,
                currency=txn.currency,
                amount=txn.amount,
                amount_eur=txn.amount_eur,
                direction=CashDirection.IN if txn.amount > 0 else CashDirection.OUT,
                order_type=txn.order_type,
                description=txn.description,
                sequence=txn.sequence,
            ))
        logger.info(f"Cash movements: {len(movements)} of {len(transactions)} transactions moved cash.")
        return movements


def summarize_by_currency(movements: Iterable[CashMovement]) -> List[CashBalanceSummary]:
    ctx = Context(prec=global_config.INTERNAL_CALCULATION_PRECISION, rounding=global_config.DECIMAL_ROUNDING_MODE)
    summaries: Dict[str, CashBalanceSummary] = {}
    for movement in movements:
        summary = summaries.setdefault(movement.currency, CashBalanceSummary(currency=movement.currency))
        if movement.direction == CashDirection.IN:
            summary.total_in = ctx.add(summary.total_in, movement.amount)
            summary.total_in_eur = ctx.add(summary.total_in_eur, movement.amount_eur)
        else:
            summary.total_out = ctx.add(summary.total_out, movement.amount.copy_abs())
            summary.total_out_eur = ctx.add(summary.total_out_eur, movement.amount_eur.copy_abs())
        summary.movement_count += 1
    return [summaries[currency] for currency in sorted(summaries)]
