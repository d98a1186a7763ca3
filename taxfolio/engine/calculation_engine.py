# taxfolio/engine/calculation_engine.py
import logging
from typing import Iterable, List

from taxfolio.domain.results import ReportResult
from taxfolio.domain.transactions import ProcessedTransaction
from taxfolio.engine.cash_movement_processor import CashMovementProcessor
from taxfolio.engine.dividend_processor import DividendProcessor, dividend_transactions
from taxfolio.engine.option_processor import OptionProcessor
from taxfolio.engine.stock_processor import StockProcessor
from taxfolio.utils.sorting_utils import get_transaction_sort_key
from taxfolio import config as global_config

logger = logging.getLogger(__name__)


def compute_report(
    transactions: Iterable[ProcessedTransaction],
    internal_calculation_precision: int = global_config.INTERNAL_CALCULATION_PRECISION,
    decimal_rounding_mode: str = global_config.DECIMAL_ROUNDING_MODE
) -> ReportResult:
    """
    Derives every report section from one user's transaction history.

    1. Option pass: matches option lots and produces synthetic equity transactions
       for assignments and exercises.
    2. Stock pass: runs over the native trades merged with those synthetic legs.
    3. Dividend and cash aggregation over the native transactions.

    Pure function of its input: no state survives between calls.
    """
    native: List[ProcessedTransaction] = sorted(transactions, key=get_transaction_sort_key)
    logger.info(f"Computing report over {len(native)} transactions.")

    option_result = OptionProcessor(internal_calculation_precision, decimal_rounding_mode).process(native)

    stock_input = sorted(native + option_result.synthetic_transactions, key=get_transaction_sort_key)
    stock_result = StockProcessor(internal_calculation_precision, decimal_rounding_mode).process(stock_input)

    dividend_summary = DividendProcessor(internal_calculation_precision, decimal_rounding_mode).process(native)
    cash_movements = CashMovementProcessor().process(native)

    report = ReportResult(
        sale_details=stock_result.sale_details,
        open_holdings=stock_result.open_holdings,
        option_sale_details=option_result.sale_details,
        option_holdings=option_result.holdings,
        dividend_summary=dividend_summary,
        dividend_transactions=dividend_transactions(native),
        cash_movements=cash_movements,
        unmatched_option_events=option_result.unmatched_events,
        oversold_positions=stock_result.oversold_positions,
    )
    logger.info(
        f"Report computed: {len(report.sale_details)} stock sale details, {len(report.open_holdings)} open lots, "
        f"{len(report.option_sale_details)} option closes, {len(report.option_holdings)} open option lots, "
        f"{len(report.cash_movements)} cash movements, {report.skipped_option_event_count} skipped option events."
    )
    return report
