# taxfolio/engine/dividend_processor.py
import logging
from decimal import Context
from typing import Iterable, List

from taxfolio.domain.enums import OrderType
from taxfolio.domain.results import DividendTaxResult, DividendSummaryEntry, DividendYearTotals
from taxfolio.domain.transactions import ProcessedTransaction
from taxfolio.utils.sorting_utils import get_transaction_sort_key
from taxfolio import config as global_config

logger = logging.getLogger(__name__)


class DividendProcessor:
    """Folds dividend and withholding tax transactions into per-(instrument, year) and per-year totals."""

    def __init__(self,
                 internal_calculation_precision: int = global_config.INTERNAL_CALCULATION_PRECISION,
                 decimal_rounding_mode: str = global_config.DECIMAL_ROUNDING_MODE):
        self.ctx = Context(prec=internal_calculation_precision, rounding=decimal_rounding_mode)

    def process(self, transactions: Iterable[ProcessedTransaction]) -> DividendTaxResult:
        result = DividendTaxResult()
        dividend_count = 0
        tax_count = 0

        for txn in dividend_transactions(transactions):
            key = (txn.instrument_id, txn.year)
            entry = result.by_instrument.get(key)
            if entry is None:
                entry = DividendSummaryEntry(
                    instrument_id=txn.instrument_id,
                    isin=txn.isin,
                    product_name=txn.product_name,
                    country_code=txn.country_code,
                    year=txn.year,
                )
                result.by_instrument[key] = entry
            totals = result.by_year.setdefault(txn.year, DividendYearTotals(year=txn.year))

            if txn.order_type == OrderType.DIVIDEND:
                entry.gross_eur = self.ctx.add(entry.gross_eur, txn.amount_eur)
                totals.gross_eur = self.ctx.add(totals.gross_eur, txn.amount_eur)
                entry.payment_count += 1
                dividend_count += 1
            else:
                withheld = txn.amount_eur.copy_abs()
                entry.withheld_eur = self.ctx.add(entry.withheld_eur, withheld)
                totals.withheld_eur = self.ctx.add(totals.withheld_eur, withheld)
                tax_count += 1
            if not entry.country_code and txn.country_code:
                entry.country_code = txn.country_code

        logger.info(
            f"Dividend aggregation: {dividend_count} dividends and {tax_count} withholding tax entries "
            f"across {len(result.by_instrument)} instrument-years."
        )
        return result


def dividend_transactions(transactions: Iterable[ProcessedTransaction]) -> List[ProcessedTransaction]:
    """Dividend and dividend tax transactions in chronological order."""
    return sorted((txn for txn in transactions if txn.order_type.is_dividend_related), key=get_transaction_sort_key)
