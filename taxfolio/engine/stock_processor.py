# taxfolio/engine/stock_processor.py
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, Context
from typing import Dict, Iterable, List, Optional

from taxfolio.domain.enums import OrderType
from taxfolio.domain.results import PurchaseLot, SaleDetail, HoldingSummary
from taxfolio.domain.transactions import ProcessedTransaction
from taxfolio.engine.fifo_manager import FifoLedger, allocate_pro_rata
from taxfolio.errors import OversoldPosition
from taxfolio.utils.sorting_utils import get_transaction_sort_key
from taxfolio import config as global_config

logger = logging.getLogger(__name__)


@dataclass
class StockProcessingResult:
    sale_details: List[SaleDetail] = field(default_factory=list)
    open_holdings: List[PurchaseLot] = field(default_factory=list)
    oversold_positions: List[OversoldPosition] = field(default_factory=list)


@dataclass
class _SaleSlice:
    acquisition_date: date
    quantity: Decimal
    cost_eur: Decimal
    lot_sequence: Optional[int]
    is_oversold: bool


class StockProcessor:
    """
    FIFO lot matcher for equities. Each call to process() starts from empty ledgers,
    so repeated calls over the same transactions yield identical results.
    """
    def __init__(self,
                 internal_calculation_precision: int = global_config.INTERNAL_CALCULATION_PRECISION,
                 decimal_rounding_mode: str = global_config.DECIMAL_ROUNDING_MODE):
        self.internal_calculation_precision = internal_calculation_precision
        self.decimal_rounding_mode = decimal_rounding_mode
        self.ctx = Context(prec=internal_calculation_precision, rounding=decimal_rounding_mode)

    def process(self, transactions: Iterable[ProcessedTransaction]) -> StockProcessingResult:
        trades = sorted((txn for txn in transactions if txn.order_type.is_trade), key=get_transaction_sort_key)
        logger.info(f"Stock matcher: processing {len(trades)} buy/sell transactions.")

        ledgers: Dict[str, FifoLedger[PurchaseLot]] = {}
        result = StockProcessingResult()

        for txn in trades:
            instrument_id = txn.instrument_id
            if not instrument_id:
                logger.warning(f"Transaction seq {txn.sequence} on {txn.date} has neither ISIN nor product name. Skipping.")
                continue
            ledger = ledgers.get(instrument_id)
            if ledger is None:
                ledger = FifoLedger(instrument_id, "remaining_cost_eur",
                                    self.internal_calculation_precision, self.decimal_rounding_mode)
                ledgers[instrument_id] = ledger

            if txn.order_type == OrderType.BUY:
                self._process_buy(txn, ledger)
            else:
                self._process_sell(txn, ledger, result)

        for instrument_id in sorted(ledgers):
            result.open_holdings.extend(ledgers[instrument_id].open_lots())

        logger.info(
            f"Stock matcher: {len(result.sale_details)} sale details, {len(result.open_holdings)} open lots, "
            f"{len(result.oversold_positions)} oversold sales."
        )
        return result

    def _process_buy(self, txn: ProcessedTransaction, ledger: FifoLedger[PurchaseLot]) -> None:
        quantity = txn.quantity.copy_abs()
        if quantity == Decimal(0):
            logger.warning(f"Buy seq {txn.sequence} for {txn.instrument_id} on {txn.date} has zero quantity. Skipping.")
            return
        total_cost = self.ctx.add(txn.amount_eur.copy_abs(), txn.commission_eur)
        unit_cost = self.ctx.divide(total_cost, quantity).quantize(global_config.OUTPUT_PRECISION_PER_SHARE, context=self.ctx)
        ledger.add_lot(PurchaseLot(
            instrument_id=txn.instrument_id,
            isin=txn.isin,
            product_name=txn.product_name,
            acquisition_date=txn.date,
            quantity_original=quantity,
            quantity_remaining=quantity,
            unit_cost_eur=unit_cost,
            currency=txn.currency,
            source_sequence=txn.sequence,
            order_id=txn.order_id,
            is_synthetic=txn.is_synthetic,
            remaining_cost_eur=total_cost,
        ))

    def _process_sell(self, txn: ProcessedTransaction, ledger: FifoLedger[PurchaseLot],
                      result: StockProcessingResult) -> None:
        quantity = txn.quantity.copy_abs()
        if quantity == Decimal(0):
            logger.warning(f"Sell seq {txn.sequence} for {txn.instrument_id} on {txn.date} has zero quantity. Skipping.")
            return

        consumed, unmatched = ledger.consume(quantity)
        slices = [
            _SaleSlice(detail.lot.acquisition_date, detail.consumed_quantity, detail.value_eur,
                       detail.lot.source_sequence, False)
            for detail in consumed
        ]
        if unmatched > Decimal(0):
            logger.warning(
                f"Oversold position: sale seq {txn.sequence} of {quantity} {txn.instrument_id} on {txn.date} "
                f"exceeds open lots by {unmatched}. Matching the remainder against a zero-cost lot dated at the sale."
            )
            slices.append(_SaleSlice(txn.date, unmatched, Decimal("0"), None, True))
            result.oversold_positions.append(OversoldPosition(
                sale_date=txn.date,
                instrument_id=txn.instrument_id,
                product_name=txn.product_name,
                uncovered_quantity=unmatched,
                sequence=txn.sequence,
                order_id=txn.order_id or None,
            ))

        weights = [s.quantity for s in slices]
        proceeds_shares = allocate_pro_rata(txn.amount_eur.copy_abs(), weights, self.ctx)
        commission_shares = allocate_pro_rata(txn.commission_eur, weights, self.ctx)

        for sale_slice, proceeds, commission in zip(slices, proceeds_shares, commission_shares):
            gain = self.ctx.subtract(self.ctx.subtract(proceeds, sale_slice.cost_eur), commission)
            result.sale_details.append(SaleDetail(
                instrument_id=txn.instrument_id,
                isin=txn.isin,
                product_name=txn.product_name,
                sale_date=txn.date,
                acquisition_date=sale_slice.acquisition_date,
                quantity=sale_slice.quantity,
                proceeds_eur=proceeds,
                cost_basis_eur=sale_slice.cost_eur,
                commission_eur=commission,
                gain_eur=gain,
                holding_period_days=(txn.date - sale_slice.acquisition_date).days,
                currency=txn.currency,
                is_oversold=sale_slice.is_oversold,
                sale_order_id=txn.order_id,
                sale_sequence=txn.sequence,
                lot_sequence=sale_slice.lot_sequence,
            ))


def summarize_holdings(lots: Iterable[PurchaseLot]) -> List[HoldingSummary]:
    """Aggregates open lots per instrument (quantity, remaining cost, average unit cost)."""
    ctx = Context(prec=global_config.INTERNAL_CALCULATION_PRECISION, rounding=global_config.DECIMAL_ROUNDING_MODE)
    grouped: Dict[str, List[PurchaseLot]] = {}
    for lot in lots:
        grouped.setdefault(lot.instrument_id, []).append(lot)

    summaries: List[HoldingSummary] = []
    for instrument_id in sorted(grouped):
        instrument_lots = grouped[instrument_id]
        quantity = sum((lot.quantity_remaining for lot in instrument_lots), Decimal("0"))
        total_cost = sum((lot.total_cost_eur for lot in instrument_lots), Decimal("0"))
        average = ctx.divide(total_cost, quantity).quantize(global_config.OUTPUT_PRECISION_PER_SHARE, context=ctx) if quantity else Decimal("0")
        first = instrument_lots[0]
        summaries.append(HoldingSummary(
            instrument_id=instrument_id,
            isin=first.isin,
            product_name=first.product_name,
            currency=first.currency,
            quantity=quantity,
            total_cost_eur=total_cost,
            average_unit_cost_eur=average,
            lot_count=len(instrument_lots),
        ))
    return summaries
