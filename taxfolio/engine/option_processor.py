# taxfolio/engine/option_processor.py
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, Context
from typing import Dict, Iterable, List, Tuple

from taxfolio.domain.enums import OrderType, ContractType, OptionDirection, OptionCloseState
from taxfolio.domain.results import OptionHolding, OptionSaleDetail
from taxfolio.domain.transactions import ProcessedTransaction
from taxfolio.engine.fifo_manager import FifoLedger, ConsumedLotDetail, allocate_pro_rata
from taxfolio.errors import UnmatchedOptionEvent
from taxfolio.utils.sorting_utils import get_transaction_sort_key
from taxfolio import config as global_config

logger = logging.getLogger(__name__)

ContractKey = Tuple[str, Decimal, date, ContractType]


@dataclass
class OptionProcessingResult:
    sale_details: List[OptionSaleDetail] = field(default_factory=list)
    holdings: List[OptionHolding] = field(default_factory=list)
    synthetic_transactions: List[ProcessedTransaction] = field(default_factory=list)
    unmatched_events: List[UnmatchedOptionEvent] = field(default_factory=list)


class _ContractLedgers:
    """Long and short FIFO ledgers of one option contract."""
    def __init__(self, key: ContractKey, precision: int, rounding: str):
        self.long = FifoLedger(("LONG",) + key, "remaining_premium_eur", precision, rounding)
        self.short = FifoLedger(("SHORT",) + key, "remaining_premium_eur", precision, rounding)

    def side(self, direction: OptionDirection) -> FifoLedger[OptionHolding]:
        return self.long if direction == OptionDirection.LONG else self.short


def _opposite(direction: OptionDirection) -> OptionDirection:
    return OptionDirection.SHORT if direction == OptionDirection.LONG else OptionDirection.LONG


def contract_key_for(txn: ProcessedTransaction) -> ContractKey:
    option = txn.option
    return (txn.instrument_id, option.strike, option.expiry, option.contract_type)


def describe_contract(txn: ProcessedTransaction) -> str:
    option = txn.option
    return f"{txn.product_name or txn.instrument_id} {option.contract_type.name} {option.strike} {option.expiry.isoformat()}"


class OptionProcessor:
    """
    FIFO lot matcher for option contracts.

    Opening trades create long (bought) or short (written) lots per contract. Closing trades,
    assignments, exercises and expiries consume them. Assignments and exercises also emit a
    synthetic equity transaction at the strike price for the stock matcher to pick up.
    """
    def __init__(self,
                 internal_calculation_precision: int = global_config.INTERNAL_CALCULATION_PRECISION,
                 decimal_rounding_mode: str = global_config.DECIMAL_ROUNDING_MODE):
        self.internal_calculation_precision = internal_calculation_precision
        self.decimal_rounding_mode = decimal_rounding_mode
        self.ctx = Context(prec=internal_calculation_precision, rounding=decimal_rounding_mode)

    def process(self, transactions: Iterable[ProcessedTransaction]) -> OptionProcessingResult:
        events = sorted((txn for txn in transactions if txn.order_type.is_option_event), key=get_transaction_sort_key)
        logger.info(f"Option matcher: processing {len(events)} option transactions.")

        contracts: Dict[ContractKey, _ContractLedgers] = {}
        result = OptionProcessingResult()

        for txn in events:
            key = contract_key_for(txn)
            ledgers = contracts.get(key)
            if ledgers is None:
                ledgers = _ContractLedgers(key, self.internal_calculation_precision, self.decimal_rounding_mode)
                contracts[key] = ledgers

            if txn.order_type == OrderType.OPTION_OPEN:
                self._process_open(txn, key, ledgers, result)
            elif txn.order_type == OrderType.OPTION_CLOSE:
                self._process_close(txn, key, ledgers, result)
            elif txn.order_type == OrderType.OPTION_ASSIGNMENT:
                self._process_delivery(txn, ledgers.short, OptionCloseState.ASSIGNED, result)
            elif txn.order_type == OrderType.OPTION_EXERCISE:
                self._process_delivery(txn, ledgers.long, OptionCloseState.EXERCISED, result)
            elif txn.order_type == OrderType.OPTION_EXPIRY:
                self._process_expiry(txn, ledgers, result)
            else:
                raise ValueError(f"Unhandled option order type {txn.order_type}")

        for ledgers in contracts.values():
            result.holdings.extend(ledgers.long.open_lots())
            result.holdings.extend(ledgers.short.open_lots())
        result.holdings.sort(key=lambda h: (h.contract_key[0], h.expiry, h.strike, h.contract_type.name,
                                            h.direction.name, h.open_date, h.source_sequence))

        if result.unmatched_events:
            logger.warning(f"Option matcher: {len(result.unmatched_events)} option events did not match an open position.")
        logger.info(
            f"Option matcher: {len(result.sale_details)} closed slices, {len(result.holdings)} open option lots, "
            f"{len(result.synthetic_transactions)} synthetic equity transactions."
        )
        return result

    # --- opening / closing trades ---

    def _process_open(self, txn: ProcessedTransaction, key: ContractKey, ledgers: _ContractLedgers,
                      result: OptionProcessingResult) -> None:
        direction = OptionDirection.LONG if txn.quantity > 0 else OptionDirection.SHORT
        quantity = txn.quantity.copy_abs()
        opposite = ledgers.side(_opposite(direction))

        closing_quantity = min(quantity, opposite.get_current_position_quantity())
        opening_quantity = quantity - closing_quantity
        weights = [w for w in (closing_quantity, opening_quantity) if w > 0]
        amount_shares = allocate_pro_rata(txn.amount_eur.copy_abs(), weights, self.ctx)
        commission_shares = allocate_pro_rata(txn.commission_eur, weights, self.ctx)

        if closing_quantity > 0:
            logger.warning(
                f"Opening trade seq {txn.sequence} for {describe_contract(txn)} offsets an open "
                f"{_opposite(direction).name.lower()} position of {closing_quantity}. Treating that part as a close."
            )
            self._close_against(txn, opposite, closing_quantity, amount_shares.pop(0), commission_shares.pop(0), result)
        if opening_quantity > 0:
            self._open_lot(txn, key, direction, opening_quantity, amount_shares[0], commission_shares[0], ledgers)

    def _process_close(self, txn: ProcessedTransaction, key: ContractKey, ledgers: _ContractLedgers,
                       result: OptionProcessingResult) -> None:
        # Buying to close consumes written (short) lots; selling to close consumes bought (long) lots
        closed_direction = OptionDirection.SHORT if txn.quantity > 0 else OptionDirection.LONG
        ledger = ledgers.side(closed_direction)
        quantity = txn.quantity.copy_abs()

        closing_quantity = min(quantity, ledger.get_current_position_quantity())
        remainder = quantity - closing_quantity
        weights = [w for w in (closing_quantity, remainder) if w > 0]
        amount_shares = allocate_pro_rata(txn.amount_eur.copy_abs(), weights, self.ctx)
        commission_shares = allocate_pro_rata(txn.commission_eur, weights, self.ctx)

        if closing_quantity > 0:
            self._close_against(txn, ledger, closing_quantity, amount_shares.pop(0), commission_shares.pop(0), result)
        if remainder > 0:
            opened_direction = _opposite(closed_direction)
            self._record_unmatched(
                txn, remainder,
                f"exceeds the open {closed_direction.name.lower()} position, opened a {opened_direction.name.lower()} lot for the remainder",
                result, opened_opposite_lot=True)
            self._open_lot(txn, key, opened_direction, remainder, amount_shares[0], commission_shares[0], ledgers)

    def _open_lot(self, txn: ProcessedTransaction, key: ContractKey, direction: OptionDirection,
                  quantity: Decimal, amount_eur: Decimal, commission_eur: Decimal, ledgers: _ContractLedgers) -> None:
        if direction == OptionDirection.LONG:
            premium = self.ctx.add(amount_eur, commission_eur)
        else:
            premium = self.ctx.subtract(amount_eur, commission_eur)
            if premium < 0:
                logger.warning(f"Short option lot seq {txn.sequence} for {describe_contract(txn)}: commission exceeds premium. Recording zero net premium.")
                premium = Decimal("0")
        option = txn.option
        ledgers.side(direction).add_lot(OptionHolding(
            contract_key=key,
            isin=txn.isin,
            product_name=txn.product_name,
            contract_type=option.contract_type,
            strike=option.strike,
            expiry=option.expiry,
            multiplier=option.multiplier,
            direction=direction,
            open_date=txn.date,
            quantity_original=quantity,
            quantity_remaining=quantity,
            unit_premium_eur=self.ctx.divide(premium, quantity).quantize(global_config.OUTPUT_PRECISION_PER_SHARE, context=self.ctx),
            currency=txn.currency,
            underlying_isin=option.underlying_isin,
            underlying_name=option.underlying_name,
            source_sequence=txn.sequence,
            order_id=txn.order_id,
            remaining_premium_eur=premium,
        ))

    def _close_against(self, txn: ProcessedTransaction, ledger: FifoLedger[OptionHolding], quantity: Decimal,
                       closing_amount_eur: Decimal, commission_eur: Decimal, result: OptionProcessingResult) -> None:
        consumed, _ = ledger.consume(quantity)
        weights = [detail.consumed_quantity for detail in consumed]
        amount_shares = allocate_pro_rata(closing_amount_eur, weights, self.ctx)
        commission_shares = allocate_pro_rata(commission_eur, weights, self.ctx)
        for detail, amount, commission in zip(consumed, amount_shares, commission_shares):
            result.sale_details.append(self._sale_detail(txn, detail, amount, commission, OptionCloseState.SOLD))

    # --- assignment / exercise / expiry ---

    def _process_delivery(self, txn: ProcessedTransaction, ledger: FifoLedger[OptionHolding],
                          state: OptionCloseState, result: OptionProcessingResult) -> None:
        expected_side = "short" if state == OptionCloseState.ASSIGNED else "long"
        if not ledger.has_open_lots():
            self._record_unmatched(txn, txn.quantity.copy_abs(), f"no open {expected_side} position to be {state.value}", result)
            return

        requested = txn.quantity.copy_abs()
        if requested == Decimal(0):
            consumed = ledger.consume_all()
        else:
            consumed, unmatched = ledger.consume(requested)
            if unmatched > 0:
                self._record_unmatched(txn, unmatched, f"only part of the quantity matched an open {expected_side} position", result)

        weights = [detail.consumed_quantity for detail in consumed]
        commission_shares = allocate_pro_rata(txn.commission_eur, weights, self.ctx)
        for detail, commission in zip(consumed, commission_shares):
            result.sale_details.append(self._sale_detail(txn, detail, Decimal("0"), commission, state))

        contracts = sum(weights, Decimal("0"))
        result.synthetic_transactions.append(self._synthetic_equity_transaction(txn, contracts, state))

    def _process_expiry(self, txn: ProcessedTransaction, ledgers: _ContractLedgers, result: OptionProcessingResult) -> None:
        consumed = ledgers.long.consume_all() + ledgers.short.consume_all()
        if not consumed:
            self._record_unmatched(txn, txn.quantity.copy_abs(), "no open position to expire", result)
            return
        for detail in consumed:
            result.sale_details.append(self._sale_detail(txn, detail, Decimal("0"), Decimal("0"), OptionCloseState.EXPIRED))

    def _record_unmatched(self, txn: ProcessedTransaction, quantity: Decimal, reason: str,
                          result: OptionProcessingResult, opened_opposite_lot: bool = False) -> None:
        outcome = "Booked as an opening trade." if opened_opposite_lot else "Skipping."
        logger.warning(f"Unmatched option event: {txn.order_type.value} seq {txn.sequence} on {txn.date} for {describe_contract(txn)}: {reason}. {outcome}")
        result.unmatched_events.append(UnmatchedOptionEvent(
            event_date=txn.date,
            contract_description=describe_contract(txn),
            order_type=txn.order_type.value,
            quantity=quantity,
            sequence=txn.sequence,
            reason=reason,
            opened_opposite_lot=opened_opposite_lot,
        ))

    def _sale_detail(self, txn: ProcessedTransaction, detail: ConsumedLotDetail[OptionHolding],
                     closing_amount_eur: Decimal, commission_eur: Decimal, state: OptionCloseState) -> OptionSaleDetail:
        lot = detail.lot
        opening_amount = detail.value_eur
        if lot.direction == OptionDirection.LONG:
            gross = self.ctx.subtract(closing_amount_eur, opening_amount)
        else:
            gross = self.ctx.subtract(opening_amount, closing_amount_eur)
        return OptionSaleDetail(
            isin=lot.isin,
            product_name=lot.product_name,
            contract_type=lot.contract_type,
            strike=lot.strike,
            expiry=lot.expiry,
            direction=lot.direction,
            open_date=lot.open_date,
            close_date=txn.date,
            quantity=detail.consumed_quantity,
            opening_amount_eur=opening_amount,
            closing_amount_eur=closing_amount_eur,
            commission_eur=commission_eur,
            gain_eur=self.ctx.subtract(gross, commission_eur),
            holding_period_days=(txn.date - lot.open_date).days,
            state=state,
            currency=lot.currency,
            close_sequence=txn.sequence,
            close_order_id=txn.order_id,
        )

    def _synthetic_equity_transaction(self, txn: ProcessedTransaction, contracts: Decimal,
                                      state: OptionCloseState) -> ProcessedTransaction:
        option = txn.option
        is_call = option.contract_type == ContractType.CALL
        # Exercised call / assigned put -> shares delivered to us; exercised put / assigned call -> shares delivered away
        if state == OptionCloseState.EXERCISED:
            order_type = OrderType.BUY if is_call else OrderType.SELL
        else:
            order_type = OrderType.SELL if is_call else OrderType.BUY

        shares = self.ctx.multiply(contracts, option.multiplier)
        notional = self.ctx.multiply(shares, option.strike)
        quantity = shares if order_type == OrderType.BUY else -shares
        amount = -notional if order_type == OrderType.BUY else notional
        amount_eur = self.ctx.multiply(amount, txn.exchange_rate).quantize(global_config.OUTPUT_PRECISION_AMOUNTS, context=self.ctx)

        underlying_isin = option.underlying_isin
        underlying_name = option.underlying_name
        if not (underlying_isin or underlying_name):
            logger.warning(f"{describe_contract(txn)} has no underlying identity. Booking the {state.value} shares under the option's own name.")
            underlying_name = txn.product_name

        synthetic = ProcessedTransaction(
            date=txn.date,
            product_name=underlying_name,
            isin=underlying_isin,
            quantity=quantity,
            original_quantity=quantity,
            price=option.strike,
            order_type=order_type,
            description=f"{order_type.value} {shares} @ {option.strike} from {state.value} {describe_contract(txn)}",
            amount=amount,
            currency=txn.currency,
            commission=Decimal("0"),
            order_id=txn.order_id,
            exchange_rate=txn.exchange_rate,
            amount_eur=amount_eur,
            country_code=underlying_isin[:2] if underlying_isin[:2].isalpha() else txn.country_code,
            transaction_type="synthetic",
            sequence=txn.sequence,
            is_synthetic=True,
        )
        logger.info(f"Option {state.value}: emitted synthetic {order_type.value} of {shares} {synthetic.instrument_id} @ {option.strike} on {txn.date}.")
        return synthetic
