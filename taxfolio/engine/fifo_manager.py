# taxfolio/engine/fifo_manager.py
import logging
from collections import deque
from dataclasses import dataclass
from decimal import Decimal, Context
from typing import Any, Deque, Generic, List, Sequence, Tuple, TypeVar

from taxfolio import config as global_config

logger = logging.getLogger(__name__)

LotT = TypeVar("LotT")


@dataclass
class ConsumedLotDetail(Generic[LotT]):
    lot: LotT
    consumed_quantity: Decimal
    value_eur: Decimal # Share of the lot's remaining cost (long) or premium (short)
    lot_exhausted: bool


class FifoLedger(Generic[LotT]):
    """
    FIFO queue of open lots for one instrument (or one option contract side).

    Lots must expose a mutable ``quantity_remaining`` and a mutable remaining-value
    attribute named by ``value_attr``. Consuming a whole lot hands over its exact
    remaining value; a partial slice takes the pro-rata share quantized to cents, so the
    slices of a lot always add up to its original value.
    """
    def __init__(self,
                 ledger_key: Any,
                 value_attr: str,
                 internal_calculation_precision: int = global_config.INTERNAL_CALCULATION_PRECISION,
                 decimal_rounding_mode: str = global_config.DECIMAL_ROUNDING_MODE):
        self.ledger_key = ledger_key
        self.value_attr = value_attr
        self.lots: Deque[LotT] = deque()
        self.ctx = Context(prec=internal_calculation_precision, rounding=decimal_rounding_mode)

    def add_lot(self, lot: LotT) -> None:
        self.lots.append(lot)
        logger.debug(f"Ledger {self.ledger_key}: added lot of {lot.quantity_remaining}. Open lots: {len(self.lots)}")

    def get_current_position_quantity(self) -> Decimal:
        return sum((lot.quantity_remaining for lot in self.lots), Decimal("0"))

    def has_open_lots(self) -> bool:
        return bool(self.lots)

    def open_lots(self) -> List[LotT]:
        return list(self.lots)

    def consume(self, quantity: Decimal) -> Tuple[List[ConsumedLotDetail[LotT]], Decimal]:
        """
        Consumes up to ``quantity`` from the front of the queue.
        Returns the consumed slices and the quantity that could not be matched.
        """
        if quantity <= Decimal(0):
            raise ValueError(f"Ledger {self.ledger_key}: quantity to consume must be positive, got {quantity}")

        remaining = quantity
        consumed: List[ConsumedLotDetail[LotT]] = []
        while remaining > Decimal(0) and self.lots:
            lot = self.lots[0]
            lot_value = getattr(lot, self.value_attr)
            take = min(lot.quantity_remaining, remaining)

            if take == lot.quantity_remaining:
                value = lot_value
                self.lots.popleft()
                exhausted = True
            else:
                value = self.ctx.divide(self.ctx.multiply(lot_value, take), lot.quantity_remaining).quantize(
                    global_config.OUTPUT_PRECISION_AMOUNTS, context=self.ctx
                )
                exhausted = False

            lot.quantity_remaining = self.ctx.subtract(lot.quantity_remaining, take)
            setattr(lot, self.value_attr, self.ctx.subtract(lot_value, value))
            consumed.append(ConsumedLotDetail(lot=lot, consumed_quantity=take, value_eur=value, lot_exhausted=exhausted))
            remaining = self.ctx.subtract(remaining, take)

        if remaining > Decimal(0):
            logger.debug(f"Ledger {self.ledger_key}: {remaining} of {quantity} could not be matched against open lots.")
        return consumed, remaining

    def consume_all(self) -> List[ConsumedLotDetail[LotT]]:
        position = self.get_current_position_quantity()
        if position <= Decimal(0):
            return []
        consumed, _ = self.consume(position)
        return consumed


def allocate_pro_rata(total: Decimal, weights: Sequence[Decimal], ctx: Context,
                      precision: Decimal = global_config.OUTPUT_PRECISION_AMOUNTS) -> List[Decimal]:
    """
    Splits ``total`` across ``weights`` proportionally. Each share is quantized to
    ``precision`` and the last share absorbs the rounding residue, so the shares sum to
    ``total`` exactly.
    """
    if not weights:
        return []
    weight_sum = sum(weights, Decimal("0"))
    if weight_sum == Decimal(0):
        raise ValueError("Cannot allocate across weights that sum to zero")

    shares: List[Decimal] = []
    allocated = Decimal("0")
    for weight in weights[:-1]:
        share = ctx.divide(ctx.multiply(total, weight), weight_sum).quantize(precision, context=ctx)
        shares.append(share)
        allocated = ctx.add(allocated, share)
    shares.append(ctx.subtract(total, allocated))
    return shares
