"""
Test Group: Precision and Rounding Tests

Numerical behaviour of the FIFO ledger and the pro-rata allocator:
- fractional quantities
- lot values that do not divide evenly
- allocation residues landing on the last share
"""

import pytest
from datetime import date
from decimal import Decimal, Context, ROUND_HALF_UP

from taxfolio.domain.results import PurchaseLot
from taxfolio.engine.fifo_manager import FifoLedger, allocate_pro_rata
from taxfolio import config as global_config


def _lot(quantity: str, unit_cost: str, day: int = 1, remaining_cost: str = None) -> PurchaseLot:
    return PurchaseLot(
        instrument_id="US0378331005",
        isin="US0378331005",
        product_name="APPLE INC",
        acquisition_date=date(2023, 1, day),
        quantity_original=Decimal(quantity),
        quantity_remaining=Decimal(quantity),
        unit_cost_eur=Decimal(unit_cost),
        currency="EUR",
        remaining_cost_eur=Decimal(remaining_cost) if remaining_cost is not None else None,
    )


def _ctx() -> Context:
    return Context(prec=global_config.INTERNAL_CALCULATION_PRECISION, rounding=ROUND_HALF_UP)


# =============================================================================
# FifoLedger
# =============================================================================

class TestFifoLedger:

    def setup_method(self):
        self.ledger = FifoLedger("US0378331005", "remaining_cost_eur")

    def test_whole_lot_hands_over_exact_value(self):
        self.ledger.add_lot(_lot("3", "33.333333", remaining_cost="100.00"))

        consumed, unmatched = self.ledger.consume(Decimal("3"))

        assert unmatched == Decimal(0)
        assert len(consumed) == 1
        assert consumed[0].value_eur == Decimal("100.00")
        assert consumed[0].lot_exhausted
        assert not self.ledger.has_open_lots()

    def test_partial_slice_is_quantized_and_remainder_kept(self):
        lot = _lot("3", "33.333333", remaining_cost="100.00")
        self.ledger.add_lot(lot)

        consumed, _ = self.ledger.consume(Decimal("1"))

        assert consumed[0].value_eur == Decimal("33.33")
        assert not consumed[0].lot_exhausted
        assert lot.quantity_remaining == Decimal("2")
        assert lot.remaining_cost_eur == Decimal("66.67")

    def test_fractional_quantities(self):
        self.ledger.add_lot(_lot("0.333333", "150"))
        self.ledger.add_lot(_lot("1.5", "151", day=2))

        consumed, unmatched = self.ledger.consume(Decimal("0.5"))

        assert unmatched == Decimal(0)
        assert [c.consumed_quantity for c in consumed] == [Decimal("0.333333"), Decimal("0.166667")]
        assert self.ledger.get_current_position_quantity() == Decimal("1.333333")

    def test_oldest_lot_is_consumed_first(self):
        self.ledger.add_lot(_lot("1", "10", day=1))
        self.ledger.add_lot(_lot("1", "20", day=2))

        consumed, _ = self.ledger.consume(Decimal("1"))

        assert consumed[0].lot.acquisition_date == date(2023, 1, 1)
        assert [lot.acquisition_date for lot in self.ledger.open_lots()] == [date(2023, 1, 2)]

    def test_shortfall_is_returned(self):
        self.ledger.add_lot(_lot("2", "10"))

        consumed, unmatched = self.ledger.consume(Decimal("5"))

        assert sum((c.consumed_quantity for c in consumed), Decimal(0)) == Decimal("2")
        assert unmatched == Decimal("3")
        assert not self.ledger.has_open_lots()

    def test_consume_all_empties_the_ledger(self):
        self.ledger.add_lot(_lot("2", "10"))
        self.ledger.add_lot(_lot("3", "11", day=2))

        consumed = self.ledger.consume_all()

        assert sum((c.value_eur for c in consumed), Decimal(0)) == Decimal("53")
        assert self.ledger.consume_all() == []

    @pytest.mark.parametrize("quantity", [Decimal("0"), Decimal("-1")])
    def test_non_positive_quantity_is_rejected(self, quantity):
        with pytest.raises(ValueError):
            self.ledger.consume(quantity)

    def test_slices_sum_to_original_value(self):
        lot = _lot("7", "1", remaining_cost="10.00")
        self.ledger.add_lot(lot)

        values = []
        for _ in range(7):
            consumed, _ = self.ledger.consume(Decimal("1"))
            values.append(consumed[0].value_eur)

        assert sum(values, Decimal(0)) == Decimal("10.00")
        assert all(value.as_tuple().exponent >= -2 for value in values)


# =============================================================================
# allocate_pro_rata
# =============================================================================

class TestAllocateProRata:

    def test_even_split(self):
        shares = allocate_pro_rata(Decimal("30.00"), [Decimal("1"), Decimal("1"), Decimal("1")], _ctx())
        assert shares == [Decimal("10.00"), Decimal("10.00"), Decimal("10.00")]

    def test_last_share_absorbs_residue(self):
        shares = allocate_pro_rata(Decimal("10.00"), [Decimal("1"), Decimal("1"), Decimal("1")], _ctx())
        assert shares == [Decimal("3.33"), Decimal("3.33"), Decimal("3.34")]
        assert sum(shares, Decimal(0)) == Decimal("10.00")

    def test_weighted_split(self):
        shares = allocate_pro_rata(Decimal("2.99"), [Decimal("4"), Decimal("3")], _ctx())
        assert shares == [Decimal("1.71"), Decimal("1.28")]

    def test_single_weight_takes_everything(self):
        assert allocate_pro_rata(Decimal("7.77"), [Decimal("0.5")], _ctx()) == [Decimal("7.77")]

    def test_empty_weights(self):
        assert allocate_pro_rata(Decimal("1.00"), [], _ctx()) == []

    def test_zero_weights_are_rejected(self):
        with pytest.raises(ValueError):
            allocate_pro_rata(Decimal("1.00"), [Decimal("0"), Decimal("0")], _ctx())

    def test_custom_precision(self):
        shares = allocate_pro_rata(Decimal("1"), [Decimal("1"), Decimal("2")], _ctx(), precision=Decimal("0.000001"))
        assert shares == [Decimal("0.333333"), Decimal("0.666667")]


# =============================================================================
# Lot validation
# =============================================================================

class TestPurchaseLotValidation:

    def test_remaining_cost_defaults_to_quantity_times_unit_cost(self):
        lot = _lot("2.5", "10.40")
        assert lot.total_cost_eur == Decimal("26.000")

    def test_zero_quantity_is_rejected(self):
        with pytest.raises(ValueError):
            _lot("0", "10")

    def test_negative_unit_cost_is_rejected(self):
        with pytest.raises(ValueError):
            _lot("1", "-1")
