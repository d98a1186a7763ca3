"""
Cash Movement Ledger Tests
"""

from datetime import date
from decimal import Decimal

from taxfolio.domain.enums import CashDirection, OrderType
from taxfolio.engine.cash_movement_processor import CashMovementProcessor, summarize_by_currency
from tests.support.builders import (
    D, buy, sell, dividend, dividend_tax, deposit, withdrawal, make_txn, option_contract, option_txn,
)


class TestCashMovementProcessor:

    def setup_method(self):
        self.processor = CashMovementProcessor()

    def test_deposits_and_withdrawals_in_date_order(self):
        movements = self.processor.process([
            withdrawal("2023-04-01", 200, sequence=2),
            deposit("2023-01-02", 5000, sequence=1),
        ])

        assert [m.date for m in movements] == [date(2023, 1, 2), date(2023, 4, 1)]
        assert [m.direction for m in movements] == [CashDirection.IN, CashDirection.OUT]
        assert movements[0].amount == D(5000)
        assert movements[1].amount == D(-200)
        assert movements[1].order_type == OrderType.CASH_WITHDRAWAL

    def test_every_transaction_with_cash_effect_is_recorded(self):
        movements = self.processor.process([
            buy("2023-01-01", 1, 100, sequence=1),
            dividend("2023-01-01", 10, sequence=2),
            make_txn(OrderType.FEE, "2023-01-01", amount="-2.50", isin="", sequence=3),
            sell("2023-01-02", 1, 110, sequence=4),
            dividend_tax("2023-01-02", "1.50", sequence=5),
        ])

        assert [m.order_type for m in movements] == [
            OrderType.BUY, OrderType.DIVIDEND, OrderType.FEE, OrderType.SELL, OrderType.DIVIDEND_TAX,
        ]
        assert [m.amount for m in movements] == [D(-100), D(10), D("-2.50"), D(110), D("-1.50")]
        assert [m.direction for m in movements] == [
            CashDirection.OUT, CashDirection.IN, CashDirection.OUT, CashDirection.IN, CashDirection.OUT,
        ]

    def test_option_events_without_cash_are_skipped(self):
        contract = option_contract()
        movements = self.processor.process([
            option_txn(OrderType.OPTION_OPEN, "2023-01-01", -1, "0.80", contract=contract, sequence=1),
            option_txn(OrderType.OPTION_EXPIRY, "2024-03-15", 1, contract=contract, sequence=2),
        ])
        assert [(m.order_type, m.amount) for m in movements] == [(OrderType.OPTION_OPEN, D(80))]

    def test_zero_amount_rows_are_skipped(self):
        movements = self.processor.process([make_txn(OrderType.CASH_DEPOSIT, "2023-01-01", amount=0, isin="")])
        assert movements == []

    def test_eur_amount_is_carried(self):
        movements = self.processor.process([deposit("2023-01-01", 1000, currency="USD", exchange_rate="0.92")])
        assert movements[0].currency == "USD"
        assert movements[0].amount_eur == D("920.00")


class TestSummarizeByCurrency:

    def test_totals_per_currency(self):
        movements = CashMovementProcessor().process([
            deposit("2023-01-01", 1000, sequence=1),
            withdrawal("2023-02-01", 250, sequence=2),
            deposit("2023-03-01", 500, currency="USD", exchange_rate="0.9", sequence=3),
        ])

        summaries = summarize_by_currency(movements)

        assert [s.currency for s in summaries] == ["EUR", "USD"]
        eur, usd = summaries
        assert eur.total_in == D(1000)
        assert eur.total_out == D(250)
        assert eur.net == D(750)
        assert eur.movement_count == 2
        assert usd.net_eur == D("450.00")
        assert usd.total_out == Decimal(0)

    def test_no_movements(self):
        assert summarize_by_currency([]) == []
