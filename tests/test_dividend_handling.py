"""
Dividend and Withholding Tax Aggregation Tests

Dividends and dividend taxes are grouped per (instrument, year) and per year;
net income is gross minus withheld.
"""

from decimal import Decimal

from taxfolio.engine.dividend_processor import DividendProcessor, dividend_transactions
from tests.support.builders import D, buy, dividend, dividend_tax, deposit


class TestDividendAggregation:

    def setup_method(self):
        self.processor = DividendProcessor()

    def test_gross_withheld_and_net_per_instrument_year(self):
        result = self.processor.process([
            dividend("2023-03-15", "10.00"),
            dividend_tax("2023-03-15", "1.50"),
            dividend("2023-09-15", "12.00"),
            dividend_tax("2023-09-15", "1.80"),
        ])

        entry = result.by_instrument[("US0378331005", 2023)]
        assert entry.gross_eur == D("22.00")
        assert entry.withheld_eur == D("3.30")
        assert entry.net_eur == D("18.70")
        assert entry.payment_count == 2
        assert entry.country_code == "US"

    def test_years_are_kept_apart(self):
        result = self.processor.process([
            dividend("2022-12-30", "5.00"),
            dividend("2023-01-02", "6.00"),
        ])

        assert set(result.by_instrument) == {("US0378331005", 2022), ("US0378331005", 2023)}
        assert result.by_year[2022].gross_eur == D("5.00")
        assert result.by_year[2023].gross_eur == D("6.00")

    def test_instruments_are_kept_apart(self):
        result = self.processor.process([
            dividend("2023-05-01", "4.00", isin="DE0007164600", product_name="SAP SE"),
            dividend_tax("2023-05-01", "1.06", isin="DE0007164600", product_name="SAP SE"),
            dividend("2023-05-02", "3.00"),
        ])

        assert result.by_instrument[("DE0007164600", 2023)].net_eur == D("2.94")
        assert result.by_instrument[("US0378331005", 2023)].withheld_eur == Decimal(0)
        assert result.by_year[2023].gross_eur == D("7.00")
        assert result.by_year[2023].withheld_eur == D("1.06")
        assert [entry.instrument_id for entry in result.entries_for_year(2023)] == ["DE0007164600", "US0378331005"]

    def test_foreign_currency_uses_eur_amounts(self):
        result = self.processor.process([
            dividend("2023-05-01", "10.00", currency="USD", exchange_rate="0.9"),
            dividend_tax("2023-05-01", "1.50", currency="USD", exchange_rate="0.9"),
        ])

        entry = result.by_instrument[("US0378331005", 2023)]
        assert entry.gross_eur == D("9.00")
        assert entry.withheld_eur == D("1.35")

    def test_tax_without_dividend_still_counts(self):
        result = self.processor.process([dividend_tax("2023-05-01", "2.00")])

        entry = result.by_instrument[("US0378331005", 2023)]
        assert entry.gross_eur == Decimal(0)
        assert entry.net_eur == D("-2.00")
        assert entry.payment_count == 0

    def test_other_transactions_are_ignored(self):
        result = self.processor.process([buy("2023-01-01", 1, 10), deposit("2023-01-01", 100)])
        assert result.is_empty
        assert result.by_year == {}


class TestDividendTransactions:

    def test_filters_and_orders_chronologically(self):
        later = dividend("2023-06-01", 2, sequence=1)
        earlier_tax = dividend_tax("2023-02-01", 1, sequence=2)
        earlier = dividend("2023-02-01", 5, sequence=3)

        selected = dividend_transactions([buy("2023-01-01", 1, 1, sequence=0), later, earlier_tax, earlier])

        assert selected == [earlier_tax, earlier, later]
