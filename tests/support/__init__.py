"""
Test Support Module

This module consolidates the test infrastructure:
- Mock providers
- Transaction and CSV builders
"""

# Mock providers
from tests.support.mock_providers import (
    MockECBExchangeRateProvider,
    create_constant_rate_provider,
    create_variable_rate_provider,
)

# Builders
from tests.support.builders import (
    D,
    make_txn,
    buy,
    sell,
    dividend,
    dividend_tax,
    deposit,
    withdrawal,
    option_contract,
    option_txn,
    csv_string,
    csv_bytes,
    stock_rows,
)

__all__ = [
    # Mock providers
    "MockECBExchangeRateProvider",
    "create_constant_rate_provider",
    "create_variable_rate_provider",
    # Builders
    "D",
    "make_txn",
    "buy",
    "sell",
    "dividend",
    "dividend_tax",
    "deposit",
    "withdrawal",
    "option_contract",
    "option_txn",
    "csv_string",
    "csv_bytes",
    "stock_rows",
]
