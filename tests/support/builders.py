# tests/support/builders.py
"""
Factories for ProcessedTransactions and CSV exports used across the test suite.

Transactions are built already normalized (signed quantities and amounts, EUR amounts
filled in), so engine tests do not depend on the normalizer.
"""

import csv
import io
from datetime import date
from decimal import Decimal
from itertools import count
from typing import Any, Dict, List, Optional, Sequence

from taxfolio.domain.enums import OrderType, ContractType
from taxfolio.domain.transactions import ProcessedTransaction, OptionContract

_sequence = count(1)

DEFAULT_ISIN = "US0378331005"
DEFAULT_PRODUCT = "APPLE INC"

CSV_HEADERS = [
    "Date", "Time", "Product", "ISIN", "Description", "OrderType", "TransactionType", "Quantity",
    "Price", "Amount", "Currency", "Commission", "OrderId", "ExchangeRate", "CountryCode",
    "ContractType", "Strike", "Expiry", "Multiplier", "UnderlyingISIN", "UnderlyingProduct",
]


def D(value: Any) -> Decimal:
    return Decimal(str(value))


def _as_date(value) -> date:
    return value if isinstance(value, date) else date.fromisoformat(value)


def make_txn(order_type: OrderType,
             txn_date,
             quantity: Any = 0,
             price: Any = 0,
             amount: Optional[Any] = None,
             commission: Any = 0,
             isin: str = DEFAULT_ISIN,
             product_name: str = DEFAULT_PRODUCT,
             currency: str = "EUR",
             exchange_rate: Any = 1,
             sequence: Optional[int] = None,
             option: Optional[OptionContract] = None,
             country_code: str = "",
             description: str = "",
             order_id: str = "") -> ProcessedTransaction:
    """
    Builds a normalized transaction. `quantity` and `amount` are taken as given (already signed);
    when `amount` is omitted it is derived from quantity and price with the usual cash sign.
    """
    quantity = D(quantity)
    price = D(price)
    rate = D(exchange_rate)
    if amount is None:
        notional = abs(quantity) * price * (option.multiplier if option else 1)
        amount = -notional if quantity > 0 else notional
    amount = D(amount)
    return ProcessedTransaction(
        date=_as_date(txn_date),
        product_name=product_name,
        isin=isin,
        quantity=quantity,
        original_quantity=quantity,
        price=price,
        order_type=order_type,
        description=description or order_type.value,
        amount=amount,
        currency=currency,
        commission=D(commission),
        order_id=order_id,
        exchange_rate=rate,
        amount_eur=(amount * rate).quantize(Decimal("0.01")),
        country_code=country_code or (isin[:2] if isin[:2].isalpha() else ""),
        sequence=next(_sequence) if sequence is None else sequence,
        option=option,
    )


def buy(txn_date, quantity, price, commission=0, **kwargs) -> ProcessedTransaction:
    return make_txn(OrderType.BUY, txn_date, D(quantity), price, commission=commission, **kwargs)


def sell(txn_date, quantity, price, commission=0, **kwargs) -> ProcessedTransaction:
    return make_txn(OrderType.SELL, txn_date, -D(quantity), price, commission=commission, **kwargs)


def dividend(txn_date, amount, **kwargs) -> ProcessedTransaction:
    return make_txn(OrderType.DIVIDEND, txn_date, amount=abs(D(amount)), **kwargs)


def dividend_tax(txn_date, amount, **kwargs) -> ProcessedTransaction:
    return make_txn(OrderType.DIVIDEND_TAX, txn_date, amount=-abs(D(amount)), **kwargs)


def deposit(txn_date, amount, **kwargs) -> ProcessedTransaction:
    kwargs.setdefault("isin", "")
    kwargs.setdefault("product_name", "")
    return make_txn(OrderType.CASH_DEPOSIT, txn_date, amount=abs(D(amount)), **kwargs)


def withdrawal(txn_date, amount, **kwargs) -> ProcessedTransaction:
    kwargs.setdefault("isin", "")
    kwargs.setdefault("product_name", "")
    return make_txn(OrderType.CASH_WITHDRAWAL, txn_date, amount=-abs(D(amount)), **kwargs)


def option_contract(contract_type: ContractType = ContractType.CALL,
                    strike: Any = 50,
                    expiry: Any = "2024-03-15",
                    multiplier: Any = 100,
                    underlying_isin: str = DEFAULT_ISIN,
                    underlying_name: str = DEFAULT_PRODUCT) -> OptionContract:
    return OptionContract(
        contract_type=contract_type,
        strike=D(strike),
        expiry=_as_date(expiry),
        multiplier=D(multiplier),
        underlying_isin=underlying_isin,
        underlying_name=underlying_name,
    )


def option_txn(order_type: OrderType, txn_date, quantity: Any, premium_per_share: Any = 0,
               contract: Optional[OptionContract] = None, commission: Any = 0,
               product_name: str = "AAPL 50 C", **kwargs) -> ProcessedTransaction:
    """Option trade on the contract; amount = contracts x multiplier x premium, signed by direction."""
    contract = contract or option_contract()
    kwargs.setdefault("isin", "")
    if order_type in (OrderType.OPTION_OPEN, OrderType.OPTION_CLOSE):
        return make_txn(order_type, txn_date, D(quantity), premium_per_share, commission=commission,
                        option=contract, product_name=product_name, **kwargs)
    return make_txn(order_type, txn_date, D(quantity), 0, amount=0, commission=commission,
                    option=contract, product_name=product_name, **kwargs)


def csv_string(rows: Sequence[Dict[str, Any]], headers: Sequence[str] = CSV_HEADERS, delimiter: str = ",") -> str:
    """Renders rows (dicts keyed by header) as an export; missing cells stay empty."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(headers), delimiter=delimiter, lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({header: row.get(header, "") for header in headers})
    return buffer.getvalue()


def csv_bytes(rows: Sequence[Dict[str, Any]], **kwargs) -> io.BytesIO:
    return io.BytesIO(csv_string(rows, **kwargs).encode("utf-8"))


def stock_rows() -> List[Dict[str, Any]]:
    """Small mixed EUR export: two buys, a partial sell, a dividend with tax, a deposit."""
    return [
        {"Date": "2023-01-10", "Product": "APPLE INC", "ISIN": DEFAULT_ISIN, "OrderType": "buy",
         "Quantity": "10", "Price": "100", "Currency": "EUR", "Commission": "2"},
        {"Date": "2023-02-10", "Product": "APPLE INC", "ISIN": DEFAULT_ISIN, "OrderType": "buy",
         "Quantity": "5", "Price": "120", "Currency": "EUR", "Commission": "1"},
        {"Date": "2023-06-01", "Product": "APPLE INC", "ISIN": DEFAULT_ISIN, "OrderType": "sell",
         "Quantity": "-12", "Price": "150", "Currency": "EUR", "Commission": "3"},
        {"Date": "2023-07-01", "Product": "APPLE INC", "ISIN": DEFAULT_ISIN, "OrderType": "dividend",
         "Amount": "8.50", "Currency": "EUR"},
        {"Date": "2023-07-01", "Product": "APPLE INC", "ISIN": DEFAULT_ISIN, "OrderType": "dividendtax",
         "Amount": "-1.28", "Currency": "EUR"},
        {"Date": "2023-01-02", "Description": "Deposit", "OrderType": "cash-deposit",
         "Amount": "5000", "Currency": "EUR"},
    ]
