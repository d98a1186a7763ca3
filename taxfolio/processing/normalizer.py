# taxfolio/processing/normalizer.py
import logging
from collections import Counter
from datetime import date
from decimal import Decimal, Context, InvalidOperation
from typing import List, Optional, Sequence

from taxfolio.domain.enums import OrderType, ContractType
from taxfolio.domain.transactions import ProcessedTransaction, OptionContract
from taxfolio.errors import MalformedRecordError
from taxfolio.parsers.raw_models import RawTransaction
from taxfolio.utils.currency_converter import CurrencyConverter
from taxfolio.utils.exchange_rate_provider import ExchangeRateProvider
from taxfolio.utils.sorting_utils import get_transaction_sort_key
from taxfolio.utils.type_utils import safe_decimal, parse_date
from taxfolio import config as global_config

logger = logging.getLogger(__name__)

# Description keywords, checked in order. Longer/more specific phrases come first
# ("dividend tax" before "dividend", "verkauf" before "kauf").
_DESCRIPTION_KEYWORDS = [
    (OrderType.DIVIDEND_TAX, ("dividend tax", "imposto sobre dividendo", "dividendensteuer", "withholding")),
    (OrderType.DIVIDEND, ("dividend", "dividendo", "dividende")),
    (OrderType.CASH_DEPOSIT, ("deposit", "depósito", "deposito", "einzahlung")),
    (OrderType.CASH_WITHDRAWAL, ("withdrawal", "levantamento", "auszahlung")),
    (OrderType.SELL, ("sell", "venda", "verkauf")),
    (OrderType.BUY, ("buy", "compra", "kauf")),
    (OrderType.FEE, ("fee", "commission", "comissão", "custo", "gebühr")),
]

_OPTION_KEYWORDS = [
    (OrderType.OPTION_ASSIGNMENT, ("assign", "atribuição")),
    (OrderType.OPTION_EXERCISE, ("exercis", "exercício", "ausübung")),
    (OrderType.OPTION_EXPIRY, ("expir", "expiração", "verfall")),
    (OrderType.OPTION_CLOSE, ("close", "closing", "fecho")),
]


class TransactionNormalizer:
    """
    Converts raw export rows into ProcessedTransactions.
    Any row that cannot be coerced raises MalformedRecordError and nothing is returned.
    """
    def __init__(self,
                 exchange_rate_provider: Optional[ExchangeRateProvider] = None,
                 default_option_multiplier: Decimal = global_config.DEFAULT_OPTION_MULTIPLIER):
        self.currency_converter = CurrencyConverter(exchange_rate_provider)
        self.default_option_multiplier = default_option_multiplier
        self.ctx = Context(prec=global_config.INTERNAL_CALCULATION_PRECISION, rounding=global_config.DECIMAL_ROUNDING_MODE)

    def normalize(self, raw_rows: Sequence[RawTransaction], sequence_offset: int = 0) -> List[ProcessedTransaction]:
        logger.info(f"Normalizing {len(raw_rows)} raw transaction rows.")
        processed = [self._normalize_row(raw, sequence_offset + index) for index, raw in enumerate(raw_rows)]
        processed.sort(key=get_transaction_sort_key)

        counts = Counter(txn.order_type.value for txn in processed)
        logger.info(f"Normalized {len(processed)} transactions: {dict(sorted(counts.items()))}")
        return processed

    def _row_label(self, raw: RawTransaction, index: int) -> int:
        return raw.row_number or index + 1

    def _decimal(self, raw: RawTransaction, index: int, field_name: str, value: Optional[str],
                 default: Optional[Decimal] = None) -> Optional[Decimal]:
        try:
            return safe_decimal(value, default=default, raise_error=True)
        except InvalidOperation as e:
            raise MalformedRecordError(self._row_label(raw, index), field_name, value, "not a number") from e

    def _normalize_row(self, raw: RawTransaction, index: int) -> ProcessedTransaction:
        row = self._row_label(raw, index)
        txn_date = parse_date(raw.date)
        if txn_date is None:
            raise MalformedRecordError(row, "Date", raw.date, "unrecognized date format")

        quantity = self._decimal(raw, index, "Quantity", raw.quantity, Decimal("0"))
        price = self._decimal(raw, index, "Price", raw.price, Decimal("0"))
        amount = self._decimal(raw, index, "Amount", raw.amount)
        commission = self._decimal(raw, index, "Commission", raw.commission, Decimal("0")).copy_abs()
        currency = (raw.currency or "EUR").upper()

        option = self._build_option_contract(raw, index)
        order_type = self._resolve_order_type(raw, index, quantity, option)
        if order_type.is_option_event and option is None:
            raise MalformedRecordError(row, "ContractType", raw.contract_type, f"{order_type.value} requires ContractType, Strike and Expiry")

        quantity, amount = self._apply_sign_conventions(raw, index, order_type, quantity, price, amount, option)
        exchange_rate = self._resolve_exchange_rate(raw, index, currency, txn_date)
        amount_eur = self.currency_converter.convert_to_eur(amount, exchange_rate)

        return ProcessedTransaction(
            date=txn_date,
            product_name=raw.product or "",
            isin=(raw.isin or "").upper(),
            quantity=quantity,
            original_quantity=quantity,
            price=price,
            order_type=order_type,
            description=raw.description or "",
            amount=amount,
            currency=currency,
            commission=commission,
            order_id=raw.order_id or "",
            exchange_rate=exchange_rate,
            amount_eur=amount_eur,
            country_code=(raw.country_code or self._country_from_isin(raw.isin)).upper(),
            transaction_type=raw.transaction_type or "",
            sequence=index,
            option=option,
        )

    @staticmethod
    def _country_from_isin(isin: Optional[str]) -> str:
        if isin and len(isin) >= 2 and isin[:2].isalpha():
            return isin[:2]
        return ""

    def _build_option_contract(self, raw: RawTransaction, index: int) -> Optional[OptionContract]:
        if not (raw.contract_type or raw.strike or raw.expiry):
            return None
        row = self._row_label(raw, index)
        try:
            contract_type = ContractType.from_tag(raw.contract_type or "")
        except ValueError as e:
            raise MalformedRecordError(row, "ContractType", raw.contract_type, str(e)) from e
        strike = self._decimal(raw, index, "Strike", raw.strike)
        if strike is None:
            raise MalformedRecordError(row, "Strike", raw.strike, "option rows need a strike")
        expiry = parse_date(raw.expiry)
        if expiry is None:
            raise MalformedRecordError(row, "Expiry", raw.expiry, "option rows need an expiry date")
        multiplier = self._decimal(raw, index, "Multiplier", raw.multiplier, self.default_option_multiplier)
        if multiplier <= Decimal(0):
            raise MalformedRecordError(row, "Multiplier", raw.multiplier, "must be positive")
        return OptionContract(
            contract_type=contract_type,
            strike=strike,
            expiry=expiry,
            multiplier=multiplier,
            underlying_isin=(raw.underlying_isin or "").upper(),
            underlying_name=raw.underlying_product or "",
        )

    def _resolve_order_type(self, raw: RawTransaction, index: int, quantity: Decimal,
                            option: Optional[OptionContract]) -> OrderType:
        if raw.order_type:
            try:
                return OrderType.from_tag(raw.order_type)
            except ValueError as e:
                raise MalformedRecordError(self._row_label(raw, index), "OrderType", raw.order_type, "unknown order type") from e

        description = (raw.description or "").lower()
        if option is not None:
            for order_type, keywords in _OPTION_KEYWORDS:
                if any(keyword in description for keyword in keywords):
                    return order_type
            return OrderType.OPTION_OPEN

        for order_type, keywords in _DESCRIPTION_KEYWORDS:
            if any(keyword in description for keyword in keywords):
                return order_type
        if quantity > 0:
            return OrderType.BUY
        if quantity < 0:
            return OrderType.SELL
        return OrderType.OTHER

    def _apply_sign_conventions(self, raw: RawTransaction, index: int, order_type: OrderType,
                                quantity: Decimal, price: Decimal, amount: Optional[Decimal],
                                option: Optional[OptionContract]):
        """Returns (quantity, amount) signed the canonical way for the order type."""
        row = self._row_label(raw, index)

        if order_type.is_trade:
            if quantity == 0:
                raise MalformedRecordError(row, "Quantity", raw.quantity, f"{order_type.value} needs a non-zero quantity")
            if amount is None:
                if price == 0 and raw.price is None:
                    raise MalformedRecordError(row, "Price", raw.price, f"{order_type.value} needs a price or an amount")
                amount = self.ctx.multiply(quantity.copy_abs(), price)
            if order_type == OrderType.BUY:
                return quantity.copy_abs(), -amount.copy_abs()
            return -quantity.copy_abs(), amount.copy_abs()

        if order_type in (OrderType.OPTION_OPEN, OrderType.OPTION_CLOSE):
            if quantity == 0:
                raise MalformedRecordError(row, "Quantity", raw.quantity, "option trades need a signed, non-zero quantity")
            if amount is None:
                amount = self.ctx.multiply(self.ctx.multiply(quantity.copy_abs(), price), option.multiplier)
            # Buying contracts costs cash, selling them brings cash in
            return quantity, (-amount.copy_abs() if quantity > 0 else amount.copy_abs())

        if order_type.is_option_event:
            return quantity, amount if amount is not None else Decimal("0")

        if amount is None:
            if order_type == OrderType.OTHER:
                return quantity, Decimal("0")
            raise MalformedRecordError(row, "Amount", raw.amount, f"{order_type.value} rows need an amount")
        if order_type in (OrderType.DIVIDEND, OrderType.CASH_DEPOSIT):
            return quantity, amount.copy_abs()
        if order_type in (OrderType.DIVIDEND_TAX, OrderType.CASH_WITHDRAWAL, OrderType.FEE):
            return quantity, -amount.copy_abs()
        return quantity, amount

    def _resolve_exchange_rate(self, raw: RawTransaction, index: int, currency: str, txn_date: date) -> Decimal:
        row = self._row_label(raw, index)
        if raw.exchange_rate:
            rate = self._decimal(raw, index, "ExchangeRate", raw.exchange_rate)
            if rate is None or rate <= 0:
                raise MalformedRecordError(row, "ExchangeRate", raw.exchange_rate, "must be positive")
            return rate
        rate = self.currency_converter.rate_to_eur(currency, txn_date)
        if rate is None:
            raise MalformedRecordError(row, "ExchangeRate", raw.exchange_rate, f"no {currency}->EUR rate available for {txn_date}")
        return rate


def normalize_transactions(raw_rows: Sequence[RawTransaction],
                           exchange_rate_provider: Optional[ExchangeRateProvider] = None) -> List[ProcessedTransaction]:
    return TransactionNormalizer(exchange_rate_provider).normalize(raw_rows)
