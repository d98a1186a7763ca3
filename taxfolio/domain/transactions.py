# taxfolio/domain/transactions.py
from dataclasses import dataclass, KW_ONLY
from datetime import date
from decimal import Decimal, Context
from typing import Optional

from .enums import OrderType, ContractType
from taxfolio import config as global_config

_ctx = Context(prec=global_config.INTERNAL_CALCULATION_PRECISION, rounding=global_config.DECIMAL_ROUNDING_MODE)


@dataclass(frozen=True)
class OptionContract:
    contract_type: ContractType
    strike: Decimal
    expiry: date
    multiplier: Decimal = global_config.DEFAULT_OPTION_MULTIPLIER
    underlying_isin: str = ""
    underlying_name: str = ""

    def __post_init__(self):
        if not isinstance(self.contract_type, ContractType):
            raise TypeError(f"OptionContract.contract_type must be a ContractType, got {type(self.contract_type)}")
        if not isinstance(self.strike, Decimal) or not self.strike.is_finite() or self.strike < Decimal(0):
            raise ValueError(f"OptionContract.strike must be a non-negative finite Decimal: {self.strike}")
        if not isinstance(self.multiplier, Decimal) or self.multiplier <= Decimal(0):
            raise ValueError(f"OptionContract.multiplier must be a positive Decimal: {self.multiplier}")

    @property
    def underlying_id(self) -> str:
        return self.underlying_isin.strip() or self.underlying_name.strip()


@dataclass(frozen=True)
class ProcessedTransaction:
    """
    Canonical transaction record produced by the normalizer and persisted per user.
    Quantities are signed (negative = position decrease); amount is the signed cash
    effect in the transaction currency; exchange_rate converts that currency to EUR
    multiplicatively.
    """
    date: date
    product_name: str
    isin: str
    quantity: Decimal
    original_quantity: Decimal
    price: Decimal
    order_type: OrderType
    description: str
    amount: Decimal
    currency: str
    commission: Decimal
    order_id: str
    exchange_rate: Decimal
    amount_eur: Decimal
    country_code: str

    _: KW_ONLY
    transaction_type: str = ""
    sequence: int = 0
    option: Optional[OptionContract] = None
    is_synthetic: bool = False # Equity leg generated by an option assignment/exercise

    def __post_init__(self):
        if not isinstance(self.order_type, OrderType):
            raise TypeError(f"ProcessedTransaction.order_type must be an OrderType, got {type(self.order_type)}")
        for name in ("quantity", "original_quantity", "price", "amount", "commission", "exchange_rate", "amount_eur"):
            value = getattr(self, name)
            if not isinstance(value, Decimal) or not value.is_finite():
                raise ValueError(f"ProcessedTransaction.{name} must be a finite Decimal, got {value!r}")
        if self.commission < Decimal(0):
            raise ValueError(f"ProcessedTransaction.commission must be non-negative: {self.commission}")
        if self.exchange_rate <= Decimal(0):
            raise ValueError(f"ProcessedTransaction.exchange_rate must be positive: {self.exchange_rate}")
        if self.order_type.is_option_event and self.option is None:
            raise ValueError(f"ProcessedTransaction of type {self.order_type.value} requires option contract details")

    @property
    def instrument_id(self) -> str:
        """ISIN, falling back to the product name when the export has no ISIN."""
        return self.isin.strip() or self.product_name.strip()

    @property
    def commission_eur(self) -> Decimal:
        return _ctx.multiply(self.commission, self.exchange_rate).quantize(
            global_config.OUTPUT_PRECISION_AMOUNTS, context=_ctx
        )

    @property
    def year(self) -> int:
        return self.date.year
