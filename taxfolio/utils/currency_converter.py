# taxfolio/utils/currency_converter.py
import logging
from datetime import date
from decimal import Decimal, Context
from typing import Optional

from .exchange_rate_provider import ExchangeRateProvider
from taxfolio import config as global_config

logger = logging.getLogger(__name__)


class CurrencyConverter:
    """
    Turns provider rates (foreign units per 1 EUR) into the multiplicative
    transaction-currency -> EUR rate stored on each processed transaction.
    """
    def __init__(self, rate_provider: Optional[ExchangeRateProvider] = None):
        self.rate_provider = rate_provider
        self.ctx = Context(prec=global_config.INTERNAL_CALCULATION_PRECISION, rounding=global_config.DECIMAL_ROUNDING_MODE)

    def rate_to_eur(self, currency: str, date_of_conversion: date) -> Optional[Decimal]:
        currency_upper = currency.upper()
        if not currency_upper:
            logger.warning(f"Cannot determine EUR rate: currency is missing for {date_of_conversion}")
            return None
        if currency_upper == "EUR":
            return Decimal("1")

        if self.rate_provider is None:
            logger.error(f"No exchange rate provider configured to convert {currency_upper} on {date_of_conversion}.")
            return None

        provider_rate = self.rate_provider.get_rate(date_of_conversion, currency_upper)
        if provider_rate is None:
            logger.error(f"No exchange rate provided for {currency_upper} on {date_of_conversion}.")
            return None
        if provider_rate <= Decimal("0"):
            logger.error(f"Exchange rate from provider is zero or negative ({provider_rate}) for {currency_upper} on {date_of_conversion}.")
            return None

        return self.ctx.divide(Decimal("1"), provider_rate).quantize(global_config.PRECISION_EXCHANGE_RATE, context=self.ctx)

    def convert_to_eur(self, amount: Decimal, exchange_rate: Decimal) -> Decimal:
        """EUR amount for a multiplicative rate, quantized to cents."""
        return self.ctx.multiply(amount, exchange_rate).quantize(global_config.OUTPUT_PRECISION_AMOUNTS, context=self.ctx)
