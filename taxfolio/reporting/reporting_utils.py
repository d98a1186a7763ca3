# taxfolio/reporting/reporting_utils.py
import logging
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from taxfolio import config

logger = logging.getLogger(__name__)


def _to_decimal(val: Optional[Decimal | int | float | str], helper_name: str) -> Optional[Decimal]:
    if val is None:
        return None
    if isinstance(val, Decimal):
        return val
    try:
        return Decimal(str(val))
    except InvalidOperation:
        logger.error(f"Could not convert value '{val}' of type {type(val)} to Decimal in {helper_name}. Treating it as missing.")
        return None


def _q(val: Optional[Decimal | int | float | str]) -> Decimal:
    """Quantize a value for EUR/currency totals (cents)."""
    dec = _to_decimal(val, "_q")
    if dec is None:
        return Decimal("0.00")
    return dec.quantize(config.OUTPUT_PRECISION_AMOUNTS, rounding=ROUND_HALF_UP)


def _q_price(val: Optional[Decimal | int | float | str]) -> Decimal:
    """Quantize a value for per-share prices and unit costs."""
    dec = _to_decimal(val, "_q_price")
    if dec is None:
        dec = Decimal("0")
    return dec.quantize(config.OUTPUT_PRECISION_PER_SHARE, rounding=ROUND_HALF_UP)


def _q_qty(val: Optional[Decimal | int | float | str]) -> Decimal:
    dec = _to_decimal(val, "_q_qty")
    if dec is None:
        dec = Decimal("0")
    return dec.quantize(config.PRECISION_QUANTITY, rounding=ROUND_HALF_UP)


def format_quantity(val: Optional[Decimal]) -> str:
    """Quantity without trailing zeros: 10.00000000 -> '10', 0.50000000 -> '0.5'."""
    quantity = _q_qty(val)
    if quantity == quantity.to_integral_value():
        return str(quantity.quantize(Decimal("1")))
    return format(quantity.normalize(), "f")


def format_date(dt: Optional[date | str]) -> str:
    """Formats a date object or YYYY-MM-DD string as YYYY-MM-DD."""
    if dt is None:
        return ""
    if isinstance(dt, str):
        try:
            dt = date.fromisoformat(dt)
        except ValueError:
            return dt
    return dt.isoformat()
