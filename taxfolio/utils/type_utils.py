# taxfolio/utils/type_utils.py
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from datetime import datetime, date

from dateutil import parser as dateutil_parser


def safe_decimal(value: Any, default: Optional[Decimal] = None, raise_error: bool = False) -> Optional[Decimal]:
    """
    Safely converts a value to a Decimal.
    Handles None, empty strings, strings with commas (as thousands or decimal separator).
    If default is provided, returns default on conversion error.
    If raise_error is True, re-raises InvalidOperation instead of returning default.
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))

    s_value = str(value).strip().replace("\u00a0", "").replace(" ", "")
    if not s_value:
        return default

    try:
        if '.' in s_value and ',' in s_value:
            # Whichever separator comes last is the decimal separator: "1,234.56" or "1.234,56"
            if s_value.rfind(',') > s_value.rfind('.'):
                s_value = s_value.replace('.', '').replace(',', '.')
            else:
                s_value = s_value.replace(',', '')
        elif ',' in s_value:
            s_value = s_value.replace(',', '.')
        result = Decimal(s_value)
        if not result.is_finite():
            raise InvalidOperation(f"Non-finite decimal value '{value}'")
        return result
    except InvalidOperation as e:
        if raise_error:
            raise e
        return default


def parse_date(date_str: Optional[str], default: Optional[date] = None) -> Optional[date]:
    """
    Parses the date formats brokerage exports use (YYYY-MM-DD, DD-MM-YYYY, DD/MM/YYYY, ...).
    Returns a datetime.date object or the default.
    """
    if isinstance(date_str, datetime):
        return date_str.date()
    if isinstance(date_str, date):
        return date_str
    if not date_str or not str(date_str).strip():
        return default

    s_date_str = str(date_str).strip()

    formats_to_try = [
        "%Y-%m-%d",         # 2023-12-31
        "%d-%m-%Y",         # 31-12-2023
        "%d/%m/%Y",         # 31/12/2023
        "%d.%m.%Y",         # 31.12.2023
        "%Y%m%d",           # 20231231
    ]

    date_part = s_date_str.split(' ')[0].split('T')[0]
    for fmt in formats_to_try:
        try:
            return datetime.strptime(date_part, fmt).date()
        except ValueError:
            continue

    # Fallback to dateutil.parser if specific formats fail (day first, as European exports are)
    try:
        return dateutil_parser.parse(s_date_str, dayfirst=True).date()
    except (ValueError, TypeError, OverflowError):
        return default
