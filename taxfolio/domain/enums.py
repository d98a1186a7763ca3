# taxfolio/domain/enums.py
from enum import Enum, auto


class OrderType(Enum):
    """Closed set of canonical order types. Values are the persisted tags."""
    BUY = "buy"
    SELL = "sell"
    DIVIDEND = "dividend"
    DIVIDEND_TAX = "dividendtax"
    OPTION_OPEN = "option-open"
    OPTION_CLOSE = "option-close"
    OPTION_ASSIGNMENT = "option-assignment"
    OPTION_EXERCISE = "option-exercise"
    OPTION_EXPIRY = "option-expiry"
    CASH_DEPOSIT = "cash-deposit"
    CASH_WITHDRAWAL = "cash-withdrawal"
    FEE = "fee"
    OTHER = "other" # Only produced by description inference, never accepted as an unknown explicit tag

    @classmethod
    def from_tag(cls, tag: str) -> "OrderType":
        """Resolves a persisted or user supplied tag. Raises ValueError on unknown tags."""
        normalized = tag.strip().lower().replace("_", "-").replace(" ", "-")
        normalized = ORDER_TYPE_ALIASES.get(normalized, normalized)
        return cls(normalized)

    @property
    def is_trade(self) -> bool:
        return self in (OrderType.BUY, OrderType.SELL)

    @property
    def is_option_event(self) -> bool:
        return self in OPTION_ORDER_TYPES

    @property
    def is_dividend_related(self) -> bool:
        return self in (OrderType.DIVIDEND, OrderType.DIVIDEND_TAX)


OPTION_ORDER_TYPES = frozenset({
    OrderType.OPTION_OPEN,
    OrderType.OPTION_CLOSE,
    OrderType.OPTION_ASSIGNMENT,
    OrderType.OPTION_EXERCISE,
    OrderType.OPTION_EXPIRY,
})

ORDER_TYPE_ALIASES = {
    "dividend-tax": "dividendtax",
    "withholding-tax": "dividendtax",
    "deposit": "cash-deposit",
    "withdrawal": "cash-withdrawal",
    "option-assigned": "option-assignment",
    "option-exercised": "option-exercise",
    "option-expired": "option-expiry",
    "commission": "fee",
}


class ContractType(Enum):
    CALL = auto()
    PUT = auto()

    @classmethod
    def from_tag(cls, tag: str) -> "ContractType":
        normalized = tag.strip().upper()
        if normalized in ("C", "CALL"):
            return cls.CALL
        if normalized in ("P", "PUT"):
            return cls.PUT
        raise ValueError(f"Unknown option contract type '{tag}'")


class OptionDirection(Enum):
    LONG = auto()  # Bought to open
    SHORT = auto() # Sold to open (writer)


class OptionCloseState(Enum):
    """How an option lot left the open set."""
    SOLD = "sold"
    ASSIGNED = "assigned"
    EXERCISED = "exercised"
    EXPIRED = "expired"


class CashDirection(Enum):
    IN = "in"
    OUT = "out"
