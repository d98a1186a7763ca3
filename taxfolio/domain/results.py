# taxfolio/domain/results.py
from dataclasses import dataclass, field, KW_ONLY
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from .enums import ContractType, OptionDirection, OptionCloseState, CashDirection, OrderType
from .transactions import ProcessedTransaction
from taxfolio.errors import UnmatchedOptionEvent, OversoldPosition


@dataclass
class PurchaseLot:
    instrument_id: str
    isin: str
    product_name: str
    acquisition_date: date
    quantity_original: Decimal
    quantity_remaining: Decimal
    unit_cost_eur: Decimal # Includes the buy commission share
    currency: str

    _: KW_ONLY
    source_sequence: int = 0
    order_id: str = ""
    is_synthetic: bool = False
    remaining_cost_eur: Optional[Decimal] = None # Exact cost of quantity_remaining, decremented as the lot is consumed

    def __post_init__(self):
        if self.remaining_cost_eur is None:
            self.remaining_cost_eur = self.quantity_remaining * self.unit_cost_eur
        if not isinstance(self.quantity_remaining, Decimal) or not self.quantity_remaining.is_finite() or self.quantity_remaining <= Decimal(0):
            raise ValueError(f"PurchaseLot quantity_remaining must be a positive finite Decimal: {self.quantity_remaining}")
        if not isinstance(self.unit_cost_eur, Decimal) or not self.unit_cost_eur.is_finite() or self.unit_cost_eur < Decimal(0):
            raise ValueError(f"PurchaseLot unit_cost_eur must be a non-negative finite Decimal: {self.unit_cost_eur}")
        if self.quantity_remaining > self.quantity_original:
            raise ValueError(f"PurchaseLot quantity_remaining {self.quantity_remaining} exceeds quantity_original {self.quantity_original}")

    @property
    def total_cost_eur(self) -> Decimal:
        return self.remaining_cost_eur


@dataclass(frozen=True)
class SaleDetail:
    instrument_id: str
    isin: str
    product_name: str
    sale_date: date
    acquisition_date: date
    quantity: Decimal
    proceeds_eur: Decimal
    cost_basis_eur: Decimal
    commission_eur: Decimal # Sale commission allocated to this slice
    gain_eur: Decimal
    holding_period_days: int
    currency: str

    _: KW_ONLY
    is_oversold: bool = False
    sale_order_id: str = ""
    sale_sequence: int = 0
    lot_sequence: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.quantity, Decimal) or self.quantity <= Decimal(0):
            raise ValueError(f"SaleDetail.quantity must be a positive Decimal, got {self.quantity}")
        if self.holding_period_days < 0:
            raise ValueError(f"SaleDetail for {self.instrument_id} has negative holding period ({self.holding_period_days} days)")


@dataclass(frozen=True)
class HoldingSummary:
    instrument_id: str
    isin: str
    product_name: str
    currency: str
    quantity: Decimal
    total_cost_eur: Decimal
    average_unit_cost_eur: Decimal
    lot_count: int


@dataclass
class OptionHolding:
    contract_key: Tuple[str, Decimal, date, ContractType]
    isin: str
    product_name: str
    contract_type: ContractType
    strike: Decimal
    expiry: date
    multiplier: Decimal
    direction: OptionDirection
    open_date: date
    quantity_original: Decimal # Contracts, always positive
    quantity_remaining: Decimal
    unit_premium_eur: Decimal # Cost per contract (long) or net proceeds per contract (short)
    currency: str

    _: KW_ONLY
    underlying_isin: str = ""
    underlying_name: str = ""
    source_sequence: int = 0
    order_id: str = ""
    remaining_premium_eur: Optional[Decimal] = None

    def __post_init__(self):
        if self.remaining_premium_eur is None:
            self.remaining_premium_eur = self.quantity_remaining * self.unit_premium_eur
        if not isinstance(self.direction, OptionDirection):
            raise TypeError(f"OptionHolding.direction must be an OptionDirection, got {type(self.direction)}")
        if not isinstance(self.quantity_remaining, Decimal) or self.quantity_remaining <= Decimal(0):
            raise ValueError(f"OptionHolding quantity_remaining must be a positive Decimal: {self.quantity_remaining}")
        if not isinstance(self.unit_premium_eur, Decimal) or self.unit_premium_eur < Decimal(0):
            raise ValueError(f"OptionHolding unit_premium_eur must be a non-negative Decimal: {self.unit_premium_eur}")

    @property
    def total_premium_eur(self) -> Decimal:
        return self.remaining_premium_eur


@dataclass(frozen=True)
class OptionSaleDetail:
    isin: str
    product_name: str
    contract_type: ContractType
    strike: Decimal
    expiry: date
    direction: OptionDirection
    open_date: date
    close_date: date
    quantity: Decimal
    opening_amount_eur: Decimal # Premium paid (long) or received (short)
    closing_amount_eur: Decimal # Proceeds (long) or buy-back cost (short); zero on assignment/exercise/expiry
    commission_eur: Decimal # Closing commission allocated to this slice
    gain_eur: Decimal
    holding_period_days: int
    state: OptionCloseState
    currency: str

    _: KW_ONLY
    close_sequence: int = 0
    close_order_id: str = ""

    def __post_init__(self):
        if not isinstance(self.state, OptionCloseState):
            raise TypeError(f"OptionSaleDetail.state must be an OptionCloseState, got {type(self.state)}")
        if not isinstance(self.quantity, Decimal) or self.quantity <= Decimal(0):
            raise ValueError(f"OptionSaleDetail.quantity must be a positive Decimal, got {self.quantity}")


@dataclass
class DividendSummaryEntry:
    instrument_id: str
    isin: str
    product_name: str
    country_code: str
    year: int
    gross_eur: Decimal = Decimal("0")
    withheld_eur: Decimal = Decimal("0")
    payment_count: int = 0

    @property
    def net_eur(self) -> Decimal:
        return self.gross_eur - self.withheld_eur


@dataclass
class DividendYearTotals:
    year: int
    gross_eur: Decimal = Decimal("0")
    withheld_eur: Decimal = Decimal("0")

    @property
    def net_eur(self) -> Decimal:
        return self.gross_eur - self.withheld_eur


@dataclass
class DividendTaxResult:
    by_instrument: Dict[Tuple[str, int], DividendSummaryEntry] = field(default_factory=dict)
    by_year: Dict[int, DividendYearTotals] = field(default_factory=dict)

    def entries_for_year(self, year: int) -> List[DividendSummaryEntry]:
        return [entry for (_, entry_year), entry in sorted(self.by_instrument.items()) if entry_year == year]

    @property
    def is_empty(self) -> bool:
        return not self.by_instrument


@dataclass(frozen=True)
class CashMovement:
    date: date
    currency: str
    amount: Decimal
    amount_eur: Decimal
    direction: CashDirection
    order_type: OrderType
    description: str
    sequence: int = 0


@dataclass
class CashBalanceSummary:
    currency: str
    total_in: Decimal = Decimal("0")
    total_out: Decimal = Decimal("0")
    total_in_eur: Decimal = Decimal("0")
    total_out_eur: Decimal = Decimal("0")
    movement_count: int = 0

    @property
    def net(self) -> Decimal:
        return self.total_in - self.total_out

    @property
    def net_eur(self) -> Decimal:
        return self.total_in_eur - self.total_out_eur


@dataclass
class ReportResult:
    """Everything derived from one user's transaction history."""
    sale_details: List[SaleDetail] = field(default_factory=list)
    open_holdings: List[PurchaseLot] = field(default_factory=list)
    option_sale_details: List[OptionSaleDetail] = field(default_factory=list)
    option_holdings: List[OptionHolding] = field(default_factory=list)
    dividend_summary: DividendTaxResult = field(default_factory=DividendTaxResult)
    dividend_transactions: List[ProcessedTransaction] = field(default_factory=list)
    cash_movements: List[CashMovement] = field(default_factory=list)
    unmatched_option_events: List[UnmatchedOptionEvent] = field(default_factory=list)
    oversold_positions: List[OversoldPosition] = field(default_factory=list)

    @property
    def skipped_option_event_count(self) -> int:
        return sum(1 for event in self.unmatched_option_events if not event.opened_opposite_lot)

    @property
    def total_realized_gain_eur(self) -> Decimal:
        return sum((detail.gain_eur for detail in self.sale_details), Decimal("0"))

    @property
    def total_option_gain_eur(self) -> Decimal:
        return sum((detail.gain_eur for detail in self.option_sale_details), Decimal("0"))


@dataclass
class UploadResult:
    user_id: int
    imported_count: int
    report: ReportResult
