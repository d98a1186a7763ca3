"""
Test Fixtures Module

YAML-based scenarios (stock_fifo_scenarios.yaml, ...):
- Input/output scenarios with clear parameter variations
- Human-readable, parseable, git-diff friendly
- Use load_yaml_scenarios() to parse, get_stock_fifo_scenarios() for typed access
"""

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


FIXTURES_DIR = Path(__file__).parent


@dataclass
class ScenarioTrade:
    """Parsed trade from YAML."""
    type: str
    date: str
    qty: Decimal
    price: Decimal
    commission: Decimal = Decimal("0")
    currency: str = "EUR"
    rate: Decimal = Decimal("1")


@dataclass
class ExpectedSale:
    acquisition_date: str
    quantity: Decimal
    proceeds_eur: Decimal
    cost_basis_eur: Decimal
    commission_eur: Decimal
    gain_eur: Decimal
    holding_period_days: int
    is_oversold: bool = False


@dataclass
class ExpectedLot:
    acquisition_date: str
    quantity_remaining: Decimal
    remaining_cost_eur: Decimal


@dataclass
class StockScenario:
    """A single FIFO scenario parsed from YAML."""
    id: str
    description: str
    transactions: List[ScenarioTrade]
    expected_sales: List[ExpectedSale]
    expected_open_lots: List[ExpectedLot] = field(default_factory=list)
    expected_oversold_count: int = 0
    notes: Optional[str] = None


def _dec(value: Any) -> Decimal:
    return Decimal(str(value))


def _parse_trade(trade_dict: Dict) -> ScenarioTrade:
    return ScenarioTrade(
        type=trade_dict["type"],
        date=trade_dict["date"],
        qty=_dec(trade_dict["qty"]),
        price=_dec(trade_dict["price"]),
        commission=_dec(trade_dict.get("commission", "0")),
        currency=trade_dict.get("currency", "EUR"),
        rate=_dec(trade_dict.get("rate", "1")),
    )


def _parse_expected_sale(sale_dict: Dict) -> ExpectedSale:
    return ExpectedSale(
        acquisition_date=sale_dict["acquisition_date"],
        quantity=_dec(sale_dict["quantity"]),
        proceeds_eur=_dec(sale_dict["proceeds_eur"]),
        cost_basis_eur=_dec(sale_dict["cost_basis_eur"]),
        commission_eur=_dec(sale_dict["commission_eur"]),
        gain_eur=_dec(sale_dict["gain_eur"]),
        holding_period_days=int(sale_dict["holding_period_days"]),
        is_oversold=bool(sale_dict.get("is_oversold", False)),
    )


def _parse_expected_lot(lot_dict: Dict) -> ExpectedLot:
    return ExpectedLot(
        acquisition_date=lot_dict["acquisition_date"],
        quantity_remaining=_dec(lot_dict["quantity_remaining"]),
        remaining_cost_eur=_dec(lot_dict["remaining_cost_eur"]),
    )


def load_yaml_scenarios(filename: str) -> Dict[str, Any]:
    """
    Load a YAML scenario file from the fixtures directory.
    """
    with open(FIXTURES_DIR / filename, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def parse_stock_scenarios(scenario_data: Dict[str, Any]) -> List[StockScenario]:
    scenarios = []
    for scenario in scenario_data.get("scenarios", []):
        expected = scenario.get("expected", {})
        scenarios.append(StockScenario(
            id=scenario["id"],
            description=scenario["description"],
            transactions=[_parse_trade(t) for t in scenario.get("transactions", [])],
            expected_sales=[_parse_expected_sale(s) for s in expected.get("sale_details", [])],
            expected_open_lots=[_parse_expected_lot(lot) for lot in expected.get("open_lots", [])],
            expected_oversold_count=expected.get("oversold_count", 0),
            notes=scenario.get("notes"),
        ))
    return scenarios


def get_stock_fifo_scenarios() -> List[StockScenario]:
    return parse_stock_scenarios(load_yaml_scenarios("stock_fifo_scenarios.yaml"))
