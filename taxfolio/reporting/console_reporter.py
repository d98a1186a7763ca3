# taxfolio/reporting/console_reporter.py
import logging
from typing import Optional

from taxfolio.domain.results import ReportResult
from taxfolio.engine.cash_movement_processor import summarize_by_currency
from taxfolio.engine.stock_processor import summarize_holdings
from taxfolio.reporting.reporting_utils import _q, _q_price, format_quantity, format_date

logger = logging.getLogger(__name__)


def print_report_summary(report: ReportResult, user_id: int, year: Optional[int] = None):
    """
    Prints the report sections to stdout. All amounts in EUR unless a currency is shown.
    With `year`, realized sales, option closes and dividends are restricted to that calendar year;
    open holdings and cash movements are always shown in full.
    """
    logger.info(f"Generating console report for user {user_id}...")
    scope = f"Year {year}" if year is not None else "All Years"
    print(f"\n--- Portfolio Report for User {user_id} ({scope}, amounts in EUR) ---")

    sale_details = [d for d in report.sale_details if year is None or d.sale_date.year == year]
    option_details = [d for d in report.option_sale_details if year is None or d.close_date.year == year]

    # --- Stock sales ---
    print("\nRealized Stock Sales (FIFO)")
    if not sale_details:
        print("  No stock sales.")
    for detail in sale_details:
        oversold_marker = " [OVERSOLD]" if detail.is_oversold else ""
        print(
            f"  {format_date(detail.sale_date)} {detail.product_name} ({detail.instrument_id}): "
            f"{format_quantity(detail.quantity)} acquired {format_date(detail.acquisition_date)}, "
            f"proceeds {_q(detail.proceeds_eur)}, cost {_q(detail.cost_basis_eur)}, "
            f"commission {_q(detail.commission_eur)}, gain {_q(detail.gain_eur)}, "
            f"held {detail.holding_period_days} days{oversold_marker}"
        )
    stock_total = sum((d.gain_eur for d in sale_details), _q(0))
    print(f"  Total realized stock gain/loss: {_q(stock_total)}")

    # --- Open holdings ---
    print("\nOpen Stock Holdings")
    holdings = summarize_holdings(report.open_holdings)
    if not holdings:
        print("  No open positions.")
    for holding in holdings:
        print(
            f"  {holding.product_name} ({holding.instrument_id}): {format_quantity(holding.quantity)} in "
            f"{holding.lot_count} lot(s), cost {_q(holding.total_cost_eur)}, "
            f"avg {_q_price(holding.average_unit_cost_eur)}"
        )

    # --- Options ---
    print("\nClosed Option Positions")
    if not option_details:
        print("  No option closes.")
    for detail in option_details:
        print(
            f"  {format_date(detail.close_date)} {detail.product_name} {detail.contract_type.name} "
            f"{detail.strike} {format_date(detail.expiry)} ({detail.direction.name.lower()}, {detail.state.value}): "
            f"{format_quantity(detail.quantity)} contracts, opened {_q(detail.opening_amount_eur)}, "
            f"closed {_q(detail.closing_amount_eur)}, gain {_q(detail.gain_eur)}"
        )
    option_total = sum((d.gain_eur for d in option_details), _q(0))
    print(f"  Total option gain/loss: {_q(option_total)}")

    print("\nOpen Option Positions")
    if not report.option_holdings:
        print("  No open option positions.")
    for holding in report.option_holdings:
        print(
            f"  {holding.product_name} {holding.contract_type.name} {holding.strike} {format_date(holding.expiry)} "
            f"({holding.direction.name.lower()}): {format_quantity(holding.quantity_remaining)} contracts, "
            f"premium {_q(holding.total_premium_eur)}"
        )

    # --- Dividends ---
    print("\nDividends and Withholding Tax")
    years = sorted(report.dividend_summary.by_year) if year is None else [year]
    printed_any = False
    for report_year in years:
        entries = report.dividend_summary.entries_for_year(report_year)
        if not entries:
            continue
        printed_any = True
        totals = report.dividend_summary.by_year[report_year]
        print(f"  {report_year}: gross {_q(totals.gross_eur)}, withheld {_q(totals.withheld_eur)}, net {_q(totals.net_eur)}")
        for entry in entries:
            country = f" [{entry.country_code}]" if entry.country_code else ""
            print(
                f"    {entry.product_name} ({entry.instrument_id}){country}: gross {_q(entry.gross_eur)}, "
                f"withheld {_q(entry.withheld_eur)}, net {_q(entry.net_eur)}"
            )
    if not printed_any:
        print("  No dividends.")

    # --- Cash ---
    print("\nCash Movements")
    summaries = summarize_by_currency(report.cash_movements)
    if not summaries:
        print("  No cash movements.")
    for summary in summaries:
        print(
            f"  {summary.currency}: in {_q(summary.total_in)}, out {_q(summary.total_out)}, "
            f"net {_q(summary.net)} (EUR {_q(summary.net_eur)}), {summary.movement_count} movement(s)"
        )

    # --- Issues ---
    if report.oversold_positions or report.unmatched_option_events:
        print("\nWarnings")
        for oversold in report.oversold_positions:
            print(
                f"  Oversold: {format_date(oversold.sale_date)} {oversold.product_name} ({oversold.instrument_id}), "
                f"{format_quantity(oversold.uncovered_quantity)} sold without matching purchase"
            )
        for event in report.unmatched_option_events:
            label = "Unmatched option close" if event.opened_opposite_lot else "Skipped option event"
            print(f"  {label}: {format_date(event.event_date)} {event.order_type} {event.contract_description} ({event.reason})")

    print("\n--- End of Report ---")
