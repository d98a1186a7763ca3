# taxfolio/reporting/pdf_generator.py
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional
from xml.sax.saxutils import escape

from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle, PageBreak
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.units import cm
from reportlab.lib.enums import TA_LEFT, TA_CENTER, TA_RIGHT, TA_JUSTIFY

from taxfolio.domain.results import ReportResult
from taxfolio.engine.cash_movement_processor import summarize_by_currency
from taxfolio.engine.stock_processor import summarize_holdings
from taxfolio.reporting.reporting_utils import _q, _q_price, format_quantity, format_date
from taxfolio import config as app_config
from taxfolio import __version__

logger = logging.getLogger(__name__)


class PdfReportGenerator:
    def __init__(self,
                 report: ReportResult,
                 user_id: int,
                 year: Optional[int] = None,
                 account_holder_name: str = app_config.ACCOUNT_HOLDER_NAME,
                 report_version: str = __version__):
        self.report = report
        self.user_id = user_id
        self.year = year
        self.account_holder_name = account_holder_name
        self.report_version = report_version

        self.styles = self._generate_styles()
        self.story: List[Any] = []

    def _generate_styles(self):
        styles = getSampleStyleSheet()

        styles.add(ParagraphStyle(name='H1', fontSize=16, leading=20, spaceAfter=10, alignment=TA_CENTER, fontName='Helvetica-Bold'))
        styles.add(ParagraphStyle(name='H2', fontSize=14, leading=18, spaceAfter=8, spaceBefore=12, fontName='Helvetica-Bold'))
        styles.add(ParagraphStyle(name='H3', fontSize=12, leading=16, spaceAfter=6, spaceBefore=10, fontName='Helvetica-Bold'))

        body_text_style = styles['BodyText']
        body_text_style.fontSize = 10
        body_text_style.leading = 12
        body_text_style.spaceAfter = 6
        body_text_style.fontName = 'Helvetica'

        styles.add(ParagraphStyle(name='SmallText', fontSize=8, leading=10, spaceAfter=4, fontName='Helvetica'))
        styles.add(ParagraphStyle(name='Disclaimer', fontSize=8, leading=10, spaceAfter=12, alignment=TA_JUSTIFY, fontName='Helvetica'))
        styles.add(ParagraphStyle(name='TableHeader', alignment=TA_CENTER, fontSize=7, fontName='Helvetica-Bold', textColor=colors.black))
        styles.add(ParagraphStyle(name='TableCell', alignment=TA_LEFT, fontSize=7, fontName='Helvetica', textColor=colors.black))
        styles.add(ParagraphStyle(name='TableCellRight', alignment=TA_RIGHT, fontSize=7, fontName='Helvetica', textColor=colors.black))

        return styles

    def _create_styled_table(self, data: List[List[Any]], col_widths: Optional[List[float]] = None,
                             extra_styles: Optional[List[Any]] = None, repeatRows=1) -> Table:
        """Wraps every cell in a Paragraph; Decimals are formatted as amounts and right-aligned."""
        styled_data = []
        for i, row_content in enumerate(data):
            styled_row = []
            for cell_content in row_content:
                if isinstance(cell_content, Paragraph):
                    styled_row.append(cell_content)
                elif i < repeatRows:
                    styled_row.append(Paragraph(str(cell_content), self.styles['TableHeader']))
                elif isinstance(cell_content, Decimal):
                    styled_row.append(Paragraph(str(_q(cell_content)), self.styles['TableCellRight']))
                elif isinstance(cell_content, int):
                    styled_row.append(Paragraph(str(cell_content), self.styles['TableCellRight']))
                else:
                    styled_row.append(Paragraph("" if cell_content is None else escape(str(cell_content)), self.styles['TableCell']))
            styled_data.append(styled_row)

        tbl = Table(styled_data, colWidths=col_widths, repeatRows=repeatRows)

        base_ts_cmds = [
            ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('LEFTPADDING', (0, 0), (-1, -1), 3),
            ('RIGHTPADDING', (0, 0), (-1, -1), 3),
            ('TOPPADDING', (0, 0), (-1, -1), 2),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 2),
        ]
        if repeatRows > 0:
            base_ts_cmds.append(('BACKGROUND', (0, 0), (-1, repeatRows - 1), colors.lightgrey))
        if extra_styles:
            base_ts_cmds.extend(extra_styles)

        tbl.setStyle(TableStyle(base_ts_cmds))
        return tbl

    def _right(self, text: Any) -> Paragraph:
        return Paragraph(str(text), self.styles['TableCellRight'])

    def _in_year(self, d) -> bool:
        return self.year is None or d.year == self.year

    def _add_title_page(self):
        scope = str(self.year) if self.year is not None else "all years"
        self.story.append(Paragraph(f"Portfolio Tax Report ({scope})", self.styles['H1']))
        self.story.append(Spacer(1, 1 * cm))
        self.story.append(Paragraph(f"Account holder: {self.account_holder_name}", self.styles['BodyText']))
        self.story.append(Paragraph(f"User ID: {self.user_id}", self.styles['BodyText']))
        self.story.append(Paragraph(f"Report date: {datetime.now().strftime('%Y-%m-%d')}", self.styles['BodyText']))
        self.story.append(Paragraph(f"Tool version: taxfolio {self.report_version}", self.styles['BodyText']))
        self.story.append(Spacer(1, 0.5 * cm))

        summary = [
            ["Section", "Value (EUR)"],
            ["Realized stock gain/loss", sum((d.gain_eur for d in self.report.sale_details if self._in_year(d.sale_date)), Decimal("0"))],
            ["Realized option gain/loss", sum((d.gain_eur for d in self.report.option_sale_details if self._in_year(d.close_date)), Decimal("0"))],
        ]
        for year, totals in sorted(self.report.dividend_summary.by_year.items()):
            if self.year is None or year == self.year:
                summary.append([f"Dividends {year} gross", totals.gross_eur])
                summary.append([f"Dividends {year} withheld tax", totals.withheld_eur])
        self.story.append(self._create_styled_table(summary, col_widths=[10 * cm, 4 * cm]))
        self.story.append(Spacer(1, 0.5 * cm))

        disclaimer_text = ("This report was generated automatically from the uploaded brokerage exports. "
                           "It supports the preparation of a tax return and is not tax advice. "
                           "All figures should be checked for correctness.")
        self.story.append(Paragraph(disclaimer_text, self.styles['Disclaimer']))

    def _add_stock_sales(self):
        self.story.append(Paragraph("Realized Stock Sales (FIFO)", self.styles['H2']))
        details = [d for d in self.report.sale_details if self._in_year(d.sale_date)]
        if not details:
            self.story.append(Paragraph("No stock sales in this period.", self.styles['BodyText']))
            return
        data = [["Sale Date", "Product", "ISIN", "Acquired", "Qty", "Proceeds", "Cost Basis", "Commission", "Gain/Loss", "Days", "Note"]]
        for d in details:
            data.append([
                format_date(d.sale_date), d.product_name, d.isin, format_date(d.acquisition_date),
                self._right(format_quantity(d.quantity)), d.proceeds_eur, d.cost_basis_eur, d.commission_eur,
                d.gain_eur, d.holding_period_days, "oversold" if d.is_oversold else "",
            ])
        total = sum((d.gain_eur for d in details), Decimal("0"))
        data.append(["Total", "", "", "", "", "", "", "", total, "", ""])
        col_widths = [2 * cm, 4.5 * cm, 2.6 * cm, 2 * cm, 1.6 * cm, 2.2 * cm, 2.2 * cm, 2 * cm, 2.2 * cm, 1.2 * cm, 1.5 * cm]
        self.story.append(self._create_styled_table(data, col_widths=col_widths,
                                                    extra_styles=[('BACKGROUND', (0, -1), (-1, -1), colors.whitesmoke)]))

    def _add_stock_holdings(self):
        self.story.append(Paragraph("Open Stock Holdings", self.styles['H2']))
        holdings = summarize_holdings(self.report.open_holdings)
        if not holdings:
            self.story.append(Paragraph("No open positions.", self.styles['BodyText']))
            return
        data = [["Product", "ISIN", "Currency", "Quantity", "Lots", "Cost Basis", "Avg Unit Cost"]]
        for h in holdings:
            data.append([
                h.product_name, h.isin, h.currency, self._right(format_quantity(h.quantity)), h.lot_count,
                h.total_cost_eur, self._right(_q_price(h.average_unit_cost_eur)),
            ])
        self.story.append(self._create_styled_table(data, col_widths=[6 * cm, 3 * cm, 2 * cm, 2.5 * cm, 1.5 * cm, 3 * cm, 3 * cm]))

        self.story.append(Paragraph("Open lots", self.styles['H3']))
        lot_data = [["Product", "Acquired", "Original Qty", "Remaining Qty", "Unit Cost", "Remaining Cost"]]
        for lot in self.report.open_holdings:
            lot_data.append([
                lot.product_name, format_date(lot.acquisition_date),
                self._right(format_quantity(lot.quantity_original)), self._right(format_quantity(lot.quantity_remaining)),
                self._right(_q_price(lot.unit_cost_eur)), lot.total_cost_eur,
            ])
        self.story.append(self._create_styled_table(lot_data, col_widths=[6 * cm, 2.5 * cm, 2.5 * cm, 2.5 * cm, 3 * cm, 3 * cm]))

    def _add_option_sales(self):
        self.story.append(Paragraph("Closed Option Positions", self.styles['H2']))
        details = [d for d in self.report.option_sale_details if self._in_year(d.close_date)]
        if not details:
            self.story.append(Paragraph("No option closes in this period.", self.styles['BodyText']))
            return
        data = [["Closed", "Product", "Type", "Strike", "Expiry", "Side", "State", "Qty", "Opening", "Closing", "Commission", "Gain/Loss"]]
        for d in details:
            data.append([
                format_date(d.close_date), d.product_name, d.contract_type.name, self._right(d.strike),
                format_date(d.expiry), d.direction.name.lower(), d.state.value, self._right(format_quantity(d.quantity)),
                d.opening_amount_eur, d.closing_amount_eur, d.commission_eur, d.gain_eur,
            ])
        total = sum((d.gain_eur for d in details), Decimal("0"))
        data.append(["Total", "", "", "", "", "", "", "", "", "", "", total])
        self.story.append(self._create_styled_table(data, extra_styles=[('BACKGROUND', (0, -1), (-1, -1), colors.whitesmoke)]))

    def _add_option_holdings(self):
        self.story.append(Paragraph("Open Option Positions", self.styles['H2']))
        if not self.report.option_holdings:
            self.story.append(Paragraph("No open option positions.", self.styles['BodyText']))
            return
        data = [["Opened", "Product", "Type", "Strike", "Expiry", "Side", "Contracts", "Premium"]]
        for h in self.report.option_holdings:
            data.append([
                format_date(h.open_date), h.product_name, h.contract_type.name, self._right(h.strike),
                format_date(h.expiry), h.direction.name.lower(), self._right(format_quantity(h.quantity_remaining)),
                h.total_premium_eur,
            ])
        self.story.append(self._create_styled_table(data))

    def _add_dividends(self):
        self.story.append(Paragraph("Dividends and Withholding Tax", self.styles['H2']))
        summary = self.report.dividend_summary
        years = [y for y in sorted(summary.by_year) if self.year is None or y == self.year]
        if not years:
            self.story.append(Paragraph("No dividends in this period.", self.styles['BodyText']))
            return
        for year in years:
            self.story.append(Paragraph(f"Dividends {year}", self.styles['H3']))
            data = [["Product", "ISIN", "Country", "Payments", "Gross", "Withheld", "Net"]]
            for entry in summary.entries_for_year(year):
                data.append([
                    entry.product_name, entry.isin, entry.country_code, entry.payment_count,
                    entry.gross_eur, entry.withheld_eur, entry.net_eur,
                ])
            totals = summary.by_year[year]
            data.append(["Total", "", "", "", totals.gross_eur, totals.withheld_eur, totals.net_eur])
            self.story.append(self._create_styled_table(
                data, col_widths=[6 * cm, 3 * cm, 1.8 * cm, 1.8 * cm, 2.6 * cm, 2.6 * cm, 2.6 * cm],
                extra_styles=[('BACKGROUND', (0, -1), (-1, -1), colors.whitesmoke)]))

    def _add_cash_movements(self):
        self.story.append(Paragraph("Cash Movements", self.styles['H2']))
        movements = self.report.cash_movements
        if not movements:
            self.story.append(Paragraph("No cash movements.", self.styles['BodyText']))
            return
        data = [["Date", "Type", "In/Out", "Currency", "Amount", "Amount (EUR)", "Description"]]
        for m in movements:
            data.append([format_date(m.date), m.order_type.value, m.direction.value, m.currency, m.amount, m.amount_eur, m.description])
        self.story.append(self._create_styled_table(data, col_widths=[2.5 * cm, 3.2 * cm, 1.5 * cm, 2 * cm, 3 * cm, 3 * cm, 8 * cm]))

        self.story.append(Paragraph("Per currency", self.styles['H3']))
        totals = [["Currency", "In", "Out", "Net", "Net (EUR)", "Movements"]]
        for s in summarize_by_currency(movements):
            totals.append([s.currency, s.total_in, s.total_out, s.net, s.net_eur, s.movement_count])
        self.story.append(self._create_styled_table(totals))

    def _add_warnings(self):
        if not self.report.oversold_positions and not self.report.unmatched_option_events:
            return
        self.story.append(Paragraph("Processing Warnings", self.styles['H2']))
        for oversold in self.report.oversold_positions:
            self.story.append(Paragraph(
                f"Oversold on {format_date(oversold.sale_date)}: {oversold.product_name} ({oversold.instrument_id}), "
                f"{format_quantity(oversold.uncovered_quantity)} sold without matching purchase lots.",
                self.styles['SmallText']))
        for event in self.report.unmatched_option_events:
            action = "Unmatched" if event.opened_opposite_lot else "Skipped"
            self.story.append(Paragraph(
                escape(f"{action} {event.order_type} on {format_date(event.event_date)} for {event.contract_description}: {event.reason}"),
                self.styles['SmallText']))

    def generate_report(self, output_file_path: str):
        logger.info(f"Creating PDF report: {output_file_path}")
        doc = SimpleDocTemplate(output_file_path, pagesize=landscape(A4),
                                leftMargin=1.5 * cm, rightMargin=1.5 * cm, topMargin=1.5 * cm, bottomMargin=1.5 * cm)

        self.story = []
        self._add_title_page()
        self.story.append(PageBreak())
        self._add_stock_sales()
        self._add_stock_holdings()
        self._add_option_sales()
        self._add_option_holdings()
        self._add_dividends()
        self._add_cash_movements()
        self._add_warnings()

        doc.build(self.story)
        logger.info(f"PDF report created: {output_file_path}")
