# taxfolio/main.py
import logging
import sys
from decimal import getcontext
from typing import Optional, Sequence

# Configuration and CLI
from taxfolio import config
from taxfolio.cli import parse_arguments
from taxfolio.errors import TaxfolioError

# Core pipeline runner
from taxfolio.pipeline_runner import run_core_processing_pipeline, ProcessingOutput

# Reporting
from taxfolio.reporting.console_reporter import print_report_summary
from taxfolio.reporting.pdf_generator import PdfReportGenerator

logger = logging.getLogger(__name__)


def setup_decimal_context():
    """Sets the global decimal precision and rounding mode."""
    getcontext().prec = config.INTERNAL_CALCULATION_PRECISION
    valid_rounding_modes = ["ROUND_CEILING", "ROUND_DOWN", "ROUND_FLOOR", "ROUND_HALF_DOWN",
                            "ROUND_HALF_EVEN", "ROUND_HALF_UP", "ROUND_UP", "ROUND_05UP"]
    rounding_mode_to_set = config.DECIMAL_ROUNDING_MODE
    if rounding_mode_to_set not in valid_rounding_modes:
        logger.warning(f"Invalid DECIMAL_ROUNDING_MODE '{rounding_mode_to_set}' in config. Using ROUND_HALF_UP as fallback.")
        rounding_mode_to_set = "ROUND_HALF_UP"

    getcontext().rounding = rounding_mode_to_set
    logger.info(f"Global decimal precision set to {getcontext().prec}, rounding mode to {getcontext().rounding}.")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main application entry point.
    Parses arguments, imports the export, and generates reports.
    """
    args = parse_arguments(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    setup_decimal_context()

    logger.info("Starting taxfolio...")

    try:
        processing_results: ProcessingOutput = run_core_processing_pipeline(
            transactions_file_path=None if args.no_import else args.transactions,
            user_id=args.user_id,
            database_url=args.database_url,
            ecb_cache_file_path=args.ecb_cache,
        )
    except TaxfolioError as e:
        logger.critical(f"Import failed: {e}. Nothing was stored.")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        logger.critical(f"Could not read input: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    report = processing_results.report
    if args.console_report:
        print_report_summary(report, user_id=args.user_id, year=args.year)

    if args.pdf_output_file:
        logger.info(f"Generating PDF report to {args.pdf_output_file}...")
        PdfReportGenerator(report, user_id=args.user_id, year=args.year).generate_report(args.pdf_output_file)

    logger.info(f"Processing finished: {processing_results.imported_count} transactions imported.")
    if report.unmatched_option_events or report.oversold_positions:
        logger.warning(
            f"{len(report.unmatched_option_events)} option events did not match an open position and "
            f"{len(report.oversold_positions)} sales were oversold. Review the warnings section."
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
