# taxfolio/cli.py
import argparse
from typing import Optional, Sequence

from taxfolio import config # For default paths and settings


def parse_arguments(argv: Optional[Sequence[str]] = None):
    """Parses command line arguments for the application."""
    parser = argparse.ArgumentParser(description="Taxfolio: FIFO gains, options, dividends and cash from brokerage exports")

    # Input and storage
    parser.add_argument("--transactions", default=config.TRANSACTIONS_FILE_PATH, help="Path to the transactions CSV export to import.")
    parser.add_argument("--no-import", action="store_true", help="Skip the import and report on already stored transactions.")
    parser.add_argument("--user-id", type=int, default=config.DEFAULT_USER_ID, help="User whose history is imported and reported.")
    parser.add_argument("--database-url", default=config.DATABASE_URL, help="SQLAlchemy URL of the transaction store.")
    parser.add_argument("--ecb-cache", default=config.ECB_RATES_CACHE_FILE_PATH, help="Path to the ECB exchange rate cache file.")

    # Reporting options
    parser.add_argument("--year", type=int, default=None, help="Restrict realized sales, option closes and dividends to one calendar year.")
    parser.add_argument("--no-console-report", dest="console_report", action="store_false", help="Do not print the report summary.")
    parser.add_argument("--pdf-output-file", type=str, default=None, help="Write a PDF report to this file.")
    parser.add_argument("--pdf", action="store_true", help=f"Write a PDF report to {config.DEFAULT_PDF_OUTPUT_FILE} unless --pdf-output-file is given.")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level.")

    args = parser.parse_args(argv)

    if args.pdf and args.pdf_output_file is None:
        args.pdf_output_file = config.DEFAULT_PDF_OUTPUT_FILE

    return args
