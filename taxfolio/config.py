# taxfolio/config.py

from decimal import Decimal

# Default input file for the command line import
TRANSACTIONS_FILE_PATH = "data/transactions.csv"

# User whose history is imported/reported by the command line
DEFAULT_USER_ID = 1

# Relational store for processed transactions (SQLAlchemy URL)
DATABASE_URL = "sqlite:///data/taxfolio.db"

# Cache file for ECB exchange rates
ECB_RATES_CACHE_FILE_PATH = "cache/ecb_exchange_rates.json"

# Numerical Precision
INTERNAL_CALCULATION_PRECISION = 28
DECIMAL_ROUNDING_MODE = "ROUND_HALF_UP" # Python's decimal module uses strings like 'ROUND_HALF_UP', 'ROUND_HALF_EVEN'

# Output/Reporting Precisions
OUTPUT_PRECISION_AMOUNTS: Decimal = Decimal("0.01")
OUTPUT_PRECISION_PER_SHARE: Decimal = Decimal("0.000001")
PRECISION_QUANTITY: Decimal = Decimal("0.00000001")
PRECISION_EXCHANGE_RATE: Decimal = Decimal("0.00000001") # Multiplicative transaction currency -> EUR rate

# Fallback days for ECB exchange rates
MAX_FALLBACK_DAYS_EXCHANGE_RATES = 7
CURRENCY_CODE_MAPPING_ECB: dict[str, str] = {"CNH": "CNY"}

# Options
DEFAULT_OPTION_MULTIPLIER: Decimal = Decimal("100") # Shares per contract when the export carries no multiplier

# Per-user report cache
REPORT_CACHE_TTL_SECONDS = 15 * 60

# Reporting
DEFAULT_PDF_OUTPUT_FILE = "taxfolio_report.pdf"
ACCOUNT_HOLDER_NAME = "Account Holder" # Placeholder - shown in the PDF header
