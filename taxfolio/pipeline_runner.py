# taxfolio/pipeline_runner.py
import logging
from typing import Optional

from taxfolio import config
from taxfolio.domain.results import ReportResult
from taxfolio.services.report_cache import InMemoryReportCache
from taxfolio.services.repository import SqlAlchemyTransactionRepository
from taxfolio.services.upload_service import UploadService
from taxfolio.utils.exchange_rate_provider import ECBExchangeRateProvider, ExchangeRateProvider

logger = logging.getLogger(__name__)


class ProcessingOutput:
    """
    Encapsulates the results of one command line run.
    """
    def __init__(self,
                 user_id: int,
                 imported_count: int,
                 report: ReportResult):
        self.user_id = user_id
        self.imported_count = imported_count
        self.report = report


def build_upload_service(
    database_url: str = config.DATABASE_URL,
    ecb_cache_file_path: str = config.ECB_RATES_CACHE_FILE_PATH,
    custom_rate_provider: Optional[ExchangeRateProvider] = None # For testing ECB mock
) -> UploadService:
    logger.info("Initializing system components for pipeline...")
    if custom_rate_provider:
        rate_provider = custom_rate_provider
        logger.info("Using custom exchange rate provider.")
    else:
        rate_provider = ECBExchangeRateProvider(
            cache_file_path=ecb_cache_file_path,
            max_fallback_days=config.MAX_FALLBACK_DAYS_EXCHANGE_RATES,
            currency_code_mapping=config.CURRENCY_CODE_MAPPING_ECB
        )
        logger.info("ECB exchange rates provider initialized.")

    repository = SqlAlchemyTransactionRepository(database_url=database_url)
    return UploadService(repository, cache=InMemoryReportCache(), exchange_rate_provider=rate_provider)


def run_core_processing_pipeline(
    transactions_file_path: Optional[str],
    user_id: int = config.DEFAULT_USER_ID,
    database_url: str = config.DATABASE_URL,
    ecb_cache_file_path: str = config.ECB_RATES_CACHE_FILE_PATH,
    custom_rate_provider: Optional[ExchangeRateProvider] = None
) -> ProcessingOutput:
    """
    Imports the transactions file (if given) for the user and returns the report
    over everything stored for that user.
    """
    service = build_upload_service(database_url, ecb_cache_file_path, custom_rate_provider)

    if transactions_file_path is None:
        logger.info(f"No import requested, reporting stored history of user {user_id}.")
        if not service.user_has_data(user_id):
            logger.warning(f"User {user_id} has no stored transactions.")
        return ProcessingOutput(user_id=user_id, imported_count=0, report=service.get_latest_report(user_id))

    logger.info(f"Importing {transactions_file_path} for user {user_id}...")
    with open(transactions_file_path, "rb") as stream:
        result = service.process_upload(stream, user_id)
    return ProcessingOutput(user_id=user_id, imported_count=result.imported_count, report=result.report)
