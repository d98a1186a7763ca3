# taxfolio/services/upload_service.py
import logging
import threading
from typing import IO, Any, Callable, Dict, List, Optional, Union

from taxfolio.domain.results import (
    ReportResult, UploadResult, SaleDetail, PurchaseLot, OptionSaleDetail, OptionHolding,
    DividendTaxResult, CashMovement,
)
from taxfolio.domain.transactions import ProcessedTransaction
from taxfolio.engine.calculation_engine import compute_report
from taxfolio.parsers.csv_parser import parse_transactions_csv
from taxfolio.processing.normalizer import TransactionNormalizer
from taxfolio.services.report_cache import ReportCache, NullReportCache
from taxfolio.services.repository import TransactionRepository
from taxfolio.utils.exchange_rate_provider import ExchangeRateProvider
from taxfolio import config as global_config

logger = logging.getLogger(__name__)

LATEST_REPORT_KEY = "latest_report_user_{user_id}"
STOCK_SALES_KEY = "stock_sales_user_{user_id}"
STOCK_HOLDINGS_KEY = "stock_holdings_user_{user_id}"
OPTION_SALES_KEY = "option_sales_user_{user_id}"
OPTION_HOLDINGS_KEY = "option_holdings_user_{user_id}"
DIVIDEND_SUMMARY_KEY = "dividend_summary_user_{user_id}"
DIVIDEND_TRANSACTIONS_KEY = "dividend_txns_user_{user_id}"
CASH_MOVEMENTS_KEY = "cash_movements_user_{user_id}"

USER_CACHE_KEYS = (
    LATEST_REPORT_KEY, STOCK_SALES_KEY, STOCK_HOLDINGS_KEY, OPTION_SALES_KEY,
    OPTION_HOLDINGS_KEY, DIVIDEND_SUMMARY_KEY, DIVIDEND_TRANSACTIONS_KEY, CASH_MOVEMENTS_KEY,
)


class UploadService:
    """
    Multi-tenant entry point: imports a user's export and serves the derived report
    sections from the per-user cache, recomputing from persisted transactions on a miss.

    Work for one user is serialized by a per-user lock. Every invalidation bumps the
    user's generation; a recomputation only stores its result if the generation it
    started under is still current.
    """
    def __init__(self,
                 repository: TransactionRepository,
                 cache: Optional[ReportCache] = None,
                 exchange_rate_provider: Optional[ExchangeRateProvider] = None,
                 cache_ttl_seconds: float = global_config.REPORT_CACHE_TTL_SECONDS):
        self.repository = repository
        self.cache = cache if cache is not None else NullReportCache()
        self.normalizer = TransactionNormalizer(exchange_rate_provider)
        self.cache_ttl_seconds = cache_ttl_seconds
        self._user_locks: Dict[int, threading.RLock] = {}
        self._generations: Dict[int, int] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, user_id: int) -> threading.RLock:
        with self._registry_lock:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = threading.RLock()
                self._user_locks[user_id] = lock
            return lock

    def _generation(self, user_id: int) -> int:
        with self._registry_lock:
            return self._generations.get(user_id, 0)

    def process_upload(self, stream: Union[IO[str], IO[bytes]], user_id: int) -> UploadResult:
        """
        Parses and normalizes the export, saves it atomically, invalidates the user's cache
        and returns the report over the user's full stored history.
        MalformedRecordError and PersistenceFailureError propagate; nothing is saved then.
        """
        raw_rows = parse_transactions_csv(stream)
        with self._lock_for(user_id):
            transactions = self.normalizer.normalize(raw_rows)
            if not transactions:
                logger.info(f"Upload for user {user_id} contained no transactions.")
            saved = self.repository.save_transactions(user_id, transactions)
            self.invalidate_user_cache(user_id)
            report = self.get_latest_report(user_id)
        logger.info(f"Processed upload for user {user_id}: {saved} transactions imported.")
        return UploadResult(user_id=user_id, imported_count=saved, report=report)

    def invalidate_user_cache(self, user_id: int) -> None:
        with self._registry_lock:
            self._generations[user_id] = self._generations.get(user_id, 0) + 1
        for key_template in USER_CACHE_KEYS:
            self.cache.delete(key_template.format(user_id=user_id))
        logger.info(f"Invalidated cached reports for user {user_id}.")

    def _cached(self, user_id: int, key_template: str, compute: Callable[[ReportResult], Any]) -> Any:
        key = key_template.format(user_id=user_id)
        value, found = self.cache.get(key)
        if found:
            logger.debug(f"Cache hit for {key}.")
            return value

        with self._lock_for(user_id):
            value, found = self.cache.get(key)
            if found:
                return value
            generation = self._generation(user_id)
            report = self._report_from_cache_or_history(user_id, generation)
            value = compute(report)
            self._store_if_current(user_id, generation, key, value)
            return value

    def _report_from_cache_or_history(self, user_id: int, generation: int) -> ReportResult:
        key = LATEST_REPORT_KEY.format(user_id=user_id)
        report, found = self.cache.get(key)
        if found:
            return report
        logger.info(f"Cache miss for user {user_id}: recomputing report from stored transactions.")
        report = compute_report(self.repository.load_transactions(user_id))
        self._store_if_current(user_id, generation, key, report)
        return report

    def _store_if_current(self, user_id: int, generation: int, key: str, value: Any) -> None:
        if self._generation(user_id) != generation:
            logger.warning(f"Discarding recomputed '{key}': user {user_id} cache was invalidated during computation.")
            return
        self.cache.set(key, value, self.cache_ttl_seconds)

    def get_latest_report(self, user_id: int) -> ReportResult:
        return self._cached(user_id, LATEST_REPORT_KEY, lambda report: report)

    def get_stock_sale_details(self, user_id: int) -> List[SaleDetail]:
        return self._cached(user_id, STOCK_SALES_KEY, lambda report: report.sale_details)

    def get_stock_holdings(self, user_id: int) -> List[PurchaseLot]:
        return self._cached(user_id, STOCK_HOLDINGS_KEY, lambda report: report.open_holdings)

    def get_option_sale_details(self, user_id: int) -> List[OptionSaleDetail]:
        return self._cached(user_id, OPTION_SALES_KEY, lambda report: report.option_sale_details)

    def get_option_holdings(self, user_id: int) -> List[OptionHolding]:
        return self._cached(user_id, OPTION_HOLDINGS_KEY, lambda report: report.option_holdings)

    def get_dividend_tax_summary(self, user_id: int) -> DividendTaxResult:
        return self._cached(user_id, DIVIDEND_SUMMARY_KEY, lambda report: report.dividend_summary)

    def get_dividend_transactions(self, user_id: int) -> List[ProcessedTransaction]:
        return self._cached(user_id, DIVIDEND_TRANSACTIONS_KEY, lambda report: report.dividend_transactions)

    def get_cash_movements(self, user_id: int) -> List[CashMovement]:
        return self._cached(user_id, CASH_MOVEMENTS_KEY, lambda report: report.cash_movements)

    def get_processed_transactions(self, user_id: int) -> List[ProcessedTransaction]:
        return self.repository.load_transactions(user_id)

    def user_has_data(self, user_id: int) -> bool:
        return self.repository.has_transactions(user_id)
