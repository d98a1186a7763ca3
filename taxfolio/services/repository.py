# taxfolio/services/repository.py
import logging
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import List, Optional, Sequence

from sqlalchemy import Column, Date, DateTime, Integer, String, Text, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

from taxfolio.domain.enums import OrderType, ContractType
from taxfolio.domain.transactions import ProcessedTransaction, OptionContract
from taxfolio.errors import PersistenceFailureError
from taxfolio import config as global_config

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class DecimalString(TypeDecorator):
    """Stores Decimals as text so values round-trip exactly on every backend."""

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else Decimal(value)


class ProcessedTransactionRecord(Base):
    """One normalized transaction of one user. Row id doubles as the insertion order."""

    __tablename__ = "processed_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    date = Column(Date, nullable=False)
    product_name = Column(String, nullable=False, default="")
    isin = Column(String(32), nullable=False, default="")
    quantity = Column(DecimalString, nullable=False)
    original_quantity = Column(DecimalString, nullable=False)
    price = Column(DecimalString, nullable=False)
    order_type = Column(String(32), nullable=False)
    transaction_type = Column(String, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    amount = Column(DecimalString, nullable=False)
    currency = Column(String(8), nullable=False)
    commission = Column(DecimalString, nullable=False)
    order_id = Column(String, nullable=False, default="")
    exchange_rate = Column(DecimalString, nullable=False)
    amount_eur = Column(DecimalString, nullable=False)
    country_code = Column(String(8), nullable=False, default="")
    # Option contract details, NULL for non-option rows
    option_contract_type = Column(String(4), nullable=True)
    option_strike = Column(DecimalString, nullable=True)
    option_expiry = Column(Date, nullable=True)
    option_multiplier = Column(DecimalString, nullable=True)
    underlying_isin = Column(String(32), nullable=True)
    underlying_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


def _db_file_path(database_url: str) -> Optional[Path]:
    """Filesystem path of a ``sqlite:///`` URL, ``None`` for in-memory or non-SQLite databases."""
    if not database_url.startswith("sqlite"):
        return None
    path_part = database_url.split("///", 1)[-1] if "///" in database_url else ""
    if not path_part or path_part == ":memory:":
        return None
    return Path(path_part)


def create_database_engine(database_url: str = global_config.DATABASE_URL) -> Engine:
    connect_args = {}
    kwargs = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        db_path = _db_file_path(database_url)
        if db_path is None:
            # One shared connection, otherwise every session would see its own empty in-memory database
            kwargs["poolclass"] = StaticPool
        elif db_path.parent and not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, connect_args=connect_args, echo=False, **kwargs)


def _to_record(user_id: int, txn: ProcessedTransaction) -> ProcessedTransactionRecord:
    option = txn.option
    return ProcessedTransactionRecord(
        user_id=user_id,
        date=txn.date,
        product_name=txn.product_name,
        isin=txn.isin,
        quantity=txn.quantity,
        original_quantity=txn.original_quantity,
        price=txn.price,
        order_type=txn.order_type.value,
        transaction_type=txn.transaction_type,
        description=txn.description,
        amount=txn.amount,
        currency=txn.currency,
        commission=txn.commission,
        order_id=txn.order_id,
        exchange_rate=txn.exchange_rate,
        amount_eur=txn.amount_eur,
        country_code=txn.country_code,
        option_contract_type=option.contract_type.name if option else None,
        option_strike=option.strike if option else None,
        option_expiry=option.expiry if option else None,
        option_multiplier=option.multiplier if option else None,
        underlying_isin=option.underlying_isin if option else None,
        underlying_name=option.underlying_name if option else None,
    )


def _from_record(record: ProcessedTransactionRecord) -> ProcessedTransaction:
    option = None
    if record.option_contract_type:
        option = OptionContract(
            contract_type=ContractType[record.option_contract_type],
            strike=record.option_strike,
            expiry=record.option_expiry,
            multiplier=record.option_multiplier or global_config.DEFAULT_OPTION_MULTIPLIER,
            underlying_isin=record.underlying_isin or "",
            underlying_name=record.underlying_name or "",
        )
    return ProcessedTransaction(
        date=record.date,
        product_name=record.product_name,
        isin=record.isin,
        quantity=record.quantity,
        original_quantity=record.original_quantity,
        price=record.price,
        order_type=OrderType(record.order_type),
        description=record.description,
        amount=record.amount,
        currency=record.currency,
        commission=record.commission,
        order_id=record.order_id,
        exchange_rate=record.exchange_rate,
        amount_eur=record.amount_eur,
        country_code=record.country_code,
        transaction_type=record.transaction_type,
        sequence=record.id,
        option=option,
    )


class TransactionRepository:
    """Per-user store of processed transactions."""

    def load_transactions(self, user_id: int) -> List[ProcessedTransaction]:
        raise NotImplementedError("Subclasses must implement load_transactions")

    def save_transactions(self, user_id: int, transactions: Sequence[ProcessedTransaction]) -> int:
        raise NotImplementedError("Subclasses must implement save_transactions")

    def has_transactions(self, user_id: int) -> bool:
        raise NotImplementedError("Subclasses must implement has_transactions")


class SqlAlchemyTransactionRepository(TransactionRepository):
    def __init__(self, database_url: str = global_config.DATABASE_URL, engine: Optional[Engine] = None):
        self.engine = engine if engine is not None else create_database_engine(database_url)
        Base.metadata.create_all(self.engine)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def save_transactions(self, user_id: int, transactions: Sequence[ProcessedTransaction]) -> int:
        """Inserts all transactions in one database transaction: every row is committed or none is."""
        if not transactions:
            return 0
        session = self._session_factory()
        try:
            session.add_all([_to_record(user_id, txn) for txn in transactions])
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Saving {len(transactions)} transactions for user {user_id} failed, rolled back: {e}")
            raise PersistenceFailureError(f"Could not save transactions for user {user_id}: {e}") from e
        finally:
            session.close()
        logger.info(f"Saved {len(transactions)} processed transactions for user {user_id}.")
        return len(transactions)

    def load_transactions(self, user_id: int) -> List[ProcessedTransaction]:
        session = self._session_factory()
        try:
            stmt = (
                select(ProcessedTransactionRecord)
                .where(ProcessedTransactionRecord.user_id == user_id)
                .order_by(ProcessedTransactionRecord.date.asc(), ProcessedTransactionRecord.id.asc())
            )
            records = session.scalars(stmt).all()
            transactions = [_from_record(record) for record in records]
        except SQLAlchemyError as e:
            logger.error(f"Loading transactions for user {user_id} failed: {e}")
            raise PersistenceFailureError(f"Could not load transactions for user {user_id}: {e}") from e
        finally:
            session.close()
        logger.debug(f"Loaded {len(transactions)} processed transactions for user {user_id}.")
        return transactions

    def has_transactions(self, user_id: int) -> bool:
        session = self._session_factory()
        try:
            count = session.scalar(
                select(func.count(ProcessedTransactionRecord.id)).where(ProcessedTransactionRecord.user_id == user_id)
            )
        except SQLAlchemyError as e:
            raise PersistenceFailureError(f"Could not query transactions for user {user_id}: {e}") from e
        finally:
            session.close()
        return bool(count)
