# taxfolio/parsers/csv_parser.py
import csv
import io
import logging
from typing import IO, List, Union

from pydantic import ValidationError

from .raw_models import RawTransaction
from taxfolio.errors import MalformedRecordError

logger = logging.getLogger(__name__)

_CANDIDATE_DELIMITERS = ",;\t"


def _read_text(stream: Union[IO[str], IO[bytes]], encoding: str) -> str:
    content = stream.read()
    if isinstance(content, bytes):
        content = content.decode(encoding)
    return content.lstrip("\ufeff")


def parse_transactions_csv(stream: Union[IO[str], IO[bytes]], encoding: str = 'utf-8-sig') -> List[RawTransaction]:
    """
    Parses a transaction export into RawTransaction rows.
    Any row that does not fit the raw model aborts the whole file with MalformedRecordError,
    since a partial import would corrupt lot matching.
    """
    text = _read_text(stream, encoding)
    if not text.strip():
        logger.info("Transaction export is empty.")
        return []

    first_line = text.splitlines()[0]
    try:
        dialect = csv.Sniffer().sniff(first_line, delimiters=_CANDIDATE_DELIMITERS)
        delimiter = dialect.delimiter
    except csv.Error:
        delimiter = ","

    reader = csv.DictReader(io.StringIO(text), delimiter=delimiter)
    if reader.fieldnames:
        reader.fieldnames = [name.strip() for name in reader.fieldnames]

    raw_transactions: List[RawTransaction] = []
    for i, row_dict in enumerate(reader, start=1):
        if not any((value or "").strip() for key, value in row_dict.items() if key is not None and isinstance(value, str)):
            continue # Blank line
        cleaned = {key: value for key, value in row_dict.items() if key is not None}
        try:
            raw_transactions.append(RawTransaction.model_validate({**cleaned, "row_number": i}))
        except ValidationError as e:
            first_error = e.errors()[0]
            field_name = ".".join(str(part) for part in first_error.get("loc", ())) or "row"
            raise MalformedRecordError(i, field_name, first_error.get("input"), first_error.get("msg", "")) from e

    logger.info(f"Parsed {len(raw_transactions)} raw transaction rows (delimiter '{delimiter}').")
    return raw_transactions


def parse_transactions_file(file_path: str, encoding: str = 'utf-8-sig') -> List[RawTransaction]:
    with open(file_path, mode='r', encoding=encoding, newline='') as csvfile:
        return parse_transactions_csv(csvfile, encoding=encoding)
