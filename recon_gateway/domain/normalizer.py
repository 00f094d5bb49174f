"""Statement normalizer - turns raw statement text into ordered StatementRows"""

import csv
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from recon_gateway.domain.exceptions import InvalidBatchError, ParseError
from recon_gateway.domain.models import ParseFailure, StatementRow, TransactionRecord
from recon_gateway.utils.date_utils import parse_statement_timestamp
from recon_gateway.utils.phone_utils import DEFAULT_COUNTRY_CODE, normalize_msisdn

TXN_ID = "external_txn_id"
AMOUNT = "amount"
REFERENCE = "account_reference"
PHONE = "phone"
TIMESTAMP = "timestamp"
TIME_OF_DAY = "time_of_day"

HEADER_ALIASES: Dict[str, List[str]] = {
    TXN_ID: [
        "transaction id",
        "transid",
        "receipt no",
        "receipt",
        "mpesa receipt",
        "mpesareceiptnumber",
        "m-pesa receipt",
    ],
    AMOUNT: ["amount", "value", "transamount", "paid in"],
    REFERENCE: [
        "account reference",
        "ref",
        "reference",
        "invoice ref",
        "bill reference",
        "accountref",
        "accref",
    ],
    PHONE: ["phone", "msisdn", "phone number", "payer"],
    TIMESTAMP: ["date", "timestamp", "transdate", "transaction date", "completion time"],
    # A separate time column is appended to the date column
    TIME_OF_DAY: ["time"],
}

REQUIRED_FIELDS = (TXN_ID, AMOUNT)

# Keys accepted for pre-structured rows (camelCase as exported by the web client)
STRUCTURED_KEYS: Dict[str, Tuple[str, ...]] = {
    TXN_ID: ("transactionId", "transaction_id", "external_txn_id"),
    AMOUNT: ("amount",),
    REFERENCE: ("accountReference", "account_reference"),
    PHONE: ("msisdn", "phone"),
    TIMESTAMP: ("timestamp",),
}


def _header_key(cell: str) -> str:
    return re.sub(r"[^a-z0-9]", "", cell.lower())


_ALIAS_LOOKUP = {
    _header_key(alias): field_name
    for field_name, aliases in HEADER_ALIASES.items()
    for alias in aliases
}


def map_header(cells: List[str]) -> Dict[str, int]:
    """
    Map canonical field names to column positions; first matching column wins.

    Exact alias matches are taken first. Fields still unmapped then take the
    first free column whose key contains one of their aliases, so decorated
    headers such as "Amount (KES)" are recognized.
    """
    keys = [_header_key(cell) for cell in cells]
    columns: Dict[str, int] = {}
    for position, key in enumerate(keys):
        field_name = _ALIAS_LOOKUP.get(key)
        if field_name and field_name not in columns:
            columns[field_name] = position

    taken = set(columns.values())
    for field_name, aliases in HEADER_ALIASES.items():
        if field_name in columns:
            continue
        alias_keys = [_header_key(alias) for alias in aliases]
        for position, key in enumerate(keys):
            if position in taken or not key:
                continue
            if any(alias_key in key for alias_key in alias_keys):
                columns[field_name] = position
                taken.add(position)
                break
    return columns


def parse_amount_cents(raw: Optional[str]) -> int:
    """
    Parse an amount cell into integer minor units.

    Currency labels and thousands separators are ignored ("KES 1,200.50" -> 120050).
    Amounts finer than the minor unit are rejected rather than rounded.
    """
    text = (raw or "").strip()
    if not text:
        raise ParseError("missing_amount")

    cleaned = re.sub(r"[^\d.\-]", "", text)
    if not re.search(r"\d", cleaned):
        raise ParseError("invalid_amount", f"Amount {text!r} is not numeric")

    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        raise ParseError("invalid_amount", f"Amount {text!r} is not numeric")

    if not value.is_finite():
        raise ParseError("invalid_amount", f"Amount {text!r} is not finite")
    if value <= 0:
        raise ParseError("non_positive_amount", f"Amount {text!r} must be positive")

    cents = value * 100
    if cents != cents.to_integral_value():
        raise ParseError("sub_minor_unit_amount", f"Amount {text!r} has more than two decimals")

    return int(cents)


def build_record(
    txn_id: Optional[str],
    amount: Optional[str],
    reference: Optional[str] = None,
    phone: Optional[str] = None,
    timestamp: Optional[str] = None,
    country_code: str = DEFAULT_COUNTRY_CODE,
) -> TransactionRecord:
    """Validate raw cell values and build a TransactionRecord; raises ParseError"""
    external_txn_id = (txn_id or "").strip()
    if not external_txn_id:
        raise ParseError("missing_transaction_id")

    amount_cents = parse_amount_cents(amount)

    return TransactionRecord(
        external_txn_id=external_txn_id,
        amount_cents=amount_cents,
        account_reference=(reference or "").strip() or None,
        phone=normalize_msisdn(phone, country_code),
        timestamp=parse_statement_timestamp(timestamp),
    )


def _join_timestamp(date_part: Optional[str], time_part: Optional[str]) -> Optional[str]:
    date_part = (date_part or "").strip()
    time_part = (time_part or "").strip()
    if date_part and time_part:
        return f"{date_part} {time_part}"
    return date_part or time_part or None


def _amount_or_none(raw: Optional[str]) -> Optional[int]:
    try:
        return parse_amount_cents(raw)
    except ParseError:
        return None


def _row_from_values(row_number: int, values: Mapping[str, Optional[str]], country_code: str) -> StatementRow:
    try:
        record = build_record(
            values.get(TXN_ID),
            values.get(AMOUNT),
            values.get(REFERENCE),
            values.get(PHONE),
            _join_timestamp(values.get(TIMESTAMP), values.get(TIME_OF_DAY)),
            country_code=country_code,
        )
    except ParseError as e:
        failure = ParseFailure(
            detail=e.detail,
            raw_txn_id=(values.get(TXN_ID) or "").strip() or None,
            raw_amount=(values.get(AMOUNT) or "").strip() or None,
            amount_cents=_amount_or_none(values.get(AMOUNT)),
        )
        return StatementRow(row_number=row_number, failure=failure)
    return StatementRow(row_number=row_number, record=record)


def _split_line(line: str) -> List[str]:
    return [cell.strip() for cell in next(csv.reader([line]))]


class Statement:
    """
    Lazy, restartable sequence of StatementRows.

    Row numbers are 1-based with the header as row 1; blank lines are not rows
    and do not consume a number. Every data line yields exactly one row.
    """

    def __init__(self, columns: Dict[str, int], lines: List[str], country_code: str = DEFAULT_COUNTRY_CODE):
        self.columns = columns
        self.lines = lines
        self.country_code = country_code

    def __len__(self) -> int:
        return len(self.lines)

    def __iter__(self) -> Iterator[StatementRow]:
        for offset, line in enumerate(self.lines):
            row_number = offset + 2
            try:
                cells = _split_line(line)
            except csv.Error:
                yield StatementRow(row_number=row_number, failure=ParseFailure(detail="malformed_line"))
                continue

            values = {
                field_name: cells[position] if position < len(cells) else None
                for field_name, position in self.columns.items()
            }
            yield _row_from_values(row_number, values, self.country_code)


def parse_statement(text: str | None, country_code: str = DEFAULT_COUNTRY_CODE) -> Statement:
    """
    Parse raw comma-delimited statement text.

    Raises:
        InvalidBatchError: Empty input, unreadable header, or a header without
            transaction id and amount columns
    """
    lines = [line for line in (text or "").splitlines() if line.strip()]
    if not lines:
        raise InvalidBatchError("Statement is empty")

    try:
        header = _split_line(lines[0])
    except csv.Error as e:
        raise InvalidBatchError(f"Statement header is unreadable: {e}") from e

    columns = map_header(header)
    missing = [name for name in REQUIRED_FIELDS if name not in columns]
    if missing:
        raise InvalidBatchError(f"Statement header is missing required columns: {', '.join(missing)}")

    return Statement(columns, lines[1:], country_code=country_code)


def parse_structured_rows(
    rows: Iterable[Mapping[str, Any]],
    country_code: str = DEFAULT_COUNTRY_CODE,
) -> List[StatementRow]:
    """Normalize pre-structured rows (numbered from 1) through the same validation"""
    parsed = []
    for row_number, raw in enumerate(rows, start=1):
        values: Dict[str, Optional[str]] = {}
        for field_name, keys in STRUCTURED_KEYS.items():
            value = next((raw[key] for key in keys if raw.get(key) is not None), None)
            values[field_name] = None if value is None else str(value)
        parsed.append(_row_from_values(row_number, values, country_code))
    return parsed
