"""Unit tests for statement normalization"""

import pytest
from datetime import datetime
from recon_gateway.domain.exceptions import InvalidBatchError, ParseError
from recon_gateway.domain.normalizer import (
    AMOUNT,
    PHONE,
    REFERENCE,
    TIMESTAMP,
    TIME_OF_DAY,
    TXN_ID,
    map_header,
    parse_amount_cents,
    parse_statement,
    parse_structured_rows,
)
from recon_gateway.utils.date_utils import parse_statement_timestamp
from recon_gateway.utils.phone_utils import normalize_msisdn


def test_map_header_aliases_case_and_whitespace_insensitive():
    """Test recognized header variants map onto canonical fields"""
    columns = map_header(["  RECEIPT NO ", "Value", "Invoice Ref", "msisdn", "Date"])

    assert columns == {TXN_ID: 0, AMOUNT: 1, REFERENCE: 2, PHONE: 3, TIMESTAMP: 4}


def test_map_header_first_matching_column_wins():
    columns = map_header(["Transaction ID", "Date", "Time", "Amount"])

    assert columns[TIMESTAMP] == 1
    assert columns[TIME_OF_DAY] == 2
    assert columns[AMOUNT] == 3


def test_map_header_decorated_headers_fall_back_to_contains_match():
    """Test headers carrying a currency suffix still map after exact aliases are taken"""
    columns = map_header(["Receipt No.", "Amount (KES)", "Account Reference", "Withdrawn Amount"])

    assert columns[TXN_ID] == 0
    assert columns[AMOUNT] == 1
    assert columns[REFERENCE] == 2


def test_parse_statement_amount_header_with_currency_suffix():
    rows = list(parse_statement("Receipt No.,Amount (KES),Account Reference\nTX1,100,INV-1\n"))

    assert rows[0].record.amount_cents == 10000
    assert rows[0].record.account_reference == "INV-1"


def test_parse_statement_joins_separate_date_and_time_columns():
    rows = list(parse_statement("Transaction ID,Date,Time,Amount\nTX1,01/02/2024,10:30:00,5\n"))

    assert rows[0].record.timestamp == datetime(2024, 2, 1, 10, 30)


def test_parse_statement_records_and_row_numbers():
    """Test header is row 1 and blank lines do not consume row numbers"""
    text = "\n\nTransaction ID,Amount,Ref,Phone,Date\nTX1,100.50,inv-1,0712345678,2024-02-01 10:00:00\n\nTX2,20,,,\n"
    rows = list(parse_statement(text))

    assert [row.row_number for row in rows] == [2, 3]
    first = rows[0].record
    assert first.external_txn_id == "TX1"
    assert first.amount_cents == 10050
    assert first.account_reference == "inv-1"
    assert first.phone == "254712345678"
    assert first.timestamp == datetime(2024, 2, 1, 10, 0, 0)

    second = rows[1].record
    assert second.account_reference is None
    assert second.phone is None
    assert second.timestamp is None


def test_parse_statement_reports_bad_rows_instead_of_raising():
    """Test every malformed row is emitted as a failure in input order"""
    text = "\n".join(
        [
            "Receipt No,Amount",
            "TX1,",
            "TX2,abc",
            ",50",
            "TX4,-10",
            "TX5,0",
            "TX6,10.005",
            "TX7,15",
        ]
    )
    rows = list(parse_statement(text))

    assert len(rows) == 7
    assert [row.failure.detail for row in rows[:6]] == [
        "missing_amount",
        "invalid_amount",
        "missing_transaction_id",
        "non_positive_amount",
        "non_positive_amount",
        "sub_minor_unit_amount",
    ]
    assert rows[1].failure.raw_txn_id == "TX2"
    assert rows[1].failure.raw_amount == "abc"
    assert rows[1].failure.amount_cents is None
    assert rows[2].failure.amount_cents == 5000
    assert rows[6].record.amount_cents == 1500


def test_parse_statement_short_row_missing_amount_cell():
    rows = list(parse_statement("Amount,Transaction ID,Phone\n,TX1"))

    assert rows[0].failure.detail == "missing_amount"


def test_parse_statement_is_restartable():
    """Test iterating the statement twice yields identical rows"""
    statement = parse_statement("Transid,Amount\nA,1\nB,2\n")

    assert list(statement) == list(statement)
    assert len(statement) == 2


@pytest.mark.parametrize(
    "text",
    [
        "",
        "   \n\n  ",
        "Name,Description\nfoo,bar",
        "Transaction ID,Phone\nTX1,0712345678",
    ],
)
def test_parse_statement_invalid_batch(text):
    """Test unparseable input aborts before any row is produced"""
    with pytest.raises(InvalidBatchError):
        parse_statement(text)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1000", 100000),
        ("KES 1,200.50", 120050),
        (" 0.01 ", 1),
        ("250.5", 25050),
    ],
)
def test_parse_amount_cents(raw, expected):
    assert parse_amount_cents(raw) == expected


def test_parse_amount_cents_error_detail():
    with pytest.raises(ParseError) as exc_info:
        parse_amount_cents("1.2.3")

    assert exc_info.value.detail == "invalid_amount"


def test_parse_structured_rows_numbers_from_one():
    """Test structured rows use the same validation as csv rows"""
    rows = parse_structured_rows(
        [
            {"transactionId": "TX1", "amount": 600, "accountReference": "INV-9", "msisdn": "0712345678"},
            {"transactionId": "TX2", "amount": None},
            {"transaction_id": "TX3", "amount": "12.25"},
        ]
    )

    assert [row.row_number for row in rows] == [1, 2, 3]
    assert rows[0].record.amount_cents == 60000
    assert rows[0].record.phone == "254712345678"
    assert rows[1].failure.detail == "missing_amount"
    assert rows[2].record.amount_cents == 1225


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("0712345678", "254712345678"),
        ("+254 712 345 678", "254712345678"),
        ("712345678", "254712345678"),
        ("254712345678", "254712345678"),
        ("2547****678", None),
        ("", None),
        ("n/a", None),
    ],
)
def test_normalize_msisdn(raw, expected):
    assert normalize_msisdn(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("20240201103000", datetime(2024, 2, 1, 10, 30, 0)),
        ("01/02/2024 10:30:00", datetime(2024, 2, 1, 10, 30, 0)),
        ("2024-02-01T10:30:00", datetime(2024, 2, 1, 10, 30, 0)),
        ("yesterday", None),
        (None, None),
    ],
)
def test_parse_statement_timestamp(raw, expected):
    assert parse_statement_timestamp(raw) == expected
