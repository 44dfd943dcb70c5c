import csv
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest

from aggregation import TransactionRecord
from csv_utils import (
    EXPORT_COLUMNS,
    cents_to_units,
    export_transactions,
    parse_amount,
    sanitize_csv_value,
)
from models import TransactionType


def test_sanitize_csv_value() -> None:
    assert sanitize_csv_value("Groceries") == "Groceries"
    assert sanitize_csv_value("  padded  ") == "padded"
    assert sanitize_csv_value("") == ""
    assert sanitize_csv_value("=1+1") == "\t=1+1"
    assert sanitize_csv_value("@cmd") == "\t@cmd"
    assert sanitize_csv_value("https://evil.example") == "\thttps://evil.example"


def test_parse_amount() -> None:
    assert parse_amount("1,234.50") == 123_450
    assert parse_amount("₹ 99") == 9_900
    assert parse_amount("$0.01") == 1
    assert parse_amount("-12.5", allow_negative=True) == -1_250
    with pytest.raises(ValueError):
        parse_amount("-12.5")
    with pytest.raises(ValueError):
        parse_amount("twelve")
    with pytest.raises(ValueError):
        parse_amount("NaN")


def test_cents_to_units() -> None:
    assert cents_to_units(123_456) == Decimal("1234.56")
    assert str(cents_to_units(5)) == "0.05"


def test_export_columns_and_rows() -> None:
    records = [
        TransactionRecord(
            id=1,
            amount=Decimal("250.00"),
            description="Dinner, with friends",
            category="Food",
            type=TransactionType.expense,
            date=date(2024, 5, 1),
        ),
        TransactionRecord(
            id=2,
            amount=Decimal("4000.00"),
            description="May salary",
            category="Salary",
            type=TransactionType.income,
            date=date(2024, 5, 1),
        ),
    ]
    rows = list(csv.reader(StringIO(export_transactions(records))))
    assert rows[0] == EXPORT_COLUMNS
    assert rows[1] == ["2024-05-01", "Dinner, with friends", "Food", "expense", "250.00"]
    assert rows[2][3:] == ["income", "4000.00"]


def test_export_empty() -> None:
    rows = list(csv.reader(StringIO(export_transactions([]))))
    assert rows == [EXPORT_COLUMNS]
