from datetime import date

import pytest
from pydantic import ValidationError

from aggregation import TransactionRecord
from filtering import paginate
from main import _form_error, page_out
from models import TransactionType
from schemas import TransferIn


def txn(id, on):
    return TransactionRecord(
        id=id,
        amount=100,
        description=f"txn {id}",
        category="Food",
        type=TransactionType.expense,
        date=on,
    )


def test_page_out_groups_current_page_by_day() -> None:
    records = [
        txn(3, date(2024, 3, 2)),
        txn(2, date(2024, 3, 2)),
        txn(1, date(2024, 3, 1)),
    ]
    data = page_out(paginate(records, 1, 15), group_by_day=True)
    assert [g["date"] for g in data["groups"]] == [date(2024, 3, 2), date(2024, 3, 1)]
    assert [[i["id"] for i in g["items"]] for g in data["groups"]] == [[3, 2], [1]]
    assert data["total_count"] == 3

    flat = page_out(paginate(records, 1, 15))
    assert "groups" not in flat
    assert [i["id"] for i in flat["items"]] == [3, 2, 1]
    assert flat["items"][0]["type"] == "expense"


def test_form_error_missing_field() -> None:
    error = _form_error(KeyError("amount"))
    assert error.status_code == 400
    assert error.detail == "Missing field: amount"


def test_form_error_validation_message() -> None:
    with pytest.raises(ValidationError) as info:
        TransferIn(
            date=date(2024, 1, 1),
            amount_cents=0,
            description="Loop",
            from_account_id=1,
            to_account_id=2,
        )
    error = _form_error(info.value)
    assert error.status_code == 400
    assert error.detail.startswith("amount_cents: ")
    assert "pydantic" not in error.detail


def test_form_error_service_lookup_is_404() -> None:
    assert _form_error(ValueError("Category not found")).status_code == 404
    assert _form_error(ValueError("Invalid amount")).detail == "Invalid amount"
