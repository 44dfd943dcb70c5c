from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from database import Base
from filtering import TransactionFilters
from models import Account, AccountType, Category, TransactionType, User
from periods import Period
from schemas import AccountIn, CategoryIn, TransactionIn, TransferIn
from services import (
    AccountService,
    CategoryService,
    CSVService,
    MetricsService,
    SnapshotService,
    TransactionService,
    TransferService,
    seed_defaults,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def setup_user(session):
    seed_defaults(session)
    user = User(email="owner@example.com", password_hash="x")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def default_category(session, name, type) -> Category:
    return session.scalar(
        select(Category).where(
            Category.name == name, Category.type == type, Category.is_default.is_(True)
        )
    )


def make_account(session, user, name="Bank", type_name="Savings Account", cents=0) -> Account:
    account_type = session.scalar(select(AccountType).where(AccountType.name == type_name))
    return AccountService(session, user.id).create(
        AccountIn(name=name, account_type_id=account_type.id, initial_balance_cents=cents)
    )


def income(session, amount_cents, on=date(2024, 1, 1), account_id=None, description="Pay"):
    return TransactionIn(
        date=on,
        type=TransactionType.income,
        amount_cents=amount_cents,
        category_id=default_category(session, "Salary", TransactionType.income).id,
        description=description,
        account_id=account_id,
    )


def expense(session, amount_cents, on=date(2024, 1, 2), account_id=None, description="Lunch"):
    return TransactionIn(
        date=on,
        type=TransactionType.expense,
        amount_cents=amount_cents,
        category_id=default_category(session, "Food", TransactionType.expense).id,
        description=description,
        account_id=account_id,
    )


def test_summary_for_income_and_expenses() -> None:
    session = make_session()
    user = setup_user(session)
    txns = TransactionService(session, user.id)

    txns.create(income(session, 500_000))
    txns.create(expense(session, 100_000))
    txns.create(expense(session, 50_000, on=date(2024, 1, 3)))

    summary = MetricsService(session, user.id).summary()
    assert summary["income"] == 5000
    assert summary["expenses"] == 1500
    assert summary["balance"] == 3500
    assert summary["savings_rate"] == 70.0


def test_category_type_must_match() -> None:
    session = make_session()
    user = setup_user(session)
    food = default_category(session, "Food", TransactionType.expense)

    with pytest.raises(ValueError, match="Category type mismatch"):
        TransactionService(session, user.id).create(
            TransactionIn(
                date=date(2024, 1, 1),
                type=TransactionType.income,
                amount_cents=1_000,
                category_id=food.id,
                description="Refund",
            )
        )


def test_amount_must_be_positive() -> None:
    session = make_session()
    setup_user(session)
    with pytest.raises(ValidationError):
        expense(session, 0)


def test_linked_transactions_post_to_account() -> None:
    session = make_session()
    user = setup_user(session)
    account = make_account(session, user, cents=10_000)
    txns = TransactionService(session, user.id)

    pay = txns.create(income(session, 50_000, account_id=account.id))
    lunch = txns.create(expense(session, 2_500, account_id=account.id))
    assert account.balance_cents == 57_500

    txns.update(lunch.id, expense(session, 4_000, account_id=account.id))
    assert account.balance_cents == 56_000

    txns.delete(pay.id)
    assert account.balance_cents == 6_000


def test_update_moves_posting_between_accounts() -> None:
    session = make_session()
    user = setup_user(session)
    first = make_account(session, user, name="First", cents=10_000)
    second = make_account(session, user, name="Second", cents=10_000)
    txns = TransactionService(session, user.id)

    txn = txns.create(expense(session, 3_000, account_id=first.id))
    txns.update(txn.id, expense(session, 3_000, account_id=second.id))

    assert first.balance_cents == 10_000
    assert second.balance_cents == 7_000


def test_inactive_account_rejected() -> None:
    session = make_session()
    user = setup_user(session)
    account = make_account(session, user)
    AccountService(session, user.id).soft_delete(account.id)

    with pytest.raises(ValueError, match="Account not found"):
        TransactionService(session, user.id).create(
            expense(session, 1_000, account_id=account.id)
        )


def test_category_in_use_cannot_be_deleted() -> None:
    session = make_session()
    user = setup_user(session)
    categories = CategoryService(session, user.id)
    pets = categories.create(CategoryIn(name="Pets", type=TransactionType.expense))

    txn = TransactionService(session, user.id).create(
        TransactionIn(
            date=date(2024, 1, 1),
            type=TransactionType.expense,
            amount_cents=1_200,
            category_id=pets.id,
            description="Vet",
        )
    )
    with pytest.raises(ValueError, match="used by transactions"):
        categories.delete(pets.id)
    with pytest.raises(ValueError, match="Cannot change the type"):
        categories.update(pets.id, CategoryIn(name="Pets", type=TransactionType.income))

    TransactionService(session, user.id).delete(txn.id)
    categories.delete(pets.id)


def test_list_orders_newest_first() -> None:
    session = make_session()
    user = setup_user(session)
    txns = TransactionService(session, user.id)

    older = txns.create(expense(session, 100, on=date(2024, 1, 1)))
    newer = txns.create(expense(session, 100, on=date(2024, 2, 1)))
    same_day = txns.create(expense(session, 100, on=date(2024, 2, 1)))

    assert [t.id for t in txns.list()] == [same_day.id, newer.id, older.id]
    assert [t.id for t in txns.list(limit=2)] == [same_day.id, newer.id]


def test_transfer_moves_money_and_stays_out_of_totals() -> None:
    session = make_session()
    user = setup_user(session)
    bank = make_account(session, user, name="Bank", cents=100_000)
    fund = make_account(session, user, name="Rainy day", type_name="Emergency Fund")
    transfers = TransferService(session, user.id)

    transfer = transfers.create(
        TransferIn(
            date=date(2024, 1, 5),
            amount_cents=40_000,
            description="Top up fund",
            from_account_id=bank.id,
            to_account_id=fund.id,
        )
    )
    assert bank.balance_cents == 60_000
    assert fund.balance_cents == 40_000

    assert TransactionService(session, user.id).list() == []
    assert SnapshotService(session, user.id).transactions() == ()
    assert [t.id for t in transfers.list()] == [transfer.id]

    transfers.delete(transfer.id)
    assert bank.balance_cents == 100_000
    assert fund.balance_cents == 0


def test_transfer_requires_distinct_accounts() -> None:
    with pytest.raises(ValidationError, match="From and To accounts must be different"):
        TransferIn(
            date=date(2024, 1, 5),
            amount_cents=1_000,
            description="Loop",
            from_account_id=3,
            to_account_id=3,
        )


def test_clear_all_reverses_postings_and_keeps_transfers() -> None:
    session = make_session()
    user = setup_user(session)
    bank = make_account(session, user, name="Bank", cents=10_000)
    cash = make_account(session, user, name="Wallet", type_name="Cash")
    txns = TransactionService(session, user.id)

    txns.create(income(session, 5_000, account_id=bank.id))
    txns.create(expense(session, 1_000, account_id=bank.id))
    TransferService(session, user.id).create(
        TransferIn(
            date=date(2024, 1, 5),
            amount_cents=2_000,
            description="ATM",
            from_account_id=bank.id,
            to_account_id=cash.id,
        )
    )

    assert txns.clear_all() == 2
    assert txns.list() == []
    assert bank.balance_cents == 8_000
    assert cash.balance_cents == 2_000
    assert len(TransferService(session, user.id).list()) == 1


def test_transactions_page_filters_snapshot() -> None:
    session = make_session()
    user = setup_user(session)
    txns = TransactionService(session, user.id)
    for day in range(1, 21):
        txns.create(expense(session, 1_000, on=date(2024, 1, day), description=f"Lunch {day}"))
    txns.create(income(session, 90_000, on=date(2024, 1, 15)))

    metrics = MetricsService(session, user.id)
    page = metrics.transactions_page(TransactionFilters(type="expense"), 2, 15)
    assert page.total_count == 20
    assert page.total_pages == 2
    assert len(page.items) == 5
    assert page.items[0].description == "Lunch 5"

    searched = metrics.transactions_page(TransactionFilters(search="salary"), 1, 15)
    assert [t.type for t in searched.items] == [TransactionType.income]


def test_daily_series_and_category_breakdown() -> None:
    session = make_session()
    user = setup_user(session)
    txns = TransactionService(session, user.id)
    txns.create(expense(session, 3_000, on=date(2024, 1, 2)))
    txns.create(income(session, 10_000, on=date(2024, 1, 3)))

    metrics = MetricsService(session, user.id)
    rows = metrics.daily_series(Period("custom", date(2024, 1, 1), date(2024, 1, 3)))
    assert [r["expense"] for r in rows] == [0, 30, 0]
    assert [r["income"] for r in rows] == [0, 0, 100]

    assert metrics.category_summary() == [
        {"category": "Food", "amount": 30, "percentage": 100.0}
    ]


def test_insights_from_service() -> None:
    session = make_session()
    user = setup_user(session)
    txns = TransactionService(session, user.id)
    txns.create(income(session, 500_000))
    txns.create(expense(session, 100_000))

    report = MetricsService(session, user.id).insights(today=date(2024, 1, 10))
    assert report.insights[0].title == "Savings Rate Performance"
    assert report.insights[0].metric == "80.0%"
    assert len(report.insights) == 6


def test_csv_export_rows() -> None:
    session = make_session()
    user = setup_user(session)
    TransactionService(session, user.id).create(
        expense(session, 150_050, on=date(2024, 3, 9), description="=SUM(A1)")
    )

    lines = CSVService(session, user.id).export().splitlines()
    assert lines[0] == "Date,Description,Category,Type,Amount"
    assert lines[1] == "2024-03-09,\t=SUM(A1),Food,expense,1500.50"


def test_spending_on_a_card_raises_the_amount_owed() -> None:
    session = make_session()
    user = setup_user(session)
    card = make_account(session, user, name="Card", type_name="Credit Card")
    txns = TransactionService(session, user.id)

    lunch = txns.create(expense(session, 10_000, account_id=card.id))
    assert card.balance_cents == 10_000
    assert MetricsService(session, user.id).net_worth()["net_worth"] == Decimal("-100.00")

    txns.create(income(session, 4_000, account_id=card.id, description="Cashback"))
    assert card.balance_cents == 6_000

    txns.delete(lunch.id)
    assert card.balance_cents == -4_000


def test_paying_off_a_card_keeps_net_worth() -> None:
    session = make_session()
    user = setup_user(session)
    bank = make_account(session, user, name="Checking", type_name="Checking Account", cents=100_000)
    card = make_account(session, user, name="Card", type_name="Credit Card", cents=30_000)
    assert MetricsService(session, user.id).net_worth()["net_worth"] == Decimal("700.00")

    payment = TransferService(session, user.id).create(
        TransferIn(
            date=date(2024, 1, 20),
            amount_cents=30_000,
            description="Card bill",
            from_account_id=bank.id,
            to_account_id=card.id,
        )
    )
    assert bank.balance_cents == 70_000
    assert card.balance_cents == 0
    assert MetricsService(session, user.id).net_worth()["net_worth"] == Decimal("700.00")

    TransferService(session, user.id).delete(payment.id)
    assert card.balance_cents == 30_000


def test_cash_advance_from_card_keeps_net_worth() -> None:
    session = make_session()
    user = setup_user(session)
    card = make_account(session, user, name="Card", type_name="Credit Card")
    wallet = make_account(session, user, name="Wallet", type_name="Cash")

    TransferService(session, user.id).create(
        TransferIn(
            date=date(2024, 1, 20),
            amount_cents=5_000,
            description="ATM on card",
            from_account_id=card.id,
            to_account_id=wallet.id,
        )
    )
    assert card.balance_cents == 5_000
    assert wallet.balance_cents == 5_000
    assert MetricsService(session, user.id).net_worth()["net_worth"] == 0


def test_edit_keeps_deactivated_account() -> None:
    session = make_session()
    user = setup_user(session)
    old = make_account(session, user, name="Closed", cents=10_000)
    fresh = make_account(session, user, name="Open", cents=0)
    txns = TransactionService(session, user.id)

    txn = txns.create(expense(session, 2_000, account_id=old.id))
    AccountService(session, user.id).soft_delete(old.id)

    updated = txns.update(
        txn.id, expense(session, 2_000, account_id=old.id, description="Renamed")
    )
    assert updated.description == "Renamed"
    assert updated.account_id == old.id
    assert old.balance_cents == 8_000

    txns.update(txn.id, expense(session, 2_000, account_id=fresh.id))
    assert old.balance_cents == 10_000
    assert fresh.balance_cents == -2_000

    # Once moved off, the inactive account cannot be picked again.
    with pytest.raises(ValueError, match="Account not found"):
        txns.update(txn.id, expense(session, 2_000, account_id=old.id))
