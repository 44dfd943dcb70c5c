"""Financial aggregation over an in-memory snapshot.

All functions are pure: they take the snapshot (or a piece of it), never
mutate it, and return plain numbers or containers. Amounts are currency
units (``Decimal`` when loaded from the database, any number in tests).
Accounts whose type failed to resolve simply do not contribute.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Sequence, Union

from models import AccountCategory, AccountRole, TransactionType

Number = Union[int, float, Decimal]

EMERGENCY_FUND_MONTHS = 6
DIVERSIFICATION_POINTS_PER_TYPE = 20
EMERGENCY_FUND_ROLES = frozenset({AccountRole.cash, AccountRole.emergency_fund})
INVESTMENT_ROLES = frozenset({AccountRole.investment})


@dataclass(frozen=True)
class TransactionRecord:
    id: int
    amount: Number
    description: str
    category: str
    type: TransactionType
    date: date
    category_id: Optional[int] = None


@dataclass(frozen=True)
class AccountTypeRecord:
    name: str
    category: AccountCategory
    affects_net_worth: bool = True
    role: AccountRole = AccountRole.general


@dataclass(frozen=True)
class AccountRecord:
    id: int
    name: str
    balance: Number
    account_type_id: Optional[int] = None
    account_type: Optional[AccountTypeRecord] = None


@dataclass(frozen=True)
class Snapshot:
    transactions: tuple[TransactionRecord, ...] = ()
    accounts: tuple[AccountRecord, ...] = ()


@dataclass(frozen=True)
class FinancialMetrics:
    income: Number = 0
    expenses: Number = 0
    balance: Number = 0
    net_worth: Number = 0
    total_assets: Number = 0
    total_liabilities: Number = 0
    emergency_fund_balance: Number = 0
    emergency_fund_target: Number = 0
    investment_balance: Number = 0
    savings_rate: float = 0.0
    debt_to_asset_ratio: float = 0.0
    emergency_fund_ratio: float = 0.0
    investment_ratio: float = 0.0
    account_type_count: int = 0
    diversification_score: int = 0
    category_totals: dict[str, Number] = field(default_factory=dict)


def _ratio(numerator: Number, denominator: Number) -> float:
    if denominator <= 0:
        return 0.0
    return float(numerator) / float(denominator) * 100


def get_balance(transactions: Iterable[TransactionRecord]) -> Number:
    total: Number = 0
    for txn in transactions:
        if txn.type == TransactionType.income:
            total += txn.amount
        else:
            total -= txn.amount
    return total


def get_income(transactions: Iterable[TransactionRecord]) -> Number:
    return sum(
        (t.amount for t in transactions if t.type == TransactionType.income), 0
    )


def get_expenses(transactions: Iterable[TransactionRecord]) -> Number:
    return sum(
        (t.amount for t in transactions if t.type == TransactionType.expense), 0
    )


def get_category_totals(transactions: Iterable[TransactionRecord]) -> dict[str, Number]:
    totals: dict[str, Number] = {}
    for txn in transactions:
        if txn.type != TransactionType.expense:
            continue
        totals[txn.category] = totals.get(txn.category, 0) + txn.amount
    return totals


def sorted_category_totals(totals: dict[str, Number]) -> list[tuple[str, Number]]:
    # sorted() is stable, so ties keep their insertion order.
    return sorted(totals.items(), key=lambda kv: kv[1], reverse=True)


def category_summary(
    transactions: Sequence[TransactionRecord],
) -> list[dict[str, object]]:
    total_expenses = get_expenses(transactions)
    return [
        {
            "category": name,
            "amount": amount,
            "percentage": round(_ratio(amount, total_expenses), 1),
        }
        for name, amount in sorted_category_totals(get_category_totals(transactions))
    ]


def _resolved(accounts: Iterable[AccountRecord]) -> list[AccountRecord]:
    return [a for a in accounts if a.account_type is not None]


def calculate_net_worth(accounts: Iterable[AccountRecord]) -> Number:
    total: Number = 0
    for account in _resolved(accounts):
        account_type = account.account_type
        if not account_type.affects_net_worth:
            continue
        if account_type.category == AccountCategory.asset:
            total += account.balance
        elif account_type.category == AccountCategory.liability:
            total -= account.balance
    return total


def _balance_where(accounts: Iterable[AccountRecord], predicate) -> Number:
    return sum(
        (a.balance for a in _resolved(accounts) if predicate(a.account_type)), 0
    )


def total_assets(accounts: Iterable[AccountRecord]) -> Number:
    return _balance_where(accounts, lambda t: t.category == AccountCategory.asset)


def total_liabilities(accounts: Iterable[AccountRecord]) -> Number:
    return _balance_where(
        accounts, lambda t: t.category == AccountCategory.liability
    )


def emergency_fund_balance(accounts: Iterable[AccountRecord]) -> Number:
    return _balance_where(accounts, lambda t: t.role in EMERGENCY_FUND_ROLES)


def investment_balance(accounts: Iterable[AccountRecord]) -> Number:
    return _balance_where(accounts, lambda t: t.role in INVESTMENT_ROLES)


def savings_rate(income: Number, expenses: Number) -> float:
    return _ratio(income - expenses, income)


def debt_to_asset_ratio(liabilities: Number, assets: Number) -> float:
    return _ratio(liabilities, assets)


def emergency_fund_ratio(fund_balance: Number, expenses: Number) -> float:
    return _ratio(fund_balance, expenses * EMERGENCY_FUND_MONTHS)


def investment_ratio(invested: Number, assets: Number) -> float:
    return _ratio(invested, assets)


def distinct_account_type_count(accounts: Iterable[AccountRecord]) -> int:
    return len({a.account_type.name for a in _resolved(accounts)})


def diversification_score(type_count: int) -> int:
    return min(type_count * DIVERSIFICATION_POINTS_PER_TYPE, 100)


def compute_metrics(snapshot: Snapshot) -> FinancialMetrics:
    transactions = snapshot.transactions
    accounts = snapshot.accounts

    income = get_income(transactions)
    expenses = get_expenses(transactions)
    assets = total_assets(accounts)
    liabilities = total_liabilities(accounts)
    fund = emergency_fund_balance(accounts)
    invested = investment_balance(accounts)
    type_count = distinct_account_type_count(accounts)

    return FinancialMetrics(
        income=income,
        expenses=expenses,
        balance=get_balance(transactions),
        net_worth=calculate_net_worth(accounts),
        total_assets=assets,
        total_liabilities=liabilities,
        emergency_fund_balance=fund,
        emergency_fund_target=expenses * EMERGENCY_FUND_MONTHS,
        investment_balance=invested,
        savings_rate=savings_rate(income, expenses),
        debt_to_asset_ratio=debt_to_asset_ratio(liabilities, assets),
        emergency_fund_ratio=emergency_fund_ratio(fund, expenses),
        investment_ratio=investment_ratio(invested, assets),
        account_type_count=type_count,
        diversification_score=diversification_score(type_count),
        category_totals=get_category_totals(transactions),
    )


def daily_series(
    transactions: Iterable[TransactionRecord], start: date, end: date
) -> list[dict[str, object]]:
    """Income and expense per calendar day in ``[start, end]``.

    Every day in the range gets a row, including days with no activity.
    """
    days: dict[date, dict[str, object]] = {}
    current = start
    while current <= end:
        days[current] = {"date": current, "income": 0, "expense": 0}
        current += timedelta(days=1)

    for txn in transactions:
        row = days.get(txn.date)
        if row is None:
            continue
        if txn.type == TransactionType.income:
            row["income"] += txn.amount
        elif txn.type == TransactionType.expense:
            row["expense"] += txn.amount
    return list(days.values())
