from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session, joinedload

from aggregation import (
    AccountRecord,
    AccountTypeRecord,
    Snapshot,
    TransactionRecord,
    category_summary,
    compute_metrics,
    daily_series,
)
from auth import hash_password, verify_password
from config import get_settings
from csv_utils import cents_to_units, export_transactions
from filtering import Page, TransactionFilters, filter_and_paginate
from insights import InsightReport, generate_insights
from models import (
    Account,
    AccountCategory,
    AccountRole,
    AccountType,
    Category,
    Transaction,
    TransactionType,
    User,
)
from periods import Period
from schemas import (
    AccountIn,
    AccountTypeIn,
    AccountUpdate,
    CategoryIn,
    TransactionIn,
    TransferIn,
    UserIn,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: dict[TransactionType, list[str]] = {
    TransactionType.income: ["Salary", "Freelance", "Investments", "Gifts", "Other"],
    TransactionType.expense: [
        "Food",
        "Housing",
        "Transportation",
        "Entertainment",
        "Utilities",
        "Healthcare",
        "Shopping",
        "Education",
        "Personal",
        "Other",
    ],
}

# name, category, role, affects_net_worth
SYSTEM_ACCOUNT_TYPES: list[tuple[str, AccountCategory, AccountRole, bool]] = [
    ("Cash", AccountCategory.asset, AccountRole.cash, True),
    ("Checking Account", AccountCategory.asset, AccountRole.general, True),
    ("Savings Account", AccountCategory.asset, AccountRole.cash, True),
    ("Emergency Fund", AccountCategory.asset, AccountRole.emergency_fund, True),
    ("Investment Account", AccountCategory.asset, AccountRole.investment, True),
    ("Mutual Fund", AccountCategory.asset, AccountRole.investment, True),
    ("Fixed Deposit", AccountCategory.asset, AccountRole.investment, True),
    ("Credit Card", AccountCategory.liability, AccountRole.general, True),
    ("Loan", AccountCategory.liability, AccountRole.general, True),
    ("Owner Equity", AccountCategory.equity, AccountRole.general, False),
]

CURRENCY_SYMBOLS = {"INR": "₹", "USD": "$", "EUR": "€", "GBP": "£"}


def currency_symbol(code: str) -> str:
    return CURRENCY_SYMBOLS.get(code.upper(), f"{code.upper()} ")


def seed_defaults(session: Session) -> None:
    existing_categories = {
        (row.type, row.name)
        for row in session.execute(
            select(Category.type, Category.name).where(Category.user_id.is_(None))
        )
    }
    for txn_type, names in DEFAULT_CATEGORIES.items():
        for name in names:
            if (txn_type, name) in existing_categories:
                continue
            session.add(Category(user_id=None, name=name, type=txn_type, is_default=True))

    existing_types = set(
        session.scalars(
            select(AccountType.name).where(AccountType.user_id.is_(None))
        ).all()
    )
    for name, category, role, affects_net_worth in SYSTEM_ACCOUNT_TYPES:
        if name in existing_types:
            continue
        session.add(
            AccountType(
                user_id=None,
                name=name,
                category=category,
                role=role,
                affects_net_worth=affects_net_worth,
                is_system=True,
                is_default=True,
            )
        )
    session.commit()


def _postings(txn: Transaction) -> list[tuple[int, int]]:
    if txn.type == TransactionType.transfer:
        return [
            (txn.from_account_id, -txn.amount_cents),
            (txn.to_account_id, txn.amount_cents),
        ]
    if txn.account_id is None:
        return []
    if txn.type == TransactionType.income:
        return [(txn.account_id, txn.amount_cents)]
    return [(txn.account_id, -txn.amount_cents)]


def _apply_postings(session: Session, txn: Transaction, sign: int) -> None:
    for account_id, delta in _postings(txn):
        account = session.get(Account, account_id)
        if account is None:
            continue
        # Liability balances hold the amount owed, so postings are inverted.
        if (
            account.account_type is not None
            and account.account_type.category == AccountCategory.liability
        ):
            delta = -delta
        account.balance_cents += sign * delta


def to_transaction_record(txn: Transaction) -> TransactionRecord:
    return TransactionRecord(
        id=txn.id,
        amount=cents_to_units(txn.amount_cents),
        description=txn.description,
        category=txn.category.name if txn.category else "",
        category_id=txn.category_id,
        type=txn.type,
        date=txn.date,
    )


def to_account_record(account: Account) -> AccountRecord:
    account_type = None
    if account.account_type is not None:
        account_type = AccountTypeRecord(
            name=account.account_type.name,
            category=account.account_type.category,
            affects_net_worth=account.account_type.affects_net_worth,
            role=account.account_type.role,
        )
    return AccountRecord(
        id=account.id,
        name=account.name,
        balance=cents_to_units(account.balance_cents),
        account_type_id=account.account_type_id,
        account_type=account_type,
    )


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def register(self, data: UserIn) -> User:
        existing = self.session.scalar(select(User).where(User.email == data.email))
        if existing:
            raise ValueError("An account with this email already exists")
        user = User(
            email=data.email,
            name=data.name.strip() if data.name else None,
            password_hash=hash_password(data.password),
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"user_registered: user_id={user.id}")
        return user

    def authenticate(self, email: str, password: str) -> Optional[User]:
        user = self.session.scalar(
            select(User).where(User.email == email.strip().lower())
        )
        if not user or not verify_password(password, user.password_hash):
            return None
        return user

    def get(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise ValueError("User not found")
        return user


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _visible(self):
        return or_(Category.user_id == self.user_id, Category.is_default.is_(True))

    def list_all(self, type: Optional[TransactionType] = None) -> list[Category]:
        stmt = (
            select(Category)
            .where(self._visible())
            .order_by(Category.type, Category.is_default.desc(), Category.name)
        )
        if type:
            stmt = stmt.where(Category.type == type)
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.scalar(
            select(Category).where(Category.id == category_id, self._visible())
        )
        if not category:
            raise ValueError("Category not found")
        return category

    def _ensure_unique(
        self, name: str, type: TransactionType, exclude_id: Optional[int] = None
    ) -> None:
        stmt = select(Category).where(
            self._visible(),
            Category.type == type,
            func.lower(Category.name) == name.strip().lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt):
            raise ValueError("Category with this name already exists")

    def _owned(self, category_id: int) -> Category:
        category = self.get(category_id)
        if category.is_default:
            raise ValueError("Default categories cannot be changed")
        return category

    def _in_use(self, category_id: int) -> bool:
        count = self.session.execute(
            select(func.count(Transaction.id)).where(
                Transaction.category_id == category_id
            )
        ).scalar_one()
        return (count or 0) > 0

    def create(self, data: CategoryIn) -> Category:
        self._ensure_unique(data.name, data.type)
        category = Category(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            color=data.color,
            is_default=False,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryIn) -> Category:
        category = self._owned(category_id)
        if data.type != category.type and self._in_use(category.id):
            raise ValueError("Cannot change the type of a category with transactions")
        self._ensure_unique(data.name, data.type, exclude_id=category.id)
        category.name = data.name.strip()
        category.type = data.type
        category.color = data.color
        self.session.commit()
        return category

    def delete(self, category_id: int) -> None:
        category = self._owned(category_id)
        if self._in_use(category.id):
            raise ValueError("Category is used by transactions")
        self.session.delete(category)
        self.session.commit()
        logger.info(f"category_deleted: user_id={self.user_id} id={category_id}")


class AccountTypeService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _visible(self):
        return or_(AccountType.user_id == self.user_id, AccountType.is_system.is_(True))

    def list_all(self) -> list[AccountType]:
        stmt = (
            select(AccountType)
            .where(self._visible())
            .order_by(AccountType.is_system.desc(), AccountType.name)
        )
        return self.session.scalars(stmt).all()

    def get(self, account_type_id: int) -> AccountType:
        account_type = self.session.scalar(
            select(AccountType).where(
                AccountType.id == account_type_id, self._visible()
            )
        )
        if not account_type:
            raise ValueError("Account type not found")
        return account_type

    def _owned(self, account_type_id: int) -> AccountType:
        account_type = self.get(account_type_id)
        if account_type.is_system:
            raise ValueError("System account types cannot be changed")
        return account_type

    def _ensure_unique(self, name: str, exclude_id: Optional[int] = None) -> None:
        stmt = select(AccountType).where(
            self._visible(), func.lower(AccountType.name) == name.strip().lower()
        )
        if exclude_id is not None:
            stmt = stmt.where(AccountType.id != exclude_id)
        if self.session.scalar(stmt):
            raise ValueError("Account type with this name already exists")

    def create(self, data: AccountTypeIn) -> AccountType:
        self._ensure_unique(data.name)
        account_type = AccountType(
            user_id=self.user_id,
            name=data.name.strip(),
            category=data.category,
            role=data.role,
            description=data.description,
            color=data.color,
            affects_net_worth=data.affects_net_worth,
            is_system=False,
            is_default=data.is_default,
        )
        self.session.add(account_type)
        self.session.commit()
        self.session.refresh(account_type)
        return account_type

    def update(self, account_type_id: int, data: AccountTypeIn) -> AccountType:
        account_type = self._owned(account_type_id)
        self._ensure_unique(data.name, exclude_id=account_type.id)
        account_type.name = data.name.strip()
        account_type.category = data.category
        account_type.role = data.role
        account_type.description = data.description
        account_type.color = data.color
        account_type.affects_net_worth = data.affects_net_worth
        account_type.is_default = data.is_default
        self.session.commit()
        return account_type

    def delete(self, account_type_id: int) -> None:
        account_type = self._owned(account_type_id)
        used = self.session.execute(
            select(func.count(Account.id)).where(
                Account.account_type_id == account_type.id
            )
        ).scalar_one()
        if used:
            raise ValueError("Account type is used by accounts")
        self.session.delete(account_type)
        self.session.commit()
        logger.info(f"account_type_deleted: user_id={self.user_id} id={account_type_id}")


class AccountService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_active(self) -> list[Account]:
        stmt = (
            select(Account)
            .options(joinedload(Account.account_type))
            .where(Account.user_id == self.user_id, Account.is_active.is_(True))
            .order_by(Account.is_default.desc(), Account.name)
        )
        return self.session.scalars(stmt).all()

    def get(self, account_id: int, *, include_inactive: bool = False) -> Account:
        stmt = (
            select(Account)
            .options(joinedload(Account.account_type))
            .where(Account.user_id == self.user_id, Account.id == account_id)
        )
        if not include_inactive:
            stmt = stmt.where(Account.is_active.is_(True))
        account = self.session.scalar(stmt)
        if not account:
            raise ValueError("Account not found")
        return account

    def _clear_default(self, keep_id: Optional[int] = None) -> None:
        for account in self.list_active():
            if account.id != keep_id:
                account.is_default = False

    def create(self, data: AccountIn) -> Account:
        AccountTypeService(self.session, self.user_id).get(data.account_type_id)
        currency = (data.currency or get_settings().default_currency).upper()
        if data.is_default:
            self._clear_default()
        account = Account(
            user_id=self.user_id,
            account_type_id=data.account_type_id,
            name=data.name.strip(),
            balance_cents=data.initial_balance_cents,
            initial_balance_cents=data.initial_balance_cents,
            currency=currency,
            description=data.description,
            color=data.color,
            is_active=True,
            is_default=data.is_default,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        logger.info(f"account_created: user_id={self.user_id} id={account.id}")
        return account

    def update(self, account_id: int, data: AccountUpdate) -> Account:
        account = self.get(account_id)
        if data.account_type_id is not None:
            AccountTypeService(self.session, self.user_id).get(data.account_type_id)
            account.account_type_id = data.account_type_id
        if data.name is not None:
            account.name = data.name.strip()
        if data.description is not None:
            account.description = data.description
        if data.color is not None:
            account.color = data.color
        if data.is_default is not None:
            if data.is_default:
                self._clear_default(keep_id=account.id)
            account.is_default = data.is_default
        self.session.commit()
        self.session.refresh(account)
        return account

    def adjust_balance(self, account_id: int, delta_cents: int) -> Account:
        account = self.get(account_id)
        account.balance_cents += delta_cents
        self.session.commit()
        logger.info(
            f"account_balance_adjusted: user_id={self.user_id} id={account_id} "
            f"delta_cents={delta_cents}"
        )
        return account

    def soft_delete(self, account_id: int) -> None:
        account = self.get(account_id)
        account.is_active = False
        account.is_default = False
        self.session.commit()
        logger.info(f"account_deactivated: user_id={self.user_id} id={account_id}")


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self, limit: Optional[int] = None) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type != TransactionType.transfer,
            )
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        if limit:
            stmt = stmt.limit(limit)
        return self.session.scalars(stmt).all()

    def get(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.id == transaction_id,
                Transaction.type != TransactionType.transfer,
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise ValueError("Transaction not found")
        return txn

    def _validate(
        self, data: TransactionIn, current_account_id: Optional[int] = None
    ) -> None:
        category = CategoryService(self.session, self.user_id).get(data.category_id)
        if category.type != data.type:
            raise ValueError("Category type mismatch")
        if data.account_id is not None:
            # Edits may keep a since-deactivated account; new links must be active.
            AccountService(self.session, self.user_id).get(
                data.account_id,
                include_inactive=data.account_id == current_account_id,
            )

    def create(self, data: TransactionIn) -> Transaction:
        self._validate(data)
        txn = Transaction(
            user_id=self.user_id,
            date=data.date,
            type=data.type,
            amount_cents=data.amount_cents,
            description=data.description.strip(),
            category_id=data.category_id,
            account_id=data.account_id,
        )
        self.session.add(txn)
        self.session.flush()
        _apply_postings(self.session, txn, 1)
        self.session.commit()
        self.session.refresh(txn)
        logger.info(
            f"transaction_created: user_id={self.user_id} id={txn.id} type={txn.type.value}"
        )
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        self._validate(data, current_account_id=txn.account_id)
        _apply_postings(self.session, txn, -1)
        txn.date = data.date
        txn.type = data.type
        txn.amount_cents = data.amount_cents
        txn.description = data.description.strip()
        txn.category_id = data.category_id
        txn.account_id = data.account_id
        self.session.flush()
        _apply_postings(self.session, txn, 1)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        _apply_postings(self.session, txn, -1)
        self.session.delete(txn)
        self.session.commit()
        logger.info(f"transaction_deleted: user_id={self.user_id} id={transaction_id}")

    def clear_all(self) -> int:
        txns = self.list()
        for txn in txns:
            _apply_postings(self.session, txn, -1)
        self.session.execute(
            delete(Transaction).where(
                Transaction.user_id == self.user_id,
                Transaction.type != TransactionType.transfer,
            )
        )
        self.session.commit()
        logger.info(f"transactions_cleared: user_id={self.user_id} count={len(txns)}")
        return len(txns)


class TransferService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .options(
                joinedload(Transaction.from_account), joinedload(Transaction.to_account)
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type == TransactionType.transfer,
            )
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        return self.session.scalars(stmt).all()

    def create(self, data: TransferIn) -> Transaction:
        accounts = AccountService(self.session, self.user_id)
        accounts.get(data.from_account_id)
        accounts.get(data.to_account_id)
        txn = Transaction(
            user_id=self.user_id,
            type=TransactionType.transfer,
            amount_cents=data.amount_cents,
            description=data.description.strip(),
            from_account_id=data.from_account_id,
            to_account_id=data.to_account_id,
            date=data.date,
        )
        self.session.add(txn)
        self.session.flush()
        _apply_postings(self.session, txn, 1)
        self.session.commit()
        self.session.refresh(txn)
        logger.info(
            f"transfer_created: user_id={self.user_id} id={txn.id} "
            f"from={data.from_account_id} to={data.to_account_id}"
        )
        return txn

    def delete(self, transfer_id: int) -> None:
        txn = self.session.scalar(
            select(Transaction).where(
                Transaction.user_id == self.user_id,
                Transaction.id == transfer_id,
                Transaction.type == TransactionType.transfer,
            )
        )
        if not txn:
            raise ValueError("Transfer not found")
        _apply_postings(self.session, txn, -1)
        self.session.delete(txn)
        self.session.commit()
        logger.info(f"transfer_deleted: user_id={self.user_id} id={transfer_id}")


class SnapshotService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def transactions(self) -> tuple[TransactionRecord, ...]:
        txns = TransactionService(self.session, self.user_id).list()
        return tuple(to_transaction_record(t) for t in txns)

    def accounts(self) -> tuple[AccountRecord, ...]:
        accounts = AccountService(self.session, self.user_id).list_active()
        return tuple(to_account_record(a) for a in accounts)

    def load(self) -> Snapshot:
        return Snapshot(transactions=self.transactions(), accounts=self.accounts())


class MetricsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self._snapshot: Optional[Snapshot] = None

    @property
    def snapshot(self) -> Snapshot:
        if self._snapshot is None:
            self._snapshot = SnapshotService(self.session, self.user_id).load()
        return self._snapshot

    def summary(self) -> dict[str, object]:
        metrics = compute_metrics(self.snapshot)
        return {
            "income": metrics.income,
            "expenses": metrics.expenses,
            "balance": metrics.balance,
            "net_worth": metrics.net_worth,
            "total_assets": metrics.total_assets,
            "total_liabilities": metrics.total_liabilities,
            "savings_rate": round(metrics.savings_rate, 1),
        }

    def net_worth(self) -> dict[str, object]:
        metrics = compute_metrics(self.snapshot)
        return {
            "net_worth": metrics.net_worth,
            "total_assets": metrics.total_assets,
            "total_liabilities": metrics.total_liabilities,
            "accounts": [
                {
                    "id": a.id,
                    "name": a.name,
                    "balance": a.balance,
                    "category": a.account_type.category.value if a.account_type else None,
                    "affects_net_worth": (
                        a.account_type.affects_net_worth if a.account_type else False
                    ),
                }
                for a in self.snapshot.accounts
            ],
        }

    def category_summary(self) -> list[dict[str, object]]:
        return category_summary(self.snapshot.transactions)

    def daily_series(self, period: Period) -> list[dict[str, object]]:
        return daily_series(self.snapshot.transactions, period.start, period.end)

    def transactions_page(
        self, filters: TransactionFilters, page: int, page_size: int
    ) -> Page:
        return filter_and_paginate(self.snapshot.transactions, filters, page, page_size)

    def insights(self, today: Optional[date] = None) -> InsightReport:
        metrics = compute_metrics(self.snapshot)
        symbol = currency_symbol(get_settings().default_currency)
        return generate_insights(
            metrics, self.snapshot.transactions, today=today, currency=symbol
        )


class CSVService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def export(self, transactions: Optional[list[TransactionRecord]] = None) -> str:
        if transactions is None:
            transactions = list(SnapshotService(self.session, self.user_id).transactions())
        return export_transactions(transactions)
