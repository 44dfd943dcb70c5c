from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence, TypeVar

from aggregation import TransactionRecord

T = TypeVar("T")

TYPE_FILTERS = ("all", "income", "expense")


@dataclass(frozen=True)
class TransactionFilters:
    search: str = ""
    type: str = "all"
    date_from: Optional[date] = None
    date_to: Optional[date] = None


@dataclass(frozen=True)
class Page:
    items: list
    total_count: int
    total_pages: int
    page: int


def matches_search(txn: TransactionRecord, term: str) -> bool:
    if not term:
        return True
    needle = term.lower()
    return needle in txn.description.lower() or needle in txn.category.lower()


def matches_type(txn: TransactionRecord, type_filter: str) -> bool:
    if type_filter == "all":
        return True
    return txn.type.value == type_filter


def matches_date_range(
    txn: TransactionRecord, date_from: Optional[date], date_to: Optional[date]
) -> bool:
    if date_from is not None and txn.date < date_from:
        return False
    if date_to is not None and txn.date > date_to:
        return False
    return True


def filter_transactions(
    transactions: Sequence[TransactionRecord], filters: TransactionFilters
) -> list[TransactionRecord]:
    return [
        txn
        for txn in transactions
        if matches_search(txn, filters.search)
        and matches_type(txn, filters.type)
        and matches_date_range(txn, filters.date_from, filters.date_to)
    ]


def paginate(items: Sequence[T], page: int, page_size: int) -> Page:
    if page_size < 1:
        raise ValueError("Page size must be positive")
    total = len(items)
    total_pages = math.ceil(total / page_size)
    # An empty list still has a first (empty) page to land on.
    page = min(max(page, 1), max(total_pages, 1))
    start = (page - 1) * page_size
    return Page(
        items=list(items[start : start + page_size]),
        total_count=total,
        total_pages=total_pages,
        page=page,
    )


def filter_and_paginate(
    transactions: Sequence[TransactionRecord],
    filters: TransactionFilters,
    page: int,
    page_size: int,
) -> Page:
    return paginate(filter_transactions(transactions, filters), page, page_size)


def group_by_date(
    transactions: Sequence[TransactionRecord],
) -> list[tuple[date, list[TransactionRecord]]]:
    groups: dict[date, list[TransactionRecord]] = {}
    for txn in transactions:
        groups.setdefault(txn.date, []).append(txn)
    return list(groups.items())
