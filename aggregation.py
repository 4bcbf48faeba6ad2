# aggregation.py - balance, filter and sort helpers over an in-memory transaction list

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Iterable, List, Mapping, Optional

import pandas as pd

from errors import InvalidTransaction

SORT_KEYS = ("id", "amount", "date")
SORT_ORDERS = ("asc", "desc")
TYPE_FILTERS = ("all", "income", "expense")
BALANCE_MODES = ("total", "timeframe")


def _field(trx: Any, name: str):
    """Read a field from an ORM row, a pydantic model or a plain dict."""
    if isinstance(trx, Mapping):
        value = trx.get(name)
    else:
        value = getattr(trx, name, None)
    return getattr(value, "value", value)


def _as_datetime(value, end_of_day: bool = False) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone().replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.max if end_of_day else time.min)
    raise InvalidTransaction(f"Invalid date: {value!r}")


def filter_by_date_range(transactions: Iterable[Any], start, end) -> List[Any]:
    """Transactions dated within [start, end]. A bare date as ``end`` covers that whole day."""
    lo = _as_datetime(start)
    hi = _as_datetime(end, end_of_day=True)
    return [t for t in transactions if lo <= _as_datetime(_field(t, "date")) <= hi]


def filter_by_type(transactions: Iterable[Any], type_: str = "all") -> List[Any]:
    type_ = getattr(type_, "value", type_)
    if type_ not in TYPE_FILTERS:
        raise InvalidTransaction(f"Invalid transaction type filter '{type_}'")
    if type_ == "all":
        return list(transactions)
    return [t for t in transactions if _field(t, "type") == type_]


def sort_transactions(transactions: Iterable[Any], key: str = "id", order: str = "asc") -> List[Any]:
    """
    Stable sort by id, amount or date. Equal keys keep their input order
    in both directions.
    """
    if key not in SORT_KEYS:
        raise InvalidTransaction(f"Cannot sort by '{key}'")
    if order not in SORT_ORDERS:
        raise InvalidTransaction(f"Invalid sort order '{order}'")

    if key == "date":
        sort_key = lambda t: _as_datetime(_field(t, "date"))
    else:
        sort_key = lambda t: _field(t, key)
    return sorted(transactions, key=sort_key, reverse=(order == "desc"))


def sum_by_type(transactions: Iterable[Any], type_: str) -> float:
    type_ = getattr(type_, "value", type_)
    return sum((float(_field(t, "amount")) for t in transactions if _field(t, "type") == type_), 0.0)


def balance(transactions: Iterable[Any]) -> float:
    transactions = list(transactions)
    return sum_by_type(transactions, "income") - sum_by_type(transactions, "expense")


def transactions_to_df(transactions: Iterable[Any]) -> pd.DataFrame:
    rows = [
        {
            "Id": _field(t, "id"),
            "Date": _as_datetime(_field(t, "date")),
            "Type": _field(t, "type"),
            "Amount": float(_field(t, "amount")),
            "Category": _field(t, "category") or "None",
            "Description": _field(t, "description") or "",
        }
        for t in transactions
    ]
    if not rows:
        return pd.DataFrame(columns=["Id", "Date", "Type", "Amount", "Category", "Description", "Month"])

    df = pd.DataFrame(rows)
    df["Date"] = pd.to_datetime(df["Date"])
    df["Month"] = df["Date"].dt.to_period("M").astype(str)
    return df


def monthly_summary(transactions: Iterable[Any]) -> pd.DataFrame:
    """
    Income vs expenses per calendar month.
    Columns: Month (YYYY-MM), Income, Expense, Net; one row per month with data.
    """
    df = transactions_to_df(transactions)
    if df.empty:
        return pd.DataFrame(columns=["Month", "Income", "Expense", "Net"])

    df["Income"] = df["Amount"].where(df["Type"] == "income", 0.0)
    df["Expense"] = df["Amount"].where(df["Type"] == "expense", 0.0)

    monthly = df.groupby("Month", sort=True).agg(Income=("Income", "sum"), Expense=("Expense", "sum")).reset_index()
    monthly["Net"] = monthly["Income"] - monthly["Expense"]
    return monthly


def month_bounds(day: date):
    """First instant and last instant of the month containing ``day``."""
    last_day = calendar.monthrange(day.year, day.month)[1]
    return (
        datetime(day.year, day.month, 1),
        datetime.combine(date(day.year, day.month, last_day), time.max),
    )


@dataclass
class BudgetState:
    """
    The transaction list plus the view settings the dashboard works with.

    Only the settings are stored. The filtered list and every total are
    recomputed from them each time they are read.
    """

    transactions: List[Any] = field(default_factory=list)
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    type_filter: str = "all"
    sort_key: str = "id"
    sort_order: str = "desc"
    balance_mode: str = "total"

    def __post_init__(self):
        self.transactions = list(self.transactions)
        month_start, month_end = month_bounds(date.today())
        self.set_date_range(self.start or month_start, self.end or month_end)
        self.set_type_filter(self.type_filter)
        if self.sort_key not in SORT_KEYS:
            raise InvalidTransaction(f"Cannot sort by '{self.sort_key}'")
        if self.sort_order not in SORT_ORDERS:
            raise InvalidTransaction(f"Invalid sort order '{self.sort_order}'")
        if self.balance_mode not in BALANCE_MODES:
            raise InvalidTransaction(f"Invalid balance mode '{self.balance_mode}'")

    # mutators

    def set_date_range(self, start, end):
        self.start = _as_datetime(start)
        self.end = _as_datetime(end, end_of_day=True)

    def set_type_filter(self, type_: str):
        type_ = getattr(type_, "value", type_)
        if type_ not in TYPE_FILTERS:
            raise InvalidTransaction(f"Invalid transaction type filter '{type_}'")
        self.type_filter = type_

    def sort_by(self, key: str):
        """Same key flips the order; a new key starts ascending."""
        if key not in SORT_KEYS:
            raise InvalidTransaction(f"Cannot sort by '{key}'")
        if key == self.sort_key:
            self.toggle_sort_order()
        else:
            self.sort_key = key
            self.sort_order = "asc"

    def toggle_sort_order(self):
        self.sort_order = "desc" if self.sort_order == "asc" else "asc"

    def toggle_balance_mode(self):
        self.balance_mode = "timeframe" if self.balance_mode == "total" else "total"

    def add_transaction(self, transaction: Any):
        self.transactions.append(transaction)

    def remove_transaction(self, transaction_id: int):
        self.transactions = [t for t in self.transactions if _field(t, "id") != transaction_id]

    # derived values

    @property
    def filtered(self) -> List[Any]:
        rows = filter_by_date_range(self.transactions, self.start, self.end)
        rows = filter_by_type(rows, self.type_filter)
        return sort_transactions(rows, self.sort_key, self.sort_order)

    @property
    def total_income(self) -> float:
        return sum_by_type(self.filtered, "income")

    @property
    def total_expense(self) -> float:
        return sum_by_type(self.filtered, "expense")

    @property
    def balance(self) -> float:
        return balance(self.filtered)

    @property
    def total_balance(self) -> float:
        return balance(self.transactions)

    @property
    def displayed_balance(self) -> float:
        return self.total_balance if self.balance_mode == "total" else self.balance
