"""Tests for gateway validation and persistence."""

from datetime import datetime

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

import categories
import gateway
from database import Transaction
from errors import InvalidTransaction, StoreUnavailable, TransactionNotFound
from schemas import TransactionCreate


def new_transaction(**overrides) -> TransactionCreate:
    values = {
        "type": "expense",
        "amount": 12.5,
        "description": "Lunch",
        "date": "2024-03-05T12:00:00",
        "category": "Food",
    }
    values.update(overrides)
    return TransactionCreate(**values)


class TestCreate:
    def test_persists_and_assigns_id(self, db):
        created = gateway.create_transaction(db, new_transaction())

        assert created.id is not None
        assert created.type == "expense"
        assert created.date == datetime(2024, 3, 5, 12, 0)
        assert created.is_recurring is False
        assert created.frequency == "monthly"
        assert created.status == "active"
        assert db.query(Transaction).count() == 1

    def test_ids_increase(self, db):
        first = gateway.create_transaction(db, new_transaction())
        second = gateway.create_transaction(db, new_transaction())
        assert second.id > first.id

    def test_bogus_category_rejected_and_store_unchanged(self, db):
        with pytest.raises(InvalidTransaction, match="Invalid category for type 'income'"):
            gateway.create_transaction(db, new_transaction(type="income", category="Bogus"))
        assert db.query(Transaction).count() == 0

    def test_category_must_match_type(self, db):
        with pytest.raises(InvalidTransaction):
            gateway.create_transaction(db, new_transaction(type="income", category="Rent"))

    @pytest.mark.parametrize("type_", ["income", "expense"])
    def test_uncategorized_sentinel_allowed(self, db, type_):
        created = gateway.create_transaction(db, new_transaction(type=type_, category="None"))
        assert created.category == "None"

    def test_missing_description_stored_empty(self, db):
        created = gateway.create_transaction(db, new_transaction(description=None))
        assert created.description == ""

    def test_recurring_template_fields(self, db):
        created = gateway.create_transaction(
            db, new_transaction(is_recurring=True, frequency="weekly", status="paused")
        )
        assert (created.is_recurring, created.frequency, created.status) == (True, "weekly", "paused")

    def test_configured_categories(self, db, monkeypatch):
        monkeypatch.setattr(categories, "EXPENSE_CATEGORIES", ["Pets"])
        gateway.create_transaction(db, new_transaction(category="Pets"))
        with pytest.raises(InvalidTransaction):
            gateway.create_transaction(db, new_transaction(category="Food"))

    def test_store_failure_rolls_back(self, db, monkeypatch):
        def broken_commit():
            raise SQLAlchemyError("connection refused")

        monkeypatch.setattr(db, "commit", broken_commit)
        with pytest.raises(StoreUnavailable, match="connection refused"):
            gateway.create_transaction(db, new_transaction())
        monkeypatch.undo()
        assert db.query(Transaction).count() == 0


class TestSchemaValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"amount": 0},
            {"amount": -5},
            {"description": "x" * 101},
            {"type": "transfer"},
            {"frequency": "hourly"},
            {"status": "archived"},
        ],
        ids=["zero_amount", "negative_amount", "long_description", "bad_type", "bad_frequency", "bad_status"],
    )
    def test_rejected(self, overrides):
        with pytest.raises(ValidationError):
            new_transaction(**overrides)

    def test_missing_amount(self):
        with pytest.raises(ValidationError):
            TransactionCreate(type="expense", date="2024-01-01T00:00:00", category="Food")

    def test_description_at_limit(self):
        assert len(new_transaction(description="x" * 100).description) == 100

    def test_aware_dates_become_naive(self):
        created = new_transaction(date="2024-03-05T12:00:00+00:00")
        assert created.date.tzinfo is None


class TestDelete:
    def test_deletes_row(self, db, make_transaction):
        row = make_transaction()
        gateway.delete_transaction(db, row.id)
        assert db.query(Transaction).count() == 0

    def test_missing_id_not_found(self, db, make_transaction):
        make_transaction()
        with pytest.raises(TransactionNotFound):
            gateway.delete_transaction(db, 999)
        assert db.query(Transaction).count() == 1

    def test_lookup_failure_is_store_error(self, db, make_transaction, monkeypatch):
        row = make_transaction()

        def broken_get(*args, **kwargs):
            raise SQLAlchemyError("database is locked")

        monkeypatch.setattr(db, "get", broken_get)
        with pytest.raises(StoreUnavailable, match="database is locked"):
            gateway.delete_transaction(db, row.id)
        with pytest.raises(StoreUnavailable):
            gateway.update_status(db, row.id, "paused")


class TestStatusUpdate:
    def test_pauses_template(self, db, make_transaction):
        template = make_transaction(is_recurring=True)
        updated = gateway.update_status(db, template.id, "paused")
        assert updated.status == "paused"

    @pytest.mark.parametrize("transaction_id,status", [(None, "paused"), (1, None), (0, "active"), (1, "")])
    def test_requires_id_and_status(self, db, make_transaction, transaction_id, status):
        make_transaction()
        with pytest.raises(InvalidTransaction, match="Missing transaction ID or status"):
            gateway.update_status(db, transaction_id, status)

    def test_rejects_unknown_status(self, db, make_transaction):
        row = make_transaction()
        with pytest.raises(InvalidTransaction):
            gateway.update_status(db, row.id, "archived")

    def test_missing_id_not_found(self, db):
        with pytest.raises(TransactionNotFound):
            gateway.update_status(db, 42, "canceled")


class TestList:
    def test_returns_everything_by_id(self, db, make_transaction):
        make_transaction(date=datetime(2024, 5, 1))
        make_transaction(date=datetime(2024, 1, 1))
        rows = gateway.list_transactions(db)
        assert [r.id for r in rows] == sorted(r.id for r in rows)
        assert len(rows) == 2
