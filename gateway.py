"""
Create, read, delete and status-update operations on the transactions table.
Every function takes the caller's session and validates before writing.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from categories import is_valid_category
from database import Status, Transaction
from errors import InvalidTransaction, StoreUnavailable, TransactionNotFound
from schemas import TransactionCreate

logger = logging.getLogger(__name__)

STATUSES = [s.value for s in Status]


def _commit(db: Session, action: str):
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StoreUnavailable(f"Failed to {action} transaction: {exc}") from exc


def list_transactions(db: Session) -> List[Transaction]:
    """Every stored transaction, oldest id first."""
    try:
        return db.query(Transaction).order_by(Transaction.id).all()
    except SQLAlchemyError as exc:
        raise StoreUnavailable(f"Failed to fetch transactions: {exc}") from exc


def get_transaction(db: Session, transaction_id: int) -> Transaction:
    try:
        transaction = db.get(Transaction, transaction_id)
    except SQLAlchemyError as exc:
        raise StoreUnavailable(f"Failed to fetch transaction: {exc}") from exc
    if transaction is None:
        raise TransactionNotFound(transaction_id)
    return transaction


def create_transaction(db: Session, data: TransactionCreate) -> Transaction:
    """Validate the category for the transaction type, then persist."""
    type_ = data.type.value
    if not is_valid_category(type_, data.category):
        raise InvalidTransaction(f"Invalid category for type '{type_}'")

    transaction = Transaction(
        type=type_,
        amount=data.amount,
        description=data.description or "",
        date=data.date,
        category=data.category,
        is_recurring=data.is_recurring,
        frequency=data.frequency.value,
        status=data.status.value,
    )
    db.add(transaction)
    _commit(db, "add")
    db.refresh(transaction)

    logger.info("Added %s transaction %s (%.2f)", type_, transaction.id, transaction.amount)
    return transaction


def delete_transaction(db: Session, transaction_id: int) -> None:
    transaction = get_transaction(db, transaction_id)
    db.delete(transaction)
    _commit(db, "delete")
    logger.info("Deleted transaction %s", transaction_id)


def update_status(db: Session, transaction_id: Optional[int], new_status: Optional[str]) -> Transaction:
    """Set active/paused/canceled on a transaction (normally a recurring template)."""
    if not transaction_id or not new_status:
        raise InvalidTransaction("Missing transaction ID or status")

    new_status = getattr(new_status, "value", new_status)
    if new_status not in STATUSES:
        raise InvalidTransaction(f"Invalid status '{new_status}'")

    transaction = get_transaction(db, transaction_id)
    transaction.status = new_status
    _commit(db, "update")
    db.refresh(transaction)

    logger.info("Transaction %s is now %s", transaction_id, new_status)
    return transaction
