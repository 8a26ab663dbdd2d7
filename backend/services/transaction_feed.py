"""Read access to a user's transactions."""

from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from models import Transaction
from .errors import StorageError


class TransactionFeed:
    """Transactions written by the transactions CRUD layer."""

    def __init__(self, db: DBSession):
        self.db = db

    def list_transactions(self, user_id: str, since: datetime) -> list[Transaction]:
        """Transactions dated on or after ``since``, newest first."""
        try:
            return (
                self.db.query(Transaction)
                .filter(Transaction.user_id == user_id)
                .filter(Transaction.date >= since)
                .order_by(Transaction.date.desc(), Transaction.id.desc())
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError("Failed to read transactions") from e
