import os
from datetime import datetime
from enum import Enum
from sqlalchemy import create_engine, Column, Integer, String, Float, Boolean, DateTime, Text
from sqlalchemy.orm import sessionmaker, declarative_base
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Database Setup
# Default to local SQLite, but allow override for a hosted Postgres
DB_URL = os.getenv("DATABASE_URL", "sqlite:///finance_tracker.db")


def make_engine(url: str):
    return create_engine(url, connect_args={"check_same_thread": False} if "sqlite" in url else {})


engine = make_engine(DB_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# --- Enumerations ---

class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class Frequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


class Status(str, Enum):
    active = "active"
    paused = "paused"
    canceled = "canceled"


# --- Models ---

class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(10), nullable=False)         # 'income' or 'expense'
    amount = Column(Float, nullable=False)
    description = Column(Text, default="")
    date = Column(DateTime, nullable=False)
    category = Column(String)                         # "None" means uncategorized

    # Recurring templates
    is_recurring = Column(Boolean, default=False, nullable=False)
    frequency = Column(String(10), default=Frequency.monthly.value, nullable=False)
    status = Column(String(10), default=Status.active.value, nullable=False)

    def __repr__(self):
        return f"<Transaction {self.id} {self.type} {self.amount} {self.date:%Y-%m-%d}>"

    def copy_as_instance(self, on: datetime) -> "Transaction":
        """A concrete, non-recurring copy of this template dated ``on``."""
        return Transaction(
            type=self.type,
            amount=self.amount,
            description=self.description,
            date=on,
            category=self.category,
            is_recurring=False,
        )


# --- Init DB ---
def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
