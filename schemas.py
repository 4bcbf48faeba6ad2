"""
Pydantic schemas for API request/response validation.
Kept apart from the SQLAlchemy models so the stored row and the wire format can differ.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from database import Frequency, Status, TransactionType


class TransactionCreate(BaseModel):
    type: TransactionType
    amount: float = Field(gt=0, description="Amount must be greater than 0")
    description: Optional[str] = Field(
        None,
        max_length=100,
        description="You have reached the maximum characters allowed for a description (100 characters)",
    )
    date: datetime
    category: str
    is_recurring: bool = False
    frequency: Frequency = Frequency.monthly
    status: Status = Status.active

    @field_validator("date")
    @classmethod
    def naive_local(cls, v: datetime) -> datetime:
        # Stored timestamps are naive local time
        if v.tzinfo is not None:
            return v.astimezone().replace(tzinfo=None)
        return v


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    amount: float
    description: Optional[str] = None
    date: datetime
    category: Optional[str] = None
    is_recurring: bool
    frequency: str
    status: str


class DeleteRequest(BaseModel):
    id: int


class StatusUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[int] = None
    new_status: Optional[Status] = Field(None, alias="newStatus")


class LoginRequest(BaseModel):
    passcode: str


class SummaryResponse(BaseModel):
    start: datetime
    end: datetime
    type: str
    mode: str
    total_income: float
    total_expense: float
    balance: float
    total_balance: float
    displayed_balance: float
    transaction_count: int


class MonthlyRow(BaseModel):
    month: str
    income: float
    expense: float
    net: float


class MaterializationResponse(BaseModel):
    created: List[TransactionOut]
    failures: Dict[int, str]
