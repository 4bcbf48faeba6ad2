import os
from typing import List

from dotenv import load_dotenv

from database import TransactionType

load_dotenv()

UNCATEGORIZED = "None"

DEFAULT_INCOME_CATEGORIES = ["Salary", "Freelance", "Investment", "Bonus", "Other"]
DEFAULT_EXPENSE_CATEGORIES = [
    "Food",
    "Rent",
    "Utilities",
    "Transport",
    "Entertainment",
    "Shopping",
    "Other",
]


def _from_env(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [c.strip() for c in raw.split(",") if c.strip()]


INCOME_CATEGORIES = _from_env("INCOME_CATEGORIES", DEFAULT_INCOME_CATEGORIES)
EXPENSE_CATEGORIES = _from_env("EXPENSE_CATEGORIES", DEFAULT_EXPENSE_CATEGORIES)


def categories_for(type_: str) -> List[str]:
    """Allowed categories for a transaction type, including the uncategorized sentinel."""
    if type_ == TransactionType.income.value:
        allowed = INCOME_CATEGORIES
    elif type_ == TransactionType.expense.value:
        allowed = EXPENSE_CATEGORIES
    else:
        return []
    return allowed + [UNCATEGORIZED]


def is_valid_category(type_: str, category: str) -> bool:
    return category in categories_for(type_)
