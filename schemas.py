from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import BudgetPeriod, RecurringPeriod


class UserIn(BaseModel):
    username: str = Field(..., min_length=1, max_length=80)
    full_name: Optional[str] = Field(default=None, max_length=120)
    email: Optional[str] = Field(default=None, max_length=254)


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, max_length=7)
    icon: Optional[str] = Field(default=None, max_length=40)


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: str = Field(..., min_length=1, max_length=40)
    balance_cents: int = 0
    currency: str = Field(default="USD", min_length=3, max_length=3)
    description: Optional[str] = Field(default=None, max_length=500)


class TransactionIn(BaseModel):
    date: date
    amount_cents: int = Field(..., ge=0)
    description: Optional[str] = Field(default=None, max_length=200)
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    is_income: bool = False


class BudgetIn(BaseModel):
    category_id: int
    amount_cents: int = Field(..., gt=0)
    period: BudgetPeriod = BudgetPeriod.monthly
    alert_threshold: int = Field(default=80, gt=0, le=100)
    start_date: date
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def _check_range(self) -> "BudgetIn":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("Budget end date must not be before its start date")
        return self


class BillIn(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    name: str = Field(..., min_length=1, max_length=120)
    amount_cents: int = Field(..., ge=0)
    due_date: date
    original_start_date: Optional[date] = None
    recurring_period: RecurringPeriod = Field(
        default=RecurringPeriod.monthly, validate_default=True
    )
    is_paid: bool = False
    reminder_days: int = Field(default=3, ge=0, le=60)
    category_id: Optional[int] = None
    notes: Optional[str] = Field(default=None, max_length=500)
