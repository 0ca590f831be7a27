import datetime as dt
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import TransactionStatus

MAX_AMOUNT_CENTS = 99_999_999_999


class _TransactionBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    account_id: int
    category_id: Optional[int] = None
    name: str = Field(..., min_length=2, max_length=255)
    amount_cents: int = Field(..., gt=0, le=MAX_AMOUNT_CENTS)
    date: date
    notes: Optional[str] = Field(default=None, max_length=1000)
    status: TransactionStatus = TransactionStatus.confirmed
    tags: list[int] = Field(default_factory=list)


class IncomeIn(_TransactionBase):
    is_salary: bool = False
    salary_installment: Optional[int] = Field(default=None, ge=1, le=4)
    salary_installments_total: Optional[int] = Field(default=None, ge=1, le=4)

    @model_validator(mode="after")
    def _check_salary(self) -> "IncomeIn":
        if self.is_salary:
            if not self.salary_installment or not self.salary_installments_total:
                raise ValueError("Salary entries need installment and installment total")
            if self.salary_installment > self.salary_installments_total:
                raise ValueError("Installment cannot exceed installment total")
        return self


class ExpenseIn(_TransactionBase):
    is_invoice_payment: bool = False
    source_card_id: Optional[int] = None

    @model_validator(mode="after")
    def _check_invoice(self) -> "ExpenseIn":
        if self.is_invoice_payment and self.source_card_id is None:
            raise ValueError("Invoice payments need the source card")
        return self


class _TransactionPatch(BaseModel):
    """Partial update; only fields the caller sets are applied."""

    model_config = ConfigDict(extra="forbid")

    account_id: Optional[int] = None
    category_id: Optional[int] = None
    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    amount_cents: Optional[int] = Field(default=None, gt=0, le=MAX_AMOUNT_CENTS)
    date: Optional[dt.date] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    status: Optional[TransactionStatus] = None


class IncomePatch(_TransactionPatch):
    is_salary: Optional[bool] = None
    salary_installment: Optional[int] = Field(default=None, ge=1, le=4)
    salary_installments_total: Optional[int] = Field(default=None, ge=1, le=4)


class ExpensePatch(_TransactionPatch):
    is_invoice_payment: Optional[bool] = None
    source_card_id: Optional[int] = None


class TagsIn(BaseModel):
    tags: list[int] = Field(default_factory=list)


class BudgetPeriodIn(BaseModel):
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2020, le=2050)
    savings_goal_cents: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=1000)
