from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class TransactionStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"


class AccountType(str, Enum):
    checking = "checking"
    credit_card = "credit_card"
    cash = "cash"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


def _opening_from_balance(context) -> int:
    return context.get_current_parameters().get("balance_cents") or 0


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[AccountType] = mapped_column(SAEnum(AccountType), nullable=False)
    balance_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    # Baseline for balance reconciliation. Defaults to the balance the account
    # is inserted with; NULL means no baseline and reconciliation skips it.
    opening_balance_cents: Mapped[Optional[int]] = mapped_column(
        BigInteger, default=_opening_from_balance
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    card: Mapped[Optional["CreditCardDetail"]] = relationship(
        "CreditCardDetail", back_populates="account", uselist=False
    )

    __table_args__ = (Index("ix_accounts_user_active", "user_id", "active"),)


class CreditCardDetail(Base, TimestampMixin):
    __tablename__ = "credit_card_details"

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"), primary_key=True
    )
    bank_name: Mapped[Optional[str]] = mapped_column(String(120))
    brand: Mapped[Optional[str]] = mapped_column(String(40))
    limit_total_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    limit_available_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    due_day: Mapped[Optional[int]] = mapped_column(Integer)

    account: Mapped["Account"] = relationship("Account", back_populates="card")

    __table_args__ = (
        CheckConstraint("limit_total_cents >= 0", name="ck_card_limit_total_positive"),
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    color: Mapped[Optional[str]] = mapped_column(String(7))
    icon: Mapped[Optional[str]] = mapped_column(String(50))

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="category"
    )


class Tag(Base, TimestampMixin):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(9))

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", secondary="transaction_tags", back_populates="tags"
    )


transaction_tags = Table(
    "transaction_tags",
    Base.metadata,
    Column("transaction_id", Integer, ForeignKey("transactions.id"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id"), primary_key=True),
)


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        SAEnum(TransactionStatus),
        nullable=False,
        default=TransactionStatus.confirmed,
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # income only
    is_salary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    salary_installment: Mapped[Optional[int]] = mapped_column(Integer)
    salary_installments_total: Mapped[Optional[int]] = mapped_column(Integer)

    # expense only
    is_invoice_payment: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    source_card_id: Mapped[Optional[int]] = mapped_column(ForeignKey("accounts.id"))

    account: Mapped["Account"] = relationship("Account", foreign_keys=[account_id])
    source_card: Mapped[Optional["Account"]] = relationship(
        "Account", foreign_keys=[source_card_id]
    )
    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="transactions"
    )
    tags: Mapped[list["Tag"]] = relationship(
        "Tag", secondary="transaction_tags", back_populates="transactions"
    )

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_type_date", "user_id", "type", "date"),
        Index("ix_transactions_account_status", "account_id", "status", "active"),
        CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
    )


class BudgetPeriod(Base, TimestampMixin):
    __tablename__ = "budget_periods"
    __table_args__ = (
        UniqueConstraint("user_id", "month", "year", name="uq_budget_period_user_month"),
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_budget_period_month"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    income_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    expense_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    net_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    savings_goal_cents: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)
