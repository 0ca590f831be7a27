import logging
from datetime import date
from enum import Enum
from typing import Optional

from sqlalchemy import extract, func, select, union
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import BudgetPeriod, Transaction, TransactionStatus, TransactionType
from periods import month_bounds, period_key_of

logger = logging.getLogger(__name__)


class BudgetDirection(str, Enum):
    add = "add"
    subtract = "subtract"


class BudgetPeriodResolver:
    def __init__(self, session: Session) -> None:
        self.session = session

    def find(self, user_id: int, month: int, year: int) -> Optional[BudgetPeriod]:
        return self.session.scalar(
            select(BudgetPeriod)
            .where(
                BudgetPeriod.user_id == user_id,
                BudgetPeriod.month == month,
                BudgetPeriod.year == year,
            )
            .execution_options(populate_existing=True)
        )

    def find_or_create(self, user_id: int, month: int, year: int) -> BudgetPeriod:
        period = self.find(user_id, month, year)
        if period:
            return period

        period = BudgetPeriod(
            user_id=user_id,
            month=month,
            year=year,
            income_cents=0,
            expense_cents=0,
            net_cents=0,
            savings_goal_cents=0,
        )
        self.session.add(period)
        try:
            self.session.commit()
        except IntegrityError:
            # Another writer created the row first.
            self.session.rollback()
            existing = self.find(user_id, month, year)
            if existing is None:
                raise
            return existing
        logger.info(
            f"budget_period_created: user_id={user_id} month={month} year={year}"
        )
        return period

    def find_or_create_for_date(self, user_id: int, txn_date: date) -> BudgetPeriod:
        key = period_key_of(txn_date)
        return self.find_or_create(user_id, key.month, key.year)


class BudgetAggregator:
    def __init__(
        self, session: Session, resolver: Optional[BudgetPeriodResolver] = None
    ) -> None:
        self.session = session
        self.resolver = resolver or BudgetPeriodResolver(session)

    def apply_delta(
        self,
        user_id: int,
        txn_date: date,
        amount_cents: int,
        kind: TransactionType,
        direction: BudgetDirection,
    ) -> BudgetPeriod:
        period = self.resolver.find_or_create_for_date(user_id, txn_date)

        if direction == BudgetDirection.add:
            delta = amount_cents
        elif direction == BudgetDirection.subtract:
            delta = -amount_cents
        else:
            raise ValueError(f"Unsupported budget direction: {direction!r}")

        if kind == TransactionType.income:
            period.income_cents += delta
        elif kind == TransactionType.expense:
            period.expense_cents += delta
        else:
            raise ValueError(f"Unsupported transaction type: {kind!r}")
        period.net_cents = period.income_cents - period.expense_cents
        self.session.commit()
        logger.debug(
            f"budget_delta: user_id={user_id} month={period.month} year={period.year} "
            f"kind={kind.value} delta={delta} net={period.net_cents}"
        )
        return period

    def _confirmed_total(
        self, user_id: int, kind: TransactionType, start: date, end: date
    ) -> int:
        return int(
            self.session.execute(
                select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
                    Transaction.user_id == user_id,
                    Transaction.type == kind,
                    Transaction.status == TransactionStatus.confirmed,
                    Transaction.active.is_(True),
                    Transaction.date.between(start, end),
                )
            ).scalar_one()
            or 0
        )

    def reconcile(self, user_id: int, month: int, year: int) -> BudgetPeriod:
        """Recompute a month's totals from its active, confirmed transactions.

        Idempotent. The savings goal and notes of an existing row are kept.
        """
        bounds = month_bounds(month, year)
        income = self._confirmed_total(
            user_id, TransactionType.income, bounds.start, bounds.end
        )
        expense = self._confirmed_total(
            user_id, TransactionType.expense, bounds.start, bounds.end
        )

        period = self.resolver.find_or_create(user_id, month, year)
        drift = (
            period.income_cents != income or period.expense_cents != expense
        )
        period.income_cents = income
        period.expense_cents = expense
        period.net_cents = income - expense
        self.session.commit()
        if drift:
            logger.info(
                f"budget_reconciled: user_id={user_id} month={month} year={year} "
                f"income={income} expense={expense} drift_repaired=true"
            )
        return period

    def reconcile_all(self, user_id: int) -> int:
        """Reconcile every month that has a budget row or any transaction."""
        txn_year = extract("year", Transaction.date)
        txn_month = extract("month", Transaction.date)
        keys_stmt = union(
            select(txn_month.label("month"), txn_year.label("year")).where(
                Transaction.user_id == user_id
            ),
            select(BudgetPeriod.month, BudgetPeriod.year).where(
                BudgetPeriod.user_id == user_id
            ),
        )
        keys = sorted(
            {(int(row.month), int(row.year)) for row in self.session.execute(keys_stmt)},
            key=lambda k: (k[1], k[0]),
        )
        for month, year in keys:
            self.reconcile(user_id, month, year)
        return len(keys)
