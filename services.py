from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Optional, Union

from sqlalchemy import case, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from balances import BalanceDirection, BalanceMutator, CreditLimitMutator
from budgets import BudgetAggregator, BudgetDirection, BudgetPeriodResolver
from models import (
    Account,
    AccountType,
    BudgetPeriod,
    Category,
    Tag,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from periods import PeriodKey, local_today, month_bounds, shift_month
from schemas import (
    BudgetPeriodIn,
    ExpenseIn,
    ExpensePatch,
    IncomeIn,
    IncomePatch,
)

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"


def get_current_user_id() -> int:
    return 1


class NotFoundError(ValueError):
    pass


class ValidationError(ValueError):
    pass


class PrimaryPersistenceError(RuntimeError):
    """The transaction row itself could not be written; nothing else was touched."""


@dataclass(frozen=True)
class EffectResult:
    step: str
    action: str
    transaction_id: int
    ok: bool
    error: Optional[str] = None

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


class ExpenseEffect(str, Enum):
    plain = "plain"
    invoice_payment = "invoice_payment"


@dataclass(frozen=True)
class EffectSnapshot:
    """The fields of a transaction that decide its monetary effect.

    Captured before a write so a reversal always uses the pre-write values,
    even after the ORM row has been mutated in place.
    """

    transaction_id: int
    user_id: int
    type: TransactionType
    account_id: int
    amount_cents: int
    date: date
    status: TransactionStatus
    active: bool
    is_invoice_payment: bool
    source_card_id: Optional[int]

    @classmethod
    def of(cls, txn: Transaction) -> EffectSnapshot:
        return cls(
            transaction_id=txn.id,
            user_id=txn.user_id,
            type=txn.type,
            account_id=txn.account_id,
            amount_cents=txn.amount_cents,
            date=txn.date,
            status=txn.status,
            active=txn.active,
            is_invoice_payment=bool(txn.is_invoice_payment),
            source_card_id=txn.source_card_id,
        )

    @property
    def in_effect(self) -> bool:
        return self.active and self.status == TransactionStatus.confirmed

    @property
    def expense_effect(self) -> ExpenseEffect:
        if self.is_invoice_payment and self.source_card_id is not None:
            return ExpenseEffect.invoice_payment
        return ExpenseEffect.plain

    @property
    def target(self) -> tuple[object, ...]:
        return (
            self.account_id,
            self.amount_cents,
            self.date,
            self.expense_effect,
            self.source_card_id,
        )


@dataclass
class TransactionFilters:
    start: Optional[date] = None
    end: Optional[date] = None
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    status: Optional[TransactionStatus] = None


class TransactionLedger:
    """Create, update and soft-delete one kind of transaction.

    The transaction row is the source of truth and is committed first. Its
    effect on account balances, card limits and the monthly budget exists only
    while the row is active and confirmed, and is kept in step afterwards, one
    committed step at a time. A failing step is rolled back, logged and
    recorded in ``self.effects``; it never undoes the transaction write.
    """

    transaction_type: TransactionType
    label = "transaction"
    non_nullable_fields = frozenset(
        {
            "account_id",
            "name",
            "amount_cents",
            "date",
            "status",
            "is_salary",
            "is_invoice_payment",
        }
    )

    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        *,
        balances: Optional[BalanceMutator] = None,
        credit_limits: Optional[CreditLimitMutator] = None,
        budgets: Optional[BudgetAggregator] = None,
    ) -> None:
        self.session = session
        self.user_id = get_current_user_id() if user_id is None else user_id
        self.balances = balances or BalanceMutator(session)
        self.credit_limits = credit_limits or CreditLimitMutator(session, self.balances)
        self.budgets = budgets or BudgetAggregator(session)
        self.effects: list[EffectResult] = []

    def get(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category), joinedload(Transaction.tags))
            .where(
                Transaction.id == transaction_id,
                Transaction.user_id == self.user_id,
                Transaction.type == self.transaction_type,
                Transaction.active.is_(True),
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise NotFoundError(f"{self.label.capitalize()} not found")
        return txn

    def list(
        self,
        filters: Optional[TransactionFilters] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category), joinedload(Transaction.tags))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type == self.transaction_type,
                Transaction.active.is_(True),
            )
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .offset(offset)
            .limit(limit)
        )
        if filters.start:
            stmt = stmt.where(Transaction.date >= filters.start)
        if filters.end:
            stmt = stmt.where(Transaction.date <= filters.end)
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        if filters.account_id:
            stmt = stmt.where(Transaction.account_id == filters.account_id)
        if filters.status:
            stmt = stmt.where(Transaction.status == filters.status)
        return self.session.scalars(stmt).unique().all()

    def create(self, data: Union[IncomeIn, ExpenseIn]) -> Transaction:
        self.effects = []
        values = data.model_dump(exclude={"tags"})
        txn = Transaction(user_id=self.user_id, type=self.transaction_type, **values)
        self.session.add(txn)
        self._commit_primary("create")
        logger.info(
            f"{self.label}_created: id={txn.id} user_id={self.user_id} "
            f"status={txn.status.value} amount={txn.amount_cents}"
        )

        if data.tags:
            self._run_effect(
                "tags", "attach", txn.id, self._attach_tags, txn, data.tags
            )

        snapshot = EffectSnapshot.of(txn)
        if snapshot.in_effect:
            self._apply(snapshot)
        return txn

    def update(
        self, transaction_id: int, patch: Union[IncomePatch, ExpensePatch]
    ) -> Transaction:
        self.effects = []
        txn = self.get(transaction_id)
        before = EffectSnapshot.of(txn)

        changes = {
            field: value
            for field, value in patch.model_dump(exclude_unset=True).items()
            if value is not None or field not in self.non_nullable_fields
        }
        self._check_merged(txn, changes)
        for field, value in changes.items():
            setattr(txn, field, value)
        self._commit_primary("update", transaction_id)
        after = EffectSnapshot.of(txn)
        logger.info(
            f"{self.label}_updated: id={txn.id} status={before.status.value}->"
            f"{after.status.value}"
        )

        if before.in_effect and not after.in_effect:
            self._reverse(before)
        elif not before.in_effect and after.in_effect:
            self._apply(after)
        elif before.in_effect and after.in_effect and before.target != after.target:
            # Old and new targets may be different accounts or months.
            self._reverse(before)
            self._apply(after)
        return txn

    def delete(self, transaction_id: int) -> None:
        self.effects = []
        txn = self.get(transaction_id)
        before = EffectSnapshot.of(txn)

        txn.active = False
        txn.deleted_at = datetime.utcnow()
        self._commit_primary("delete", transaction_id)
        logger.info(f"{self.label}_deleted: id={transaction_id}")

        if before.in_effect:
            self._reverse(before)

    def set_tags(self, transaction_id: int, tag_ids: list[int]) -> Transaction:
        txn = self.get(transaction_id)
        txn.tags = self._resolve_tags(tag_ids)
        self.session.commit()
        return txn

    def _resolve_tags(self, tag_ids: list[int]) -> list[Tag]:
        wanted = list(dict.fromkeys(tag_ids))
        if not wanted:
            return []
        found = {
            tag.id: tag
            for tag in self.session.scalars(
                select(Tag).where(Tag.user_id == self.user_id, Tag.id.in_(wanted))
            )
        }
        missing = [tag_id for tag_id in wanted if tag_id not in found]
        if missing:
            raise NotFoundError(f"Tag not found: {missing}")
        return [found[tag_id] for tag_id in wanted]

    def _attach_tags(self, txn: Transaction, tag_ids: list[int]) -> None:
        txn.tags = self._resolve_tags(tag_ids)
        self.session.commit()

    def _commit_primary(self, operation: str, transaction_id: Optional[int] = None) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(
                f"{self.label}_{operation}_failed: id={transaction_id} "
                f"user_id={self.user_id} error={exc}"
            )
            raise PrimaryPersistenceError(
                f"Could not {operation} {self.label}"
            ) from exc

    def _run_effect(
        self,
        step: str,
        action: str,
        transaction_id: int,
        fn: Callable[..., Any],
        *args: Any,
    ) -> EffectResult:
        try:
            fn(*args)
        except Exception as exc:
            self.session.rollback()
            logger.exception(
                f"side_effect_failed: step={step} action={action} "
                f"{self.label}_id={transaction_id}"
            )
            result = EffectResult(step, action, transaction_id, False, str(exc))
        else:
            result = EffectResult(step, action, transaction_id, True)
        self.effects.append(result)
        return result

    def _apply(self, snapshot: EffectSnapshot) -> None:
        self._account_effect(snapshot, forward=True)
        self._run_effect(
            "budget",
            "apply",
            snapshot.transaction_id,
            self.budgets.apply_delta,
            snapshot.user_id,
            snapshot.date,
            snapshot.amount_cents,
            self.transaction_type,
            BudgetDirection.add,
        )

    def _reverse(self, snapshot: EffectSnapshot) -> None:
        self._account_effect(snapshot, forward=False)
        self._run_effect(
            "budget",
            "reverse",
            snapshot.transaction_id,
            self.budgets.apply_delta,
            snapshot.user_id,
            snapshot.date,
            snapshot.amount_cents,
            self.transaction_type,
            BudgetDirection.subtract,
        )

    def _account_effect(self, snapshot: EffectSnapshot, *, forward: bool) -> None:
        raise NotImplementedError

    def _check_merged(self, txn: Transaction, changes: dict[str, Any]) -> None:
        """Reject a patch whose result would fail the checks run on create."""

    @staticmethod
    def _merged(txn: Transaction, changes: dict[str, Any], field: str) -> Any:
        return changes[field] if field in changes else getattr(txn, field)

    def _month_rows(self, month: int, year: int) -> list[Transaction]:
        bounds = month_bounds(month, year)
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type == self.transaction_type,
                Transaction.active.is_(True),
                Transaction.date.between(bounds.start, bounds.end),
            )
        )
        return self.session.scalars(stmt).all()


class IncomeLedger(TransactionLedger):
    transaction_type = TransactionType.income
    label = "income"

    def _account_effect(self, snapshot: EffectSnapshot, *, forward: bool) -> None:
        direction = BalanceDirection.credit if forward else BalanceDirection.debit
        self._run_effect(
            "balance",
            "apply" if forward else "reverse",
            snapshot.transaction_id,
            self.balances.adjust,
            snapshot.account_id,
            snapshot.amount_cents,
            direction,
        )

    def _check_merged(self, txn: Transaction, changes: dict[str, Any]) -> None:
        if not self._merged(txn, changes, "is_salary"):
            return
        installment = self._merged(txn, changes, "salary_installment")
        total = self._merged(txn, changes, "salary_installments_total")
        if not installment or not total:
            raise ValidationError("Salary entries need installment and installment total")
        if installment > total:
            raise ValidationError("Installment cannot exceed installment total")

    def monthly_summary(self, month: int, year: int) -> dict[str, int]:
        summary = {
            "total_confirmed": 0,
            "total_pending": 0,
            "total_salary": 0,
            "total_other": 0,
            "count": 0,
        }
        for txn in self._month_rows(month, year):
            summary["count"] += 1
            if txn.status == TransactionStatus.confirmed:
                summary["total_confirmed"] += txn.amount_cents
            elif txn.status == TransactionStatus.pending:
                summary["total_pending"] += txn.amount_cents
            if txn.is_salary:
                summary["total_salary"] += txn.amount_cents
            else:
                summary["total_other"] += txn.amount_cents
        return summary


class ExpenseLedger(TransactionLedger):
    transaction_type = TransactionType.expense
    label = "expense"

    def _check_merged(self, txn: Transaction, changes: dict[str, Any]) -> None:
        if (
            self._merged(txn, changes, "is_invoice_payment")
            and self._merged(txn, changes, "source_card_id") is None
        ):
            raise ValidationError("Invoice payments need the source card")

    def _account_effect(self, snapshot: EffectSnapshot, *, forward: bool) -> None:
        action = "apply" if forward else "reverse"
        effect = snapshot.expense_effect
        if effect == ExpenseEffect.invoice_payment:
            mutate = (
                self.credit_limits.apply_payment
                if forward
                else self.credit_limits.reverse_payment
            )
            self._run_effect(
                "invoice_payment",
                action,
                snapshot.transaction_id,
                mutate,
                snapshot.account_id,
                snapshot.source_card_id,
                snapshot.amount_cents,
            )
        elif effect == ExpenseEffect.plain:
            direction = BalanceDirection.debit if forward else BalanceDirection.credit
            self._run_effect(
                "balance",
                action,
                snapshot.transaction_id,
                self.balances.adjust,
                snapshot.account_id,
                snapshot.amount_cents,
                direction,
            )
        else:
            raise ValueError(f"Unsupported expense effect: {effect!r}")

    def monthly_summary(self, month: int, year: int) -> dict[str, object]:
        totals = {
            "total_confirmed": 0,
            "total_pending": 0,
            "total_invoice_payments": 0,
            "total_other": 0,
            "count": 0,
        }
        by_category: dict[str, int] = {}
        for txn in self._month_rows(month, year):
            totals["count"] += 1
            if txn.status == TransactionStatus.confirmed:
                totals["total_confirmed"] += txn.amount_cents
            elif txn.status == TransactionStatus.pending:
                totals["total_pending"] += txn.amount_cents
            if txn.is_invoice_payment:
                totals["total_invoice_payments"] += txn.amount_cents
            else:
                totals["total_other"] += txn.amount_cents
            name = txn.category.name if txn.category else UNCATEGORIZED
            by_category[name] = by_category.get(name, 0) + txn.amount_cents
        return {**totals, "by_category": by_category}


class AccountService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = get_current_user_id() if user_id is None else user_id

    def get(self, account_id: int) -> Account:
        account = self.session.get(Account, account_id)
        if not account or account.user_id != self.user_id:
            raise NotFoundError("Account not found")
        return account

    def list_active(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id, Account.active.is_(True))
            .order_by(Account.created_at.desc(), Account.id.desc())
        )
        return self.session.scalars(stmt).all()

    def total_balance(self) -> int:
        return sum(account.balance_cents for account in self.list_active())

    def require_for_transaction(self, account_id: int) -> Account:
        account = self.get(account_id)
        if not account.active:
            raise NotFoundError("Account not found")
        return account

    def check_invoice_payment(self, account_id: int, card_account_id: int) -> None:
        funding = self.require_for_transaction(account_id)
        card = self.session.get(Account, card_account_id)
        if (
            not card
            or card.user_id != self.user_id
            or not card.active
            or card.type != AccountType.credit_card
        ):
            raise ValidationError("Source card not found or not a credit card")
        if funding.type == AccountType.credit_card:
            raise ValidationError("An invoice cannot be paid with another credit card")

    def expected_balance(self, account_id: int) -> Optional[int]:
        """Opening balance plus confirmed movements, or None without a baseline."""
        account = self.get(account_id)
        if account.opening_balance_cents is None:
            return None
        signed = case(
            (Transaction.type == TransactionType.income, Transaction.amount_cents),
            else_=-Transaction.amount_cents,
        )
        movement = int(
            self.session.execute(
                select(func.coalesce(func.sum(signed), 0)).where(
                    Transaction.account_id == account_id,
                    Transaction.status == TransactionStatus.confirmed,
                    Transaction.active.is_(True),
                )
            ).scalar_one()
            or 0
        )
        return account.opening_balance_cents + movement

    def reconcile_balance(self, account_id: int) -> Account:
        expected = self.expected_balance(account_id)
        account = self.get(account_id)
        if expected is None:
            logger.warning(
                f"balance_reconcile_skipped: account_id={account_id} reason=no_opening_balance"
            )
            return account
        if account.balance_cents != expected:
            logger.info(
                f"balance_reconciled: account_id={account_id} "
                f"stored={account.balance_cents} expected={expected}"
            )
            account.balance_cents = expected
        self.session.commit()
        return account

    def reconcile_all(self) -> int:
        account_ids = self.session.scalars(
            select(Account.id).where(Account.user_id == self.user_id)
        ).all()
        for account_id in account_ids:
            self.reconcile_balance(account_id)
        return len(account_ids)


def budget_period_payload(period: BudgetPeriod) -> dict[str, object]:
    return {
        "id": period.id,
        "month": period.month,
        "year": period.year,
        "income_cents": period.income_cents,
        "expense_cents": period.expense_cents,
        "net_cents": period.net_cents,
        "savings_goal_cents": period.savings_goal_cents,
        "notes": period.notes,
    }


def _percent(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, 2)


class BudgetService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = get_current_user_id() if user_id is None else user_id
        self.resolver = BudgetPeriodResolver(session)
        self.aggregator = BudgetAggregator(session, self.resolver)

    def get_period(self, month: int, year: int) -> BudgetPeriod:
        return self.resolver.find_or_create(self.user_id, month, year)

    def update_period(self, data: BudgetPeriodIn) -> BudgetPeriod:
        period = self.resolver.find_or_create(self.user_id, data.month, data.year)
        if data.savings_goal_cents is not None:
            period.savings_goal_cents = data.savings_goal_cents
        if data.notes is not None:
            period.notes = data.notes
        self.session.commit()
        return period

    def reconcile(self, month: int, year: int) -> BudgetPeriod:
        return self.aggregator.reconcile(self.user_id, month, year)

    def history(self, limit: int = 12) -> list[BudgetPeriod]:
        stmt = (
            select(BudgetPeriod)
            .where(BudgetPeriod.user_id == self.user_id)
            .order_by(BudgetPeriod.year.desc(), BudgetPeriod.month.desc())
            .limit(limit)
        )
        return self.session.scalars(stmt).all()

    def annual_summary(self, year: int) -> dict[str, object]:
        periods = self.session.scalars(
            select(BudgetPeriod)
            .where(BudgetPeriod.user_id == self.user_id, BudgetPeriod.year == year)
            .order_by(BudgetPeriod.month)
        ).all()

        income = sum(p.income_cents for p in periods)
        expense = sum(p.expense_cents for p in periods)
        best = max(periods, key=lambda p: p.income_cents - p.expense_cents, default=None)
        worst = min(periods, key=lambda p: p.income_cents - p.expense_cents, default=None)
        return {
            "year": year,
            "income_cents": income,
            "expense_cents": expense,
            "net_cents": income - expense,
            "savings_goal_cents": sum(p.savings_goal_cents for p in periods),
            "best_month": budget_period_payload(best) if best else None,
            "worst_month": budget_period_payload(worst) if worst else None,
            "months": [budget_period_payload(p) for p in periods],
        }

    def statistics(self, today: Optional[date] = None) -> dict[str, object]:
        today = today or local_today()
        since = shift_month(PeriodKey(today.month, today.year), -12)
        periods = self.session.scalars(
            select(BudgetPeriod)
            .where(
                BudgetPeriod.user_id == self.user_id,
                or_(
                    BudgetPeriod.year > since.year,
                    (BudgetPeriod.year == since.year)
                    & (BudgetPeriod.month >= since.month),
                ),
            )
            .order_by(BudgetPeriod.year, BudgetPeriod.month)
        ).all()

        stats: dict[str, object] = {
            "months_analyzed": len(periods),
            "average_income_cents": 0,
            "average_expense_cents": 0,
            "average_net_cents": 0,
            "max_income_cents": 0,
            "max_expense_cents": 0,
            "best_net_cents": 0,
            "worst_net_cents": 0,
            "positive_months": 0,
            "negative_months": 0,
        }
        if not periods:
            return stats

        incomes = [p.income_cents for p in periods]
        expenses = [p.expense_cents for p in periods]
        nets = [p.net_cents for p in periods]
        stats.update(
            average_income_cents=round(sum(incomes) / len(periods)),
            average_expense_cents=round(sum(expenses) / len(periods)),
            average_net_cents=round(sum(nets) / len(periods)),
            max_income_cents=max(incomes),
            max_expense_cents=max(expenses),
            best_net_cents=max(nets),
            worst_net_cents=min(nets),
            positive_months=sum(1 for n in nets if n > 0),
            negative_months=sum(1 for n in nets if n < 0),
        )
        return stats


class SummaryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = get_current_user_id() if user_id is None else user_id

    def category_stats(
        self,
        kind: TransactionType,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> list[dict[str, object]]:
        stmt = (
            select(
                Category.id,
                Category.name,
                Category.color,
                Category.icon,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
                func.count(Transaction.id).label("txn_count"),
            )
            .select_from(Transaction)
            .outerjoin(Category, Transaction.category_id == Category.id)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type == kind,
                Transaction.status == TransactionStatus.confirmed,
                Transaction.active.is_(True),
            )
            .group_by(Category.id, Category.name, Category.color, Category.icon)
        )
        if month and year:
            bounds = month_bounds(month, year)
            stmt = stmt.where(Transaction.date.between(bounds.start, bounds.end))
        elif year:
            stmt = stmt.where(
                Transaction.date.between(date(year, 1, 1), date(year, 12, 31))
            )

        rows = self.session.execute(stmt).all()
        grand_total = sum(int(row.total) for row in rows)
        stats = [
            {
                "category_id": row.id,
                "name": row.name or UNCATEGORIZED,
                "color": row.color,
                "icon": row.icon,
                "total_cents": int(row.total),
                "count": int(row.txn_count),
                "percentage": _percent(int(row.total), grand_total),
            }
            for row in rows
        ]
        stats.sort(key=lambda item: item["total_cents"], reverse=True)
        return stats

    def dashboard(
        self, month: Optional[int] = None, year: Optional[int] = None
    ) -> dict[str, object]:
        today = local_today()
        month = month or today.month
        year = year or today.year

        period = BudgetPeriodResolver(self.session).find_or_create(
            self.user_id, month, year
        )
        accounts = AccountService(self.session, self.user_id).list_active()
        return {
            "period": {"month": month, "year": year},
            "budget": budget_period_payload(period),
            "categories": {
                "income": self.category_stats(TransactionType.income, month, year),
                "expense": self.category_stats(TransactionType.expense, month, year),
            },
            "accounts": {
                "items": [
                    {
                        "id": account.id,
                        "name": account.name,
                        "type": account.type.value,
                        "balance_cents": account.balance_cents,
                    }
                    for account in accounts
                ],
                "total_balance_cents": sum(a.balance_cents for a in accounts),
            },
            "indicators": {
                "savings_rate": _percent(period.net_cents, period.income_cents),
                "spent_percentage": _percent(
                    period.expense_cents, period.income_cents
                ),
                "goal_achievement": _percent(
                    period.net_cents, period.savings_goal_cents
                ),
            },
        }


class ReconciliationService:
    """Repair job: recompute every budget period and account balance."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def _user_ids(self) -> list[int]:
        ids: set[int] = set()
        for model in (Transaction, BudgetPeriod, Account):
            ids.update(self.session.scalars(select(model.user_id).distinct()).all())
        return sorted(ids)

    def run(self) -> dict[str, int]:
        periods = 0
        accounts = 0
        aggregator = BudgetAggregator(self.session)
        for user_id in self._user_ids():
            periods += aggregator.reconcile_all(user_id)
            accounts += AccountService(self.session, user_id).reconcile_all()
        return {"periods": periods, "accounts": accounts}
