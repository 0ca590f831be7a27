from contextlib import contextmanager
from datetime import date

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import scheduler
from budgets import BudgetPeriodResolver
from database import Base
from models import Account, AccountType
from schemas import IncomeIn
from services import IncomeLedger


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def test_run_job_reconciles_through_session_scope(monkeypatch) -> None:
    session = make_session()
    account = Account(name="Checking", type=AccountType.checking)
    session.add(account)
    session.commit()
    IncomeLedger(session).create(
        IncomeIn(account_id=account.id, name="Job", amount_cents=800, date=date(2025, 3, 1))
    )
    period = BudgetPeriodResolver(session).find(1, 3, 2025)
    period.income_cents = 0
    session.commit()

    @contextmanager
    def fake_scope():
        yield session

    monkeypatch.setattr(scheduler, "session_scope", fake_scope)

    counts = scheduler.SchedulerManager()._run_job("test")

    assert counts == {"periods": 1, "accounts": 1}
    assert BudgetPeriodResolver(session).find(1, 3, 2025).income_cents == 800


def test_start_registers_daily_job_and_stop_shuts_down(monkeypatch) -> None:
    runs = []
    monkeypatch.setattr(
        scheduler.SchedulerManager, "_run_job", lambda self, source="manual": runs.append(source)
    )
    manager = scheduler.SchedulerManager()

    manager.start()
    try:
        assert runs == ["startup"]
        job = manager.scheduler.get_job("reconcile_daily")
        assert job is not None
        assert manager.scheduler.running
    finally:
        manager.stop()

    assert not manager.scheduler.running
