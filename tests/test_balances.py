import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from balances import BalanceDirection, BalanceMutator, CreditLimitMutator, signed_amount
from database import Base
from models import Account, AccountType, CreditCardDetail


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def add_account(session, balance_cents: int, type=AccountType.checking) -> Account:
    account = Account(
        name=f"{type.value} account",
        type=type,
        balance_cents=balance_cents,
        opening_balance_cents=balance_cents,
    )
    session.add(account)
    session.commit()
    return account


def add_card(session, total: int, available: int) -> Account:
    card = Account(
        name="Visa",
        type=AccountType.credit_card,
        card=CreditCardDetail(limit_total_cents=total, limit_available_cents=available),
    )
    session.add(card)
    session.commit()
    return card


def test_adjust_credits_and_debits_balance() -> None:
    session = make_session()
    account = add_account(session, 1000)
    mutator = BalanceMutator(session)

    mutator.adjust(account.id, 250, BalanceDirection.credit)
    assert account.balance_cents == 1250

    mutator.adjust(account.id, 2000, BalanceDirection.debit)
    assert account.balance_cents == -750


def test_adjust_missing_account_is_noop() -> None:
    session = make_session()
    assert BalanceMutator(session).adjust(404, 100, BalanceDirection.debit) is None


def test_signed_amount_rejects_unknown_direction() -> None:
    with pytest.raises(ValueError):
        signed_amount(100, "sideways")


def test_invoice_payment_restores_card_limit_and_reverses() -> None:
    session = make_session()
    funding = add_account(session, 2000)
    card = add_card(session, total=5000, available=3000)
    limits = CreditLimitMutator(session)

    limits.apply_payment(funding.id, card.id, 1000)
    assert funding.balance_cents == 1000
    assert card.card.limit_available_cents == 4000

    limits.reverse_payment(funding.id, card.id, 1000)
    assert funding.balance_cents == 2000
    assert card.card.limit_available_cents == 3000


def test_capped_payment_does_not_round_trip() -> None:
    session = make_session()
    funding = add_account(session, 2000)
    card = add_card(session, total=5000, available=3000)
    limits = CreditLimitMutator(session)

    limits.apply_payment(funding.id, card.id, 3000)
    assert card.card.limit_available_cents == 5000

    limits.reverse_payment(funding.id, card.id, 3000)
    assert card.card.limit_available_cents == 2000
    assert funding.balance_cents == 2000


def test_reverse_floors_available_limit_at_zero() -> None:
    session = make_session()
    funding = add_account(session, 0)
    card = add_card(session, total=5000, available=500)

    CreditLimitMutator(session).reverse_payment(funding.id, card.id, 1200)

    assert card.card.limit_available_cents == 0
    assert funding.balance_cents == 1200


def test_payment_to_non_card_only_moves_funding_balance() -> None:
    session = make_session()
    funding = add_account(session, 2000)
    other = add_account(session, 100, type=AccountType.cash)

    result = CreditLimitMutator(session).apply_payment(funding.id, other.id, 700)

    assert result is None
    assert funding.balance_cents == 1300
    assert other.balance_cents == 100
