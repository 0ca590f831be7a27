import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from database import Base, build_engine, make_session_factory
from main import app, get_db
from models import Account, AccountType, CreditCardDetail


@pytest.fixture()
def api():
    engine = build_engine("sqlite+pysqlite:///:memory:", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    TestingSession = make_session_factory(engine)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app), TestingSession
    app.dependency_overrides.clear()


def add_account(TestingSession, balance_cents: int = 1000, type=AccountType.checking) -> int:
    with TestingSession() as session:
        account = Account(
            name="Checking",
            type=type,
            balance_cents=balance_cents,
            opening_balance_cents=balance_cents,
        )
        if type == AccountType.credit_card:
            account.card = CreditCardDetail(limit_total_cents=5000, limit_available_cents=3000)
        session.add(account)
        session.commit()
        return account.id


def balance_of(TestingSession, account_id: int) -> int:
    with TestingSession() as session:
        return session.get(Account, account_id).balance_cents


def test_expense_lifecycle(api) -> None:
    client, TestingSession = api
    account_id = add_account(TestingSession, 1000)

    response = client.post(
        "/api/expenses",
        json={
            "account_id": account_id,
            "name": "Groceries",
            "amount_cents": 200,
            "date": "2025-03-10",
        },
    )
    assert response.status_code == 201
    body = response.json()
    expense_id = body["item"]["id"]
    assert body["item"]["status"] == "confirmed"
    assert [effect["ok"] for effect in body["effects"]] == [True, True]
    assert balance_of(TestingSession, account_id) == 800

    response = client.patch(f"/api/expenses/{expense_id}", json={"amount_cents": 500})
    assert response.status_code == 200
    assert response.json()["item"]["amount_cents"] == 500
    assert balance_of(TestingSession, account_id) == 500

    listing = client.get("/api/expenses", params={"period": "custom", "start": "2025-03-01", "end": "2025-03-31"})
    assert [item["id"] for item in listing.json()["items"]] == [expense_id]
    assert listing.json()["has_more"] is False

    summary = client.get("/api/expenses/summary", params={"month": 3, "year": 2025})
    assert summary.status_code == 200
    assert summary.json()["total_confirmed"] == 500

    budget = client.get("/api/budget", params={"month": 3, "year": 2025})
    assert budget.json()["expense_cents"] == 500

    response = client.delete(f"/api/expenses/{expense_id}")
    assert response.status_code == 200
    assert response.json()["deleted"] == expense_id
    assert balance_of(TestingSession, account_id) == 1000

    assert client.get(f"/api/expenses/{expense_id}").status_code == 404


def test_income_routes_are_separate_from_expenses(api) -> None:
    client, TestingSession = api
    account_id = add_account(TestingSession, 0)

    response = client.post(
        "/api/incomes",
        json={
            "account_id": account_id,
            "name": "Salary",
            "amount_cents": 4000,
            "date": "2025-03-05",
            "is_salary": True,
            "salary_installment": 1,
            "salary_installments_total": 2,
        },
    )
    assert response.status_code == 201
    income_id = response.json()["item"]["id"]
    assert response.json()["item"]["is_salary"] is True

    assert client.get(f"/api/incomes/{income_id}").status_code == 200
    assert client.get(f"/api/expenses/{income_id}").status_code == 404

    summary = client.get("/api/incomes/summary", params={"month": 3, "year": 2025}).json()
    assert summary["total_salary"] == 4000


def test_unknown_account_is_rejected(api) -> None:
    client, _ = api
    response = client.post(
        "/api/expenses",
        json={"account_id": 999, "name": "Ghost", "amount_cents": 100, "date": "2025-03-10"},
    )
    assert response.status_code == 404


def test_invoice_payment_needs_a_credit_card(api) -> None:
    client, TestingSession = api
    funding_id = add_account(TestingSession, 2000)
    other_id = add_account(TestingSession, 0)
    card_id = add_account(TestingSession, 0, type=AccountType.credit_card)

    bad = client.post(
        "/api/expenses",
        json={
            "account_id": funding_id,
            "name": "Invoice",
            "amount_cents": 1000,
            "date": "2025-03-10",
            "is_invoice_payment": True,
            "source_card_id": other_id,
        },
    )
    assert bad.status_code == 400

    good = client.post(
        "/api/expenses",
        json={
            "account_id": funding_id,
            "name": "Invoice",
            "amount_cents": 1000,
            "date": "2025-03-10",
            "is_invoice_payment": True,
            "source_card_id": card_id,
        },
    )
    assert good.status_code == 201
    assert good.json()["effects"][0]["step"] == "invoice_payment"
    with TestingSession() as session:
        assert session.get(CreditCardDetail, card_id).limit_available_cents == 4000


def test_schema_errors_return_422(api) -> None:
    client, TestingSession = api
    account_id = add_account(TestingSession)
    response = client.post(
        "/api/expenses",
        json={"account_id": account_id, "name": "Zero", "amount_cents": 0, "date": "2025-03-10"},
    )
    assert response.status_code == 422


def test_budget_goal_reconcile_and_dashboard(api) -> None:
    client, TestingSession = api
    account_id = add_account(TestingSession, 0)
    client.post(
        "/api/incomes",
        json={"account_id": account_id, "name": "Job", "amount_cents": 2000, "date": "2025-03-01"},
    )

    response = client.put(
        "/api/budget", json={"month": 3, "year": 2025, "savings_goal_cents": 1000}
    )
    assert response.status_code == 200
    assert response.json()["savings_goal_cents"] == 1000
    assert response.json()["income_cents"] == 2000

    reconciled = client.post("/api/budget/reconcile", params={"month": 3, "year": 2025})
    assert reconciled.json()["net_cents"] == 2000

    dashboard = client.get("/api/dashboard", params={"month": 3, "year": 2025}).json()
    assert dashboard["indicators"]["goal_achievement"] == 200.0

    history = client.get("/api/budget/history").json()
    assert [(p["month"], p["year"]) for p in history["items"]] == [(3, 2025)]

    annual = client.get("/api/budget/annual", params={"year": 2025}).json()
    assert annual["income_cents"] == 2000

    assert client.get("/api/budget/statistics").status_code == 200


def test_account_reconcile_route(api) -> None:
    client, TestingSession = api
    account_id = add_account(TestingSession, 300)
    with TestingSession() as session:
        session.get(Account, account_id).balance_cents = 0
        session.commit()

    response = client.post(f"/api/accounts/{account_id}/reconcile")
    assert response.status_code == 200
    assert response.json()["balance_cents"] == 300

    assert client.post("/api/accounts/999/reconcile").status_code == 404


def test_patch_breaking_invoice_payment_returns_400(api) -> None:
    client, TestingSession = api
    funding_id = add_account(TestingSession, 2000)
    card_id = add_account(TestingSession, 0, type=AccountType.credit_card)
    created = client.post(
        "/api/expenses",
        json={
            "account_id": funding_id,
            "name": "Invoice",
            "amount_cents": 1000,
            "date": "2025-03-10",
            "is_invoice_payment": True,
            "source_card_id": card_id,
        },
    )
    expense_id = created.json()["item"]["id"]

    response = client.patch(f"/api/expenses/{expense_id}", json={"source_card_id": None})

    assert response.status_code == 400
    item = client.get(f"/api/expenses/{expense_id}").json()
    assert item["source_card_id"] == card_id
    assert balance_of(TestingSession, funding_id) == 1000
