import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import database
from auth import issue_token
from database import Base
from main import app


@pytest.fixture(autouse=True)
def in_memory_db(monkeypatch):
    # Requests go through main.get_db -> database.session_scope.
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    monkeypatch.setattr(
        database,
        "SessionLocal",
        sessionmaker(bind=engine, autoflush=False, expire_on_commit=False),
    )


def make_client() -> TestClient:
    return TestClient(app)


def _auth(user_id: int = 1) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(user_id)}"}


def test_health_needs_no_token() -> None:
    client = make_client()
    assert client.get("/health").json() == {"status": "ok"}


def test_missing_or_bad_token_is_unauthorized() -> None:
    client = make_client()
    assert client.get("/accounts").status_code == 401
    resp = client.get("/accounts", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401


def test_transaction_flow_over_http() -> None:
    client = make_client()
    headers = _auth()

    resp = client.post(
        "/accounts",
        json={"name": "Main", "type": "checking", "initial_balance_cents": 10_000},
        headers=headers,
    )
    assert resp.status_code == 201
    account = resp.json()
    assert account["is_default"] is True

    resp = client.post(
        "/transactions",
        json={"account_id": account["id"], "type": "expense", "amount_cents": 3_000},
        headers=headers,
    )
    assert resp.status_code == 201
    txn = resp.json()

    resp = client.patch(
        f"/transactions/{txn['id']}", json={"amount_cents": 5_000}, headers=headers
    )
    assert resp.status_code == 200
    balance = client.get(f"/accounts/{account['id']}", headers=headers).json()
    assert balance["current_balance_cents"] == 5_000

    resp = client.post(
        "/transactions",
        json={"account_id": account["id"], "type": "expense", "amount_cents": 9_000},
        headers=headers,
    )
    assert resp.status_code == 400

    assert client.delete(f"/transactions/{txn['id']}", headers=headers).status_code == 204
    balance = client.get(f"/accounts/{account['id']}", headers=headers).json()
    assert balance["current_balance_cents"] == 10_000


def test_error_statuses() -> None:
    client = make_client()
    mine = _auth(1)
    theirs = _auth(2)

    account = client.post(
        "/accounts",
        json={"name": "Theirs", "type": "cash"},
        headers=theirs,
    ).json()
    assert client.get(f"/accounts/{account['id']}", headers=mine).status_code == 403
    assert client.get("/accounts/999", headers=mine).status_code == 404
    assert client.get("/accounts/default", headers=mine).status_code == 404

    body = {"name": "Food", "type": "expense"}
    assert client.post("/categories", json=body, headers=mine).status_code == 201
    assert client.post("/categories", json=body, headers=mine).status_code == 409

    resp = client.post(
        "/transactions",
        json={"account_id": account["id"], "type": "transfer", "amount_cents": 1},
        headers=theirs,
    )
    assert resp.status_code == 422


def test_budget_and_goal_progress_fields() -> None:
    client = make_client()
    headers = _auth()

    budget = client.post(
        "/budgets",
        json={
            "name": "Food",
            "amount_cents": 10_000,
            "period": "monthly",
            "start_date": "2024-01-01",
        },
        headers=headers,
    ).json()
    resp = client.post(
        f"/budgets/{budget['id']}/spent", json={"amount_cents": 9_000}, headers=headers
    )
    body = resp.json()
    assert body["remaining_cents"] == 1_000
    assert body["percentage_used"] == 90.0
    assert body["is_near_limit"] is True
    alerts = client.get("/budgets/alerts", headers=headers).json()
    assert [b["id"] for b in alerts["near_limit"]] == [budget["id"]]

    goal = client.post(
        "/goals",
        json={"name": "Car", "target_amount_cents": 2_000, "type": "purchase"},
        headers=headers,
    ).json()
    assert goal["days_remaining"] == -1
    resp = client.post(
        f"/goals/{goal['id']}/progress", json={"amount_cents": 2_000}, headers=headers
    )
    assert resp.json()["status"] == "completed"
    assert resp.json()["is_completed"] is True


def test_dashboard_stats() -> None:
    client = make_client()
    headers = _auth()
    client.post(
        "/accounts",
        json={"name": "Main", "type": "checking", "initial_balance_cents": 1_500},
        headers=headers,
    )
    client.post(
        "/accounts",
        json={"name": "Spare", "type": "savings", "initial_balance_cents": 500},
        headers=headers,
    )

    stats = client.get("/dashboard/stats", headers=headers).json()
    assert stats["total_balance_cents"] == 2_000
    assert stats["active_accounts"] == 2
    assert stats["recent_transactions"] == []


def test_goal_status_filter() -> None:
    client = make_client()
    headers = _auth()
    done = client.post(
        "/goals",
        json={
            "name": "Done",
            "target_amount_cents": 100,
            "current_amount_cents": 100,
            "type": "savings",
        },
        headers=headers,
    ).json()
    client.post(
        "/goals",
        json={"name": "Open", "target_amount_cents": 100, "type": "savings"},
        headers=headers,
    )

    resp = client.get("/goals", params={"status": "completed"}, headers=headers)
    assert [g["id"] for g in resp.json()] == [done["id"]]
    assert len(client.get("/goals", headers=headers).json()) == 2

    resp = client.get("/goals", params={"status": "archived"}, headers=headers)
    assert resp.status_code == 422


def test_transaction_filters_combine() -> None:
    client = make_client()
    headers = _auth()
    account = client.post(
        "/accounts",
        json={"name": "Main", "type": "checking", "initial_balance_cents": 10_000},
        headers=headers,
    ).json()
    food = client.post(
        "/categories", json={"name": "Food", "type": "expense"}, headers=headers
    ).json()

    def post(txn_type: str, category_id=None) -> dict:
        body = {"account_id": account["id"], "type": txn_type, "amount_cents": 100}
        if category_id is not None:
            body["category_id"] = category_id
        return client.post("/transactions", json=body, headers=headers).json()

    lunch = post("expense", food["id"])
    post("expense")
    post("income", food["id"])

    resp = client.get(
        "/transactions",
        params={"type": "expense", "category_id": food["id"]},
        headers=headers,
    )
    assert [t["id"] for t in resp.json()] == [lunch["id"]]
    resp = client.get("/transactions", params={"type": "expense"}, headers=headers)
    assert len(resp.json()) == 2
    resp = client.get(
        "/transactions", params={"category_id": food["id"]}, headers=headers
    )
    assert len(resp.json()) == 2


def test_failed_request_is_rolled_back() -> None:
    client = make_client()
    headers = _auth()
    account = client.post(
        "/accounts",
        json={"name": "Main", "type": "checking", "initial_balance_cents": 1_000},
        headers=headers,
    ).json()
    txn = client.post(
        "/transactions",
        json={"account_id": account["id"], "type": "expense", "amount_cents": 100},
        headers=headers,
    ).json()

    resp = client.patch(
        f"/transactions/{txn['id']}", json={"is_recurring": True}, headers=headers
    )
    assert resp.status_code == 400
    stored = client.get(f"/transactions/{txn['id']}", headers=headers).json()
    assert stored["is_recurring"] is False
