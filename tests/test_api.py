"""Tests for the companion REST backend."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from vozfinancas.api import create_app
from vozfinancas.services.storage import Database
from vozfinancas.services.storage.sqlite_store import DEFAULT_CATEGORIES, CategoryRow


@pytest.fixture
def database():
    database = Database("sqlite://")
    database.init_db()
    return database


@pytest.fixture
def client(database):
    return TestClient(create_app(database))


class TestDatabase:
    """Tests for schema creation and seeding."""

    def test_default_categories_seeded_once(self, database):
        database.init_db()
        with database.SessionLocal() as db:
            names = list(db.scalars(select(CategoryRow.name)))
        assert sorted(names) == sorted(DEFAULT_CATEGORIES)


class TestExpenseEndpoints:
    """Tests for the expense CRUD endpoints."""

    def test_create_and_list(self, client):
        response = client.post(
            "/api/expenses",
            json={"amount": 25, "description": "almoço", "category": "Alimentação"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"

        listed = client.get("/api/expenses").json()
        assert len(listed) == 1
        assert listed[0]["id"] == body["id"]
        assert listed[0]["amount"] == 25.0
        assert listed[0]["category_name"] == "Alimentação"

    def test_unknown_category_is_created(self, client, database):
        client.post(
            "/api/expenses",
            json={"amount": 12.5, "description": "ração", "category": "Pets"},
        )
        with database.SessionLocal() as db:
            names = set(db.scalars(select(CategoryRow.name)))
        assert "Pets" in names

    def test_list_is_newest_first(self, client):
        for description in ("primeiro", "segundo"):
            client.post(
                "/api/expenses",
                json={"amount": 1, "description": description, "category": "Outros"},
            )
        listed = client.get("/api/expenses").json()
        assert [e["description"] for e in listed] == ["segundo", "primeiro"]

    def test_invalid_body_rejected(self, client):
        response = client.post(
            "/api/expenses",
            json={"amount": -1, "description": "x", "category": "y"},
        )
        assert response.status_code == 422

    def test_delete(self, client):
        expense_id = client.post(
            "/api/expenses",
            json={"amount": 5, "description": "café", "category": "Alimentação"},
        ).json()["id"]

        response = client.delete(f"/api/expenses/{expense_id}")

        assert response.json() == {"status": "success"}
        assert client.get("/api/expenses").json() == []

    def test_delete_unknown_id_succeeds(self, client):
        response = client.delete("/api/expenses/999")
        assert response.status_code == 200
        assert response.json() == {"status": "success"}


class TestSummaryEndpoint:
    """Tests for the summary endpoint."""

    def test_empty_summary(self, client):
        assert client.get("/api/summary").json() == {"daily": 0.0, "byCategory": []}

    def test_summary_totals(self, client):
        for amount, category in ((40, "Alimentação"), (60, "Alimentação"), (15, "Lazer")):
            client.post(
                "/api/expenses",
                json={"amount": amount, "description": "x", "category": category},
            )

        summary = client.get("/api/summary").json()

        assert summary["daily"] == 115.0
        assert summary["byCategory"] == [
            {"name": "Alimentação", "total": 100.0},
            {"name": "Lazer", "total": 15.0},
        ]


class TestAuditEndpoint:
    """Tests for the audit trail written by the backend."""

    def test_mutations_are_audited(self, client):
        expense_id = client.post(
            "/api/expenses",
            json={"amount": 5, "description": "café", "category": "Alimentação"},
        ).json()["id"]
        client.delete(f"/api/expenses/{expense_id}")

        events = client.get("/api/audit", params={"limit": 10}).json()

        assert [e["event_type"] for e in events] == ["expense_deleted", "expense_added"]
        assert events[1]["entity_id"] == str(expense_id)

    def test_trail_by_correlation_id(self, client):
        """Test that events sent with X-Correlation-ID can be fetched as one trail."""
        session_id = "7d1b6f0e-3c55-4b5e-9a53-2f0c4f1e9a10"
        client.post(
            "/api/expenses",
            json={"amount": 5, "description": "café", "category": "Alimentação"},
            headers={"X-Correlation-ID": session_id},
        )
        client.post(
            "/api/expenses",
            json={"amount": 7, "description": "pão", "category": "Alimentação"},
        )

        trail = client.get("/api/audit", params={"correlation_id": session_id}).json()

        assert len(trail) == 1
        assert trail[0]["correlation_id"] == session_id
