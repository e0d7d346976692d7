from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

import api as api_module
import database
from config import settings
from errors import PersistenceFailure
from loans import LoanService

HEADERS = {"X-API-Key": settings.api_key}


@pytest.fixture
def client(store):
    # Route every request to the per-test database
    api_module.app.dependency_overrides[api_module.get_store] = lambda: store
    try:
        yield TestClient(api_module.app)
    finally:
        api_module.app.dependency_overrides.clear()


@pytest.fixture
def book_id(client):
    response = client.post("/books", headers=HEADERS, json={"title": "Dune", "author": "Frank Herbert",
                                                             "total_quantity": 1})
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def reader_id(client):
    response = client.post("/readers", headers=HEADERS, json={"name": "Ada Lovelace", "card_number": "R001"})
    assert response.status_code == 201
    return response.json()["id"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_book_crud(client):
    response = client.post("/books", headers=HEADERS, json={"title": "To Live", "author": "Yu Hua",
                                                             "category": "Fiction", "total_quantity": 3})
    assert response.status_code == 201
    book = response.json()
    assert book["available_quantity"] == 3

    assert client.get(f"/books/{book['id']}").json()["title"] == "To Live"
    assert [b["id"] for b in client.get("/books", params={"category": "Fiction"}).json()] == [book["id"]]

    response = client.put(f"/books/{book['id']}", headers=HEADERS, json={"total_quantity": 4})
    assert response.status_code == 200
    assert response.json()["available_quantity"] == 4

    assert client.delete(f"/books/{book['id']}", headers=HEADERS).status_code == 200
    assert client.get(f"/books/{book['id']}").status_code == 404


def test_book_mutations_need_api_key(client):
    response = client.post("/books", headers={"X-API-Key": "invalid-key"}, json={"title": "T", "author": "A"})
    assert response.status_code == 403


def test_duplicate_reader_is_bad_request(client, reader_id):
    response = client.post("/readers", headers=HEADERS, json={"name": "Someone", "card_number": "R001"})
    assert response.status_code == 400
    assert "already exists" in response.json()["detail"]


def test_borrow_and_return_flow(client, book_id, reader_id):
    response = client.post("/loans", json={"book_id": book_id, "reader_id": reader_id})
    assert response.status_code == 201
    receipt = response.json()
    due = datetime.fromisoformat(receipt["due_date"])
    assert due - datetime.fromisoformat(receipt["borrow_date"]) == timedelta(days=30)
    assert client.get(f"/books/{book_id}/availability").json() == {"book_id": book_id, "total": 1, "available": 0}

    response = client.post("/loans", json={"book_id": book_id, "reader_id": reader_id})
    assert response.status_code == 400

    response = client.put(f"/loans/{receipt['id']}/return")
    assert response.status_code == 200
    assert response.json()["status"] == "returned"
    assert client.get(f"/books/{book_id}/availability").json()["available"] == 1

    assert client.put(f"/loans/{receipt['id']}/return").status_code == 404


def test_borrow_unknown_book_or_reader(client, book_id, reader_id):
    assert client.post("/loans", json={"book_id": 999, "reader_id": reader_id}).status_code == 404
    assert client.post("/loans", json={"book_id": book_id, "reader_id": 999}).status_code == 404


def test_borrow_rejects_non_positive_due_days(client, book_id, reader_id):
    response = client.post("/loans", json={"book_id": book_id, "reader_id": reader_id, "due_days": 0})
    assert response.status_code == 422


def test_list_loans_with_status_filter(client, book_id, reader_id):
    loan_id = client.post("/loans", json={"book_id": book_id, "reader_id": reader_id, "due_days": 14}).json()["id"]

    borrowed = client.get("/loans", params={"status": "borrowed"}).json()
    assert [loan["id"] for loan in borrowed] == [loan_id]
    assert borrowed[0]["book_title"] == "Dune"
    assert borrowed[0]["reader_name"] == "Ada Lovelace"
    assert client.get("/loans", params={"status": "returned"}).json() == []
    assert client.get(f"/loans/{loan_id}").json()["status"] == "borrowed"
    assert client.get("/loans/999").status_code == 404


def test_persistence_failure_maps_to_503(client, book_id, reader_id, monkeypatch):
    def failing_borrow(self, *args, **kwargs):
        raise PersistenceFailure("database is locked")

    monkeypatch.setattr(LoanService, "borrow", failing_borrow)
    response = client.post("/loans", json={"book_id": book_id, "reader_id": reader_id})
    assert response.status_code == 503


def test_ids_beyond_sqlite_range_are_rejected(client, book_id, reader_id):
    huge = 2**70
    assert client.put(f"/loans/{huge}/return").status_code == 422
    assert client.get(f"/books/{huge}").status_code == 422
    assert client.get(f"/readers/{huge}").status_code == 422
    assert client.post("/loans", json={"book_id": huge, "reader_id": reader_id}).status_code == 422
    assert client.post("/loans", json={"book_id": book_id, "reader_id": huge}).status_code == 422
    assert client.get("/loans", params={"book_id": huge}).status_code == 422
    assert client.get("/books/0").status_code == 422


def test_largest_storable_id_is_not_found(client, reader_id):
    largest = database.MAX_ROW_ID
    assert client.put(f"/loans/{largest}/return").status_code == 404
    assert client.post("/loans", json={"book_id": largest, "reader_id": reader_id}).status_code == 404


def test_lifespan_keeps_store_on_app_state(tmp_path, monkeypatch):
    db_file = str(tmp_path / "lifespan.db")
    monkeypatch.setattr(database, "DATABASE_FILE", db_file)
    monkeypatch.setattr(settings, "seed_sample_data", False)

    with TestClient(api_module.app) as client:
        assert api_module.app.state.store.db_file == db_file
        assert client.get("/health").json()["active_loans"] == 0
    assert api_module.app.state.store is None
    assert not hasattr(api_module, "store")


def test_missing_store_is_service_unavailable():
    assert TestClient(api_module.app).get("/books").status_code == 503
