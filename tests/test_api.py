import importlib
import logging
import uuid

import pytest
from fastapi.testclient import TestClient

import api
from api import create_app


@pytest.fixture
def client(db_file):
    # The context manager runs the lifespan, which builds the library
    with TestClient(create_app(db_file=db_file, seed=False)) as test_client:
        yield test_client


def _create(client, isbn="9999", quantity=3):
    payload = {
        "name": "Test Book",
        "author": "Test Author",
        "isbn": isbn,
        "publication_year": 2020,
        "quantity": quantity,
    }
    return client.post("/books", json=payload)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["total_books"] == 0


def test_get_books_empty(client):
    response = client.get("/books")
    assert response.status_code == 200
    assert response.json() == []


def test_create_and_get_book(client):
    response = _create(client)
    assert response.status_code == 201
    book = response.json()
    assert book["available_quantity"] == 3
    assert book["version"] == 0

    response = client.get(f"/books/{book['id']}")
    assert response.status_code == 200
    assert response.json()["isbn"] == "9999"


def test_create_negative_quantity(client):
    response = _create(client, quantity=-1)
    assert response.status_code == 400
    assert response.json()["error_code"] == "VALIDATION_ERROR"
    assert client.get("/books").json() == []


def test_create_duplicate_isbn(client):
    _create(client)
    response = _create(client)
    assert response.status_code == 409
    assert response.json()["error_code"] == "DUPLICATE_ISBN"


def test_borrow_and_return(client):
    book_id = _create(client, quantity=1).json()["id"]

    response = client.post(f"/books/{book_id}/borrow", json={"customer_name": "Alice"})
    assert response.status_code == 200
    assert response.json()["available_quantity"] == 0

    response = client.post(f"/books/{book_id}/borrow", json={"customer_name": "Bob"})
    assert response.status_code == 400
    body = response.json()
    assert body["error_code"] == "OUT_OF_STOCK"
    assert body["message"] == "Book 'Test Book' is out of stock"

    response = client.post(f"/books/{book_id}/return", json={"customer_name": "Alice"})
    assert response.status_code == 200
    assert response.json()["available_quantity"] == 1

    records = client.get("/records").json()
    assert [(r["customer_name"], r["action"]) for r in records] == [
        ("Alice", "Returned"),
        ("Alice", "Borrowed"),
    ]


def test_borrow_unknown_book(client):
    response = client.post(f"/books/{uuid.uuid4()}/borrow", json={"customer_name": "Alice"})
    assert response.status_code == 404
    assert response.json()["error_code"] == "NOT_FOUND"


def test_borrow_with_malformed_id(client):
    response = client.post("/books/not-a-uuid/borrow", json={"customer_name": "Alice"})
    assert response.status_code == 400
    assert response.json()["error_code"] == "VALIDATION_ERROR"


def test_search(client):
    _create(client, isbn="9780756419264")
    response = client.get("/books/search", params={"isbn": "978-0-7564"})
    assert response.status_code == 200
    assert [b["isbn"] for b in response.json()] == ["9780756419264"]

    response = client.get("/books/search")
    assert response.status_code == 400


def test_logging_configured_on_startup_not_import(db_file, monkeypatch):
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

    importlib.reload(api)
    assert calls == []

    with TestClient(api.create_app(db_file=db_file, seed=False)):
        pass
    assert len(calls) == 1
