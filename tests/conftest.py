import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from main import app


@pytest.fixture
def db():
    mock_client = mongomock.MongoClient()
    database.client = mock_client
    database.db = mock_client["blood-donation-test"]
    database.ensure_indexes(database.db)
    yield database.db
    database.close()


@pytest.fixture
def client(db):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def register(client):
    def _register(email="donor@example.com", **fields):
        body = {"name": "Rahim", "email": email, "bloodGroup": "A+",
                "district": "Dhaka", "upazila": "Savar"}
        body.update(fields)
        response = client.post("/users", json=body)
        assert response.status_code == 200
        return response.json()
    return _register
