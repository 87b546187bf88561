import mongomock
import pytest
from fastapi.testclient import TestClient

import auth
import catalog
import database
from main import app
from schemas import Fooditem


@pytest.fixture(autouse=True)
def db():
    """Fresh in-memory database for every test."""
    database.connect(client=mongomock.MongoClient(), name="food_test")
    yield database.db
    database.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def user_id():
    return auth.register("Jane Doe", "jane@example.com", "secret123")["user"]["_id"]


@pytest.fixture
def token(user_id):
    return auth.create_token(user_id)


@pytest.fixture
def foods():
    """Two catalog items used across the order tests."""
    pizza = catalog.add_food(Fooditem(name="Pizza", price=10.99, category="Pizza", image="pizza.jpg"))
    salad = catalog.add_food(Fooditem(name="Salad", price=8.50, category="Salad", image="salad.jpg"))
    return {"pizza": pizza, "salad": salad}


@pytest.fixture
def address():
    return {
        "first_name": "John",
        "last_name": "Doe",
        "email": "john@example.com",
        "street": "123 Main St",
        "city": "Anytown",
        "state": "CA",
        "zip_code": "12345",
        "country": "USA",
        "phone": "555-1234",
    }
