import os
import tempfile

# The app reads its settings at import time
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="storefront-uploads-")
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET"] = "test-secret"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("DATABASE_NAME", None)

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main


@pytest.fixture
def mongo(monkeypatch):
    test_db = mongomock.MongoClient()["storefront_test"]
    database.ensure_indexes(test_db)
    monkeypatch.setattr(database, "db", test_db)
    monkeypatch.setattr(main, "db", test_db)
    return test_db


@pytest.fixture
def client(mongo):
    return TestClient(main.app)


@pytest.fixture
def upload_dir():
    return main.settings.upload_dir


@pytest.fixture
def jpeg():
    def make(name="photo.jpg", field="images"):
        return (field, (name, b"\xff\xd8\xff\xe0 not really a jpeg", "image/jpeg"))
    return make


@pytest.fixture
def create_product(client, jpeg):
    def create(count=1, **fields):
        form = {
            "name": "Linen shirt",
            "description": "Breathable summer shirt",
            "new_price": "39.90",
            "old_price": "49.90",
            "category": "men",
        }
        form.update(fields)
        files = [jpeg(f"shirt-{i}.jpg") for i in range(count)]
        resp = client.post("/products", data=form, files=files)
        assert resp.status_code == 201, resp.text
        return resp.json()["product"]
    return create
