import time

from main import decode_token


def signup(client, email="ada@example.com", password="s3cret!", username="ada"):
    return client.post("/signup", json={"username": username, "email": email, "password": password})


def test_signup_returns_token(client, mongo):
    resp = signup(client)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert decode_token(body["token"])["sub"]

    user = mongo["user"].find_one({"email": "ada@example.com"})
    assert user["name"] == "ada"
    assert user["password_hash"] != "s3cret!"
    assert len(user["cart"]) == 300
    assert set(user["cart"].values()) == {0}
    assert user["created_at"] is not None


def test_signup_duplicate_email(client, mongo):
    assert signup(client).status_code == 200
    resp = signup(client, username="someone else")
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Email already exists"}
    assert mongo["user"].count_documents({}) == 1


def test_signup_requires_all_fields(client, mongo):
    resp = client.post("/signup", json={"email": "ada@example.com", "password": "x"})
    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert mongo["user"].count_documents({}) == 0


def test_login_unknown_email(client):
    resp = client.post("/login", json={"email": "nobody@example.com", "password": "x"})
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Invalid Email"}
    assert "token" not in resp.json()


def test_login_wrong_password(client):
    signup(client)
    resp = client.post("/login", json={"email": "ada@example.com", "password": "wrong"})
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Invalid Password"}


def test_login_token_identifies_same_user_as_signup(client):
    signup_token = signup(client).json()["token"]
    resp = client.post("/login", json={"email": "ada@example.com", "password": "s3cret!"})
    assert resp.status_code == 200
    login_token = resp.json()["token"]
    assert decode_token(login_token)["sub"] == decode_token(signup_token)["sub"]


def test_token_expires_in_one_hour(client):
    payload = decode_token(signup(client).json()["token"])
    assert set(payload) == {"sub", "exp"}
    assert 3500 < payload["exp"] - time.time() <= 3600


def test_me_returns_user_without_hash(client):
    token = signup(client).json()["token"]
    resp = client.get("/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    user = resp.json()["user"]
    assert user["email"] == "ada@example.com"
    assert "password_hash" not in user


def test_me_rejects_missing_or_bad_token(client):
    assert client.get("/me").status_code == 401
    resp = client.get("/me", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401
    assert resp.json() == {"success": False, "error": "Invalid token"}


def test_concurrent_signup_caught_by_unique_index(client, mongo, monkeypatch):
    assert signup(client).status_code == 200
    # The lookup misses, as it would for a signup racing the first one
    monkeypatch.setattr(type(mongo["user"]), "find_one", lambda self, *args, **kwargs: None)
    resp = signup(client, username="racer")
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Email already exists"}
    assert mongo["user"].count_documents({}) == 1
