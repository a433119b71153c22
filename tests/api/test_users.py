"""
Tests for the signup, login and logout endpoints.
"""

from pymongo.errors import ServerSelectionTimeoutError


def test_signup_creates_user_without_exposing_hash(client, fake_database):
    response = client.post(
        "/user/signup",
        json={"username": "reader", "email": "reader@example.com", "password": "s3cret"},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["message"] == "User has been registered successfully"
    assert data["user"]["username"] == "reader"
    assert data["user"]["email"] == "reader@example.com"
    assert "passwordHash" not in data["user"]
    assert "password" not in data["user"]

    stored = fake_database["users"].docs[0]
    assert stored["passwordHash"] != "s3cret"
    assert stored["passwordHash"].startswith("$2b$")
    assert str(stored["_id"]) == data["user"]["id"]


def test_signup_missing_fields_is_rejected(client):
    response = client.post("/user/signup", json={"email": "reader@example.com"})

    assert response.status_code == 400
    params = {e["param"] for e in response.json()["errors"]}
    assert params == {"username", "password"}


def test_signup_duplicate_email_conflicts(client, registered_user):
    response = client.post(
        "/user/signup",
        json={"username": "other", "email": registered_user["email"], "password": "x"},
    )

    assert response.status_code == 409
    assert "error" in response.json()


def test_signup_store_failure_is_500(client, fake_database):
    fake_database["users"].fail_with = ServerSelectionTimeoutError("no servers")

    response = client.post(
        "/user/signup",
        json={"username": "reader", "email": "reader@example.com", "password": "s3cret"},
    )

    assert response.status_code == 500
    assert "no servers" in response.json()["error"]


def test_login_store_failure_is_500(client, registered_user, fake_database):
    fake_database["users"].fail_with = ServerSelectionTimeoutError("no servers")

    response = client.post(
        "/user/login",
        json={"email": registered_user["email"], "password": registered_user["password"]},
    )

    assert response.status_code == 500
    assert "no servers" in response.json()["error"]


def test_signup_and_login_with_password_over_72_bytes(client):
    credentials = {"email": "long@example.com", "password": "p" * 80}

    signup = client.post("/user/signup", json={"username": "long", **credentials})
    assert signup.status_code == 201

    login = client.post("/user/login", json=credentials)
    assert login.status_code == 200
    assert login.json()["token"]


def test_login_returns_token(client, registered_user):
    response = client.post(
        "/user/login",
        json={"email": registered_user["email"], "password": registered_user["password"]},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Login successful"
    assert data["token"]


def test_login_token_carries_user_id(client, app, registered_user, token):
    claims = app.state.token_manager.verify(token)
    assert claims["userId"] == registered_user["id"]


def test_login_wrong_password_is_401(client, registered_user):
    for password in ("wrong", registered_user["password"].upper(), registered_user["password"] + " "):
        response = client.post(
            "/user/login",
            json={"email": registered_user["email"], "password": password},
        )
        assert response.status_code == 401
        assert response.json()["error"] == "Wrong credentials. Please enter the correct password."


def test_login_unknown_email_is_404(client):
    response = client.post("/user/login", json={"email": "nobody@example.com", "password": "x"})

    assert response.status_code == 404
    assert response.json()["error"] == "User not found. Please try signing up."


def test_login_with_corrupt_stored_hash_is_500(client, registered_user, fake_database):
    fake_database["users"].docs[0]["passwordHash"] = "corrupt"

    response = client.post(
        "/user/login",
        json={"email": registered_user["email"], "password": registered_user["password"]},
    )

    assert response.status_code == 500
    assert response.json()["error"] == "Error comparing passwords."


def test_logout_records_token_with_its_expiry(client, app, auth_headers, token, fake_database):
    response = client.post("/user/logout", headers=auth_headers)

    assert response.status_code == 200
    assert response.text == "Logout successful."

    entry = fake_database["blacklists"].docs[0]
    assert entry["token"] == token
    assert entry["expiresAt"] == app.state.token_manager.expires_at(token)


def test_logout_without_header_is_401(client):
    response = client.post("/user/logout")
    assert response.status_code == 401


def test_logout_accepts_unverified_token(client, fake_database):
    response = client.post("/user/logout", headers={"Authorization": "Bearer opaque-value"})

    assert response.status_code == 200
    assert fake_database["blacklists"].docs[0]["token"] == "opaque-value"


def test_repeated_logout_is_500(client, auth_headers):
    assert client.post("/user/logout", headers=auth_headers).status_code == 200

    response = client.post("/user/logout", headers=auth_headers)
    assert response.status_code == 500
    assert "error" in response.json()


def test_logged_out_token_is_rejected(client, auth_headers):
    assert client.get("/book", headers=auth_headers).status_code == 200

    client.post("/user/logout", headers=auth_headers)

    response = client.get("/book", headers=auth_headers)
    assert response.status_code == 403
    assert response.json()["error"] == "Token has been revoked."
