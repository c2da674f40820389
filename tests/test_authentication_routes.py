import pytest

from models.sessions import UserSession

from .conftest import STUDENT_PASSWORD

COOKIE_NAME = "progress_session"


def test_login_returns_user_token_and_cookie(client, seed):
    response = client.post("/api/login", json={"username": "student1", "password": STUDENT_PASSWORD})

    body = response.get_json()
    assert response.status_code == 200
    assert body["message"] == "Login successful"
    assert body["user"] == {"id": seed["student1"], "username": "student1", "name": "Student One", "role": "student"}
    assert body["sessionToken"]
    assert body["expiresAt"].endswith("Z")

    cookie = response.headers["Set-Cookie"]
    assert cookie.startswith(f"{COOKIE_NAME}={body['sessionToken']}")
    assert "HttpOnly" in cookie
    assert "Max-Age=604800" in cookie


def test_login_response_never_contains_password_hash(client, seed):
    response = client.post("/api/login", json={"username": "student1", "password": STUDENT_PASSWORD})

    assert "password" not in response.get_data(as_text=True)


@pytest.mark.parametrize("username, password", [
    ("student1", "wrong-password"),
    ("nobody", STUDENT_PASSWORD),
])
def test_login_failures_are_indistinguishable(client, seed, username, password):
    response = client.post("/api/login", json={"username": username, "password": password})

    assert response.status_code == 401
    assert response.get_json() == {"error": "Invalid credentials", "code": "InvalidCredentials"}
    assert UserSession.query.count() == 0


@pytest.mark.parametrize("payload", [None, {}, {"username": "student1"}, {"username": "", "password": "x"}])
def test_login_validates_body(client, seed, payload):
    response = client.post("/api/login", json=payload)

    assert response.status_code == 400
    assert response.get_json()["code"] == "InvalidRequest"


def test_session_endpoint_with_bearer_token(client, login, seed):
    response = client.get("/api/session", headers=login("student2"))

    assert response.status_code == 200
    assert response.get_json()["user"]["username"] == "student2"


def test_session_endpoint_with_cookie(app, seed):
    browser = app.test_client()
    browser.post("/api/login", json={"username": "student1", "password": STUDENT_PASSWORD})

    response = browser.get("/api/session")

    assert response.status_code == 200
    assert response.get_json()["user"]["username"] == "student1"


def test_session_endpoint_clears_cookie_when_rejected(client, seed):
    response = client.get("/api/session", headers={"Authorization": "Bearer bogus"})

    assert response.status_code == 401
    assert response.get_json()["code"] == "Revoked"
    assert f"{COOKIE_NAME}=;" in response.headers["Set-Cookie"]


def test_logout_revokes_token(client, login, seed):
    headers = login("student1")

    response = client.post("/api/logout", headers=headers)

    assert response.status_code == 200
    assert response.get_json() == {"message": "Logged out successfully"}
    assert client.get("/api/session", headers=headers).status_code == 401
    assert client.get("/api/progress/student1", headers=headers).get_json()["code"] == "Revoked"


def test_logout_only_ends_that_device(client, login, seed):
    laptop = login("student1")
    phone = login("student1")

    client.post("/api/logout", headers=laptop)

    assert client.get("/api/session", headers=phone).status_code == 200


def test_logout_without_session_still_succeeds(client, seed):
    response = client.post("/api/logout")

    assert response.status_code == 200
    assert "Max-Age=0" in response.headers["Set-Cookie"]


def test_home_route(client):
    assert client.get("/").status_code == 200


def test_unknown_route_uses_error_shape(client):
    response = client.get("/api/does-not-exist")

    assert response.status_code == 404
    assert set(response.get_json()) == {"error", "code"}


def test_login_username_must_match_exactly(client, seed):
    response = client.post("/api/login", json={"username": " student1 ", "password": STUDENT_PASSWORD})

    assert response.status_code == 401
    assert response.get_json()["code"] == "InvalidCredentials"


def test_bearer_token_wins_over_stale_cookie(app, login, seed):
    headers = login("student2")
    browser = app.test_client()
    browser.set_cookie(COOKIE_NAME, "stale-token-from-an-old-login")

    response = browser.get("/api/session", headers=headers)

    assert response.status_code == 200
    assert response.get_json()["user"]["username"] == "student2"
