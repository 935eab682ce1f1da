import pytest
from fastapi.testclient import TestClient

from src.server.app import create_app
from src.server.auth.errors import SchemaError
from src.server.auth.settings import AuthSettings

PASSWORD = "Secret123"


@pytest.fixture
def settings(tmp_path):
    return AuthSettings(data_dir=tmp_path / "data", cleanup_enabled=False, rate_limit_attempts=50)


@pytest.fixture
def client(settings):
    app = create_app(settings, start_cleanup=False)
    with TestClient(app) as test_client:
        yield test_client


def _register(client, username="alice", password=PASSWORD):
    return client.post("/api/auth/register", json={"username": username, "password": password})


def test_startup_creates_database(client, settings):
    assert (settings.data_dir / "auth.db").exists()
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": True}


def test_register_me_logout_flow(client, settings):
    response = _register(client)
    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Registration successful"
    assert body["user"]["username"] == "alice"
    assert "recover" in body["warning"]
    assert settings.cookie_name in response.cookies

    response = client.get("/api/auth/me")
    assert response.status_code == 200
    assert response.json()["username"] == "alice"

    response = client.post("/api/auth/logout")
    assert response.status_code == 200
    assert response.json()["message"] == "Logout successful"

    client.cookies.clear()
    assert client.get("/api/auth/me").status_code == 401
    assert client.post("/api/auth/logout").json()["message"] == "Already logged out"


def test_logged_out_token_no_longer_authenticates(client, settings):
    token = _register(client).cookies[settings.cookie_name]
    client.post("/api/auth/logout")
    client.cookies.clear()

    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_login(client, settings):
    _register(client)
    client.cookies.clear()

    response = client.post("/api/auth/login", json={"username": "ALICE", "password": "Wrong1234"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid username or password"

    response = client.post("/api/auth/login", json={"username": "alice", "password": PASSWORD})
    assert response.status_code == 200
    assert response.json()["user"]["last_login"] is not None
    token = response.cookies[settings.cookie_name]

    client.cookies.clear()
    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json()["username"] == "alice"


def test_register_validation_and_duplicates(client):
    response = _register(client, password="short")
    assert response.status_code == 400
    assert response.json()["detail"] == "Validation failed"

    response = _register(client, password="alllowercase1")
    assert response.status_code == 400
    assert "uppercase" in response.json()["detail"]

    assert _register(client).status_code == 201
    response = _register(client, username="Alice")
    assert response.status_code == 400
    assert response.json()["detail"] == "Username already exists"


def test_stats(client):
    _register(client)
    response = client.get("/api/auth/stats")
    assert response.status_code == 200
    assert response.json() == {
        "total_users": 1,
        "auth_type": "local",
        "password_recovery": False,
        "account_retention_days": 7,
    }


def test_login_is_rate_limited(tmp_path):
    settings = AuthSettings(data_dir=tmp_path / "data", cleanup_enabled=False, rate_limit_attempts=2)
    with TestClient(create_app(settings, start_cleanup=False)) as client:
        payload = {"username": "alice", "password": "Wrong1234"}
        assert client.post("/api/auth/login", json=payload).status_code == 401
        assert client.post("/api/auth/login", json=payload).status_code == 401
        response = client.post("/api/auth/login", json=payload)
        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) > 0

        other = client.post("/api/auth/login", json={"username": "bob", "password": "Wrong1234"})
        assert other.status_code == 401


def test_missing_schema_aborts_startup(tmp_path):
    settings = AuthSettings(
        data_dir=tmp_path / "data",
        schema_path=tmp_path / "missing.sql",
        cleanup_enabled=False,
    )
    with pytest.raises(SchemaError):
        with TestClient(create_app(settings, start_cleanup=False)):
            pass


def test_forwarded_header_does_not_bypass_rate_limit(tmp_path):
    settings = AuthSettings(data_dir=tmp_path / "data", cleanup_enabled=False, rate_limit_attempts=2)
    with TestClient(create_app(settings, start_cleanup=False)) as client:
        payload = {"username": "alice", "password": "Wrong1234"}
        codes = [
            client.post(
                "/api/auth/login",
                json=payload,
                headers={"X-Forwarded-For": f"10.0.0.{i}"},
            ).status_code
            for i in range(5)
        ]
        assert codes == [401, 401, 429, 429, 429]


def test_forwarded_header_is_used_behind_trusted_proxy(tmp_path):
    settings = AuthSettings(
        data_dir=tmp_path / "data",
        cleanup_enabled=False,
        rate_limit_attempts=1,
        trust_proxy=True,
    )
    with TestClient(create_app(settings, start_cleanup=False)) as client:
        payload = {"username": "alice", "password": "Wrong1234"}
        first = client.post("/api/auth/login", json=payload, headers={"X-Forwarded-For": "10.0.0.1"})
        second = client.post("/api/auth/login", json=payload, headers={"X-Forwarded-For": "10.0.0.2"})
        repeat = client.post("/api/auth/login", json=payload, headers={"X-Forwarded-For": "10.0.0.1"})
        assert [first.status_code, second.status_code, repeat.status_code] == [401, 401, 429]
