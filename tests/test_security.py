import bcrypt
import pytest

from heic_converter.core.exceptions import AuthError
from heic_converter.services.security_service import issue_admin_token, verify_admin_token

ADMIN_PASSWORD = "correct horse battery staple"


@pytest.fixture
def admin_config(runtime_config):
    password_hash = bcrypt.hashpw(ADMIN_PASSWORD.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")
    return runtime_config.with_overrides(admin_username="admin", admin_password_hash=password_hash)


@pytest.fixture
def admin_client(make_app, admin_config):
    return make_app(admin_config).test_client()


def _login(client, username="admin", password=ADMIN_PASSWORD):
    return client.post("/admin/login", json={"username": username, "password": password})


def test_login_returns_bearer_token(admin_client, admin_config):
    response = _login(admin_client)

    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["expiresIn"] == "24h"
    assert verify_admin_token(admin_config, body["token"])["username"] == "admin"


def test_login_rejects_bad_credentials(admin_client):
    assert _login(admin_client, password="wrong").status_code == 401
    assert _login(admin_client, username="root").status_code == 401


def test_login_requires_json_credentials(admin_client):
    response = admin_client.post("/admin/login", data="not json", content_type="text/plain")
    assert response.status_code == 400


def test_login_disabled_without_password_hash(client):
    response = _login(client)
    assert response.status_code == 503


def test_login_is_rate_limited(admin_client):
    for _ in range(5):
        _login(admin_client, password="wrong")

    response = _login(admin_client)
    assert response.status_code == 429
    assert "Retry-After" in response.headers


def test_admin_analytics_requires_valid_token(admin_client):
    assert admin_client.get("/admin/analytics").status_code == 401
    assert admin_client.get("/admin/analytics", headers={"Authorization": "Token abc"}).status_code == 401
    assert admin_client.get("/admin/analytics", headers={"Authorization": "Bearer forged"}).status_code == 403

    token = _login(admin_client).get_json()["token"]
    response = admin_client.get("/admin/analytics", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.get_json()["securityEvents"]["admin_token_invalid"] == 1


def test_token_signed_with_other_secret_is_rejected(admin_config):
    token = issue_admin_token(admin_config.with_overrides(jwt_secret="another-secret"), "admin")

    with pytest.raises(AuthError) as excinfo:
        verify_admin_token(admin_config, token)
    assert excinfo.value.status_code == 403


def test_expired_token_is_rejected(admin_config, monkeypatch):
    token = issue_admin_token(admin_config, "admin")
    expired = admin_config.with_overrides(admin_token_ttl_seconds=1)

    # itsdangerous compares against the current time; pretend the token is old.
    monkeypatch.setattr("itsdangerous.timed.TimestampSigner.get_timestamp", lambda self: 2**31)

    with pytest.raises(AuthError) as excinfo:
        verify_admin_token(expired, token)
    assert excinfo.value.message == "Token expired"


def test_private_analytics_requires_admin(make_app, admin_config):
    client = make_app(admin_config.with_overrides(public_analytics=False)).test_client()

    assert client.get("/analytics").status_code == 401

    token = _login(client).get_json()["token"]
    response = client.get("/analytics", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert "securityEvents" not in response.get_json()


def test_forwarded_for_identifies_client(make_app, runtime_config):
    client = make_app(runtime_config.with_overrides(general_rate_limit=1)).test_client()

    assert client.get("/download/a.jpg", headers={"X-Forwarded-For": "1.1.1.1"}).status_code == 404
    assert client.get("/download/a.jpg", headers={"X-Forwarded-For": "2.2.2.2, 10.0.0.1"}).status_code == 404
    assert client.get("/download/a.jpg", headers={"X-Forwarded-For": "1.1.1.1"}).status_code == 429
