from fastapi.testclient import TestClient
from app.config import CSRF_SETTINGS
from app.api import deps
from app.main import app
from app.services.verification import code_expiration


def test_csrf_token_is_stable_per_session(client):
    first = client.get("/api/v1/csrf/token")
    assert first.status_code == 200
    token = first.json()["token"]
    assert len(token) == 64
    assert "secret-santa-session" in first.cookies

    second = client.get("/api/v1/csrf/token")
    assert second.json()["token"] == token


def test_state_changing_request_without_token_is_403(client, fresh_ip):
    client.get("/api/v1/csrf/token")
    r = client.post(
        "/api/v1/auth/resend-code",
        json={"email": "nobody@example.com"},
        headers={"X-Forwarded-For": fresh_ip()},
    )
    assert r.status_code == 403
    assert r.json() == {"error": "Invalid CSRF token", "code": "CSRF_VALIDATION_FAILED"}


def test_wrong_token_is_403(client, csrf_headers, fresh_ip):
    headers = csrf_headers(fresh_ip())
    headers["X-CSRF-Token"] = "0" * 64
    r = client.post("/api/v1/auth/resend-code", json={"email": "nobody@example.com"}, headers=headers)
    assert r.status_code == 403
    assert r.json()["code"] == "CSRF_VALIDATION_FAILED"


def test_no_session_at_all_is_403(client):
    r = client.post(
        "/api/v1/auth/resend-code",
        json={"email": "nobody@example.com"},
        headers={"X-CSRF-Token": "a" * 64},
    )
    assert r.status_code == 403


def test_token_from_another_session_is_rejected(client, csrf_headers):
    foreign = TestClient(app).get("/api/v1/csrf/token").json()["token"]
    csrf_headers()
    r = client.post("/api/v1/auth/signout", headers={"X-CSRF-Token": foreign})
    assert r.status_code == 403


def test_sixth_resend_from_same_ip_is_rate_limited(client, csrf_headers):
    headers = csrf_headers("192.168.1.2")
    for _ in range(5):
        r = client.post("/api/v1/auth/resend-code", json={"email": "unknown@example.com"}, headers=headers)
        assert r.status_code == 404

    r = client.post("/api/v1/auth/resend-code", json={"email": "unknown@example.com"}, headers=headers)
    assert r.status_code == 429
    body = r.json()
    assert body["code"] == "RATE_LIMIT_EXCEEDED"
    assert body["error"] == "Too many requests"
    assert 0 < body["retryAfter"] <= 900
    assert r.headers["X-RateLimit-Limit"] == "5"
    assert r.headers["X-RateLimit-Remaining"] == "0"
    assert int(r.headers["Retry-After"]) == body["retryAfter"]
    assert int(r.headers["X-RateLimit-Reset"]) > 0


def test_other_ip_keeps_its_own_budget(client, csrf_headers, fresh_ip):
    headers = csrf_headers("192.168.1.2")
    for _ in range(6):
        client.post("/api/v1/auth/resend-code", json={"email": "unknown@example.com"}, headers=headers)

    headers["X-Forwarded-For"] = fresh_ip()
    r = client.post("/api/v1/auth/resend-code", json={"email": "unknown@example.com"}, headers=headers)
    assert r.status_code == 404


def test_rejected_csrf_does_not_spend_rate_limit(client, csrf_headers):
    headers = csrf_headers("192.168.1.3")
    bad = {"X-Forwarded-For": "192.168.1.3", "X-CSRF-Token": "f" * 64}
    for _ in range(10):
        assert client.post("/api/v1/auth/resend-code", json={"email": "x@example.com"}, headers=bad).status_code == 403
    r = client.post("/api/v1/auth/resend-code", json={"email": "x@example.com"}, headers=headers)
    assert r.status_code == 404


def test_unattributable_client_is_not_limited(client, csrf_headers):
    headers = csrf_headers()
    for _ in range(8):
        r = client.post("/api/v1/auth/resend-code", json={"email": "unknown@example.com"}, headers=headers)
        assert r.status_code == 404


def test_verify_email_limit_across_ips(client, csrf_headers, fresh_ip):
    headers = csrf_headers()
    payload = {"email": "Target@Example.com", "code": "000000"}
    for _ in range(5):
        headers["X-Forwarded-For"] = fresh_ip()
        assert client.post("/api/v1/auth/verify", json=payload, headers=headers).status_code == 400

    headers["X-Forwarded-For"] = fresh_ip()
    r = client.post("/api/v1/auth/verify", json={"email": "target@example.com", "code": "000000"}, headers=headers)
    assert r.status_code == 429
    assert r.headers["X-RateLimit-Limit"] == "5"


def test_validation_errors_are_distinguishable_from_governance(client, csrf_headers, fresh_ip):
    r = client.post("/api/v1/auth/verify", json={"email": "not-an-email"}, headers=csrf_headers(fresh_ip()))
    assert r.status_code == 422
    body = r.json()
    assert body["success"] is False
    assert "code" not in body


def test_per_login_rotation_replaces_token(client, csrf_headers, group_factory, db_session, fresh_ip, monkeypatch):
    monkeypatch.setitem(CSRF_SETTINGS, "rotation", "per_login")
    group, (owner, *_rest) = group_factory()
    owner.verification_code = "123456"
    owner.code_expires_at = code_expiration()
    db_session.commit()

    headers = csrf_headers(fresh_ip())
    old_token = headers["X-CSRF-Token"]
    r = client.post("/api/v1/auth/verify", json={"email": owner.email, "code": "123456"}, headers=headers)
    assert r.status_code == 200

    assert client.post("/api/v1/auth/signout", headers=headers).status_code == 403
    new_token = client.get("/api/v1/csrf/token").json()["token"]
    assert new_token != old_token


def test_malformed_body_without_token_is_403_not_422(client, fresh_ip):
    client.get("/api/v1/csrf/token")
    r = client.post(
        "/api/v1/auth/resend-code",
        content="{bad",
        headers={"Content-Type": "application/json", "X-Forwarded-For": fresh_ip()},
    )
    assert r.status_code == 403
    assert r.json() == {"error": "Invalid CSRF token", "code": "CSRF_VALIDATION_FAILED"}


def test_malformed_bodies_still_spend_rate_limit(client, csrf_headers, fresh_ip):
    headers = csrf_headers(fresh_ip())
    headers["Content-Type"] = "application/json"
    for _ in range(5):
        r = client.post("/api/v1/auth/resend-code", content="{bad", headers=headers)
        assert r.status_code == 422
        assert r.json()["success"] is False

    r = client.post("/api/v1/auth/resend-code", content="{bad", headers=headers)
    assert r.status_code == 429
    assert r.json()["code"] == "RATE_LIMIT_EXCEEDED"


def test_each_request_is_counted_once(client, csrf_headers, fresh_ip):
    ip = fresh_ip()
    headers = csrf_headers(ip)
    r = client.post("/api/v1/auth/resend-code", json={"email": "unknown@example.com"}, headers=headers)
    assert r.status_code == 404
    entry = deps.governor.rate_limiter.store.get(f"/api/v1/auth/resend-code:ip:{ip}")
    assert entry is not None
    assert entry.count == 1
