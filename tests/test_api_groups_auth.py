from datetime import timedelta
from app.config import SESSION_SETTINGS
from app.models.db import Participant, WebSession
from app.services.verification import code_expiration
from app.utils.time import utc_now


def _group_payload(email: str = "Owner@Example.com"):
    return {
        "name": "Office Party",
        "eventDate": "2025-12-20",
        "place": "Main hall",
        "budget": "$25",
        "ownerName": "Olivia",
        "ownerEmail": email,
    }


def _code_from(message) -> str:
    line = next(line for line in message.body.splitlines() if ":" in line and line.split(":")[-1].strip().isdigit())
    return line.split(":")[-1].strip()


def test_create_group_verify_and_view(client, csrf_headers, outbox, fresh_ip):
    headers = csrf_headers(fresh_ip())
    r = client.post("/api/v1/groups", json=_group_payload(), headers=headers)
    assert r.status_code == 201, r.text
    group_id = r.json()["groupId"]
    assert r.json()["inviteId"]

    assert len(outbox) == 1
    assert outbox[0].to == "owner@example.com"
    assert outbox[0].kind == "verification"
    code = _code_from(outbox[0])

    # not signed in yet
    assert client.get(f"/api/v1/groups/{group_id}").status_code == 401

    r = client.post("/api/v1/auth/verify", json={"email": "OWNER@example.com", "code": code}, headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["groupId"] == group_id

    r = client.get(f"/api/v1/groups/{group_id}")
    assert r.status_code == 200
    body = r.json()
    assert body["isOwner"] is True
    assert body["inviteId"]
    assert body["participants"][0]["name"] == "Olivia"
    assert body["participants"][0]["assignmentState"] == "unassigned"

    # codes are single use
    r = client.post("/api/v1/auth/verify", json={"email": "owner@example.com", "code": code}, headers=headers)
    assert r.status_code == 400


def test_portuguese_verification_email(client, csrf_headers, outbox, fresh_ip):
    headers = csrf_headers(fresh_ip())
    headers["Accept-Language"] = "pt-BR,pt;q=0.9"
    assert client.post("/api/v1/groups", json=_group_payload(), headers=headers).status_code == 201
    assert outbox[0].subject.startswith("Código de Verificação")


def test_group_creation_rate_limited_per_ip(client, csrf_headers, fresh_ip):
    headers = csrf_headers(fresh_ip())
    for i in range(5):
        assert client.post("/api/v1/groups", json=_group_payload(f"o{i}@example.com"), headers=headers).status_code == 201
    r = client.post("/api/v1/groups", json=_group_payload("o6@example.com"), headers=headers)
    assert r.status_code == 429


def test_join_group_by_invite(client, csrf_headers, group_factory, outbox, db_session, fresh_ip):
    group, _ = group_factory()
    headers = csrf_headers(fresh_ip())
    r = client.post(
        "/api/v1/groups/join",
        json={"name": "Newbie", "email": "newbie@example.com", "inviteId": group.invite_id},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["data"]["groupId"] == group.id
    assert outbox[-1].to == "newbie@example.com"

    joined = db_session.query(Participant).filter_by(group_id=group.id, email="newbie@example.com").one()
    assert joined.verification_code is not None


def test_join_with_unknown_invite_is_404(client, csrf_headers, fresh_ip):
    r = client.post(
        "/api/v1/groups/join",
        json={"name": "X", "email": "x@example.com", "inviteId": "nope"},
        headers=csrf_headers(fresh_ip()),
    )
    assert r.status_code == 404
    assert r.json()["success"] is False


def test_join_drawn_group_is_refused(client, csrf_headers, group_factory, db_session, fresh_ip):
    group, _ = group_factory()
    group.is_drawn = True
    db_session.commit()
    r = client.post(
        "/api/v1/groups/join",
        json={"name": "Late", "email": "late@example.com", "inviteId": group.invite_id},
        headers=csrf_headers(fresh_ip()),
    )
    assert r.status_code == 400


def test_expired_code_is_rejected(client, csrf_headers, group_factory, db_session, fresh_ip):
    _, participants = group_factory()
    owner = participants[0]
    owner.verification_code = "654321"
    owner.code_expires_at = utc_now() - timedelta(minutes=1)
    db_session.commit()

    r = client.post(
        "/api/v1/auth/verify",
        json={"email": owner.email, "code": "654321"},
        headers=csrf_headers(fresh_ip()),
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Verification code has expired"


def test_resend_code_cooldown(client, csrf_headers, group_factory, db_session, outbox, fresh_ip):
    _, participants = group_factory()
    headers = csrf_headers(fresh_ip())
    email = participants[1].email

    assert client.post("/api/v1/auth/resend-code", json={"email": email}, headers=headers).status_code == 200
    assert len(outbox) == 1

    r = client.post("/api/v1/auth/resend-code", json={"email": email}, headers=headers)
    assert r.status_code == 429
    assert "code" not in r.json()
    assert 0 < int(r.headers["Retry-After"]) <= 30

    db_session.expire_all()
    p = db_session.get(Participant, participants[1].id)
    p.code_sent_at = utc_now() - timedelta(seconds=31)
    db_session.commit()
    assert client.post("/api/v1/auth/resend-code", json={"email": email}, headers=headers).status_code == 200


def test_signout_destroys_session(client, group_factory, sign_in, fresh_ip):
    group, participants = group_factory()
    headers = sign_in(participants[0], fresh_ip())
    assert client.get(f"/api/v1/groups/{group.id}").status_code == 200

    r = client.post("/api/v1/auth/signout", headers=headers)
    assert r.status_code == 200
    assert client.get(f"/api/v1/groups/{group.id}").status_code == 401


def test_non_member_cannot_view_group(client, group_factory, sign_in):
    group, _ = group_factory()
    _, others = group_factory()
    sign_in(others[0])
    assert client.get(f"/api/v1/groups/{group.id}").status_code == 403


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"
    assert "X-Request-ID" in r.headers


def test_sign_in_reissues_session_id(client, csrf_headers, group_factory, db_session, fresh_ip):
    _, participants = group_factory()
    owner = participants[0]
    owner.verification_code = "112233"
    owner.code_expires_at = code_expiration()
    db_session.commit()

    cookie_name = str(SESSION_SETTINGS["cookie_name"])
    headers = csrf_headers(fresh_ip())
    anonymous_id = client.cookies.get(cookie_name)

    r = client.post("/api/v1/auth/verify", json={"email": owner.email, "code": "112233"}, headers=headers)
    assert r.status_code == 200, r.text
    signed_in_id = r.cookies.get(cookie_name)
    assert signed_in_id and signed_in_id != anonymous_id

    db_session.expire_all()
    assert db_session.get(WebSession, anonymous_id) is None
    record = db_session.get(WebSession, signed_in_id)
    assert record.participant_id == owner.id
    # per_session rotation keeps the token across the id change
    assert record.csrf_token == headers["X-CSRF-Token"]
