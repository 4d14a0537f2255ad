import json
import uuid

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from app.core.tokens import SessionClaim, TokenIssuer, get_token_issuer
from app.database import get_session
from app.main import app
from app.models.user import User
from app.repositories.user_repo import UserRepository


def _count(session, **where) -> int:
    return UserRepository().count(session, where)


# -------- Registration + login --------


def test_register_then_login_flow(client, issuer):
    created = client.post("/users", json={"username": "alice", "password": "p@ss"})

    assert created.status_code == 200
    body = created.json()
    assert body["username"] == "alice"
    assert uuid.UUID(body["id"])
    assert "password" not in body

    login = client.post("/users/login", json={"username": "alice", "password": "p@ss"})

    assert login.status_code == 200
    assert issuer.verify(login.json()["token"]).id == uuid.UUID(body["id"])

    rejected = client.post(
        "/users/login", json={"username": "alice", "password": "wrong"}
    )

    assert rejected.status_code == 401
    assert rejected.json() == {
        "statusCode": 401,
        "error": "InvalidCredentials",
        "message": "Invalid username or password",
    }


def test_register_stores_hash_not_plaintext(client, session, hasher):
    client.post("/users", json={"username": "alice", "password": "p@ss"})

    stored = session.exec(select(User).where(User.username == "alice")).one()
    assert stored.password != "p@ss"
    assert hasher.verify("p@ss", stored.password)


def test_login_strips_username_like_registration(client, issuer):
    client.post("/users", json={"username": " bob ", "password": "p@ss"})

    resp = client.post("/users/login", json={"username": " bob ", "password": "p@ss"})

    assert resp.status_code == 200
    assert issuer.verify(resp.json()["token"]).username == "bob"


def test_login_unknown_user_is_rejected(client):
    resp = client.post("/users/login", json={"username": "ghost", "password": "x"})

    assert resp.status_code == 401
    assert resp.json()["error"] == "InvalidCredentials"
    assert "token" not in resp.json()


def test_login_requires_credentials_body(client):
    resp = client.post("/users/login", json={"username": "alice"})

    assert resp.status_code == 422
    assert resp.json()["error"] == "ValidationError"


def test_register_duplicate_username_conflicts(client, session, make_user):
    make_user("alice")

    resp = client.post("/users", json={"username": "alice", "password": "other"})

    assert resp.status_code == 409
    assert resp.json()["error"] == "DuplicateUsername"
    assert _count(session, username="alice") == 1


@pytest.mark.parametrize(
    "payload",
    [
        {"username": "alice"},
        {"username": "   ", "password": "p@ss"},
        {"username": "alice", "password": "x" * 73},
        {"id": str(uuid.uuid4()), "username": "alice", "password": "p@ss"},
        {"username": "alice", "password": "p@ss", "is_admin": True},
    ],
)
def test_register_validates_payload(client, session, payload):
    resp = client.post("/users", json=payload)

    assert resp.status_code == 422
    assert resp.json()["statusCode"] == 422
    assert _count(session) == 0


def test_login_without_signing_key_is_server_error(client, make_user):
    make_user("alice", "p@ss")
    app.dependency_overrides[get_token_issuer] = lambda: TokenIssuer(None)

    resp = client.post("/users/login", json={"username": "alice", "password": "p@ss"})

    assert resp.status_code == 500
    assert resp.json()["error"] == "SigningError"


# -------- Bearer gate --------


PROTECTED = [
    ("get", "/users/count", None),
    ("get", "/users", None),
    ("patch", "/users", {"first_name": "X"}),
    ("get", f"/users/{uuid.uuid4()}", None),
    ("patch", f"/users/{uuid.uuid4()}", {"first_name": "X"}),
    ("put", f"/users/{uuid.uuid4()}", {"username": "x", "password": "y"}),
    ("delete", f"/users/{uuid.uuid4()}", None),
]


@pytest.fixture
def tracked_store(client):
    """Replace the DB session with one that records whether it was opened."""
    opened = []

    def _get_session():
        opened.append(True)
        yield None

    app.dependency_overrides[get_session] = _get_session
    return opened


def _expired_token() -> str:
    claim = SessionClaim(id=uuid.uuid4(), username="alice")
    return TokenIssuer("test-secret", expires_minutes=-1).issue(claim)


@pytest.mark.parametrize("method,path,body", PROTECTED)
@pytest.mark.parametrize(
    "headers,error",
    [
        ({}, "Unauthorized"),
        ({"Authorization": "Basic YWxpY2U6cEBzcw=="}, "Unauthorized"),
        ({"Authorization": "Bearer not-a-jwt"}, "InvalidToken"),
        ({"Authorization": f"Bearer {_expired_token()}"}, "Expired"),
    ],
)
def test_protected_routes_reject_before_store(
    client, tracked_store, method, path, body, headers, error
):
    kwargs = {"headers": headers}
    if body is not None:
        kwargs["json"] = body

    resp = client.request(method.upper(), path, **kwargs)

    assert resp.status_code == 401
    assert resp.json()["error"] == error
    assert tracked_store == []


# -------- Protected CRUD --------


def test_count_users(client, make_user, auth_headers):
    alice = make_user("alice")
    make_user("bob")

    resp = client.get("/users/count", headers=auth_headers(alice))
    filtered = client.get(
        "/users/count",
        params={"where": json.dumps({"username": "bob"})},
        headers=auth_headers(alice),
    )

    assert resp.json() == {"count": 2}
    assert filtered.json() == {"count": 1}


def test_count_rejects_malformed_where(client, make_user, auth_headers):
    alice = make_user("alice")

    bad_json = client.get(
        "/users/count", params={"where": "{nope"}, headers=auth_headers(alice)
    )
    bad_field = client.get(
        "/users/count",
        params={"where": json.dumps({"password": "x"})},
        headers=auth_headers(alice),
    )

    assert bad_json.status_code == 422
    assert bad_json.json()["error"] == "ValidationError"
    assert bad_field.status_code == 422


def test_list_users_embeds_role_and_customer(
    client, make_user, role, customer, auth_headers
):
    alice = make_user("alice", role_id=role.id, customer_id=customer.id)
    make_user("bob")

    resp = client.get("/users", headers=auth_headers(alice))

    assert resp.status_code == 200
    users = resp.json()
    assert [u["username"] for u in users] == ["alice", "bob"]
    assert users[0]["role"] == {"id": str(role.id), "name": "admin"}
    assert users[0]["customer"]["name"] == "Acme Bakery"
    assert users[1]["role"] is None
    assert all("password" not in u for u in users)


def test_list_users_with_filter(client, make_user, auth_headers):
    alice = make_user("alice")
    make_user("bob")
    make_user("carol")
    user_filter = {"fields": ["id", "username"], "include": [], "skip": 1, "limit": 1}

    resp = client.get(
        "/users",
        params={"filter": json.dumps(user_filter)},
        headers=auth_headers(alice),
    )

    assert resp.status_code == 200
    [only] = resp.json()
    assert set(only) == {"id", "username"}
    assert only["username"] == "bob"


def test_list_users_cannot_select_password(client, make_user, auth_headers):
    alice = make_user("alice")

    resp = client.get(
        "/users",
        params={"filter": json.dumps({"fields": ["password"]})},
        headers=auth_headers(alice),
    )

    assert resp.status_code == 422


def test_patch_users_by_where(client, session, make_user, auth_headers):
    alice = make_user("alice")
    make_user("bob")

    resp = client.patch(
        "/users",
        params={"where": json.dumps({"username": "bob"})},
        json={"first_name": "Robert"},
        headers=auth_headers(alice),
    )

    assert resp.status_code == 200
    assert resp.json() == {"count": 1}
    assert _count(session, first_name="Robert") == 1


def test_patch_users_hashes_password(client, session, make_user, auth_headers, hasher):
    alice = make_user("alice")
    bob = make_user("bob", "old")

    resp = client.patch(
        "/users",
        params={"where": json.dumps({"username": "bob"})},
        json={"password": "n3w"},
        headers=auth_headers(alice),
    )

    assert resp.json() == {"count": 1}
    session.refresh(bob)
    assert bob.password != "n3w"
    assert hasher.verify("n3w", bob.password)


def test_get_user(client, make_user, role, auth_headers):
    alice = make_user("alice", first_name="Alice", role_id=role.id)

    plain = client.get(f"/users/{alice.id}", headers=auth_headers(alice))
    with_role = client.get(
        f"/users/{alice.id}",
        params={"filter": json.dumps({"include": ["role"]})},
        headers=auth_headers(alice),
    )

    assert plain.status_code == 200
    assert plain.json()["first_name"] == "Alice"
    assert "role" not in plain.json()
    assert "password" not in plain.json()
    assert with_role.json()["role"]["name"] == "admin"


def test_get_user_filter_rejects_where(client, make_user, auth_headers):
    alice = make_user("alice")

    resp = client.get(
        f"/users/{alice.id}",
        params={"filter": json.dumps({"where": {"username": "bob"}})},
        headers=auth_headers(alice),
    )

    assert resp.status_code == 422


def test_get_unknown_user_is_not_found(client, make_user, auth_headers):
    alice = make_user("alice")

    resp = client.get(f"/users/{uuid.uuid4()}", headers=auth_headers(alice))

    assert resp.status_code == 404
    assert resp.json()["error"] == "NotFound"


def test_get_user_with_malformed_id(client, make_user, auth_headers):
    alice = make_user("alice")

    resp = client.get("/users/not-a-uuid", headers=auth_headers(alice))

    assert resp.status_code == 422


def test_patch_user(client, session, make_user, auth_headers, hasher):
    alice = make_user("alice", first_name="Alice")

    resp = client.patch(
        f"/users/{alice.id}",
        json={"first_name": "Al", "password": "n3w"},
        headers=auth_headers(alice),
    )

    assert resp.status_code == 204
    assert resp.content == b""
    session.refresh(alice)
    assert alice.first_name == "Al"
    assert alice.username == "alice"
    assert hasher.verify("n3w", alice.password)


def test_patch_user_cannot_change_id(client, make_user, auth_headers):
    alice = make_user("alice")

    resp = client.patch(
        f"/users/{alice.id}",
        json={"id": str(uuid.uuid4())},
        headers=auth_headers(alice),
    )

    assert resp.status_code == 422


def test_patch_user_to_taken_username(client, make_user, auth_headers):
    alice = make_user("alice")
    bob = make_user("bob")

    resp = client.patch(
        f"/users/{bob.id}", json={"username": "alice"}, headers=auth_headers(alice)
    )

    assert resp.status_code == 409
    assert resp.json()["error"] == "DuplicateUsername"


def test_patch_unknown_user_is_not_found(client, make_user, auth_headers):
    alice = make_user("alice")

    resp = client.patch(
        f"/users/{uuid.uuid4()}", json={"first_name": "X"}, headers=auth_headers(alice)
    )

    assert resp.status_code == 404


def test_replace_user(client, session, make_user, customer, auth_headers, hasher):
    alice = make_user("alice", first_name="Alice", customer_id=customer.id)

    resp = client.put(
        f"/users/{alice.id}",
        json={"username": "alice", "password": "fresh", "first_name": "A."},
        headers=auth_headers(alice),
    )

    assert resp.status_code == 204
    session.refresh(alice)
    assert alice.first_name == "A."
    assert alice.customer_id is None
    assert hasher.verify("fresh", alice.password)


def test_replace_user_requires_full_body(client, make_user, auth_headers):
    alice = make_user("alice")

    resp = client.put(
        f"/users/{alice.id}", json={"first_name": "A."}, headers=auth_headers(alice)
    )

    assert resp.status_code == 422


def test_delete_user(client, make_user, auth_headers):
    alice = make_user("alice")
    bob = make_user("bob")
    headers = auth_headers(alice)

    resp = client.delete(f"/users/{bob.id}", headers=headers)

    assert resp.status_code == 204
    assert client.get(f"/users/{bob.id}", headers=headers).status_code == 404
    assert client.delete(f"/users/{bob.id}", headers=headers).status_code == 404


def test_token_outlives_deleted_user(client, make_user, auth_headers):
    # Bearer checks are stateless: the token stays valid after deletion.
    alice = make_user("alice")
    headers = auth_headers(alice)
    client.delete(f"/users/{alice.id}", headers=headers)

    resp = client.get("/users/count", headers=headers)

    assert resp.status_code == 200
    assert resp.json() == {"count": 0}


# -------- Misc --------


def test_health(client):
    assert client.get("/").json() == {"status": "ok", "service": "user-service"}


def test_database_failure_is_store_unavailable(
    client, make_user, auth_headers, monkeypatch
):
    alice = make_user("alice")

    def broken_count(self, session, where=None):
        raise OperationalError("SELECT count(*) FROM users", {}, Exception("db down"))

    monkeypatch.setattr(UserRepository, "count", broken_count)

    resp = client.get("/users/count", headers=auth_headers(alice))

    assert resp.status_code == 500
    assert resp.json() == {
        "statusCode": 500,
        "error": "StoreUnavailable",
        "message": "User store unavailable",
    }


def test_unknown_route_uses_error_envelope(client):
    resp = client.get("/nope")

    assert resp.status_code == 404
    assert resp.json()["statusCode"] == 404
    assert "message" in resp.json()
