from content_backend.api.auth import hash_password
from content_backend.api.content_models import User


def _add_user(db, **overrides):
    values = {
        "email": "ops@clearviewglass.com",
        "password_hash": hash_password("correct-horse"),
        "full_name": "Ops Admin",
        "role": "admin",
        "is_active": True,
    }
    values.update(overrides)
    user = User(**values)
    db.add(user)
    db.commit()
    return user


def test_login_sets_cookie_and_me_resolves_token(api_client, db):
    _add_user(db)

    response = api_client.post("/api/auth/login", json={"email": "OPS@clearviewglass.com", "password": "correct-horse"})

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["user"]["email"] == "ops@clearviewglass.com"
    assert "access_token" in response.cookies

    me = api_client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["role"] == "admin"


def test_login_rejects_bad_password(api_client, db):
    _add_user(db, email="bad-pass@clearviewglass.com")

    response = api_client.post(
        "/api/auth/login", json={"email": "bad-pass@clearviewglass.com", "password": "wrong-password"}
    )

    assert response.status_code == 401
    assert response.json() == {"ok": False, "error": "Invalid email or password."}


def test_inactive_account_is_forbidden(api_client, db):
    _add_user(db, email="gone@clearviewglass.com", is_active=False)

    response = api_client.post("/api/auth/login", json={"email": "gone@clearviewglass.com", "password": "correct-horse"})

    assert response.status_code == 403


def test_me_requires_token(api_client):
    response = api_client.get("/api/auth/me")

    assert response.status_code == 401
    assert response.json()["error"] == "Authentication required."
