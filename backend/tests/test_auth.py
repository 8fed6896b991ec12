"""Login, sessions, password changes and user administration."""

from datetime import timedelta

from conftest import PASSWORD, auth_headers
from retailpos.extensions import db
from retailpos.models import SessionToken
from retailpos.services import session_service


def _login(client, username, password=PASSWORD):
    return client.post("/api/auth/login", json={"username": username, "password": password})


class TestLogin:
    def test_login_by_username_or_email(self, client, db_session, cashier_user):
        resp = _login(client, "cashier")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["token_type"] == "Bearer"
        assert body["user"]["role"] == "cashier"
        assert body["user"]["last_login_at"] is not None

        resp = _login(client, "cashier@retailpos.test")
        assert resp.status_code == 200

    def test_token_is_stored_hashed(self, client, db_session, cashier_user):
        token = _login(client, "cashier").get_json()["token"]
        stored = db.session.query(SessionToken).filter_by(user_id=cashier_user.id).one()
        assert stored.token_hash != token
        assert stored.token_hash == session_service.hash_token(token)

    def test_bad_credentials(self, client, db_session, cashier_user):
        resp = _login(client, "cashier", "Wrong-pass1")
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "INVALID_CREDENTIALS"

        resp = _login(client, "nobody")
        assert resp.status_code == 401

        resp = client.post("/api/auth/login", json={"username": "cashier"})
        assert resp.status_code == 400

    def test_inactive_user_cannot_log_in(self, client, db_session, cashier_user):
        cashier_user.is_active = False
        db.session.commit()
        assert _login(client, "cashier").status_code == 401


class TestSession:
    def test_me_and_logout(self, client, db_session, cashier_user):
        headers = auth_headers(_login(client, "cashier").get_json()["token"])

        me = client.get("/api/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.get_json()["user"]["username"] == "cashier"

        assert client.post("/api/auth/logout", headers=headers).status_code == 200

        resp = client.get("/api/auth/me", headers=headers)
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "INVALID_TOKEN"

    def test_missing_and_malformed_token(self, client, db_session):
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "AUTH_REQUIRED"

        resp = client.get("/api/auth/me", headers={"Authorization": "Token abc"})
        assert resp.get_json()["code"] == "AUTH_REQUIRED"

        resp = client.get("/api/auth/me", headers=auth_headers("f" * 64))
        assert resp.get_json()["code"] == "INVALID_TOKEN"

    def test_idle_session_is_revoked(self, client, app, db_session, cashier_user):
        session, token = session_service.create_session(cashier_user.id)
        session.last_used_at = session.last_used_at - timedelta(hours=3)
        db.session.commit()

        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401
        db.session.refresh(session)
        assert session.is_revoked
        assert session.revoked_reason == "Idle timeout"


class TestChangePassword:
    def test_change_keeps_current_session_only(self, client, db_session, cashier_user):
        current = auth_headers(_login(client, "cashier").get_json()["token"])
        other = auth_headers(_login(client, "cashier").get_json()["token"])

        resp = client.put(
            "/api/auth/change-password",
            json={"current_password": PASSWORD, "new_password": "N3w-Password!"},
            headers=current,
        )
        assert resp.status_code == 200
        assert resp.get_json()["sessions_revoked"] == 1

        assert client.get("/api/auth/me", headers=current).status_code == 200
        assert client.get("/api/auth/me", headers=other).status_code == 401
        assert _login(client, "cashier", "N3w-Password!").status_code == 200

    def test_wrong_current_password(self, client, db_session, cashier_headers):
        resp = client.put(
            "/api/auth/change-password",
            json={"current_password": "nope", "new_password": "N3w-Password!"},
            headers=cashier_headers,
        )
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "INVALID_CURRENT_PASSWORD"

    def test_weak_new_password(self, client, db_session, cashier_headers):
        resp = client.put(
            "/api/auth/change-password",
            json={"current_password": PASSWORD, "new_password": "short"},
            headers=cashier_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "WEAK_PASSWORD"


class TestUserAdministration:
    def _register(self, client, headers, **overrides):
        body = {
            "username": "newcashier",
            "email": "New.Cashier@RetailPOS.test",
            "full_name": "New Cashier",
            "role": "cashier",
            "password": "Str0ng-Pass!",
        }
        body.update(overrides)
        return client.post("/api/auth/register", json=body, headers=headers)

    def test_register_and_list(self, client, db_session, admin_headers):
        resp = self._register(client, admin_headers)
        assert resp.status_code == 201
        assert resp.get_json()["user"]["email"] == "new.cashier@retailpos.test"

        users = client.get("/api/auth/users", headers=admin_headers).get_json()["users"]
        assert [u["username"] for u in users] == ["admin", "newcashier"]

    def test_register_rejections(self, client, db_session, admin_headers):
        assert self._register(client, admin_headers, password="password").get_json()["code"] == "WEAK_PASSWORD"
        assert self._register(client, admin_headers, role="owner").status_code == 400
        assert self._register(client, admin_headers, email="not-an-email").status_code == 400
        assert self._register(client, admin_headers, username="ab").status_code == 400

        assert self._register(client, admin_headers).status_code == 201
        resp = self._register(client, admin_headers, email="other@retailpos.test")
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "USER_EXISTS"

    def test_deactivation_revokes_sessions(self, client, db_session, admin_user, admin_headers, cashier_user,
                                           cashier_headers):
        resp = client.put(f"/api/auth/users/{cashier_user.id}/status", json={"is_active": False},
                          headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["user"]["is_active"] is False
        assert client.get("/api/auth/me", headers=cashier_headers).status_code == 401

        resp = client.put(f"/api/auth/users/{cashier_user.id}/status", json={"is_active": True},
                          headers=admin_headers)
        assert resp.get_json()["user"]["is_active"] is True
        assert _login(client, "cashier").status_code == 200

    def test_status_rejections(self, client, db_session, admin_user, admin_headers):
        url = f"/api/auth/users/{admin_user.id}/status"
        resp = client.put(url, json={"is_active": False}, headers=admin_headers)
        assert resp.get_json()["code"] == "CANNOT_DEACTIVATE_SELF"

        assert client.put(url, json={}, headers=admin_headers).status_code == 400
        assert client.put(url, json={"is_active": "no"}, headers=admin_headers).status_code == 400
        assert client.put("/api/auth/users/999/status", json={"is_active": True},
                          headers=admin_headers).status_code == 404
