"""
PIN authentication tests.

Verifies:
- Setup gating (secret, format, slot, capacity, duplicates)
- Login flows and the NO_PIN_SET / AUTH_FAILED / VALIDATION_ERROR split
- Session transport (bearer precedence over cookie), sliding expiry, expiry purge
- Logout idempotence
- Scope enforcement and owner-only PIN reset
"""

import json
from datetime import timedelta

import pytest

from orderdesk.extensions import store
from orderdesk.services import auth_service, session_service
from orderdesk.session_backends import MemorySessionBackend
from orderdesk.time_utils import parse_iso_datetime, to_utc_z, utcnow
from tests.conftest import SETUP_SECRET, auth_headers, login, setup_pin


def _write_raw_session(data_file, token: str, expires_at: str):
    """Edit the data file directly, bypassing the purge done by save()."""
    with open(data_file, encoding="utf-8") as f:
        document = json.load(f)
    document["sessions"][session_service.hash_token(token)]["expiresAt"] = expires_at
    with open(data_file, "w", encoding="utf-8") as f:
        json.dump(document, f)


class TestPinStatus:

    def test_initial_status(self, client):
        resp = client.get("/api/pin/status")
        assert resp.status_code == 200
        assert resp.get_json() == {
            "credentialCount": 0,
            "maxCredentials": 2,
            "setupEnabled": True,
            "setupLocked": False,
        }

    def test_status_after_setup(self, client):
        setup_pin(client, "owner", "1234")
        setup_pin(client, "chef", "5678")
        data = client.get("/api/pin/status").get_json()
        assert data["credentialCount"] == 2
        assert data["setupLocked"] is True


class TestPinSetup:

    def test_setup_success(self, client):
        resp = setup_pin(client, "owner", "1234")
        assert resp.status_code == 200
        assert resp.get_json() == {"ok": True, "credentialCount": 1}

    def test_wrong_secret(self, client):
        resp = client.post("/api/pin/setup", json={"setupSecret": "nope", "slot": "owner", "pin": "1234"})
        assert resp.status_code == 403
        assert resp.get_json()["error"] == "AUTH_SETUP_DENIED"

    def test_missing_secret(self, client):
        resp = client.post("/api/pin/setup", json={"slot": "owner", "pin": "1234"})
        assert resp.status_code == 403
        assert resp.get_json()["error"] == "AUTH_SETUP_DENIED"

    def test_secret_checked_before_pin_format(self, client):
        resp = client.post("/api/pin/setup", json={"setupSecret": "nope", "pin": "12"})
        assert resp.get_json()["error"] == "AUTH_SETUP_DENIED"

    @pytest.mark.parametrize("pin", ["123", "12345", "abcd", "", None])
    def test_malformed_pin(self, client, pin):
        resp = setup_pin(client, "owner", pin)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "VALIDATION_ERROR"

    def test_unknown_slot(self, client):
        resp = setup_pin(client, "janitor", "1234")
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "VALIDATION_ERROR"

    def test_slot_taken(self, client):
        setup_pin(client, "owner", "1234")
        resp = setup_pin(client, "owner", "5678")
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "SLOT_TAKEN"

    def test_capacity_reached_even_with_correct_secret(self, client):
        assert setup_pin(client, "owner", "1234").status_code == 200
        assert setup_pin(client, "chef", "5678").status_code == 200

        for slot in ("owner", "chef", None):
            resp = setup_pin(client, slot, "9999")
            assert resp.status_code == 409
            assert resp.get_json()["error"] == "CAPACITY_REACHED"

    def test_duplicate_pin_rejected(self, client):
        setup_pin(client, "owner", "1234")
        resp = setup_pin(client, "chef", "1234")
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "PIN_ALREADY_EXISTS"

    def test_slot_defaults_to_first_free(self, client, app):
        setup_pin(client, None, "1234")
        setup_pin(client, None, "5678")
        scopes = [cred["scope"] for cred in auth_service.list_credentials()]
        assert scopes == ["owner", "chef"]

    def test_empty_slot_means_first_free(self, client, app):
        resp = client.post("/api/pin/setup", json={"setupSecret": SETUP_SECRET, "slot": "", "pin": "1234"})
        assert resp.status_code == 200
        assert [cred["scope"] for cred in auth_service.list_credentials()] == ["owner"]

    def test_hash_is_bcrypt_and_id_is_opaque(self, client, data_file):
        setup_pin(client, "chef", "5678")
        with open(data_file, encoding="utf-8") as f:
            credentials = json.load(f)["credentials"]

        (credential_id, credential), = credentials.items()
        assert credential["id"] == credential_id != "chef"
        assert credential["scope"] == "chef"
        assert credential["hash"].startswith("$2b$")
        assert "5678" not in json.dumps(credentials)
        assert credential["createdAt"].endswith("Z")
        assert credential["resetAt"] is None


class TestSetupDisabled:

    @pytest.fixture
    def config_overrides(self):
        return {"SETUP_SECRET": ""}

    def test_setup_disabled_without_secret(self, client):
        assert client.get("/api/pin/status").get_json()["setupEnabled"] is False

        resp = client.post("/api/pin/setup", json={"setupSecret": "", "slot": "owner", "pin": "1234"})
        assert resp.status_code == 403
        assert resp.get_json()["error"] == "AUTH_SETUP_DENIED"


class TestPinLogin:

    def test_no_pin_set(self, client):
        resp = client.post("/api/pin/login", json={"pin": "1234"})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "NO_PIN_SET"

    def test_malformed_pin_never_reaches_hash(self, client, monkeypatch):
        setup_pin(client, "owner", "1234")

        def fail(*args, **kwargs):
            raise AssertionError("hash comparison attempted")

        monkeypatch.setattr(auth_service, "verify_pin", fail)

        for pin in ("12", "12345", "abcd", None):
            resp = client.post("/api/pin/login", json={"pin": pin})
            assert resp.status_code == 400
            assert resp.get_json()["error"] == "VALIDATION_ERROR"

    def test_wrong_pin(self, client):
        setup_pin(client, "owner", "1234")
        resp = client.post("/api/pin/login", json={"pin": "0000"})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "AUTH_FAILED"

    def test_login_success_sets_cookie(self, client):
        setup_pin(client, "owner", "1234")
        resp = client.post("/api/pin/login", json={"pin": "1234"})
        assert resp.status_code == 200

        body = resp.get_json()
        assert set(body) == {"ok", "token"}
        assert len(body["token"]) == 64

        cookie = resp.headers["Set-Cookie"]
        assert cookie.startswith(f"orderdesk_session={body['token']}")
        assert "HttpOnly" in cookie
        assert "SameSite=Lax" in cookie
        assert "Max-Age=28800" in cookie

    def test_secure_request_uses_samesite_none(self, client):
        setup_pin(client, "owner", "1234")
        resp = client.post(
            "/api/pin/login",
            json={"pin": "1234"},
            headers={"X-Forwarded-Proto": "https"},
        )
        cookie = resp.headers["Set-Cookie"]
        assert "SameSite=None" in cookie
        assert "Secure" in cookie

    def test_login_does_not_reveal_slot(self, client):
        setup_pin(client, "owner", "1234")
        setup_pin(client, "chef", "5678")
        owner_body = client.post("/api/pin/login", json={"pin": "1234"}).get_json()
        chef_body = client.post("/api/pin/login", json={"pin": "5678"}).get_json()
        assert set(owner_body) == set(chef_body) == {"ok", "token"}

    def test_token_is_not_stored_in_plaintext(self, client, data_file):
        setup_pin(client, "owner", "1234")
        token = login(client, "1234")
        with open(data_file, encoding="utf-8") as f:
            content = f.read()
        assert token not in content
        assert session_service.hash_token(token) in content

    def test_first_match_in_scope_order(self, client, app):
        setup_pin(client, "chef", "5678")
        setup_pin(client, "owner", "1234")

        ordered = auth_service.ordered_credentials(store.read()["credentials"])
        assert [cred["scope"] for cred in ordered] == ["owner", "chef"]
        assert auth_service.authenticate_pin("5678")["scope"] == "chef"


class TestSessions:

    def test_me_anonymous(self, app):
        anon = app.test_client()
        assert anon.get("/api/pin/me").get_json() == {"authenticated": False}

    def test_me_with_bearer(self, app, client):
        setup_pin(client, "owner", "1234")
        token = login(client, "1234")

        other = app.test_client()
        resp = other.get("/api/pin/me", headers=auth_headers(token))
        assert resp.get_json() == {"authenticated": True}

    def test_me_with_cookie(self, client):
        setup_pin(client, "owner", "1234")
        login(client, "1234")
        assert client.get("/api/pin/me").get_json() == {"authenticated": True}

    def test_bearer_takes_precedence_over_cookie(self, client):
        setup_pin(client, "owner", "1234")
        login(client, "1234")  # valid cookie on this client
        resp = client.get("/api/pin/me", headers=auth_headers("not-a-real-token"))
        assert resp.get_json() == {"authenticated": False}

    def test_sliding_expiry(self, client, data_file):
        setup_pin(client, "owner", "1234")
        token = login(client, "1234")

        soon = utcnow() + timedelta(minutes=1)
        _write_raw_session(data_file, token, to_utc_z(soon))

        assert client.get("/api/pin/me", headers=auth_headers(token)).get_json()["authenticated"]

        record = store.read()["sessions"][session_service.hash_token(token)]
        expires_at = parse_iso_datetime(record["expiresAt"])
        assert expires_at > utcnow() + timedelta(hours=7)

    def test_expired_session_rejected(self, client, data_file):
        setup_pin(client, "owner", "1234")
        token = login(client, "1234")
        _write_raw_session(data_file, token, to_utc_z(utcnow() - timedelta(seconds=1)))

        resp = client.post("/api/validate", headers=auth_headers(token))
        assert resp.status_code == 401
        assert client.get("/api/pin/me", headers=auth_headers(token)).get_json() == {"authenticated": False}

    def test_expired_session_purged_on_next_save(self, client, data_file):
        setup_pin(client, "owner", "1234")
        token = login(client, "1234")
        _write_raw_session(data_file, token, to_utc_z(utcnow() - timedelta(seconds=1)))

        client.post("/api/commandes/bar", json={"fields": {"Coca": "6"}})

        with open(data_file, encoding="utf-8") as f:
            assert json.load(f)["sessions"] == {}

    def test_logout(self, client):
        setup_pin(client, "owner", "1234")
        token = login(client, "1234")

        resp = client.post("/api/pin/logout", headers=auth_headers(token))
        assert resp.status_code == 200
        assert resp.get_json() == {"ok": True}
        assert "orderdesk_session=;" in resp.headers["Set-Cookie"]

        assert client.get("/api/pin/me", headers=auth_headers(token)).get_json() == {"authenticated": False}

    def test_logout_is_idempotent(self, app):
        anon = app.test_client()
        assert anon.post("/api/pin/logout").status_code == 200
        assert anon.post("/api/pin/logout", headers=auth_headers("unknown")).status_code == 200

    def test_each_request_resolves_its_own_session(self, app, client):
        setup_pin(client, "owner", "1234")
        token = login(client, "1234")
        assert client.get("/api/pin/me", headers=auth_headers(token)).get_json() == {"authenticated": True}

        # Same app context, no token: must not reuse the previous answer
        anon = app.test_client()
        assert anon.get("/api/pin/me").get_json() == {"authenticated": False}
        assert anon.post("/api/validate").status_code == 401

    def test_revoke_during_refresh_stays_revoked(self, client, monkeypatch):
        setup_pin(client, "owner", "1234")
        token = login(client, "1234")

        original_read = store.read

        def read_then_revoke():
            state = original_read()
            monkeypatch.setattr(store, "read", original_read)
            session_service.revoke_session(token)
            return state

        monkeypatch.setattr(store, "read", read_then_revoke)
        assert session_service.validate_session(token) is None
        assert session_service.hash_token(token) not in store.read()["sessions"]


class TestScopes:

    def test_chef_cannot_reset_pins(self, client, owner_token, chef_headers):
        resp = client.post("/api/pin/reset", json={"slot": "owner", "pin": "4321"}, headers=chef_headers)
        assert resp.status_code == 403
        assert resp.get_json()["error"] == "AUTH_FORBIDDEN"

    def test_owner_resets_chef_pin(self, client, owner_headers, chef_token, app):
        created_before = next(c for c in auth_service.list_credentials() if c["scope"] == "chef")

        resp = client.post("/api/pin/reset", json={"slot": "chef", "pin": "2468"}, headers=owner_headers)
        assert resp.status_code == 200

        # Old chef session revoked, old PIN gone, new PIN works
        assert client.get("/api/pin/me", headers=auth_headers(chef_token)).get_json() == {"authenticated": False}
        assert client.post("/api/pin/login", json={"pin": "5678"}).status_code == 401
        assert client.post("/api/pin/login", json={"pin": "2468"}).status_code == 200

        created_after = next(c for c in auth_service.list_credentials() if c["scope"] == "chef")
        assert created_after["id"] == created_before["id"]
        assert created_after["createdAt"] == created_before["createdAt"]
        assert created_after["resetAt"] is not None

    def test_reset_unknown_target(self, client, owner_headers):
        resp = client.post("/api/pin/reset", json={"slot": "chef", "pin": "2468"}, headers=owner_headers)
        assert resp.status_code == 404

    def test_reset_rejects_pin_of_other_slot(self, client, owner_headers, chef_token):
        resp = client.post("/api/pin/reset", json={"slot": "chef", "pin": "1234"}, headers=owner_headers)
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "PIN_ALREADY_EXISTS"

    def test_reset_requires_session(self, app):
        anon = app.test_client()
        resp = anon.post("/api/pin/reset", json={"slot": "chef", "pin": "2468"})
        assert resp.status_code == 401

    def test_reset_service_refuses_non_owner(self, client, chef_token, app):
        from orderdesk.validation import AuthForbiddenError
        with pytest.raises(AuthForbiddenError):
            auth_service.reset_other_credential("chef", "owner", "4321")

    def test_owner_cannot_reset_own_slot(self, client, owner_token, owner_headers):
        resp = client.post("/api/pin/reset", json={"slot": "owner", "pin": "4321"}, headers=owner_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "VALIDATION_ERROR"

        # Owner session and PIN untouched
        assert client.get("/api/pin/me", headers=auth_headers(owner_token)).get_json() == {"authenticated": True}
        assert client.post("/api/pin/login", json={"pin": "1234"}).status_code == 200


class TestMemorySessionBackend:

    @pytest.fixture
    def config_overrides(self):
        return {"SESSION_BACKEND": "memory"}

    def test_sessions_not_persisted(self, client, data_file):
        setup_pin(client, "owner", "1234")
        token = login(client, "1234")

        assert client.get("/api/pin/me", headers=auth_headers(token)).get_json() == {"authenticated": True}
        with open(data_file, encoding="utf-8") as f:
            assert json.load(f)["sessions"] == {}

        client.post("/api/pin/logout", headers=auth_headers(token))
        assert client.get("/api/pin/me", headers=auth_headers(token)).get_json() == {"authenticated": False}

    def test_touch_slides_live_and_drops_gone(self):
        backend = MemorySessionBackend()
        now = utcnow()
        ttl = timedelta(hours=8)
        backend.put("live", {"scope": "owner", "expiresAt": to_utc_z(now + timedelta(minutes=1))})
        backend.put("stale", {"scope": "chef", "expiresAt": to_utc_z(now - timedelta(seconds=1))})

        record = backend.touch("live", now, ttl)
        assert parse_iso_datetime(record["expiresAt"]) > now + timedelta(hours=7)

        assert backend.touch("stale", now, ttl) is None
        assert backend.count() == 1

        backend.delete("live")
        assert backend.touch("live", now, ttl) is None
        assert backend.count() == 0


def test_setup_secret_constant_matches_fixture(app):
    assert app.config["SETUP_SECRET"] == SETUP_SECRET
