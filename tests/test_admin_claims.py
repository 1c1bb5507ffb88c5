"""Tests for admin-claim synchronisation and the claim stores."""

import json
import logging

import httpx
import pytest

from campuskart.app import build_app
from campuskart.auth.admin_sync import AdminClaimSynchronizer, SyncResult
from campuskart.auth.claims import ClaimStore, ClaimStoreError, FileClaimStore, HttpClaimStore
from campuskart.auth.permissions import PermissionDenied
from campuskart.marketplace.models import USERS
from campuskart.storage import ChangeEvent, DocumentStore


class RecordingClaims(ClaimStore):
    """In-memory claim store that remembers every write."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, dict]] = []
        self._claims: dict[str, dict] = {}

    def get_claims(self, user_id):
        return dict(self._claims.get(user_id, {}))

    def set_claims(self, user_id, claims):
        if self.fail:
            raise ClaimStoreError("identity provider unavailable")
        self.calls.append((user_id, dict(claims)))
        self._claims[user_id] = dict(claims)


# --- Reactive sync ---


def test_flag_changes_drive_exactly_one_call_each(tmp_path):
    claims = RecordingClaims()
    app = build_app(tmp_path, claims=claims)

    app.ledger.register("u1")
    assert claims.calls == []

    app.store.update(USERS, "u1", {"is_admin": True})
    assert claims.calls == [("u1", {"admin": True})]
    assert app.store.get(USERS, "u1")["admin_synced_at"]

    app.store.update(USERS, "u1", {"is_admin": True, "display_name": "Ada"})
    assert len(claims.calls) == 1

    app.store.update(USERS, "u1", {"is_admin": False})
    assert claims.calls == [("u1", {"admin": True}), ("u1", {})]

    app.store.update(USERS, "u1", {"is_admin": False})
    assert len(claims.calls) == 2


def test_unchanged_flag_is_noop(tmp_path):
    claims = RecordingClaims()
    sync = AdminClaimSynchronizer(DocumentStore(tmp_path), claims)

    for before, after in ((False, False), (True, True)):
        event = ChangeEvent(USERS, "u1", {"is_admin": before}, {"is_admin": after})
        assert sync.on_user_written(event) is SyncResult.unchanged
    assert claims.calls == []


def test_deleted_admin_profile_revokes_claim(tmp_path):
    claims = RecordingClaims()
    sync = AdminClaimSynchronizer(DocumentStore(tmp_path), claims)

    result = sync.on_user_written(ChangeEvent(USERS, "u1", {"is_admin": True}, None))

    assert result is SyncResult.revoked
    assert claims.calls == [("u1", {})]


def test_provider_failure_is_logged_not_raised(tmp_path, caplog):
    claims = RecordingClaims(fail=True)
    app = build_app(tmp_path, claims=claims)
    app.ledger.register("u1")

    with caplog.at_level(logging.ERROR):
        app.store.update(USERS, "u1", {"is_admin": True})

    record = app.store.get(USERS, "u1")
    assert record["is_admin"] is True
    assert "admin_synced_at" not in record
    assert "Error syncing admin claim for u1" in caplog.text


def test_self_grant_sets_flag_and_claim(tmp_path):
    claims = RecordingClaims()
    app = build_app(tmp_path, claims=claims)

    app.admin_sync.self_grant_admin("founder")

    record = app.store.get(USERS, "founder")
    assert record["is_admin"] is True
    assert record["admin_setup_at"]
    assert record["admin_synced_at"]
    assert claims.is_admin("founder")
    # direct grant, then the identical grant from the profile trigger
    assert claims.calls == [("founder", {"admin": True})] * 2


def test_self_grant_requires_caller(tmp_path):
    app = build_app(tmp_path, claims=RecordingClaims())
    with pytest.raises(PermissionDenied):
        app.admin_sync.self_grant_admin("")


def test_self_grant_propagates_provider_failure(tmp_path):
    app = build_app(tmp_path, claims=RecordingClaims(fail=True))
    with pytest.raises(ClaimStoreError):
        app.admin_sync.self_grant_admin("founder")
    assert app.store.get(USERS, "founder") is None


# --- Claim stores ---


def test_file_claim_store_round_trip(tmp_path):
    store = FileClaimStore(tmp_path)
    assert store.get_claims("u1") == {}

    store.set_claims("u1", {"admin": True})
    assert FileClaimStore(tmp_path).is_admin("u1")

    store.set_claims("u1", {})
    assert not store.is_admin("u1")


def test_http_claim_store_talks_to_provider():
    seen = []
    remote = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        user_id = request.url.path.split("/")[2]
        if request.method == "PUT":
            remote[user_id] = json.loads(request.content)["claims"]
            return httpx.Response(204)
        if user_id not in remote:
            return httpx.Response(404)
        return httpx.Response(200, json={"claims": remote[user_id]})

    store = HttpClaimStore("https://idp.example", token="s3cret", transport=httpx.MockTransport(handler))

    assert store.get_claims("u1") == {}
    store.set_claims("u1", {"admin": True})
    assert store.is_admin("u1")

    put = [r for r in seen if r.method == "PUT"][0]
    assert put.url.path == "/users/u1/claims"
    assert put.headers["Authorization"] == "Bearer s3cret"
    store.close()


def test_http_claim_store_wraps_errors(tmp_path):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": "down"})

    claims = HttpClaimStore("https://idp.example", transport=httpx.MockTransport(handler))
    with pytest.raises(ClaimStoreError):
        claims.set_claims("u1", {"admin": True})

    sync = AdminClaimSynchronizer(DocumentStore(tmp_path), claims)
    event = ChangeEvent(USERS, "u1", {"is_admin": False}, {"is_admin": True})
    assert sync.on_user_written(event) is SyncResult.failed


def test_http_claim_store_from_env(monkeypatch):
    monkeypatch.delenv("IDENTITY_PROVIDER_URL", raising=False)
    with pytest.raises(ClaimStoreError):
        HttpClaimStore.from_env()

    monkeypatch.setenv("IDENTITY_PROVIDER_URL", "https://idp.example")
    HttpClaimStore.from_env().close()
