"""
Tests for the HTTP API, against the seeded in-memory runtime.

Requests authenticate with dev tokens: the bearer token is the subject id.
"""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from memberhub.access.runtime import create_runtime
from memberhub.api.app import app
from memberhub.config import Settings
from memberhub.storage.base import StorageProvider

SEED_FILE = Path(__file__).parent.parent / "config" / "seed.yaml"


def as_user(subject_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {subject_id}"}


def make_settings() -> Settings:
    return Settings(
        seed_file=str(SEED_FILE),
        authority_timeout_seconds=1.0,
        authority_retry_wait_seconds=0,
    )


@pytest.fixture
def runtime():
    return create_runtime(make_settings())


@pytest.fixture
def flaky_runtime(store):
    """Runtime over the fault-injecting store, seeded the same way."""
    storage = StorageProvider(metadata=store.metadata, authority=store)
    return create_runtime(make_settings(), storage=storage)


def _client(runtime):
    app.state.access = runtime
    with TestClient(app) as client:
        yield client
    del app.state.access


@pytest.fixture
def client(runtime):
    yield from _client(runtime)


@pytest.fixture
def flaky_client(flaky_runtime):
    yield from _client(flaky_runtime)


# =============================================================================
# Caller
# =============================================================================


class TestMe:
    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

    def test_requires_token(self, client):
        assert client.get("/access/me").status_code == 401

    def test_admin(self, client):
        data = client.get("/access/me", headers=as_user("user_admin")).json()

        assert data["role"] == "admin"
        assert "finance" in data["tabs"]
        assert data["undetermined"] is False

    def test_collector(self, client):
        data = client.get("/access/me", headers=as_user("user_jsmith")).json()

        assert data["role"] == "collector"
        assert data["tabs"] == ["dashboard", "users"]

    def test_inactive_collector_is_member(self, client):
        data = client.get("/access/me", headers=as_user("user_retired")).json()
        assert data["role"] == "member"

    def test_stranger(self, client):
        data = client.get("/access/me", headers=as_user("user_stranger")).json()

        assert data["role"] == "none"
        assert data["tabs"] == []

    def test_unknown_token_is_anonymous(self, client):
        response = client.get("/access/me", headers=as_user("not-a-token"))
        assert response.status_code == 401

    def test_tab_check(self, client):
        response = client.get("/access/tabs/finance", headers=as_user("user_jsmith"))
        assert response.json() == {"tab": "finance", "allowed": False}


class TestUndetermined:
    def test_me_reports_undetermined(self, store, flaky_client):
        store.fail("find_role_assignment")

        data = flaky_client.get("/access/me", headers=as_user("user_admin")).json()

        assert data["role"] is None
        assert data["undetermined"] is True
        assert data["tabs"] == []

    def test_guarded_route_is_401(self, store, flaky_client):
        store.fail("find_role_assignment")

        response = flaky_client.get("/access/members", headers=as_user("user_admin"))

        assert response.status_code == 401
        assert "Could not determine" in response.json()["detail"]

    def test_failure_leaves_a_notice(self, store, flaky_client):
        store.fail("find_role_assignment")
        flaky_client.get("/access/me", headers=as_user("user_ann"))

        notices = flaky_client.get("/access/notices", headers=as_user("user_ann")).json()

        assert notices[-1]["title"] == "Error loading roles"
        assert notices[-1]["variant"] == "destructive"

    def test_recovers_after_outage(self, store, flaky_client):
        store.fail("find_role_assignment")
        flaky_client.get("/access/me", headers=as_user("user_admin"))

        store.heal()
        data = flaky_client.get("/access/me", headers=as_user("user_admin")).json()
        assert data["role"] == "admin"


# =============================================================================
# Members
# =============================================================================


class TestMembers:
    def test_admin_sees_everyone(self, client):
        members = client.get("/access/members", headers=as_user("user_admin")).json()
        assert len(members) == 4

    def test_collector_sees_own_members(self, client):
        members = client.get("/access/members", headers=as_user("user_jsmith")).json()

        assert {m["member"]["collector"] for m in members} == {"J. Smith"}
        assert {m["member"]["subject_id"] for m in members} == {
            "user_jsmith", "user_ann", "user_retired",
        }

    def test_member_is_forbidden(self, client):
        response = client.get("/access/members", headers=as_user("user_ann"))
        assert response.status_code == 403


# =============================================================================
# Administration
# =============================================================================


class TestAdministration:
    def test_grant_takes_effect_immediately(self, client):
        assert client.get("/access/me", headers=as_user("user_ann")).json()["role"] == "member"

        response = client.post(
            "/access/roles/user_ann",
            json={"role": "admin", "action": "add"},
            headers=as_user("user_admin"),
        )
        assert response.status_code == 200

        assert client.get("/access/me", headers=as_user("user_ann")).json()["role"] == "admin"

    def test_revoke(self, client):
        response = client.post(
            "/access/roles/user_admin",
            json={"role": "admin", "action": "remove"},
            headers=as_user("user_admin"),
        )
        assert response.status_code == 200
        assert client.get("/access/me", headers=as_user("user_admin")).json()["role"] == "none"

    def test_revoke_missing(self, client):
        response = client.post(
            "/access/roles/user_ann",
            json={"role": "admin", "action": "remove"},
            headers=as_user("user_admin"),
        )
        assert response.status_code == 404

    def test_none_is_not_assignable(self, client):
        response = client.post(
            "/access/roles/user_ann",
            json={"role": "none"},
            headers=as_user("user_admin"),
        )
        assert response.status_code == 400

    def test_non_admin_forbidden(self, client):
        response = client.post(
            "/access/roles/user_ann",
            json={"role": "admin"},
            headers=as_user("user_jsmith"),
        )
        assert response.status_code == 403

    def test_assign_and_deactivate_collector(self, client):
        response = client.post(
            "/access/collectors/user_ann",
            json={"member_number": "ts00042", "name": "A. Lee"},
            headers=as_user("user_admin"),
        )
        assert response.status_code == 200
        assert response.json()["prefix"] == "TS"
        assert client.get("/access/me", headers=as_user("user_ann")).json()["role"] == "collector"

        response = client.delete("/access/collectors/user_ann", headers=as_user("user_admin"))
        assert response.status_code == 200
        assert client.get("/access/me", headers=as_user("user_ann")).json()["role"] == "member"

    def test_short_member_number_rejected(self, client):
        response = client.post(
            "/access/collectors/user_ann",
            json={"member_number": "T1"},
            headers=as_user("user_admin"),
        )
        assert response.status_code == 422


# =============================================================================
# Sync
# =============================================================================


class TestSync:
    def test_trigger_and_status(self, client, runtime):
        response = client.post(
            "/access/sync",
            json={"subject_ids": ["user_admin", "user_ann"]},
            headers=as_user("user_admin"),
        )
        assert response.status_code == 202
        assert [r["status"] for r in response.json()] == ["started", "started"]

        client.portal.call(runtime.coordinator.join)

        data = client.get("/access/sync", headers=as_user("user_admin")).json()
        assert data["summary"]["completed"] == 2
        roles = {r["subject_id"]: r["resolved_role"] for r in data["records"]}
        assert roles == {"user_admin": "admin", "user_ann": "member"}

    def test_retry_needs_failed_subject(self, client, runtime):
        client.post(
            "/access/sync",
            json={"subject_ids": ["user_ann"]},
            headers=as_user("user_admin"),
        )
        client.portal.call(runtime.coordinator.join)

        response = client.post("/access/sync/user_ann/retry", headers=as_user("user_admin"))
        assert response.status_code == 409

    def test_retry_failed_subject(self, store, flaky_client, flaky_runtime):
        store.fail("upsert_secondary_role_record", subject_id="user_ann")
        flaky_client.post(
            "/access/sync",
            json={"subject_ids": ["user_ann"]},
            headers=as_user("user_admin"),
        )
        flaky_client.portal.call(flaky_runtime.coordinator.join)

        store.heal()
        response = flaky_client.post("/access/sync/user_ann/retry", headers=as_user("user_admin"))
        assert response.status_code == 202
        flaky_client.portal.call(flaky_runtime.coordinator.join)

        assert flaky_runtime.coordinator.status("user_ann").status.value == "completed"

    def test_collector_cannot_sync(self, client):
        response = client.get("/access/sync", headers=as_user("user_jsmith"))
        assert response.status_code == 403


# =============================================================================
# Session
# =============================================================================


class TestSession:
    def test_sign_in_issues_usable_tokens(self, client):
        tokens = client.post("/session/sign-in", json={"subject_id": "user_jsmith"}).json()

        data = client.get(
            "/access/me",
            headers={"Authorization": f"Bearer {tokens['access_token']}"},
        ).json()
        assert data["subject_id"] == "user_jsmith"
        assert data["role"] == "collector"

    def test_refresh(self, client):
        tokens = client.post("/session/sign-in", json={"subject_id": "user_ann"}).json()

        response = client.post("/session/refresh", json={"refresh_token": tokens["refresh_token"]})

        assert response.status_code == 200
        assert response.json()["access_token"]

    def test_refresh_with_garbage(self, client):
        response = client.post("/session/refresh", json={"refresh_token": "garbage"})
        assert response.status_code == 401

    def test_sign_out_evicts_cached_role(self, client, runtime):
        client.get("/access/me", headers=as_user("user_ann"))
        assert runtime.cache.peek("user_ann") is not None

        response = client.post("/session/sign-out", headers=as_user("user_ann"))

        assert response.status_code == 200
        assert runtime.cache.peek("user_ann") is None
