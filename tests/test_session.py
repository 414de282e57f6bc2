"""Tests for login, registration, admission codes and the session lifecycle."""

from __future__ import annotations

import pytest

from autocars_mcp.admission import LicenseRegistry, generate_license_key, license_path
from autocars_mcp.app import AppContext
from autocars_mcp.clients.identity import NETWORK_FAILURE
from autocars_mcp.config import Settings
from autocars_mcp.constants import LICENSE_KEY_RE, LICENSE_REVOKED, LICENSE_USED
from autocars_mcp.data.backends import user_document_path
from autocars_mcp.data.models import License, User
from autocars_mcp.errors import AdmissionError, DuplicateEmailError, ValidationError
from autocars_mcp.sync import STATE_SYNCED_LOCAL, STATE_SYNCED_REMOTE, STATE_UNAUTHENTICATED


def _local_user(email: str = "loja@local.com", secret: str = "secret123") -> User:
    return User(id="local-1", email=email, secret=secret, store_name="Loja Local")


# ── Admission codes ────────────────────────────────────────────


class TestLicenseRegistry:
    def test_generated_keys_match_format(self):
        assert LICENSE_KEY_RE.match(generate_license_key())

    async def test_master_code_grants_admin(self, local_store, settings: Settings):
        registry = LicenseRegistry(local_store, master_code=settings.master_code)
        grant = await registry.check(settings.master_code)
        assert grant.role == "admin"
        assert grant.license is None

    async def test_available_license_grants_user(self, local_store):
        registry = LicenseRegistry(local_store, master_code="MASTER")
        issued = await registry.generate("admin@loja.com")
        grant = await registry.check(issued.key.lower())
        assert grant.role == "user"
        assert grant.license.key == issued.key

    @pytest.mark.parametrize("status", [LICENSE_USED, LICENSE_REVOKED])
    async def test_non_available_license_rejected(self, local_store, status):
        local_store.save_license(
            License(key="SAAS-AAAA-BBBB-CCCC", status=status, created_at="2024-01-01")
        )
        registry = LicenseRegistry(local_store, master_code="MASTER")
        with pytest.raises(AdmissionError):
            await registry.check("SAAS-AAAA-BBBB-CCCC")

    async def test_unknown_and_empty_codes_rejected(self, local_store):
        registry = LicenseRegistry(local_store, master_code="MASTER")
        with pytest.raises(AdmissionError):
            await registry.check("SAAS-NOPE-NOPE-NOPE")
        with pytest.raises(AdmissionError):
            await registry.check("   ")

    async def test_remote_registry_preferred(self, local_store, documents):
        documents.docs[license_path("SAAS-REMO-TEKE-Y000")] = {
            "status": "available",
            "createdAt": "2024-01-01",
        }
        registry = LicenseRegistry(local_store, master_code="MASTER", documents=documents)
        grant = await registry.check("SAAS-REMO-TEKE-Y000")
        assert grant.source == "remote"

    async def test_remote_failure_falls_back_to_local(self, local_store, documents):
        local_store.save_license(License(key="SAAS-AAAA-BBBB-CCCC", created_at="2024-01-01"))
        documents.fail_code = NETWORK_FAILURE
        registry = LicenseRegistry(local_store, master_code="MASTER", documents=documents)
        grant = await registry.check("SAAS-AAAA-BBBB-CCCC")
        assert grant.source == "local"

    async def test_revoke(self, local_store):
        registry = LicenseRegistry(local_store, master_code="MASTER")
        issued = await registry.generate("admin@loja.com")
        assert await registry.revoke(issued.key) is True
        assert local_store.get_license(issued.key).status == LICENSE_REVOKED
        assert await registry.revoke("SAAS-NOPE-NOPE-NOPE") is False


# ── Local-only mode ────────────────────────────────────────────


class TestLocalSessions:
    async def test_register_with_master_code_logs_in_as_admin(
        self, app: AppContext, settings: Settings
    ):
        ok = await app.sessions.register(
            "dono@loja.com", "secret123", "Loja Centro", settings.master_code
        )
        assert ok is True
        session = app.session
        assert session.role == "admin"
        assert session.mode == "local"
        assert app.sessions.state == STATE_SYNCED_LOCAL
        assert app.router.data.profile.name == "Loja Centro"
        assert app.local_store.find_account("dono@loja.com", "secret123") is not None

    async def test_register_consumes_license(self, app: AppContext):
        issued = await app.licenses.generate("admin")
        await app.sessions.register("novo@loja.com", "secret123", "Loja Nova", issued.key)
        stored = app.local_store.get_license(issued.key)
        assert stored.status == LICENSE_USED
        assert stored.used_by == "novo@loja.com"
        assert app.session.role == "user"

    @pytest.mark.parametrize("status", [LICENSE_USED, LICENSE_REVOKED])
    async def test_non_available_code_creates_no_user(self, app: AppContext, status):
        app.local_store.save_license(
            License(key="SAAS-AAAA-BBBB-CCCC", status=status, created_at="2024-01-01")
        )
        with pytest.raises(AdmissionError):
            await app.sessions.register(
                "novo@loja.com", "secret123", "Loja", "SAAS-AAAA-BBBB-CCCC"
            )
        assert app.local_store.list_accounts() == []
        assert app.session is None

    async def test_unknown_code_creates_no_user(self, app: AppContext):
        with pytest.raises(AdmissionError):
            await app.sessions.register("novo@loja.com", "secret123", "Loja", "WRONG")
        assert app.local_store.list_accounts() == []

    @pytest.mark.parametrize(
        ("email", "secret", "store", "confirm"),
        [
            ("", "secret123", "Loja", None),
            ("novo@loja.com", "123", "Loja", None),
            ("novo@loja.com", "secret123", "", None),
            ("novo@loja.com", "secret123", "Loja", "different"),
            ("not-an-email", "secret123", "Loja", None),
        ],
    )
    async def test_validation_runs_before_admission(
        self, app: AppContext, email, secret, store, confirm
    ):
        with pytest.raises(ValidationError):
            await app.sessions.register(email, secret, store, "WRONG", confirm_secret=confirm)

    async def test_duplicate_email_is_recoverable(self, app: AppContext, settings: Settings):
        app.local_store.add_account(_local_user())
        with pytest.raises(DuplicateEmailError):
            await app.sessions.register(
                "loja@local.com", "secret123", "Loja", settings.master_code
            )

    async def test_login_with_local_cache(self, app: AppContext):
        app.local_store.add_account(_local_user())
        assert await app.sessions.login("loja@local.com", "secret123") is True
        assert app.session.user_id == "local-1"

    async def test_wrong_secret_fails_with_only_local_cache(self, app: AppContext):
        app.local_store.add_account(_local_user())
        assert await app.sessions.login("loja@local.com", "wrong-secret") is False
        assert app.session is None
        assert app.sessions.state == STATE_UNAUTHENTICATED

    async def test_logout_keeps_persisted_data(self, logged_in_app: AppContext, vehicle_factory):
        app = logged_in_app
        user_id = app.session.user_id
        await app.router.add_vehicle(vehicle_factory())
        await app.sessions.logout()
        assert app.session is None
        assert len(app.router.data.vehicles) == 0
        assert len(app.local_store.load_user_data(user_id)["vehicles"]) == 1

        assert await app.sessions.login("owner@loja.com", "secret123") is True
        assert len(app.router.data.vehicles) == 1

    async def test_reset_password_unavailable_locally(self, app: AppContext):
        assert await app.sessions.reset_password("a@loja.com") is False

    async def test_listeners_notified(self, app: AppContext, settings: Settings):
        seen = []
        unsubscribe = app.sessions.on_session_change(seen.append)
        await app.sessions.register("dono@loja.com", "secret123", "Loja", settings.master_code)
        await app.sessions.logout()
        unsubscribe()
        assert seen[0].email == "dono@loja.com"
        assert seen[1] is None


# ── Remote mode ────────────────────────────────────────────────


class TestRemoteSessions:
    async def test_remote_login_uses_remote_backend(self, remote_app: AppContext, identity):
        uid = identity.add("dono@loja.com", "secret123")
        assert await remote_app.sessions.login("dono@loja.com", "secret123") is True
        assert remote_app.session.mode == "remote"
        assert remote_app.session.user_id == uid
        assert remote_app.sessions.state == STATE_SYNCED_REMOTE
        # credentials cached for offline login
        assert remote_app.local_store.find_account("dono@loja.com", "secret123").id == uid

    async def test_remote_login_reads_store_name_from_user_document(
        self, remote_app: AppContext, identity, documents
    ):
        uid = identity.add("dono@loja.com", "secret123")
        documents.docs[user_document_path(uid)] = {"storeName": "Loja Remota", "role": "admin"}
        await remote_app.sessions.login("dono@loja.com", "secret123")
        assert remote_app.session.store_name == "Loja Remota"
        assert remote_app.session.role == "admin"

    async def test_network_failure_falls_back_to_local(self, remote_app: AppContext, identity):
        remote_app.local_store.add_account(_local_user())
        identity.fail_code = NETWORK_FAILURE
        assert await remote_app.sessions.login("loja@local.com", "secret123") is True
        assert remote_app.session.mode == "local"

    async def test_rejected_remote_login_falls_back_by_default(self, remote_app: AppContext):
        remote_app.local_store.add_account(_local_user())
        assert await remote_app.sessions.login("loja@local.com", "secret123") is True
        assert remote_app.session.mode == "local"

    async def test_strict_mode_only_falls_back_on_network_failure(
        self, local_store, identity, documents
    ):
        strict = AppContext(
            Settings(db_path=":memory:", strict_remote_auth=True),
            local_store=local_store,
            identity=identity,
            documents=documents,
        )
        local_store.add_account(_local_user())
        assert await strict.sessions.login("loja@local.com", "secret123") is False
        identity.fail_code = NETWORK_FAILURE
        assert await strict.sessions.login("loja@local.com", "secret123") is True

    async def test_remote_login_does_not_overwrite_local_account(
        self, remote_app: AppContext, identity
    ):
        remote_app.local_store.add_account(_local_user())
        identity.add("loja@local.com", "remote-secret")
        assert await remote_app.sessions.login("loja@local.com", "remote-secret") is True
        cached = remote_app.local_store.find_account_by_email("loja@local.com")
        assert cached.id == "local-1"
        assert cached.secret == "secret123"

    async def test_remote_register_writes_profile_document(
        self, remote_app: AppContext, identity, documents, settings: Settings
    ):
        await remote_app.sessions.register(
            "novo@loja.com", "secret123", "Loja Nova", settings.master_code
        )
        session = remote_app.session
        assert session.mode == "remote"
        document = documents.docs[user_document_path(session.user_id)]
        assert document["storeName"] == "Loja Nova"
        assert document["storeProfile"]["name"] == "Loja Nova"
        assert remote_app.router.data.profile.name == "Loja Nova"
        assert "novo@loja.com" in identity.accounts

    async def test_remote_email_in_use_is_duplicate(
        self, remote_app: AppContext, identity, settings: Settings
    ):
        identity.add("dono@loja.com", "secret123")
        with pytest.raises(DuplicateEmailError):
            await remote_app.sessions.register(
                "dono@loja.com", "secret123", "Loja", settings.master_code
            )
        assert remote_app.local_store.list_accounts() == []

    async def test_remote_register_network_failure_registers_locally(
        self, remote_app: AppContext, identity, settings: Settings
    ):
        identity.fail_code = NETWORK_FAILURE
        await remote_app.sessions.register(
            "novo@loja.com", "secret123", "Loja", settings.master_code
        )
        assert remote_app.session.mode == "local"
        assert remote_app.local_store.find_account("novo@loja.com", "secret123") is not None

    async def test_logout_signs_out_remotely(self, remote_app: AppContext, identity, documents):
        uid = identity.add("dono@loja.com", "secret123")
        await remote_app.sessions.login("dono@loja.com", "secret123")
        await remote_app.sessions.logout()
        assert identity.sign_outs == 1
        assert documents.subscriber_count(user_document_path(uid)) == 0

    async def test_reset_password_delegates(self, remote_app: AppContext, identity):
        assert await remote_app.sessions.reset_password("dono@loja.com") is True
        assert identity.reset_requests == ["dono@loja.com"]
        identity.fail_code = NETWORK_FAILURE
        assert await remote_app.sessions.reset_password("dono@loja.com") is False
