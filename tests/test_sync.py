"""Tests for the sync router, both persistence backends and snapshot reconciliation."""

from __future__ import annotations

import pytest

from autocars_mcp.clients.realtime_db import DocumentStoreError
from autocars_mcp.constants import STATUS_SOLD
from autocars_mcp.data.backends import (
    LocalBackend,
    PersistenceBackend,
    RemoteBackend,
    user_document_path,
)
from autocars_mcp.data.local import SqliteLocalStore
from autocars_mcp.data.models import Sale, StoreProfile
from autocars_mcp.errors import SessionRequiredError
from autocars_mcp.sync import (
    STATE_SYNCED_LOCAL,
    STATE_SYNCED_REMOTE,
    STATE_UNAUTHENTICATED,
    Session,
    SyncRouter,
    reconcile_snapshot,
)

DEFAULT_PROFILE = StoreProfile(name="Loja Padrão", email="dono@loja.com")
LOCAL_SESSION = Session(
    user_id="u1", email="dono@loja.com", store_name="Loja", role="user", mode="local"
)
REMOTE_SESSION = Session(
    user_id="uid-1", email="dono@loja.com", store_name="Loja", role="user", mode="remote"
)
USER_PATH = user_document_path("uid-1")


def _sale(vehicle_id: str = "veh-1") -> Sale:
    return Sale(
        id="sale-1",
        vehicle_id=vehicle_id,
        customer_id="cus-1",
        sale_price=14000,
        date="2024-05-10",
        profit=4000,
    )


@pytest.fixture()
async def local_router(local_store: SqliteLocalStore) -> SyncRouter:
    router = SyncRouter()
    await router.attach(LOCAL_SESSION, LocalBackend(local_store), DEFAULT_PROFILE)
    return router


@pytest.fixture(params=["immediate-echo", "deferred-echo"])
def documents(request, documents):
    """Run remote cases against both a synchronous and a deferred change feed."""
    documents.echo_delay = request.param == "deferred-echo"
    return documents


@pytest.fixture()
async def remote_router(documents) -> SyncRouter:
    router = SyncRouter()
    await router.attach(REMOTE_SESSION, RemoteBackend(documents), DEFAULT_PROFILE)
    return router


# ── Reconciliation ─────────────────────────────────────────────


class TestReconcileSnapshot:
    def test_missing_collections_become_empty(self):
        changes = reconcile_snapshot({"vehicles": []}, DEFAULT_PROFILE)
        assert changes["customers"] == []
        assert changes["sales"] == []
        assert changes["expenses"] == []

    def test_missing_profile_falls_back_to_default(self):
        assert reconcile_snapshot({}, DEFAULT_PROFILE)["storeProfile"] == DEFAULT_PROFILE
        assert reconcile_snapshot(None, DEFAULT_PROFILE)["storeProfile"] == DEFAULT_PROFILE

    def test_snapshot_profile_wins(self):
        changes = reconcile_snapshot({"storeProfile": {"name": "Remota"}}, DEFAULT_PROFILE)
        assert changes["storeProfile"].name == "Remota"

    def test_malformed_snapshot_raises(self):
        with pytest.raises(ValueError):
            reconcile_snapshot({"vehicles": "broken"}, DEFAULT_PROFILE)


# ── Backends ───────────────────────────────────────────────────


class TestBackendProtocol:
    def test_backends_satisfy_protocol(self, local_store, documents):
        assert isinstance(LocalBackend(local_store), PersistenceBackend)
        assert isinstance(RemoteBackend(documents), PersistenceBackend)


# ── Local mode ─────────────────────────────────────────────────


class TestLocalRouter:
    async def test_missing_bundle_initialises_default_profile(
        self, local_router: SyncRouter, local_store: SqliteLocalStore
    ):
        assert local_router.state == STATE_SYNCED_LOCAL
        assert local_router.data.profile == DEFAULT_PROFILE
        stored = local_store.load_user_data("u1")
        assert stored["storeProfile"]["name"] == "Loja Padrão"
        assert stored["vehicles"] == []

    async def test_mutation_persists_full_bundle(
        self, local_router: SyncRouter, local_store: SqliteLocalStore, vehicle_factory
    ):
        await local_router.add_vehicle(vehicle_factory("a"))
        await local_router.add_vehicle(vehicle_factory("b"))
        assert [v.id for v in local_router.data.vehicles] == ["b", "a"]
        stored = local_store.load_user_data("u1")
        assert [v["id"] for v in stored["vehicles"]] == ["b", "a"]

    async def test_sale_cascades_vehicle_status(
        self, local_router: SyncRouter, local_store: SqliteLocalStore, vehicle_factory
    ):
        await local_router.add_vehicle(vehicle_factory())
        await local_router.add_sale(_sale())
        assert local_router.data.vehicles.get("veh-1").status == STATUS_SOLD
        stored = local_store.load_user_data("u1")
        assert stored["vehicles"][0]["status"] == STATUS_SOLD
        assert stored["sales"][0]["profit"] == 4000

    async def test_sale_with_dangling_vehicle_only_adds_sale(self, local_router: SyncRouter):
        await local_router.add_sale(_sale("gone"))
        assert len(local_router.data.sales) == 1
        assert len(local_router.data.vehicles) == 0

    async def test_existing_bundle_is_loaded(
        self, local_store: SqliteLocalStore, vehicle_factory
    ):
        local_store.save_user_data("u1", {"vehicles": [vehicle_factory().to_dict()]})
        router = SyncRouter()
        await router.attach(LOCAL_SESSION, LocalBackend(local_store), DEFAULT_PROFILE)
        assert len(router.data.vehicles) == 1
        assert router.data.profile == DEFAULT_PROFILE

    async def test_corrupt_bundle_starts_empty_without_overwriting(
        self, local_store: SqliteLocalStore
    ):
        local_store._conn.execute(
            "INSERT INTO user_data (user_id, payload, updated_at) VALUES ('u1', '[1, 2]', 'x')"
        )
        router = SyncRouter()
        await router.attach(LOCAL_SESSION, LocalBackend(local_store), DEFAULT_PROFILE)
        assert len(router.data.vehicles) == 0
        assert router.is_loaded
        with pytest.raises(ValueError):
            local_store.load_user_data("u1")

    async def test_detach_clears_memory_but_keeps_storage(
        self, local_router: SyncRouter, local_store: SqliteLocalStore, vehicle_factory
    ):
        await local_router.add_vehicle(vehicle_factory())
        local_router.detach()
        assert local_router.state == STATE_UNAUTHENTICATED
        assert len(local_router.data.vehicles) == 0
        assert len(local_store.load_user_data("u1")["vehicles"]) == 1

    async def test_mutation_without_session_raises(self, vehicle_factory):
        with pytest.raises(SessionRequiredError):
            await SyncRouter().add_vehicle(vehicle_factory())

    async def test_profile_update(self, local_router: SyncRouter, local_store):
        await local_router.update_store_profile(StoreProfile(name="Nova", target_margin=35))
        assert local_router.data.profile.target_margin == 35
        assert local_store.load_user_data("u1")["storeProfile"]["targetMargin"] == 35


# ── Remote mode ────────────────────────────────────────────────


class TestRemoteRouter:
    async def test_missing_document_is_initialised(self, remote_router: SyncRouter, documents):
        assert remote_router.state == STATE_SYNCED_REMOTE
        assert documents.docs[USER_PATH]["storeProfile"]["name"] == "Loja Padrão"
        assert documents.subscriber_count(USER_PATH) == 1

    async def test_write_only_touches_changed_collection(
        self, remote_router: SyncRouter, documents, vehicle_factory
    ):
        await remote_router.add_vehicle(vehicle_factory())
        path, payload, merge = documents.writes[-1]
        assert path == USER_PATH
        assert merge is True
        assert set(payload) == {"vehicles", "lastUpdated"}

    async def test_memory_updated_after_write(
        self, remote_router: SyncRouter, documents, vehicle_factory
    ):
        await remote_router.add_vehicle(vehicle_factory())
        assert [v.id for v in remote_router.data.vehicles] == ["veh-1"]
        await documents.settle()
        assert [v.id for v in remote_router.data.vehicles] == ["veh-1"]

    async def test_memory_updated_without_echo(
        self, remote_router: SyncRouter, documents, vehicle_factory
    ):
        documents._subscribers.clear()
        await remote_router.add_vehicle(vehicle_factory())
        assert [v.id for v in remote_router.data.vehicles] == ["veh-1"]

    async def test_back_to_back_writes_keep_both(
        self, remote_router: SyncRouter, documents, vehicle_factory
    ):
        await remote_router.add_vehicle(vehicle_factory("veh-1"))
        await remote_router.add_vehicle(vehicle_factory("veh-2"))
        await documents.settle()
        assert [v.id for v in remote_router.data.vehicles] == ["veh-2", "veh-1"]
        stored = documents.docs[USER_PATH]["vehicles"]
        assert [v["id"] for v in stored] == ["veh-2", "veh-1"]

    async def test_failed_write_leaves_memory_unchanged(
        self, remote_router: SyncRouter, documents, vehicle_factory
    ):
        documents.fail_code = "NETWORK_FAILURE"
        with pytest.raises(DocumentStoreError):
            await remote_router.add_vehicle(vehicle_factory())
        assert len(remote_router.data.vehicles) == 0

    async def test_sale_cascade_is_one_write(
        self, remote_router: SyncRouter, documents, vehicle_factory
    ):
        await remote_router.add_vehicle(vehicle_factory())
        await remote_router.add_sale(_sale())
        _path, payload, _merge = documents.writes[-1]
        assert set(payload) == {"sales", "vehicles", "lastUpdated"}
        assert remote_router.data.vehicles.get("veh-1").status == STATUS_SOLD
        await documents.settle()
        assert remote_router.data.vehicles.get("veh-1").status == STATUS_SOLD
        assert [s.id for s in remote_router.data.sales] == ["sale-1"]
        stored = documents.docs[USER_PATH]
        assert stored["vehicles"][0]["status"] == STATUS_SOLD
        assert stored["sales"][0]["id"] == "sale-1"

    async def test_remote_snapshot_always_wins(
        self, remote_router: SyncRouter, documents, vehicle_factory
    ):
        await remote_router.add_vehicle(vehicle_factory())
        documents.push(USER_PATH, {"customers": [{"id": "c9", "name": "Outro"}]})
        assert len(remote_router.data.vehicles) == 0
        assert [c.id for c in remote_router.data.customers] == ["c9"]
        assert remote_router.data.profile == DEFAULT_PROFILE

    async def test_feed_error_keeps_last_good_state(
        self, remote_router: SyncRouter, documents, vehicle_factory
    ):
        await remote_router.add_vehicle(vehicle_factory())
        documents.emit_error(USER_PATH, DocumentStoreError("gone", code="CANCEL"))
        assert len(remote_router.data.vehicles) == 1
        assert remote_router.state == STATE_SYNCED_REMOTE
        assert remote_router.last_feed_error is not None

    async def test_malformed_snapshot_is_ignored(
        self, remote_router: SyncRouter, documents, vehicle_factory
    ):
        await remote_router.add_vehicle(vehicle_factory())
        documents.push(USER_PATH, {"vehicles": "broken"})
        assert len(remote_router.data.vehicles) == 1

    async def test_load_failure_skips_initialisation(self, documents):
        documents.fail_code = "NETWORK_FAILURE"
        router = SyncRouter()
        await router.attach(REMOTE_SESSION, RemoteBackend(documents), DEFAULT_PROFILE)
        assert router.is_loaded
        assert USER_PATH not in documents.docs
        assert documents.subscriber_count(USER_PATH) == 1

    async def test_detach_unsubscribes(self, remote_router: SyncRouter, documents):
        remote_router.detach()
        assert documents.subscriber_count(USER_PATH) == 0

    async def test_replace_all_applies_before_echo(
        self, remote_router: SyncRouter, documents, customer_factory
    ):
        documents._subscribers.clear()
        await remote_router.replace_all({"customers": [customer_factory()]})
        assert len(remote_router.data.customers) == 1
        assert documents.docs[USER_PATH]["customers"][0]["id"] == "cus-1"
