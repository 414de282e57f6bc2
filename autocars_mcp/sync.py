"""Sync router: routes every mutation to the active persistence backend.

Per-session state machine::

    unauthenticated -> authenticating -> data_loading -> synced_local
                                                     |-> synced_remote

Both backends apply a mutation in memory once it is persisted. In remote mode
change-feed snapshots then replace memory through :func:`reconcile_snapshot`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

from autocars_mcp.constants import COLLECTION_KEYS, PROFILE_KEY, ROLE_ADMIN, STATUS_SOLD
from autocars_mcp.data.backends import MODE_REMOTE, PersistenceBackend
from autocars_mcp.data.models import Customer, Expense, Sale, StoreProfile, Vehicle
from autocars_mcp.data.repository import DealershipData, decode_changes
from autocars_mcp.errors import SessionRequiredError

logger = logging.getLogger(__name__)

STATE_UNAUTHENTICATED = "unauthenticated"
STATE_AUTHENTICATING = "authenticating"
STATE_DATA_LOADING = "data_loading"
STATE_SYNCED_LOCAL = "synced_local"
STATE_SYNCED_REMOTE = "synced_remote"


@dataclass(frozen=True)
class Session:
    """The authenticated account and the persistence mode its writes use."""

    user_id: str
    email: str
    store_name: str
    role: str
    mode: str

    @property
    def is_remote(self) -> bool:
        return self.mode == MODE_REMOTE

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "email": self.email,
            "storeName": self.store_name,
            "role": self.role,
            "mode": self.mode,
        }


def reconcile_snapshot(
    snapshot: dict[str, Any] | None,
    default_profile: StoreProfile,
) -> dict[str, Any]:
    """Turn a remote snapshot into wholesale replacements for every collection.

    Policy: the remote snapshot always wins. There is no field-level merge and
    no conflict detection; a collection missing from the snapshot becomes
    empty and a missing profile becomes ``default_profile``. Raises ValueError
    for a malformed snapshot so the caller can keep its current state.
    """
    document = snapshot or {}
    if not isinstance(document, dict):
        raise ValueError(f"Snapshot must be an object, got {type(document).__name__}")
    changes = decode_changes(document)
    for key in COLLECTION_KEYS:
        changes.setdefault(key, [])
    changes.setdefault(PROFILE_KEY, default_profile)
    return changes


ChangeBuilder = Callable[[DealershipData], dict[str, Any]]


class SyncRouter:
    """Owns the in-memory repositories of the current session."""

    def __init__(self) -> None:
        self.data = DealershipData()
        self.session: Session | None = None
        self.state = STATE_UNAUTHENTICATED
        self.last_feed_error: Exception | None = None
        self._backend: PersistenceBackend | None = None
        self._default_profile = StoreProfile()
        self._loaded = False
        self._unsubscribe: Callable[[], None] | None = None
        self._lock = asyncio.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def backend(self) -> PersistenceBackend | None:
        return self._backend

    # ── Session lifecycle ──────────────────────────────────────────

    async def attach(
        self,
        session: Session,
        backend: PersistenceBackend,
        default_profile: StoreProfile,
    ) -> None:
        """Load the account's bundle from ``backend`` and start following it."""
        self.detach()
        self.session = session
        self._backend = backend
        self._default_profile = default_profile
        self.state = STATE_DATA_LOADING

        load_failed = False
        try:
            document = await backend.load(session.user_id)
        except ValueError:
            logger.error("Stored data for %s is corrupt; starting empty", session.user_id)
            document, load_failed = None, True
        except Exception as exc:
            logger.warning("Initial load for %s failed: %s", session.user_id, exc)
            document, load_failed = None, True

        if document is None:
            self.data.apply(reconcile_snapshot(None, default_profile))
            if not load_failed:
                logger.info("No data found for %s; initialising an empty bundle", session.user_id)
                await backend.initialize(session.user_id, self.data.to_document())
        else:
            try:
                self.data.apply(reconcile_snapshot(document, default_profile))
            except ValueError:
                logger.error("Stored data for %s is malformed; starting empty", session.user_id)
                self.data.apply(reconcile_snapshot(None, default_profile))

        self._loaded = True
        self.state = STATE_SYNCED_REMOTE if backend.mode == MODE_REMOTE else STATE_SYNCED_LOCAL
        self._unsubscribe = backend.subscribe(
            session.user_id, self._on_snapshot, self._on_feed_error
        )

    def detach(self) -> None:
        """Drop the session and clear memory; persisted data is untouched."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.session = None
        self._backend = None
        self._loaded = False
        self.last_feed_error = None
        self.data.clear()
        self.state = STATE_UNAUTHENTICATED

    def _on_snapshot(self, snapshot: dict[str, Any] | None) -> None:
        if self.session is None:
            return
        try:
            changes = reconcile_snapshot(snapshot, self._default_profile)
        except ValueError as exc:
            logger.warning("Ignoring malformed remote snapshot: %s", exc)
            return
        self.data.apply(changes)

    def _on_feed_error(self, exc: Exception) -> None:
        # Keep the last good state; there is no mid-session fallback to local.
        self.last_feed_error = exc
        logger.warning("Remote change feed error: %s", exc)

    # ── Write path ─────────────────────────────────────────────────

    def require_session(self) -> Session:
        if self.session is None or self._backend is None:
            raise SessionRequiredError("Log in first.")
        return self.session

    async def _commit(self, build: ChangeBuilder) -> dict[str, Any]:
        session = self.require_session()
        async with self._lock:
            changes = build(self.data)
            if not self._loaded:
                # Never persist before the initial load has completed.
                self.data.apply(changes)
                return changes
            assert self._backend is not None
            await self._backend.commit(session.user_id, self.data, changes)
            return changes

    async def add_vehicle(self, vehicle: Vehicle) -> None:
        await self._commit(lambda d: {"vehicles": d.vehicles.with_added(vehicle)})

    async def update_vehicle(self, vehicle: Vehicle) -> None:
        await self._commit(lambda d: {"vehicles": d.vehicles.with_updated(vehicle)})

    async def remove_vehicle(self, vehicle_id: str) -> None:
        await self._commit(lambda d: {"vehicles": d.vehicles.with_removed(vehicle_id)})

    async def add_customer(self, customer: Customer) -> None:
        await self._commit(lambda d: {"customers": d.customers.with_added(customer)})

    async def update_customer(self, customer: Customer) -> None:
        await self._commit(lambda d: {"customers": d.customers.with_updated(customer)})

    async def remove_customer(self, customer_id: str) -> None:
        await self._commit(lambda d: {"customers": d.customers.with_removed(customer_id)})

    async def add_sale(self, sale: Sale) -> None:
        """Insert the sale and mark its vehicle sold in the same write."""

        def _build(d: DealershipData) -> dict[str, Any]:
            changes: dict[str, Any] = {"sales": d.sales.with_added(sale)}
            vehicle = d.vehicles.get(sale.vehicle_id)
            if vehicle is not None:
                changes["vehicles"] = d.vehicles.with_updated(vehicle.with_status(STATUS_SOLD))
            return changes

        await self._commit(_build)

    async def update_sale(self, sale: Sale) -> None:
        await self._commit(lambda d: {"sales": d.sales.with_updated(sale)})

    async def remove_sale(self, sale_id: str) -> None:
        await self._commit(lambda d: {"sales": d.sales.with_removed(sale_id)})

    async def add_expense(self, expense: Expense) -> None:
        await self._commit(lambda d: {"expenses": d.expenses.with_added(expense)})

    async def update_expense(self, expense: Expense) -> None:
        await self._commit(lambda d: {"expenses": d.expenses.with_updated(expense)})

    async def remove_expense(self, expense_id: str) -> None:
        await self._commit(lambda d: {"expenses": d.expenses.with_removed(expense_id)})

    async def update_store_profile(self, profile: StoreProfile) -> None:
        await self._commit(lambda d: {PROFILE_KEY: profile})

    async def replace_all(self, changes: dict[str, Any]) -> None:
        """Replace the decoded collections wholesale; used by restore."""
        await self._commit(lambda d: changes)
