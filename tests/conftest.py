"""Shared test fixtures: in-memory storage, fake remote services, injected app context."""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Callable

import pytest

from autocars_mcp.app import AppContext, set_app
from autocars_mcp.clients.identity import (
    EMAIL_IN_USE,
    INVALID_CREDENTIAL,
    WEAK_SECRET,
    AuthAccount,
    IdentityError,
)
from autocars_mcp.clients.realtime_db import DocumentStoreError
from autocars_mcp.config import Settings
from autocars_mcp.data.local import SqliteLocalStore
from autocars_mcp.data.models import Customer, Vehicle

MASTER_CODE = "TEST-MASTER-CODE"


class FakeIdentityService:
    """In-process identity service. ``fail_code`` makes every call raise."""

    def __init__(self) -> None:
        self.accounts: dict[str, tuple[str, str]] = {}
        self.fail_code: str | None = None
        self.reset_requests: list[str] = []
        self.sign_outs = 0
        self._listeners: list[Callable[[AuthAccount | None], None]] = []
        self._next_uid = 1

    def add(self, email: str, secret: str, uid: str | None = None) -> str:
        uid = uid or f"remote-{self._next_uid}"
        self._next_uid += 1
        self.accounts[email] = (uid, secret)
        return uid

    def _check_failure(self) -> None:
        if self.fail_code:
            raise IdentityError("simulated identity failure", code=self.fail_code)

    def _emit(self, account: AuthAccount | None) -> None:
        for cb in list(self._listeners):
            cb(account)

    async def sign_in(self, email: str, secret: str) -> AuthAccount:
        self._check_failure()
        entry = self.accounts.get(email)
        if entry is None or entry[1] != secret:
            raise IdentityError("INVALID_LOGIN_CREDENTIALS", code=INVALID_CREDENTIAL)
        account = AuthAccount(uid=entry[0], email=email, id_token="token")
        self._emit(account)
        return account

    async def create_account(self, email: str, secret: str) -> AuthAccount:
        self._check_failure()
        if email in self.accounts:
            raise IdentityError("EMAIL_EXISTS", code=EMAIL_IN_USE)
        if len(secret) < 6:
            raise IdentityError("WEAK_PASSWORD", code=WEAK_SECRET)
        uid = self.add(email, secret)
        account = AuthAccount(uid=uid, email=email, id_token="token")
        self._emit(account)
        return account

    async def sign_out(self) -> None:
        self.sign_outs += 1
        self._emit(None)

    def on_session_change(self, callback: Callable[[AuthAccount | None], None]):
        self._listeners.append(callback)
        return lambda: self._listeners.remove(callback)

    async def send_password_reset(self, email: str) -> None:
        self._check_failure()
        self.reset_requests.append(email)


class FakeDocumentStore:
    """Flat path -> document map with an in-process change feed.

    Writes are echoed to subscribers synchronously by default. With
    ``echo_delay`` the echo runs on a later loop turn and carries the document
    as it is at delivery time, like a real SSE feed that re-reads after each
    event.
    """

    def __init__(self, *, echo_delay: bool = False) -> None:
        self.echo_delay = echo_delay
        self.docs: dict[str, dict[str, Any]] = {}
        self.fail_code: str | None = None
        self.writes: list[tuple[str, dict[str, Any], bool]] = []
        self._subscribers: dict[str, list[tuple[Callable, Callable]]] = {}

    def _check_failure(self) -> None:
        if self.fail_code:
            raise DocumentStoreError("simulated store failure", code=self.fail_code)

    def _notify(self, path: str) -> None:
        for on_change, _on_error in list(self._subscribers.get(path, [])):
            on_change(copy.deepcopy(self.docs.get(path)))

    async def get_document(self, path: str) -> dict[str, Any] | None:
        self._check_failure()
        return copy.deepcopy(self.docs.get(path))

    async def set_document(self, path: str, data: dict[str, Any], *, merge: bool = False) -> None:
        self._check_failure()
        self.writes.append((path, copy.deepcopy(data), merge))
        if merge and path in self.docs:
            self.docs[path].update(copy.deepcopy(data))
        else:
            self.docs[path] = copy.deepcopy(data)
        if self.echo_delay:
            asyncio.get_running_loop().call_soon(self._notify, path)
        else:
            self._notify(path)

    async def settle(self) -> None:
        """Let pending echoes reach the subscribers."""
        await asyncio.sleep(0)

    async def update_document(self, path: str, partial: dict[str, Any]) -> None:
        await self.set_document(path, partial, merge=True)

    def subscribe(self, path: str, on_change: Callable, on_error: Callable):
        entry = (on_change, on_error)
        self._subscribers.setdefault(path, []).append(entry)

        def _unsubscribe() -> None:
            if entry in self._subscribers.get(path, []):
                self._subscribers[path].remove(entry)

        return _unsubscribe

    def subscriber_count(self, path: str) -> int:
        return len(self._subscribers.get(path, []))

    def push(self, path: str, document: dict[str, Any] | None) -> None:
        """Simulate a change made by another device."""
        if document is None:
            self.docs.pop(path, None)
        else:
            self.docs[path] = copy.deepcopy(document)
        self._notify(path)

    def emit_error(self, path: str, exc: Exception) -> None:
        for _on_change, on_error in list(self._subscribers.get(path, [])):
            on_error(exc)


def make_vehicle(vehicle_id: str = "veh-1", **overrides: Any) -> Vehicle:
    fields: dict[str, Any] = {
        "id": vehicle_id,
        "make": "Toyota",
        "model": "Corolla",
        "year": 2020,
        "version": "XEi",
        "plate": "ABC1D23",
        "mileage": 45000,
        "color": "Prata",
        "price_purchase": 10000.0,
        "price_selling": 15000.0,
    }
    fields.update(overrides)
    return Vehicle(**fields)


def make_customer(customer_id: str = "cus-1", **overrides: Any) -> Customer:
    fields: dict[str, Any] = {"id": customer_id, "name": "Maria Souza"}
    fields.update(overrides)
    return Customer(**fields)


@pytest.fixture()
def vehicle_factory() -> Callable[..., Vehicle]:
    return make_vehicle


@pytest.fixture()
def customer_factory() -> Callable[..., Customer]:
    return make_customer


@pytest.fixture()
def settings() -> Settings:
    return Settings(db_path=":memory:", master_code=MASTER_CODE)


@pytest.fixture()
def local_store() -> SqliteLocalStore:
    """A fresh in-memory store for each test."""
    return SqliteLocalStore(":memory:")


@pytest.fixture()
def identity() -> FakeIdentityService:
    return FakeIdentityService()


@pytest.fixture()
def documents() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture(autouse=True)
def app(settings: Settings, local_store: SqliteLocalStore):
    """Local-only app context injected into the server singleton for every test."""
    ctx = AppContext(settings, local_store=local_store)
    set_app(ctx)
    yield ctx
    set_app(None)


@pytest.fixture()
def remote_app(
    settings: Settings,
    local_store: SqliteLocalStore,
    identity: FakeIdentityService,
    documents: FakeDocumentStore,
):
    """App context wired to the fake identity service and document store."""
    ctx = AppContext(settings, local_store=local_store, identity=identity, documents=documents)
    set_app(ctx)
    yield ctx
    set_app(None)


@pytest.fixture()
async def logged_in_app(app: AppContext) -> AppContext:
    """Local app with an admin account registered through the master code."""
    await app.sessions.register("owner@loja.com", "secret123", "Loja Centro", MASTER_CODE)
    return app
