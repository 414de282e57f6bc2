"""PersistenceBackend protocol with local (SQLite) and remote (document store) implementations."""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol, runtime_checkable

from autocars_mcp.clients.realtime_db import DocumentStore
from autocars_mcp.data.local import SqliteLocalStore
from autocars_mcp.data.models import utc_now_iso
from autocars_mcp.data.repository import DealershipData, encode_changes

logger = logging.getLogger(__name__)

MODE_LOCAL = "local"
MODE_REMOTE = "remote"

SnapshotCallback = Callable[[dict[str, Any] | None], None]
ErrorCallback = Callable[[Exception], None]


def user_document_path(user_id: str) -> str:
    return f"users/{user_id}"


@runtime_checkable
class PersistenceBackend(Protocol):
    """Where an account's data bundle lives."""

    mode: str

    async def load(self, user_id: str) -> dict[str, Any] | None: ...
    async def initialize(self, user_id: str, document: dict[str, Any]) -> None: ...
    async def commit(
        self,
        user_id: str,
        data: DealershipData,
        changes: dict[str, Any],
    ) -> None: ...
    def subscribe(
        self,
        user_id: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Callable[[], None] | None: ...


class LocalBackend:
    """Applies changes in memory, then persists the whole bundle synchronously."""

    mode = MODE_LOCAL

    def __init__(self, store: SqliteLocalStore) -> None:
        self._store = store

    async def load(self, user_id: str) -> dict[str, Any] | None:
        return self._store.load_user_data(user_id)

    async def initialize(self, user_id: str, document: dict[str, Any]) -> None:
        self._store.save_user_data(user_id, document)

    async def commit(
        self,
        user_id: str,
        data: DealershipData,
        changes: dict[str, Any],
    ) -> None:
        data.apply(changes)
        self._store.save_user_data(user_id, data.to_document())
        logger.debug("Persisted local bundle for %s (%s)", user_id, ", ".join(changes))

    def subscribe(
        self,
        user_id: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Callable[[], None] | None:
        return None


class RemoteBackend:
    """Merge-writes only the changed collections, then applies them in memory.

    Memory never waits for the change feed echo; later snapshots still
    replace it wholesale.
    """

    mode = MODE_REMOTE

    def __init__(self, documents: DocumentStore) -> None:
        self._documents = documents

    async def load(self, user_id: str) -> dict[str, Any] | None:
        return await self._documents.get_document(user_document_path(user_id))

    async def initialize(self, user_id: str, document: dict[str, Any]) -> None:
        await self._documents.set_document(
            user_document_path(user_id),
            {**document, "lastUpdated": utc_now_iso()},
            merge=True,
        )

    async def commit(
        self,
        user_id: str,
        data: DealershipData,
        changes: dict[str, Any],
    ) -> None:
        payload = encode_changes(changes)
        payload["lastUpdated"] = utc_now_iso()
        await self._documents.set_document(user_document_path(user_id), payload, merge=True)
        data.apply(changes)

    def subscribe(
        self,
        user_id: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Callable[[], None] | None:
        return self._documents.subscribe(user_document_path(user_id), on_snapshot, on_error)
