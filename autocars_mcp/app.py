"""Application context: wires settings, storage, clients and managers together."""

from __future__ import annotations

import logging

from autocars_mcp.admission import LicenseRegistry
from autocars_mcp.backup import BackupGateway
from autocars_mcp.clients.identity import FirebaseIdentityClient, IdentityService
from autocars_mcp.clients.realtime_db import DocumentStore, RealtimeDatabaseClient
from autocars_mcp.config import Settings
from autocars_mcp.data.local import SqliteLocalStore
from autocars_mcp.session import SessionManager
from autocars_mcp.sync import Session, SyncRouter

logger = logging.getLogger(__name__)


class AppContext:
    """Everything a tool implementation needs, built once per process."""

    def __init__(
        self,
        settings: Settings,
        *,
        local_store: SqliteLocalStore | None = None,
        identity: IdentityService | None = None,
        documents: DocumentStore | None = None,
    ) -> None:
        self.settings = settings
        self.local_store = local_store or SqliteLocalStore(settings.db_path)
        self.identity = identity
        self.documents = documents
        self.router = SyncRouter()
        self.licenses = LicenseRegistry(
            self.local_store,
            master_code=settings.master_code,
            documents=documents,
        )
        self.sessions = SessionManager(
            self.local_store,
            self.router,
            self.licenses,
            identity=identity,
            documents=documents,
            strict_remote_auth=settings.strict_remote_auth,
        )
        self.backups = BackupGateway(
            self.router,
            self.local_store,
            dropbox_app_key=settings.dropbox_app_key,
            dropbox_redirect_uri=settings.dropbox_redirect_uri,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> AppContext:
        """Build the Firebase clients when both remote settings are present."""
        identity: FirebaseIdentityClient | None = None
        documents: RealtimeDatabaseClient | None = None
        if settings.remote_configured:
            identity = FirebaseIdentityClient(settings.firebase_api_key)
            documents = RealtimeDatabaseClient(
                settings.firebase_db_url,
                token_provider=lambda: identity.id_token if identity else None,
            )
        else:
            logger.info("Remote store not configured; running local-only")
        return cls(settings, identity=identity, documents=documents)

    @property
    def session(self) -> Session | None:
        return self.router.session

    async def start(self) -> None:
        for client in (self.identity, self.documents):
            opener = getattr(client, "open", None)
            if opener is not None:
                await opener()

    async def close(self) -> None:
        await self.sessions.logout()
        for client in (self.documents, self.identity):
            closer = getattr(client, "close", None)
            if closer is not None:
                await closer()
        self.local_store.close()


_app: AppContext | None = None


async def get_app() -> AppContext:
    """Return the process-wide context, creating and starting it on first use."""
    global _app  # noqa: PLW0603
    if _app is None:
        app = AppContext.from_settings(Settings.from_env())
        await app.start()
        _app = app
    return _app


def set_app(app: AppContext | None) -> None:
    """Inject a context instance for testing."""
    global _app  # noqa: PLW0603
    _app = app
