"""Backup/restore gateway: full-dataset export and import via file or Dropbox."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from autocars_mcp.clients.dropbox import (
    TOKEN_SETTING_KEY,
    CloudBackupError,
    DropboxClient,
    TokenStore,
    build_authorize_url,
)
from autocars_mcp.constants import BACKUP_FILE_NAME
from autocars_mcp.data.models import utc_now_iso
from autocars_mcp.data.repository import DealershipData, decode_changes
from autocars_mcp.sync import Session, SyncRouter

logger = logging.getLogger(__name__)


def build_export_document(
    data: DealershipData,
    session: Session,
    *,
    export_date: str | None = None,
) -> dict[str, Any]:
    document = data.to_document()
    document["user"] = {
        "id": session.user_id,
        "email": session.email,
        "storeName": session.store_name,
    }
    document["exportDate"] = export_date or utc_now_iso()
    return document


def parse_backup(text: str) -> dict[str, Any] | None:
    """Decode the collections present in a backup document; None when unreadable."""
    try:
        document = json.loads(text)
    except (TypeError, ValueError) as exc:
        logger.warning("Backup is not valid JSON: %s", exc)
        return None
    if not isinstance(document, dict):
        logger.warning("Backup root must be an object, got %s", type(document).__name__)
        return None
    try:
        changes = decode_changes(document)
    except (KeyError, ValueError) as exc:
        logger.warning("Backup contains malformed records: %s", exc)
        return None
    return changes


class BackupGateway:
    """Export/import for the current session's data bundle."""

    def __init__(
        self,
        router: SyncRouter,
        token_store: TokenStore,
        *,
        dropbox_app_key: str = "",
        dropbox_redirect_uri: str = "",
    ) -> None:
        self._router = router
        self._tokens = token_store
        self._app_key = dropbox_app_key
        self._redirect_uri = dropbox_redirect_uri

    # ── Local file ─────────────────────────────────────────────────

    def export_document(self) -> dict[str, Any]:
        session = self._router.require_session()
        return build_export_document(self._router.data, session)

    def export_json(self) -> str:
        return json.dumps(self.export_document(), indent=2, ensure_ascii=False)

    def export_to_file(self, path: str | Path) -> Path:
        target = Path(path).expanduser()
        if target.is_dir():
            target = target / BACKUP_FILE_NAME
        target.write_text(self.export_json(), encoding="utf-8")
        logger.info("Exported backup to %s", target)
        return target

    async def import_json(self, text: str) -> bool:
        """Apply a backup; keys missing from it leave the current state untouched."""
        self._router.require_session()
        changes = parse_backup(text)
        if changes is None:
            return False
        if changes:
            await self._router.replace_all(changes)
        logger.info("Imported backup (%s)", ", ".join(changes) or "nothing")
        return True

    async def import_file(self, path: str | Path) -> bool:
        try:
            text = Path(path).expanduser().read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not read backup file %s: %s", path, exc)
            return False
        return await self.import_json(text)

    # ── Dropbox ────────────────────────────────────────────────────

    def authorize_url(self) -> str:
        if not self._app_key:
            raise CloudBackupError("DROPBOX_APP_KEY is not configured.", code="NOT_CONFIGURED")
        return build_authorize_url(self._app_key, self._redirect_uri)

    def connect(self, token: str) -> None:
        token = token.strip()
        if not token:
            raise CloudBackupError("Access token is required.", code="NOT_AUTHORIZED")
        self._tokens.set_setting(TOKEN_SETTING_KEY, token)

    def disconnect(self) -> bool:
        return self._tokens.delete_setting(TOKEN_SETTING_KEY)

    @property
    def is_connected(self) -> bool:
        return bool(self._tokens.get_setting(TOKEN_SETTING_KEY))

    async def upload_to_cloud(self) -> dict[str, Any]:
        content = self.export_json()
        async with DropboxClient(self._tokens) as client:
            return await client.upload(content, BACKUP_FILE_NAME)

    async def restore_from_cloud(self) -> bool:
        self._router.require_session()
        async with DropboxClient(self._tokens) as client:
            text = await client.download(BACKUP_FILE_NAME)
        return await self.import_json(text)
