"""Backup export/import and Dropbox tool implementations."""

from __future__ import annotations

import logging

from autocars_mcp.app import AppContext
from autocars_mcp.clients.dropbox import CloudBackupError
from autocars_mcp.constants import BACKUP_FILE_NAME
from autocars_mcp.tools.formatting import json_response, session_error

logger = logging.getLogger(__name__)


def export_backup_impl(app: AppContext, *, path: str = "") -> str:
    """Write the backup to ``path`` when given, otherwise return the document."""
    error = session_error(app)
    if error:
        return error
    if path.strip():
        try:
            target = app.backups.export_to_file(path.strip())
        except OSError as exc:
            return f"Error: could not write backup: {exc}"
        return f"Backup written to {target}."
    return json_response("export_backup", app.backups.export_document())


async def import_backup_impl(app: AppContext, *, content: str = "", path: str = "") -> str:
    error = session_error(app)
    if error:
        return error
    if not content.strip() and not path.strip():
        return "Error: provide the backup content or a file path."
    if content.strip():
        ok = await app.backups.import_json(content)
    else:
        ok = await app.backups.import_file(path.strip())
    if not ok:
        return "Error: the backup could not be read. Nothing was changed."
    return "Backup restored."


def dropbox_authorize_url_impl(app: AppContext) -> str:
    try:
        url = app.backups.authorize_url()
    except CloudBackupError as exc:
        return f"Error: {exc}"
    return (
        f"Open {url} and authorize the app, then pass the access_token from the "
        "redirect URL to connect_dropbox."
    )


def connect_dropbox_impl(app: AppContext, *, access_token: str) -> str:
    try:
        app.backups.connect(access_token)
    except CloudBackupError as exc:
        return f"Error: {exc}"
    return "Dropbox connected."


def disconnect_dropbox_impl(app: AppContext) -> str:
    if app.backups.disconnect():
        return "Dropbox disconnected."
    return "Dropbox was not connected."


async def upload_backup_to_dropbox_impl(app: AppContext) -> str:
    error = session_error(app)
    if error:
        return error
    try:
        await app.backups.upload_to_cloud()
    except CloudBackupError as exc:
        logger.warning("Dropbox upload failed: %s (%s)", exc, exc.code)
        return f"Error: {exc}"
    return f"Backup uploaded to Dropbox as {BACKUP_FILE_NAME}."


async def restore_backup_from_dropbox_impl(app: AppContext) -> str:
    error = session_error(app)
    if error:
        return error
    try:
        ok = await app.backups.restore_from_cloud()
    except CloudBackupError as exc:
        logger.warning("Dropbox restore failed: %s (%s)", exc, exc.code)
        return f"Error: {exc}"
    if not ok:
        return "Error: the Dropbox backup could not be read. Nothing was changed."
    return "Backup restored from Dropbox."
