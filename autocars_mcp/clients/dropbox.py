"""Async Dropbox client for single-file backup upload/download."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol
from urllib.parse import urlencode

import aiohttp

from autocars_mcp.constants import BACKUP_FILE_NAME

logger = logging.getLogger(__name__)

_REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=30)
TOKEN_SETTING_KEY = "dropbox_token"


class CloudBackupError(RuntimeError):
    """Raised for Dropbox request/config errors."""

    def __init__(self, message: str, *, code: str, status: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


class TokenStore(Protocol):
    def get_setting(self, key: str) -> str | None: ...
    def set_setting(self, key: str, value: str) -> None: ...
    def delete_setting(self, key: str) -> bool: ...


def build_authorize_url(app_key: str, redirect_uri: str) -> str:
    """Implicit-grant authorize URL; the token comes back in the redirect fragment."""
    query = urlencode(
        {"client_id": app_key, "response_type": "token", "redirect_uri": redirect_uri}
    )
    return f"https://www.dropbox.com/oauth2/authorize?{query}"


class DropboxClient:
    """Bearer-token Dropbox content API client; the token lives in local settings."""

    CONTENT_URL = "https://content.dropboxapi.com/2/files"

    def __init__(self, token_store: TokenStore) -> None:
        self._tokens = token_store
        self.session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> DropboxClient:
        self.session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self.session:
            await self.session.close()

    # ── Token management ───────────────────────────────────────────

    def save_token(self, token: str) -> None:
        self._tokens.set_setting(TOKEN_SETTING_KEY, token.strip())

    def get_token(self) -> str | None:
        return self._tokens.get_setting(TOKEN_SETTING_KEY)

    def clear_token(self) -> None:
        self._tokens.delete_setting(TOKEN_SETTING_KEY)

    @property
    def is_connected(self) -> bool:
        return bool(self.get_token())

    def _auth_headers(self, api_arg: dict[str, Any]) -> dict[str, str]:
        token = self.get_token()
        if not token:
            raise CloudBackupError(
                "Dropbox is not connected. Authorize the app first.",
                code="NOT_AUTHORIZED",
            )
        return {
            "Authorization": f"Bearer {token}",
            "Dropbox-API-Arg": json.dumps(api_arg),
        }

    def _expire_token(self) -> CloudBackupError:
        self.clear_token()
        return CloudBackupError(
            "Dropbox session expired. Connect again.",
            code="TOKEN_EXPIRED",
            status=401,
        )

    # ── File operations ────────────────────────────────────────────

    async def upload(self, content: str, file_name: str = BACKUP_FILE_NAME) -> dict[str, Any]:
        """Upload ``content`` to ``/<file_name>``, overwriting any previous backup."""
        if not self.session:
            raise RuntimeError("Client not entered as context manager")

        headers = self._auth_headers(
            {"path": f"/{file_name}", "mode": "overwrite", "autorename": False, "mute": False}
        )
        headers["Content-Type"] = "application/octet-stream"
        try:
            async with self.session.post(
                f"{self.CONTENT_URL}/upload",
                headers=headers,
                data=content.encode("utf-8"),
                timeout=_REQUEST_TIMEOUT,
            ) as resp:
                if resp.status == 401:
                    raise self._expire_token()
                if resp.status >= 400:
                    detail = await resp.text()
                    raise CloudBackupError(
                        f"Dropbox upload failed: {detail[:200]}",
                        code="UPLOAD_FAILED",
                        status=resp.status,
                    )
                return await resp.json(content_type=None)
        except CloudBackupError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error("Dropbox upload error: %s", exc)
            raise CloudBackupError(f"Dropbox unreachable: {exc}", code="NETWORK_FAILURE") from exc

    async def download(self, file_name: str = BACKUP_FILE_NAME) -> str:
        if not self.session:
            raise RuntimeError("Client not entered as context manager")

        headers = self._auth_headers({"path": f"/{file_name}"})
        try:
            async with self.session.post(
                f"{self.CONTENT_URL}/download",
                headers=headers,
                timeout=_REQUEST_TIMEOUT,
            ) as resp:
                if resp.status == 401:
                    raise self._expire_token()
                if resp.status == 409:
                    raise CloudBackupError(
                        "No backup file found in Dropbox.",
                        code="NOT_FOUND",
                        status=409,
                    )
                if resp.status >= 400:
                    raise CloudBackupError(
                        "Dropbox download failed.",
                        code="DOWNLOAD_FAILED",
                        status=resp.status,
                    )
                return await resp.text()
        except CloudBackupError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error("Dropbox download error: %s", exc)
            raise CloudBackupError(f"Dropbox unreachable: {exc}", code="NETWORK_FAILURE") from exc
