"""Registration admission codes: the master code and issued licenses."""

from __future__ import annotations

import logging
import secrets
import sqlite3
import string
from dataclasses import dataclass, replace

from autocars_mcp.clients.realtime_db import DocumentStore, DocumentStoreError
from autocars_mcp.constants import (
    LICENSE_AVAILABLE,
    LICENSE_REVOKED,
    LICENSE_USED,
    ROLE_ADMIN,
    ROLE_USER,
)
from autocars_mcp.data.local import SqliteLocalStore
from autocars_mcp.data.models import License, User, utc_now_iso
from autocars_mcp.errors import AdmissionError

logger = logging.getLogger(__name__)

_KEY_ALPHABET = string.ascii_uppercase + string.digits

SOURCE_MASTER = "master"
SOURCE_LOCAL = "local"
SOURCE_REMOTE = "remote"


def license_path(key: str) -> str:
    return f"licenses/{key}"


def generate_license_key() -> str:
    def _part() -> str:
        return "".join(secrets.choice(_KEY_ALPHABET) for _ in range(4))

    return f"SAAS-{_part()}-{_part()}-{_part()}"


@dataclass(frozen=True)
class AdmissionGrant:
    """Outcome of an accepted admission code."""

    role: str
    source: str
    license: License | None = None


class LicenseRegistry:
    """Looks licenses up remotely when configured, falling back to local storage."""

    def __init__(
        self,
        local_store: SqliteLocalStore,
        *,
        master_code: str,
        documents: DocumentStore | None = None,
    ) -> None:
        self._local = local_store
        self._master_code = master_code
        self._documents = documents

    async def find(self, key: str) -> tuple[License | None, str]:
        if self._documents is not None:
            try:
                raw = await self._documents.get_document(license_path(key))
            except DocumentStoreError as exc:
                logger.warning("Remote license lookup failed (%s); using local registry", exc.code)
            else:
                if raw is not None:
                    try:
                        return License.from_dict({"key": key, **raw}), SOURCE_REMOTE
                    except ValueError:
                        logger.warning("Ignoring malformed remote license %s", key)
        return self._local.get_license(key), SOURCE_LOCAL

    async def check(self, code: str) -> AdmissionGrant:
        """Accept the master code or an available license; raise AdmissionError otherwise."""
        normalized = code.strip()
        if not normalized:
            raise AdmissionError("An access key is required to register.")
        if self._master_code and secrets.compare_digest(
            normalized.encode(), self._master_code.encode()
        ):
            return AdmissionGrant(role=ROLE_ADMIN, source=SOURCE_MASTER)

        license_, source = await self.find(normalized.upper())
        if license_ is None:
            raise AdmissionError("Invalid access key.")
        if license_.status != LICENSE_AVAILABLE:
            raise AdmissionError(f"Access key is {license_.status}.")
        return AdmissionGrant(role=ROLE_USER, source=source, license=license_)

    async def consume(self, grant: AdmissionGrant, user: User) -> None:
        """Mark the granted license used. Best effort: failures are logged only."""
        if grant.license is None:
            return
        used = replace(
            grant.license, status=LICENSE_USED, used_by=user.email, used_at=utc_now_iso()
        )
        try:
            await self._save(used, grant.source)
        except (DocumentStoreError, sqlite3.Error) as exc:
            logger.warning("Could not mark license %s as used: %s", used.key, exc)

    async def _save(self, license_: License, source: str) -> None:
        if source == SOURCE_REMOTE and self._documents is not None:
            payload = license_.to_dict()
            payload.pop("key")
            await self._documents.set_document(license_path(license_.key), payload, merge=True)
        else:
            self._local.save_license(license_)

    async def generate(self, generated_by: str) -> License:
        license_ = License(
            key=generate_license_key(),
            status=LICENSE_AVAILABLE,
            generated_by=generated_by or "admin",
            created_at=utc_now_iso(),
        )
        source = SOURCE_REMOTE if self._documents is not None else SOURCE_LOCAL
        await self._save(license_, source)
        # Keep a local copy so admins can list what they issued.
        if source == SOURCE_REMOTE:
            self._local.save_license(license_)
        return license_

    def list_licenses(self, *, status: str = "") -> list[License]:
        return self._local.list_licenses(status=status)

    async def revoke(self, key: str) -> bool:
        license_, source = await self.find(key.strip().upper())
        if license_ is None:
            return False
        revoked = replace(license_, status=LICENSE_REVOKED)
        await self._save(revoked, source)
        if source == SOURCE_REMOTE:
            self._local.save_license(revoked)
        return True
