"""Identity & session manager.

Resolves login and registration against the remote identity service when one
is configured, falling back to the local credential cache, then hands the
session to the sync router together with the matching persistence backend.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from autocars_mcp.admission import LicenseRegistry
from autocars_mcp.clients.identity import (
    EMAIL_IN_USE,
    NETWORK_FAILURE,
    WEAK_SECRET,
    AuthAccount,
    IdentityError,
    IdentityService,
)
from autocars_mcp.clients.realtime_db import DocumentStore, DocumentStoreError
from autocars_mcp.constants import MIN_SECRET_LENGTH, PROFILE_KEY, ROLE_USER, ROLES
from autocars_mcp.data.backends import (
    MODE_LOCAL,
    MODE_REMOTE,
    LocalBackend,
    PersistenceBackend,
    RemoteBackend,
    user_document_path,
)
from autocars_mcp.data.local import SqliteLocalStore
from autocars_mcp.data.models import StoreProfile, User, new_id
from autocars_mcp.errors import DuplicateEmailError, ValidationError
from autocars_mcp.sync import STATE_AUTHENTICATING, Session, SyncRouter

logger = logging.getLogger(__name__)

SessionListener = Callable[[Session | None], None]

__all__ = ["Session", "SessionManager", "validate_registration"]


def validate_registration(
    email: str,
    secret: str,
    store_name: str,
    confirm_secret: str | None = None,
) -> None:
    """Raise ValidationError for missing or inconsistent registration fields."""
    if not email or not secret or not store_name:
        raise ValidationError("E-mail, password and store name are required.")
    if "@" not in email:
        raise ValidationError("Invalid e-mail address.")
    if confirm_secret is not None and confirm_secret != secret:
        raise ValidationError("Passwords do not match.")
    if len(secret) < MIN_SECRET_LENGTH:
        raise ValidationError(f"Password must have at least {MIN_SECRET_LENGTH} characters.")


class SessionManager:
    """Owns the current :class:`Session` and picks the backend writes go to."""

    def __init__(
        self,
        local_store: SqliteLocalStore,
        router: SyncRouter,
        licenses: LicenseRegistry,
        *,
        identity: IdentityService | None = None,
        documents: DocumentStore | None = None,
        strict_remote_auth: bool = False,
    ) -> None:
        self._local = local_store
        self._router = router
        self._licenses = licenses
        self._identity = identity
        self._documents = documents
        self._strict = strict_remote_auth
        self._local_backend = LocalBackend(local_store)
        self._remote_backend = RemoteBackend(documents) if documents is not None else None
        self._listeners: list[SessionListener] = []
        self._authenticating = False

    @property
    def remote_enabled(self) -> bool:
        return self._identity is not None and self._remote_backend is not None

    @property
    def current(self) -> Session | None:
        return self._router.session

    @property
    def state(self) -> str:
        if self._authenticating:
            return STATE_AUTHENTICATING
        return self._router.state

    # ── Listeners ──────────────────────────────────────────────────

    def on_session_change(self, callback: SessionListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    def _notify(self, session: Session | None) -> None:
        for cb in list(self._listeners):
            try:
                cb(session)
            except Exception:
                logger.exception("Session listener failed")

    # ── Login ──────────────────────────────────────────────────────

    async def login(self, email: str, secret: str) -> bool:
        """Remote sign-in first when configured, then the local credential cache."""
        email = email.strip()
        if not email or not secret:
            return False

        if self._router.session is not None:
            await self.logout()

        self._authenticating = True
        try:
            if self.remote_enabled:
                assert self._identity is not None
                try:
                    account = await self._identity.sign_in(email, secret)
                except IdentityError as exc:
                    if self._strict and exc.code != NETWORK_FAILURE:
                        logger.info("Remote login rejected for %s (%s)", email, exc.code)
                        return False
                    logger.warning(
                        "Remote login failed for %s (%s); trying local credentials",
                        email,
                        exc.code,
                    )
                else:
                    user = await self._resolve_remote_user(account, secret)
                    self._cache_credentials(user)
                    await self._establish(user, MODE_REMOTE)
                    return True

            user = self._local.find_account(email, secret)
            if user is None:
                logger.info("Login failed for %s", email)
                return False
            await self._establish(user, MODE_LOCAL)
            return True
        finally:
            self._authenticating = False

    async def _resolve_remote_user(self, account: AuthAccount, secret: str) -> User:
        """Build the account record from the remote user document, then the local cache."""
        cached = self._local.find_account_by_email(account.email)
        store_name = cached.store_name if cached else ""
        role = cached.role if cached else ROLE_USER

        document: dict[str, Any] | None = None
        if self._documents is not None:
            try:
                document = await self._documents.get_document(user_document_path(account.uid))
            except DocumentStoreError as exc:
                logger.warning("Could not read user document for %s: %s", account.uid, exc.code)
        if document:
            profile = document.get(PROFILE_KEY)
            profile_name = profile.get("name") if isinstance(profile, dict) else None
            store_name = str(document.get("storeName") or profile_name or store_name)
            remote_role = str(document.get("role") or "")
            if remote_role in ROLES:
                role = remote_role

        return User(
            id=account.uid,
            email=account.email,
            secret=secret,
            store_name=store_name or account.email.split("@", 1)[0],
            role=role,
        )

    def _cache_credentials(self, user: User) -> None:
        existing = self._local.find_account_by_email(user.email)
        if existing is not None and existing.id != user.id:
            # A local-only account already owns this e-mail; leave it untouched.
            logger.info("Not caching remote account %s over local account %s", user.id, existing.id)
            return
        self._local.upsert_account(user)

    # ── Registration ───────────────────────────────────────────────

    async def register(
        self,
        email: str,
        secret: str,
        store_name: str,
        admission_code: str,
        confirm_secret: str | None = None,
    ) -> bool:
        """Create an account gated by an admission code and log it in.

        Raises ValidationError, AdmissionError or DuplicateEmailError; nothing
        is created when any of them is raised.
        """
        email = email.strip()
        store_name = store_name.strip()
        validate_registration(email, secret, store_name, confirm_secret)

        grant = await self._licenses.check(admission_code)

        if self._local.find_account_by_email(email) is not None:
            raise DuplicateEmailError(email)

        if self._router.session is not None:
            await self.logout()

        self._authenticating = True
        try:
            user_id = ""
            mode = MODE_LOCAL
            if self.remote_enabled:
                assert self._identity is not None
                try:
                    account = await self._identity.create_account(email, secret)
                except IdentityError as exc:
                    if exc.code == EMAIL_IN_USE:
                        raise DuplicateEmailError(email) from exc
                    if exc.code == WEAK_SECRET:
                        raise ValidationError("Password is too weak.") from exc
                    if self._strict:
                        raise
                    logger.warning(
                        "Remote registration failed for %s (%s); registering locally",
                        email,
                        exc.code,
                    )
                else:
                    user_id = account.uid
                    mode = MODE_REMOTE

            user = User(
                id=user_id or new_id("user"),
                email=email,
                secret=secret,
                store_name=store_name,
                role=grant.role,
            )
            if mode == MODE_REMOTE:
                await self._write_remote_profile(user)
                self._local.upsert_account(user)
            else:
                self._local.add_account(user)

            await self._licenses.consume(grant, user)
            logger.info("Registered %s (%s, %s)", email, user.role, mode)
            await self._establish(user, mode)
            return True
        finally:
            self._authenticating = False

    async def _write_remote_profile(self, user: User) -> None:
        assert self._documents is not None
        payload = {
            "email": user.email,
            "storeName": user.store_name,
            "role": user.role,
            PROFILE_KEY: StoreProfile.for_user(user).to_dict(),
        }
        try:
            await self._documents.set_document(
                user_document_path(user.id), payload, merge=True
            )
        except DocumentStoreError as exc:
            logger.warning("Could not write profile for %s: %s", user.id, exc.code)

    # ── Session lifecycle ──────────────────────────────────────────

    def _backend_for(self, mode: str) -> PersistenceBackend:
        if mode == MODE_REMOTE and self._remote_backend is not None:
            return self._remote_backend
        return self._local_backend

    async def _establish(self, user: User, mode: str) -> Session:
        session = Session(
            user_id=user.id,
            email=user.email,
            store_name=user.store_name,
            role=user.role,
            mode=mode,
        )
        await self._router.attach(session, self._backend_for(mode), StoreProfile.for_user(user))
        logger.info("Session established for %s (%s)", user.email, mode)
        self._notify(session)
        return session

    async def logout(self) -> None:
        """Stop the change feed, sign out remotely, and clear in-memory state."""
        session = self._router.session
        self._router.detach()
        if session is not None and session.is_remote and self._identity is not None:
            try:
                await self._identity.sign_out()
            except IdentityError as exc:
                logger.warning("Remote sign-out failed: %s", exc)
        if session is not None:
            logger.info("Logged out %s", session.email)
            self._notify(None)

    async def reset_password(self, email: str) -> bool:
        if self._identity is None:
            return False
        try:
            await self._identity.send_password_reset(email.strip())
        except IdentityError as exc:
            logger.warning("Password reset for %s failed: %s", email, exc.code)
            return False
        return True
