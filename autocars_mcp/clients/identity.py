"""Async identity-service client (Firebase Identity Toolkit REST API)."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Protocol, runtime_checkable

import aiohttp

logger = logging.getLogger(__name__)

_REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=10)

INVALID_CREDENTIAL = "INVALID_CREDENTIAL"
EMAIL_IN_USE = "EMAIL_IN_USE"
WEAK_SECRET = "WEAK_SECRET"
NETWORK_FAILURE = "NETWORK_FAILURE"
UNKNOWN = "UNKNOWN"

_PROVIDER_ERROR_CODES: dict[str, str] = {
    "EMAIL_EXISTS": EMAIL_IN_USE,
    "EMAIL_NOT_FOUND": INVALID_CREDENTIAL,
    "INVALID_PASSWORD": INVALID_CREDENTIAL,
    "INVALID_LOGIN_CREDENTIALS": INVALID_CREDENTIAL,
    "INVALID_EMAIL": INVALID_CREDENTIAL,
    "USER_DISABLED": INVALID_CREDENTIAL,
    "WEAK_PASSWORD": WEAK_SECRET,
}


class IdentityError(RuntimeError):
    """Raised for identity-service failures, tagged with a small code vocabulary."""

    def __init__(self, message: str, *, code: str, status: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


@dataclass(frozen=True)
class AuthAccount:
    uid: str
    email: str
    id_token: str = ""


SessionCallback = Callable[[AuthAccount | None], None]


@runtime_checkable
class IdentityService(Protocol):
    """Remote identity operations the session manager consumes."""

    async def sign_in(self, email: str, secret: str) -> AuthAccount: ...
    async def create_account(self, email: str, secret: str) -> AuthAccount: ...
    async def sign_out(self) -> None: ...
    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]: ...
    async def send_password_reset(self, email: str) -> None: ...


def map_provider_error(message: str) -> str:
    """Map a provider message such as ``WEAK_PASSWORD : ...`` to an error code."""
    head = message.split(":", 1)[0].strip().upper()
    return _PROVIDER_ERROR_CODES.get(head, UNKNOWN)


class FirebaseIdentityClient:
    """Email/password identity over the Identity Toolkit REST endpoints."""

    BASE_URL = "https://identitytoolkit.googleapis.com/v1"

    def __init__(self, api_key: str) -> None:
        self.api_key = api_key.strip()
        self.session: aiohttp.ClientSession | None = None
        self.current_account: AuthAccount | None = None
        self._listeners: list[SessionCallback] = []

    async def __aenter__(self) -> FirebaseIdentityClient:
        await self.open()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def open(self) -> None:
        if self.session is None:
            self.session = aiohttp.ClientSession()

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    @property
    def id_token(self) -> str | None:
        return self.current_account.id_token if self.current_account else None

    async def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        if not self.session:
            raise RuntimeError("Client not opened")

        url = f"{self.BASE_URL}/accounts:{endpoint}"
        try:
            async with self.session.post(
                url,
                params={"key": self.api_key},
                json=payload,
                timeout=_REQUEST_TIMEOUT,
            ) as resp:
                body = await resp.json(content_type=None)
                if resp.status >= 400:
                    message = ""
                    if isinstance(body, dict):
                        message = str((body.get("error") or {}).get("message") or "")
                    raise IdentityError(
                        message or f"Identity request failed with HTTP {resp.status}.",
                        code=map_provider_error(message),
                        status=resp.status,
                    )
                return body if isinstance(body, dict) else {}
        except IdentityError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise IdentityError(
                f"Identity service unreachable: {exc}",
                code=NETWORK_FAILURE,
            ) from exc

    def _set_account(self, account: AuthAccount | None) -> None:
        self.current_account = account
        for cb in list(self._listeners):
            try:
                cb(account)
            except Exception:
                logger.exception("Session change callback failed")

    @staticmethod
    def _account_from(body: dict[str, Any], fallback_email: str) -> AuthAccount:
        return AuthAccount(
            uid=str(body.get("localId", "")),
            email=str(body.get("email") or fallback_email),
            id_token=str(body.get("idToken", "")),
        )

    async def sign_in(self, email: str, secret: str) -> AuthAccount:
        body = await self._post(
            "signInWithPassword",
            {"email": email, "password": secret, "returnSecureToken": True},
        )
        account = self._account_from(body, email)
        self._set_account(account)
        return account

    async def create_account(self, email: str, secret: str) -> AuthAccount:
        body = await self._post(
            "signUp",
            {"email": email, "password": secret, "returnSecureToken": True},
        )
        account = self._account_from(body, email)
        self._set_account(account)
        return account

    async def sign_out(self) -> None:
        # Token-based REST sessions end client-side.
        self._set_account(None)

    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]:
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    async def send_password_reset(self, email: str) -> None:
        await self._post("sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})
