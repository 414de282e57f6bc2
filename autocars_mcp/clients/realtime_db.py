"""Async remote document store client (Firebase Realtime Database REST API).

Documents are plain JSON trees addressed by path. Merge writes use PATCH and
the change feed is the server-sent event stream of the same URL.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Protocol, runtime_checkable

import aiohttp

logger = logging.getLogger(__name__)

_REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=10)
_STREAM_TIMEOUT = aiohttp.ClientTimeout(total=None, sock_connect=10, sock_read=None)

ChangeCallback = Callable[[dict[str, Any] | None], None]
ErrorCallback = Callable[[Exception], None]


def _status_code(status: int) -> str:
    return "PERMISSION_DENIED" if status in (401, 403) else "REQUEST_FAILED"


class DocumentStoreError(RuntimeError):
    """Raised for remote document read/write failures."""

    def __init__(self, message: str, *, code: str, status: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


@runtime_checkable
class DocumentStore(Protocol):
    """Remote document operations the sync layer consumes."""

    async def get_document(self, path: str) -> dict[str, Any] | None: ...
    async def set_document(
        self, path: str, data: dict[str, Any], *, merge: bool = False
    ) -> None: ...
    async def update_document(self, path: str, partial: dict[str, Any]) -> None: ...
    def subscribe(
        self,
        path: str,
        on_change: ChangeCallback,
        on_error: ErrorCallback,
    ) -> Callable[[], None]: ...


class RealtimeDatabaseClient:
    """JSON document access with an SSE change feed."""

    def __init__(
        self,
        base_url: str,
        *,
        token_provider: Callable[[], str | None] | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session: aiohttp.ClientSession | None = None
        self._token_provider = token_provider
        self._streams: set[asyncio.Task[None]] = set()

    async def __aenter__(self) -> RealtimeDatabaseClient:
        await self.open()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def open(self) -> None:
        if self.session is None:
            self.session = aiohttp.ClientSession()

    async def close(self) -> None:
        for task in list(self._streams):
            task.cancel()
        self._streams.clear()
        if self.session:
            await self.session.close()
            self.session = None

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.strip('/')}.json"

    def _params(self) -> dict[str, str]:
        token = self._token_provider() if self._token_provider else None
        return {"auth": token} if token else {}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        if not self.session:
            raise RuntimeError("Client not opened")

        try:
            async with self.session.request(
                method,
                self._url(path),
                params=self._params(),
                json=payload,
                timeout=_REQUEST_TIMEOUT,
            ) as resp:
                if resp.status >= 400:
                    raw_text = await resp.text()
                    raise DocumentStoreError(
                        f"{method} {path} failed with HTTP {resp.status}: {raw_text[:200]}",
                        code=_status_code(resp.status),
                        status=resp.status,
                    )
                return await resp.json(content_type=None)
        except DocumentStoreError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise DocumentStoreError(
                f"Document store unreachable: {exc}",
                code="NETWORK_FAILURE",
            ) from exc

    async def get_document(self, path: str) -> dict[str, Any] | None:
        data = await self._request("GET", path)
        if data is None:
            return None
        if not isinstance(data, dict):
            raise DocumentStoreError(
                f"Document at {path} is not an object.",
                code="MALFORMED_DOCUMENT",
            )
        return data

    async def set_document(self, path: str, data: dict[str, Any], *, merge: bool = False) -> None:
        await self._request("PATCH" if merge else "PUT", path, payload=data)

    async def update_document(self, path: str, partial: dict[str, Any]) -> None:
        await self._request("PATCH", path, payload=partial)

    def subscribe(
        self,
        path: str,
        on_change: ChangeCallback,
        on_error: ErrorCallback,
    ) -> Callable[[], None]:
        """Start streaming changes for ``path``; returns the unsubscribe callable.

        Every put/patch event triggers a full re-read, so ``on_change`` always
        receives a whole document snapshot.
        """
        task = asyncio.get_running_loop().create_task(self._stream(path, on_change, on_error))
        self._streams.add(task)
        task.add_done_callback(self._streams.discard)

        def _unsubscribe() -> None:
            task.cancel()

        return _unsubscribe

    async def _stream(
        self, path: str, on_change: ChangeCallback, on_error: ErrorCallback
    ) -> None:
        if not self.session:
            on_error(RuntimeError("Client not opened"))
            return

        try:
            async with self.session.get(
                self._url(path),
                params=self._params(),
                headers={"Accept": "text/event-stream"},
                timeout=_STREAM_TIMEOUT,
            ) as resp:
                if resp.status >= 400:
                    raise DocumentStoreError(
                        f"Change feed for {path} rejected with HTTP {resp.status}.",
                        code=_status_code(resp.status),
                        status=resp.status,
                    )
                event = ""
                async for raw_line in resp.content:
                    line = raw_line.decode("utf-8").strip()
                    if line.startswith("event:"):
                        event = line[len("event:"):].strip()
                    elif line.startswith("data:"):
                        if event in ("put", "patch"):
                            on_change(await self.get_document(path))
                        elif event in ("cancel", "auth_revoked"):
                            raise DocumentStoreError(
                                f"Change feed for {path} closed by server ({event}).",
                                code=event.upper(),
                            )
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, json.JSONDecodeError) as exc:
            on_error(DocumentStoreError(f"Change feed failed: {exc}", code="NETWORK_FAILURE"))
        except Exception as exc:
            on_error(exc)
