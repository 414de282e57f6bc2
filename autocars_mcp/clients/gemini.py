"""Async Gemini text-generation client."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

logger = logging.getLogger(__name__)

_REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=30)


class GeminiClientError(RuntimeError):
    """Raised for Gemini request/config errors."""

    def __init__(self, message: str, *, code: str, status: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


def _extract_text(payload: Any) -> str:
    if not isinstance(payload, dict):
        return ""
    candidates = payload.get("candidates") or []
    if not candidates:
        return ""
    parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
    return "".join(str(p.get("text", "")) for p in parts if isinstance(p, dict)).strip()


class GeminiClient:
    """Single-shot ``generateContent`` calls."""

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

    def __init__(self, api_key: str, *, model: str = "gemini-2.5-flash") -> None:
        self.api_key = api_key.strip()
        self.model = model
        self.session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> GeminiClient:
        if not self.api_key:
            raise GeminiClientError("GEMINI_API_KEY is not configured.", code="MISSING_API_KEY")
        self.session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self.session:
            await self.session.close()

    async def generate_text(self, prompt: str) -> str:
        """Return the generated text; empty string when the model returned nothing."""
        if not self.session:
            raise RuntimeError("Client not entered as context manager")

        try:
            async with self.session.post(
                f"{self.BASE_URL}/{self.model}:generateContent",
                params={"key": self.api_key},
                json={"contents": [{"parts": [{"text": prompt}]}]},
                timeout=_REQUEST_TIMEOUT,
            ) as resp:
                payload = await resp.json(content_type=None)
                if resp.status >= 400:
                    message = f"Gemini request failed with HTTP {resp.status}."
                    if isinstance(payload, dict):
                        message = str((payload.get("error") or {}).get("message") or message)
                    raise GeminiClientError(message, code="REQUEST_FAILED", status=resp.status)
                return _extract_text(payload)
        except GeminiClientError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise GeminiClientError(f"Gemini unreachable: {exc}", code="NETWORK_FAILURE") from exc
