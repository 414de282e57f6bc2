"""Shared external API clients."""

from autocars_mcp.clients.dropbox import CloudBackupError, DropboxClient, build_authorize_url
from autocars_mcp.clients.gemini import GeminiClient, GeminiClientError
from autocars_mcp.clients.identity import (
    AuthAccount,
    FirebaseIdentityClient,
    IdentityError,
    IdentityService,
)
from autocars_mcp.clients.realtime_db import (
    DocumentStore,
    DocumentStoreError,
    RealtimeDatabaseClient,
)

__all__ = [
    "AuthAccount",
    "CloudBackupError",
    "DocumentStore",
    "DocumentStoreError",
    "DropboxClient",
    "FirebaseIdentityClient",
    "GeminiClient",
    "GeminiClientError",
    "IdentityError",
    "IdentityService",
    "RealtimeDatabaseClient",
    "build_authorize_url",
]
