"""Runtime settings for the AutoCars back office, read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_DEFAULT_DB_PATH = os.path.join(os.path.dirname(__file__), "data", "autocars.db")
_DEFAULT_MASTER_CODE = "AUTOCARS-MASTER-2024"
_DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"


def load_env_file(path: Path = _ENV_FILE) -> None:
    """Load KEY=VALUE lines into os.environ without overriding existing values."""
    if not path.is_file():
        return
    for line in path.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            k, _, v = line.partition("=")
            os.environ.setdefault(k.strip(), v.strip())


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    db_path: str = _DEFAULT_DB_PATH
    firebase_api_key: str = ""
    firebase_db_url: str = ""
    master_code: str = _DEFAULT_MASTER_CODE
    strict_remote_auth: bool = False
    dropbox_app_key: str = ""
    dropbox_redirect_uri: str = "http://localhost:8765"
    gemini_api_key: str = ""
    gemini_model: str = _DEFAULT_GEMINI_MODEL

    @property
    def remote_configured(self) -> bool:
        return bool(self.firebase_api_key and self.firebase_db_url)

    @classmethod
    def from_env(cls) -> Settings:
        load_env_file()
        env = os.environ
        return cls(
            db_path=env.get("AUTOCARS_DB_PATH", _DEFAULT_DB_PATH),
            firebase_api_key=env.get("AUTOCARS_FIREBASE_API_KEY", "").strip(),
            firebase_db_url=env.get("AUTOCARS_FIREBASE_DB_URL", "").strip().rstrip("/"),
            master_code=env.get("AUTOCARS_MASTER_CODE", _DEFAULT_MASTER_CODE).strip(),
            strict_remote_auth=_env_flag("AUTOCARS_STRICT_REMOTE_AUTH"),
            dropbox_app_key=env.get("DROPBOX_APP_KEY", "").strip(),
            dropbox_redirect_uri=env.get(
                "DROPBOX_REDIRECT_URI", "http://localhost:8765"
            ).strip(),
            gemini_api_key=env.get("GEMINI_API_KEY", "").strip(),
            gemini_model=env.get("GEMINI_MODEL", _DEFAULT_GEMINI_MODEL).strip(),
        )
