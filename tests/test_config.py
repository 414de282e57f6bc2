"""Tests for environment-driven settings."""

from __future__ import annotations

import os

from autocars_mcp.config import Settings, load_env_file


class TestSettings:
    def test_defaults_are_local_only(self):
        settings = Settings()
        assert settings.remote_configured is False
        assert settings.strict_remote_auth is False

    def test_remote_requires_both_values(self):
        assert Settings(firebase_api_key="k").remote_configured is False
        assert Settings(firebase_api_key="k", firebase_db_url="u").remote_configured is True

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("AUTOCARS_FIREBASE_API_KEY", " key ")
        monkeypatch.setenv("AUTOCARS_FIREBASE_DB_URL", "https://demo.firebaseio.com/")
        monkeypatch.setenv("AUTOCARS_STRICT_REMOTE_AUTH", "yes")
        monkeypatch.setenv("AUTOCARS_MASTER_CODE", "CODE-1")
        settings = Settings.from_env()
        assert settings.firebase_api_key == "key"
        assert settings.firebase_db_url == "https://demo.firebaseio.com"
        assert settings.strict_remote_auth is True
        assert settings.master_code == "CODE-1"
        assert settings.remote_configured is True


class TestEnvFile:
    def test_loads_without_overriding(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("# comment\nAUTOCARS_TEST_A=from-file\nAUTOCARS_TEST_B = b\n")
        monkeypatch.setenv("AUTOCARS_TEST_A", "from-env")
        monkeypatch.delenv("AUTOCARS_TEST_B", raising=False)

        load_env_file(env_file)

        assert os.environ["AUTOCARS_TEST_A"] == "from-env"
        assert os.environ["AUTOCARS_TEST_B"] == "b"
        monkeypatch.delenv("AUTOCARS_TEST_B")

    def test_missing_file_is_ignored(self, tmp_path):
        load_env_file(tmp_path / "missing.env")
