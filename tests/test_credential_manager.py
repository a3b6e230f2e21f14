"""
Tests for intunecycle.auth.credential_manager module.

Tests Graph credentials including:
- Reading INTUNE_* environment variables
- Token caching and refresh before expiry
- Error handling for token requests
"""

from __future__ import annotations

import pytest
import requests_mock

from intunecycle.auth import CredentialManager
from intunecycle.exceptions import ConfigError, DirectoryError

TOKEN_URL = "https://login.microsoftonline.com/tenant-1/oauth2/v2.0/token"


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setenv("INTUNE_TENANT_ID", "tenant-1")
    monkeypatch.setenv("INTUNE_CLIENT_ID", "client-1")
    monkeypatch.setenv("INTUNE_CLIENT_SECRET", "secret-1")


class FakeClock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestCredentialManager:
    """Tests for CredentialManager."""

    def test_reads_environment(self, env):
        creds = CredentialManager(interactive=False)
        assert creds.get_tenant_id() == "tenant-1"
        assert creds.get_client_id() == "client-1"
        assert creds.get_client_secret() == "secret-1"

    def test_missing_variable(self, env, monkeypatch):
        monkeypatch.delenv("INTUNE_CLIENT_SECRET")
        creds = CredentialManager(interactive=False)

        with pytest.raises(ConfigError, match="INTUNE_CLIENT_SECRET"):
            creds.get_client_secret()

    def test_token_is_cached(self, env):
        creds = CredentialManager(interactive=False, clock=FakeClock(1000))

        with requests_mock.Mocker() as m:
            m.post(TOKEN_URL, json={"access_token": "abc", "expires_in": 3600})
            assert creds.get_token() == "abc"
            assert creds.get_token() == "abc"

        assert m.call_count == 1
        body = m.last_request.text
        assert "grant_type=client_credentials" in body
        assert "client_id=client-1" in body

    def test_token_refreshed_before_expiry(self, env):
        clock = FakeClock(1000)
        creds = CredentialManager(refresh_margin=60, interactive=False, clock=clock)

        with requests_mock.Mocker() as m:
            m.post(
                TOKEN_URL,
                [
                    {"json": {"access_token": "first", "expires_in": 3600}},
                    {"json": {"access_token": "second", "expires_in": 3600}},
                ],
            )
            assert creds.get_token() == "first"
            clock.now = 1000 + 3600 - 61
            assert creds.get_token() == "first"
            clock.now = 1000 + 3600 - 60
            assert creds.get_token() == "second"

    def test_http_failure(self, env):
        creds = CredentialManager(interactive=False)

        with requests_mock.Mocker() as m:
            m.post(TOKEN_URL, status_code=401, json={"error": "invalid_client"})
            with pytest.raises(DirectoryError, match="Token request failed"):
                creds.get_token()

    def test_response_without_token(self, env):
        creds = CredentialManager(interactive=False)

        with requests_mock.Mocker() as m:
            m.post(TOKEN_URL, json={"token_type": "Bearer"})
            with pytest.raises(DirectoryError, match="no access_token"):
                creds.get_token()
