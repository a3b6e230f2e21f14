# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import getpass
import os
import sys
import time

from dotenv import load_dotenv
import requests

from intunecycle.exceptions import ConfigError, DirectoryError

TOKEN_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"


class CredentialManager:
    """
    Loads INTUNE_* environment variables (optionally from .env) and manages
    a cached Microsoft Graph access token that is refreshed automatically
    when it is about to expire.

    One instance is handed to each GraphDirectoryClient; there is no
    process-wide token.
    """

    def __init__(
        self,
        env_prefix: str = "INTUNE_",
        refresh_margin: int = 60,
        *,
        interactive: bool | None = None,
        clock=time.time,
    ) -> None:
        """
        :param env_prefix: Prefix used for environment variables.
        :param refresh_margin: Seconds before real expiry when we proactively refresh.
        :param interactive: Prompt for a missing client secret. Defaults to
            whether stdin is a terminal.
        :param clock: Source of the current UNIX time.
        """
        load_dotenv()
        self.env_prefix = env_prefix
        self.refresh_margin = refresh_margin
        self.interactive = sys.stdin.isatty() if interactive is None else interactive
        self._clock = clock
        self._token: str | None = None
        self._token_expires_at: int | None = None  # UNIX epoch

    # --------------------------------------------------------------------- #
    # Helper: read required env var
    # --------------------------------------------------------------------- #
    def _env(self, key: str) -> str:
        full_key = f"{self.env_prefix}{key}"
        value = os.getenv(full_key)
        if not value:
            raise ConfigError(f"Missing required environment variable: {full_key}")
        return value

    # --------------------------------------------------------------------- #
    # Public getters for ID / secret
    # --------------------------------------------------------------------- #
    def get_client_id(self) -> str:
        return self._env("CLIENT_ID")

    def get_tenant_id(self) -> str:
        return self._env("TENANT_ID")

    def get_client_secret(self) -> str:
        try:
            return self._env("CLIENT_SECRET")
        except ConfigError:
            if not self.interactive:
                raise
            return getpass.getpass("Enter your client secret: ")

    # --------------------------------------------------------------------- #
    # Token handling
    # --------------------------------------------------------------------- #
    def _token_expired(self) -> bool:
        if self._token is None or self._token_expires_at is None:
            return True
        return self._clock() >= (self._token_expires_at - self.refresh_margin)

    def _fetch_token(self) -> None:
        """
        Performs the client-credentials flow and stores
        self._token and self._token_expires_at.
        """
        url = TOKEN_URL.format(tenant=self.get_tenant_id())
        data = {
            "client_id": self.get_client_id(),
            "client_secret": self.get_client_secret(),
            "grant_type": "client_credentials",
            "scope": GRAPH_SCOPE,
        }

        try:
            response = requests.post(url, data=data, timeout=30)
            response.raise_for_status()
            token_data = response.json()
            token = token_data["access_token"]
        except requests.RequestException as err:
            raise DirectoryError(f"Token request failed: {err}") from err
        except (KeyError, ValueError) as err:
            raise DirectoryError("Token response has no access_token") from err

        self._token = token
        # expires_in is seconds until expiry
        expires_in = int(token_data.get("expires_in", 0))
        self._token_expires_at = int(self._clock()) + expires_in

    def get_token(self) -> str:
        """
        Returns a valid access token, refreshing it when necessary.
        """
        if self._token_expired():
            self._fetch_token()
        # At this point self._token is guaranteed to be str and valid
        return self._token  # type: ignore[return-value]
