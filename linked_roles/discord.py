"""
Discord API client: OAuth2 (user tokens), role-connection metadata, and bot-authenticated guild calls.
See https://discord.com/developers/docs/topics/oauth2 and .../resources/application-role-connection-metadata.
"""
import logging
import time
from typing import Any, Callable

import httpx

from linked_roles.config import (
    DISCORD_API_BASE,
    DISCORD_AUTHORIZE_URL,
    DISCORD_PLATFORM_NAME,
    DISCORD_SCOPES,
)
from linked_roles.pkce import build_authorize_url
from linked_roles.retry import raise_for_provider, send_with_retry

logger = logging.getLogger(__name__)

PROVIDER = "discord"


class DiscordClient:
    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        http: httpx.Client,
        bot_token: str | None = None,
        scopes: str = DISCORD_SCOPES,
        api_base: str = DISCORD_API_BASE,
        authorize_url: str = DISCORD_AUTHORIZE_URL,
        platform_name: str = DISCORD_PLATFORM_NAME,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.bot_token = bot_token
        self.scopes = scopes
        self.api_base = api_base.rstrip("/")
        self.authorize_endpoint = authorize_url
        self.platform_name = platform_name
        self._http = http
        self._sleep = sleep

    def _request(self, method: str, path: str, action: str, **kwargs) -> httpx.Response:
        response = send_with_retry(self._http, method, f"{self.api_base}{path}", sleep=self._sleep, **kwargs)
        return raise_for_provider(response, PROVIDER, action)

    def _bearer(self, access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    def _bot(self) -> dict[str, str]:
        if not self.bot_token:
            raise RuntimeError("DISCORD_TOKEN is not configured")
        return {"Authorization": f"Bot {self.bot_token}"}

    # --- OAuth2 ---

    def authorization_url(self, state: str) -> str:
        """Consent dialog URL for the bot's scopes; state is the correlation token."""
        return build_authorize_url(
            self.authorize_endpoint,
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            scope=self.scopes,
            state=state,
            extra={"prompt": "consent"},
        )

    def exchange_code(self, code: str) -> dict:
        """authorization_code grant -> access_token, refresh_token, expires_in."""
        response = self._request(
            "POST",
            "/oauth2/token",
            "fetching OAuth tokens",
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            },
            headers={"Accept": "application/json"},
        )
        return response.json()

    def refresh_tokens(self, refresh_token: str) -> dict:
        response = self._request(
            "POST",
            "/oauth2/token",
            "refreshing access token",
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
            headers={"Accept": "application/json"},
        )
        return response.json()

    def get_user(self, access_token: str) -> dict:
        """Current authorization info; returns the embedded user object (id, username, ...)."""
        response = self._request("GET", "/oauth2/@me", "fetching user data", headers=self._bearer(access_token))
        return response.json()["user"]

    # --- Role connection metadata ---

    def _role_connection_path(self) -> str:
        return f"/users/@me/applications/{self.client_id}/role-connection"

    def push_metadata(self, access_token: str, metadata: dict[str, Any]) -> None:
        """Replace the user's role connection metadata for this application."""
        self._request(
            "PUT",
            self._role_connection_path(),
            "pushing discord metadata",
            json={"platform_name": self.platform_name, "metadata": metadata},
            headers=self._bearer(access_token),
        )

    def register_metadata_schema(self, schema: list[dict]) -> list[dict]:
        """One-time registration of the metadata records guild admins can require."""
        response = self._request(
            "PUT",
            f"/applications/{self.client_id}/role-connections/metadata",
            "registering metadata schema",
            json=schema,
            headers=self._bot(),
        )
        return response.json()

    # --- Guilds ---

    def get_user_guilds(self, access_token: str) -> list[dict]:
        """Guilds the user is a member of (needs the guilds scope)."""
        response = self._request("GET", "/users/@me/guilds", "fetching user guilds", headers=self._bearer(access_token))
        return response.json()

    def update_nickname(self, guild_id: str, user_id: str, nickname: str) -> None:
        """Requires the bot to have Manage Nicknames in the guild."""
        self._request(
            "PATCH",
            f"/guilds/{guild_id}/members/{user_id}",
            f"updating nickname in guild {guild_id}",
            json={"nick": nickname},
            headers=self._bot(),
        )

    def get_guild_roles(self, guild_id: str) -> list[dict]:
        response = self._request("GET", f"/guilds/{guild_id}/roles", "fetching guild roles", headers=self._bot())
        return response.json()

    def add_member_role(self, guild_id: str, user_id: str, role_id: str) -> None:
        """Requires the bot to have Manage Roles and a role above the target role."""
        self._request(
            "PUT",
            f"/guilds/{guild_id}/members/{user_id}/roles/{role_id}",
            f"adding role {role_id} in guild {guild_id}",
            headers=self._bot(),
        )
