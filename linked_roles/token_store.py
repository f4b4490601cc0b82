"""
Records kept in the credential store: provider token sets and the pending ScoutID leg.
expires_at is epoch seconds (time.time()); a token is expired once now > expires_at.
"""
import time
from dataclasses import asdict, dataclass, replace
from typing import Any


def _expires_at(token_response: dict, now: float | None = None) -> float:
    now = time.time() if now is None else now
    return now + int(token_response.get("expires_in", 0))


@dataclass
class DiscordTokenSet:
    access_token: str
    refresh_token: str
    expires_at: float

    @classmethod
    def from_token_response(cls, data: dict, now: float | None = None) -> "DiscordTokenSet":
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=_expires_at(data, now),
        )

    def expired(self, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return now > self.expires_at

    def refreshed(self, data: dict, now: float | None = None) -> "DiscordTokenSet":
        """New set from a refresh_token grant response; keeps the old refresh token if not rotated."""
        return replace(
            self,
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or self.refresh_token,
            expires_at=_expires_at(data, now),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "DiscordTokenSet":
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=float(data["expires_at"]),
        )


@dataclass
class ScoutIDTokenSet:
    # Back-reference used by metadata sync, which only ever starts from a Discord user id
    discord_user_id: str
    access_token: str
    refresh_token: str
    expires_at: float
    code_verifier: str

    @classmethod
    def from_token_response(
        cls,
        data: dict,
        *,
        discord_user_id: str,
        code_verifier: str,
        now: float | None = None,
    ) -> "ScoutIDTokenSet":
        return cls(
            discord_user_id=discord_user_id,
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token", ""),
            expires_at=_expires_at(data, now),
            code_verifier=code_verifier,
        )

    def expired(self, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return now > self.expires_at

    def refreshed(self, data: dict, now: float | None = None) -> "ScoutIDTokenSet":
        return replace(
            self,
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or self.refresh_token,
            expires_at=_expires_at(data, now),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ScoutIDTokenSet":
        return cls(
            discord_user_id=str(data["discord_user_id"]),
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token", ""),
            expires_at=float(data["expires_at"]),
            code_verifier=data.get("code_verifier", ""),
        )


@dataclass
class LinkState:
    """Pending ScoutID leg, keyed by the correlation token sent as OIDC state."""

    discord_user_id: str
    code_verifier: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "LinkState":
        return cls(discord_user_id=str(data["discord_user_id"]), code_verifier=data["code_verifier"])
