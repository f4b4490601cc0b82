"""
Best-effort guild fan-out: nickname sync and role assignment.
Each guild yields an outcome; nothing here raises to the caller.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable

from linked_roles.config import GUILD_SYNC_WORKERS, NICKNAME_MAX_LENGTH
from linked_roles.discord import DiscordClient
from linked_roles.errors import LinkingError
from linked_roles.refresh import discord_access_token
from linked_roles.scoutnet import ParticipantProfile
from linked_roles.store import CredentialStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GuildOutcome:
    guild_id: str
    ok: bool
    reason: str | None = None


@dataclass
class GuildSyncSummary:
    action: str
    outcomes: list[GuildOutcome] = field(default_factory=list)
    # Set when the guild list itself could not be determined
    error: str | None = None

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)


def truncate_nickname(name: str) -> str:
    return name[:NICKNAME_MAX_LENGTH]


def role_names_for(profile: ParticipantProfile, participant_role: str | None = None) -> list[str]:
    """Guild role names for a participant: ledare, ist, avd<troop>, plus the optional participant role."""
    names = []
    if participant_role and profile.is_participant:
        names.append(participant_role.lower())
    if profile.is_leader:
        names.append("ledare")
    if profile.is_ist:
        names.append("ist")
    if profile.troop:
        names.append(f"avd{profile.troop}")
    return names


class GuildSync:
    def __init__(
        self,
        *,
        store: CredentialStore,
        discord: DiscordClient,
        guild_id: str | None = None,
        max_workers: int = GUILD_SYNC_WORKERS,
    ):
        self.store = store
        self.discord = discord
        self.guild_id = guild_id
        self.max_workers = max(1, max_workers)

    def guild_ids(self, discord_user_id: str) -> list[str]:
        """Pinned guild if configured, else every guild the user is a member of."""
        if self.guild_id:
            return [self.guild_id]
        access_token = discord_access_token(self.store, self.discord, discord_user_id)
        return [str(g["id"]) for g in self.discord.get_user_guilds(access_token)]

    def _fan_out(
        self,
        action: str,
        discord_user_id: str,
        attempt: Callable[[str], None],
    ) -> GuildSyncSummary:
        summary = GuildSyncSummary(action=action)
        try:
            guild_ids = self.guild_ids(discord_user_id)
        except Exception as e:
            logger.warning("Cannot list guilds for %s of user %s: %s", action, discord_user_id, e)
            summary.error = str(e)
            return summary

        def _run(guild_id: str) -> GuildOutcome:
            try:
                attempt(guild_id)
            except Exception as e:
                # Bot not in the guild, or missing permission
                logger.info("Cannot do %s in guild %s: %s", action, guild_id, e)
                return GuildOutcome(guild_id=guild_id, ok=False, reason=str(e))
            return GuildOutcome(guild_id=guild_id, ok=True)

        if guild_ids:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(guild_ids))) as pool:
                summary.outcomes = list(pool.map(_run, guild_ids))
        logger.info(
            "%s for user %s succeeded in %s out of %s guilds",
            action,
            discord_user_id,
            summary.succeeded,
            summary.attempted,
        )
        return summary

    def sync_nickname(self, discord_user_id: str, name: str | None) -> GuildSyncSummary:
        """Set the user's nickname in each guild where the bot can manage nicknames."""
        if not name or not name.strip():
            logger.info("No name for Discord user %s, skipping nickname update", discord_user_id)
            return GuildSyncSummary(action="nickname update")
        nickname = truncate_nickname(name.strip())
        return self._fan_out(
            "nickname update",
            discord_user_id,
            lambda guild_id: self.discord.update_nickname(guild_id, discord_user_id, nickname),
        )

    def assign_roles(self, discord_user_id: str, role_names: list[str]) -> GuildSyncSummary:
        """Add the named roles (case-insensitive) in each guild; a guild without any of them fails."""
        if not role_names:
            return GuildSyncSummary(action="role assignment")
        wanted = {name.lower() for name in role_names}

        def _assign(guild_id: str) -> None:
            roles = [r for r in self.discord.get_guild_roles(guild_id) if r.get("name", "").lower() in wanted]
            if not roles:
                raise LinkingError(f"Roles {sorted(wanted)} not found in guild {guild_id}")
            for role in roles:
                self.discord.add_member_role(guild_id, discord_user_id, str(role["id"]))

        return self._fan_out("role assignment", discord_user_id, _assign)
