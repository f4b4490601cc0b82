"""
Linking flow: Discord OAuth2 leg, then ScoutID OIDC+PKCE leg, correlated through one signed
browser cookie. START -> DISCORD_AUTHORIZED -> LINKED; any verification failure aborts.

State persisted along the way is not rolled back on failure: Discord tokens stored before a
failed ScoutID leg mean "authorized with Discord, not yet linked".
"""
import logging
from dataclasses import dataclass

from linked_roles.discord import DiscordClient
from linked_roles.errors import StateExpired, StateMismatch
from linked_roles.guild_sync import GuildSync, GuildSyncSummary, role_names_for
from linked_roles.metadata import MetadataPublisher
from linked_roles.pkce import generate_state
from linked_roles.scoutid import ScoutIDClient
from linked_roles.state_cookie import state_matches
from linked_roles.store import CredentialStore
from linked_roles.token_store import DiscordTokenSet, LinkState, ScoutIDTokenSet

logger = logging.getLogger(__name__)


@dataclass
class Redirect:
    """Next hop: the correlation token to put in the signed cookie and where to send the browser."""

    state: str
    url: str


@dataclass
class LinkResult:
    discord_user_id: str
    scoutid_subject: str
    metadata: dict | None
    nickname: GuildSyncSummary
    roles: GuildSyncSummary | None = None


def verify_state(cookie_state: str | None, returned_state: str | None) -> None:
    """Forged callbacks and expired/cleared cookies are rejected identically."""
    if not state_matches(cookie_state, returned_state):
        logger.warning("State verification failed.")
        raise StateMismatch("State verification failed")


class LinkingOrchestrator:
    def __init__(
        self,
        *,
        store: CredentialStore,
        discord: DiscordClient,
        scoutid: ScoutIDClient,
        publisher: MetadataPublisher,
        guild_sync: GuildSync,
        assign_roles: bool = False,
        participant_role: str | None = None,
    ):
        self.store = store
        self.discord = discord
        self.scoutid = scoutid
        self.publisher = publisher
        self.guild_sync = guild_sync
        self.assign_roles = assign_roles
        self.participant_role = participant_role

    def begin(self) -> Redirect:
        """Transition 1: new correlation token and the Discord consent URL carrying it."""
        state = generate_state()
        return Redirect(state=state, url=self.discord.authorization_url(state))

    def complete_discord(self, *, code: str, state: str | None, cookie_state: str | None) -> Redirect:
        """
        Transition 2: verify state, exchange the code, store Discord tokens under the user id,
        then start the ScoutID leg with fresh state, nonce and PKCE pair.
        """
        verify_state(cookie_state, state)
        tokens = DiscordTokenSet.from_token_response(self.discord.exchange_code(code))
        user = self.discord.get_user(tokens.access_token)
        discord_user_id = str(user["id"])
        self.store.set_discord_tokens(discord_user_id, tokens)
        logger.info("Discord user %s authorized; starting ScoutID login", discord_user_id)

        request = self.scoutid.authorization_request()
        self.store.set_link_state(
            request.state,
            LinkState(discord_user_id=discord_user_id, code_verifier=request.code_verifier),
        )
        return Redirect(state=request.state, url=request.url)

    def complete_scoutid(self, *, code: str, state: str | None, cookie_state: str | None) -> LinkResult:
        """
        Transition 3: consume the pending leg, exchange the code with its PKCE verifier,
        link the identities, then publish metadata and sync nicknames once.
        """
        link_state = self.store.get_link_state(state) if state else None
        if link_state is None:
            logger.warning("No pending ScoutID login for state; flow must be restarted")
            raise StateExpired("Unknown or expired state")
        verify_state(cookie_state, state)
        # Single use: a replay of this state finds nothing
        self.store.delete_link_state(state)

        token_response = self.scoutid.exchange_code(code, link_state.code_verifier)
        tokens = ScoutIDTokenSet.from_token_response(
            token_response,
            discord_user_id=link_state.discord_user_id,
            code_verifier=link_state.code_verifier,
        )
        profile = self.scoutid.get_user(tokens.access_token)
        discord_user_id = link_state.discord_user_id
        logger.info("Got ScoutID user %s for Discord user %s", profile.subject, discord_user_id)

        # Link before token storage: a token set never exists without its link
        self.store.set_link(discord_user_id, profile.subject)
        self.store.set_scoutid_tokens(profile.subject, tokens)

        metadata = self.publisher.sync(discord_user_id)
        nickname = self.guild_sync.sync_nickname(discord_user_id, profile.name)
        roles = self._assign_roles(discord_user_id, profile.subject) if self.assign_roles else None
        return LinkResult(
            discord_user_id=discord_user_id,
            scoutid_subject=profile.subject,
            metadata=metadata,
            nickname=nickname,
            roles=roles,
        )

    def _assign_roles(self, discord_user_id: str, subject_id: str) -> GuildSyncSummary:
        try:
            profile = self.publisher.participant_profile(subject_id)
        except Exception as e:
            logger.warning("Cannot derive roles for Discord user %s: %s", discord_user_id, e)
            return GuildSyncSummary(action="role assignment", error=str(e))
        return self.guild_sync.assign_roles(discord_user_id, role_names_for(profile, self.participant_role))

    def sync_metadata(self, discord_user_id: str) -> dict | None:
        """On-demand re-sync from stored tokens only; None when the user is not linked."""
        return self.publisher.sync(discord_user_id)

    def unlink(self, discord_user_id: str) -> bool:
        """Drop the identity link and clear the published metadata. False if there was no link."""
        subject_id = self.store.get_link(discord_user_id)
        if not subject_id:
            return False
        self.store.delete_link(discord_user_id)
        self.store.delete_scoutid_tokens(subject_id)
        logger.info("Unlinked ScoutID user %s from Discord user %s", subject_id, discord_user_id)
        self.publisher.push(discord_user_id, {})
        return True
