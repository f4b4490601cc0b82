"""
Token refresh policy: before any call needing a provider access token, refresh the stored set
if now > expires_at and persist the new set. Refresh failures propagate; no stale-token fallback.
"""
import logging

from linked_roles.discord import DiscordClient
from linked_roles.errors import ReauthorizationRequired
from linked_roles.scoutid import ScoutIDClient
from linked_roles.store import CredentialStore

logger = logging.getLogger(__name__)


def discord_access_token(store: CredentialStore, discord: DiscordClient, discord_user_id: str) -> str:
    tokens = store.get_discord_tokens(discord_user_id)
    if tokens is None:
        raise ReauthorizationRequired("discord", discord_user_id)
    if tokens.expired():
        tokens = tokens.refreshed(discord.refresh_tokens(tokens.refresh_token))
        store.set_discord_tokens(discord_user_id, tokens)
        logger.info("Refreshed Discord tokens for user %s", discord_user_id)
    return tokens.access_token


def scoutid_access_token(store: CredentialStore, scoutid: ScoutIDClient, subject_id: str) -> str:
    tokens = store.get_scoutid_tokens(subject_id)
    if tokens is None:
        raise ReauthorizationRequired("scoutid", subject_id)
    if tokens.expired():
        # refreshed() keeps discord_user_id and code_verifier
        tokens = tokens.refreshed(scoutid.refresh_tokens(tokens.refresh_token))
        store.set_scoutid_tokens(subject_id, tokens)
        logger.info("Refreshed ScoutID tokens for subject %s", subject_id)
    return tokens.access_token
