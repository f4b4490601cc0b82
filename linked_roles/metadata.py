"""
Metadata Publisher: derive the linked-role attributes for a Discord user from ScoutID/ScoutNet
and push them to Discord's role-connection endpoint.
If the upstream fetch fails for any reason an empty object is pushed, which clears roles
granted earlier (revoked consent, deleted account and outages are all treated the same).
"""
import logging
from typing import Any

from linked_roles.discord import DiscordClient
from linked_roles.refresh import discord_access_token, scoutid_access_token
from linked_roles.scoutid import ScoutIDClient
from linked_roles.scoutnet import ParticipantProfile, QuestionRule, ScoutNetClient, derive_profile
from linked_roles.store import CredentialStore

logger = logging.getLogger(__name__)

# Discord metadata types: number_lt=1, number_gt=2, number_eq=3, number_neq=4,
# datetime_lt=5, datetime_gt=6, boolean_eq=7, boolean_neq=8
BOOLEAN_EQ = 7
NUMBER_EQ = 3

METADATA_SCHEMA = [
    {
        "key": "accepted",
        "name": "Antagen",
        "description": "Registrerad som antagen på Scoutnet",
        "type": BOOLEAN_EQ,
    },
    {
        "key": "leader",
        "name": "Ledare",
        "description": "Registrerad som ledare på Scoutnet",
        "type": BOOLEAN_EQ,
    },
    {
        "key": "ist",
        "name": "IST",
        "description": "Registrerad som IST (Funktionär) på Scoutnet",
        "type": BOOLEAN_EQ,
    },
    {
        "key": "troop",
        "name": "Avdelning",
        "description": "Nummer på avdelningen i Scoutnet",
        "type": NUMBER_EQ,
    },
    {
        "key": "patrol",
        "name": "Patrull",
        "description": "Nummer på patrullen i Scoutnet",
        "type": NUMBER_EQ,
    },
]


def derive_metadata(profile: ParticipantProfile) -> dict[str, int]:
    """Profile -> role-connection metadata. Booleans as 1/0; unknown numbers are left out."""
    metadata: dict[str, Any] = {
        "accepted": int(profile.is_participant),
        "leader": int(profile.is_leader),
        "ist": int(profile.is_ist),
        "troop": profile.troop,
        "patrol": profile.patrol,
    }
    return {key: value for key, value in metadata.items() if value is not None}


class MetadataPublisher:
    def __init__(
        self,
        *,
        store: CredentialStore,
        discord: DiscordClient,
        scoutid: ScoutIDClient,
        scoutnet: ScoutNetClient,
        question_map: list[QuestionRule],
    ):
        self.store = store
        self.discord = discord
        self.scoutid = scoutid
        self.scoutnet = scoutnet
        self.question_map = question_map

    def participant_profile(self, subject_id: str) -> ParticipantProfile:
        """ScoutID userinfo (proves consent still holds) -> ScoutNet participant -> profile."""
        access_token = scoutid_access_token(self.store, self.scoutid, subject_id)
        scout_user = self.scoutid.get_user(access_token)
        participant = self.scoutnet.get_participant(scout_user.subject)
        return derive_profile(participant, self.question_map)

    def collect(self, subject_id: str) -> dict[str, int]:
        """Metadata for a linked ScoutID subject; {} if anything upstream fails."""
        try:
            return derive_metadata(self.participant_profile(subject_id))
        except Exception:
            logger.exception("Error fetching external data for ScoutID subject %s; clearing metadata", subject_id)
            return {}

    def sync(self, discord_user_id: str) -> dict[str, int] | None:
        """
        Recompute and push metadata for a Discord user.
        Returns the pushed metadata, or None when the user has no linked ScoutID (nothing is called).
        Failures of the Discord push itself propagate.
        """
        subject_id = self.store.get_link(discord_user_id)
        if not subject_id:
            logger.info("No linked ScoutID user for Discord user %s, skipping metadata update", discord_user_id)
            return None
        metadata = self.collect(subject_id)
        self.push(discord_user_id, metadata)
        return metadata

    def push(self, discord_user_id: str, metadata: dict[str, int]) -> None:
        access_token = discord_access_token(self.store, self.discord, discord_user_id)
        logger.info("Pushing metadata %s for Discord user %s", metadata, discord_user_id)
        self.discord.push_metadata(access_token, metadata)
