"""
Register the role-connection metadata records with Discord. One-time action per application;
uses the bot token, not a user token.

    python -m linked_roles.register
"""
import logging

import httpx

from linked_roles import config
from linked_roles.discord import DiscordClient
from linked_roles.errors import ProviderError
from linked_roles.metadata import METADATA_SCHEMA

logger = logging.getLogger(__name__)


def register(discord: DiscordClient) -> list[dict]:
    records = discord.register_metadata_schema(METADATA_SCHEMA)
    logger.info("Registered %s metadata records for application %s", len(records), discord.client_id)
    return records


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    with httpx.Client(timeout=config.HTTP_TIMEOUT) as http:
        discord = DiscordClient(
            client_id=config.DISCORD_CLIENT_ID,
            client_secret=config.DISCORD_CLIENT_SECRET,
            redirect_uri=config.DISCORD_REDIRECT_URI,
            bot_token=config.DISCORD_TOKEN or None,
            http=http,
        )
        try:
            for record in register(discord):
                logger.info("  %s (type %s): %s", record.get("key"), record.get("type"), record.get("name"))
        except ProviderError as e:
            logger.error("Error pushing discord metadata schema: %s", e)
            return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
