"""
Linked Roles service configuration.
No secrets in this file; client secrets, bot token, API keys and the cookie secret come from env.
"""
import os


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes")


# Discord application (OAuth2 client + bot)
DISCORD_CLIENT_ID = os.environ.get("DISCORD_CLIENT_ID", "")
DISCORD_CLIENT_SECRET = os.environ.get("DISCORD_CLIENT_SECRET", "")
DISCORD_REDIRECT_URI = os.environ.get("DISCORD_REDIRECT_URI", "http://127.0.0.1:3000/discord-oauth-callback")
# Bot token for guild endpoints (nickname, roles) and metadata schema registration
DISCORD_TOKEN = os.environ.get("DISCORD_TOKEN", "")
# guilds scope is needed to enumerate the user's guilds when DISCORD_GUILD_ID is unset
DISCORD_SCOPES = os.environ.get("DISCORD_SCOPES", "role_connections.write identify guilds")
DISCORD_API_BASE = os.environ.get("DISCORD_API_BASE", "https://discord.com/api/v10").rstrip("/")
DISCORD_AUTHORIZE_URL = os.environ.get("DISCORD_AUTHORIZE_URL", "https://discord.com/api/oauth2/authorize")
# Operator-pinned guild; when set, guild sync only touches this guild
DISCORD_GUILD_ID = os.environ.get("DISCORD_GUILD_ID", "").strip() or None
# Name shown on the user's Discord profile next to the linked role connection
DISCORD_PLATFORM_NAME = os.environ.get("DISCORD_PLATFORM_NAME", "ScoutID")
# Role assignment after linking is opt-in
DISCORD_ASSIGN_ROLES = _env_bool("DISCORD_ASSIGN_ROLES", "false")
DISCORD_PARTICIPANT_ROLE = os.environ.get("DISCORD_PARTICIPANT_ROLE", "").strip() or None

# ScoutID (OIDC provider)
SCOUTID_ISSUER = os.environ.get("SCOUTID_ISSUER", "https://scoutid.se/simplesaml/module.php/oidc").rstrip("/")
SCOUTID_CLIENT_ID = os.environ.get("SCOUTID_CLIENT_ID", "")
SCOUTID_CLIENT_SECRET = os.environ.get("SCOUTID_CLIENT_SECRET", "")
SCOUTID_REDIRECT_URI = os.environ.get("SCOUTID_REDIRECT_URI", "http://127.0.0.1:3000/scoutid-oauth-callback")
SCOUTID_SCOPES = os.environ.get("SCOUTID_SCOPES", "openid profile email")

# ScoutNet (participant data for the event)
SCOUTNET_API_BASE = os.environ.get("SCOUTNET_API_BASE", "https://scoutnet.se/api").rstrip("/")
SCOUTNET_EVENT_ID = os.environ.get("SCOUTNET_EVENT_ID", "")
SCOUTNET_PARTICIPANTS_APIKEY = os.environ.get("SCOUTNET_PARTICIPANTS_APIKEY", "")
SCOUTNET_CACHE_SECONDS = int(os.environ.get("SCOUTNET_CACHE_SECONDS", "600"))
# Question map: JSON list inline, or a path to a JSON file. Unset = WSJ 2027 form defaults.
SCOUTNET_QUESTION_MAP = os.environ.get("SCOUTNET_QUESTION_MAP", "").strip() or None
SCOUTNET_QUESTION_MAP_FILE = os.environ.get("SCOUTNET_QUESTION_MAP_FILE", "").strip() or None

# Signed correlation cookie
COOKIE_SECRET = os.environ.get("COOKIE_SECRET", "")
STATE_COOKIE_NAME = "clientState"
STATE_COOKIE_MAX_AGE = 300
COOKIE_SECURE = _env_bool("COOKIE_SECURE", "true")

# Credential store (SQLite acceptable; any SQLAlchemy URL works)
DATABASE_URL = os.environ.get("LINKED_ROLES_DATABASE_URL", "sqlite:///./linked_roles.db")
# Pending ScoutID leg (state -> discord user, code_verifier)
LINK_STATE_TTL = 600
# Provider token sets stay in the store long enough for the refresh token to be used (default 30 days)
TOKEN_STORE_TTL = int(os.environ.get("LINKED_ROLES_TOKEN_STORE_TTL", str(30 * 24 * 3600)))

# Outbound HTTP
HTTP_TIMEOUT = float(os.environ.get("LINKED_ROLES_HTTP_TIMEOUT", "10.0"))
# 429 handling: total attempts and first backoff delay (doubles each retry)
RETRY_ATTEMPTS = 3
RETRY_BASE_DELAY = 1.0

# Guild sync
NICKNAME_MAX_LENGTH = 32
GUILD_SYNC_WORKERS = int(os.environ.get("LINKED_ROLES_GUILD_SYNC_WORKERS", "4"))
