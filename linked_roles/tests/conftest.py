"""
Pytest configuration for linked_roles. Env is set before the app is imported; outbound HTTP goes
to an httpx.MockTransport and the credential store is in-memory SQLite.
"""
import os

os.environ["LINKED_ROLES_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["COOKIE_SECRET"] = "test-cookie-secret-0123456789abcdef0123456789"
os.environ["COOKIE_SECURE"] = "false"
os.environ["DISCORD_CLIENT_ID"] = "app-123"
os.environ["DISCORD_CLIENT_SECRET"] = "discord-secret"
os.environ["DISCORD_TOKEN"] = "bot-token"
os.environ["SCOUTID_CLIENT_ID"] = "scoutid-client"
os.environ["SCOUTID_CLIENT_SECRET"] = "scoutid-secret"
os.environ["SCOUTNET_EVENT_ID"] = "999"
os.environ["SCOUTNET_PARTICIPANTS_APIKEY"] = "participants-key"
for _name in ("DISCORD_GUILD_ID", "DISCORD_ASSIGN_ROLES", "SCOUTNET_QUESTION_MAP", "SCOUTNET_QUESTION_MAP_FILE"):
    os.environ.pop(_name, None)

import json  # noqa: E402
import time  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402

from linked_roles.discord import DiscordClient  # noqa: E402
from linked_roles.guild_sync import GuildSync  # noqa: E402
from linked_roles.metadata import MetadataPublisher  # noqa: E402
from linked_roles.orchestrator import LinkingOrchestrator  # noqa: E402
from linked_roles.scoutid import ScoutIDClient  # noqa: E402
from linked_roles.scoutnet import ScoutNetClient, load_question_map  # noqa: E402
from linked_roles.store import CredentialStore  # noqa: E402
from linked_roles.token_store import DiscordTokenSet, ScoutIDTokenSet  # noqa: E402

DISCORD = "https://discord.com/api/v10"
SCOUTID = "https://scoutid.se/simplesaml/module.php/oidc"
SCOUTNET = "https://scoutnet.se/api"

ROLE_CONNECTION = f"{DISCORD}/users/@me/applications/app-123/role-connection"
DISCORD_TOKEN_URL = f"{DISCORD}/oauth2/token"
SCOUTID_TOKEN_URL = f"{SCOUTID}/access_token.php"
SCOUTID_USERINFO_URL = f"{SCOUTID}/userinfo.php"
SCOUTNET_PARTICIPANTS_URL = f"{SCOUTNET}/project/get/participants"

USERINFO = {
    "sub": "123@scoutnet.se",
    "given_name": "Petter",
    "family_name": "Sandholdt",
    "profile": "123",
    "email": "petter@example.com",
}

PARTICIPANTS = {
    "participants": {
        "123": {
            "member_no": 123,
            "first_name": "Petter",
            "last_name": "Sandholdt",
            "cancelled_date": None,
            "questions": {"82553": "55897", "82555": "55898", "82552": "7", "82554": "3"},
        }
    }
}


class FakeAPI:
    """
    Scripted provider responses keyed by (method, url without query).
    Each route holds a queue of (status, json_body); the last entry repeats.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], list[tuple[int, object]]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, url: str, *responses: tuple[int, object]) -> None:
        self.routes.setdefault((method, url), []).extend(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        queue = self.routes.get((request.method, url))
        if not queue:
            return httpx.Response(404, json={"message": "Unknown route"})
        status, body = queue.pop(0) if len(queue) > 1 else queue[0]
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    def calls(self, method: str, url: str) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == method and f"{r.url.scheme}://{r.url.host}{r.url.path}" == url
        ]

    def json_bodies(self, method: str, url: str) -> list:
        return [json.loads(r.content) for r in self.calls(method, url)]


@pytest.fixture
def fake_api():
    return FakeAPI()


@pytest.fixture
def http(fake_api):
    client = httpx.Client(transport=httpx.MockTransport(fake_api.handler))
    yield client
    client.close()


@pytest.fixture
def sleeps():
    """Backoff delays requested by the retry policy (no real sleeping in tests)."""
    return []


@pytest.fixture
def store():
    s = CredentialStore.from_url("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def discord(http, sleeps):
    return DiscordClient(
        client_id="app-123",
        client_secret="discord-secret",
        redirect_uri="http://testserver/discord-oauth-callback",
        bot_token="bot-token",
        http=http,
        sleep=sleeps.append,
    )


@pytest.fixture
def scoutid(http, sleeps):
    return ScoutIDClient(
        client_id="scoutid-client",
        client_secret="scoutid-secret",
        redirect_uri="http://testserver/scoutid-oauth-callback",
        http=http,
        sleep=sleeps.append,
    )


@pytest.fixture
def scoutnet(http, sleeps):
    return ScoutNetClient(event_id="999", participants_key="participants-key", http=http, sleep=sleeps.append)


@pytest.fixture
def publisher(store, discord, scoutid, scoutnet):
    return MetadataPublisher(
        store=store,
        discord=discord,
        scoutid=scoutid,
        scoutnet=scoutnet,
        question_map=load_question_map(),
    )


@pytest.fixture
def guild_sync(store, discord):
    return GuildSync(store=store, discord=discord, guild_id="guild-1")


@pytest.fixture
def orchestrator(store, discord, scoutid, publisher, guild_sync):
    return LinkingOrchestrator(
        store=store,
        discord=discord,
        scoutid=scoutid,
        publisher=publisher,
        guild_sync=guild_sync,
    )


def store_discord_tokens(store, user_id="42", *, expires_in=600, access_token="discord-at"):
    store.set_discord_tokens(
        user_id,
        DiscordTokenSet(access_token=access_token, refresh_token="discord-rt", expires_at=time.time() + expires_in),
    )


def store_linked_scout(store, user_id="42", subject="123", *, expires_in=600):
    store.set_link(user_id, subject)
    store.set_scoutid_tokens(
        subject,
        ScoutIDTokenSet(
            discord_user_id=user_id,
            access_token="scoutid-at",
            refresh_token="scoutid-rt",
            expires_at=time.time() + expires_in,
            code_verifier="v",
        ),
    )
