"""
Linked Roles web service.
GET /linked-role starts the Discord leg; the two OAuth callbacks finish it; /update-metadata re-syncs.
Port 3000 by default.
"""
import html
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from linked_roles import config
from linked_roles.discord import DiscordClient
from linked_roles.errors import StateExpired, StateMismatch
from linked_roles.guild_sync import GuildSync
from linked_roles.metadata import MetadataPublisher
from linked_roles.orchestrator import LinkingOrchestrator, Redirect
from linked_roles.scoutid import ScoutIDClient
from linked_roles.scoutnet import ScoutNetClient, question_map_from_config
from linked_roles.state_cookie import read_state, sign_state
from linked_roles.store import CredentialStore

logger = logging.getLogger(__name__)


def build_orchestrator(store: CredentialStore, http: httpx.Client) -> LinkingOrchestrator:
    """Wire provider clients, publisher and guild sync from config around an open store."""
    discord = DiscordClient(
        client_id=config.DISCORD_CLIENT_ID,
        client_secret=config.DISCORD_CLIENT_SECRET,
        redirect_uri=config.DISCORD_REDIRECT_URI,
        bot_token=config.DISCORD_TOKEN or None,
        http=http,
    )
    scoutid = ScoutIDClient(
        client_id=config.SCOUTID_CLIENT_ID,
        client_secret=config.SCOUTID_CLIENT_SECRET,
        redirect_uri=config.SCOUTID_REDIRECT_URI,
        http=http,
    )
    scoutnet = ScoutNetClient(
        event_id=config.SCOUTNET_EVENT_ID,
        participants_key=config.SCOUTNET_PARTICIPANTS_APIKEY,
        http=http,
    )
    publisher = MetadataPublisher(
        store=store,
        discord=discord,
        scoutid=scoutid,
        scoutnet=scoutnet,
        question_map=question_map_from_config(config.SCOUTNET_QUESTION_MAP, config.SCOUTNET_QUESTION_MAP_FILE),
    )
    return LinkingOrchestrator(
        store=store,
        discord=discord,
        scoutid=scoutid,
        publisher=publisher,
        guild_sync=GuildSync(store=store, discord=discord, guild_id=config.DISCORD_GUILD_ID),
        assign_roles=config.DISCORD_ASSIGN_ROLES,
        participant_role=config.DISCORD_PARTICIPANT_ROLE,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the credential store and the shared HTTP client on startup; close both on shutdown."""
    if not config.COOKIE_SECRET:
        raise RuntimeError("COOKIE_SECRET must be set")
    store = CredentialStore.from_url(config.DATABASE_URL)
    http = httpx.Client(timeout=config.HTTP_TIMEOUT)
    try:
        store.purge_expired()
        app.state.orchestrator = build_orchestrator(store, http)
        yield
    finally:
        http.close()
        store.close()


app = FastAPI(title="Linked Roles", version="1.0.0", lifespan=lifespan)


def get_orchestrator(request: Request) -> LinkingOrchestrator:
    return request.app.state.orchestrator


def _page(title: str, message: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{html.escape(title)}</title></head>
<body>
  <h1>{html.escape(title)}</h1>
  <p>{html.escape(message)}</p>
</body>
</html>""",
        status_code=status_code,
    )


def _forbidden() -> HTMLResponse:
    return _page("Forbidden", "Login could not be verified. Please start again from Discord.", 403)


def _server_error() -> HTMLResponse:
    return _page("Error", "Something went wrong. Please start again from Discord.", 500)


def _redirect_with_state(redirect: Redirect) -> RedirectResponse:
    """302 to the provider, carrying the correlation token in the signed clientState cookie."""
    response = RedirectResponse(url=redirect.url, status_code=302)
    response.set_cookie(
        key=config.STATE_COOKIE_NAME,
        value=sign_state(redirect.state, config.COOKIE_SECRET),
        max_age=config.STATE_COOKIE_MAX_AGE,
        httponly=True,
        samesite="lax",
        secure=config.COOKIE_SECURE,
    )
    return response


def _cookie_state(request: Request) -> str | None:
    return read_state(request.cookies.get(config.STATE_COOKIE_NAME), config.COOKIE_SECRET)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "linked_roles"}


@app.get("/", response_class=HTMLResponse)
def home():
    """Shows the server is up."""
    return HTMLResponse("👋")


@app.get("/linked-role")
def linked_role(request: Request):
    """
    Entry point configured as the Linked Roles Verification URL in the Discord developer portal.
    Redirects to Discord's OAuth2 consent dialog.
    """
    return _redirect_with_state(get_orchestrator(request).begin())


@app.get("/discord-oauth-callback")
def discord_oauth_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
):
    """
    Redirect target after the user approves the Discord app.
    Verifies state, stores Discord tokens, then redirects to ScoutID login.
    """
    logger.info("/discord-oauth-callback called")
    orchestrator = get_orchestrator(request)
    cookie_state = _cookie_state(request)
    if error:
        logger.info("Discord authorization not granted: %s", error)
        return _page("Login cancelled", "Discord authorization was not granted.", 400)
    try:
        redirect = orchestrator.complete_discord(code=code or "", state=state, cookie_state=cookie_state)
    except StateMismatch:
        return _forbidden()
    except Exception:
        logger.exception("Discord callback failed")
        return _server_error()
    return _redirect_with_state(redirect)


@app.get("/scoutid-oauth-callback", response_class=HTMLResponse)
def scoutid_oauth_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
):
    """
    Redirect target after ScoutID login.
    Links the ScoutID account to the Discord user, pushes metadata and syncs the nickname.
    """
    logger.info("/scoutid-oauth-callback called")
    orchestrator = get_orchestrator(request)
    cookie_state = _cookie_state(request)
    if error:
        logger.info("ScoutID authorization not granted: %s", error)
        return _page("Login cancelled", "ScoutID login was not completed.", 400)
    try:
        result = orchestrator.complete_scoutid(code=code or "", state=state, cookie_state=cookie_state)
    except (StateMismatch, StateExpired):
        return _forbidden()
    except Exception:
        logger.exception("ScoutID callback failed")
        return _server_error()
    response = _page("Connected", "Your ScoutID account is linked. You can go back to Discord.")
    response.delete_cookie(config.STATE_COOKIE_NAME)
    logger.info(
        "Linked Discord user %s; nickname updated in %s of %s guilds",
        result.discord_user_id,
        result.nickname.succeeded,
        result.nickname.attempted,
    )
    return response


async def _user_id_from(request: Request) -> str | None:
    user_id = request.query_params.get("userId")
    if user_id or request.method != "POST":
        return user_id
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            return None
        return str(body["userId"]) if isinstance(body, dict) and body.get("userId") else None
    form = await request.form()
    value = form.get("userId")
    return str(value) if value else None


@app.api_route("/update-metadata", methods=["GET", "POST"])
async def update_metadata(request: Request):
    """
    Called when external data changes (webhook or cron). Re-derives and pushes metadata for userId
    using stored tokens only. Unlinked users are a no-op.
    """
    logger.info("/update-metadata called")
    user_id = await _user_id_from(request)
    if not user_id:
        return Response(status_code=400)
    orchestrator = get_orchestrator(request)
    try:
        # Provider calls are blocking; keep them off the event loop
        await run_in_threadpool(orchestrator.sync_metadata, user_id)
    except Exception:
        logger.exception("Metadata update failed for Discord user %s", user_id)
        return Response(status_code=500)
    return Response(status_code=204)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "linked_roles.main:app",
        host="127.0.0.1",
        port=3000,
        reload=True,
    )
