"""
ScoutID OIDC client (https://scoutid.se). Authorization code flow with PKCE S256.
Discovery: https://scoutid.se/simplesaml/module.php/oidc/openid-configuration.php
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable

import httpx

from linked_roles.config import SCOUTID_ISSUER, SCOUTID_SCOPES
from linked_roles.pkce import build_authorize_url, generate_nonce, generate_pkce, generate_state
from linked_roles.retry import raise_for_provider, send_with_retry

logger = logging.getLogger(__name__)

PROVIDER = "scoutid"


@dataclass
class AuthorizationRequest:
    state: str
    code_verifier: str
    url: str


@dataclass
class ScoutIDProfile:
    # ScoutNet member number; also the subject id the identity link points at
    subject: str
    name: str | None
    email: str | None


def profile_from_userinfo(data: dict) -> ScoutIDProfile:
    """
    Userinfo example (fields depend on granted scopes):
    {"sub": "123@scoutnet.se", "given_name": "Firstname", "family_name": "Lastname",
     "profile": "123", "email": "firstname.lastname@example.com"}
    """
    subject = data.get("profile") or str(data.get("sub", "")).split("@")[0]
    if not subject:
        raise ValueError("ScoutID userinfo has neither profile nor sub")
    name = " ".join(part for part in (data.get("given_name"), data.get("family_name")) if part).strip()
    return ScoutIDProfile(subject=str(subject), name=name or None, email=data.get("email"))


class ScoutIDClient:
    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        http: httpx.Client,
        scopes: str = SCOUTID_SCOPES,
        issuer: str = SCOUTID_ISSUER,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes
        self.issuer = issuer.rstrip("/")
        self._http = http
        self._sleep = sleep

    @property
    def authorize_endpoint(self) -> str:
        return f"{self.issuer}/authorize.php"

    @property
    def token_endpoint(self) -> str:
        return f"{self.issuer}/access_token.php"

    @property
    def userinfo_endpoint(self) -> str:
        return f"{self.issuer}/userinfo.php"

    def authorization_request(self) -> AuthorizationRequest:
        """Fresh state, nonce and PKCE pair plus the authorize URL carrying them."""
        state = generate_state()
        code_verifier, code_challenge = generate_pkce()
        url = build_authorize_url(
            self.authorize_endpoint,
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            scope=self.scopes,
            state=state,
            code_challenge=code_challenge,
            nonce=generate_nonce(),
        )
        return AuthorizationRequest(state=state, code_verifier=code_verifier, url=url)

    def _token_request(self, data: dict, action: str) -> dict:
        response = send_with_retry(
            self._http,
            "POST",
            self.token_endpoint,
            sleep=self._sleep,
            data={"client_id": self.client_id, "client_secret": self.client_secret, **data},
            headers={"Accept": "application/json"},
        )
        return raise_for_provider(response, PROVIDER, action).json()

    def exchange_code(self, code: str, code_verifier: str) -> dict:
        """authorization_code grant; the verifier must belong to the request that produced the code."""
        if not code:
            raise ValueError("Missing authorization code")
        if not code_verifier:
            raise ValueError("Missing PKCE code_verifier")
        return self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "code_verifier": code_verifier,
            },
            "fetching ScoutID OIDC tokens",
        )

    def refresh_tokens(self, refresh_token: str) -> dict:
        if not refresh_token:
            raise ValueError("No ScoutID refresh token stored")
        return self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            "refreshing ScoutID tokens",
        )

    def get_user(self, access_token: str) -> ScoutIDProfile:
        response = send_with_retry(
            self._http,
            "GET",
            self.userinfo_endpoint,
            sleep=self._sleep,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        return profile_from_userinfo(raise_for_provider(response, PROVIDER, "fetching ScoutID user data").json())
