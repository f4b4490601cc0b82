"""
PKCE (RFC 7636) and authorization request helpers for both legs of the linking flow.
S256 only; state and nonce generation.
"""
import hashlib
import secrets
from base64 import urlsafe_b64encode
from urllib.parse import urlencode


def generate_state() -> str:
    """Opaque correlation token for CSRF protection; returned in callback and kept in the signed cookie."""
    return secrets.token_urlsafe(32)


def generate_nonce() -> str:
    """Random value for ID token binding; required when openid scope is requested."""
    return secrets.token_urlsafe(32)


def code_challenge_for(code_verifier: str) -> str:
    """base64url(SHA-256(verifier)) with padding stripped."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce() -> tuple[str, str]:
    """
    Generate code_verifier and code_challenge (S256).
    Returns (code_verifier, code_challenge). Verifier is 86 chars (512 bits entropy).
    """
    # 64 bytes -> 86 chars base64url, inside RFC 7636's 43..128 range
    code_verifier = secrets.token_urlsafe(64)
    return code_verifier, code_challenge_for(code_verifier)


def build_authorize_url(
    endpoint: str,
    *,
    client_id: str,
    redirect_uri: str,
    scope: str,
    state: str,
    code_challenge: str | None = None,
    nonce: str | None = None,
    extra: dict[str, str] | None = None,
) -> str:
    """Build a provider authorize URL with required and optional params."""
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": scope,
        "state": state,
    }
    if code_challenge:
        params["code_challenge"] = code_challenge
        params["code_challenge_method"] = "S256"
    if nonce:
        params["nonce"] = nonce
    if extra:
        params.update(extra)
    return f"{endpoint}?{urlencode(params)}"
