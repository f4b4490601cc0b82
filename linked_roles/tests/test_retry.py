"""Tests for the 429 backoff policy."""
import pytest

from conftest import DISCORD, ROLE_CONNECTION
from linked_roles.errors import ProviderError
from linked_roles.retry import send_with_retry


def test_rate_limited_twice_then_ok(fake_api, http, sleeps):
    fake_api.add("GET", f"{DISCORD}/oauth2/@me", (429, {"retry_after": 1}), (429, {"retry_after": 1}), (200, {"user": {"id": "42"}}))
    response = send_with_retry(http, "GET", f"{DISCORD}/oauth2/@me", sleep=sleeps.append)
    assert response.status_code == 200
    assert len(fake_api.calls("GET", f"{DISCORD}/oauth2/@me")) == 3
    assert sleeps == [1.0, 2.0]


def test_gives_up_after_three_attempts(fake_api, discord, sleeps):
    fake_api.add("PUT", ROLE_CONNECTION, (429, {"retry_after": 1}))
    with pytest.raises(ProviderError) as exc:
        discord.push_metadata("at", {})
    assert exc.value.status_code == 429
    assert len(fake_api.calls("PUT", ROLE_CONNECTION)) == 3
    assert sleeps == [1.0, 2.0]


def test_other_errors_are_not_retried(fake_api, discord, sleeps):
    fake_api.add("PUT", ROLE_CONNECTION, (500, {"message": "boom"}), (204, None))
    with pytest.raises(ProviderError) as exc:
        discord.push_metadata("at", {})
    assert exc.value.status_code == 500
    assert len(fake_api.calls("PUT", ROLE_CONNECTION)) == 1
    assert sleeps == []


def test_success_needs_no_retry(fake_api, discord, sleeps):
    fake_api.add("PUT", ROLE_CONNECTION, (204, None))
    discord.push_metadata("at", {"accepted": 1})
    assert len(fake_api.calls("PUT", ROLE_CONNECTION)) == 1
    assert sleeps == []
