"""Tests for the signed clientState cookie."""
import time

from linked_roles.state_cookie import read_state, sign_state, state_matches

SECRET = "cookie-secret-for-tests-0123456789abcdef"


def test_round_trip():
    assert read_state(sign_state("abc", SECRET), SECRET) == "abc"


def test_wrong_secret_rejected():
    assert read_state(sign_state("abc", SECRET), "another-secret-0123456789abcdef012345") is None


def test_tampered_value_rejected():
    value = sign_state("abc", SECRET)
    head, _, sig = value.split(".")
    other_payload = sign_state("evil", SECRET).split(".")[1]
    tampered = f"{head}.{other_payload}.{sig}"
    assert read_state(tampered, SECRET) is None


def test_expired_cookie_rejected():
    value = sign_state("abc", SECRET, max_age=300, now=int(time.time()) - 301)
    assert read_state(value, SECRET) is None


def test_missing_cookie():
    assert read_state(None, SECRET) is None
    assert read_state("", SECRET) is None
    assert read_state("not-a-jwt", SECRET) is None


def test_state_matches():
    assert state_matches("abc", "abc") is True
    assert state_matches("abc", "abd") is False
    assert state_matches(None, "abc") is False
    assert state_matches("abc", None) is False
    assert state_matches("", "") is False
