"""Tests for the Metadata Publisher."""
import pytest

from conftest import (
    PARTICIPANTS,
    ROLE_CONNECTION,
    SCOUTID_USERINFO_URL,
    SCOUTNET_PARTICIPANTS_URL,
    USERINFO,
    store_discord_tokens,
    store_linked_scout,
)
from linked_roles.errors import ProviderError
from linked_roles.metadata import METADATA_SCHEMA, derive_metadata
from linked_roles.scoutnet import ParticipantProfile


def _upstream_ok(fake_api):
    fake_api.add("GET", SCOUTID_USERINFO_URL, (200, USERINFO))
    fake_api.add("GET", SCOUTNET_PARTICIPANTS_URL, (200, PARTICIPANTS))
    fake_api.add("PUT", ROLE_CONNECTION, (200, {}))


def test_derive_metadata():
    profile = ParticipantProfile(is_participant=True, is_leader=True, is_ist=False, troop=7, patrol=0)
    assert derive_metadata(profile) == {"accepted": 1, "leader": 1, "ist": 0, "troop": 7, "patrol": 0}


def test_derive_metadata_defaults_for_unknown_participant():
    assert derive_metadata(ParticipantProfile()) == {"accepted": 0, "leader": 0, "ist": 0}


def test_schema_keys_match_derived_metadata():
    profile = ParticipantProfile(is_participant=True, troop=1, patrol=1)
    assert {r["key"] for r in METADATA_SCHEMA} == set(derive_metadata(profile))


def test_sync_without_link_is_a_noop(fake_api, store, publisher):
    store_discord_tokens(store)
    assert publisher.sync("42") is None
    assert fake_api.requests == []


def test_sync_pushes_derived_metadata(fake_api, store, publisher):
    store_discord_tokens(store)
    store_linked_scout(store)
    _upstream_ok(fake_api)
    assert publisher.sync("42") == {"accepted": 1, "leader": 1, "ist": 0, "troop": 7, "patrol": 3}
    puts = fake_api.calls("PUT", ROLE_CONNECTION)
    assert len(puts) == 1
    assert puts[0].headers["Authorization"] == "Bearer discord-at"
    assert fake_api.json_bodies("PUT", ROLE_CONNECTION)[0] == {
        "platform_name": "ScoutID",
        "metadata": {"accepted": 1, "leader": 1, "ist": 0, "troop": 7, "patrol": 3},
    }
    userinfo = fake_api.calls("GET", SCOUTID_USERINFO_URL)[0]
    assert userinfo.headers["Authorization"] == "Bearer scoutid-at"


def test_scoutnet_failure_pushes_empty_metadata(fake_api, store, publisher):
    store_discord_tokens(store)
    store_linked_scout(store)
    fake_api.add("GET", SCOUTID_USERINFO_URL, (200, USERINFO))
    fake_api.add("GET", SCOUTNET_PARTICIPANTS_URL, (500, {"error": "down"}))
    fake_api.add("PUT", ROLE_CONNECTION, (200, {}))
    assert publisher.sync("42") == {}
    assert fake_api.json_bodies("PUT", ROLE_CONNECTION) == [{"platform_name": "ScoutID", "metadata": {}}]


def test_failure_after_earlier_success_clears_previous_value(fake_api, store, publisher):
    store_discord_tokens(store)
    store_linked_scout(store)
    fake_api.add("GET", SCOUTID_USERINFO_URL, (200, USERINFO), (401, {"error": "invalid_token"}))
    fake_api.add("GET", SCOUTNET_PARTICIPANTS_URL, (200, PARTICIPANTS))
    fake_api.add("PUT", ROLE_CONNECTION, (200, {}))
    publisher.sync("42")
    publisher.sync("42")
    first, second = fake_api.json_bodies("PUT", ROLE_CONNECTION)
    assert first["metadata"]["accepted"] == 1
    assert second["metadata"] == {}


def test_missing_scoutid_tokens_pushes_empty_metadata(fake_api, store, publisher):
    store_discord_tokens(store)
    store.set_link("42", "123")
    fake_api.add("PUT", ROLE_CONNECTION, (200, {}))
    assert publisher.sync("42") == {}
    assert fake_api.calls("GET", SCOUTID_USERINFO_URL) == []
    assert len(fake_api.calls("PUT", ROLE_CONNECTION)) == 1


def test_sync_is_idempotent(fake_api, store, publisher):
    store_discord_tokens(store)
    store_linked_scout(store)
    _upstream_ok(fake_api)
    publisher.sync("42")
    publisher.sync("42")
    first, second = fake_api.json_bodies("PUT", ROLE_CONNECTION)
    assert first == second


def test_discord_push_failure_propagates(fake_api, store, publisher):
    store_discord_tokens(store)
    store_linked_scout(store)
    fake_api.add("GET", SCOUTID_USERINFO_URL, (200, USERINFO))
    fake_api.add("GET", SCOUTNET_PARTICIPANTS_URL, (200, PARTICIPANTS))
    fake_api.add("PUT", ROLE_CONNECTION, (401, {"message": "401: Unauthorized"}))
    with pytest.raises(ProviderError):
        publisher.sync("42")
