import json

import pytest

from wishsync.core.errors import InvalidReference, LocalStorageFailure
from wishsync.core.prefs import LocalPreferences
from wishsync.following import FOLLOWED_LISTS_KEY, FollowedLists
from wishsync.identity import USER_ID_KEY, IdentityProvider


# ── Identity ──────────────────────────────────────────────────────────────────

def test_identity_is_created_once_and_persisted(tmp_path):
    prefs = LocalPreferences(tmp_path / "prefs.json")

    first = IdentityProvider(prefs).get_or_create_identity()
    assert first
    assert IdentityProvider(prefs).get_or_create_identity() == first

    stored = json.loads((tmp_path / "prefs.json").read_text(encoding="utf-8"))
    assert stored[USER_ID_KEY] == first


def test_devices_get_distinct_identities(tmp_path):
    a = IdentityProvider(LocalPreferences(tmp_path / "a.json")).get_or_create_identity()
    b = IdentityProvider(LocalPreferences(tmp_path / "b.json")).get_or_create_identity()
    assert a != b


def test_corrupt_preferences_are_fatal(tmp_path):
    path = tmp_path / "prefs.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(LocalStorageFailure):
        IdentityProvider(LocalPreferences(path)).get_or_create_identity()


def test_blank_stored_identity_is_fatal(tmp_path):
    path = tmp_path / "prefs.json"
    path.write_text(json.dumps({USER_ID_KEY: "  "}), encoding="utf-8")

    with pytest.raises(LocalStorageFailure):
        IdentityProvider(LocalPreferences(path)).get_or_create_identity()


def test_unreadable_preferences_are_fatal(tmp_path):
    # A directory where the file should be.
    with pytest.raises(LocalStorageFailure):
        IdentityProvider(LocalPreferences(tmp_path)).get_or_create_identity()


def test_profile_and_rename(tmp_path):
    identity = IdentityProvider(LocalPreferences(tmp_path / "prefs.json"))

    assert identity.profile().name == ""
    renamed = identity.rename("  Camille ")
    assert renamed.name == "Camille"
    assert identity.profile().id == identity.get_or_create_identity()
    assert identity.profile().name == "Camille"


# ── Followed lists ────────────────────────────────────────────────────────────

def test_follow_is_idempotent(tmp_path):
    followed = FollowedLists(LocalPreferences(tmp_path / "prefs.json"))

    assert followed.add("L1") is True
    assert followed.add("L1") is False
    assert followed.ids() == frozenset({"L1"})
    assert followed.contains("L1")


def test_follow_survives_restart(tmp_path):
    path = tmp_path / "prefs.json"
    FollowedLists(LocalPreferences(path)).add("L1")
    FollowedLists(LocalPreferences(path)).add("L2")

    assert FollowedLists(LocalPreferences(path)).ids() == frozenset({"L1", "L2"})
    stored = json.loads(path.read_text(encoding="utf-8"))
    assert stored[FOLLOWED_LISTS_KEY] == ["L1", "L2"]


def test_returned_sets_are_snapshots(tmp_path):
    followed = FollowedLists(LocalPreferences(tmp_path / "prefs.json"))
    followed.add("L1")

    before = followed.ids()
    followed.add("L2")
    followed.remove("L1")

    assert before == frozenset({"L1"})
    assert followed.ids() == frozenset({"L2"})


def test_remove_unknown_list(tmp_path):
    followed = FollowedLists(LocalPreferences(tmp_path / "prefs.json"))
    assert followed.remove("never-followed") is False


def test_blank_list_id_is_rejected(tmp_path):
    followed = FollowedLists(LocalPreferences(tmp_path / "prefs.json"))
    with pytest.raises(InvalidReference):
        followed.add(" ")
    assert followed.ids() == frozenset()


def test_observers_see_changes_until_unsubscribed(tmp_path):
    followed = FollowedLists(LocalPreferences(tmp_path / "prefs.json"))
    seen = []

    unsubscribe = followed.subscribe(seen.append)
    followed.add("L1")
    followed.add("L1")
    followed.remove("L1")
    unsubscribe()
    followed.add("L2")

    assert seen == [frozenset({"L1"}), frozenset()]
