from __future__ import annotations

import re

import pytest

from trutharrow.identity.store import (
    ALIAS_COOKIE_MAX_AGE,
    ALIAS_KEY,
    FINGERPRINT_KEY,
    AliasStore,
    LocalStore,
    get_fingerprint,
)
from trutharrow.models import Identity

FINGERPRINT_RE = re.compile(r"^fp_\d+_[0-9a-z]{13}$")


def test_fingerprint_is_created_once_and_survives_reload(tmp_path) -> None:
    path = tmp_path / "client.json"
    store = LocalStore(path)

    fingerprint = get_fingerprint(store)

    assert FINGERPRINT_RE.match(fingerprint)
    assert get_fingerprint(store) == fingerprint
    assert get_fingerprint(LocalStore(path)) == fingerprint
    assert LocalStore(path).get_item(FINGERPRINT_KEY) == fingerprint


def test_cleared_storage_yields_new_fingerprint(tmp_path) -> None:
    store = LocalStore(tmp_path / "client.json")
    first = get_fingerprint(store)

    store.remove_item(FINGERPRINT_KEY)

    assert get_fingerprint(store) != first


def test_alias_round_trips_through_storage_and_cookie(tmp_path) -> None:
    path = tmp_path / "client.json"
    aliases = AliasStore(LocalStore(path))

    assert aliases.alias == ""
    assert aliases.set_alias("  Lunch Line Witness ") == "Lunch Line Witness"

    reloaded = LocalStore(path)
    assert AliasStore(reloaded).alias == "Lunch Line Witness"
    assert reloaded.get_cookie(ALIAS_KEY) == "Lunch Line Witness"
    header = reloaded.cookie_header(ALIAS_KEY)
    assert "Lunch%20Line%20Witness" in header
    assert f"Max-Age={ALIAS_COOKIE_MAX_AGE}" in header
    assert "Path=/" in header


def test_blank_alias_keeps_previous_value(tmp_path) -> None:
    aliases = AliasStore(LocalStore(tmp_path / "client.json"))
    aliases.set_alias("Student-22")

    assert aliases.set_alias("   ") == "Student-22"
    assert aliases.alias == "Student-22"


def test_unreadable_store_starts_empty(tmp_path) -> None:
    path = tmp_path / "client.json"
    path.write_text("{not json", encoding="utf-8")

    assert LocalStore(path).get_item(FINGERPRINT_KEY) is None


def test_identity_prefers_user_id() -> None:
    both = Identity(user_id="user-1", fingerprint="fp_1_x")

    assert both.key == "user:user-1"
    assert both.attribution() == ("user-1", None)
    assert Identity(fingerprint="fp_1_x").attribution() == (None, "fp_1_x")
    with pytest.raises(ValueError):
        Identity()
