import json
from datetime import datetime, timedelta, timezone

import pytest

from whatsapp_bridge.models.conversation import ConversationContext
from whatsapp_bridge.services.session_store import SessionStore

from fakes import FakeSocket


# ----------------------------------------------------------------------
# Session store
# ----------------------------------------------------------------------

def test_context_last_write_wins(store):
    store.set_context("15551234567", ConversationContext("42", "7"))
    store.set_context("15551234567", ConversationContext("43", "8"))

    context = store.get_context("15551234567")
    assert (context.merchant_id, context.product_id) == ("43", "8")
    assert store.context_count() == 1


def test_context_expires_after_ttl():
    store = SessionStore(context_ttl=timedelta(minutes=10))
    stale = datetime.now(timezone.utc) - timedelta(minutes=11)
    store.set_context("15551234567", ConversationContext("42", "7", updated_at=stale))

    assert store.get_context("15551234567") is None
    assert store.context_count() == 0


def test_context_without_ttl_never_expires():
    store = SessionStore(context_ttl=None)
    old = datetime.now(timezone.utc) - timedelta(days=365)
    store.set_context("15551234567", ConversationContext("42", "7", updated_at=old))

    assert store.get_context("15551234567") is not None
    assert store.purge_expired_contexts() == 0


def test_purge_expired_contexts():
    store = SessionStore(context_ttl=timedelta(minutes=10))
    now = datetime.now(timezone.utc)
    store.set_context("1", ConversationContext("42", "7", updated_at=now - timedelta(minutes=30)))
    store.set_context("2", ConversationContext("42", "7", updated_at=now))

    assert store.purge_expired_contexts(now) == 1
    assert store.get_context("2") is not None


def test_clear_context(store):
    store.set_context("15551234567", ConversationContext("42", "7"))

    assert store.clear_context("15551234567") is True
    assert store.clear_context("15551234567") is False
    assert store.get_context("15551234567") is None


def test_remove_connection_ignores_replaced_handle(store):
    old, new = FakeSocket("42"), FakeSocket("42")
    store.set_connection("42", old)
    store.set_connection("42", new)

    assert store.remove_connection("42", old) is False
    assert store.get_connection("42") is new
    assert store.remove_connection("42", new) is True
    assert store.merchant_ids() == []


def test_qr_cache(store):
    store.set_qr("42", "data:image/svg+xml;base64,AAA")
    store.set_qr("42", "data:image/svg+xml;base64,BBB")
    assert store.get_qr("42") == "data:image/svg+xml;base64,BBB"

    store.remove_qr("42")
    assert store.get_qr("42") is None


def test_context_requires_both_ids():
    assert ConversationContext("42", "7").is_usable
    assert not ConversationContext("42", "").is_usable


# ----------------------------------------------------------------------
# Credential store
# ----------------------------------------------------------------------

async def test_credentials_save_and_load(credential_store):
    await credential_store.save("42", {"creds": {"me": {"id": "x"}}, "app-state-sync-key-AAA": {"keyData": "b64"}})

    loaded = await credential_store.load("42")

    assert loaded == {"creds": {"me": {"id": "x"}}, "app-state-sync-key-AAA": {"keyData": "b64"}}
    assert not list((credential_store.root / "42").glob("*.tmp"))


async def test_credentials_none_removes_entry(credential_store):
    await credential_store.save("42", {"creds": {"me": 1}, "session-abc": {"s": 1}})
    await credential_store.save("42", {"session-abc": None})

    assert await credential_store.load("42") == {"creds": {"me": 1}}


async def test_credentials_load_skips_corrupt_entries(credential_store):
    await credential_store.save("42", {"creds": {"me": 1}})
    (credential_store.root / "42" / "broken.json").write_text("{not json")

    assert await credential_store.load("42") == {"creds": {"me": 1}}


async def test_credentials_load_unknown_merchant(credential_store):
    assert await credential_store.load("nobody") == {}


async def test_list_merchants_lists_directories_only(credential_store):
    await credential_store.save("42", {"creds": {}})
    await credential_store.save("43", {"creds": {}})
    (credential_store.root / "README.txt").write_text("not a merchant")

    assert sorted(await credential_store.list_merchants()) == ["42", "43"]


async def test_delete_credentials(credential_store):
    await credential_store.save("42", {"creds": {}})

    await credential_store.delete("42")
    await credential_store.delete("42")

    assert not await credential_store.exists("42")


def test_merchant_dir_rejects_path_traversal(credential_store):
    for merchant_id in ("", "..", "a/b", "a\\b"):
        with pytest.raises(ValueError):
            credential_store.merchant_dir(merchant_id)


async def test_credential_entry_names_stay_in_directory(credential_store):
    await credential_store.save("42", {"pre-key/1": {"k": 1}})

    files = [p.name for p in (credential_store.root / "42").iterdir()]
    assert files == ["pre-key%2F1.json"]
    assert json.loads((credential_store.root / "42" / "pre-key%2F1.json").read_text()) == {"k": 1}


async def test_credential_entry_names_load_back_unchanged(credential_store):
    entries = {
        "session-212600000000:7@s.whatsapp.net": {"s": 1},
        "pre-key/1": {"k": 1},
        "a/b": {"v": "slash"},
        "a__b": {"v": "underscores"},
        "creds": {"me": None},
    }
    await credential_store.save("42", entries)

    assert await credential_store.load("42") == entries
    assert len(list((credential_store.root / "42").iterdir())) == len(entries)
