import pytest

from cursor_usage import keys
from cursor_usage.database_manager import DatabaseManager
from cursor_usage.keys import KeyringSecretStore, redact
from cursor_usage.settings_store import (
    CHECK_UPDATE,
    COOKIE,
    MONTHLY_QUOTA,
    UPDATE_INTERVAL,
    SettingsStore,
)


def test_init_idempotent(db: DatabaseManager):
    # Second call should not raise and should not duplicate migrations
    db.init_db()
    rows = db.query_all("SELECT COUNT(*) as c FROM schema_migrations")
    assert rows[0]["c"] == 1


def test_defaults_and_typed_roundtrip(settings: SettingsStore):
    assert settings.get_int(MONTHLY_QUOTA) == 500
    assert settings.get_int(UPDATE_INTERVAL) == 30
    assert settings.get_boolean(CHECK_UPDATE) is True
    assert settings.get_string(COOKIE) == ""

    settings.set_int(MONTHLY_QUOTA, 1000)
    settings.set_boolean(CHECK_UPDATE, False)
    assert settings.get_int(MONTHLY_QUOTA) == 1000
    assert settings.get_boolean(CHECK_UPDATE) is False


def test_values_persist_across_store_instances(db: DatabaseManager):
    SettingsStore(db).set_string(COOKIE, "WorkosCursorSessionToken=abc")
    assert SettingsStore(db).get_string(COOKIE) == "WorkosCursorSessionToken=abc"


def test_bad_integer_falls_back_to_default(settings: SettingsStore):
    settings.set_string(UPDATE_INTERVAL, "soon")
    assert settings.get_int(UPDATE_INTERVAL) == 30


def test_handlers_fire_on_every_write_of_their_key(settings: SettingsStore):
    seen = []
    token = settings.subscribe(MONTHLY_QUOTA, seen.append)
    settings.subscribe(COOKIE, lambda k: seen.append("cookie"))
    settings.set_int(MONTHLY_QUOTA, 10)
    settings.set_int(MONTHLY_QUOTA, 10)
    assert seen == [MONTHLY_QUOTA, MONTHLY_QUOTA]

    settings.unsubscribe(token)
    settings.set_int(MONTHLY_QUOTA, 11)
    assert seen == [MONTHLY_QUOTA, MONTHLY_QUOTA]
    assert settings.subscription_count() == 1


def test_unsubscribe_twice_is_an_error(settings: SettingsStore):
    token = settings.subscribe(COOKIE, lambda k: None)
    settings.unsubscribe(token)
    with pytest.raises(KeyError):
        settings.unsubscribe(token)


def test_cookie_routed_to_secret_store(db: DatabaseManager, tmp_path, monkeypatch):
    monkeypatch.setattr(keys, "keyring", None)
    secrets = KeyringSecretStore(tmp_path)
    store = SettingsStore(db, secrets=secrets)
    store.set_string(COOKIE, "WorkosCursorSessionToken=secret-value")

    assert store.get_string(COOKIE) == "WorkosCursorSessionToken=secret-value"
    # never written to the settings table, and the fallback file is not plain text
    assert db.query_one("SELECT value FROM settings WHERE key=?", (COOKIE,)) is None
    raw = (tmp_path / "cookie.secret").read_bytes()
    assert b"secret-value" not in raw


def test_redact():
    assert redact(None) == "<none>"
    assert redact("abc") == "***"
    assert redact("WorkosCursorSessionToken=xyz") == "Wor***xyz"
