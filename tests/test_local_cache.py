from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from samvaad.errors import LocalCacheError
from samvaad.models.auth_models import CachedSession, PendingSignup
from samvaad.models.enums import DeafUserIssue
from samvaad.schema import CURRENT_SCHEMA_VERSION, initialize_schema
from samvaad.services.pending_signup_cache import PendingSignupCacheService
from samvaad.services.session_cache import SessionTokenCache
from samvaad.utils.machine_cipher import MachineBoundCipher


@pytest.fixture
def pending_cache(local_db, cipher, logger):
    return PendingSignupCacheService(db=local_db, cipher=cipher, logger=logger)


@pytest.fixture
def token_store(local_db, cipher, logger):
    return SessionTokenCache(db=local_db, cipher=cipher, logger=logger, max_age_days=7)


def test_cipher_rejects_tampered_ciphertext(cipher):
    ciphertext, nonce, tag = cipher.encrypt(b"roll 482913")

    assert cipher.decrypt(ciphertext, nonce, tag) == b"roll 482913"
    with pytest.raises(ValueError):
        cipher.decrypt(bytes(b ^ 0xFF for b in ciphertext), nonce, tag)


def test_cipher_salt_is_reused(tmp_path, logger):
    salt = tmp_path / "salt.bin"
    first = MachineBoundCipher(logger=logger, salt_path=salt, iterations=1_000)
    second = MachineBoundCipher(logger=logger, salt_path=salt, iterations=1_000)

    assert second.decrypt(*first.encrypt(b"payload")) == b"payload"
    assert salt.read_bytes() and len(salt.read_bytes()) == 32


def test_schema_is_idempotent(local_db, logger):
    initialize_schema(local_db.sqlite, logger)

    row = local_db.sqlite.execute("SELECT version FROM schema_version").fetchone()
    assert row[0] == CURRENT_SCHEMA_VERSION


async def test_pending_signup_lifecycle(pending_cache, local_db):
    payload = PendingSignup(
        identity_id="u1", email="asha@example.com", name="Asha", issues=[DeafUserIssue.TOTAL],
    )

    await pending_cache.set("u1", payload)
    raw = local_db.sqlite.execute("SELECT encrypted_payload FROM pending_signups").fetchone()
    assert b"asha@example.com" not in raw["encrypted_payload"]

    loaded = await pending_cache.get("u1")
    assert loaded == payload

    await pending_cache.set("u1", payload.model_copy(update={"name": "Asha Rao"}))
    assert (await pending_cache.get("u1")).name == "Asha Rao"

    await pending_cache.delete("u1")
    assert await pending_cache.get("u1") is None


async def test_corrupted_pending_row_is_purged(pending_cache, local_db):
    await pending_cache.set("u1", PendingSignup(identity_id="u1", email="a@b.co", name="Asha"))
    local_db.sqlite.execute("UPDATE pending_signups SET tag = ?", (b"\x00" * 16,))
    local_db.sqlite.commit()

    assert await pending_cache.get("u1") is None
    assert local_db.sqlite.execute("SELECT COUNT(*) FROM pending_signups").fetchone()[0] == 0


async def test_closed_database_raises_cache_error(pending_cache, local_db):
    local_db.close()

    with pytest.raises(LocalCacheError):
        await pending_cache.get("u1")


async def test_token_cache_round_trip_and_clear(token_store):
    assert await token_store.load_cached_session() is None

    assert await token_store.cache_session("u1", "asha@example.com", "refresh-1") is True
    cached = await token_store.load_cached_session()
    assert cached.refresh_token == "refresh-1"

    await token_store.clear_session()
    assert await token_store.load_cached_session() is None


async def test_stale_token_is_ignored(token_store, local_db, cipher):
    stale = CachedSession(
        user_id="u1",
        email="asha@example.com",
        refresh_token="old",
        cached_at=(datetime.now(timezone.utc) - timedelta(days=8)).isoformat(),
    )
    ciphertext, nonce, tag = cipher.encrypt(stale.model_dump_json().encode("utf-8"))
    local_db.sqlite.execute(
        "INSERT INTO encrypted_sessions (id, encrypted_payload, nonce, tag) VALUES (1, ?, ?, ?)",
        (ciphertext, nonce, tag),
    )
    local_db.sqlite.commit()

    assert await token_store.load_cached_session() is None


async def test_token_from_another_machine_is_unreadable(token_store, local_db, tmp_path, logger):
    await token_store.cache_session("u1", "asha@example.com", "refresh-1")
    foreign = SessionTokenCache(
        db=local_db,
        cipher=MachineBoundCipher(logger=logger, salt_path=tmp_path / "other-salt.bin", iterations=1_000),
        logger=logger,
    )

    assert await foreign.load_cached_session() is None
