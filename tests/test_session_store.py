"""
Tests for the Encrypted Session Store
=====================================
"""

import asyncio

import pytest

from pageproof_bridge.session import EMAIL_TAG, PASSWORD_HASH_TAG, SessionStore, hash_password

EMAIL = "studio@example.com"
PASSWORD = "correct horse battery staple"
SESSION = {"userId": "u-1", "token": "session-token", "keys": {"public": "pk"}}


@pytest.fixture
def session_path(tmp_path):
    return tmp_path / "session.json"


@pytest.fixture
def store(session_path) -> SessionStore:
    return SessionStore(session_path, "session-encryption-key")


class TestLoadAndSave:
    @pytest.mark.asyncio
    async def test_missing_file(self, store):
        assert await store.load(EMAIL, PASSWORD) is None

    @pytest.mark.asyncio
    async def test_roundtrip_strips_credential_tags(self, store):
        await store.save(SESSION, EMAIL, PASSWORD)

        loaded = await store.load(EMAIL, PASSWORD)

        assert loaded == SESSION
        assert EMAIL_TAG not in loaded
        assert PASSWORD_HASH_TAG not in loaded

    @pytest.mark.asyncio
    async def test_save_does_not_mutate_input(self, store):
        session = dict(SESSION)
        await store.save(session, EMAIL, PASSWORD)

        assert session == SESSION

    @pytest.mark.asyncio
    async def test_file_is_encrypted(self, store, session_path):
        await store.save(SESSION, EMAIL, PASSWORD)

        raw = session_path.read_bytes()
        assert EMAIL.encode() not in raw
        assert b"session-token" not in raw
        assert hash_password(PASSWORD).encode() not in raw

    @pytest.mark.asyncio
    @pytest.mark.parametrize("email,password", [
        ("other@example.com", PASSWORD),
        (EMAIL, "new password"),
    ])
    async def test_changed_credentials_ignore_session(self, store, email, password):
        await store.save(SESSION, EMAIL, PASSWORD)

        assert await store.load(email, password) is None

    @pytest.mark.asyncio
    async def test_wrong_key_cannot_read(self, store, session_path):
        await store.save(SESSION, EMAIL, PASSWORD)

        other = SessionStore(session_path, "a-different-key")

        assert await other.load(EMAIL, PASSWORD) is None

    @pytest.mark.asyncio
    async def test_corrupted_file(self, store, session_path):
        session_path.write_text("definitely not a fernet token")

        assert await store.load(EMAIL, PASSWORD) is None

    @pytest.mark.asyncio
    async def test_save_creates_parent_directory(self, tmp_path):
        store = SessionStore(tmp_path / "nested" / "dir" / "session.json", "k")

        await store.save(SESSION, EMAIL, PASSWORD)

        assert await store.load(EMAIL, PASSWORD) == SESSION


class TestHelpers:
    @pytest.mark.asyncio
    async def test_current_user(self, store):
        assert await store.current_user() is None

        await store.save(SESSION, EMAIL, PASSWORD)

        assert await store.current_user() == EMAIL

    @pytest.mark.asyncio
    async def test_clear(self, store, session_path):
        await store.save(SESSION, EMAIL, PASSWORD)

        assert await store.clear() is True
        assert session_path.exists() is False
        assert await store.clear() is False
        assert await store.load(EMAIL, PASSWORD) is None

    @pytest.mark.asyncio
    async def test_change_callbacks_run_on_save_and_clear(self, store):
        changes = []
        store.on_change(lambda: changes.append("changed"))

        await store.save(SESSION, EMAIL, PASSWORD)
        await store.clear()
        await store.clear()

        assert changes == ["changed", "changed"]

    @pytest.mark.asyncio
    async def test_concurrent_saves_leave_a_readable_file(self, store):
        sessions = [{"userId": f"u-{i}"} for i in range(10)]

        await asyncio.gather(*(store.save(s, EMAIL, PASSWORD) for s in sessions))

        loaded = await store.load(EMAIL, PASSWORD)
        assert loaded in sessions
        assert store.lock.locked is False

    def test_requires_key(self, session_path):
        with pytest.raises(ValueError):
            SessionStore(session_path, "")

    def test_password_hash_is_sha256_hex(self):
        digest = hash_password("secret")

        assert len(digest) == 64
        assert digest == "2bb80d537b1da3e38bd30361aa855686bde0eacd7162fef6a25fe97bf527a25b"
