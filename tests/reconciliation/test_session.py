"""
Session Store Tests.
"""

import json

import pytest

from wallet_reconciliation.session import SessionState, SessionStore


class TestSessionStore:
    """Tests for SessionStore persistence and hydration."""

    @pytest.mark.asyncio
    async def test_not_hydrated_until_hydrate(self, tmp_path):
        store = SessionStore(tmp_path / "session.json")
        assert store.hydrated is False

        state = await store.hydrate()

        assert store.hydrated is True
        assert state.avatar_id is None

    @pytest.mark.asyncio
    async def test_roundtrip_through_file(self, tmp_path):
        path = tmp_path / "nested" / "session.json"
        store = SessionStore(path)
        await store.hydrate()
        await store.update(avatar_id="avatar-1", selected_wallet_id="w1")

        restored = SessionStore(path)
        state = await restored.hydrate()

        assert state.avatar_id == "avatar-1"
        assert state.selected_wallet_id == "w1"

    @pytest.mark.asyncio
    async def test_corrupt_file_gives_empty_session(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text("{not json")
        store = SessionStore(path)

        state = await store.hydrate()

        assert store.hydrated is True
        assert state.avatar_id is None

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self):
        store = SessionStore()
        with pytest.raises(AttributeError):
            await store.update(colour="blue")

    @pytest.mark.asyncio
    async def test_clear(self, tmp_path):
        path = tmp_path / "session.json"
        store = SessionStore(path)
        await store.update(avatar_id="a")

        await store.clear()

        assert store.state.avatar_id is None
        assert json.loads(path.read_text())["avatar_id"] is None

    @pytest.mark.asyncio
    async def test_memory_only(self):
        store = SessionStore()
        await store.hydrate()
        await store.update(avatar_id="a")

        assert store.state.avatar_id == "a"

    def test_state_from_dict_without_timestamp(self):
        state = SessionState.from_dict({"avatar_id": "a"})
        assert state.avatar_id == "a"
        assert state.saved_at is not None
