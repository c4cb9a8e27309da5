"""Tests for session list persistence."""

from __future__ import annotations

import asyncio
import json
import logging

import pytest

from conftest import FakeClock, make_session
from devgrid_auth.secret_store import MemorySecretStore
from devgrid_auth.session_store import STORAGE_KEY, SessionStore


class TestSessionStore:
    def test_load_empty(self, session_store: SessionStore) -> None:
        assert asyncio.run(session_store.load()) == []

    def test_roundtrip(self, session_store: SessionStore, clock: FakeClock) -> None:
        sessions = [
            make_session(clock, "s1", refresh_token="ref1", scopes=["b", "a"]),
            make_session(clock, "s2", refresh_token=None, account_id="user-2"),
        ]

        asyncio.run(session_store.save(sessions))
        loaded = asyncio.run(session_store.load())

        assert len(loaded) == 2
        for original, restored in zip(sessions, loaded):
            assert restored.id == original.id
            assert restored.access_token == original.access_token
            assert restored.refresh_token == original.refresh_token
            assert restored.expires_at == original.expires_at
            assert restored.account == original.account
            assert set(restored.scopes) == set(original.scopes)

    def test_saves_single_json_array(
        self, secrets: MemorySecretStore, session_store: SessionStore, clock: FakeClock
    ) -> None:
        asyncio.run(session_store.save([make_session(clock)]))

        raw = asyncio.run(secrets.get(STORAGE_KEY))
        assert raw is not None
        data = json.loads(raw)
        assert isinstance(data, list)
        assert data[0]["id"] == "s1"

    def test_saved_blob_uses_wire_format(
        self, secrets: MemorySecretStore, session_store: SessionStore, clock: FakeClock
    ) -> None:
        asyncio.run(
            session_store.save([make_session(clock, refresh_token=None, scopes=["openid", "read:repo"])])
        )

        record = json.loads(asyncio.run(secrets.get(STORAGE_KEY)) or "")[0]
        assert record["expires_at"] == "2026-01-01T13:00:00Z"
        assert record["refresh_token"] is None
        assert record["scopes"] == ["openid", "read:repo"]
        assert record["account"] == {"id": "user-1", "label": "Label user-1"}

    def test_save_replaces_whole_list(self, session_store: SessionStore, clock: FakeClock) -> None:
        asyncio.run(session_store.save([make_session(clock, "s1"), make_session(clock, "s2")]))
        asyncio.run(session_store.save([make_session(clock, "s3")]))

        assert [s.id for s in asyncio.run(session_store.load())] == ["s3"]

    @pytest.mark.parametrize("raw", ["{not json", "null", '{"id": 1}', '[{"id": "x"}]'])
    def test_corrupt_blob_is_treated_as_empty(
        self, raw: str, caplog: pytest.LogCaptureFixture
    ) -> None:
        store = SessionStore(MemorySecretStore({STORAGE_KEY: raw}))

        with caplog.at_level(logging.WARNING, logger="devgrid_auth.session_store"):
            assert asyncio.run(store.load()) == []

        assert "Failed to parse stored sessions" in caplog.text

    def test_clear(self, secrets: MemorySecretStore, session_store: SessionStore, clock: FakeClock) -> None:
        asyncio.run(session_store.save([make_session(clock)]))
        asyncio.run(session_store.clear())
        assert asyncio.run(secrets.get(STORAGE_KEY)) is None
