from __future__ import annotations

import json
from pathlib import Path

import pytest

from support_agent.shared.services.session_store import SessionStore


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    store = SessionStore(tmp_path / "sessions.json")
    store.save("auth", "ses_1", model="openai/gpt-5", repository="/src/app")

    loaded = store.load("auth")
    assert loaded is not None
    assert loaded.session_id == "ses_1"
    assert loaded.model == "openai/gpt-5"
    assert loaded.repository == "/src/app"
    assert loaded.saved_at


def test_save_overwrites_and_lists_newest_first(tmp_path: Path) -> None:
    store = SessionStore(tmp_path / "sessions.json")
    store.save("a", "ses_1")
    store.save("b", "ses_2")
    store.save("a", "ses_3")

    names = [s.name for s in store.list_sessions()]
    assert names == ["a", "b"]
    assert store.load("a").session_id == "ses_3"


def test_missing_and_corrupt_files_read_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "sessions.json"
    store = SessionStore(path)
    assert store.list_sessions() == []
    path.write_text("{not json", encoding="utf-8")
    assert store.load("anything") is None
    assert store.list_sessions() == []


def test_entries_without_session_id_are_ignored(tmp_path: Path) -> None:
    path = tmp_path / "sessions.json"
    path.write_text(json.dumps({"broken": {"model": "x/y"}, "ok": {"session_id": "ses_9"}}), encoding="utf-8")
    store = SessionStore(path)
    assert [s.name for s in store.list_sessions()] == ["ok"]


def test_empty_name_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        SessionStore(tmp_path / "s.json").save("  ", "ses_1")


def test_delete(tmp_path: Path) -> None:
    store = SessionStore(tmp_path / "nested" / "sessions.json")
    store.save("a", "ses_1")
    assert store.delete("a")
    assert not store.delete("a")
    assert store.load("a") is None
    assert not list((tmp_path / "nested").glob("*.tmp"))
