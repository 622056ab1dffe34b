import json
import os
import stat
from pathlib import Path

import pytest

from terminuscli.domain.errors import SessionStoreError
from terminuscli.domain.models.common import SessionData
from terminuscli.infrastructure.session.file_store import FileSessionStore, extract_raw_token, sanitize_filename


@pytest.fixture
def store(tmp_path: Path) -> FileSessionStore:
    return FileSessionStore.for_cache_dir(tmp_path / "cache")


def _mode(path: Path) -> int:
    return stat.S_IMODE(os.stat(path).st_mode)


def test_session_round_trip_drops_machine_token(store: FileSessionStore):
    store.save_session(SessionData("sess", user_id="u-1", expires_at=123, email="dev@example.com", machine_token="mt"))

    on_disk = json.loads(store.session_file.read_text())
    loaded = store.load_session()

    assert "machine_token" not in on_disk
    assert loaded == SessionData("sess", user_id="u-1", expires_at=123, email="dev@example.com")


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
def test_files_are_private(store: FileSessionStore):
    store.save_session(SessionData("sess"))
    store.save_machine_token("dev@example.com", "mt")

    assert _mode(store.session_file) == 0o600
    assert _mode(store.tokens_dir / "dev@example.com") == 0o600
    assert _mode(store.tokens_dir) == 0o700


def test_missing_session_is_none(store: FileSessionStore):
    assert store.load_session() is None
    store.delete_session()


def test_expired_session_is_still_returned(store: FileSessionStore):
    store.save_session(SessionData("old", expires_at=1))
    assert store.load_session().is_expired()


def test_corrupt_session_raises(store: FileSessionStore):
    store.session_file.parent.mkdir(parents=True)
    store.session_file.write_text("{not json")
    with pytest.raises(SessionStoreError):
        store.load_session()


def test_machine_token_uses_php_token_format(store: FileSessionStore):
    store.save_machine_token("dev@example.com", "mt-123")

    data = json.loads((store.tokens_dir / "dev@example.com").read_text())

    assert data["token"] == "mt-123"
    assert data["email"] == "dev@example.com"
    assert isinstance(data["date"], int)
    assert store.load_machine_token("dev@example.com") == "mt-123"


def test_raw_token_files_are_accepted(store: FileSessionStore):
    store.tokens_dir.mkdir(parents=True)
    (store.tokens_dir / "ops@example.com").write_text("raw-token\n")
    assert store.load_machine_token("ops@example.com") == "raw-token"


def test_list_and_delete_machine_tokens(store: FileSessionStore):
    assert store.list_machine_tokens() == []
    store.save_machine_token("b@example.com", "t2")
    store.save_machine_token("a@example.com", "t1")

    assert store.list_machine_tokens() == ["a@example.com", "b@example.com"]

    store.delete_machine_token("a@example.com")
    store.delete_machine_token("a@example.com")
    assert store.list_machine_tokens() == ["b@example.com"]
    assert store.load_machine_token("a@example.com") is None


def test_token_names_cannot_escape_tokens_dir(store: FileSessionStore):
    store.save_machine_token("../../etc/evil", "t")
    assert store.list_machine_tokens() == ["evil"]
    with pytest.raises(SessionStoreError):
        sanitize_filename("..")


def test_extract_raw_token():
    assert extract_raw_token('{"token": "abc", "email": "x@y.z"}') == "abc"
    assert extract_raw_token("  plain  ") == "plain"
