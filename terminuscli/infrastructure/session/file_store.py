"""File-based SessionStore.

The session lives in ``<cache>/session`` and machine tokens in
``<cache>/tokens/<email>``, using the JSON layout of the PHP Terminus client
so existing token files keep working. Everything is written owner-only.
"""

import json
import logging
import os
import time
from pathlib import Path
from typing import List, Optional

from terminuscli.domain.errors import SessionStoreError
from terminuscli.domain.interfaces.session_store import SessionStore
from terminuscli.domain.models.common import SessionData

logger = logging.getLogger(__name__)

DIR_MODE = 0o700
FILE_MODE = 0o600


def sanitize_filename(name: str) -> str:
    """Keeps only the last path component so an e-mail cannot escape the tokens dir."""
    safe = os.path.basename(name.replace("\\", "/"))
    if safe in ("", ".", ".."):
        raise SessionStoreError(f"invalid token name: {name!r}")
    return safe


def extract_raw_token(token_data: str) -> str:
    """Returns the machine token from either the JSON token format or a raw string."""
    try:
        parsed = json.loads(token_data)
    except ValueError:
        return token_data.strip()
    if isinstance(parsed, dict):
        return str(parsed.get("token") or "")
    return token_data.strip()


def _write_private(path: Path, content: str) -> None:
    path.parent.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, FILE_MODE)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(content)
    # an existing file keeps its old mode through O_CREAT
    os.chmod(path, FILE_MODE)


class FileSessionStore(SessionStore):
    """Stores the session and machine tokens under the cache directory."""

    def __init__(self, session_file: Path, tokens_dir: Path):
        self.session_file = Path(session_file)
        self.tokens_dir = Path(tokens_dir)

    @classmethod
    def for_cache_dir(cls, cache_dir: Path) -> "FileSessionStore":
        return cls(Path(cache_dir) / "session", Path(cache_dir) / "tokens")

    # --- Session ---

    def save_session(self, session: SessionData) -> None:
        data = session.to_dict()
        data.pop("machine_token", None)
        try:
            _write_private(self.session_file, json.dumps(data, indent=2))
        except OSError as e:
            raise SessionStoreError(f"failed to write session file: {e}") from e
        logger.debug(f"Session saved to {self.session_file}")

    def load_session(self) -> Optional[SessionData]:
        try:
            raw = self.session_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise SessionStoreError(f"failed to read session file: {e}") from e
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise SessionStoreError(f"failed to parse session file: {e}") from e
        if not isinstance(data, dict):
            raise SessionStoreError("session file does not contain a JSON object")
        return SessionData.from_dict(data)

    def delete_session(self) -> None:
        try:
            self.session_file.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise SessionStoreError(f"failed to delete session file: {e}") from e

    # --- Machine tokens ---

    def _token_path(self, email: str) -> Path:
        return self.tokens_dir / sanitize_filename(email)

    def save_machine_token(self, email: str, token: str) -> None:
        content = json.dumps({"token": token, "email": email, "date": int(time.time())}, indent=2)
        try:
            _write_private(self._token_path(email), content)
        except OSError as e:
            raise SessionStoreError(f"failed to write token file: {e}") from e
        logger.debug(f"Machine token saved for {email}")

    def load_machine_token(self, email: str) -> Optional[str]:
        try:
            raw = self._token_path(email).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise SessionStoreError(f"failed to read token file: {e}") from e
        return extract_raw_token(raw) or None

    def delete_machine_token(self, email: str) -> None:
        try:
            self._token_path(email).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise SessionStoreError(f"failed to delete token file: {e}") from e

    def list_machine_tokens(self) -> List[str]:
        if not self.tokens_dir.is_dir():
            return []
        return sorted(entry.name for entry in self.tokens_dir.iterdir() if entry.is_file())
