"""
Chat History Store

Keeps per-session message lists with a sliding expiry: every saved message
pushes the session's expiry out by ``ttl_seconds``. Expired sessions read as
empty. Sessions can optionally be persisted as JSON files.

History is only stored and returned to the caller; it is never fed back into
retrieval or the prompt.
"""

import json
import logging
import re
import threading
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

_SESSION_ID_PATTERN = re.compile(r'^[A-Za-z0-9_\-]+$')


class ChatHistoryStore:
    """
    Session message store.

    Features:
    - Session creation
    - Append-only message lists with timestamps
    - Sliding TTL per session
    - Optional persistence to JSON files
    """

    def __init__(
        self,
        history_limit: int = 50,
        ttl_seconds: int = 86400,
        storage_dir: Optional[str] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            history_limit: Default number of messages returned by get_history
            ttl_seconds: Session lifetime after its last saved message
            storage_dir: Directory for session files (None: in-memory only)
            clock: Wall clock in seconds (injectable for tests)
        """
        self.history_limit = history_limit
        self.ttl_seconds = ttl_seconds
        self._clock = clock

        # {session_id: {'messages': [...], 'expires_at': float}}
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

        self.storage_dir = Path(storage_dir) if storage_dir else None
        if self.storage_dir is not None:
            self.storage_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _key(session_id: str) -> str:
        # Session ids double as file names
        if not isinstance(session_id, str) or not _SESSION_ID_PATTERN.fullmatch(session_id):
            raise ValueError(f"Invalid session id: {session_id!r}")
        return f"chat:{session_id}"

    def _session_file(self, session_id: str) -> Path:
        return self.storage_dir / f"{session_id}.json"

    def _load(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Session record from memory, falling back to disk."""
        session = self.sessions.get(self._key(session_id))
        if session is None and self.storage_dir is not None:
            session_file = self._session_file(session_id)
            if session_file.exists():
                try:
                    with open(session_file, 'r', encoding='utf-8') as f:
                        session = json.load(f)
                    self.sessions[self._key(session_id)] = session
                except json.JSONDecodeError as e:
                    logger.error(f"Error decoding session file {session_id}: {e}")
                    return None

        if session is not None and session['expires_at'] <= self._clock():
            self._drop(session_id)
            return None
        return session

    def _save(self, session_id: str, session: Dict[str, Any]) -> None:
        self.sessions[self._key(session_id)] = session
        if self.storage_dir is None:
            return
        try:
            with open(self._session_file(session_id), 'w', encoding='utf-8') as f:
                json.dump(session, f, indent=2, ensure_ascii=False)
        except OSError as e:
            logger.error(f"Error saving session {session_id}: {e}")

    def _drop(self, session_id: str) -> None:
        self.sessions.pop(self._key(session_id), None)
        if self.storage_dir is not None:
            session_file = self._session_file(session_id)
            if session_file.exists():
                session_file.unlink()

    def create_session(self) -> str:
        """
        Create a new session id. The session exists once a message is saved.

        Returns:
            Unique session ID
        """
        session_id = str(uuid.uuid4())
        logger.info(f"Created new session: {session_id}")
        return session_id

    def save_message(self, session_id: str, message: Dict[str, Any]) -> Dict[str, Any]:
        """
        Append a message to a session and refresh its expiry.

        Args:
            session_id: Session identifier
            message: Message fields (id, message, sender, type, ...)

        Returns:
            The stored message, including its timestamp

        Raises:
            ValueError: If session_id contains characters other than
                letters, digits, ``_`` and ``-``
        """
        stored = {**message, 'timestamp': datetime.now().isoformat()}

        with self._lock:
            session = self._load(session_id) or {'messages': []}
            session['messages'].append(stored)
            session['expires_at'] = self._clock() + self.ttl_seconds
            self._save(session_id, session)

        logger.debug(f"Saved message to session {session_id}")
        return stored

    def get_history(self, session_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Most recent messages of a session, oldest first.

        Args:
            session_id: Session identifier
            limit: Maximum number of messages (default: history_limit)

        Returns:
            List of message dictionaries; empty for unknown or expired sessions
        """
        self._key(session_id)
        limit = self.history_limit if limit is None else limit
        if limit <= 0:
            return []

        with self._lock:
            session = self._load(session_id)
            if session is None:
                return []
            return list(session['messages'][-limit:])

    def clear_session(self, session_id: str) -> None:
        """
        Delete all history for a session.

        Args:
            session_id: Session identifier
        """
        with self._lock:
            self._drop(session_id)
        logger.info(f"Cleared session {session_id}")
