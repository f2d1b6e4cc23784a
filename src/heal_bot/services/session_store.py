"""Session and message storage."""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable

import aiofiles

from ..errors import NotFound
from ..models.chat import Channel, ChatMessage, ChatSession, utcnow
from .keyed_lock import KeyedLock

logger = logging.getLogger(__name__)

_TICK = timedelta(microseconds=1)


def default_title(now: datetime) -> str:
    return f"Chat Session - {now.strftime('%d/%m/%Y')}"


class SessionStore(ABC):
    """Ordered, keyed store of sessions and their messages."""

    @abstractmethod
    async def get_or_create(
        self,
        session_id: str | None,
        owner_key: str,
        channel: Channel = Channel.WEB,
        title: str | None = None,
    ) -> ChatSession:
        """Return the owner's session, or create one when no id is given.

        Raises:
            NotFound: the id is unknown or belongs to another owner.
        """

    @abstractmethod
    async def get(self, session_id: str, owner_key: str) -> ChatSession: ...

    @abstractmethod
    async def append(self, session_id: str, message: ChatMessage) -> ChatMessage: ...

    @abstractmethod
    async def append_turn(
        self,
        session_id: str,
        user_message: ChatMessage,
        reply_message: ChatMessage,
    ) -> tuple[ChatMessage, ChatMessage]: ...

    @abstractmethod
    async def history(
        self,
        session_id: str,
        limit: int = 50,
        offset: int = 0,
        owner_key: str | None = None,
    ) -> list[ChatMessage]: ...

    @abstractmethod
    async def recent(self, session_id: str, count: int) -> list[ChatMessage]:
        """Return the last ``count`` messages, oldest first."""

    @abstractmethod
    async def list_sessions(self, owner_key: str, limit: int = 20, offset: int = 0) -> list[ChatSession]: ...

    @abstractmethod
    async def delete(self, session_id: str, owner_key: str) -> None: ...


class InMemorySessionStore(SessionStore):
    """Dict-backed store.

    Appends are serialized per session id; different sessions never wait on
    each other.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock
        self._sessions: dict[str, ChatSession] = {}
        self._messages: dict[str, list[ChatMessage]] = {}
        self._locks = KeyedLock()

    async def get_or_create(
        self,
        session_id: str | None,
        owner_key: str,
        channel: Channel = Channel.WEB,
        title: str | None = None,
    ) -> ChatSession:
        if session_id:
            return self._owned(session_id, owner_key).model_copy()

        now = self.clock()
        session = ChatSession(
            channel=channel,
            owner_key=owner_key,
            title=title or default_title(now),
            created_at=now,
            updated_at=now,
        )
        self._sessions[session.session_id] = session
        self._messages[session.session_id] = []
        async with self._locks.hold(session.session_id):
            await self._persist(session.session_id)
        logger.info(f"Created {channel.value} session {session.session_id}")
        return session.model_copy()

    async def get(self, session_id: str, owner_key: str) -> ChatSession:
        return self._owned(session_id, owner_key).model_copy()

    async def append(self, session_id: str, message: ChatMessage) -> ChatMessage:
        async with self._locks.hold(session_id):
            (stored,) = await self._append_locked(session_id, [message])
            return stored

    async def append_turn(
        self,
        session_id: str,
        user_message: ChatMessage,
        reply_message: ChatMessage,
    ) -> tuple[ChatMessage, ChatMessage]:
        async with self._locks.hold(session_id):
            user_stored, reply_stored = await self._append_locked(
                session_id, [user_message, reply_message]
            )
            return user_stored, reply_stored

    async def history(
        self,
        session_id: str,
        limit: int = 50,
        offset: int = 0,
        owner_key: str | None = None,
    ) -> list[ChatMessage]:
        if owner_key is not None:
            self._owned(session_id, owner_key)
        elif session_id not in self._sessions:
            raise NotFound()
        messages = self._messages.get(session_id, [])
        return [m.model_copy() for m in messages[offset:offset + limit]]

    async def recent(self, session_id: str, count: int) -> list[ChatMessage]:
        if session_id not in self._sessions:
            raise NotFound()
        if count <= 0:
            return []
        return [m.model_copy() for m in self._messages[session_id][-count:]]

    async def list_sessions(self, owner_key: str, limit: int = 20, offset: int = 0) -> list[ChatSession]:
        owned = [s for s in self._sessions.values() if s.owner_key == owner_key]
        owned.sort(key=lambda s: s.updated_at, reverse=True)
        return [s.model_copy() for s in owned[offset:offset + limit]]

    async def delete(self, session_id: str, owner_key: str) -> None:
        self._owned(session_id, owner_key)
        async with self._locks.hold(session_id):
            self._sessions.pop(session_id, None)
            self._messages.pop(session_id, None)
            await self._remove(session_id)
        logger.info(f"Deleted session {session_id}")

    def _owned(self, session_id: str, owner_key: str) -> ChatSession:
        session = self._sessions.get(session_id)
        # Missing and foreign sessions look the same to callers.
        if session is None or session.owner_key != owner_key:
            raise NotFound()
        return session

    async def _append_locked(self, session_id: str, messages: list[ChatMessage]) -> list[ChatMessage]:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFound()

        log = self._messages[session_id]
        stored = []
        for message in messages:
            created_at = self.clock()
            if log and created_at <= log[-1].created_at:
                created_at = log[-1].created_at + _TICK
            item = message.model_copy(update={"session_id": session_id, "created_at": created_at})
            log.append(item)
            session.updated_at = created_at
            stored.append(item.model_copy())

        await self._persist(session_id)
        return stored

    async def _persist(self, session_id: str) -> None:
        """Hook for durable subclasses. Called with the session's lock held."""

    async def _remove(self, session_id: str) -> None:
        """Hook for durable subclasses. Called with the session's lock held."""


class JsonSessionStore(InMemorySessionStore):
    """Durable store keeping one JSON document per session under ``data_path``."""

    def __init__(self, data_path: Path, clock: Callable[[], datetime] = utcnow):
        super().__init__(clock=clock)
        self.sessions_dir = Path(data_path) / "sessions"
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self._load()

    def _path(self, session_id: str) -> Path:
        return self.sessions_dir / f"{session_id}.json"

    def _load(self) -> None:
        """Load all sessions from disk."""
        for path in sorted(self.sessions_dir.glob("*.json")):
            with open(path) as f:
                data = json.load(f)
            session = ChatSession.model_validate(data["session"])
            self._sessions[session.session_id] = session
            self._messages[session.session_id] = [
                ChatMessage.model_validate(m) for m in data.get("messages", [])
            ]
        if self._sessions:
            logger.info(f"Loaded {len(self._sessions)} sessions from {self.sessions_dir}")

    async def _persist(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        document = {
            "session": session.model_dump(mode="json"),
            "messages": [m.model_dump(mode="json") for m in self._messages[session_id]],
        }
        path = self._path(session_id)
        tmp_path = path.with_suffix(".json.tmp")
        async with aiofiles.open(tmp_path, "w") as f:
            await f.write(json.dumps(document, indent=2))
        tmp_path.replace(path)

    async def _remove(self, session_id: str) -> None:
        self._path(session_id).unlink(missing_ok=True)
