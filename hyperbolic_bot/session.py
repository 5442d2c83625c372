"""
Per-user session state.

`SessionStore` keeps everything in memory; `YamlSessionStore` also writes the
whole store to a YAML file after each change so keys and model choices survive
a restart.
"""

import asyncio
import logging
from dataclasses import dataclass, field

import yaml

logger = logging.getLogger(__name__)


@dataclass
class Session:
    user_id: str
    api_key: str | None = None
    selected_model: str | None = None
    bulk_queue: list[str] = field(default_factory=list)
    bulk_awaiting_input: bool = False

    def to_dict(self) -> dict:
        return {
            "api_key": self.api_key,
            "selected_model": self.selected_model,
            "bulk_queue": list(self.bulk_queue),
            "bulk_awaiting_input": self.bulk_awaiting_input,
        }

    @classmethod
    def from_dict(cls, user_id: str, data: dict | None) -> "Session":
        data = data or {}
        return cls(
            user_id=str(user_id),
            api_key=data.get("api_key"),
            selected_model=data.get("selected_model"),
            bulk_queue=list(data.get("bulk_queue") or []),
            bulk_awaiting_input=bool(data.get("bulk_awaiting_input", False)),
        )


class SessionStore:
    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, user_id) -> Session:
        user_id = str(user_id)
        session = self._sessions.get(user_id)
        if session is None:
            session = Session(user_id=user_id)
            self._sessions[user_id] = session
        return session

    def lock(self, user_id) -> asyncio.Lock:
        """Serializes handlers for one user; other users are unaffected."""
        user_id = str(user_id)
        if user_id not in self._locks:
            self._locks[user_id] = asyncio.Lock()
        return self._locks[user_id]

    async def set_api_key(self, user_id, api_key: str) -> Session:
        session = self.get(user_id)
        session.api_key = api_key
        await self._persist()
        return session

    async def set_selected_model(self, user_id, model_key: str) -> Session:
        session = self.get(user_id)
        session.selected_model = model_key
        await self._persist()
        return session

    async def set_bulk_awaiting(self, user_id, awaiting: bool) -> Session:
        session = self.get(user_id)
        session.bulk_awaiting_input = awaiting
        await self._persist()
        return session

    async def begin_bulk(self, user_id, prompts: list[str]) -> Session:
        session = self.get(user_id)
        session.bulk_queue = list(prompts)
        session.bulk_awaiting_input = False
        await self._persist()
        return session

    async def advance_bulk(self, user_id) -> Session:
        session = self.get(user_id)
        if session.bulk_queue:
            session.bulk_queue.pop(0)
            await self._persist()
        return session

    async def end_bulk(self, user_id) -> Session:
        session = self.get(user_id)
        session.bulk_queue = []
        await self._persist()
        return session

    async def clear_credentials(self, user_id) -> Session:
        session = self.get(user_id)
        session.api_key = None
        session.selected_model = None
        session.bulk_queue = []
        session.bulk_awaiting_input = False
        await self._persist()
        return session

    async def _persist(self):
        pass


class YamlSessionStore(SessionStore):
    def __init__(self, path: str):
        super().__init__()
        self.path = path
        self._file_lock = asyncio.Lock()
        self._load()

    def _load(self):
        try:
            with open(self.path, 'r') as f:
                raw = yaml.safe_load(f) or {}
        except FileNotFoundError:
            return
        except Exception as e:
            logger.error(f"Error loading {self.path}: {e}")
            return

        if not isinstance(raw, dict):
            logger.error(f"Ignoring {self.path}: expected a mapping, got {type(raw).__name__}")
            return

        stale = 0
        for user_id, data in raw.items():
            if not isinstance(data, dict):
                logger.warning(f"Skipping malformed session entry for user {user_id}")
                continue
            session = Session.from_dict(str(user_id), data)
            # No bulk run survives a restart.
            if session.bulk_queue:
                session.bulk_queue = []
                stale += 1
            self._sessions[session.user_id] = session
        logger.info(f"Loaded {len(self._sessions)} sessions from {self.path}")
        if stale:
            logger.warning(f"Cleared {stale} interrupted bulk queue(s)")

    async def _persist(self):
        async with self._file_lock:
            snapshot = {user_id: s.to_dict() for user_id, s in self._sessions.items()}
            with open(self.path, 'w') as f:
                yaml.dump(snapshot, f, allow_unicode=True)
