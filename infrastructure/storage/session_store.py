# infrastructure/storage/session_store.py
import json
from datetime import datetime
from typing import Dict, Optional
import asyncpg

from domain.models.conversation import ConversationSession
from shared.logging import logger

class PostgresSessionStore:
    """Conversation sessions as rows keyed by session id with a bounded message array"""

    def __init__(self, connection_pool: asyncpg.Pool, max_messages: int = 40):
        self.connection_pool = connection_pool
        self.max_messages = max_messages

    async def load(self, session_id: str) -> ConversationSession:
        """Existing session, or a fresh one when none is stored yet"""
        async with self.connection_pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT session_id, messages, created_at, updated_at
                FROM conversation_sessions WHERE session_id = $1
            """, session_id)

        if not row:
            now = datetime.utcnow()
            return ConversationSession(session_id=session_id, created_at=now, updated_at=now)

        return ConversationSession(
            session_id=row["session_id"],
            messages=json.loads(row["messages"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"]
        )

    async def save(self, session: ConversationSession) -> None:
        session.trim(self.max_messages)
        session.updated_at = datetime.utcnow()
        async with self.connection_pool.acquire() as conn:
            await conn.execute("""
                INSERT INTO conversation_sessions (session_id, messages, created_at, updated_at)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (session_id) DO UPDATE SET
                messages = $2, updated_at = $4
            """, session.session_id, json.dumps(session.messages, default=str),
                session.created_at or session.updated_at, session.updated_at)
        logger.debug("Session saved", session_id=session.session_id,
                    messages=len(session.messages))

class InMemorySessionStore:
    """Process-local session store used when no database is configured"""

    def __init__(self, max_messages: int = 40):
        self.max_messages = max_messages
        self._sessions: Dict[str, ConversationSession] = {}

    async def load(self, session_id: str) -> ConversationSession:
        session = self._sessions.get(session_id)
        if session is None:
            now = datetime.utcnow()
            return ConversationSession(session_id=session_id, created_at=now, updated_at=now)
        return ConversationSession(
            session_id=session.session_id,
            messages=list(session.messages),
            created_at=session.created_at,
            updated_at=session.updated_at
        )

    async def save(self, session: ConversationSession) -> None:
        session.trim(self.max_messages)
        session.updated_at = datetime.utcnow()
        self._sessions[session.session_id] = ConversationSession(
            session_id=session.session_id,
            messages=list(session.messages),
            created_at=session.created_at,
            updated_at=session.updated_at
        )

    def get(self, session_id: str) -> Optional[ConversationSession]:
        return self._sessions.get(session_id)
