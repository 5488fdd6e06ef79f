"""
Conversation store.

Durable state for the gateway: conversations, their ordered message logs,
and per-agent memory blocks. Methods return plain records detached from
the ORM session.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func, select

from ..errors import NotFoundError, ValidationError
from ..models import MemoryBlockSeed
from .database import Database
from .models import PERSISTED_ROLES, TITLE_MAX_LENGTH, AgentMemory, Conversation, Message, utcnow

logger = logging.getLogger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class ConversationRecord:
    id: str
    agent_id: str
    title: Optional[str]
    created_at: datetime
    updated_at: datetime
    message_count: Optional[int] = None
    last_message: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "agent_id": self.agent_id,
            "title": self.title,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if self.message_count is not None:
            data["message_count"] = self.message_count
            data["last_message"] = self.last_message
        return data


@dataclass(frozen=True)
class MessageRecord:
    id: int
    conversation_id: str
    role: str
    content: str
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "role": self.role,
            "content": self.content,
            "created_at": _iso(self.created_at),
        }

    def to_llm_format(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class MemoryBlock:
    agent_id: str
    label: str
    value: str
    updated_at: datetime

    def to_dict(self) -> dict:
        return {
            "agent_id": self.agent_id,
            "label": self.label,
            "value": self.value,
            "updated_at": _iso(self.updated_at),
        }


def _conversation_record(row: Conversation, **extra) -> ConversationRecord:
    return ConversationRecord(
        id=row.id,
        agent_id=row.agent_id,
        title=row.title,
        created_at=row.created_at,
        updated_at=row.updated_at,
        **extra,
    )


def _message_record(row: Message) -> MessageRecord:
    return MessageRecord(
        id=row.id,
        conversation_id=row.conversation_id,
        role=row.role,
        content=row.content,
        created_at=row.created_at,
    )


def _memory_record(row: AgentMemory) -> MemoryBlock:
    return MemoryBlock(agent_id=row.agent_id, label=row.label, value=row.value, updated_at=row.updated_at)


class ConversationStore:
    """CRUD access to conversations, messages and agent memory."""

    def __init__(self, database: Database):
        self.database = database

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def create_conversation(self, agent_id: str, title: Optional[str] = None) -> ConversationRecord:
        """Create a conversation; titles longer than the column are truncated."""
        if title:
            title = title[:TITLE_MAX_LENGTH]
        now = utcnow()
        with self.database.get_session() as session:
            row = Conversation(agent_id=agent_id, title=title, created_at=now, updated_at=now)
            session.add(row)
            session.flush()
            record = _conversation_record(row)
        logger.debug(f"Created conversation {record.id} for agent {agent_id}")
        return record

    def get_conversation(self, conversation_id: str) -> Optional[ConversationRecord]:
        with self.database.get_session() as session:
            row = session.get(Conversation, conversation_id)
            return _conversation_record(row) if row else None

    def list_conversations(self, agent_id: str) -> list[ConversationRecord]:
        """Conversations of an agent, most recently updated first."""
        message_count = (
            select(func.count(Message.id))
            .where(Message.conversation_id == Conversation.id)
            .correlate(Conversation)
            .scalar_subquery()
        )
        last_message = (
            select(Message.content)
            .where(Message.conversation_id == Conversation.id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(1)
            .correlate(Conversation)
            .scalar_subquery()
        )
        query = (
            select(Conversation, message_count, last_message)
            .where(Conversation.agent_id == agent_id)
            .order_by(Conversation.updated_at.desc())
        )
        with self.database.get_session() as session:
            return [
                _conversation_record(row, message_count=count or 0, last_message=last)
                for row, count, last in session.execute(query).all()
            ]

    def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation and its messages. Returns False if it did not exist."""
        with self.database.get_session() as session:
            row = session.get(Conversation, conversation_id)
            if row is None:
                return False
            session.delete(row)
        logger.info(f"Deleted conversation {conversation_id}")
        return True

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_message(self, conversation_id: str, role: str, content: str) -> MessageRecord:
        """
        Append a message and bump the conversation's update time.

        Raises:
            ValidationError: role is not persistable
            NotFoundError: conversation does not exist
        """
        if role not in PERSISTED_ROLES:
            raise ValidationError(f"Invalid message role: {role}", field="role")

        now = utcnow()
        with self.database.get_session() as session:
            conversation = session.get(Conversation, conversation_id)
            if conversation is None:
                raise NotFoundError(f"Conversation not found: {conversation_id}")
            row = Message(conversation_id=conversation_id, role=role, content=content, created_at=now)
            session.add(row)
            conversation.updated_at = now
            session.flush()
            return _message_record(row)

    def get_messages(self, conversation_id: str, limit: int = 50) -> list[MessageRecord]:
        """The most recent ``limit`` messages, oldest first."""
        query = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
        )
        with self.database.get_session() as session:
            rows = session.execute(query).scalars().all()
            return [_message_record(row) for row in reversed(rows)]

    def get_conversation_with_messages(
        self, conversation_id: str
    ) -> Optional[tuple[ConversationRecord, list[MessageRecord]]]:
        with self.database.get_session() as session:
            row = session.get(Conversation, conversation_id)
            if row is None:
                return None
            return _conversation_record(row), [_message_record(m) for m in row.messages]

    # ------------------------------------------------------------------
    # Agent memory
    # ------------------------------------------------------------------

    def get_agent_memory(self, agent_id: str) -> list[MemoryBlock]:
        query = select(AgentMemory).where(AgentMemory.agent_id == agent_id).order_by(AgentMemory.label)
        with self.database.get_session() as session:
            return [_memory_record(row) for row in session.execute(query).scalars()]

    def upsert_agent_memory(self, agent_id: str, label: str, value: str) -> MemoryBlock:
        """Write a memory block, overwriting any existing value for the label."""
        query = select(AgentMemory).where(AgentMemory.agent_id == agent_id, AgentMemory.label == label)
        with self.database.get_session() as session:
            row = session.execute(query).scalar_one_or_none()
            if row is None:
                row = AgentMemory(agent_id=agent_id, label=label)
                session.add(row)
            row.value = value
            row.updated_at = utcnow()
            session.flush()
            return _memory_record(row)

    def delete_agent_memory(self, agent_id: str, label: str) -> bool:
        query = select(AgentMemory).where(AgentMemory.agent_id == agent_id, AgentMemory.label == label)
        with self.database.get_session() as session:
            row = session.execute(query).scalar_one_or_none()
            if row is None:
                return False
            session.delete(row)
            return True

    def seed_memory_blocks(self, agent_id: str, blocks: Iterable[MemoryBlockSeed]) -> int:
        """Insert initial memory blocks whose labels are not stored yet.

        Returns:
            Number of blocks inserted
        """
        query = select(AgentMemory.label).where(AgentMemory.agent_id == agent_id)
        inserted = 0
        with self.database.get_session() as session:
            existing = set(session.execute(query).scalars())
            for block in blocks:
                if block.label in existing:
                    continue
                session.add(AgentMemory(agent_id=agent_id, label=block.label, value=block.value, updated_at=utcnow()))
                existing.add(block.label)
                inserted += 1
        return inserted

    def health_check(self) -> dict:
        if self.database.health_check():
            return {"connected": True}
        return {"connected": False, "error": "Database connection failed"}
