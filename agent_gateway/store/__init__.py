"""
Relational persistence for conversations, messages and agent memory.
"""

from .conversation_store import ConversationRecord, ConversationStore, MemoryBlock, MessageRecord
from .database import Database
from .models import AgentMemory, Base, Conversation, Message

__all__ = [
    "ConversationRecord",
    "ConversationStore",
    "MemoryBlock",
    "MessageRecord",
    "Database",
    "AgentMemory",
    "Base",
    "Conversation",
    "Message",
]
