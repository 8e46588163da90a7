import asyncio
import time
import uuid
from typing import Dict, List, Literal, Optional
import logging

from pydantic import BaseModel

from .logging_config import get_conversation_logger, close_conversation_logger


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ConversationState(BaseModel):
    conversation_id: str
    messages: List[ChatMessage]
    updated_at: float
    title: Optional[str] = None


class ConversationStore:
    """In-memory assistant conversation store with TTL cleanup."""

    def __init__(self, ttl_seconds: int, logger: Optional[logging.Logger] = None):
        self.ttl_seconds = ttl_seconds
        self.conversations: Dict[str, ConversationState] = {}
        self.lock = asyncio.Lock()
        self.logger = logger or logging.getLogger(__name__)
        self.conversation_loggers: Dict[str, logging.Logger] = {}

    async def get_or_create(self, conversation_id: Optional[str] = None) -> ConversationState:
        async with self.lock:
            self._prune()
            if conversation_id and conversation_id in self.conversations:
                conversation = self.conversations[conversation_id]
                conversation.updated_at = time.time()
                return conversation

            # Client-supplied ids are never adopted
            conversation = ConversationState(
                conversation_id=str(uuid.uuid4()),
                messages=[],
                updated_at=time.time(),
            )
            self.conversations[conversation.conversation_id] = conversation

            conversation_logger = get_conversation_logger(conversation.conversation_id)
            self.conversation_loggers[conversation.conversation_id] = conversation_logger

            self.logger.info("Created new conversation", extra={"conversation_id": conversation.conversation_id})
            return conversation

    async def get(self, conversation_id: str) -> Optional[ConversationState]:
        async with self.lock:
            self._prune()
            return self.conversations.get(conversation_id)

    async def append(self, conversation_id: str, role: str, content: str) -> ConversationState:
        async with self.lock:
            self._prune()
            if conversation_id not in self.conversations:
                raise KeyError(f"conversation {conversation_id} not found")
            conversation = self.conversations[conversation_id]
            conversation.messages.append(ChatMessage(role=role, content=content))
            conversation.updated_at = time.time()

            # First user message doubles as the conversation title
            if conversation.title is None and role == "user":
                conversation.title = content[:60]

            conversation_logger = self.conversation_loggers.get(conversation_id)
            if conversation_logger:
                conversation_logger.info(f"Message added - Role: {role}, Content length: {len(content)} chars")

            return conversation

    async def delete(self, conversation_id: str) -> bool:
        async with self.lock:
            removed = self.conversations.pop(conversation_id, None) is not None
            self._close_logger(conversation_id)
            return removed

    def _prune(self) -> None:
        if not self.ttl_seconds:
            return
        cutoff = time.time() - self.ttl_seconds
        expired = [cid for cid, data in self.conversations.items() if data.updated_at < cutoff]
        for cid in expired:
            self.conversations.pop(cid, None)
            self.logger.info("Pruned expired conversation", extra={"conversation_id": cid})
            self._close_logger(cid)

    def _close_logger(self, conversation_id: str) -> None:
        if conversation_id in self.conversation_loggers:
            close_conversation_logger(conversation_id)
            del self.conversation_loggers[conversation_id]

    def get_conversation_logger(self, conversation_id: str) -> Optional[logging.Logger]:
        return self.conversation_loggers.get(conversation_id)
