"""Conversation room membership and per-room signals for the messaging namespace."""

from __future__ import annotations

import logging
from typing import Any

from .connection import ConnectionManager
from .events import OutboundSignal


logger = logging.getLogger(__name__)


class ConversationMembership:
    """Tracks the single conversation the page considers joined.

    Switching rooms is the caller's job: leave the current conversation, then
    join the next one. Joining while another conversation is active is
    allowed but logged, since the server scopes typing indicators to every
    room the connection has joined.
    """

    def __init__(self, connection: ConnectionManager) -> None:
        self._connection = connection
        self._active: str | None = None
        connection.add_connect_hook(self._rejoin)

    @property
    def active_conversation(self) -> str | None:
        return self._active

    async def join_conversation(self, conversation_id: str) -> bool:
        conversation_id = str(conversation_id)
        if self._active is not None and self._active != conversation_id:
            logger.warning(
                "Joining a conversation while another one is still active",
                extra={"active": self._active, "conversation": conversation_id},
            )
        sent = await self._connection.emit(OutboundSignal.JOIN_CONVERSATION.value, conversation_id)
        if sent:
            self._active = conversation_id
        return sent

    async def leave_conversation(self, conversation_id: str) -> bool:
        conversation_id = str(conversation_id)
        if self._active == conversation_id:
            self._active = None
        return await self._connection.emit(OutboundSignal.LEAVE_CONVERSATION.value, conversation_id)

    async def start_typing(self, conversation_id: str) -> bool:
        return await self._signal(OutboundSignal.TYPING_START, str(conversation_id))

    async def stop_typing(self, conversation_id: str) -> bool:
        return await self._signal(OutboundSignal.TYPING_STOP, str(conversation_id))

    async def mark_as_read(self, conversation_id: str, message_id: str | None = None) -> bool:
        payload: dict[str, Any] = {"conversationId": str(conversation_id), "messageId": message_id}
        return await self._signal(OutboundSignal.MESSAGE_READ, payload)

    def reset(self) -> None:
        self._active = None

    async def _signal(self, signal: OutboundSignal, data: Any) -> bool:
        # Typing and read receipts are best effort; drop silently when offline.
        if not self._connection.is_connected():
            return False
        return await self._connection.emit(signal.value, data)

    async def _rejoin(self, reconnected: bool) -> None:
        if not reconnected or self._active is None:
            return
        logger.info("Rejoining active conversation after reconnect", extra={"conversation": self._active})
        await self._connection.emit(OutboundSignal.JOIN_CONVERSATION.value, self._active)
