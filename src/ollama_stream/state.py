"""Request lifecycle and connection state with lock-protected transitions."""

from __future__ import annotations

import asyncio
from enum import Enum


class ConversationState(str, Enum):
    """Whether the conversation currently owns an in-flight chat request."""

    IDLE = "IDLE"
    STREAMING = "STREAMING"
    CANCELLING = "CANCELLING"


class ConnectionState(str, Enum):
    """Last known reachability of the configured endpoint."""

    UNKNOWN = "UNKNOWN"
    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"


class StateManager:
    """Hold the single-flight permit for chat requests.

    ``acquire`` flips IDLE to STREAMING atomically, so of several concurrent
    ``send`` calls exactly one wins the permit.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._state = ConversationState.IDLE

    @property
    def state(self) -> ConversationState:
        """Unlocked snapshot for synchronous readers."""
        return self._state

    async def get_state(self) -> ConversationState:
        async with self._lock:
            return self._state

    async def transition_to(self, new_state: ConversationState) -> ConversationState:
        async with self._lock:
            self._state = new_state
            return self._state

    async def transition_if(
        self,
        expected_state: ConversationState,
        new_state: ConversationState,
    ) -> bool:
        """Transition only when the current state matches ``expected_state``."""
        async with self._lock:
            if self._state != expected_state:
                return False
            self._state = new_state
            return True

    async def acquire(self) -> bool:
        return await self.transition_if(
            ConversationState.IDLE, ConversationState.STREAMING
        )

    async def release(self) -> None:
        await self.transition_to(ConversationState.IDLE)

    @property
    def busy(self) -> bool:
        return self._state != ConversationState.IDLE
