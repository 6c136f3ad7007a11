"""Chat message records and the per-message streaming state machine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import logging
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

if TYPE_CHECKING:
    from .transport import TransportEvent

LOGGER = logging.getLogger(__name__)

ERROR_PLACEHOLDER = "Sorry, I encountered an error."


class MessageRole(str, Enum):
    """Author of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def parse(cls, value: Any) -> MessageRole:
        """Accept stored role names, including the legacy ``bot`` alias."""
        normalized = str(value).strip().lower()
        if normalized in {"assistant", "bot"}:
            return cls.ASSISTANT
        if normalized == "user":
            return cls.USER
        raise ValueError(f"Unsupported message role {value!r}.")


class MessageState(str, Enum):
    """Lifecycle of one message; COMPLETE and FAILED are terminal."""

    PENDING = "pending"
    STREAMING = "streaming"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (MessageState.COMPLETE, MessageState.FAILED)

    @property
    def is_active(self) -> bool:
        return self in (MessageState.PENDING, MessageState.STREAMING)


@dataclass
class Message:
    """One turn in a conversation.

    User messages are created complete and never change. Assistant replies
    start pending and move through the transitions in ``apply``.
    """

    role: MessageRole
    content: str = ""
    state: MessageState = MessageState.COMPLETE
    error: Exception | None = None
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(role=MessageRole.USER, content=text)

    @classmethod
    def assistant(cls, text: str) -> Message:
        """A finished assistant message such as a welcome or notice."""
        return cls(role=MessageRole.ASSISTANT, content=text)

    @classmethod
    def placeholder(cls) -> Message:
        """An empty assistant reply awaiting its first delta."""
        return cls(role=MessageRole.ASSISTANT, state=MessageState.PENDING)

    @property
    def is_user(self) -> bool:
        return self.role is MessageRole.USER

    @property
    def is_assistant(self) -> bool:
        return self.role is MessageRole.ASSISTANT

    @property
    def is_failed(self) -> bool:
        return self.state is MessageState.FAILED

    @property
    def is_active(self) -> bool:
        return self.state.is_active

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def error_detail(self) -> str:
        return "" if self.error is None else str(self.error)

    @property
    def word_count(self) -> int:
        return len(self.content.split())

    def to_wire(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}

    # State machine -----------------------------------------------------

    def apply_delta(self, text: str) -> bool:
        """Absorb one content fragment; returns False when ignored."""
        if self.is_user or self.is_terminal:
            return self._ignored("delta")
        if not text:
            return False
        if self.state is MessageState.PENDING:
            self.content = text
            self.state = MessageState.STREAMING
        else:
            self.content += text
        return True

    def complete(self) -> bool:
        """Finish normally; an empty reply is still a valid completion."""
        if self.is_user or self.is_terminal:
            return self._ignored("complete")
        self.state = MessageState.COMPLETE
        return True

    def fail(self, error: Exception) -> bool:
        """Mark failed, keeping any partial content and the original error."""
        if self.is_user or self.is_terminal:
            return self._ignored("fail")
        self.state = MessageState.FAILED
        self.error = error
        if not self.content:
            self.content = ERROR_PLACEHOLDER
        return True

    def apply(self, event: TransportEvent) -> bool:
        """Route a transport event to the matching transition.

        Cancellation is not a message transition: the conversation removes
        the reply instead, so ``cancelled`` events are ignored here.
        """
        if event.kind == "delta":
            return self.apply_delta(event.text)
        if event.kind == "done":
            return self.complete()
        if event.kind == "error":
            error: Exception = event.error or RuntimeError("Unknown streaming error")
            return self.fail(error)
        return False

    def _ignored(self, transition: str) -> bool:
        LOGGER.debug(
            "message.transition.ignored",
            extra={
                "event": "message.transition.ignored",
                "message_id": str(self.id),
                "state": self.state.value,
                "transition": transition,
            },
        )
        return False
