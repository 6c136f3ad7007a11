"""Conversation reducer: one in-flight reply at a time over an ordered message list."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from contextlib import aclosing
import logging
from typing import Any
from uuid import UUID

from .events import Event, EventBus
from .exceptions import SendRejectedError
from .message import Message, MessageRole, MessageState
from .state import ConversationState, StateManager
from .task_manager import TaskManager
from .transport import ChatStream, ChatTransport, TransportEvent

LOGGER = logging.getLogger(__name__)

STREAM_TASK = "active_stream"

MESSAGE_APPENDED = "message.appended"
MESSAGE_UPDATED = "message.updated"
MESSAGE_REMOVED = "message.removed"
CONVERSATION_CLEARED = "conversation.cleared"
CONVERSATION_ERROR = "conversation.error"

REJECT_EMPTY = "Please enter a message first."
REJECT_BUSY = "Please wait for the current reply to finish."
REJECT_NO_MODEL = "Please select a model first"
REJECT_OFFLINE = "Not connected to Ollama. Please check if Ollama is running."


def welcome_text(model: str) -> str:
    if not model:
        return "Welcome to Local AI Chat! Please select a model to get started."
    return (
        f"Hello! I'm ready to chat using the {model} model. "
        "How can I help you today?"
    )


class Conversation:
    """Ordered messages plus the single outstanding chat request.

    All mutations go through this object and are published on ``bus`` in
    the order they happen. Subscribers can also read ``snapshot()`` at any
    time.
    """

    def __init__(
        self,
        transport: ChatTransport,
        *,
        model: str = "",
        connected: bool = False,
        history: Iterable[Mapping[str, Any]] | None = None,
        task_manager: TaskManager | None = None,
    ) -> None:
        self.transport = transport
        self.model = model.strip()
        self.connected = connected
        self.messages: list[Message] = []
        self.error: str | None = None
        self.bus = EventBus(source="conversation")
        self.state = StateManager()
        self.tasks = task_manager or TaskManager()
        self._stream: ChatStream | None = None
        self._active_id: UUID | None = None

        restored = _restore(history or ())
        if not restored:
            restored = [Message.assistant(welcome_text(self.model))]
        self.messages.extend(restored)

    # Observation -------------------------------------------------------

    def subscribe(
        self, event_name: str, handler: Callable[[Event], Any]
    ) -> Callable[[], None]:
        return self.bus.subscribe(event_name, handler)

    def snapshot(self) -> tuple[Message, ...]:
        return tuple(self.messages)

    @property
    def active_message(self) -> Message | None:
        if self._active_id is None:
            return None
        return self._find(self._active_id)

    @property
    def is_busy(self) -> bool:
        return self.state.busy

    @property
    def can_retry(self) -> bool:
        index = self._last_user_index()
        if index is None or index + 1 >= len(self.messages):
            return False
        return self.messages[index + 1].is_failed

    def history(self) -> list[dict[str, str]]:
        """Wire history: completed messages only, never pending or failed ones."""
        return [
            message.to_wire()
            for message in self.messages
            if message.state is MessageState.COMPLETE
        ]

    def statistics(self) -> dict[str, int]:
        users = sum(1 for m in self.messages if m.is_user)
        replies = sum(
            1
            for m in self.messages
            if m.is_assistant and m.state is MessageState.COMPLETE
        )
        return {
            "messages": len(self.messages),
            "user_messages": users,
            "assistant_messages": replies,
            "words": sum(m.word_count for m in self.messages),
        }

    # Commands ----------------------------------------------------------

    def set_connected(self, connected: bool) -> None:
        self.connected = connected

    async def set_model(self, model_name: str, announce: bool = True) -> None:
        normalized = model_name.strip()
        if not normalized or normalized == self.model:
            return
        self.model = normalized
        if announce:
            await self._append(
                Message.assistant(
                    f"I'm now using the {normalized} model. How can I help you?"
                )
            )

    async def send(self, text: str) -> bool:
        """Append the user turn and a pending reply, then start streaming.

        Returns False, leaving the messages untouched and setting ``error``,
        when the text is blank, a reply is in flight, no model is selected,
        or the endpoint is offline.
        """
        prompt = text.strip()
        if not await self._claim(prompt):
            return False
        await self._set_error(None)
        await self._drop_unanswered()
        await self._append(Message.user(prompt))
        await self._launch()
        return True

    async def retry(self) -> bool:
        """Resend the most recent user message, dropping a failed reply to it."""
        index = self._last_user_index()
        if index is None:
            return False
        user_message = self.messages[index]
        following = (
            self.messages[index + 1] if index + 1 < len(self.messages) else None
        )
        if following is not None and not following.is_failed:
            # The last exchange completed: send the same text as a new turn.
            return await self.send(user_message.content)

        if not await self._claim(user_message.content):
            return False
        await self._set_error(None)
        if following is not None:
            await self._remove(following)
        LOGGER.info(
            "conversation.retry",
            extra={
                "event": "conversation.retry",
                "message_id": str(user_message.id),
            },
        )
        await self._launch()
        return True

    async def cancel(self) -> bool:
        """Stop the in-flight request and drop its unfinished reply entirely."""
        stream = self._stream
        active_id = self._active_id
        if stream is None and not self.tasks.running(STREAM_TASK):
            return False

        await self.state.transition_to(ConversationState.CANCELLING)
        if stream is not None:
            stream.cancel()
        await self.tasks.cancel(STREAM_TASK)

        if active_id is not None:
            reply = self._find(active_id)
            if reply is not None and reply.is_active:
                await self._remove(reply)
        self._stream = None
        self._active_id = None
        await self.state.release()
        LOGGER.info(
            "conversation.cancelled", extra={"event": "conversation.cancelled"}
        )
        return True

    async def clear(self) -> None:
        """Cancel anything in flight and reseed with a single welcome message."""
        await self.cancel()
        self.messages.clear()
        self.error = None
        await self.bus.publish(CONVERSATION_CLEARED, {})
        await self._append(Message.assistant(welcome_text(self.model)))

    async def load_history(self, entries: Iterable[Mapping[str, Any]]) -> None:
        """Replace the conversation with persisted ``{role, content}`` entries."""
        await self.cancel()
        self.messages.clear()
        self.error = None
        await self.bus.publish(CONVERSATION_CLEARED, {})
        restored = _restore(entries) or [Message.assistant(welcome_text(self.model))]
        for message in restored:
            await self._append(message)

    async def dismiss_error(self) -> None:
        await self._set_error(None)

    async def wait(self) -> None:
        """Wait for the in-flight request, if any, to reach a terminal event."""
        await self.tasks.wait(STREAM_TASK)

    # Internals ---------------------------------------------------------

    async def _claim(self, prompt: str) -> bool:
        reason: str | None = None
        if not prompt:
            reason = REJECT_EMPTY
        elif self.state.busy:
            reason = REJECT_BUSY
        elif not self.model:
            reason = REJECT_NO_MODEL
        elif not self.connected:
            reason = REJECT_OFFLINE
        elif not await self.state.acquire():
            reason = REJECT_BUSY

        if reason is None:
            return True
        LOGGER.info(
            "conversation.send.rejected",
            extra={"event": "conversation.send.rejected", "reason": reason},
        )
        await self._set_error(SendRejectedError(reason))
        return False

    async def _launch(self) -> None:
        history = self.history()
        reply = Message.placeholder()
        await self._append(reply)
        stream = self.transport.stream_chat(self.model, history)
        self._stream = stream
        self._active_id = reply.id
        LOGGER.info(
            "conversation.request.start",
            extra={
                "event": "conversation.request.start",
                "model": self.model,
                "message_id": str(reply.id),
                "history_length": len(history),
            },
        )
        self.tasks.start(STREAM_TASK, self._consume(stream, reply))

    async def _consume(self, stream: ChatStream, reply: Message) -> None:
        try:
            async with aclosing(aiter(stream)) as events:
                async for event in events:
                    if event.kind == "cancelled":
                        break
                    await self._apply(reply, event)
        finally:
            if self._stream is stream:
                self._stream = None
                self._active_id = None
                # cancel() owns the permit while it is unwinding this task.
                if self.state.state is ConversationState.STREAMING:
                    await self.state.release()

    async def _apply(self, reply: Message, event: TransportEvent) -> None:
        if self._find(reply.id) is None:
            return
        if not reply.apply(event):
            return
        if reply.is_failed:
            await self._set_error(reply.error_detail or reply.content)
        await self.bus.publish(MESSAGE_UPDATED, {"message": reply})

    async def _drop_unanswered(self) -> None:
        # A cancelled exchange leaves an unanswered user turn; the new one replaces it.
        if self.messages and self.messages[-1].is_user:
            await self._remove(self.messages[-1])

    async def _append(self, message: Message) -> None:
        self.messages.append(message)
        await self.bus.publish(MESSAGE_APPENDED, {"message": message})

    async def _remove(self, message: Message) -> None:
        self.messages.remove(message)
        await self.bus.publish(MESSAGE_REMOVED, {"message": message})

    async def _set_error(self, error: str | Exception | None) -> None:
        summary = None if error is None else str(error)
        if summary == self.error:
            return
        self.error = summary
        await self.bus.publish(CONVERSATION_ERROR, {"error": summary})

    def _find(self, message_id: UUID) -> Message | None:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def _last_user_index(self) -> int | None:
        for index in range(len(self.messages) - 1, -1, -1):
            if self.messages[index].role is MessageRole.USER:
                return index
        return None


def _restore(entries: Iterable[Mapping[str, Any]]) -> list[Message]:
    restored: list[Message] = []
    for entry in entries:
        try:
            role = MessageRole.parse(entry.get("role"))
        except ValueError:
            LOGGER.warning(
                "conversation.history.skipped",
                extra={
                    "event": "conversation.history.skipped",
                    "role": entry.get("role"),
                },
            )
            continue
        content = entry.get("content")
        restored.append(
            Message(role=role, content=content if isinstance(content, str) else "")
        )
    return restored
