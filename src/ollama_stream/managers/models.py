"""Model selection, pull progress, and deletion on top of the registry."""

from __future__ import annotations

from collections.abc import Callable
import inspect
import logging
from typing import TYPE_CHECKING, Any

from ..exceptions import OllamaChatError

if TYPE_CHECKING:
    from ..registry import ModelRegistry
    from ..wire import PullStatus
    from .connection import ConnectionManager

LOGGER = logging.getLogger(__name__)

SelectionCallback = Callable[[str | None], Any]


def describe_progress(status: PullStatus) -> str:
    """Human progress text for one pull status line."""
    percent = status.progress_percent
    if percent is None:
        return status.status
    return f"Downloading: {int(percent)}%"


class ModelManager:
    """Track installed models and which one the conversation should use."""

    def __init__(
        self,
        registry: ModelRegistry,
        *,
        selected_model: str | None = None,
        connection: ConnectionManager | None = None,
    ) -> None:
        self.registry = registry
        self.connection = connection
        self.available_models: list[str] = []
        self.selected_model = (selected_model or "").strip() or None
        self.is_loading = False
        self.error_message: str | None = None
        self.pull_progress: str | None = None
        self._on_selection_change: list[SelectionCallback] = []

    def on_selection_change(self, callback: SelectionCallback) -> None:
        self._on_selection_change.append(callback)

    async def refresh(self) -> list[str]:
        """Reload the model list and keep the selection consistent with it."""
        self.is_loading = True
        self.error_message = None
        try:
            self.available_models = await self.registry.model_names()
        except OllamaChatError as exc:
            LOGGER.warning(
                "models.refresh.failed",
                extra={"event": "models.refresh.failed", "error": str(exc)},
            )
            self.error_message = str(exc)
            self.available_models = []
            return []
        finally:
            self.is_loading = False

        if self.selected_model is None and self.available_models:
            await self.select(self.available_models[0])
        elif (
            self.selected_model is not None
            and self.selected_model not in self.available_models
        ):
            LOGGER.info(
                "models.selection.unavailable",
                extra={
                    "event": "models.selection.unavailable",
                    "model": self.selected_model,
                },
            )
            await self.clear_selection()
        return list(self.available_models)

    async def select(self, model_name: str) -> None:
        normalized = model_name.strip()
        if not normalized or normalized == self.selected_model:
            return
        self.selected_model = normalized
        await self._notify(normalized)

    async def clear_selection(self) -> None:
        if self.selected_model is None:
            return
        self.selected_model = None
        await self._notify(None)

    async def pull(self, model_name: str) -> bool:
        """Download a model, tracking progress text, then select it."""
        self.is_loading = True
        self.error_message = None
        self.pull_progress = "Starting download..."
        try:
            async for status in self.registry.pull(model_name):
                self.pull_progress = describe_progress(status)
        except OllamaChatError as exc:
            self.error_message = f"Failed to download model: {exc}"
            self.pull_progress = None
            return False
        finally:
            self.is_loading = False

        self.pull_progress = "Download completed"
        await self.refresh()
        await self.select(model_name)
        return True

    async def delete(self, model_name: str) -> bool:
        self.is_loading = True
        self.error_message = None
        try:
            await self.registry.delete(model_name)
        except OllamaChatError as exc:
            self.error_message = f"Failed to delete model: {exc}"
            return False
        finally:
            self.is_loading = False

        if self.selected_model == model_name:
            await self.clear_selection()
        await self.refresh()
        return True

    @property
    def is_connected(self) -> bool:
        return self.connection is None or self.connection.is_connected

    @property
    def is_ready(self) -> bool:
        return (
            self.is_connected
            and bool(self.available_models)
            and self.selected_model is not None
            and not self.is_loading
        )

    @property
    def status_message(self) -> str:
        if not self.is_connected:
            return "Disconnected from Ollama"
        if self.is_loading:
            return "Loading..."
        if self.error_message:
            return f"Error: {self.error_message}"
        if self.pull_progress:
            return self.pull_progress
        if not self.available_models:
            return "No models available"
        if self.selected_model:
            return f"Using: {self.selected_model}"
        return "Select a model to start"

    async def _notify(self, model_name: str | None) -> None:
        LOGGER.info(
            "models.selection.changed",
            extra={"event": "models.selection.changed", "model": model_name},
        )
        for callback in self._on_selection_change:
            try:
                result = callback(model_name)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: BLE001 - isolate callbacks.
                LOGGER.error(
                    "models.callback.error",
                    extra={"event": "models.callback.error", "error": str(exc)},
                )
