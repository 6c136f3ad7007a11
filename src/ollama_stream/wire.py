"""Wire models and the per-line event decoder for Ollama's JSON protocol."""

from __future__ import annotations

import json
import logging
from typing import Any, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictStr,
    ValidationError,
    field_validator,
)

from .exceptions import DecodingError

LOGGER = logging.getLogger(__name__)

PULL_TERMINAL_MARKERS = ("success", "complete")


class WireMessage(BaseModel):
    """One role-tagged message as it travels on the wire."""

    model_config = ConfigDict(extra="ignore")

    role: StrictStr = "assistant"
    content: str = ""

    @field_validator("content", mode="before")
    @classmethod
    def _null_content_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class ChatRequest(BaseModel):
    """Outbound body for ``POST /chat``."""

    model: str
    messages: list[WireMessage]
    stream: bool = True


class ChatResponseLine(BaseModel):
    """One streamed chat line; ``done`` is the required discriminant."""

    model_config = ConfigDict(extra="ignore")

    model: str | None = None
    created_at: str | None = None
    message: WireMessage | None = None
    done: StrictBool

    @property
    def role(self) -> str:
        return self.message.role if self.message is not None else "assistant"

    @property
    def content(self) -> str:
        return self.message.content if self.message is not None else ""


class PullStatus(BaseModel):
    """One streamed progress line from ``POST /pull``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    status: StrictStr
    digest: str | None = None
    total_bytes: int | None = Field(default=None, alias="total")
    completed_bytes: int | None = Field(default=None, alias="completed")

    @property
    def progress_fraction(self) -> float | None:
        """Completed/total when both are known and total is positive, else None."""
        if self.total_bytes is None or self.completed_bytes is None:
            return None
        if self.total_bytes <= 0:
            return None
        return self.completed_bytes / self.total_bytes

    @property
    def progress_percent(self) -> float | None:
        fraction = self.progress_fraction
        return None if fraction is None else fraction * 100.0

    @property
    def is_terminal(self) -> bool:
        lowered = self.status.lower()
        return any(marker in lowered for marker in PULL_TERMINAL_MARKERS)


class ModelTag(BaseModel):
    """Immutable snapshot of one installed model from ``GET /tags``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    name: StrictStr
    size_bytes: int | None = Field(default=None, alias="size")
    digest: str | None = None
    modified_at: str | None = None

    @property
    def size_label(self) -> str:
        if self.size_bytes is None:
            return ""
        return format_size(self.size_bytes)


class TagList(BaseModel):
    """Body of ``GET /tags``."""

    model_config = ConfigDict(extra="ignore")

    models: list[ModelTag] = Field(default_factory=list)


class WireError(BaseModel):
    """An in-band ``{"error": ...}`` object."""

    model_config = ConfigDict(extra="ignore")

    error: StrictStr


WireEvent = Union[ChatResponseLine, PullStatus, TagList, WireError]


def format_size(num_bytes: int) -> str:
    """Render a byte count the way file browsers do (decimal units)."""
    value = float(num_bytes)
    for unit in ("bytes", "KB", "MB", "GB", "TB"):
        if abs(value) < 1000 or unit == "TB":
            if unit == "bytes":
                return f"{int(value)} bytes"
            return f"{value:.1f} {unit}"
        value /= 1000
    return f"{value:.1f} TB"


class EventDecoder:
    """Decode single lines into one of the closed set of wire events.

    ``decode`` never raises: blank lines, malformed JSON, and objects that
    match none of the known shapes all come back as ``None`` (skip).
    """

    def decode(self, line: str) -> WireEvent | None:
        text = line.strip()
        if not text:
            return None
        try:
            payload = json.loads(text)
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None

        model_cls: type[BaseModel]
        if isinstance(payload.get("error"), str):
            model_cls = WireError
        elif "done" in payload:
            model_cls = ChatResponseLine
        elif "status" in payload:
            model_cls = PullStatus
        elif "models" in payload:
            model_cls = TagList
        else:
            return None

        try:
            return model_cls.model_validate(payload)  # type: ignore[return-value]
        except ValidationError:
            return None

    def decode_tags(self, body: bytes | str) -> list[ModelTag]:
        """Decode a complete ``GET /tags`` body; malformed bodies are hard errors."""
        try:
            return TagList.model_validate_json(body).models
        except ValidationError as exc:
            LOGGER.warning(
                "wire.tags.invalid",
                extra={"event": "wire.tags.invalid", "errors": exc.error_count()},
            )
            raise DecodingError(f"Failed to decode response: {exc}") from exc

    @staticmethod
    def error_detail(body: bytes) -> str:
        """Best-effort extraction of ``error`` text from an error response body."""
        try:
            payload = json.loads(body)
        except ValueError:
            return body.decode("utf-8", errors="replace").strip()
        if isinstance(payload, dict) and isinstance(payload.get("error"), str):
            return payload["error"].strip()
        return ""
