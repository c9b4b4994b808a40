"""Data types shared by the task poller, the bindings and the materializer."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class TaskKind(str, Enum):
    """Long-running job types exposed by the service."""

    AVATAR_BUILD = "avatar_build"
    AVATAR_GENERATE = "avatar_generate"
    IMAGE_GENERATE = "image_generate"
    VIDEO_GENERATE = "video_generate"
    VOICE_CLONE = "voice_clone"


class TaskState(str, Enum):
    """Normalized job state.

    Each job kind maps its own wire vocabulary onto these values; the literal
    wire string is kept on ``TaskStatus.label``.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self not in (TaskState.PENDING, TaskState.PROCESSING)

    @property
    def is_failure(self) -> bool:
        return self in (TaskState.FAILED, TaskState.CANCELED, TaskState.TIMED_OUT)


class ArtifactKind(str, Enum):
    INLINE_BASE64 = "inline_base64"
    REMOTE_URL = "remote_url"
    IDENTIFIER = "identifier"


class MediaType(str, Enum):
    """Output media, which fixes the file extension and default filename prefix."""

    AVATAR = "avatar"
    IMAGE = "image"
    VIDEO = "video"
    SPEECH = "speech"

    @property
    def extension(self) -> str:
        """Canonical extension appended when a path lacks an accepted one."""
        return _CANONICAL_EXTENSIONS[self]

    @property
    def accepted_extensions(self) -> tuple[str, ...]:
        return _ACCEPTED_EXTENSIONS[self]


_CANONICAL_EXTENSIONS = {
    MediaType.AVATAR: ".jpg",
    MediaType.IMAGE: ".jpg",
    MediaType.VIDEO: ".mp4",
    MediaType.SPEECH: ".wav",
}

_ACCEPTED_EXTENSIONS = {
    MediaType.AVATAR: (".jpg", ".jpeg"),
    MediaType.IMAGE: (".jpg", ".jpeg"),
    MediaType.VIDEO: (".mp4",),
    MediaType.SPEECH: (".wav",),
}


class TaskHandle(BaseModel):
    """Identifier of a started job, held only for the duration of a poll loop."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    kind: TaskKind


class GeneratedArtifact(BaseModel):
    """Result of a completed job.

    Attributes:
        kind: How ``data`` is to be interpreted
        data: Base64 text, a download URL, or an identifier
        metadata: Extra values reported with the result (e.g. ``output_duration``)
    """

    model_config = ConfigDict(frozen=True)

    kind: ArtifactKind
    data: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def decoded_size(self) -> int:
        """Byte length of an inline payload once decoded (0 for other kinds)."""
        if self.kind is not ArtifactKind.INLINE_BASE64:
            return 0
        text = self.data
        if text.startswith("data:") and "," in text:
            text = text.split(",", 1)[1]
        text = "".join(text.split())
        return len(text) * 3 // 4 - text[-2:].count("=")


class TaskStatus(BaseModel):
    """Immutable snapshot of one poll.

    ``payload`` is set if and only if the state is COMPLETED; ``error_detail``
    may only accompany a failure state.
    """

    model_config = ConfigDict(frozen=True)

    state: TaskState
    label: str = Field(description="Literal status string reported by the service")
    payload: GeneratedArtifact | None = None
    error_detail: str | None = None

    @model_validator(mode="after")
    def check_payload_and_detail(self) -> TaskStatus:
        if (self.payload is not None) != (self.state is TaskState.COMPLETED):
            raise ValueError("payload must be set exactly when state is COMPLETED")
        if self.error_detail is not None and not self.state.is_failure:
            raise ValueError("error_detail is only allowed for failure states")
        return self


class PollConfig(BaseModel):
    """Polling cadence.

    Attributes:
        poll_interval: Seconds between status fetches
        spinner_interval: Seconds between spinner redraws
        timeout: Optional overall deadline in seconds (None polls until cancelled)
    """

    model_config = ConfigDict(frozen=True)

    poll_interval: float = Field(default=2.0, gt=0)
    spinner_interval: float = Field(default=0.1, gt=0)
    timeout: float | None = Field(default=None, gt=0)


class MaterializedResult(BaseModel):
    """What the materializer did with an artifact, for caller reporting."""

    model_config = ConfigDict(frozen=True)

    artifact: GeneratedArtifact
    path: Path | None = None
    bytes_written: int = 0

    @property
    def saved(self) -> bool:
        return self.path is not None

    def describe(self) -> str:
        """One-line description used when nothing was written."""
        if self.artifact.kind is ArtifactKind.REMOTE_URL:
            return f"URL: {self.artifact.data}"
        if self.artifact.kind is ArtifactKind.INLINE_BASE64:
            return f"{self.artifact.decoded_size} bytes (base64)"
        return f"ID: {self.artifact.data}"
