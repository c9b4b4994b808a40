"""Wire models for Mirako API responses.

Every response body is an envelope ``{"data": ...}``; the client unwraps it
and validates the inner object with one of these models. Unknown fields are
kept (``extra="allow"``) so newer service versions do not break the CLI.
"""

from __future__ import annotations

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

D = TypeVar("D")


class WireModel(BaseModel):
    """Base for all response models."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)


class Envelope(BaseModel, Generic[D]):
    """The ``{"data": ...}`` wrapper around every response body."""

    data: D


# Avatars


class Avatar(WireModel):
    """An avatar owned by the user."""

    id: str
    name: str = ""
    status: str = ""
    user_id: str | None = None
    created_at: datetime | None = None
    themes: list[str] | None = None
    image: str | None = None


class AvatarBuildStarted(WireModel):
    avatar_id: str = Field(validation_alias=AliasChoices("avatar_id", "avatarId", "id"))


# Async generation (avatar, image, talking-avatar video)


class TaskStarted(WireModel):
    """Acknowledgement of an async job: task id plus the service's initial status."""

    task_id: str = Field(validation_alias=AliasChoices("task_id", "taskId"))
    status: str | None = None


class GenerationStatus(WireModel):
    """One status snapshot of an avatar, image or video generation task."""

    task_id: str = Field(default="", validation_alias=AliasChoices("task_id", "taskId"))
    status: str
    image: str | None = None
    file_url: str | None = Field(default=None, validation_alias=AliasChoices("file_url", "fileUrl"))
    output_duration: float | None = None
    error_detail: str | None = Field(
        default=None, validation_alias=AliasChoices("error_detail", "error", "message")
    )


# Interactive sessions


class Session(WireModel):
    session_id: str
    metis_model: str = ""
    state: str | None = None
    desired_state: str | None = None
    start_time: datetime | None = None


class StartedSession(WireModel):
    session: Session
    session_token: str = ""


class StoppedSessions(WireModel):
    stopped_sessions: list[str] = Field(default_factory=list)


class SessionProfile(WireModel):
    """Configuration an interactive session was started with."""

    avatar_id: str | None = None
    model: str | None = None
    llm_model: str | None = None
    voice_profile_id: str | None = None
    instruction: str | None = None
    tools: str | None = None


# Speech


class Transcription(WireModel):
    text: str = ""


class SynthesizedSpeech(WireModel):
    """TTS result: base64 WAV audio and its duration in seconds."""

    audio: str = Field(validation_alias=AliasChoices("audio", "b64_audio_str"))
    output_duration: float | None = None


# Voice


class VoiceProfile(WireModel):
    id: str
    name: str = ""
    description: str = ""
    status: str = ""
    created_at: datetime | None = None
    is_premade: bool = False
    user_id: str | None = None
    sample_clip: str | None = None


class VoiceCloneStatus(WireModel):
    task_id: str = Field(default="", validation_alias=AliasChoices("task_id", "taskId"))
    status: str
    profile_id: str | None = None
    error_detail: str | None = Field(
        default=None, validation_alias=AliasChoices("error_detail", "error", "message")
    )
