"""Per-job-kind bindings between service responses and the generic poller.

Each kind keeps its exact wire vocabulary. Avatar generation, image generation
and talking-avatar video spell the cancellation states ``CANCELED`` and
``TIMEDOUT``; voice cloning spells them ``CANCELLED`` and ``TIMED_OUT``; avatar
build uses its own ``PENDING/BUILDING/READY/ERROR`` lifecycle.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from mirako.core.api.mirako.client import MirakoClient
from mirako.core.api.mirako.models import Avatar, GenerationStatus, VoiceCloneStatus
from mirako.core.errors import DecodeError
from mirako.core.tasks.models import (
    ArtifactKind,
    GeneratedArtifact,
    MediaType,
    TaskKind,
    TaskState,
    TaskStatus,
)
from mirako.core.tasks.poller import StatusFetcher

GENERATION_VOCABULARY: Mapping[str, TaskState] = {
    "PENDING": TaskState.PENDING,
    "PROCESSING": TaskState.PROCESSING,
    "COMPLETED": TaskState.COMPLETED,
    "FAILED": TaskState.FAILED,
    "CANCELED": TaskState.CANCELED,
    "TIMEDOUT": TaskState.TIMED_OUT,
}

VOICE_CLONE_VOCABULARY: Mapping[str, TaskState] = {
    "PENDING": TaskState.PENDING,
    "PROCESSING": TaskState.PROCESSING,
    "COMPLETED": TaskState.COMPLETED,
    "FAILED": TaskState.FAILED,
    "CANCELLED": TaskState.CANCELED,
    "TIMED_OUT": TaskState.TIMED_OUT,
}

AVATAR_BUILD_VOCABULARY: Mapping[str, TaskState] = {
    "PENDING": TaskState.PENDING,
    "BUILDING": TaskState.PROCESSING,
    "READY": TaskState.COMPLETED,
    "ERROR": TaskState.FAILED,
}


@dataclass(frozen=True)
class TaskBinding:
    """Everything the poller needs to know about one job kind.

    Attributes:
        kind: Job kind
        initial_label: Status text shown before the first poll returns
        vocabulary: Wire status string -> normalized state
        default_poll_interval: Poll cadence when the caller gives none (seconds)
        media: Output media for file materialization (None for identifiers)
        fetch: ``fetch(client, task_id)`` returning the raw status model
        extract: Builds the artifact from a completed raw status (None if absent)
    """

    kind: TaskKind
    initial_label: str
    vocabulary: Mapping[str, TaskState]
    default_poll_interval: float
    media: MediaType | None
    fetch: Callable[[MirakoClient, str], Awaitable[Any]]
    extract: Callable[[Any], GeneratedArtifact | None]

    def classify(self, label: str) -> TaskState:
        """Map a wire status; unknown strings count as still running."""
        return self.vocabulary.get(label, TaskState.PROCESSING)

    def to_status(self, raw: Any) -> TaskStatus:
        """Convert a raw status model into a ``TaskStatus`` snapshot.

        Raises:
            DecodeError: If a completed status carries no result
        """
        label = str(raw.status)
        state = self.classify(label)
        payload = None
        error_detail = None
        if state is TaskState.COMPLETED:
            payload = self.extract(raw)
            if payload is None:
                raise DecodeError(f"{self.kind.value} task reported {label} without a result")
        elif state.is_failure:
            error_detail = getattr(raw, "error_detail", None) or None
        return TaskStatus(state=state, label=label, payload=payload, error_detail=error_detail)

    def fetcher(self, client: MirakoClient) -> StatusFetcher:
        """Bind this kind's status call to ``client`` for use by ``TaskPoller``."""

        async def fetch(task_id: str) -> TaskStatus:
            return self.to_status(await self.fetch(client, task_id))

        return fetch


def _inline_image(raw: GenerationStatus) -> GeneratedArtifact | None:
    if not raw.image:
        return None
    return GeneratedArtifact(kind=ArtifactKind.INLINE_BASE64, data=raw.image)


def _video_url(raw: GenerationStatus) -> GeneratedArtifact | None:
    if not raw.file_url:
        return None
    metadata = {}
    if raw.output_duration is not None:
        metadata["output_duration"] = raw.output_duration
    return GeneratedArtifact(kind=ArtifactKind.REMOTE_URL, data=raw.file_url, metadata=metadata)


def _avatar_id(raw: Avatar) -> GeneratedArtifact | None:
    return GeneratedArtifact(kind=ArtifactKind.IDENTIFIER, data=raw.id, metadata={"name": raw.name})


def _voice_profile_id(raw: VoiceCloneStatus) -> GeneratedArtifact | None:
    if not raw.profile_id:
        return None
    return GeneratedArtifact(kind=ArtifactKind.IDENTIFIER, data=raw.profile_id)


BINDINGS: dict[TaskKind, TaskBinding] = {
    TaskKind.AVATAR_BUILD: TaskBinding(
        kind=TaskKind.AVATAR_BUILD,
        initial_label="PENDING",
        vocabulary=AVATAR_BUILD_VOCABULARY,
        default_poll_interval=10.0,
        media=None,
        fetch=lambda client, task_id: client.get_avatar(task_id),
        extract=_avatar_id,
    ),
    TaskKind.AVATAR_GENERATE: TaskBinding(
        kind=TaskKind.AVATAR_GENERATE,
        initial_label="PROCESSING",
        vocabulary=GENERATION_VOCABULARY,
        default_poll_interval=2.0,
        media=MediaType.AVATAR,
        fetch=lambda client, task_id: client.get_avatar_generation_status(task_id),
        extract=_inline_image,
    ),
    TaskKind.IMAGE_GENERATE: TaskBinding(
        kind=TaskKind.IMAGE_GENERATE,
        initial_label="PROCESSING",
        vocabulary=GENERATION_VOCABULARY,
        default_poll_interval=2.0,
        media=MediaType.IMAGE,
        fetch=lambda client, task_id: client.get_image_generation_status(task_id),
        extract=_inline_image,
    ),
    TaskKind.VIDEO_GENERATE: TaskBinding(
        kind=TaskKind.VIDEO_GENERATE,
        initial_label="PROCESSING",
        vocabulary=GENERATION_VOCABULARY,
        default_poll_interval=2.0,
        media=MediaType.VIDEO,
        fetch=lambda client, task_id: client.get_talking_avatar_status(task_id),
        extract=_video_url,
    ),
    TaskKind.VOICE_CLONE: TaskBinding(
        kind=TaskKind.VOICE_CLONE,
        initial_label="PENDING",
        vocabulary=VOICE_CLONE_VOCABULARY,
        default_poll_interval=10.0,
        media=None,
        fetch=lambda client, task_id: client.get_voice_clone_status(task_id),
        extract=_voice_profile_id,
    ),
}


def get_binding(kind: TaskKind) -> TaskBinding:
    return BINDINGS[kind]
