"""Mirako REST API client and wire models."""

from mirako.core.api.mirako.client import MirakoClient
from mirako.core.api.mirako.models import (
    Avatar,
    AvatarBuildStarted,
    GenerationStatus,
    Session,
    SessionProfile,
    StartedSession,
    StoppedSessions,
    SynthesizedSpeech,
    TaskStarted,
    Transcription,
    VoiceCloneStatus,
    VoiceProfile,
)

__all__ = [
    "MirakoClient",
    "Avatar",
    "AvatarBuildStarted",
    "GenerationStatus",
    "Session",
    "SessionProfile",
    "StartedSession",
    "StoppedSessions",
    "SynthesizedSpeech",
    "TaskStarted",
    "Transcription",
    "VoiceCloneStatus",
    "VoiceProfile",
]
