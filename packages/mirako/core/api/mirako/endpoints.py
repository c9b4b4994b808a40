"""Mirako REST endpoint paths (relative to the configured API URL)."""

from __future__ import annotations

AVATAR_LIST = "/v1/avatar/list"
AVATAR = "/v1/avatar/{avatar_id}"
AVATAR_GENERATE = "/v1/avatar/async_generate"
AVATAR_GENERATE_STATUS = "/v1/avatar/async_generate/{task_id}/status"
AVATAR_BUILD = "/v1/avatar/async_build"

INTERACTIVE_LIST = "/v1/interactive/list"
INTERACTIVE_START = "/v1/interactive/start"
INTERACTIVE_STOP = "/v1/interactive/stop"
INTERACTIVE_PROFILE = "/v1/interactive/{session_id}/profile"

IMAGE_GENERATE = "/v1/image/async_generate"
IMAGE_GENERATE_STATUS = "/v1/image/async_generate/{task_id}/status"

SPEECH_TO_TEXT = "/v1/speech/stt"
TEXT_TO_SPEECH = "/v1/speech/tts"

TALKING_AVATAR_GENERATE = "/v1/video/async_generate_talking_avatar"
TALKING_AVATAR_STATUS = "/v1/video/async_generate_talking_avatar/{task_id}/status"

VOICE_PREMADE_PROFILES = "/v1/voice/premade_profiles"
VOICE_PROFILES = "/v1/voice/profiles"
VOICE_PROFILE = "/v1/voice/profiles/{profile_id}"
VOICE_CLONE = "/v1/voice/clone"
VOICE_CLONE_STATUS = "/v1/voice/clone/{task_id}/status"
