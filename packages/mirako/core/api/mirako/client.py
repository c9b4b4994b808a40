"""Typed async client for the Mirako REST API."""

from __future__ import annotations

import logging
import mimetypes
from collections.abc import Sequence
from contextlib import ExitStack
from pathlib import Path
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel

from mirako.core.api.http import AsyncApiClient, BearerAuth, HttpClientConfig, RetryPolicy
from mirako.core.api.mirako import endpoints
from mirako.core.api.mirako.models import (
    Avatar,
    AvatarBuildStarted,
    Envelope,
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
from mirako.core.config.models import MirakoConfig
from mirako.core.errors import AuthenticationError
from mirako.core.validation import validate_image_count

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

# Voice sample uploads can be large
UPLOAD_TIMEOUT = httpx.Timeout(3600.0, connect=10.0)


class MirakoClient:
    """Async client for every Mirako endpoint the CLI uses.

    Responses arrive wrapped as ``{"data": ...}``; each method unwraps the
    envelope and returns a validated model. Transport failures surface as
    ``ApiError`` subclasses and are never retried unless a retry policy says so.

    Args:
        config: Loaded configuration (must carry an API token)
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
        retry_policy: Optional retry policy (default: single attempt)

    Raises:
        AuthenticationError: If no API token is configured
    """

    def __init__(
        self,
        config: MirakoConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        if not config.is_authenticated():
            raise AuthenticationError()
        self.config = config
        self._http = AsyncApiClient(
            HttpClientConfig(base_url=config.api_url),
            auth=BearerAuth(config.api_token or ""),
            retry_policy=retry_policy,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> MirakoClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Envelope handling
    # ------------------------------------------------------------------

    def _parse(self, response: httpx.Response, model: type[M]) -> M:
        return self._http.parse_pydantic(response, Envelope[model]).data

    def _parse_list(self, response: httpx.Response, model: type[M]) -> list[M]:
        # The service sends "data": null for an empty collection
        envelope = self._http.parse_pydantic(response, Envelope[list[model] | None])
        return envelope.data or []

    # ------------------------------------------------------------------
    # Avatars
    # ------------------------------------------------------------------

    async def list_avatars(self) -> list[Avatar]:
        resp = await self._http.get(endpoints.AVATAR_LIST)
        return self._parse_list(resp, Avatar)

    async def get_avatar(self, avatar_id: str) -> Avatar:
        resp = await self._http.get(endpoints.AVATAR.format(avatar_id=avatar_id))
        return self._parse(resp, Avatar)

    async def generate_avatar(self, prompt: str, seed: int | None = None) -> TaskStarted:
        """Start an avatar generation task from a text prompt."""
        body: dict[str, Any] = {"prompt": prompt}
        if seed is not None:
            body["seed"] = seed
        resp = await self._http.post(endpoints.AVATAR_GENERATE, json_body=body)
        return self._parse(resp, TaskStarted)

    async def get_avatar_generation_status(self, task_id: str) -> GenerationStatus:
        resp = await self._http.get(endpoints.AVATAR_GENERATE_STATUS.format(task_id=task_id))
        return self._parse(resp, GenerationStatus)

    async def build_avatar(self, name: str, image_b64: str) -> AvatarBuildStarted:
        """Start building a new avatar from a base64 image; returns the avatar id."""
        resp = await self._http.post(
            endpoints.AVATAR_BUILD, json_body={"name": name, "image": image_b64}
        )
        return self._parse(resp, AvatarBuildStarted)

    async def delete_avatar(self, avatar_id: str) -> None:
        await self._http.delete(endpoints.AVATAR.format(avatar_id=avatar_id))

    # ------------------------------------------------------------------
    # Interactive sessions
    # ------------------------------------------------------------------

    async def list_sessions(self) -> list[Session]:
        resp = await self._http.get(endpoints.INTERACTIVE_LIST)
        return self._parse_list(resp, Session)

    async def start_session(self, body: dict[str, Any]) -> StartedSession:
        resp = await self._http.post(endpoints.INTERACTIVE_START, json_body=body)
        return self._parse(resp, StartedSession)

    async def stop_sessions(self, session_ids: Sequence[str]) -> StoppedSessions:
        resp = await self._http.post(
            endpoints.INTERACTIVE_STOP, json_body={"session_ids": list(session_ids)}
        )
        return self._parse(resp, StoppedSessions)

    async def get_session_profile(self, session_id: str) -> SessionProfile:
        resp = await self._http.get(endpoints.INTERACTIVE_PROFILE.format(session_id=session_id))
        return self._parse(resp, SessionProfile)

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    async def generate_image(
        self,
        prompt: str,
        aspect_ratio: str,
        seed: int | None = None,
        images: Sequence[str] | None = None,
        labeled_images: Sequence[tuple[str, str]] | None = None,
    ) -> TaskStarted:
        """Start an image generation task.

        Args:
            prompt: Text prompt
            aspect_ratio: One of the supported ratios (e.g. "16:9")
            seed: Optional seed for reproducible output
            images: Unlabeled reference images (base64)
            labeled_images: ``(label, base64)`` reference images

        Raises:
            ValidationError: If more than 5 reference images are supplied
        """
        validate_image_count(len(images or ()), len(labeled_images or ()))
        body: dict[str, Any] = {"prompt": prompt, "aspect_ratio": aspect_ratio}
        if seed is not None:
            body["seed"] = seed
        if images:
            body["images"] = list(images)
        if labeled_images:
            body["labeled_images"] = [
                {"label": label, "image": data} for label, data in labeled_images
            ]
        resp = await self._http.post(endpoints.IMAGE_GENERATE, json_body=body)
        return self._parse(resp, TaskStarted)

    async def get_image_generation_status(self, task_id: str) -> GenerationStatus:
        resp = await self._http.get(endpoints.IMAGE_GENERATE_STATUS.format(task_id=task_id))
        return self._parse(resp, GenerationStatus)

    # ------------------------------------------------------------------
    # Speech
    # ------------------------------------------------------------------

    async def speech_to_text(self, audio_b64: str) -> Transcription:
        resp = await self._http.post(endpoints.SPEECH_TO_TEXT, json_body={"audio": audio_b64})
        return self._parse(resp, Transcription)

    async def text_to_speech(
        self,
        text: str,
        voice_profile_id: str,
        *,
        chinese_language: str | None = None,
        temperature: float = 1.0,
        fragment_interval: float = 0.1,
    ) -> SynthesizedSpeech:
        """Synthesize speech; the audio comes back as a base64 WAV string."""
        body: dict[str, Any] = {
            "text": text,
            "voice_profile_id": voice_profile_id,
            "return_type": "b64_audio_str",
            "opts": {"temperature": temperature, "fragment_interval": fragment_interval},
        }
        if chinese_language:
            body["chinese_language"] = chinese_language
        resp = await self._http.post(endpoints.TEXT_TO_SPEECH, json_body=body)
        return self._parse(resp, SynthesizedSpeech)

    # ------------------------------------------------------------------
    # Video
    # ------------------------------------------------------------------

    async def generate_talking_avatar(self, audio_b64: str, image_b64: str) -> TaskStarted:
        resp = await self._http.post(
            endpoints.TALKING_AVATAR_GENERATE,
            json_body={"audio": audio_b64, "image": image_b64},
        )
        return self._parse(resp, TaskStarted)

    async def get_talking_avatar_status(self, task_id: str) -> GenerationStatus:
        resp = await self._http.get(endpoints.TALKING_AVATAR_STATUS.format(task_id=task_id))
        return self._parse(resp, GenerationStatus)

    # ------------------------------------------------------------------
    # Voice
    # ------------------------------------------------------------------

    async def list_premade_profiles(self) -> list[VoiceProfile]:
        resp = await self._http.get(endpoints.VOICE_PREMADE_PROFILES)
        return self._parse_list(resp, VoiceProfile)

    async def list_voice_profiles(self) -> list[VoiceProfile]:
        resp = await self._http.get(endpoints.VOICE_PROFILES)
        return self._parse_list(resp, VoiceProfile)

    async def get_voice_profile(self, profile_id: str) -> VoiceProfile:
        resp = await self._http.get(endpoints.VOICE_PROFILE.format(profile_id=profile_id))
        return self._parse(resp, VoiceProfile)

    async def delete_voice_profile(self, profile_id: str) -> None:
        await self._http.delete(endpoints.VOICE_PROFILE.format(profile_id=profile_id))

    async def clone_voice(
        self,
        name: str,
        audio_files: Sequence[Path],
        annotation_file: Path,
        *,
        clean_data: bool = False,
    ) -> TaskStarted:
        """Upload voice samples and an annotation list to start a cloning task.

        Files are streamed from disk as multipart parts: ``annotation_list``
        once, ``audio_samples`` once per file.
        """
        logger.info(f"Uploading {len(audio_files)} audio files for voice cloning")
        with ExitStack() as stack:
            files: list[tuple[str, tuple[str, Any, str]]] = [
                (
                    "annotation_list",
                    (
                        annotation_file.name,
                        stack.enter_context(annotation_file.open("rb")),
                        "text/plain",
                    ),
                )
            ]
            for audio in audio_files:
                content_type = mimetypes.guess_type(audio.name)[0] or "audio/wav"
                files.append(
                    (
                        "audio_samples",
                        (audio.name, stack.enter_context(audio.open("rb")), content_type),
                    )
                )
            resp = await self._http.post(
                endpoints.VOICE_CLONE,
                data={"name": name, "clean_data": "true" if clean_data else "false"},
                files=files,
                timeout=UPLOAD_TIMEOUT,
            )
        return self._parse(resp, TaskStarted)

    async def get_voice_clone_status(self, task_id: str) -> VoiceCloneStatus:
        resp = await self._http.get(endpoints.VOICE_CLONE_STATUS.format(task_id=task_id))
        return self._parse(resp, VoiceCloneStatus)
