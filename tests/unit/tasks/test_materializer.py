"""Tests for saving task results to disk."""

from __future__ import annotations

import asyncio
import base64
import os
from datetime import datetime
from pathlib import Path

import httpx
import pytest

from mirako.core.api.http import RetryPolicy
from mirako.core.errors import DecodeError, DownloadError
from mirako.core.tasks import (
    ArtifactKind,
    GeneratedArtifact,
    MediaType,
    ResultMaterializer,
    decode_base64,
    default_filename,
    ensure_extension,
    strip_data_url,
)
from mirako.core.tasks.materializer import resolve_output_path
from tests.fixtures.http import RecordingTransport


def inline(data: str) -> GeneratedArtifact:
    return GeneratedArtifact(kind=ArtifactKind.INLINE_BASE64, data=data)


class TestPaths:
    def test_extension_appended(self) -> None:
        assert ensure_extension("out/avatar", MediaType.AVATAR) == Path("out/avatar.jpg")

    def test_extension_appended_not_substituted(self) -> None:
        assert ensure_extension("clip.mov", MediaType.VIDEO) == Path("clip.mov.mp4")

    def test_accepted_extension_kept(self) -> None:
        assert ensure_extension("photo.JPEG", MediaType.IMAGE) == Path("photo.JPEG")

    def test_ensure_extension_is_idempotent(self) -> None:
        once = ensure_extension("speech", MediaType.SPEECH)

        assert ensure_extension(once, MediaType.SPEECH) == once

    def test_default_filename_uses_millisecond_timestamp(self) -> None:
        now = datetime(2024, 5, 17, 9, 3, 7, 42_500)

        assert default_filename(MediaType.IMAGE, now=now) == "image_20240517_090307_042.jpg"

    def test_default_filename_with_stem(self) -> None:
        assert default_filename(MediaType.VIDEO, stem="task_1") == "video_task_1.mp4"

    def test_resolve_prefers_explicit_output(self, tmp_path: Path) -> None:
        path = resolve_output_path(MediaType.SPEECH, tmp_path / "hello", save_dir="/elsewhere")

        assert path == tmp_path / "hello.wav"

    def test_resolve_defaults_to_save_dir(self, tmp_path: Path) -> None:
        path = resolve_output_path(MediaType.AVATAR, None, save_dir=tmp_path, stem="t1")

        assert path == tmp_path / "avatar_t1.jpg"


class TestBase64:
    def test_data_url_prefix_stripped(self) -> None:
        assert strip_data_url("data:image/jpeg;base64,QUJD") == "QUJD"
        assert strip_data_url("QUJD") == "QUJD"

    def test_data_url_decodes_same_as_bare(self) -> None:
        assert decode_base64("data:image/png;base64,QUJD") == decode_base64("QUJD") == b"ABC"

    def test_invalid_base64_is_decode_error(self) -> None:
        with pytest.raises(DecodeError):
            decode_base64("not base64!!")

    @pytest.mark.parametrize("size", [0, 1, 2, 3, 255, 4096])
    def test_binary_content_survives_with_and_without_prefix(self, size: int) -> None:
        content = os.urandom(size)
        encoded = base64.b64encode(content).decode("ascii")

        assert decode_base64(encoded) == content
        assert decode_base64(f"data:application/octet-stream;base64,{encoded}") == content

    def test_line_wrapped_base64_decodes(self) -> None:
        content = os.urandom(100)
        wrapped = base64.encodebytes(content).decode("ascii")

        assert "\n" in wrapped
        assert decode_base64(wrapped) == content
        assert decode_base64(wrapped.replace("\n", "\r\n")) == content

    def test_describe_reports_decoded_size(self) -> None:
        artifact = inline("data:image/png;base64," + base64.b64encode(b"12345").decode())

        assert artifact.decoded_size == 5


class TestMaterialize:
    @pytest.mark.asyncio
    async def test_inline_artifact_written_with_extension(self, tmp_path: Path) -> None:
        materializer = ResultMaterializer(tmp_path)

        result = await materializer.materialize(
            inline("QUJD"), MediaType.AVATAR, output=tmp_path / "out" / "avatar"
        )

        target = tmp_path / "out" / "avatar.jpg"
        assert result.path == target
        assert result.bytes_written == 3
        assert target.read_bytes() == b"ABC"
        assert not (tmp_path / "out" / "avatar.jpg.part").exists()

    @pytest.mark.asyncio
    async def test_default_name_in_save_dir(self, tmp_path: Path) -> None:
        result = await ResultMaterializer(tmp_path / "media").materialize(
            inline("QUJD"), MediaType.IMAGE, stem="task_7"
        )

        assert result.path == tmp_path / "media" / "image_task_7.jpg"
        assert result.path.exists()

    @pytest.mark.asyncio
    async def test_skip_save_writes_nothing(self, tmp_path: Path) -> None:
        save_dir = tmp_path / "save"
        result = await ResultMaterializer(save_dir).materialize(
            inline("QUJD"), MediaType.IMAGE, skip_save=True
        )

        assert not result.saved
        assert result.describe() == "3 bytes (base64)"
        assert not save_dir.exists()

    @pytest.mark.asyncio
    async def test_identifier_passes_through(self, tmp_path: Path) -> None:
        artifact = GeneratedArtifact(kind=ArtifactKind.IDENTIFIER, data="vp_1")

        save_dir = tmp_path / "save"
        result = await ResultMaterializer(save_dir).materialize(artifact, None)

        assert result.describe() == "ID: vp_1"
        assert not save_dir.exists()

    @pytest.mark.asyncio
    async def test_invalid_payload_leaves_no_file(self, tmp_path: Path) -> None:
        save_dir = tmp_path / "save"
        with pytest.raises(DecodeError):
            await ResultMaterializer(save_dir).materialize(
                inline("%%%"), MediaType.IMAGE, output=save_dir / "x"
            )

        assert not save_dir.exists()

    @pytest.mark.asyncio
    async def test_remote_url_downloaded_without_credentials(self, tmp_path: Path) -> None:
        transport = RecordingTransport(lambda request: httpx.Response(200, content=b"mp4data"))
        artifact = GeneratedArtifact(
            kind=ArtifactKind.REMOTE_URL, data="https://cdn.mirako.test/results/v.mp4?sig=abc"
        )

        result = await ResultMaterializer(tmp_path, transport=transport).materialize(
            artifact, MediaType.VIDEO, stem="t_1"
        )

        assert result.path == tmp_path / "video_t_1.mp4"
        assert result.bytes_written == 7
        assert result.path.read_bytes() == b"mp4data"
        request = transport.requests[0]
        assert str(request.url) == "https://cdn.mirako.test/results/v.mp4?sig=abc"
        assert "authorization" not in request.headers

    @pytest.mark.asyncio
    async def test_remote_url_error_status(self, tmp_path: Path) -> None:
        transport = RecordingTransport(lambda request: httpx.Response(404, text="gone"))
        artifact = GeneratedArtifact(kind=ArtifactKind.REMOTE_URL, data="https://cdn.test/v.mp4")

        with pytest.raises(DownloadError, match="status 404"):
            await ResultMaterializer(tmp_path, transport=transport).materialize(
                artifact, MediaType.VIDEO, output=tmp_path / "v"
            )

        assert not (tmp_path / "v.mp4").exists()
        assert not (tmp_path / "v.mp4.part").exists()

    @pytest.mark.asyncio
    async def test_non_http_url_rejected(self, tmp_path: Path) -> None:
        artifact = GeneratedArtifact(kind=ArtifactKind.REMOTE_URL, data="file:///etc/passwd")

        with pytest.raises(DownloadError):
            await ResultMaterializer(tmp_path).materialize(artifact, MediaType.VIDEO)

    @pytest.mark.asyncio
    async def test_transient_download_failure_is_retried(self, tmp_path: Path) -> None:
        responses = iter([httpx.Response(503), httpx.Response(200, content=b"jpg")])
        transport = RecordingTransport(lambda request: next(responses))
        artifact = GeneratedArtifact(kind=ArtifactKind.REMOTE_URL, data="https://cdn.test/a.jpg")
        retry = RetryPolicy(max_attempts=3, base_delay_s=0.0, max_delay_s=0.0)

        result = await ResultMaterializer(
            tmp_path, transport=transport, retry_policy=retry
        ).materialize(artifact, MediaType.IMAGE, stem="t_2")

        assert result.path is not None
        assert result.path.read_bytes() == b"jpg"
        assert len(transport.requests) == 2

    @pytest.mark.asyncio
    async def test_cancelled_download_leaves_no_partial_file(self, tmp_path: Path) -> None:
        first_chunk_written = asyncio.Event()

        async def body():
            yield b"x" * 16
            first_chunk_written.set()
            await asyncio.sleep(10)
            yield b"never"

        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=body()))
        artifact = GeneratedArtifact(kind=ArtifactKind.REMOTE_URL, data="https://cdn.test/v.mp4")
        target = tmp_path / "save" / "v.mp4"

        task = asyncio.create_task(
            ResultMaterializer(tmp_path, transport=transport).materialize(
                artifact, MediaType.VIDEO, output=target
            )
        )
        await asyncio.wait_for(first_chunk_written.wait(), timeout=5)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert not target.exists()
        assert not (tmp_path / "save" / "v.mp4.part").exists()
