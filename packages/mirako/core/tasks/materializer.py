"""Turn task results into files on disk.

Inline base64 results are decoded and written; URL results are streamed to
disk chunk by chunk; identifiers are passed through. Writes go to a temporary
``.part`` file in the destination directory and are moved into place once
complete, so an interrupted download never leaves a truncated media file.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
from datetime import datetime
from pathlib import Path

import aiofiles  # type: ignore[import-untyped]
import aiofiles.os  # type: ignore[import-untyped]
import httpx

from mirako.core.api.http import ApiError, AsyncApiClient, HttpClientConfig, RetryPolicy
from mirako.core.errors import ArtifactWriteError, DecodeError, DownloadError
from mirako.core.tasks.models import ArtifactKind, GeneratedArtifact, MaterializedResult, MediaType

logger = logging.getLogger(__name__)

_DATA_URL_PREFIX = re.compile(r"^data:[^,]*;base64,", re.IGNORECASE)

DOWNLOAD_TIMEOUT = httpx.Timeout(300.0, connect=10.0)
CHUNK_SIZE = 64 * 1024

# Storage hosts occasionally answer 5xx or drop the connection before the body starts
DOWNLOAD_RETRY = RetryPolicy(max_attempts=3)


def ensure_extension(path: str | Path, media: MediaType) -> Path:
    """Append the canonical extension unless the path already ends in an accepted one.

    The suffix is appended, never substituted: ``clip.mov`` becomes ``clip.mov.mp4``.
    """
    p = Path(path)
    if p.name.lower().endswith(media.accepted_extensions):
        return p
    return p.with_name(p.name + media.extension)


def default_filename(media: MediaType, now: datetime | None = None, stem: str | None = None) -> str:
    """Build ``<media>_<YYYYmmdd_HHMMSS_mmm><ext>``, or ``<media>_<stem><ext>``."""
    if stem is None:
        now = now or datetime.now()
        stem = f"{now:%Y%m%d_%H%M%S}_{now.microsecond // 1000:03d}"
    return f"{media.value}_{stem}{media.extension}"


def resolve_output_path(
    media: MediaType,
    output: str | Path | None = None,
    save_dir: str | Path = ".",
    *,
    stem: str | None = None,
    now: datetime | None = None,
) -> Path:
    """Pick the destination: the explicit path if given, else a default name in ``save_dir``."""
    if output:
        return ensure_extension(Path(output).expanduser(), media)
    return Path(save_dir).expanduser() / default_filename(media, now=now, stem=stem)


def strip_data_url(data: str) -> str:
    """Remove a leading ``data:<mime>;base64,`` prefix, if present."""
    return _DATA_URL_PREFIX.sub("", data.strip(), count=1)


def decode_base64(data: str) -> bytes:
    """Decode base64 text (optionally a data URL).

    Line breaks and other ASCII whitespace inside the payload are ignored, so
    MIME-wrapped base64 decodes the same as a single line.

    Raises:
        DecodeError: If the text is not valid base64
    """
    try:
        return base64.b64decode("".join(strip_data_url(data).split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Failed to decode base64 data: {e}") from e


def _part_path(path: Path) -> Path:
    return path.with_name(path.name + ".part")


async def write_bytes(path: Path, content: bytes) -> int:
    """Write ``content`` to ``path``, creating parent directories.

    Raises:
        ArtifactWriteError: If the directory or file cannot be written
    """
    tmp = _part_path(path)
    try:
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        async with aiofiles.open(tmp, mode="wb") as f:
            await f.write(content)
        await aiofiles.os.replace(tmp, path)
    except asyncio.CancelledError:
        await _discard(tmp)
        raise
    except OSError as e:
        await _discard(tmp)
        raise ArtifactWriteError(str(path), e) from e
    return len(content)


async def _discard(tmp: Path) -> None:
    try:
        await aiofiles.os.remove(tmp)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.debug(f"Could not remove partial file {tmp}: {e}")


async def download_to_file(
    url: str,
    path: Path,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    retry_policy: RetryPolicy = DOWNLOAD_RETRY,
) -> int:
    """Stream ``url`` into ``path`` without buffering the whole body.

    No credentials are sent: result URLs are pre-signed links on a separate host.
    Failures before the first byte arrives are retried per ``retry_policy``.

    Returns:
        Number of bytes written

    Raises:
        DownloadError: On non-2xx status, transport failure or a malformed URL
        ArtifactWriteError: If the file cannot be written
    """
    try:
        config = HttpClientConfig.for_origin(url, timeout=DOWNLOAD_TIMEOUT)
    except ValueError as e:
        raise DownloadError(url, "not an http(s) URL") from e

    tmp = _part_path(path)
    written = 0
    try:
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        client = AsyncApiClient(config, retry_policy=retry_policy, transport=transport)
        async with client, client.stream("GET", url) as response:
            async with aiofiles.open(tmp, mode="wb") as f:
                async for chunk in response.aiter_bytes(CHUNK_SIZE):
                    await f.write(chunk)
                    written += len(chunk)
        await aiofiles.os.replace(tmp, path)
    except asyncio.CancelledError:
        await _discard(tmp)
        raise
    except ApiError as e:
        await _discard(tmp)
        reason = f"status {e.status_code}" if e.status_code is not None else e.message
        raise DownloadError(url, reason) from e
    except OSError as e:
        await _discard(tmp)
        raise ArtifactWriteError(str(path), e) from e

    logger.debug(f"Downloaded {written} bytes from {url} to {path}")
    return written


class ResultMaterializer:
    """Persist artifacts according to the caller's save preferences.

    Args:
        save_dir: Directory for default filenames (``default_save_path`` config)
        transport: Optional httpx transport used for downloads
        retry_policy: Retry policy for result downloads
    """

    def __init__(
        self,
        save_dir: str | Path = ".",
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_policy: RetryPolicy = DOWNLOAD_RETRY,
    ) -> None:
        self.save_dir = Path(save_dir)
        self._transport = transport
        self._retry_policy = retry_policy

    async def materialize(
        self,
        artifact: GeneratedArtifact,
        media: MediaType | None,
        *,
        skip_save: bool = False,
        output: str | Path | None = None,
        stem: str | None = None,
    ) -> MaterializedResult:
        """Write ``artifact`` to disk unless ``skip_save`` is set.

        Args:
            artifact: Completed task result
            media: Output media (decides extension and default name)
            skip_save: Only describe the artifact, touch nothing on disk
            output: Explicit destination path
            stem: Replaces the timestamp in the default filename (e.g. a task id)

        Returns:
            Resolved path and byte count, or a description-only result

        Raises:
            DecodeError: Invalid base64 payload
            DownloadError: Result URL could not be fetched
            ArtifactWriteError: Local write failed
        """
        if skip_save or artifact.kind is ArtifactKind.IDENTIFIER or media is None:
            return MaterializedResult(artifact=artifact)

        path = resolve_output_path(media, output, self.save_dir, stem=stem)
        if artifact.kind is ArtifactKind.INLINE_BASE64:
            written = await write_bytes(path, decode_base64(artifact.data))
        else:
            written = await download_to_file(
                artifact.data, path, transport=self._transport, retry_policy=self._retry_policy
            )

        logger.info(f"Saved {media.value} ({written} bytes) to {path}")
        return MaterializedResult(artifact=artifact, path=path, bytes_written=written)
