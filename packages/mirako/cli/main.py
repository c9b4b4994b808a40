"""Command-line interface for Mirako.

Every command is an ``async def cmd_*(args, ctx) -> int`` handler. ``main``
parses arguments, loads configuration, wires SIGINT to the cancellation token
and turns errors into one red line plus exit status 1.
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import logging
import signal
import sys
import webbrowser
from collections.abc import Awaitable, Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any

import httpx
from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, Prompt
from rich.table import Table

from mirako.core.api.http import ApiError, friendly_message
from mirako.core.api.mirako import MirakoClient
from mirako.core.config import (
    CONFIG_KEYS,
    MirakoConfig,
    apply_overrides,
    default_config_path,
    get_config_value,
    load_config,
    save_config,
    set_config_value,
)
from mirako.core.errors import CancellationError, MirakoError, ValidationError
from mirako.core.tasks import (
    ArtifactKind,
    GeneratedArtifact,
    MaterializedResult,
    MediaType,
    PollConfig,
    ResultMaterializer,
    TaskHandle,
    TaskKind,
    TaskPoller,
    TaskState,
    TaskStatus,
    get_binding,
    run_with_spinner,
)
from mirako.core.tasks.materializer import write_bytes
from mirako.core.utils.logging import configure_logging
from mirako.core.validation import (
    ASPECT_RATIOS,
    CHINESE_LANGUAGES,
    parse_labeled_image,
    require_file,
    validate_aspect_ratio,
    validate_chinese_language,
    validate_image_count,
    validate_prompt,
    validate_unit_interval,
    validate_voice_clone_input,
)

console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger(__name__)

INTERACTIVE_URL = "https://interactive.mirako.ai/i/{session_id}"
DEFAULT_LLM_MODEL = "gemini-2.0-flash"
DEFAULT_INSTRUCTION = "You are a helpful AI assistant."


def _version() -> str:
    try:
        return version("mirako")
    except PackageNotFoundError:
        return "dev"


class InterruptRouter:
    """Turn Ctrl+C into cancellation of the running command.

    The first SIGINT sets the cancellation token, which the poller and
    spinner watch, and cancels the command task so any other pending await
    (a start call, an upload, a download) is interrupted too. While a
    blocking prompt is open the default handler is restored, so Ctrl+C raises
    ``KeyboardInterrupt`` there instead of waiting for the prompt to return.
    """

    def __init__(self, token: asyncio.Event) -> None:
        self.token = token
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Future | None = None

    def install(self, task: asyncio.Future) -> bool:
        """Route SIGINT to ``task``; False where signal handlers are unsupported."""
        loop = task.get_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, self._interrupt)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform or outside the main thread
            return False
        self._loop, self._task = loop, task
        return True

    def remove(self) -> None:
        if self._loop is not None:
            self._loop.remove_signal_handler(signal.SIGINT)
            self._loop = self._task = None

    def _interrupt(self) -> None:
        if self.token.is_set():
            return
        logger.debug("SIGINT received, cancelling command")
        self.token.set()
        if self._task is not None:
            self._task.cancel()

    @contextmanager
    def suspended(self) -> Iterator[None]:
        """Restore default Ctrl+C handling around a blocking prompt."""
        loop = self._loop
        if loop is None:
            yield
            return
        loop.remove_signal_handler(signal.SIGINT)
        try:
            yield
        finally:
            if not loop.is_closed():
                loop.add_signal_handler(signal.SIGINT, self._interrupt)


@dataclass
class CommandContext:
    """Per-invocation state shared by command handlers.

    Attributes:
        config: Effective configuration (file, environment, then flags)
        config_path: File that ``auth`` and ``config set`` write to
        cancel_token: Set by the SIGINT handler to abort polling
        transport: Optional httpx transport (tests inject a MockTransport)
        interrupts: Routes SIGINT to the token and the running command
    """

    config: MirakoConfig
    config_path: Path
    cancel_token: asyncio.Event = field(default_factory=asyncio.Event)
    transport: httpx.AsyncBaseTransport | None = None
    interrupts: InterruptRouter = field(init=False)

    def __post_init__(self) -> None:
        self.interrupts = InterruptRouter(self.cancel_token)

    def client(self) -> MirakoClient:
        return MirakoClient(self.config, transport=self.transport)

    def materializer(self) -> ResultMaterializer:
        return ResultMaterializer(self.config.default_save_path, transport=self.transport)


# ============================================================================
# Helpers
# ============================================================================


def _print_error(message: str) -> None:
    err_console.print(f"[red]ERROR: {escape(message)}[/red]")


def _format_time(value: datetime | None) -> str:
    if value is None:
        return ""
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def _read_b64(path: str | Path, what: str) -> str:
    p = require_file(path, what)
    try:
        return base64.b64encode(p.read_bytes()).decode("ascii")
    except OSError as e:
        raise ValidationError(f"failed to read {what} {p}: {e}") from e


def _poll_config(args: argparse.Namespace, default_interval: float) -> PollConfig:
    return PollConfig(
        poll_interval=args.poll_interval or default_interval,
        timeout=args.timeout,
    )


async def _poll(
    ctx: CommandContext,
    client: MirakoClient,
    kind: TaskKind,
    task_id: str,
    poll_config: PollConfig,
) -> TaskStatus:
    binding = get_binding(kind)
    poller = TaskPoller(
        binding.fetcher(client),
        poll_config,
        initial_label=binding.initial_label,
        cancel_token=ctx.cancel_token,
    )
    return await poller.run(TaskHandle(id=task_id, kind=kind))


def _report_saved(result: MaterializedResult, noun: str) -> None:
    if result.saved:
        console.print(f"[green]✅ {noun} saved to:[/green] {result.path}")
        console.print(f"   Size: {result.bytes_written} bytes")
    else:
        console.print(f"   {result.describe()}")


def _confirm(ctx: CommandContext, question: str, force: bool) -> bool:
    if force:
        return True
    with ctx.interrupts.suspended():
        return Confirm.ask(question, console=console, default=False)


async def _status_command(
    args: argparse.Namespace,
    ctx: CommandContext,
    kind: TaskKind,
    noun: str,
) -> int:
    """Shared body of ``<resource> status TASK_ID``: print state, optionally save."""
    binding = get_binding(kind)
    async with ctx.client() as client:
        status = binding.to_status(await binding.fetch(client, args.task_id))

    console.print(f"Task ID: {args.task_id}")
    console.print(f"Status: {status.label}")
    if status.state.is_failure and status.error_detail:
        console.print(f"[red]   Error: {escape(status.error_detail)}[/red]")
    if status.state is not TaskState.COMPLETED or status.payload is None:
        return 0

    console.print(f"[green]✅ {noun} is ready![/green]")
    save = getattr(args, "save", False) or getattr(args, "output", None)
    result = await ctx.materializer().materialize(
        status.payload,
        binding.media,
        skip_save=not save,
        output=getattr(args, "output", None),
        stem=args.task_id,
    )
    _report_saved(result, noun)
    return 0


# ============================================================================
# version / auth / config
# ============================================================================


async def cmd_version(args: argparse.Namespace, ctx: CommandContext) -> int:
    console.print(f"mirako version {_version()}")
    return 0


async def cmd_auth_login(args: argparse.Namespace, ctx: CommandContext) -> int:
    token = args.token
    if not token:
        with ctx.interrupts.suspended():
            token = Prompt.ask("Enter your Mirako API token", password=True, console=console)
    token = (token or "").strip()
    if not token:
        raise ValidationError("API token cannot be empty")

    stored = load_config(ctx.config_path, use_env=False)
    path = save_config(stored.model_copy(update={"api_token": token}), ctx.config_path)
    console.print("[green]✅ Successfully authenticated![/green]")
    console.print(f"   Configuration saved to {path}")
    return 0


async def cmd_auth_logout(args: argparse.Namespace, ctx: CommandContext) -> int:
    stored = load_config(ctx.config_path, use_env=False)
    save_config(stored.model_copy(update={"api_token": None}), ctx.config_path)
    console.print("[green]✅ Logged out[/green]")
    return 0


async def cmd_auth_status(args: argparse.Namespace, ctx: CommandContext) -> int:
    if ctx.config.is_authenticated():
        console.print("[green]✅ Authenticated[/green]")
        console.print(f"   API URL: {ctx.config.api_url}")
    else:
        console.print("❌ Not authenticated. Run 'mirako auth login' to authenticate")
    return 0


async def cmd_config_set(args: argparse.Namespace, ctx: CommandContext) -> int:
    stored = load_config(ctx.config_path, use_env=False)
    save_config(set_config_value(stored, args.key, args.value), ctx.config_path)
    shown = "***" if args.key == "api-token" else args.value
    console.print(f"[green]✅ Set {args.key} = {escape(shown)}[/green]")
    return 0


async def cmd_config_get(args: argparse.Namespace, ctx: CommandContext) -> int:
    console.print(get_config_value(ctx.config, args.key), markup=False)
    return 0


async def cmd_config_list(args: argparse.Namespace, ctx: CommandContext) -> int:
    for key in CONFIG_KEYS:
        console.print(f"{key}: {get_config_value(ctx.config, key)}", markup=False)
    if ctx.config.interactive_profiles:
        console.print(f"interactive-profiles: {', '.join(sorted(ctx.config.interactive_profiles))}")
    return 0


# ============================================================================
# avatar
# ============================================================================


async def cmd_avatar_list(args: argparse.Namespace, ctx: CommandContext) -> int:
    async with ctx.client() as client:
        avatars = await client.list_avatars()

    if args.json:
        console.print_json(data=[a.model_dump(mode="json", exclude={"image"}) for a in avatars])
        return 0
    if not avatars:
        console.print("No avatars found")
        return 0

    table = Table(show_edge=False, box=None)
    for column in ("NAME", "ID", "STATUS", "CREATED"):
        table.add_column(column)
    for avatar in avatars:
        table.add_row(avatar.name, avatar.id, avatar.status, _format_time(avatar.created_at))
    console.print(table)
    return 0


async def cmd_avatar_view(args: argparse.Namespace, ctx: CommandContext) -> int:
    async with ctx.client() as client:
        avatar = await client.get_avatar(args.avatar_id)

    console.print(f"ID: {avatar.id}")
    console.print(f"Name: {avatar.name}")
    console.print(f"Status: {avatar.status}")
    console.print(f"Created: {_format_time(avatar.created_at)}")
    if avatar.themes:
        console.print(f"Themes: {', '.join(avatar.themes)}")
    return 0


async def cmd_avatar_generate(args: argparse.Namespace, ctx: CommandContext) -> int:
    prompt = validate_prompt(args.prompt)
    binding = get_binding(TaskKind.AVATAR_GENERATE)
    poll_config = _poll_config(args, ctx.config.default_poll_interval)

    async with ctx.client() as client:
        console.print("🚀 Starting avatar generation...")
        started = await client.generate_avatar(prompt, seed=args.seed)
        console.print(f"   Task ID: {started.task_id}")
        status = await _poll(ctx, client, binding.kind, started.task_id, poll_config)

    console.print("[green]✅ Avatar generated successfully![/green]")
    result = await ctx.materializer().materialize(
        status.payload, binding.media, skip_save=args.no_save, output=args.output
    )
    _report_saved(result, "Avatar")
    return 0


async def cmd_avatar_build(args: argparse.Namespace, ctx: CommandContext) -> int:
    binding = get_binding(TaskKind.AVATAR_BUILD)
    image_b64 = _read_b64(args.image, "image file")
    poll_config = _poll_config(args, binding.default_poll_interval)

    async with ctx.client() as client:
        console.print("🚀 Starting avatar build...")
        started = await client.build_avatar(args.name, image_b64)
        console.print("[green]✅ Avatar build started![/green]")
        console.print(f"   Avatar ID: {started.avatar_id}")
        console.print("\n💡 Check the build status anytime with:")
        console.print(f"   mirako avatar view {started.avatar_id}")
        console.print("   You can safely quit with Ctrl+C; the build continues on the server.\n")
        await _poll(ctx, client, binding.kind, started.avatar_id, poll_config)

    console.print("[green]✅ Avatar build completed![/green]")
    console.print(f"   Avatar ID: {started.avatar_id}")
    return 0


async def cmd_avatar_status(args: argparse.Namespace, ctx: CommandContext) -> int:
    return await _status_command(args, ctx, TaskKind.AVATAR_GENERATE, "Avatar")


async def cmd_avatar_delete(args: argparse.Namespace, ctx: CommandContext) -> int:
    question = f"Delete avatar {args.avatar_id}? This cannot be undone"
    if not _confirm(ctx, question, args.force):
        console.print("Deletion cancelled")
        return 0
    async with ctx.client() as client:
        await client.delete_avatar(args.avatar_id)
    console.print(f"[green]✅ Avatar {args.avatar_id} deleted[/green]")
    return 0


# ============================================================================
# interactive
# ============================================================================


async def cmd_interactive_list(args: argparse.Namespace, ctx: CommandContext) -> int:
    async with ctx.client() as client:
        sessions = await client.list_sessions()

    if args.json:
        console.print_json(data=[s.model_dump(mode="json") for s in sessions])
        return 0
    if not sessions:
        console.print("No active sessions found")
        return 0

    table = Table(show_edge=False, box=None)
    for column in ("SESSION ID", "MODEL", "STATE", "START TIME"):
        table.add_column(column)
    for session in sessions:
        state = session.state or ""
        if session.desired_state and session.desired_state != session.state:
            state = f"{state} -> {session.desired_state}"
        table.add_row(
            session.session_id, session.metis_model, state, _format_time(session.start_time)
        )
    console.print(table)
    return 0


async def cmd_interactive_start(args: argparse.Namespace, ctx: CommandContext) -> int:
    profile = None
    if args.profile:
        profile = ctx.config.get_profile(args.profile)
        if profile is None:
            raise ValidationError(f"interactive profile not found: {args.profile}")

    def pick(flag: str | None, attr: str, default: str | None) -> str | None:
        if flag:
            return flag
        if profile is not None and getattr(profile, attr):
            return getattr(profile, attr)
        return default

    avatar_id = pick(args.avatar, "avatar_id", None)
    if not avatar_id:
        raise ValidationError("avatar ID is required. Use --avatar flag")
    body: dict[str, Any] = {
        "avatar_id": avatar_id,
        "model": pick(args.model, "model", ctx.config.default_model),
        "llm_model": pick(args.llm_model, "llm_model", DEFAULT_LLM_MODEL),
        "voice_profile_id": pick(args.voice, "voice_profile_id", ctx.config.default_voice),
        "instruction": pick(args.instruction, "instruction", DEFAULT_INSTRUCTION),
    }
    tools = pick(None, "tools", None)
    if tools:
        body["tools"] = tools

    async with ctx.client() as client:
        started = await client.start_session(body)

    session_id = started.session.session_id
    url = INTERACTIVE_URL.format(session_id=session_id)
    console.print("[green]✅ Session started successfully![/green]")
    console.print(f"   Session ID: {session_id}")
    console.print(f"   Model: {started.session.metis_model}")
    console.print("You can use the following token for interactive api calls:")
    console.print(f"   {started.session_token}", markup=False)
    console.print(f"\nOpen the session in your browser: {url}")
    if not args.no_browser:
        webbrowser.open(url)
    return 0


async def cmd_interactive_stop(args: argparse.Namespace, ctx: CommandContext) -> int:
    async with ctx.client() as client:
        result = await client.stop_sessions(args.session_ids)

    if not result.stopped_sessions:
        console.print("No sessions were stopped")
        return 0
    console.print(f"[green]✅ Successfully stopped {len(result.stopped_sessions)} session(s):[/green]")
    for session_id in result.stopped_sessions:
        console.print(f"   {session_id}")
    return 0


async def cmd_interactive_view(args: argparse.Namespace, ctx: CommandContext) -> int:
    async with ctx.client() as client:
        profile = await client.get_session_profile(args.session_id)

    console.print(f"Session ID: {args.session_id}")
    for name, value in profile.model_dump(exclude_none=True).items():
        console.print(f"  {name.replace('_', ' ').title()}: {value}", markup=False)
    return 0


# ============================================================================
# image
# ============================================================================


async def cmd_image_generate(args: argparse.Namespace, ctx: CommandContext) -> int:
    if not args.prompt or not args.prompt.strip():
        raise ValidationError("prompt is required. Use --prompt flag")
    aspect_ratio = validate_aspect_ratio(args.aspect_ratio)
    image_paths = args.image or []
    labeled = [parse_labeled_image(v) for v in args.labeled_image or []]
    validate_image_count(len(image_paths), len(labeled))
    images = [_read_b64(p, "image file") for p in image_paths]
    labeled_images = [(label, _read_b64(p, "image file")) for label, p in labeled]

    binding = get_binding(TaskKind.IMAGE_GENERATE)
    poll_config = _poll_config(args, ctx.config.default_poll_interval)
    async with ctx.client() as client:
        console.print("🚀 Starting image generation...")
        started = await client.generate_image(
            args.prompt,
            aspect_ratio,
            seed=args.seed,
            images=images,
            labeled_images=labeled_images,
        )
        console.print(f"   Task ID: {started.task_id}")
        status = await _poll(ctx, client, binding.kind, started.task_id, poll_config)

    console.print("[green]✅ Image generated successfully![/green]")
    result = await ctx.materializer().materialize(
        status.payload, binding.media, skip_save=args.no_save, output=args.output
    )
    _report_saved(result, "Image")
    return 0


async def cmd_image_status(args: argparse.Namespace, ctx: CommandContext) -> int:
    return await _status_command(args, ctx, TaskKind.IMAGE_GENERATE, "Image")


# ============================================================================
# video
# ============================================================================


async def cmd_video_generate(args: argparse.Namespace, ctx: CommandContext) -> int:
    audio_b64 = _read_b64(args.audio, "audio file")
    image_b64 = _read_b64(args.image, "image file")
    binding = get_binding(TaskKind.VIDEO_GENERATE)
    poll_config = _poll_config(args, ctx.config.default_poll_interval)

    async with ctx.client() as client:
        console.print("🚀 Starting talking avatar video generation...")
        started = await client.generate_talking_avatar(audio_b64, image_b64)
        console.print(f"   Task ID: {started.task_id}")
        status = await _poll(ctx, client, binding.kind, started.task_id, poll_config)

    console.print("[green]✅ Video generated successfully![/green]")
    duration = status.payload.metadata.get("output_duration")
    if duration is not None:
        console.print(f"   Duration: {duration:.2f}s")
    result = await ctx.materializer().materialize(
        status.payload, binding.media, skip_save=args.no_save, output=args.output
    )
    _report_saved(result, "Video")
    return 0


async def cmd_video_status(args: argparse.Namespace, ctx: CommandContext) -> int:
    return await _status_command(args, ctx, TaskKind.VIDEO_GENERATE, "Video")


# ============================================================================
# speech
# ============================================================================


async def cmd_speech_stt(args: argparse.Namespace, ctx: CommandContext) -> int:
    audio_b64 = _read_b64(args.audio, "audio file")
    async with ctx.client() as client:
        result = await run_with_spinner(
            client.speech_to_text(audio_b64), "Transcribing audio...", ctx.cancel_token
        )

    console.print("[green]✅ Transcription:[/green]")
    console.print(result.text, markup=False)
    if args.output:
        path = Path(args.output).expanduser()
        await write_bytes(path, result.text.encode("utf-8"))
        console.print(f"[green]✅ Transcription saved to:[/green] {path}")
    return 0


async def cmd_speech_tts(args: argparse.Namespace, ctx: CommandContext) -> int:
    if not args.text or not args.text.strip():
        raise ValidationError("text is required. Use --text flag")
    voice = args.voice or ctx.config.default_voice
    if not voice:
        raise ValidationError("voice profile ID is required. Use --voice flag")
    chinese = validate_chinese_language(args.chinese)
    temperature = validate_unit_interval(args.temperature, "temperature")
    fragment_interval = validate_unit_interval(args.fragment_interval, "fragment interval")

    async with ctx.client() as client:
        speech = await run_with_spinner(
            client.text_to_speech(
                args.text,
                voice,
                chinese_language=chinese,
                temperature=temperature,
                fragment_interval=fragment_interval,
            ),
            "Synthesizing speech...",
            ctx.cancel_token,
        )

    console.print("[green]✅ Speech synthesized successfully![/green]")
    if speech.output_duration is not None:
        console.print(f"   Duration: {speech.output_duration:.2f}s")
    artifact = GeneratedArtifact(kind=ArtifactKind.INLINE_BASE64, data=speech.audio)
    result = await ctx.materializer().materialize(artifact, MediaType.SPEECH, output=args.output)
    _report_saved(result, "Audio")
    return 0


# ============================================================================
# voice
# ============================================================================


def _print_voice_profiles(profiles: Sequence[Any]) -> None:
    table = Table(show_edge=False, box=None)
    for column in ("ID", "NAME", "DESCRIPTION"):
        table.add_column(column)
    for profile in profiles:
        table.add_row(profile.id, profile.name, profile.description)
    console.print(table)


async def cmd_voice_premade(args: argparse.Namespace, ctx: CommandContext) -> int:
    async with ctx.client() as client:
        profiles = await client.list_premade_profiles()
    if not profiles:
        console.print("No voice profiles found")
        return 0
    _print_voice_profiles(profiles)
    return 0


async def cmd_voice_list(args: argparse.Namespace, ctx: CommandContext) -> int:
    async with ctx.client() as client:
        profiles = await client.list_voice_profiles()
    if not profiles:
        console.print("No custom voice profiles found")
        return 0
    _print_voice_profiles(profiles)
    return 0


async def cmd_voice_view(args: argparse.Namespace, ctx: CommandContext) -> int:
    async with ctx.client() as client:
        profile = await client.get_voice_profile(args.profile_id)

    console.print("Voice Profile:")
    console.print(f"  ID: {profile.id}")
    console.print(f"  Name: {profile.name}", markup=False)
    console.print(f"  Description: {profile.description}", markup=False)
    console.print(f"  Status: {profile.status}")
    console.print(f"  Created: {_format_time(profile.created_at)}")
    console.print(f"  Premade: {str(profile.is_premade).lower()}")
    if profile.user_id:
        console.print(f"  User ID: {profile.user_id}")
    if profile.sample_clip:
        console.print(f"  Sample: {profile.sample_clip}")
    return 0


async def cmd_voice_delete(args: argparse.Namespace, ctx: CommandContext) -> int:
    question = f"Delete voice profile {args.profile_id}? This cannot be undone"
    if not _confirm(ctx, question, args.force):
        console.print("Deletion cancelled")
        return 0
    async with ctx.client() as client:
        await client.delete_voice_profile(args.profile_id)
    console.print(f"[green]✅ Voice profile {args.profile_id} deleted[/green]")
    return 0


async def cmd_voice_clone(args: argparse.Namespace, ctx: CommandContext) -> int:
    annotation = require_file(args.annotation, "annotation file")
    audio_files = validate_voice_clone_input(args.audio_dir, annotation)
    binding = get_binding(TaskKind.VOICE_CLONE)
    poll_config = _poll_config(args, binding.default_poll_interval)

    async with ctx.client() as client:
        console.print(f"🚀 Uploading {len(audio_files)} audio files for voice cloning...")
        started = await client.clone_voice(
            args.name, audio_files, annotation, clean_data=args.clean_data
        )
        console.print(f"   Task ID: {started.task_id}")
        status = await _poll(ctx, client, binding.kind, started.task_id, poll_config)

    console.print("[green]✅ Voice cloned successfully![/green]")
    console.print(f"   Voice Profile ID: {status.payload.data}")
    return 0


async def cmd_voice_status(args: argparse.Namespace, ctx: CommandContext) -> int:
    binding = get_binding(TaskKind.VOICE_CLONE)
    async with ctx.client() as client:
        status = binding.to_status(await binding.fetch(client, args.task_id))

    console.print(f"Task ID: {args.task_id}")
    console.print(f"Status: {status.label}")
    if status.error_detail:
        console.print(f"[red]   Error: {escape(status.error_detail)}[/red]")
    if status.payload is not None:
        console.print(f"   Voice Profile ID: {status.payload.data}")
    return 0


# ============================================================================
# Argument parsing
# ============================================================================


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from e
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0: {value!r}")
    return number


def _add_poll_args(p: argparse.ArgumentParser, default_help: str) -> None:
    p.add_argument(
        "--poll-interval",
        "-p",
        type=_positive_float,
        default=None,
        help=f"Seconds between status checks (default: {default_help})",
    )
    p.add_argument(
        "--timeout",
        type=_positive_float,
        default=None,
        help="Give up after this many seconds (default: wait until done or Ctrl+C)",
    )


def _add_save_args(p: argparse.ArgumentParser, example: str) -> None:
    p.add_argument("--output", "-o", help=f"Output file path (e.g. {example})")
    p.add_argument(
        "--no-save", action="store_true", help="Do not save the result, only report it"
    )


def _add_status_args(p: argparse.ArgumentParser, example: str) -> None:
    p.add_argument("task_id", help="Task ID returned by the generate command")
    p.add_argument("--save", action="store_true", help="Save the result if the task is complete")
    p.add_argument("--output", "-o", help=f"Output file path (implies --save, e.g. {example})")


def build_arg_parser() -> argparse.ArgumentParser:
    """Build argument parser for CLI."""
    p = argparse.ArgumentParser(
        prog="mirako",
        description="Mirako - command-line client for Mirako AI avatars, images, video and voice",
    )
    p.add_argument("--version", action="version", version=f"mirako {_version()}")
    p.add_argument("--debug", action="store_true", help="Enable debug logging on stderr")
    p.add_argument("--api-token", help="API token (overrides config and MIRAKO_API_TOKEN)")
    p.add_argument("--api-url", help="API base URL (overrides config and MIRAKO_API_URL)")
    p.add_argument(
        "--config", type=Path, default=None, help="Config file (default: ~/.mirako/config.yml)"
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("version", help="Print the CLI version").set_defaults(func=cmd_version)

    # auth
    auth = sub.add_parser("auth", help="Manage authentication")
    auth_sub = auth.add_subparsers(dest="auth_cmd", required=True)
    login = auth_sub.add_parser("login", help="Store an API token")
    login.add_argument("--token", "-t", help="API token (prompted for when omitted)")
    login.set_defaults(func=cmd_auth_login)
    auth_sub.add_parser("logout", help="Remove the stored API token").set_defaults(
        func=cmd_auth_logout
    )
    auth_sub.add_parser("status", help="Show authentication status").set_defaults(
        func=cmd_auth_status
    )

    # config
    config = sub.add_parser("config", help="Manage configuration")
    config_sub = config.add_subparsers(dest="config_cmd", required=True)
    cset = config_sub.add_parser("set", help="Set a config value")
    cset.add_argument("key", choices=list(CONFIG_KEYS))
    cset.add_argument("value")
    cset.set_defaults(func=cmd_config_set)
    cget = config_sub.add_parser("get", help="Print a config value")
    cget.add_argument("key", choices=list(CONFIG_KEYS))
    cget.set_defaults(func=cmd_config_get)
    config_sub.add_parser("list", help="Print all config values").set_defaults(
        func=cmd_config_list
    )

    # avatar
    avatar = sub.add_parser("avatar", help="Manage avatars")
    avatar_sub = avatar.add_subparsers(dest="avatar_cmd", required=True)
    alist = avatar_sub.add_parser("list", help="List your avatars")
    alist.add_argument("--json", action="store_true", help="Print raw JSON")
    alist.set_defaults(func=cmd_avatar_list)
    aview = avatar_sub.add_parser("view", help="Show avatar details")
    aview.add_argument("avatar_id")
    aview.set_defaults(func=cmd_avatar_view)
    agen = avatar_sub.add_parser("generate", help="Generate an avatar image from a prompt")
    agen.add_argument("--prompt", required=True, help="Prompt (max 1000 characters)")
    agen.add_argument("--seed", type=int, default=None, help="Seed for reproducible output")
    _add_save_args(agen, "./output/avatar.jpg")
    _add_poll_args(agen, "config default-poll-interval")
    agen.set_defaults(func=cmd_avatar_generate)
    abuild = avatar_sub.add_parser("build", help="Build a new avatar from an image")
    abuild.add_argument("--name", "-n", required=True, help="Name for the new avatar")
    abuild.add_argument("--image", "-i", required=True, help="Path to the base image file")
    _add_poll_args(abuild, "10")
    abuild.set_defaults(func=cmd_avatar_build)
    astatus = avatar_sub.add_parser("status", help="Check an avatar generation task")
    _add_status_args(astatus, "./output/avatar.jpg")
    astatus.set_defaults(func=cmd_avatar_status)
    adel = avatar_sub.add_parser("delete", help="Delete an avatar")
    adel.add_argument("avatar_id")
    adel.add_argument("--force", "-f", action="store_true", help="Skip confirmation")
    adel.set_defaults(func=cmd_avatar_delete)

    # interactive
    inter = sub.add_parser("interactive", help="Manage interactive sessions")
    inter_sub = inter.add_subparsers(dest="interactive_cmd", required=True)
    ilist = inter_sub.add_parser("list", help="List interactive sessions")
    ilist.add_argument("--json", action="store_true", help="Print raw JSON")
    ilist.set_defaults(func=cmd_interactive_list)
    istart = inter_sub.add_parser("start", help="Start an interactive session")
    istart.add_argument("--avatar", "-a", help="Avatar ID to use")
    istart.add_argument("--model", "-m", help="Model to use (default: config default-model)")
    istart.add_argument("--llm-model", "-l", help=f"LLM model (default: {DEFAULT_LLM_MODEL})")
    istart.add_argument("--voice", "-v", help="Voice profile ID (default: config default-voice)")
    istart.add_argument("--instruction", "-i", help="Instruction prompt")
    istart.add_argument("--profile", help="Named interactive profile from the config file")
    istart.add_argument("--no-browser", action="store_true", help="Do not open a browser")
    istart.set_defaults(func=cmd_interactive_start)
    istop = inter_sub.add_parser("stop", help="Stop interactive sessions")
    istop.add_argument("session_ids", nargs="+", metavar="SESSION_ID")
    istop.set_defaults(func=cmd_interactive_stop)
    iview = inter_sub.add_parser("view", help="Show the profile of a session")
    iview.add_argument("session_id")
    iview.set_defaults(func=cmd_interactive_view)

    # image
    image = sub.add_parser("image", help="Generate images")
    image_sub = image.add_subparsers(dest="image_cmd", required=True)
    igen = image_sub.add_parser("generate", help="Generate an image from a prompt")
    igen.add_argument("--prompt", required=True, help="Prompt for the image")
    igen.add_argument(
        "--aspect-ratio",
        "-a",
        default="16:9",
        help=f"Aspect ratio ({', '.join(ASPECT_RATIOS)}; default: 16:9)",
    )
    igen.add_argument("--seed", type=int, default=None, help="Seed for reproducible output")
    igen.add_argument("--image", action="append", metavar="PATH", help="Reference image")
    igen.add_argument(
        "--labeled-image", action="append", metavar="LABEL=PATH", help="Labeled reference image"
    )
    _add_save_args(igen, "./output/image.jpg")
    _add_poll_args(igen, "config default-poll-interval")
    igen.set_defaults(func=cmd_image_generate)
    istatus = image_sub.add_parser("status", help="Check an image generation task")
    _add_status_args(istatus, "./output/image.jpg")
    istatus.set_defaults(func=cmd_image_status)

    # video
    video = sub.add_parser("video", help="Generate videos")
    video_sub = video.add_subparsers(dest="video_cmd", required=True)
    vgen = video_sub.add_parser(
        "generate-talking", aliases=["generate"], help="Generate a talking avatar video"
    )
    vgen.add_argument("--audio", required=True, help="Path to the speech audio file")
    vgen.add_argument("--image", required=True, help="Path to the avatar image file")
    _add_save_args(vgen, "./output/video.mp4")
    _add_poll_args(vgen, "config default-poll-interval")
    vgen.set_defaults(func=cmd_video_generate)
    vstatus = video_sub.add_parser("status", help="Check a video generation task")
    _add_status_args(vstatus, "./output/video.mp4")
    vstatus.set_defaults(func=cmd_video_status)

    # speech
    speech = sub.add_parser("speech", help="Speech-to-text and text-to-speech")
    speech_sub = speech.add_subparsers(dest="speech_cmd", required=True)
    stt = speech_sub.add_parser("stt", help="Transcribe an audio file")
    stt.add_argument("--audio", required=True, help="Path to the audio file")
    stt.add_argument("--output", "-o", help="Save the transcription to this file")
    stt.set_defaults(func=cmd_speech_stt)
    tts = speech_sub.add_parser("tts", help="Synthesize speech from text")
    tts.add_argument("--text", required=True, help="Text to speak")
    tts.add_argument("--voice", help="Voice profile ID (default: config default-voice)")
    tts.add_argument("--output", "-o", help="Output file path (e.g. ./output/audio.wav)")
    tts.add_argument("--chinese", choices=CHINESE_LANGUAGES, help="Chinese language variant")
    tts.add_argument("--temperature", type=float, default=1.0, help="Sampling temperature (0-1)")
    tts.add_argument(
        "--fragment-interval", type=float, default=0.1, help="Pause between fragments (0-1)"
    )
    tts.set_defaults(func=cmd_speech_tts)

    # voice
    voice = sub.add_parser("voice", help="Manage voice profiles and voice cloning")
    voice_sub = voice.add_subparsers(dest="voice_cmd", required=True)
    voice_sub.add_parser("premade", help="List premade voice profiles").set_defaults(
        func=cmd_voice_premade
    )
    voice_sub.add_parser("list", help="List your custom voice profiles").set_defaults(
        func=cmd_voice_list
    )
    vview = voice_sub.add_parser("view", help="Show voice profile details")
    vview.add_argument("profile_id")
    vview.set_defaults(func=cmd_voice_view)
    vdel = voice_sub.add_parser("delete", help="Delete a custom voice profile")
    vdel.add_argument("profile_id")
    vdel.add_argument("--force", "-f", action="store_true", help="Skip confirmation")
    vdel.set_defaults(func=cmd_voice_delete)
    vclone = voice_sub.add_parser("clone", help="Clone a voice from audio samples")
    vclone.add_argument("--name", required=True, help="Name for the new voice profile")
    vclone.add_argument("--audio-dir", required=True, help="Directory of .wav/.mp3 samples")
    vclone.add_argument(
        "--annotation", required=True, help="Annotation list (filename|transcription per line)"
    )
    vclone.add_argument("--clean-data", action="store_true", help="Ask the service to clean audio")
    _add_poll_args(vclone, "10")
    vclone.set_defaults(func=cmd_voice_clone)
    vcstatus = voice_sub.add_parser("status", help="Check a voice cloning task")
    vcstatus.add_argument("task_id")
    vcstatus.set_defaults(func=cmd_voice_status)

    return p


# ============================================================================
# Entry points
# ============================================================================


async def _dispatch(
    handler: Callable[[argparse.Namespace, CommandContext], Awaitable[int]],
    args: argparse.Namespace,
    ctx: CommandContext,
) -> int:
    """Run one handler as a task that Ctrl+C cancels.

    Raises:
        CancellationError: If SIGINT interrupted the command
    """
    task = asyncio.ensure_future(handler(args, ctx))
    installed = ctx.interrupts.install(task)
    try:
        return await task
    except asyncio.CancelledError:
        if ctx.cancel_token.is_set():
            raise CancellationError() from None
        raise
    finally:
        if installed:
            ctx.interrupts.remove()


def main(
    argv: Sequence[str] | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """Parse arguments, run the command and return the exit code.

    Args:
        argv: Arguments (defaults to ``sys.argv[1:]``)
        transport: Optional httpx transport used for every request

    Returns:
        0 on success, 1 on any error (including cancellation)
    """
    args = build_arg_parser().parse_args(argv)
    configure_logging(level="DEBUG" if args.debug else "WARNING")

    config_path = args.config or default_config_path()
    try:
        config = apply_overrides(
            load_config(config_path), api_token=args.api_token, api_url=args.api_url
        )
        ctx = CommandContext(config=config, config_path=config_path, transport=transport)
        return asyncio.run(_dispatch(args.func, args, ctx))
    except ApiError as e:
        logger.debug("Request failed", exc_info=True)
        _print_error(friendly_message(e))
    except MirakoError as e:
        logger.debug("Command failed", exc_info=True)
        _print_error(str(e))
    except KeyboardInterrupt:
        _print_error("Operation aborted: cancelled by user")
    return 1


def run() -> None:
    """Console-script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
