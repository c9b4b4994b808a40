"""End-to-end tests for the mirako command line against a mocked API."""

from __future__ import annotations

import asyncio
import json
import os
import signal
import stat
import sys
import time
from pathlib import Path

import httpx
import pytest
import yaml

from mirako.cli import main as cli
from mirako.cli.main import build_arg_parser, main
from tests.fixtures.http import API_URL, TOKEN, envelope, error_response, route


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "config.yml"


@pytest.fixture
def base_args(config_path: Path) -> list[str]:
    return ["--config", str(config_path), "--api-token", TOKEN, "--api-url", API_URL]


def _status(status: str, **fields) -> httpx.Response:
    return envelope({"task_id": "task_1", "status": status, **fields})


class TestParser:
    def test_poll_interval_must_be_positive(self) -> None:
        with pytest.raises(SystemExit):
            build_arg_parser().parse_args(
                ["avatar", "generate", "--prompt", "x", "--poll-interval", "0"]
            )

    def test_video_generate_alias(self) -> None:
        args = build_arg_parser().parse_args(
            ["video", "generate", "--audio", "a.wav", "--image", "a.jpg"]
        )

        assert args.func.__name__ == "cmd_video_generate"

    def test_unknown_config_key_rejected(self) -> None:
        with pytest.raises(SystemExit):
            build_arg_parser().parse_args(["config", "set", "colour", "blue"])


class TestAuthAndConfig:
    def test_login_writes_token(self, config_path: Path, capsys) -> None:
        code = main(["--config", str(config_path), "auth", "login", "--token", "mk_new"])

        assert code == 0
        assert "Successfully authenticated!" in capsys.readouterr().out
        assert yaml.safe_load(config_path.read_text())["api_token"] == "mk_new"
        assert stat.S_IMODE(config_path.stat().st_mode) == 0o600

    def test_logout_removes_token(self, config_path: Path) -> None:
        main(["--config", str(config_path), "auth", "login", "--token", "mk_new"])

        assert main(["--config", str(config_path), "auth", "logout"]) == 0
        assert "api_token" not in yaml.safe_load(config_path.read_text())

    def test_auth_status(self, config_path: Path, capsys) -> None:
        main(["--config", str(config_path), "auth", "status"])

        assert "Not authenticated" in capsys.readouterr().out

    def test_config_set_then_get(self, config_path: Path, capsys) -> None:
        assert main(["--config", str(config_path), "config", "set", "default-voice", "v2"]) == 0
        capsys.readouterr()

        assert main(["--config", str(config_path), "config", "get", "default-voice"]) == 0
        assert capsys.readouterr().out.strip() == "v2"

    def test_config_get_masks_token(self, base_args: list[str], capsys) -> None:
        main([*base_args, "config", "get", "api-token"])

        assert capsys.readouterr().out.strip() == "***"

    def test_invalid_config_value(self, config_path: Path, capsys) -> None:
        code = main(["--config", str(config_path), "config", "set", "api-url", "mirako.co"])

        assert code == 1
        assert "Invalid value for api-url" in capsys.readouterr().err

    def test_command_without_token(self, config_path: Path, capsys) -> None:
        code = main(["--config", str(config_path), "avatar", "list"], transport=route({}))

        assert code == 1
        assert "mirako auth login" in capsys.readouterr().err


class TestAvatar:
    def test_list(self, base_args: list[str], capsys) -> None:
        transport = route(
            {("GET", "/v1/avatar/list"): envelope([{"id": "av_1", "name": "Mira", "status": "READY"}])}
        )

        assert main([*base_args, "avatar", "list"], transport=transport) == 0

        out = capsys.readouterr().out
        assert "Mira" in out
        assert "av_1" in out

    def test_list_json(self, base_args: list[str], capsys) -> None:
        transport = route(
            {("GET", "/v1/avatar/list"): envelope([{"id": "av_1", "name": "Mira", "status": "READY"}])}
        )

        main([*base_args, "avatar", "list", "--json"], transport=transport)

        data = json.loads(capsys.readouterr().out)
        assert data[0]["id"] == "av_1"

    def test_empty_list(self, base_args: list[str], capsys) -> None:
        transport = route({("GET", "/v1/avatar/list"): envelope([])})

        assert main([*base_args, "avatar", "list"], transport=transport) == 0
        assert "No avatars found" in capsys.readouterr().out

    def test_generate_polls_and_saves(self, base_args: list[str], tmp_path: Path, capsys) -> None:
        transport = route(
            {
                ("POST", "/v1/avatar/async_generate"): envelope({"task_id": "task_1"}),
                ("GET", "/v1/avatar/async_generate/task_1/status"): [
                    _status("PROCESSING"),
                    _status("PROCESSING"),
                    _status("COMPLETED", image="data:image/jpeg;base64,QUJD"),
                ],
            }
        )
        output = tmp_path / "results" / "avatar"

        code = main(
            [
                *base_args,
                "avatar",
                "generate",
                "--prompt",
                "a red fox",
                "--poll-interval",
                "0.01",
                "-o",
                str(output),
            ],
            transport=transport,
        )

        assert code == 0
        assert (tmp_path / "results" / "avatar.jpg").read_bytes() == b"ABC"
        out = capsys.readouterr().out
        assert "Task ID: task_1" in out
        assert "Avatar generated successfully!" in out
        assert transport.paths().count("/v1/avatar/async_generate/task_1/status") == 3

    def test_generate_failure(self, base_args: list[str], capsys) -> None:
        transport = route(
            {
                ("POST", "/v1/avatar/async_generate"): envelope({"task_id": "task_1"}),
                ("GET", "/v1/avatar/async_generate/task_1/status"): _status(
                    "FAILED", error="quota exceeded"
                ),
            }
        )

        code = main(
            [*base_args, "avatar", "generate", "--prompt", "fox", "-p", "0.01", "--no-save"],
            transport=transport,
        )

        assert code == 1
        assert "Task failed: quota exceeded" in capsys.readouterr().err

    def test_prompt_too_long_sends_nothing(self, base_args: list[str], capsys) -> None:
        transport = route({})

        code = main(
            [*base_args, "avatar", "generate", "--prompt", "x" * 1001], transport=transport
        )

        assert code == 1
        assert transport.requests == []
        assert "prompt is too long" in capsys.readouterr().err

    def test_insufficient_credits(self, base_args: list[str], capsys) -> None:
        transport = route({("POST", "/v1/avatar/async_generate"): error_response(402)})

        code = main([*base_args, "avatar", "generate", "--prompt", "fox"], transport=transport)

        assert code == 1
        assert "Insufficient credits" in capsys.readouterr().err

    def test_delete_with_force(self, base_args: list[str], capsys) -> None:
        transport = route({("DELETE", "/v1/avatar/av_1"): httpx.Response(204)})

        assert main([*base_args, "avatar", "delete", "av_1", "--force"], transport=transport) == 0
        assert transport.paths() == ["/v1/avatar/av_1"]


class TestStatusCommands:
    def test_video_status_save_downloads_to_default_dir(
        self, base_args: list[str], config_path: Path, tmp_path: Path, capsys
    ) -> None:
        save_dir = tmp_path / "media"
        config_path.write_text(yaml.safe_dump({"default_save_path": str(save_dir)}))
        transport = route(
            {
                ("GET", "/v1/video/async_generate_talking_avatar/task_1/status"): _status(
                    "COMPLETED", file_url="https://cdn.mirako.test/results/v.mp4"
                ),
                ("GET", "/results/v.mp4"): httpx.Response(200, content=b"mp4"),
            }
        )

        code = main([*base_args, "video", "status", "task_1", "--save"], transport=transport)

        assert code == 0
        assert (save_dir / "video_task_1.mp4").read_bytes() == b"mp4"
        assert "Status: COMPLETED" in capsys.readouterr().out

    def test_image_status_pending(self, base_args: list[str], capsys) -> None:
        transport = route(
            {("GET", "/v1/image/async_generate/task_1/status"): _status("PENDING")}
        )

        assert main([*base_args, "image", "status", "task_1"], transport=transport) == 0
        assert "Status: PENDING" in capsys.readouterr().out


class TestInteractive:
    def test_start_uses_defaults(
        self, base_args: list[str], monkeypatch: pytest.MonkeyPatch, capsys
    ) -> None:
        opened: list[str] = []
        monkeypatch.setattr("webbrowser.open", opened.append)
        transport = route(
            {
                ("POST", "/v1/interactive/start"): envelope(
                    {
                        "session": {"session_id": "s_1", "metis_model": "metis-2.5"},
                        "session_token": "tok_abc",
                    }
                )
            }
        )

        code = main(
            [*base_args, "interactive", "start", "--avatar", "av_1", "--no-browser"],
            transport=transport,
        )

        assert code == 0
        assert opened == []
        body = json.loads(transport.requests[0].content)
        assert body["avatar_id"] == "av_1"
        assert body["model"] == "metis-2.5"
        assert body["llm_model"] == "gemini-2.0-flash"
        assert body["voice_profile_id"] == "mira-korner"
        assert "s_1" in capsys.readouterr().out

    def test_stop_sessions(self, base_args: list[str], capsys) -> None:
        transport = route(
            {
                ("POST", "/v1/interactive/stop"): envelope(
                    {"stopped_sessions": ["s_1", "s_2"]}
                )
            }
        )

        assert main([*base_args, "interactive", "stop", "s_1", "s_2"], transport=transport) == 0
        assert json.loads(transport.requests[0].content) == {"session_ids": ["s_1", "s_2"]}
        assert "stopped 2 session(s)" in capsys.readouterr().out

    def test_empty_list(self, base_args: list[str], capsys) -> None:
        transport = route({("GET", "/v1/interactive/list"): envelope([])})

        assert main([*base_args, "interactive", "list"], transport=transport) == 0
        assert "No active sessions found" in capsys.readouterr().out


class TestSpeech:
    def test_tts_saves_wav(self, base_args: list[str], tmp_path: Path, capsys) -> None:
        transport = route(
            {("POST", "/v1/speech/tts"): envelope({"audio": "UklGRg==", "output_duration": 1.25})}
        )

        code = main(
            [*base_args, "speech", "tts", "--text", "hello", "-o", str(tmp_path / "hello")],
            transport=transport,
        )

        assert code == 0
        assert (tmp_path / "hello.wav").read_bytes() == b"RIFF"
        assert json.loads(transport.requests[0].content)["voice_profile_id"] == "mira-korner"
        assert "Duration: 1.25s" in capsys.readouterr().out

    def test_stt_prints_transcript(self, base_args: list[str], tmp_path: Path, capsys) -> None:
        audio = tmp_path / "clip.wav"
        audio.write_bytes(b"RIFF")
        transport = route({("POST", "/v1/speech/stt"): envelope({"text": "hello world"})})

        assert main([*base_args, "speech", "stt", "--audio", str(audio)], transport=transport) == 0
        assert "hello world" in capsys.readouterr().out

    def test_tts_invalid_temperature(self, base_args: list[str], capsys) -> None:
        code = main(
            [*base_args, "speech", "tts", "--text", "hi", "--temperature", "2"],
            transport=route({}),
        )

        assert code == 1
        assert "temperature must be between 0 and 1" in capsys.readouterr().err


class TestVoice:
    def test_clone_polls_until_profile_ready(
        self, base_args: list[str], tmp_path: Path, capsys
    ) -> None:
        audio_dir = tmp_path / "samples"
        audio_dir.mkdir()
        (audio_dir / "a.wav").write_bytes(b"RIFF")
        annotation = tmp_path / "annotation.list"
        annotation.write_text("a.wav|hello there\n")
        transport = route(
            {
                ("POST", "/v1/voice/clone"): envelope({"task_id": "vc_1"}),
                ("GET", "/v1/voice/clone/vc_1/status"): [
                    envelope({"task_id": "vc_1", "status": "PROCESSING"}),
                    envelope({"task_id": "vc_1", "status": "COMPLETED", "profile_id": "vp_7"}),
                ],
            }
        )

        code = main(
            [
                *base_args,
                "voice",
                "clone",
                "--name",
                "Mine",
                "--audio-dir",
                str(audio_dir),
                "--annotation",
                str(annotation),
                "-p",
                "0.01",
            ],
            transport=transport,
        )

        assert code == 0
        assert "Voice Profile ID: vp_7" in capsys.readouterr().out

    def test_clone_rejects_unannotated_files(
        self, base_args: list[str], tmp_path: Path, capsys
    ) -> None:
        audio_dir = tmp_path / "samples"
        audio_dir.mkdir()
        (audio_dir / "a.wav").write_bytes(b"RIFF")
        (audio_dir / "b.wav").write_bytes(b"RIFF")
        annotation = tmp_path / "annotation.list"
        annotation.write_text("a.wav|hello\n")
        transport = route({})

        code = main(
            [
                *base_args,
                "voice",
                "clone",
                "--name",
                "Mine",
                "--audio-dir",
                str(audio_dir),
                "--annotation",
                str(annotation),
            ],
            transport=transport,
        )

        assert code == 1
        assert transport.requests == []
        assert "b.wav" in capsys.readouterr().err

    def test_list_empty(self, base_args: list[str], capsys) -> None:
        transport = route({("GET", "/v1/voice/profiles"): envelope([])})

        assert main([*base_args, "voice", "list"], transport=transport) == 0
        assert "No custom voice profiles found" in capsys.readouterr().out


class TestImageGenerate:
    def test_too_many_images_sends_nothing(
        self, base_args: list[str], tmp_path: Path, capsys
    ) -> None:
        paths = []
        for i in range(6):
            p = tmp_path / f"ref{i}.jpg"
            p.write_bytes(b"\xff\xd8")
            paths.append(str(p))
        transport = route({})

        code = main(
            [
                *base_args,
                "image",
                "generate",
                "--prompt",
                "a cat",
                *[arg for p in paths[:3] for arg in ("--image", p)],
                *[arg for p in paths[3:] for arg in ("--labeled-image", f"{Path(p).stem}={p}")],
            ],
            transport=transport,
        )

        assert code == 1
        assert transport.requests == []
        assert "too many input images" in capsys.readouterr().err


def _interrupt_on(path: str, routes: dict) -> httpx.MockTransport:
    """Transport that sends SIGINT to this process when ``path`` is requested, then hangs."""
    table = route(routes)

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == path:
            os.kill(os.getpid(), signal.SIGINT)
            await asyncio.sleep(10)
        return table.handle_request(request)

    return httpx.MockTransport(handler)


@pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX signal delivery")
class TestInterrupt:
    def test_ctrl_c_during_download_exits_1(
        self, base_args: list[str], config_path: Path, tmp_path: Path, capsys
    ) -> None:
        save_dir = tmp_path / "media"
        config_path.write_text(yaml.safe_dump({"default_save_path": str(save_dir)}))
        transport = _interrupt_on(
            "/results/v.mp4",
            {
                ("GET", "/v1/video/async_generate_talking_avatar/task_1/status"): _status(
                    "COMPLETED", file_url="https://cdn.mirako.test/results/v.mp4"
                ),
            },
        )

        start = time.monotonic()
        code = main([*base_args, "video", "status", "task_1", "--save"], transport=transport)

        assert code == 1
        assert time.monotonic() - start < 5
        assert "Operation aborted" in capsys.readouterr().err
        assert not (save_dir / "video_task_1.mp4").exists()
        assert not (save_dir / "video_task_1.mp4.part").exists()

    def test_ctrl_c_during_start_call_exits_1(self, base_args: list[str], capsys) -> None:
        transport = _interrupt_on("/v1/image/async_generate", {})

        start = time.monotonic()
        code = main([*base_args, "image", "generate", "--prompt", "a cat"], transport=transport)

        assert code == 1
        assert time.monotonic() - start < 5
        assert "Operation aborted" in capsys.readouterr().err

    def test_prompt_runs_with_default_sigint_handler(
        self, base_args: list[str], monkeypatch: pytest.MonkeyPatch, capsys
    ) -> None:
        seen = []

        def ask(*args, **kwargs) -> bool:
            seen.append(signal.getsignal(signal.SIGINT))
            return False

        monkeypatch.setattr(cli.Confirm, "ask", ask)
        transport = route({})

        code = main([*base_args, "avatar", "delete", "av_1"], transport=transport)

        assert code == 0
        assert seen == [signal.default_int_handler]
        assert transport.requests == []
        assert "Deletion cancelled" in capsys.readouterr().out

    def test_ctrl_c_at_prompt_exits_1(
        self, base_args: list[str], monkeypatch: pytest.MonkeyPatch, capsys
    ) -> None:
        def ask(*args, **kwargs) -> bool:
            raise KeyboardInterrupt

        monkeypatch.setattr(cli.Confirm, "ask", ask)
        transport = route({})

        code = main([*base_args, "avatar", "delete", "av_1"], transport=transport)

        assert code == 1
        assert transport.requests == []
        assert "Operation aborted" in capsys.readouterr().err
