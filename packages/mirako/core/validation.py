"""Input validation performed before any request is sent.

Every check raises ``ValidationError`` with a message suitable for printing.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from mirako.core.errors import ValidationError

MAX_PROMPT_LENGTH = 1000
MAX_INPUT_IMAGES = 5
ASPECT_RATIOS = ("1:1", "16:9", "2:3", "3:2", "3:4", "4:3", "9:16")
CHINESE_LANGUAGES = ("mandarin", "yue")
AUDIO_EXTENSIONS = (".wav", ".mp3")


def validate_prompt(prompt: str | None) -> str:
    """Require a non-empty prompt of at most 1000 characters."""
    if not prompt or not prompt.strip():
        raise ValidationError("prompt is required. Use --prompt flag")
    if len(prompt) > MAX_PROMPT_LENGTH:
        raise ValidationError(
            f"prompt is too long (max {MAX_PROMPT_LENGTH} characters, got {len(prompt)})"
        )
    return prompt


def validate_aspect_ratio(value: str) -> str:
    if value not in ASPECT_RATIOS:
        raise ValidationError(
            f"invalid aspect ratio {value!r} (expected one of: {', '.join(ASPECT_RATIOS)})"
        )
    return value


def validate_image_count(unlabeled: int, labeled: int) -> None:
    """Reject more than five reference images in total."""
    total = unlabeled + labeled
    if total > MAX_INPUT_IMAGES:
        raise ValidationError(
            f"too many input images: {total} given, at most {MAX_INPUT_IMAGES} "
            "(unlabeled and labeled combined)"
        )


def parse_labeled_image(value: str) -> tuple[str, Path]:
    """Split a ``LABEL=PATH`` argument.

    Raises:
        ValidationError: If the separator, label or path is missing
    """
    label, sep, path = value.partition("=")
    label, path = label.strip(), path.strip()
    if not sep or not label or not path:
        raise ValidationError(f"invalid labeled image {value!r}: expected LABEL=PATH")
    return label, Path(path)


def require_file(path: str | Path, what: str = "file") -> Path:
    """Return ``path`` as a Path if it names an existing regular file."""
    p = Path(path)
    if not p.is_file():
        raise ValidationError(f"{what} not found: {p}")
    return p


def validate_chinese_language(value: str | None) -> str | None:
    if value is not None and value not in CHINESE_LANGUAGES:
        raise ValidationError(
            f"invalid Chinese language {value!r} (expected one of: {', '.join(CHINESE_LANGUAGES)})"
        )
    return value


def validate_unit_interval(value: float, name: str) -> float:
    """Require ``0 <= value <= 1`` (TTS temperature, fragment interval)."""
    if not 0.0 <= value <= 1.0:
        raise ValidationError(f"{name} must be between 0 and 1, got {value}")
    return value


def scan_audio_files(directory: str | Path) -> list[Path]:
    """Recursively collect ``.wav`` and ``.mp3`` files (case-insensitive), sorted.

    Raises:
        ValidationError: If ``directory`` is not a directory
    """
    root = Path(directory)
    if not root.is_dir():
        raise ValidationError(f"audio directory not found: {root}")
    return sorted(
        p for p in root.rglob("*") if p.is_file() and p.suffix.lower() in AUDIO_EXTENSIONS
    )


def parse_annotation_file(path: str | Path) -> list[str]:
    """Parse a ``filename|transcription`` annotation list.

    Blank lines are skipped. Line numbers in error messages are 1-based.

    Returns:
        Referenced audio file names, in file order

    Raises:
        ValidationError: On unreadable files, malformed lines, unsupported
            extensions, or when no entry is present
    """
    p = Path(path)
    try:
        lines = p.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        raise ValidationError(f"failed to read annotation file {p}: {e}") from e

    names: list[str] = []
    for lineno, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line:
            continue
        filename, sep, _ = line.partition("|")
        if not sep:
            raise ValidationError(
                f"invalid format on line {lineno}: expected 'filename|transcription', got {line!r}"
            )
        filename = filename.strip()
        if not filename:
            raise ValidationError(f"empty filename on line {lineno}")
        if Path(filename).suffix.lower() not in AUDIO_EXTENSIONS:
            raise ValidationError(
                f"invalid audio file extension on line {lineno}: {filename} "
                "(only .wav and .mp3 are supported)"
            )
        names.append(filename)

    if not names:
        raise ValidationError("no valid audio file entries found in annotation file")
    return names


def _listing(names: Iterable[str]) -> str:
    return "\n".join(f"  {n}" for n in names)


def validate_voice_clone_input(audio_dir: str | Path, annotation_file: str | Path) -> list[Path]:
    """Check that the annotation list and the audio directory agree exactly.

    Returns:
        The audio files to upload

    Raises:
        ValidationError: If an annotated file is missing from the directory or
            a file in the directory is not annotated
    """
    annotated = parse_annotation_file(require_file(annotation_file, "annotation file"))
    audio_files = scan_audio_files(audio_dir)
    if not audio_files:
        raise ValidationError(f"no audio files (.wav or .mp3) found in directory: {audio_dir}")

    by_name = {f.name: f for f in audio_files}
    missing = [n for n in annotated if n not in by_name]
    if missing:
        raise ValidationError(
            f"annotation list references {len(missing)} audio file(s) that don't exist "
            f"in the audio directory:\n{_listing(missing)}"
        )

    annotated_set = set(annotated)
    extra = sorted(n for n in by_name if n not in annotated_set)
    if extra:
        raise ValidationError(
            f"found {len(extra)} audio file(s) in the directory that are not in the "
            f"annotation list:\n{_listing(extra)}\n"
            "Please either add them to the annotation list or remove them from the directory"
        )
    return audio_files
