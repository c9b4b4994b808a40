"""Async task polling, progress display and result materialization."""

from mirako.core.tasks.bindings import BINDINGS, TaskBinding, get_binding
from mirako.core.tasks.materializer import (
    ResultMaterializer,
    decode_base64,
    default_filename,
    ensure_extension,
    strip_data_url,
)
from mirako.core.tasks.models import (
    ArtifactKind,
    GeneratedArtifact,
    MaterializedResult,
    MediaType,
    PollConfig,
    TaskHandle,
    TaskKind,
    TaskState,
    TaskStatus,
)
from mirako.core.tasks.poller import TaskPoller
from mirako.core.tasks.progress import SPINNER_FRAMES, ProgressLine, run_with_spinner

__all__ = [
    # Polling
    "TaskPoller",
    "TaskBinding",
    "BINDINGS",
    "get_binding",
    # Progress
    "ProgressLine",
    "SPINNER_FRAMES",
    "run_with_spinner",
    # Materialization
    "ResultMaterializer",
    "decode_base64",
    "default_filename",
    "ensure_extension",
    "strip_data_url",
    # Models
    "ArtifactKind",
    "GeneratedArtifact",
    "MaterializedResult",
    "MediaType",
    "PollConfig",
    "TaskHandle",
    "TaskKind",
    "TaskState",
    "TaskStatus",
]
