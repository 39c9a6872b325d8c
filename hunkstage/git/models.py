from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from hunkstage.blame.models import BlameLine
from hunkstage.diff.models import FileDiff
from hunkstage.errors import (
    RETRYABLE_FAILURES,
    FailureKind,
    HunkstageError,
    SpawnFailureError,
)


class ProcessState(StrEnum):
    SPAWNING = "spawning"
    STREAMING = "streaming"
    EXITED = "exited"
    ERRORED = "errored"


class _Envelope(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    success: bool
    error: str | None = None
    failure: FailureKind | None = None

    @classmethod
    def failed(cls, error: HunkstageError, **fields):
        return cls(success=False, error=error.message, failure=error.kind, **fields)

    @property
    def retryable(self) -> bool:
        return self.failure in RETRYABLE_FAILURES


class CommandResult(_Envelope):
    """
    Outcome of one git invocation.

    `output` and `stderr` are trimmed; `raw_output` keeps stdout byte for
    byte for parsers that care about trailing whitespace.
    """
    output: str = ""
    stderr: str = ""
    raw_output: str = Field(default="", repr=False)
    exit_code: int | None = None
    state: ProcessState | None = None
    duration_sec: float = 0.0

    def to_error(self) -> HunkstageError | None:
        if self.success:
            return None
        message = self.error or "git command failed"
        if self.failure == FailureKind.SPAWN_FAILURE:
            return SpawnFailureError(message)
        kind = self.failure or FailureKind.EXTERNAL_TOOL_FAILURE
        return HunkstageError(
            kind,
            message,
            retryable=kind in RETRYABLE_FAILURES,
            details={"exit_code": self.exit_code, "stderr": self.stderr},
        )


class FileDiffResult(_Envelope):
    diff: FileDiff | None = None
    files: tuple[FileDiff, ...] = ()
    raw_diff: str | None = None


class DiffTextResult(_Envelope):
    diff: str | None = None


class BlameResult(_Envelope):
    lines: tuple[BlameLine, ...] = ()
