from enum import StrEnum


class FailureKind(StrEnum):
    INPUT_VALIDATION = "input_validation"
    EXTERNAL_TOOL_FAILURE = "external_tool_failure"
    SPAWN_FAILURE = "spawn_failure"
    MALFORMED_INPUT = "malformed_input"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


RETRYABLE_FAILURES = frozenset(
    {FailureKind.EXTERNAL_TOOL_FAILURE, FailureKind.TIMEOUT}
)


class HunkstageError(Exception):
    def __init__(
        self,
        kind: FailureKind,
        message: str,
        retryable: bool = False,
        details: dict | None = None
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.retryable = retryable
        self.details = details or {}


class InputValidationError(HunkstageError):
    """Missing or invalid arguments, detected before any process is spawned."""
    def __init__(
        self,
        message: str,
        details: dict | None = None
    ):
        super().__init__(
            FailureKind.INPUT_VALIDATION,
            message,
            retryable=False,
            details=details or {}
        )


class PatchSelectionError(InputValidationError):
    """A hunk/line selection that cannot be turned into a patch."""
    def __init__(
        self,
        message: str,
        hunk_index: int | None = None,
        line_index: int | None = None
    ):
        super().__init__(
            message,
            details={
                "hunk_index": hunk_index,
                "line_index": line_index,
            }
        )


class MalformedDiffError(HunkstageError):
    """An @@ line that does not follow the hunk header grammar."""
    def __init__(
        self,
        message: str,
        line: str | None = None,
        line_number: int | None = None
    ):
        super().__init__(
            FailureKind.MALFORMED_INPUT,
            message,
            retryable=False,
            details={
                "line": line,
                "line_number": line_number,
            }
        )


class SpawnFailureError(HunkstageError):
    def __init__(
        self,
        message: str,
        binary: str | None = None
    ):
        super().__init__(
            FailureKind.SPAWN_FAILURE,
            message,
            retryable=False,
            details={
                "binary": binary
            }
        )
