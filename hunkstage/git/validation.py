import re
from pathlib import Path

from hunkstage.errors import InputValidationError

COMMIT_HASH_RE = re.compile(r"^[0-9a-fA-F]{4,40}$")
# Branch/tag names plus the ~N, ^N and @{...} suffixes git accepts.
SAFE_REF_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_./~^@{}-]{0,199}$")


def require_cwd(cwd: str | Path | None) -> Path:
    if cwd is None or str(cwd).strip() == "":
        raise InputValidationError("No working directory specified")
    path = Path(cwd)
    if not path.is_dir():
        raise InputValidationError(f"Working directory does not exist: {cwd}")
    return path


def require_file(file: str | None) -> str:
    if file is None or file.strip() == "":
        raise InputValidationError("No file specified")
    return file


def require_patch(patch: str | None, max_bytes: int) -> str:
    if not patch:
        raise InputValidationError("No patch content specified")
    size = len(patch.encode("utf-8"))
    if size > max_bytes:
        raise InputValidationError(
            f"Patch is {size} bytes, larger than the {max_bytes} byte limit",
            details={"size": size, "max_bytes": max_bytes},
        )
    return patch


def validate_commit_ref(ref: str | None) -> str:
    if ref is None or ref.strip() == "":
        raise InputValidationError("No commit reference specified")
    if COMMIT_HASH_RE.match(ref):
        return ref
    if SAFE_REF_RE.match(ref) and ".." not in ref and not ref.endswith((".", "/", ".lock")):
        return ref
    raise InputValidationError(f"Invalid commit reference: {ref!r}")


def validate_line_range(start_line: int | None, end_line: int | None) -> tuple[int, int] | None:
    if start_line is None and end_line is None:
        return None
    if start_line is None or end_line is None:
        raise InputValidationError("Both start and end line are required for a line range")
    if start_line < 1 or end_line < 1:
        raise InputValidationError("Line numbers must be positive")
    if start_line > end_line:
        raise InputValidationError(
            f"Start line {start_line} is after end line {end_line}"
        )
    return start_line, end_line
