"""Parse git diff/blame output and stage or unstage individual hunks."""

from hunkstage.blame import BlameLine, parse_blame_porcelain
from hunkstage.diff import (
    AdditionLine,
    ContextLine,
    DeletionLine,
    FileDiff,
    HeaderLine,
    Hunk,
    HunkLineTracker,
    parse_diff_output,
)
from hunkstage.errors import FailureKind, HunkstageError
from hunkstage.git import CommandResult, GitCommandRunner, git_apply_patch
from hunkstage.patch import HunkSelection, build_patch

__all__ = [
    "AdditionLine",
    "BlameLine",
    "CommandResult",
    "ContextLine",
    "DeletionLine",
    "FailureKind",
    "FileDiff",
    "GitCommandRunner",
    "HeaderLine",
    "Hunk",
    "HunkLineTracker",
    "HunkSelection",
    "HunkstageError",
    "build_patch",
    "git_apply_patch",
    "parse_blame_porcelain",
    "parse_diff_output",
]
