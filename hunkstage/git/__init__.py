"""Async wrappers around the git binary."""

from .models import BlameResult, CommandResult, DiffTextResult, FileDiffResult, ProcessState
from .operations import (
    git_apply_patch,
    git_blame,
    git_diff_for_staging,
    git_diff_raw,
    git_file_diff,
    stage_selection,
    unstage_selection,
)
from .runner import GitCommandRunner

__all__ = [
    "BlameResult",
    "CommandResult",
    "DiffTextResult",
    "FileDiffResult",
    "GitCommandRunner",
    "ProcessState",
    "git_apply_patch",
    "git_blame",
    "git_diff_for_staging",
    "git_diff_raw",
    "git_file_diff",
    "stage_selection",
    "unstage_selection",
]
