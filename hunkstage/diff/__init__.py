from .models import (
    AdditionLine,
    ContextLine,
    DeletionLine,
    DiffLine,
    FileDiff,
    HeaderLine,
    Hunk,
    HunkHeader,
)
from .parser import (
    parse_diff_output,
    parse_hunk_header,
    parse_multi_file_diff,
    split_file_diffs,
)
from .tracker import HunkLineTracker

__all__ = [
    "AdditionLine",
    "ContextLine",
    "DeletionLine",
    "DiffLine",
    "FileDiff",
    "HeaderLine",
    "Hunk",
    "HunkHeader",
    "HunkLineTracker",
    "parse_diff_output",
    "parse_hunk_header",
    "parse_multi_file_diff",
    "split_file_diffs",
]
