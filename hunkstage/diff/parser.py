import logging
import re

from hunkstage.diff.models import (
    AdditionLine,
    ContextLine,
    DeletionLine,
    DiffLine,
    FileDiff,
    HeaderLine,
    Hunk,
    HunkHeader,
)
from hunkstage.diff.tracker import HunkLineTracker
from hunkstage.errors import MalformedDiffError

logger = logging.getLogger(__name__)

DIFF_GIT_RE = re.compile(r"^diff --git a/(.+) b/(.+)$")

METADATA_PREFIXES = (
    "---",
    "+++",
    "index ",
    "new file",
    "deleted file",
    "old mode",
    "new mode",
    "similarity",
    "rename ",
    "copy ",
)

NO_NEWLINE_MARKER = "\\ No newline at end of file"


def split_lines(text: str) -> list[str]:
    """Split on newlines; a terminating newline does not produce an extra line."""
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def parse_hunk_header(line: str) -> HunkHeader:
    return HunkHeader.parse(line)


def _is_body_line(line: str) -> bool:
    return line == "" or line[0] in (" ", "+", "-")


class _HunkBuilder:
    def __init__(self, header_line: str, header: HunkHeader):
        self.header = header_line
        self.lines: list[DiffLine] = [HeaderLine(content=header_line)]
        self.tracker = HunkLineTracker(header)

    def add(self, line: str) -> None:
        prefix = line[:1]
        content = line[1:]
        if prefix == "+":
            self.lines.append(
                AdditionLine(content=content, new_line_number=self.tracker.addition())
            )
        elif prefix == "-":
            self.lines.append(
                DeletionLine(content=content, old_line_number=self.tracker.deletion())
            )
        else:
            old_number, new_number = self.tracker.context()
            self.lines.append(
                ContextLine(
                    content=content,
                    old_line_number=old_number,
                    new_line_number=new_number,
                )
            )

    def mark_no_newline(self) -> None:
        last = self.lines[-1]
        if isinstance(last, HeaderLine):
            return
        self.lines[-1] = last.model_copy(update={"no_newline_at_eof": True})

    def build(self) -> Hunk:
        return Hunk(header=self.header, lines=tuple(self.lines))


def parse_diff_output(text: str, target_file: str | None = None) -> FileDiff:
    """
    Parse the unified diff of a single file into a FileDiff.

    Args:
        text (str): raw `git diff` output
        target_file (str | None): file name to report when the text has no
            `diff --git` header

    Returns:
        FileDiff: always returned, with an empty hunk list for empty input.

    Raises:
        MalformedDiffError: an `@@` line that is not a valid hunk header. Any
            other unrecognized line is skipped.
    """
    hunks: list[Hunk] = []
    current: _HunkBuilder | None = None
    file_path = target_file or ""
    old_path: str | None = None
    is_binary = False
    new_file = False
    deleted_file = False
    skipped = 0

    for index, line in enumerate(split_lines(text), start=1):
        # Lines owed to the open hunk are body lines even if they look like
        # metadata, e.g. a deleted "-- comment" renders as "--- comment".
        if current is not None and not current.tracker.is_complete and _is_body_line(line):
            current.add(line)
            continue

        if line.startswith("Binary files"):
            is_binary = True
            continue

        if line.startswith("diff --git"):
            match = DIFF_GIT_RE.match(line)
            if match:
                if match.group(1) != match.group(2):
                    old_path = match.group(1)
                file_path = match.group(2)
            continue

        if line.startswith("@@"):
            try:
                header = parse_hunk_header(line)
            except MalformedDiffError as e:
                raise MalformedDiffError(e.message, line=line, line_number=index) from e
            if current is not None:
                hunks.append(current.build())
            current = _HunkBuilder(line, header)
            continue

        if line.startswith(METADATA_PREFIXES):
            if line.startswith("new file"):
                new_file = True
            elif line.startswith("deleted file"):
                deleted_file = True
            continue

        if current is None:
            skipped += 1
            continue

        if line.startswith(NO_NEWLINE_MARKER):
            current.mark_no_newline()
            continue

        if _is_body_line(line):
            current.add(line)
        else:
            skipped += 1

    if current is not None:
        hunks.append(current.build())

    if skipped:
        logger.debug("Skipped %d unrecognized diff lines", skipped)
    logger.debug("Parsed %d hunks for %s", len(hunks), file_path or "<unnamed>")

    return FileDiff(
        file=file_path,
        hunks=tuple(hunks),
        is_binary=is_binary,
        old_path=old_path,
        new_file=new_file,
        deleted_file=deleted_file,
    )


def split_file_diffs(text: str) -> list[str]:
    """Split multi-file `git diff` output on its `diff --git` headers."""
    chunks: list[list[str]] = []
    for line in split_lines(text):
        if line.startswith("diff --git") or not chunks:
            chunks.append([])
        chunks[-1].append(line)

    return [
        "\n".join(chunk) + "\n"
        for chunk in chunks
        if any(line.strip() for line in chunk)
    ]


def parse_multi_file_diff(text: str) -> list[FileDiff]:
    return [parse_diff_output(chunk) for chunk in split_file_diffs(text)]
