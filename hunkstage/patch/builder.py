import logging

from pydantic import BaseModel, ConfigDict, Field

from hunkstage.diff.models import (
    AdditionLine,
    ContextLine,
    DeletionLine,
    FileDiff,
    Hunk,
    HunkHeader,
)
from hunkstage.diff.parser import NO_NEWLINE_MARKER
from hunkstage.errors import PatchSelectionError

logger = logging.getLogger(__name__)

DEV_NULL = "/dev/null"


class HunkSelection(BaseModel):
    """
    Lines of one hunk to include in a patch.

    `line_indices` are positions in `Hunk.lines` (0 is the header line) and
    must point at additions or deletions. None selects every change.
    """
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    hunk_index: int = Field(ge=0)
    line_indices: frozenset[int] | None = None


class _PatchHunk:
    def __init__(self, header: str, body: list[str], old_count: int, new_count: int):
        self.header = header
        self.body = body
        self.old_count = old_count
        self.new_count = new_count


def _merge_selections(
    file_diff: FileDiff,
    selections: list[HunkSelection] | None,
) -> dict[int, frozenset[int] | None]:
    if selections is None:
        return {index: None for index in range(len(file_diff.hunks))}

    merged: dict[int, frozenset[int] | None] = {}
    for selection in selections:
        index = selection.hunk_index
        if index >= len(file_diff.hunks):
            raise PatchSelectionError(
                f"Hunk index {index} out of range ({len(file_diff.hunks)} hunks)",
                hunk_index=index,
            )
        if selection.line_indices is None or (index in merged and merged[index] is None):
            merged[index] = None
        else:
            merged[index] = merged.get(index, frozenset()) | selection.line_indices
    return merged


def _validate_line_indices(hunk: Hunk, hunk_index: int, line_indices: frozenset[int]) -> None:
    for line_index in sorted(line_indices):
        if line_index <= 0 or line_index >= len(hunk.lines):
            raise PatchSelectionError(
                f"Line index {line_index} out of range for hunk {hunk_index}",
                hunk_index=hunk_index,
                line_index=line_index,
            )
        if not isinstance(hunk.lines[line_index], (AdditionLine, DeletionLine)):
            raise PatchSelectionError(
                f"Line {line_index} of hunk {hunk_index} is not an addition or deletion",
                hunk_index=hunk_index,
                line_index=line_index,
            )


def _shifted_start(anchor_start: int, anchor_count: int, other_count: int, offset: int) -> int:
    # An empty range names the line before the change rather than its first line.
    start = anchor_start + offset
    if anchor_count == 0:
        start += 1
    if other_count == 0:
        start -= 1
    return start


def _render_body(entries: list[tuple[str, str, bool]]) -> list[str]:
    """
    Render (prefix, content, no_newline_at_eof) entries as hunk body lines.

    A `\\ No newline at end of file` marker is only valid after the last
    line of its side. A context line that lacks a newline on one side but
    is followed by lines on the other (an unselected change turned into
    context) is split into a deletion and an addition so each side gets
    the right ending.
    """
    last_old = last_new = -1
    for position, (prefix, _, _) in enumerate(entries):
        if prefix in (" ", "-"):
            last_old = position
        if prefix in (" ", "+"):
            last_new = position

    body: list[str] = []
    for position, (prefix, content, no_newline) in enumerate(entries):
        old_last = position == last_old
        new_last = position == last_new
        if no_newline and prefix == " " and old_last != new_last:
            body.append(f"-{content}")
            if old_last:
                body.append(NO_NEWLINE_MARKER)
            body.append(f"+{content}")
            if new_last:
                body.append(NO_NEWLINE_MARKER)
            continue

        body.append(f"{prefix}{content}")
        if not no_newline:
            continue
        if prefix == " ":
            ends_side = old_last and new_last
        elif prefix == "-":
            ends_side = old_last
        else:
            ends_side = new_last
        if ends_side:
            body.append(NO_NEWLINE_MARKER)
        else:
            logger.debug("Dropping end-of-file marker after %r", content)
    return body


def _build_hunk(
    hunk: Hunk,
    line_indices: frozenset[int] | None,
    reverse: bool,
    delta: int,
) -> _PatchHunk | None:
    entries: list[tuple[str, str, bool]] = []
    old_count = 0
    new_count = 0
    has_change = False

    for position, line in enumerate(hunk.lines):
        selected = line_indices is None or position in line_indices
        if isinstance(line, ContextLine):
            prefix = " "
        elif isinstance(line, AdditionLine):
            if selected:
                prefix = "+"
            elif reverse:
                prefix = " "
            else:
                continue
        elif isinstance(line, DeletionLine):
            if selected:
                prefix = "-"
            elif reverse:
                continue
            else:
                prefix = " "
        else:
            continue

        entries.append((prefix, line.content, line.no_newline_at_eof))
        if prefix in (" ", "-"):
            old_count += 1
        if prefix in (" ", "+"):
            new_count += 1
        if prefix != " ":
            has_change = True

    if not has_change:
        return None

    body = _render_body(entries)

    original = hunk.parsed_header
    if reverse:
        new_start = original.new_start
        old_start = _shifted_start(new_start, new_count, old_count, -delta)
    else:
        old_start = original.old_start
        new_start = _shifted_start(old_start, old_count, new_count, delta)

    rebuilt = HunkHeader(
        old_start=old_start,
        old_count=old_count,
        new_start=new_start,
        new_count=new_count,
        section=original.section,
    )
    header = hunk.header if rebuilt == original else rebuilt.format()
    return _PatchHunk(header, body, old_count, new_count)


def build_patch(
    file_diff: FileDiff,
    selections: list[HunkSelection] | None = None,
    reverse: bool = False,
) -> str:
    """
    Build a minimal unified diff from selected hunks/lines of a parsed diff.

    Args:
        file_diff (FileDiff): diff the selection refers to
        selections (list[HunkSelection] | None): hunks/lines to keep, None
            keeps everything
        reverse (bool): build for `git apply --reverse` (unstaging). Unselected
            additions then stay as context and unselected deletions are
            dropped; in forward mode it is the other way round.

    Returns:
        str: patch text ending with a newline

    Raises:
        PatchSelectionError: bad indices, binary diff, or nothing selected.
    """
    if file_diff.is_binary:
        raise PatchSelectionError("Binary diffs cannot be staged by hunk")

    merged = _merge_selections(file_diff, selections)
    for hunk_index, line_indices in merged.items():
        if line_indices is not None:
            _validate_line_indices(file_diff.hunks[hunk_index], hunk_index, line_indices)

    patch_hunks: list[_PatchHunk] = []
    delta = 0
    for hunk_index in sorted(merged):
        built = _build_hunk(file_diff.hunks[hunk_index], merged[hunk_index], reverse, delta)
        if built is None:
            continue
        patch_hunks.append(built)
        delta += built.new_count - built.old_count

    if not patch_hunks:
        raise PatchSelectionError("No changes selected")

    source = file_diff.source_path
    target = file_diff.file
    old_empty = file_diff.new_file and all(h.old_count == 0 for h in patch_hunks)
    new_empty = file_diff.deleted_file and all(h.new_count == 0 for h in patch_hunks)

    out = [
        f"diff --git a/{source} b/{target}",
        f"--- {DEV_NULL if old_empty else 'a/' + source}",
        f"+++ {DEV_NULL if new_empty else 'b/' + target}",
    ]
    for patch_hunk in patch_hunks:
        out.append(patch_hunk.header)
        out.extend(patch_hunk.body)

    logger.debug(
        "Built %s patch for %s with %d of %d hunks",
        "reverse" if reverse else "forward",
        target,
        len(patch_hunks),
        len(file_diff.hunks),
    )
    return "\n".join(out) + "\n"


def build_hunk_patch(file_diff: FileDiff, hunk_index: int, reverse: bool = False) -> str:
    return build_patch(file_diff, [HunkSelection(hunk_index=hunk_index)], reverse=reverse)
