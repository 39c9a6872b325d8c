import asyncio
import logging
from pathlib import Path

from hunkstage.blame.parser import parse_blame_porcelain
from hunkstage.diff.models import FileDiff
from hunkstage.diff.parser import parse_diff_output, parse_multi_file_diff
from hunkstage.errors import HunkstageError, InputValidationError
from hunkstage.git.models import BlameResult, CommandResult, DiffTextResult, FileDiffResult
from hunkstage.git.runner import GitCommandRunner
from hunkstage.git.validation import (
    require_cwd,
    require_file,
    require_patch,
    validate_commit_ref,
    validate_line_range,
)
from hunkstage.patch.builder import HunkSelection, build_patch

logger = logging.getLogger(__name__)


def _diff_args(
    runner: GitCommandRunner,
    file: str | None,
    staged: bool,
    commit: str | None,
) -> list[str]:
    args = ["diff", "--no-color", "--no-ext-diff"]
    if commit:
        commit = validate_commit_ref(commit)
        args.append(f"{commit}^..{commit}")
    elif staged:
        args.append("--staged")
    args.append(f"--unified={runner.config.diff_context_lines}")
    if file:
        args.extend(["--", file])
    return args


async def git_file_diff(
    cwd: str | Path,
    file: str | None = None,
    staged: bool = False,
    commit: str | None = None,
    runner: GitCommandRunner | None = None,
) -> FileDiffResult:
    """
    Diff one file (or the whole tree) against the index, HEAD, or a commit's
    parent, parsed into a FileDiff. Empty output is success with no hunks.
    """
    runner = runner or GitCommandRunner()
    try:
        require_cwd(cwd)
        args = _diff_args(runner, file, staged, commit)
    except InputValidationError as e:
        return FileDiffResult.failed(e)

    result = await runner.run(args, cwd)
    if not result.success:
        return FileDiffResult(success=False, error=result.error, failure=result.failure)

    if result.raw_output.strip() == "":
        return FileDiffResult(
            success=True,
            diff=FileDiff(file=file or ""),
            raw_diff="",
        )

    try:
        diff = parse_diff_output(result.raw_output, file)
        files = tuple(parse_multi_file_diff(result.raw_output))
    except HunkstageError as e:
        logger.warning("Could not parse diff output for %s: %s", file or "<tree>", e)
        return FileDiffResult.failed(e, raw_diff=result.raw_output)

    return FileDiffResult(success=True, diff=diff, files=files, raw_diff=result.raw_output)


async def git_diff_raw(
    cwd: str | Path,
    file: str | None = None,
    staged: bool = False,
    commit: str | None = None,
    runner: GitCommandRunner | None = None,
) -> CommandResult:
    runner = runner or GitCommandRunner()
    try:
        require_cwd(cwd)
        args = _diff_args(runner, file, staged, commit)
    except InputValidationError as e:
        return CommandResult.failed(e)

    return await runner.run(args, cwd)


async def git_diff_for_staging(
    cwd: str | Path,
    file: str,
    staged: bool = False,
    runner: GitCommandRunner | None = None,
) -> DiffTextResult:
    """Untrimmed diff text of a single file, suitable for building patches."""
    runner = runner or GitCommandRunner()
    try:
        require_cwd(cwd)
        require_file(file)
    except InputValidationError as e:
        return DiffTextResult.failed(e)

    args = ["diff", "--no-color", "--no-ext-diff"]
    if staged:
        args.append("--staged")
    # Same context width as git_file_diff so selection indices line up.
    args.append(f"--unified={runner.config.diff_context_lines}")
    args.extend(["--", file])

    result = await runner.run(args, cwd)
    if not result.success:
        return DiffTextResult(success=False, error=result.error, failure=result.failure)
    return DiffTextResult(success=True, diff=result.raw_output)


async def git_apply_patch(
    cwd: str | Path,
    patch: str,
    cached: bool = False,
    reverse: bool = False,
    runner: GitCommandRunner | None = None,
    cancel_event: asyncio.Event | None = None,
) -> CommandResult:
    """
    Feed a unified diff to `git apply` over stdin.

    Args:
        cached (bool): apply to the index only, leaving the working tree alone
        reverse (bool): apply the inverse of the patch (used to unstage)
    """
    runner = runner or GitCommandRunner()
    try:
        require_cwd(cwd)
        require_patch(patch, runner.config.max_patch_bytes)
    except InputValidationError as e:
        return CommandResult.failed(e)

    if not patch.endswith("\n"):
        patch = f"{patch}\n"

    args = ["apply"]
    if cached:
        args.append("--cached")
    if reverse:
        args.append("--reverse")
    args.append("-")

    return await runner.run(
        args,
        cwd,
        stdin=patch,
        timeout_sec=runner.config.apply_timeout_sec,
        cancel_event=cancel_event,
    )


async def git_blame(
    cwd: str | Path,
    file: str,
    start_line: int | None = None,
    end_line: int | None = None,
    runner: GitCommandRunner | None = None,
) -> BlameResult:
    runner = runner or GitCommandRunner()
    try:
        require_cwd(cwd)
        require_file(file)
        line_range = validate_line_range(start_line, end_line)
    except InputValidationError as e:
        return BlameResult.failed(e)

    args = ["blame", "--porcelain"]
    if line_range is not None:
        args.append(f"-L{line_range[0]},{line_range[1]}")
    args.extend(["--", file])

    result = await runner.run(args, cwd)
    if not result.success:
        return BlameResult(success=False, error=result.error, failure=result.failure)

    return BlameResult(success=True, lines=tuple(parse_blame_porcelain(result.raw_output)))


async def _apply_selection(
    cwd: str | Path,
    file: str,
    selections: list[HunkSelection] | None,
    unstage: bool,
    runner: GitCommandRunner | None,
    cancel_event: asyncio.Event | None,
) -> CommandResult:
    runner = runner or GitCommandRunner()
    diff_result = await git_diff_for_staging(cwd, file, staged=unstage, runner=runner)
    if not diff_result.success:
        return CommandResult(success=False, error=diff_result.error, failure=diff_result.failure)

    if not diff_result.diff or diff_result.diff.strip() == "":
        state = "staged" if unstage else "unstaged"
        return CommandResult.failed(InputValidationError(f"No {state} changes for {file}"))

    try:
        file_diff = parse_diff_output(diff_result.diff, file)
        patch = build_patch(file_diff, selections, reverse=unstage)
    except HunkstageError as e:
        return CommandResult.failed(e)

    return await git_apply_patch(
        cwd,
        patch,
        cached=True,
        reverse=unstage,
        runner=runner,
        cancel_event=cancel_event,
    )


async def stage_selection(
    cwd: str | Path,
    file: str,
    selections: list[HunkSelection] | None = None,
    runner: GitCommandRunner | None = None,
    cancel_event: asyncio.Event | None = None,
) -> CommandResult:
    """
    Stage selected hunks/lines of a file's unstaged changes.

    Selection indices refer to the diff returned by
    `git_file_diff(cwd, file)`; if the working tree changed since, re-fetch
    the diff first or the apply step will fail.
    """
    return await _apply_selection(cwd, file, selections, False, runner, cancel_event)


async def unstage_selection(
    cwd: str | Path,
    file: str,
    selections: list[HunkSelection] | None = None,
    runner: GitCommandRunner | None = None,
    cancel_event: asyncio.Event | None = None,
) -> CommandResult:
    """Unstage selected hunks/lines; indices refer to `git_file_diff(cwd, file, staged=True)`."""
    return await _apply_selection(cwd, file, selections, True, runner, cancel_event)
