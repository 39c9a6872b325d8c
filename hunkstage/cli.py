import asyncio
import logging
import sys
from pathlib import Path

import typer
from pydantic import BaseModel

from hunkstage.config import HunkstageConfig, load_config
from hunkstage.errors import InputValidationError
from hunkstage.git.models import CommandResult
from hunkstage.git.operations import (
    git_apply_patch,
    git_blame,
    git_file_diff,
    stage_selection,
    unstage_selection,
)
from hunkstage.git.runner import GitCommandRunner
from hunkstage.logging import setup_logging
from hunkstage.patch.builder import HunkSelection

app = typer.Typer(no_args_is_help=True)


def _runner(ctx: typer.Context) -> GitCommandRunner:
    config = ctx.obj if isinstance(ctx.obj, HunkstageConfig) else load_config()
    return GitCommandRunner(config)


def _emit(result: BaseModel, exclude: set[str]) -> None:
    typer.echo(result.model_dump_json(indent=2, exclude=exclude))
    if not getattr(result, "success", False):
        raise typer.Exit(code=1)


def parse_line_indices(value: str) -> frozenset[int]:
    """Parse "3,4,7-9" into {3, 4, 7, 8, 9}."""
    indices: set[int] = set()
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            if "-" in part:
                first, last = (int(p) for p in part.split("-", 1))
                if first > last:
                    raise typer.BadParameter(f"Descending range {part!r}")
                indices.update(range(first, last + 1))
            else:
                indices.add(int(part))
        except ValueError:
            raise typer.BadParameter(f"Not a line index or range: {part!r}") from None
    if not indices:
        raise typer.BadParameter("No line indices given")
    return frozenset(indices)


def _selections(hunks: list[int] | None, lines: str | None) -> list[HunkSelection] | None:
    if not hunks:
        if lines:
            raise typer.BadParameter("--lines needs exactly one --hunk")
        return None
    if lines:
        if len(hunks) != 1:
            raise typer.BadParameter("--lines needs exactly one --hunk")
        return [HunkSelection(hunk_index=hunks[0], line_indices=parse_line_indices(lines))]
    return [HunkSelection(hunk_index=index) for index in hunks]


@app.command("diff")
def diff_cmd(
    ctx: typer.Context,
    file: str | None = typer.Argument(None, help="Limit the diff to one file"),
    staged: bool = typer.Option(False, "--staged", help="Diff the index against HEAD"),
    commit: str | None = typer.Option(None, "--commit", help="Show the changes of one commit"),
    cwd: Path = typer.Option(Path("."), "--cwd", help="Repository directory"),
):
    """Print the parsed diff as JSON."""
    result = asyncio.run(git_file_diff(cwd, file, staged=staged, commit=commit, runner=_runner(ctx)))
    _emit(result, exclude={"raw_diff"})


@app.command("blame")
def blame_cmd(
    ctx: typer.Context,
    file: str = typer.Argument(..., help="File to annotate"),
    start: int | None = typer.Option(None, "--start", help="First line of the range"),
    end: int | None = typer.Option(None, "--end", help="Last line of the range"),
    cwd: Path = typer.Option(Path("."), "--cwd", help="Repository directory"),
):
    """Print per-line blame attribution as JSON."""
    result = asyncio.run(git_blame(cwd, file, start_line=start, end_line=end, runner=_runner(ctx)))
    _emit(result, exclude=set())


@app.command("stage")
def stage_cmd(
    ctx: typer.Context,
    file: str = typer.Argument(..., help="File whose changes to stage"),
    hunk: list[int] | None = typer.Option(None, "--hunk", help="Hunk index, repeatable"),
    lines: str | None = typer.Option(None, "--lines", help="Line indices within the hunk, e.g. 1,2,5-7"),
    cwd: Path = typer.Option(Path("."), "--cwd", help="Repository directory"),
):
    """Stage whole hunks or single lines of an unstaged diff."""
    selections = _selections(hunk, lines)
    result = asyncio.run(stage_selection(cwd, file, selections, runner=_runner(ctx)))
    _emit(result, exclude={"raw_output"})


@app.command("unstage")
def unstage_cmd(
    ctx: typer.Context,
    file: str = typer.Argument(..., help="File whose staged changes to unstage"),
    hunk: list[int] | None = typer.Option(None, "--hunk", help="Hunk index, repeatable"),
    lines: str | None = typer.Option(None, "--lines", help="Line indices within the hunk, e.g. 1,2,5-7"),
    cwd: Path = typer.Option(Path("."), "--cwd", help="Repository directory"),
):
    """Unstage whole hunks or single lines of the staged diff."""
    selections = _selections(hunk, lines)
    result = asyncio.run(unstage_selection(cwd, file, selections, runner=_runner(ctx)))
    _emit(result, exclude={"raw_output"})


@app.command("apply")
def apply_cmd(
    ctx: typer.Context,
    patch_file: str = typer.Argument(..., help="Patch file, or - for stdin"),
    cached: bool = typer.Option(False, "--cached", help="Apply to the index only"),
    reverse: bool = typer.Option(False, "--reverse", help="Apply the patch in reverse"),
    cwd: Path = typer.Option(Path("."), "--cwd", help="Repository directory"),
):
    """Apply a unified diff through git apply."""
    if patch_file == "-":
        patch = sys.stdin.read()
    else:
        try:
            patch = Path(patch_file).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            error = InputValidationError(f"Cannot read patch file {patch_file}: {e}")
            _emit(CommandResult.failed(error), exclude={"raw_output"})
            return
    result = asyncio.run(
        git_apply_patch(cwd, patch, cached=cached, reverse=reverse, runner=_runner(ctx))
    )
    _emit(result, exclude={"raw_output"})


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", help="YAML configuration file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to stderr"),
):
    """
    hunkstage CLI
    """
    settings = load_config(config)
    setup_logging(logging.DEBUG if verbose else settings.log_level.upper())
    ctx.obj = settings
