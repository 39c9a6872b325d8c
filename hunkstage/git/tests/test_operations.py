import asyncio
import shutil
import subprocess

import pytest

from hunkstage.config import HunkstageConfig
from hunkstage.diff.parser import parse_diff_output
from hunkstage.errors import FailureKind
from hunkstage.git.models import CommandResult
from hunkstage.git.operations import (
    git_apply_patch,
    git_blame,
    git_diff_for_staging,
    git_diff_raw,
    git_file_diff,
    stage_selection,
    unstage_selection,
)
from hunkstage.git.runner import GitCommandRunner
from hunkstage.patch.builder import HunkSelection, build_patch

APP_DIFF = (
    "diff --git a/src/app.ts b/src/app.ts\n"
    "index 83db48f..bf269f4 100644\n"
    "--- a/src/app.ts\n"
    "+++ b/src/app.ts\n"
    "@@ -1,3 +1,3 @@\n"
    " import x from 'x';\n"
    "-const a = 1;\n"
    "+const a = 2;\n"
    " export default a;\n"
)

BLAME_OUTPUT = (
    "abcdef0123456789abcdef0123456789abcdef01 5 5 1\n"
    "author Jane Doe\n"
    "author-time 1700000000\n"
    "filename src/app.ts\n"
    "\tconst a = 2;\n"
)


def _ok(output: str = "") -> CommandResult:
    return CommandResult(success=True, output=output.strip(), raw_output=output, exit_code=0)


def _failed(error: str) -> CommandResult:
    return CommandResult(
        success=False,
        error=error,
        stderr=error,
        failure=FailureKind.EXTERNAL_TOOL_FAILURE,
        exit_code=1,
    )


class FakeRunner(GitCommandRunner):
    """Returns queued results and records every invocation."""

    def __init__(self, *results: CommandResult, config: HunkstageConfig | None = None):
        super().__init__(config)
        self.results = list(results)
        self.calls: list[dict] = []

    async def run(self, args, cwd, stdin=None, timeout_sec=None, cancel_event=None):
        self.calls.append(
            {
                "args": list(args),
                "cwd": cwd,
                "stdin": stdin,
                "timeout_sec": timeout_sec,
                "cancel_event": cancel_event,
            }
        )
        return self.results.pop(0)


class TestGitFileDiff:
    def test_parses_output(self, tmp_path):
        runner = FakeRunner(_ok(APP_DIFF))

        result = asyncio.run(git_file_diff(tmp_path, "src/app.ts", runner=runner))

        assert result.success is True
        assert result.diff.file == "src/app.ts"
        assert len(result.diff.hunks) == 1
        assert len(result.files) == 1
        assert result.raw_diff == APP_DIFF
        assert runner.calls[0]["args"] == [
            "diff",
            "--no-color",
            "--no-ext-diff",
            "--unified=3",
            "--",
            "src/app.ts",
        ]

    def test_staged_and_commit_args(self, tmp_path):
        runner = FakeRunner(_ok(), _ok())

        asyncio.run(git_file_diff(tmp_path, "a.txt", staged=True, runner=runner))
        asyncio.run(git_file_diff(tmp_path, commit="abc1234", runner=runner))

        assert "--staged" in runner.calls[0]["args"]
        assert "abc1234^..abc1234" in runner.calls[1]["args"]
        assert "--" not in runner.calls[1]["args"]

    def test_context_lines_from_config(self, tmp_path):
        runner = FakeRunner(_ok(), config=HunkstageConfig(diff_context_lines=0))

        asyncio.run(git_file_diff(tmp_path, "a.txt", runner=runner))

        assert "--unified=0" in runner.calls[0]["args"]

    def test_empty_output_is_an_empty_diff(self, tmp_path):
        result = asyncio.run(git_file_diff(tmp_path, "a.txt", runner=FakeRunner(_ok(""))))

        assert result.success is True
        assert result.diff.file == "a.txt"
        assert result.diff.hunks == ()

    @pytest.mark.parametrize("commit", ["a..b", "--output=x", "bad ref"])
    def test_invalid_commit_never_spawns(self, tmp_path, commit):
        runner = FakeRunner()

        result = asyncio.run(git_file_diff(tmp_path, commit=commit, runner=runner))

        assert result.success is False
        assert result.failure == FailureKind.INPUT_VALIDATION
        assert runner.calls == []

    def test_missing_cwd_never_spawns(self, tmp_path):
        runner = FakeRunner()

        result = asyncio.run(git_file_diff(tmp_path / "missing", runner=runner))

        assert result.failure == FailureKind.INPUT_VALIDATION
        assert "does not exist" in result.error
        assert runner.calls == []

    def test_tool_failure_is_passed_through(self, tmp_path):
        runner = FakeRunner(_failed("fatal: not a git repository"))

        result = asyncio.run(git_file_diff(tmp_path, runner=runner))

        assert result.success is False
        assert result.error == "fatal: not a git repository"
        assert result.failure == FailureKind.EXTERNAL_TOOL_FAILURE

    def test_malformed_header(self, tmp_path):
        text = "diff --git a/a b/a\n@@ -x +y @@\n"

        result = asyncio.run(git_file_diff(tmp_path, runner=FakeRunner(_ok(text))))

        assert result.success is False
        assert result.failure == FailureKind.MALFORMED_INPUT
        assert result.raw_diff == text


class TestRawDiffs:
    def test_git_diff_raw_returns_runner_result(self, tmp_path):
        runner = FakeRunner(_ok(APP_DIFF))

        result = asyncio.run(git_diff_raw(tmp_path, staged=True, runner=runner))

        assert result.raw_output == APP_DIFF
        assert runner.calls[0]["args"][:3] == ["diff", "--no-color", "--no-ext-diff"]

    def test_diff_for_staging_keeps_text_untrimmed(self, tmp_path):
        runner = FakeRunner(_ok(APP_DIFF))

        result = asyncio.run(git_diff_for_staging(tmp_path, "src/app.ts", staged=True, runner=runner))

        assert result.diff == APP_DIFF
        assert runner.calls[0]["args"][-3:] == ["--unified=3", "--", "src/app.ts"]
        assert "--staged" in runner.calls[0]["args"]

    def test_diff_for_staging_requires_file(self, tmp_path):
        runner = FakeRunner()

        result = asyncio.run(git_diff_for_staging(tmp_path, "", runner=runner))

        assert result.error == "No file specified"
        assert runner.calls == []


class TestGitApplyPatch:
    def test_args_and_stdin(self, tmp_path):
        runner = FakeRunner(_ok())
        cancel = asyncio.Event()

        result = asyncio.run(
            git_apply_patch(
                tmp_path,
                "diff --git a/a b/a",
                cached=True,
                reverse=True,
                runner=runner,
                cancel_event=cancel,
            )
        )

        assert result.success is True
        call = runner.calls[0]
        assert call["args"] == ["apply", "--cached", "--reverse", "-"]
        assert call["stdin"] == "diff --git a/a b/a\n"
        assert call["timeout_sec"] == runner.config.apply_timeout_sec
        assert call["cancel_event"] is cancel

    def test_plain_apply(self, tmp_path):
        runner = FakeRunner(_ok())

        asyncio.run(git_apply_patch(tmp_path, APP_DIFF, runner=runner))

        assert runner.calls[0]["args"] == ["apply", "-"]
        assert runner.calls[0]["stdin"] == APP_DIFF

    def test_empty_patch_never_spawns(self, tmp_path):
        runner = FakeRunner()

        result = asyncio.run(git_apply_patch(tmp_path, "", runner=runner))

        assert result.success is False
        assert result.error == "No patch content specified"
        assert result.failure == FailureKind.INPUT_VALIDATION
        assert runner.calls == []

    def test_oversized_patch_never_spawns(self, tmp_path):
        runner = FakeRunner(config=HunkstageConfig(max_patch_bytes=10))

        result = asyncio.run(git_apply_patch(tmp_path, APP_DIFF, runner=runner))

        assert result.failure == FailureKind.INPUT_VALIDATION
        assert runner.calls == []

    def test_rejected_patch(self, tmp_path):
        runner = FakeRunner(_failed("error: patch failed: src/app.ts:1"))

        result = asyncio.run(git_apply_patch(tmp_path, APP_DIFF, runner=runner))

        assert result.success is False
        assert result.error == "error: patch failed: src/app.ts:1"
        assert result.retryable is True


class TestGitBlame:
    def test_parses_lines(self, tmp_path):
        runner = FakeRunner(_ok(BLAME_OUTPUT))

        result = asyncio.run(git_blame(tmp_path, "src/app.ts", start_line=5, end_line=5, runner=runner))

        assert result.success is True
        assert runner.calls[0]["args"] == ["blame", "--porcelain", "-L5,5", "--", "src/app.ts"]
        (line,) = result.lines
        assert line.hash == "abcdef01"
        assert line.line_number == 5
        assert line.content == "const a = 2;"

    def test_no_range(self, tmp_path):
        runner = FakeRunner(_ok(""))

        result = asyncio.run(git_blame(tmp_path, "a.txt", runner=runner))

        assert result.success is True
        assert result.lines == ()
        assert runner.calls[0]["args"] == ["blame", "--porcelain", "--", "a.txt"]

    def test_half_range_is_rejected(self, tmp_path):
        runner = FakeRunner()

        result = asyncio.run(git_blame(tmp_path, "a.txt", start_line=3, runner=runner))

        assert result.failure == FailureKind.INPUT_VALIDATION
        assert runner.calls == []


class TestSelections:
    def test_stage_builds_and_applies_patch(self, tmp_path):
        runner = FakeRunner(_ok(APP_DIFF), _ok())
        selection = [HunkSelection(hunk_index=0, line_indices=frozenset({3}))]

        result = asyncio.run(stage_selection(tmp_path, "src/app.ts", selection, runner=runner))

        assert result.success is True
        diff_call, apply_call = runner.calls
        assert "--staged" not in diff_call["args"]
        assert apply_call["args"] == ["apply", "--cached", "-"]
        assert apply_call["stdin"] == build_patch(parse_diff_output(APP_DIFF), selection)

    def test_unstage_reverses_against_index(self, tmp_path):
        runner = FakeRunner(_ok(APP_DIFF), _ok())

        asyncio.run(unstage_selection(tmp_path, "src/app.ts", runner=runner))

        diff_call, apply_call = runner.calls
        assert "--staged" in diff_call["args"]
        assert apply_call["args"] == ["apply", "--cached", "--reverse", "-"]

    def test_nothing_to_stage(self, tmp_path):
        runner = FakeRunner(_ok(""))

        result = asyncio.run(stage_selection(tmp_path, "a.txt", runner=runner))

        assert result.success is False
        assert result.error == "No unstaged changes for a.txt"
        assert len(runner.calls) == 1

    def test_nothing_to_unstage(self, tmp_path):
        result = asyncio.run(unstage_selection(tmp_path, "a.txt", runner=FakeRunner(_ok(""))))

        assert result.error == "No staged changes for a.txt"

    def test_bad_selection_never_applies(self, tmp_path):
        runner = FakeRunner(_ok(APP_DIFF))

        result = asyncio.run(
            stage_selection(tmp_path, "src/app.ts", [HunkSelection(hunk_index=3)], runner=runner)
        )

        assert result.failure == FailureKind.INPUT_VALIDATION
        assert len(runner.calls) == 1

    def test_diff_failure_is_passed_through(self, tmp_path):
        runner = FakeRunner(_failed("fatal: bad revision"))

        result = asyncio.run(stage_selection(tmp_path, "a.txt", runner=runner))

        assert result.error == "fatal: bad revision"
        assert len(runner.calls) == 1


ORIGINAL = [f"line{n}" for n in range(1, 21)]


def _git(repo, *args: str) -> str:
    completed = subprocess.run(
        ["git", *args],
        cwd=repo,
        check=True,
        capture_output=True,
        text=True,
    )
    return completed.stdout


@pytest.fixture
def repo(tmp_path):
    _git(tmp_path, "init", "-q")
    _git(tmp_path, "config", "user.name", "Test User")
    _git(tmp_path, "config", "user.email", "test@example.com")
    _git(tmp_path, "config", "commit.gpgsign", "false")
    (tmp_path / "f.txt").write_text("\n".join(ORIGINAL) + "\n")
    _git(tmp_path, "add", "f.txt")
    _git(tmp_path, "commit", "-q", "-m", "init")
    return tmp_path


def _write(repo, lines: list[str]) -> None:
    (repo / "f.txt").write_text("\n".join(lines) + "\n")


def _two_hunk_edit(repo) -> None:
    lines = list(ORIGINAL)
    lines[1] = "LINE2"
    lines[17] = "LINE18"
    _write(repo, lines)


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
class TestAgainstGit:
    def test_stage_second_hunk_only(self, repo):
        _two_hunk_edit(repo)

        before = asyncio.run(git_file_diff(repo, "f.txt"))
        assert len(before.diff.hunks) == 2

        result = asyncio.run(stage_selection(repo, "f.txt", [HunkSelection(hunk_index=1)]))
        assert result.success is True, result.error

        staged = asyncio.run(git_file_diff(repo, "f.txt", staged=True))
        unstaged = asyncio.run(git_file_diff(repo, "f.txt"))
        assert [h.new_start for h in staged.diff.hunks] == [15]
        assert [h.old_start for h in unstaged.diff.hunks] == [1]

    def test_unstage_first_hunk(self, repo):
        _two_hunk_edit(repo)
        assert asyncio.run(stage_selection(repo, "f.txt")).success

        result = asyncio.run(unstage_selection(repo, "f.txt", [HunkSelection(hunk_index=0)]))
        assert result.success is True, result.error

        index_lines = _git(repo, "show", ":f.txt").splitlines()
        assert index_lines[1] == "line2"
        assert index_lines[17] == "LINE18"

    def test_stage_single_line(self, repo):
        lines = list(ORIGINAL)
        lines[9:10] = ["new10a", "new10b"]
        _write(repo, lines)

        # 0 header, 1-3 context, 4 deletion, 5-6 additions, 7-9 context
        diff = asyncio.run(git_file_diff(repo, "f.txt")).diff
        assert diff.hunks[0].lines[4].content == "line10"

        selection = [HunkSelection(hunk_index=0, line_indices=frozenset({4, 5}))]
        result = asyncio.run(stage_selection(repo, "f.txt", selection))
        assert result.success is True, result.error

        expected = ORIGINAL[:9] + ["new10a"] + ORIGINAL[10:]
        assert _git(repo, "show", ":f.txt").splitlines() == expected

    def test_stage_additions_after_unterminated_last_line(self, repo):
        """Lines are never joined when the old last line had no newline."""
        (repo / "g.txt").write_text("x\na")
        _git(repo, "add", "g.txt")
        _git(repo, "commit", "-q", "-m", "g")
        (repo / "g.txt").write_text("x\na\nb")

        # 0 header, 1 " x", 2 "-a", 3 "+a", 4 "+b"
        selection = [HunkSelection(hunk_index=0, line_indices=frozenset({3, 4}))]
        result = asyncio.run(stage_selection(repo, "g.txt", selection))

        assert result.success is True, result.error
        assert _git(repo, "show", ":g.txt") == "x\na\na\nb"
        assert (repo / "g.txt").read_text() == "x\na\nb"

    def test_unstage_deletion_before_unterminated_last_line(self, repo):
        (repo / "g.txt").write_text("x\na")
        _git(repo, "add", "g.txt")
        _git(repo, "commit", "-q", "-m", "g")
        (repo / "g.txt").write_text("x\na\nb")
        _git(repo, "add", "g.txt")

        selection = [HunkSelection(hunk_index=0, line_indices=frozenset({2}))]
        result = asyncio.run(unstage_selection(repo, "g.txt", selection))

        assert result.success is True, result.error
        assert _git(repo, "show", ":g.txt") == "x\na\na\nb"

    def test_stale_patch_is_rejected(self, repo):
        _two_hunk_edit(repo)
        diff = asyncio.run(git_file_diff(repo, "f.txt")).diff
        patch = build_patch(diff)
        _git(repo, "checkout", "--", "f.txt")
        (repo / "f.txt").write_text("unrelated\n")
        _git(repo, "add", "f.txt")

        result = asyncio.run(git_apply_patch(repo, patch, cached=True))

        assert result.success is False
        assert result.failure == FailureKind.EXTERNAL_TOOL_FAILURE
        assert result.error

    def test_blame_range(self, repo):
        result = asyncio.run(git_blame(repo, "f.txt", start_line=2, end_line=3))

        assert result.success is True
        assert [line.line_number for line in result.lines] == [2, 3]
        assert [line.content for line in result.lines] == ["line2", "line3"]
        assert all(line.author == "Test User" for line in result.lines)
        assert all(line.author_time.endswith("Z") for line in result.lines)

    def test_not_a_repository(self, tmp_path):
        result = asyncio.run(git_file_diff(tmp_path, "f.txt"))

        assert result.success is False
        assert result.failure == FailureKind.EXTERNAL_TOOL_FAILURE
