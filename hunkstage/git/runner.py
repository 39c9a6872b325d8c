import asyncio
import logging
import time
from pathlib import Path

from hunkstage.config import HunkstageConfig
from hunkstage.errors import FailureKind
from hunkstage.git.models import CommandResult, ProcessState
from hunkstage.util.events import NULL_EVENT_LOGGER, EventLogger, NullEventLogger, new_request_id

logger = logging.getLogger(__name__)


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


class GitCommandRunner:
    """
    Runs the git binary with an explicit argument vector.

    Each call spawns one independent process and moves through
    SPAWNING -> STREAMING -> EXITED | ERRORED. Success is decided by the
    exit code alone; stderr output on exit 0 is kept but is not a failure.
    """

    def __init__(
        self,
        config: HunkstageConfig | None = None,
        event_logger: EventLogger | NullEventLogger | None = None,
    ):
        self.config = config or HunkstageConfig()
        if event_logger is not None:
            self.event_logger = event_logger
        elif self.config.events_file is not None:
            self.event_logger = EventLogger(self.config.events_file)
        else:
            self.event_logger = NULL_EVENT_LOGGER

    async def run(
        self,
        args: list[str],
        cwd: str | Path,
        stdin: str | None = None,
        timeout_sec: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> CommandResult:
        """
        Args:
            args (list[str]): arguments after the git binary, e.g. ["apply", "-"]
            cwd (str | Path): repository working directory
            stdin (str | None): payload written to the process, then closed
            timeout_sec (float | None): deadline, defaults to command_timeout_sec
            cancel_event (asyncio.Event | None): set it to kill the process

        Returns:
            CommandResult: never raises for spawn failures, non-zero exits,
            timeouts or cancel_event; asyncio task cancellation kills the
            process and propagates.
        """
        request_id = new_request_id()
        argv = [self.config.git_binary, *args]
        command = args[0] if args else "command"
        timeout = timeout_sec if timeout_sec is not None else self.config.command_timeout_sec
        payload = stdin.encode("utf-8") if stdin is not None else None
        started = time.monotonic()

        self.event_logger.log_command_started(request_id, list(args), str(cwd), len(payload or b""))
        state = self._enter(command, None, ProcessState.SPAWNING)
        logger.debug("Spawning %s in %s", argv, cwd)

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd),
                stdin=asyncio.subprocess.PIPE if payload is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Could not start %s: %s", argv[0], e)
            return self._finish(
                request_id,
                started,
                CommandResult(
                    success=False,
                    error=e.strerror or str(e),
                    failure=FailureKind.SPAWN_FAILURE,
                    state=self._enter(command, state, ProcessState.ERRORED),
                ),
            )

        state = self._enter(command, state, ProcessState.STREAMING)
        communicate = asyncio.ensure_future(proc.communicate(payload))
        cancel_wait = asyncio.ensure_future(cancel_event.wait()) if cancel_event is not None else None
        waiters = {communicate} if cancel_wait is None else {communicate, cancel_wait}

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            logger.warning("git %s cancelled by caller, killing pid %s", command, proc.pid)
            self._kill(proc)
            communicate.cancel()
            # Reap the killed child before propagating.
            await asyncio.shield(proc.wait())
            self._enter(command, state, ProcessState.ERRORED)
            raise
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()

        if communicate not in done:
            if cancel_wait is not None and cancel_wait in done:
                failure = FailureKind.CANCELLED
                message = f"git {command} was cancelled"
            else:
                failure = FailureKind.TIMEOUT
                message = f"git {command} timed out after {timeout:g} seconds"
            logger.warning("%s, killing pid %s", message, proc.pid)
            self._kill(proc)
            stdout, stderr = await self._drain(communicate)
            return self._finish(
                request_id,
                started,
                CommandResult(
                    success=False,
                    error=message,
                    failure=failure,
                    stderr=_decode(stderr).strip(),
                    raw_output=_decode(stdout),
                    output=_decode(stdout).strip(),
                    exit_code=proc.returncode,
                    state=self._enter(command, state, ProcessState.ERRORED),
                ),
            )

        try:
            stdout, stderr = communicate.result()
        except OSError as e:
            logger.error("I/O error while streaming to %s: %s", argv[0], e)
            self._kill(proc)
            return self._finish(
                request_id,
                started,
                CommandResult(
                    success=False,
                    error=str(e),
                    failure=FailureKind.EXTERNAL_TOOL_FAILURE,
                    state=self._enter(command, state, ProcessState.ERRORED),
                ),
            )

        raw_output = _decode(stdout)
        stderr_text = _decode(stderr).strip()
        exit_code = proc.returncode

        if exit_code == 0:
            result = CommandResult(
                success=True,
                output=raw_output.strip(),
                raw_output=raw_output,
                stderr=stderr_text,
                exit_code=exit_code,
                state=self._enter(command, state, ProcessState.EXITED),
            )
        else:
            result = CommandResult(
                success=False,
                error=stderr_text or f"Process exited with code {exit_code}",
                failure=FailureKind.EXTERNAL_TOOL_FAILURE,
                output=raw_output.strip(),
                raw_output=raw_output,
                stderr=stderr_text,
                exit_code=exit_code,
                state=self._enter(command, state, ProcessState.EXITED),
            )
        return self._finish(request_id, started, result)

    @staticmethod
    def _enter(command: str, current: ProcessState | None, new: ProcessState) -> ProcessState:
        logger.debug("git %s: %s -> %s", command, current or "-", new)
        return new

    @staticmethod
    def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.kill()
        except ProcessLookupError:
            pass

    @staticmethod
    async def _drain(communicate: asyncio.Future) -> tuple[bytes | None, bytes | None]:
        # The pipes close once the process is gone, so this returns promptly.
        try:
            return await communicate
        except OSError as e:
            logger.debug("Discarding output of killed process: %s", e)
            return None, None

    def _finish(self, request_id: str, started: float, result: CommandResult) -> CommandResult:
        duration = time.monotonic() - started
        result = result.model_copy(update={"duration_sec": duration})
        if result.success:
            logger.debug("git exited 0 in %.3fs", duration)
        elif result.failure != FailureKind.SPAWN_FAILURE:
            logger.warning("git failed (%s): %s", result.failure, result.error)
        self.event_logger.log_command_finished(
            request_id,
            success=result.success,
            exit_code=result.exit_code,
            failure=result.failure,
            stderr=result.stderr,
            duration_sec=duration,
        )
        return result
