import logging
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path
from typing import Any

import ulid
from pydantic import BaseModel

from hunkstage.util.jsonl import append_jsonl

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    COMMAND_STARTED = "command_started"
    COMMAND_FINISHED = "command_finished"


class Event(BaseModel):
    event_type: EventType
    timestamp: datetime
    request_id: str
    payload: dict[str, Any]


def new_request_id() -> str:
    return str(ulid.new())


class EventLogger:
    """Appends git invocation events to a JSONL file."""

    def __init__(self, events_file: Path):
        self.events_file = Path(events_file)
        logger.debug("EventLogger writing to %s", self.events_file)

    def log(self, event_type: EventType, request_id: str, payload: dict[str, Any]) -> None:
        event = Event(
            event_type=event_type,
            timestamp=datetime.now(timezone.utc),
            request_id=request_id,
            payload=payload,
        )
        append_jsonl(self.events_file, event.model_dump_json())

    def log_command_started(self, request_id: str, args: list[str], cwd: str, stdin_bytes: int) -> None:
        self.log(
            EventType.COMMAND_STARTED,
            request_id,
            {"args": args, "cwd": cwd, "stdin_bytes": stdin_bytes},
        )

    def log_command_finished(
        self,
        request_id: str,
        success: bool,
        exit_code: int | None,
        failure: str | None,
        stderr: str,
        duration_sec: float,
    ) -> None:
        self.log(
            EventType.COMMAND_FINISHED,
            request_id,
            {
                "success": success,
                "exit_code": exit_code,
                "failure": failure,
                "stderr": stderr,
                "duration_sec": duration_sec,
            },
        )


class NullEventLogger:
    def log_command_started(self, request_id: str, args: list[str], cwd: str, stdin_bytes: int) -> None: pass
    def log_command_finished(self, request_id: str, success: bool, exit_code: int | None, failure: str | None, stderr: str, duration_sec: float) -> None: pass


NULL_EVENT_LOGGER = NullEventLogger()
