import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from filelock import FileLock

logger = logging.getLogger(__name__)


def append_jsonl(path: Path, record: dict[str, Any] | str) -> bool:
    """
    Append one record (a dict or an already serialized JSON string) as a line.

    Writers in other processes are serialized through a sibling `.lock` file.
    Returns False instead of raising when the write fails, since the log is
    diagnostic only.
    """
    path = Path(path)
    line = record if isinstance(record, str) else json.dumps(record)
    line = line.rstrip("\n") + "\n"

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(f"{path}.lock"):
            with path.open("a", encoding="utf-8") as f:
                f.write(line)
    except OSError as e:
        logger.error("Failed to append event to %s: %s", path, e)
        return False

    return True


def read_jsonl(path: Path) -> Iterator[dict]:
    with Path(path).open("r", encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning("%s:%d is not valid JSON: %s", path, line_number, e)
