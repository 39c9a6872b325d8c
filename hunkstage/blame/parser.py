import logging
import re
from datetime import datetime, timezone

from hunkstage.blame.models import BlameLine
from hunkstage.diff.parser import split_lines

logger = logging.getLogger(__name__)

# <40-hex hash> <orig line> <final line> [<lines in group>]
BLAME_HEADER_RE = re.compile(r"^([a-f0-9]{40})\s+\d+\s+(\d+)")

SHORT_HASH_LENGTH = 8


def format_epoch(seconds: int) -> str:
    """Epoch seconds as UTC ISO-8601 with milliseconds, e.g. 2023-11-14T22:13:20.000Z."""
    moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_blame_porcelain(text: str) -> list[BlameLine]:
    """
    Parse `git blame --porcelain` output into one BlameLine per source line.

    Porcelain output only prints a commit's metadata the first time that
    commit appears. Author and time are therefore remembered per commit and
    restored whenever a later header names the same commit again. The line
    number is the header's final line field, not the original line field.
    """
    lines: list[BlameLine] = []
    seen: dict[str, tuple[str, str]] = {}
    current_hash = ""
    current_author = ""
    current_time = ""
    line_number = 0

    for line in split_lines(text):
        match = BLAME_HEADER_RE.match(line)
        if match:
            current_hash = match.group(1)
            line_number = int(match.group(2))
            current_author, current_time = seen.get(current_hash, ("", ""))
            continue

        if line.startswith("author "):
            current_author = line[len("author "):]
            seen[current_hash] = (current_author, current_time)
            continue

        if line.startswith("author-time "):
            raw_time = line[len("author-time "):].strip()
            try:
                current_time = format_epoch(int(raw_time))
            except (ValueError, OverflowError, OSError):
                logger.debug("Ignoring unparseable author-time %r", raw_time)
            seen[current_hash] = (current_author, current_time)
            continue

        if line.startswith("\t"):
            if not current_hash:
                logger.debug("Skipping blame content line without a header")
                continue
            lines.append(
                BlameLine(
                    hash=current_hash[:SHORT_HASH_LENGTH],
                    author=current_author,
                    author_time=current_time,
                    line_number=line_number,
                    content=line[1:],
                )
            )

    logger.debug("Parsed %d blame lines", len(lines))
    return lines
