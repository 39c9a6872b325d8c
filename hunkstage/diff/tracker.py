from hunkstage.diff.models import HunkHeader


class HunkLineTracker:
    """
    Old/new line counters for one hunk body.

    Seeded from the header's start offsets. A context line advances both
    counters, an addition only the new counter, a deletion only the old one.
    """

    def __init__(self, header: HunkHeader | None = None):
        self.old_line = 0
        self.new_line = 0
        self._old_remaining = 0
        self._new_remaining = 0
        if header is not None:
            self.reset(header)

    def reset(self, header: HunkHeader) -> None:
        self.old_line = header.old_start
        self.new_line = header.new_start
        self._old_remaining = header.old_count
        self._new_remaining = header.new_count

    @property
    def is_complete(self) -> bool:
        """True once the header's declared line counts are used up."""
        return self._old_remaining <= 0 and self._new_remaining <= 0

    def context(self) -> tuple[int, int]:
        numbers = (self.old_line, self.new_line)
        self.old_line += 1
        self.new_line += 1
        self._old_remaining -= 1
        self._new_remaining -= 1
        return numbers

    def addition(self) -> int:
        number = self.new_line
        self.new_line += 1
        self._new_remaining -= 1
        return number

    def deletion(self) -> int:
        number = self.old_line
        self.old_line += 1
        self._old_remaining -= 1
        return number
