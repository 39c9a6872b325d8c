import re
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from hunkstage.errors import MalformedDiffError

HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@ ?(.*)$")


class HunkHeader(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    old_start: int = Field(ge=0)
    old_count: int = Field(default=1, ge=0)
    new_start: int = Field(ge=0)
    new_count: int = Field(default=1, ge=0)
    section: str = ""

    @classmethod
    def parse(cls, line: str) -> "HunkHeader":
        """
        Parse `@@ -<oldStart>[,<oldCount>] +<newStart>[,<newCount>] @@ [section]`.

        Raises:
            MalformedDiffError: the line does not follow the grammar.
        """
        match = HUNK_HEADER_RE.match(line)
        if match is None:
            raise MalformedDiffError(f"Unparseable hunk header: {line!r}", line=line)
        old_start, old_count, new_start, new_count, section = match.groups()
        return cls(
            old_start=int(old_start),
            old_count=int(old_count) if old_count is not None else 1,
            new_start=int(new_start),
            new_count=int(new_count) if new_count is not None else 1,
            section=section,
        )

    def format(self) -> str:
        header = (
            f"@@ -{_format_range(self.old_start, self.old_count)}"
            f" +{_format_range(self.new_start, self.new_count)} @@"
        )
        if self.section:
            header = f"{header} {self.section}"
        return header


def _format_range(start: int, count: int) -> str:
    # git omits the count when it is exactly one
    if count == 1:
        return str(start)
    return f"{start},{count}"


class HeaderLine(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["header"] = "header"
    content: str


class ContextLine(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["context"] = "context"
    content: str
    old_line_number: int
    new_line_number: int
    no_newline_at_eof: bool = False


class AdditionLine(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["addition"] = "addition"
    content: str
    new_line_number: int
    no_newline_at_eof: bool = False


class DeletionLine(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["deletion"] = "deletion"
    content: str
    old_line_number: int
    no_newline_at_eof: bool = False


DiffLine = Annotated[
    HeaderLine | ContextLine | AdditionLine | DeletionLine,
    Field(discriminator="kind"),
]

ChangeLine = AdditionLine | DeletionLine


class Hunk(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    header: str
    lines: tuple[DiffLine, ...]

    @property
    def parsed_header(self) -> HunkHeader:
        return HunkHeader.parse(self.header)

    @property
    def old_start(self) -> int:
        return self.parsed_header.old_start

    @property
    def old_count(self) -> int:
        return self.parsed_header.old_count

    @property
    def new_start(self) -> int:
        return self.parsed_header.new_start

    @property
    def new_count(self) -> int:
        return self.parsed_header.new_count

    @property
    def body(self) -> tuple[DiffLine, ...]:
        """Lines after the leading header line."""
        return self.lines[1:]

    @property
    def changes(self) -> list[ChangeLine]:
        return [
            line for line in self.lines
            if isinstance(line, (AdditionLine, DeletionLine))
        ]


class FileDiff(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    file: str
    hunks: tuple[Hunk, ...] = ()
    is_binary: bool = False
    old_path: str | None = None
    new_file: bool = False
    deleted_file: bool = False

    @property
    def source_path(self) -> str:
        """Path on the old side of the diff."""
        return self.old_path or self.file
