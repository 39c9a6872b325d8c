from pydantic import BaseModel, ConfigDict, Field


class BlameLine(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    hash: str = Field(pattern=r"^[0-9a-f]{8}$")
    author: str
    author_time: str
    line_number: int
    content: str
