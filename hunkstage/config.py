import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

ENV_PREFIX = "HUNKSTAGE_"


class HunkstageConfig(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
    )

    git_binary: str = "git"
    # An index.lock held by another git process would otherwise hang `git apply`.
    apply_timeout_sec: float = Field(default=10.0, gt=0, le=600)
    command_timeout_sec: float = Field(default=30.0, gt=0, le=3600)
    max_patch_bytes: int = Field(default=1_000_000, ge=1)
    diff_context_lines: int = Field(default=3, ge=0, le=100)
    events_file: Path | None = None
    log_level: str = "WARNING"


def _env_str(name: str) -> str | None:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _env_number(name: str, cast: type[int] | type[float]) -> int | float | None:
    value = _env_str(name)
    if value is None:
        return None
    try:
        return cast(value)
    except ValueError:
        logger.warning("Ignoring invalid %s%s=%r", ENV_PREFIX, name, value)
        return None


def _env_overrides() -> dict[str, object]:
    overrides: dict[str, object] = {
        "git_binary": _env_str("GIT_BINARY"),
        "apply_timeout_sec": _env_number("APPLY_TIMEOUT_SEC", float),
        "command_timeout_sec": _env_number("COMMAND_TIMEOUT_SEC", float),
        "max_patch_bytes": _env_number("MAX_PATCH_BYTES", int),
        "diff_context_lines": _env_number("DIFF_CONTEXT_LINES", int),
        "events_file": _env_str("EVENTS_FILE"),
        "log_level": _env_str("LOG_LEVEL"),
    }
    return {key: value for key, value in overrides.items() if value is not None}


def load_config(path: Path | None = None) -> HunkstageConfig:
    """
    Build the configuration from an optional YAML file, then apply
    HUNKSTAGE_* environment overrides on top.
    """
    data: dict = {}
    if path is not None:
        with path.open("r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
        if loaded is not None and not isinstance(loaded, dict):
            raise ValueError(f"{path}: expected a mapping at the top level")
        data = loaded or {}
        logger.debug("Loaded config from %s", path)

    data.update(_env_overrides())
    return HunkstageConfig(**data)
