"""Configuration for handoff pack builds."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Mapping

import yaml  # type: ignore[import-not-found]
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .capture import DEFAULT_SHELL_PROBE
from .errors import HandoffConfigError

LOG_ENV = "HANDOFF_LOG"
DEFAULT_ARCHIVE_NAME = "handoff_pack.zip"


class HandoffConfig(BaseModel):
    timezone: str = "UTC"
    git_log_limit: int = Field(50, ge=1, le=10000)
    include_environment: bool = True
    shell_probe: List[str] = Field(default_factory=lambda: list(DEFAULT_SHELL_PROBE))
    templates_dir: Path | None = None
    archive_name: str = DEFAULT_ARCHIVE_NAME

    model_config = ConfigDict(extra="forbid")

    @field_validator("shell_probe")
    @classmethod
    def _non_empty_probe(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("shell_probe needs at least the executable")
        return value

    @field_validator("timezone", "archive_name")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


def load_config(path: Path | None = None) -> HandoffConfig:
    """Load a YAML config file; no path or a missing file yields defaults."""
    if path is None or not path.exists():
        return HandoffConfig()
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return HandoffConfig()
    if not isinstance(data, dict):
        raise HandoffConfigError(f"{path} must contain a mapping of settings")
    try:
        config = HandoffConfig.model_validate(data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'config'}: {error['msg']}"
            for error in exc.errors()
        )
        raise HandoffConfigError(f"{path}: {problems}") from exc
    if config.templates_dir is not None and not config.templates_dir.is_absolute():
        config = config.model_copy(
            update={"templates_dir": (path.parent / config.templates_dir).resolve()}
        )
    return config


def configure_logging(environ: Mapping[str, str] | None = None) -> None:
    env = os.environ if environ is None else environ
    level = env.get(LOG_ENV, "INFO").upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO))
