"""
KernelConfig: settings for the Go notebook kernel.

Every field can be overridden through an environment variable named
NOTEBOOK_GO_<FIELD>, e.g.:

    NOTEBOOK_GO_GO_BINARY=/usr/local/go/bin/go
    NOTEBOOK_GO_AUTO_GET=false
    NOTEBOOK_GO_CURSOR_UNITS=codepoint
    NOTEBOOK_GO_LOG_LEVEL=DEBUG

Keyword arguments win over the environment.
"""

import logging
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "NOTEBOOK_GO_"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
CursorUnits = Literal["utf16", "codepoint", "byte"]


class KernelConfig(BaseSettings):
    """Configuration of a GoKernel and its toolchain."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
        env_ignore_empty=True,
    )

    go_binary: str = Field(default="go", description="Go command used for builds and go.mod edits")
    shell: str = Field(default="/bin/bash", description="Shell used for `!` commands")
    module_name: str = Field(default="notebook_go_cell", description="Module name written by `go mod init`")
    work_dir: Optional[Path] = Field(default=None, description="Go workspace; a temp dir when unset")
    auto_get: bool = Field(default=True, description="Run `go mod tidy` before each build")
    cursor_units: CursorUnits = Field(default="utf16", description="Column units used by the transport")
    poll_interval: float = Field(default=1.0, gt=0, description="Seconds between tracked path checks")
    sessions_dir: Path = Field(default_factory=lambda: Path.home() / ".notebook_go" / "sessions")
    log_level: LogLevel = "WARNING"

    @field_validator("cursor_units", "log_level", mode="before")
    @classmethod
    def _normalize_case(cls, v, info):
        if isinstance(v, str):
            return v.upper() if info.field_name == "log_level" else v.lower()
        return v

    @field_validator("work_dir", "sessions_dir")
    @classmethod
    def _expand_user(cls, v: Optional[Path]) -> Optional[Path]:
        return v.expanduser() if v is not None else v

    @classmethod
    def from_env(cls, **overrides) -> "KernelConfig":
        """Build a config from NOTEBOOK_GO_* variables; overrides set to None are ignored."""
        return cls(**{k: v for k, v in overrides.items() if v is not None})


def configure_logging(level: str = "WARNING", handler: Optional[logging.Handler] = None) -> None:
    """Attach a handler to the notebook_go logger tree."""
    logger = logging.getLogger("notebook_go")
    logger.setLevel(level.upper())
    if handler is not None:
        for existing in list(logger.handlers):
            logger.removeHandler(existing)
        logger.addHandler(handler)
