# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc

"""
Logging setup: a Loguru console sink, a rotating JSON file sink, and standard
library logging (Authlib, pydantic) routed into Loguru.

Settings come from `COREASON_LOG_LEVEL` and `COREASON_LOG_JSON`. Records
logged inside an OpenTelemetry span carry its trace id in `extra`.
"""

import inspect
import logging
import sys
from pathlib import Path
from typing import Any

from loguru import logger
from opentelemetry import trace
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["logger", "configure_logging", "InterceptHandler"]

LOG_FILE = Path("logs") / "coreason_oidc.log"

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


class LogSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="COREASON_LOG_", case_sensitive=False, extra="ignore")

    level: str = "INFO"
    json_output: bool = Field(default=False, validation_alias="COREASON_LOG_JSON")

    @field_validator("level", mode="before")
    @classmethod
    def known_level(cls, v: Any) -> str:
        name = str(v).strip().upper()
        try:
            logger.level(name)
        except ValueError:
            return "INFO"
        return name

    @field_validator("json_output", mode="before")
    @classmethod
    def only_true_enables(cls, v: Any) -> bool:
        return str(v).strip().lower() == "true"


class InterceptHandler(logging.Handler):
    """Forwards standard logging records to Loguru, keeping the original caller."""

    def emit(self, record: logging.LogRecord) -> None:
        level: str | int
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = inspect.currentframe(), 0
        while frame is not None and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _inject_trace_context(record: dict[str, Any]) -> None:
    ctx = trace.get_current_span().get_span_context()
    if not ctx.is_valid:
        return
    trace_id = format(ctx.trace_id, "032x")
    record["extra"].update(trace_id=trace_id, span_id=format(ctx.span_id, "016x"), correlation_id=trace_id)


def _add_file_sink(level: str) -> None:
    # Skipped on read-only filesystems
    try:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        logger.add(str(LOG_FILE), rotation="500 MB", retention="10 days", serialize=True, enqueue=True, level=level)
    except OSError:
        logger.debug(f"File logging disabled: {LOG_FILE} is not writable")


def configure_logging() -> None:
    """
    (Re)configures all sinks from the environment. Previously added sinks are
    removed, so repeated calls never duplicate output.
    """
    settings = LogSettings()

    logger.configure(handlers=[], patcher=_inject_trace_context)
    if settings.json_output:
        logger.add(sys.stdout, level=settings.level, serialize=True)
    else:
        logger.add(sys.stderr, level=settings.level, format=TEXT_FORMAT)
    _add_file_sink(settings.level)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    logging.getLogger().setLevel(logger.level(settings.level).no)


configure_logging()
