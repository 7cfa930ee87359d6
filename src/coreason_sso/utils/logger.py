# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sso

import hashlib
import hmac
import logging
import os
import sys
from pathlib import Path
from typing import Any

from loguru import logger
from opentelemetry import trace
from pydantic import SecretStr

__all__ = ["logger", "configure_logging", "anonymize"]

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """
    Routes standard logging records (httpx, authlib) into Loguru.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno  # type: ignore[assignment]

        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename in (logging.__file__, __file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def trace_id_injector(record: dict[str, Any]) -> None:
    """
    Loguru patcher adding the active OpenTelemetry trace and span ids to `extra`,
    plus a `correlation_id` equal to the trace id.
    """
    ctx = trace.get_current_span().get_span_context()
    if ctx.is_valid:
        record["extra"]["trace_id"] = format(ctx.trace_id, "032x")
        record["extra"]["span_id"] = format(ctx.span_id, "016x")
        # Searchable alias of the trace id
        record["extra"]["correlation_id"] = record["extra"]["trace_id"]


def anonymize(value: str, salt: SecretStr) -> str:
    """
    HMAC-SHA256 digest of an external identifier, safe to log.

    Args:
        value: The identifier to hide.
        salt: The configured PII salt.

    Returns:
        str: The first 16 hex characters of the digest.
    """
    digest = hmac.new(salt.get_secret_value().encode("utf-8"), value.encode("utf-8"), hashlib.sha256)
    return digest.hexdigest()[:16]


def configure_logging() -> None:
    """
    Configures the logger from `COREASON_SSO_LOG_LEVEL` and `COREASON_SSO_LOG_JSON`.
    Safe to call again after the environment changes.
    """
    log_level = os.getenv("COREASON_SSO_LOG_LEVEL", "INFO").upper()
    log_json = os.getenv("COREASON_SSO_LOG_JSON", "false").lower() == "true"

    try:
        logger.level(log_level)
    except ValueError:
        log_level = "INFO"

    logger.configure(handlers=[], patcher=trace_id_injector)

    if log_json:
        logger.add(sys.stdout, level=log_level, serialize=True)
    else:
        logger.add(sys.stderr, level=log_level, format=LOG_FORMAT)

    # File sink is best effort; read-only containers skip it
    try:
        Path("logs").mkdir(parents=True, exist_ok=True)
        logger.add(
            "logs/sso.log",
            rotation="100 MB",
            retention="10 days",
            serialize=True,
            enqueue=True,
            level=log_level,
        )
    except (PermissionError, OSError):
        pass

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    numeric_level = logging.getLevelName(log_level)
    logging.getLogger().setLevel(numeric_level if isinstance(numeric_level, int) else logging.INFO)


configure_logging()
