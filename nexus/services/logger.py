"""Centralized logging service using loguru.

Structured records (generation calls, research steps, storage operations,
generic events) are emitted as a single line tagged with a record kind so
they can be grepped out of the daily log file.
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from nexus.config import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"

# Stdlib loggers of the HTTP stack and provider SDKs
NOISY_LOGGERS = (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "sse_starlette.sse",
    "httpx",
    "httpcore",
    "openai._base_client",
    "anthropic._base_client",
    "asyncio",
)


def configure_logging() -> None:
    """Install the console sink, the optional daily file sink, and quiet library loggers."""
    logger.remove()
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=settings.app_log_level.upper(), colorize=True)

    if settings.log_to_file:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_dir / "nexus_{time:YYYY-MM-DD}.log",
            format=FILE_FORMAT,
            level="DEBUG",
            rotation="00:00",
            retention="7 days",
            compression="zip",
        )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(settings.noisy_log_level.upper())


configure_logging()


def _record(kind: str, payload: dict[str, Any], failed: bool = False) -> None:
    payload = {"timestamp": datetime.now(timezone.utc).isoformat(), **payload}
    if failed:
        logger.error(f"{kind}_FAILED: {payload}")
    else:
        logger.info(f"{kind}: {payload}")


def log_llm_call(
    provider: str,
    model: str,
    caller: str,
    input_tokens: int = 0,
    output_tokens: int = 0,
    duration_ms: int = 0,
    status: str = "success",
    error: Optional[str] = None,
) -> None:
    """Log one generation call with token usage and latency."""
    _record(
        "LLM_CALL",
        {
            "provider": provider,
            "model": model,
            "caller": caller,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
            "duration_ms": duration_ms,
            "status": status,
            "error": error,
        },
        failed=bool(error),
    )


def log_research_step(run_id: str, step_type: str, status: str, data: Optional[dict] = None) -> None:
    _record("RESEARCH_STEP", {"run_id": run_id, "step_type": step_type, "status": status, "data": data})


def log_db_operation(
    operation: str,
    table: str,
    status: str,
    details: Optional[str] = None,
    error: Optional[str] = None,
) -> None:
    _record(
        "DB_OPERATION",
        {"operation": operation, "table": table, "status": status, "details": details, "error": error},
        failed=bool(error),
    )


def log_event(event_type: str, message: str, **kwargs) -> None:
    _record("EVENT", {"event_type": event_type, "message": message, **kwargs})
