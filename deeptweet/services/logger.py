"""Centralized logging service using loguru."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from loguru import logger

from deeptweet.config import settings

# Remove default handler
logger.remove()

# Add console handler with color
logger.add(
    sys.stderr,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    level=settings.app_log_level.upper(),
    colorize=True,
)

if settings.log_to_file:
    LOG_DIR = Path(settings.log_dir)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logger.add(
        LOG_DIR / "deeptweet_{time:YYYY-MM-DD}.log",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        level="DEBUG",
        rotation="00:00",  # New file at midnight
        retention="7 days",
        compression="zip",
    )

# Quiet the network stack
for logger_name in (
    "httpx",
    "httpcore",
    "hpack",
    "openai",
    "openai._base_client",
    "sentence_transformers",
    "asyncio",
):
    logging.getLogger(logger_name).setLevel(settings.noisy_log_level.upper())


def log_llm_call(
    model: str,
    caller: str,
    input_tokens: int = 0,
    output_tokens: int = 0,
    duration_ms: int = 0,
    status: str = "success",
    error: Optional[str] = None,
) -> None:
    """Log an LLM API call."""
    call_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "model": model,
        "caller": caller,
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "total_tokens": input_tokens + output_tokens,
        "duration_ms": duration_ms,
        "status": status,
        "error": error,
    }
    if error:
        logger.error(f"LLM_CALL_FAILED: {call_data}")
    else:
        logger.debug(f"LLM_CALL: {call_data}")


def log_research_step(
    topic: str,
    step_type: str,
    status: str,
    data: Optional[dict] = None,
) -> None:
    """Log a state transition of one topic invocation."""
    step_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "topic": topic,
        "step_type": step_type,
        "status": status,
        "data": data,
    }
    logger.info(f"RESEARCH_STEP: {step_data}")


def log_search_call(
    provider: str,
    query: str,
    results: int,
    dropped: int = 0,
    duration_ms: int = 0,
    error: Optional[str] = None,
) -> None:
    """Log one web search request."""
    search_data = {
        "provider": provider,
        "query": query,
        "results": results,
        "dropped": dropped,
        "duration_ms": duration_ms,
        "error": error,
    }
    if error:
        logger.warning(f"SEARCH_FAILED: {search_data}")
    else:
        logger.info(f"SEARCH: {search_data}")


def log_page_fetch(url: str, chunks: int, duration_ms: int, error: Optional[str] = None) -> None:
    """Log the outcome of fetching one page."""
    fetch_data = {"url": url, "chunks": chunks, "duration_ms": duration_ms, "error": error}
    if error or not chunks:
        logger.warning(f"PAGE_FETCH_EMPTY: {fetch_data}")
    else:
        logger.debug(f"PAGE_FETCH: {fetch_data}")
