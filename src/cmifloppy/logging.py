from __future__ import annotations
import sys
import uuid
from pathlib import Path
from typing import Optional, Any, Dict
from loguru import logger

def setup_console(level: str = "INFO") -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), enqueue=True, backtrace=False, diagnose=False)

def setup_json(path: str, level: str = "DEBUG") -> None:
    logger.add(path, level=level.upper(), serialize=True, enqueue=True)

def configure_logging(log_level: str = "INFO", log_json_path: Optional[str] = None) -> None:
    """Human console output plus an optional JSON lines file."""
    setup_console(log_level)
    if log_json_path:
        setup_json(log_json_path)

def bind_session(image_path: Optional[Path] = None, session_id: Optional[str] = None) -> str:
    sid = session_id or str(uuid.uuid4())
    extra: Dict[str, Any] = {"session_id": sid}
    if image_path is not None:
        extra["image"] = str(image_path)
    # Use configure to apply extra fields to all loggers.
    logger.configure(extra=extra)
    return sid

def log_event(action: str, **fields: Any) -> None:
    # Strip None, truncate large lists/strings
    clean: Dict[str, Any] = {k: v for k, v in fields.items() if v is not None}
    msg = clean.pop("msg", action)
    level = clean.pop("level", "INFO").upper()
    logger.bind(action=action, **clean).log(level, msg)


def truncate(text: str, max_len: int = 4096, max_lines: int = 20) -> str:
    """Truncate a string to a max length and/or max number of lines."""
    if not text:
        return ""
    # Limit lines first
    lines = text.strip().splitlines()
    if len(lines) > max_lines:
        text = "\n".join(["... (truncated)"] + lines[-max_lines:])

    # Then limit length
    if len(text) > max_len:
        text = "... (truncated)\n" + text[-max_len:]
    return text
