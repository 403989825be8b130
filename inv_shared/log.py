"""
Logging for the preview pipeline: one-line records with a level emoji and the
id of the run that emitted them.
"""
import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Final

LOGGER_NAMESPACE: Final[str] = "assetinv"
PREFIX: Final[str] = "🖼️ AssetInventory"

SUCCESS_LEVEL: Final[int] = 25  # between INFO and WARNING
logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")

LEVEL_EMOJI: Final[dict[int, str]] = {
    logging.DEBUG: "🔍",
    logging.INFO: "ℹ️",
    SUCCESS_LEVEL: "✅",
    logging.WARNING: "⚠️",
    logging.ERROR: "❌",
    logging.CRITICAL: "🔥",
}

# Set by the preview service for the duration of a run.
run_id_var: ContextVar[str] = ContextVar("run_id", default="")


class RunIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = run_id_var.get()
        return True


class EmojiFormatter(logging.Formatter):
    """`🖼️ AssetInventory [✅] previews.scheduler [3fa2c1d0]: message`"""

    def format(self, record: logging.LogRecord) -> str:
        emoji = LEVEL_EMOJI.get(record.levelno, "🖼️")
        run_id = getattr(record, "run_id", "")
        run_part = f" [{run_id}]" if run_id else ""
        line = f"{PREFIX} [{emoji}] {record.name.removeprefix(LOGGER_NAMESPACE + '.')}{run_part}: {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _short_name(name: str) -> str:
    if name == "__main__":
        return "main"
    parts = name.split(".")
    if "features" in parts:
        return ".".join(parts[parts.index("features") + 1:])
    if parts[0] in ("inv_backend", "inv_shared") and len(parts) > 1:
        return ".".join(parts[1:])
    return name


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Return the `assetinv.*` logger for a module.

    The first call for a name attaches the emoji console handler and the
    run-id filter; the logger does not propagate so lines are not repeated
    by the root handler.

    Args:
        name: Module name (usually __name__)
        level: Optional level; INFO when the logger is new
    """
    logger = logging.getLogger(f"{LOGGER_NAMESPACE}.{_short_name(name)}")
    if not any(isinstance(f, RunIdFilter) for f in logger.filters):
        logger.addFilter(RunIdFilter())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(EmojiFormatter())
        logger.addHandler(handler)
        logger.propagate = False
        if level is None:
            level = logging.INFO
    if level is not None:
        logger.setLevel(level)
    return logger


def log_success(logger: logging.Logger, message: str) -> None:
    """Log at the SUCCESS level (shown with ✅)."""
    logger.log(SUCCESS_LEVEL, message)


def log_structured(logger: logging.Logger, level: int, event: str, **context: Any) -> None:
    """Emit one JSON line: the event name, a UTC timestamp and its context fields."""
    payload = {
        "event": event,
        "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
        "context": context,
    }
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))
