"""Logging setup for the relay process and the per-stream JSONL log."""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

from .config import RelayConfig

__all__ = ["configure_logging", "resolve_level", "JsonlLogger"]

PROCESS_LOG_NAME = "gemini_relay.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
# httpx logs every request line at INFO, query string (and key) included.
QUIET_LOGGERS = ("httpx", "httpcore")
_RELAY_HANDLER = "_gemini_relay_handler"


def resolve_level(name: Optional[str]) -> int:
    level = logging.getLevelName(str(name or "").upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(
    cfg: RelayConfig,
    *,
    level: Optional[str] = None,
    include_console: bool = True,
) -> Optional[Path]:
    """Route root logging per the ``[logging]`` section of ``cfg``.

    The process log goes to ``<cfg.log_dir>/gemini_relay.log`` (an empty
    ``log_dir`` keeps it on stderr only). ``level`` overrides
    ``cfg.log_level``. Handlers from an earlier call are swapped out, not
    stacked.
    """

    root_level = resolve_level(level or cfg.log_level)
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)
    for handler in list(root_logger.handlers):
        if getattr(handler, _RELAY_HANDLER, False):
            root_logger.removeHandler(handler)
            handler.close()

    handlers: list[logging.Handler] = []
    log_path = None
    if cfg.log_dir:
        log_dir = Path(cfg.log_dir).expanduser()
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / PROCESS_LOG_NAME
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    if include_console:
        handlers.append(logging.StreamHandler())

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _RELAY_HANDLER, True)
        root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        noisy = logging.getLogger(name)
        noisy.setLevel(max(root_level, logging.WARNING))

    return log_path


class JsonlLogger:
    """Append one JSON object per finished stream; an empty path disables it."""

    def __init__(self, path: str, max_bytes: int = 25_000_000):
        self.path = path
        self.max_bytes = max_bytes
        log_dir = os.path.dirname(path) if path else ""
        if log_dir:
            try:
                os.makedirs(log_dir, exist_ok=True)
            except OSError:
                logging.getLogger(__name__).warning(
                    "Cannot create stream log directory %s", log_dir
                )

    @property
    def enabled(self) -> bool:
        return bool(self.path)

    def _rotate_if_needed(self):
        try:
            if (
                os.path.exists(self.path)
                and os.path.getsize(self.path) > self.max_bytes
            ):
                ts = time.strftime("%Y%m%d-%H%M%S")
                os.rename(self.path, f"{self.path}.{ts}")
        except OSError:
            pass

    def log(self, record: Dict[str, Any]):
        if not self.enabled:
            return
        self._rotate_if_needed()
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False) + "\n")
        except OSError:
            pass
