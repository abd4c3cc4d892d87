from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Dict, Optional

_LOGGER_NAME = "vault_hwi"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def get_logger() -> logging.Logger:
    return logging.getLogger(_LOGGER_NAME)


def configure_logging(level: str | None = None) -> None:
    """
    Attach a plain stderr handler to the package logger.

    Applications that configure logging themselves should not call this;
    events propagate to the root logger either way.
    """
    logger = get_logger()
    name = (level or os.getenv("HWI_LOG_LEVEL") or "info").strip().lower()
    logger.setLevel(_LEVELS.get(name, logging.INFO))
    if not any(getattr(h, "_vault_hwi", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler._vault_hwi = True  # type: ignore[attr-defined]
        logger.addHandler(handler)


def build_log_context(**fields: Any) -> Dict[str, Any]:
    ctx: Dict[str, Any] = {"service": (os.getenv("HWI_SERVICE_NAME") or "vault-hwi").strip()}
    ctx.update({k: v for k, v in fields.items() if v is not None})
    return ctx


def log_event(
    event: str,
    *,
    ctx: Optional[Dict[str, Any]] = None,
    data: Optional[Dict[str, Any]] = None,
    level: str = "info",
) -> None:
    """
    Emit one JSON object per event.

    Keep `data` small and free of secrets; PSBTs never go here.
    """
    logger = get_logger()
    lvl = _LEVELS.get(level, logging.INFO)
    if not logger.isEnabledFor(lvl):
        return
    record: Dict[str, Any] = {"ts_ms": int(time.time() * 1000), "event": event}
    if ctx:
        record.update(ctx)
    if data:
        record["data"] = data
    logger.log(lvl, json.dumps(record, sort_keys=True, default=str))
