# modelreview/core/control.py
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


class ScanCancelled(RuntimeError):
    def __init__(self, sheet: str):
        super().__init__(f"Scan of '{sheet}' was cancelled")
        self.sheet = sheet


class CancelToken:
    """Set from anywhere; scanners and the map generator check it between blocks."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def check(self, sheet: str) -> None:
        if self._cancelled:
            raise ScanCancelled(sheet)


def notify(progress: Optional[ProgressCallback], message: str) -> None:
    """Progress is informational: a failing callback is logged, never raised."""
    if progress is None:
        return
    try:
        progress(message)
    except Exception:
        logger.warning("progress callback failed on %r", message, exc_info=True)


def is_empty(value: Any) -> bool:
    return value is None or value == ""


def is_formula(value: Any) -> bool:
    return isinstance(value, str) and (value.startswith("=") or value.startswith("{="))
