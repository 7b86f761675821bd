"""
Observability Layer

RESPONSIBILITY: Process logging setup and audit collection
ALLOWED INPUTS: AuditLogEntry streams from other layers
OUTPUTS: Configured log handlers, merged audit trail

WHAT THIS LAYER MUST NOT DO:
============================
- Modify system behavior
- Filter or interpret audit entries (only record them)
"""

from __future__ import annotations
from typing import Iterable, List, Optional, Union
import logging

from .contracts.base import AuditLogEntry


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Client libraries that log every request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """
    Install one stream handler on the package logger.

    Safe to call more than once; the handler is not duplicated.
    """
    package_logger = logging.getLogger("timeline")
    package_logger.setLevel(level)
    if not any(getattr(h, "_timeline_handler", False) for h in package_logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._timeline_handler = True
        package_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return package_logger


class AuditCollector:
    """
    Append-only merge of audit entries from every layer.

    Entries are deduplicated by entry_id so repeated collection of the
    same layer log is harmless.
    """

    def __init__(self):
        self._entries: List[AuditLogEntry] = []
        self._seen: set = set()

    def collect(self, entries: Iterable[AuditLogEntry]):
        for entry in entries:
            if entry.entry_id in self._seen:
                continue
            self._seen.add(entry.entry_id)
            self._entries.append(entry)

    def get_entries(self, layer: Optional[str] = None) -> List[AuditLogEntry]:
        if layer is None:
            return list(self._entries)
        return [e for e in self._entries if e.layer == layer]
