"""
Base Contracts and Shared Types

These are the foundational types used across all layers.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- Errors are data first (Error), exceptions second (TimelineError carries one)
- Every failure category of the system is enumerated in ErrorCode
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Tuple
from enum import Enum, auto
import hashlib
import itertools


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for deterministic error handling.
    """
    # Storage errors
    TENANT_NOT_FOUND = auto()
    ROAD_NOT_FOUND = auto()
    CORRUPT_RECORD = auto()

    # Directory errors
    DIRECTORY_UNAVAILABLE = auto()
    DIRECTORY_REJECTED = auto()

    # Validation errors
    INVALID_POLL = auto()
    WRONG_ADDRESS_TYPE = auto()
    INVALID_ARGUMENT = auto()

    # Configuration errors
    INVALID_GROUP_NAME = auto()
    INVALID_CONFIGURATION = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with full context.
    Errors are data, not exceptions - they can be stored and queried.
    """
    code: ErrorCode
    message: str
    timestamp: datetime
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @staticmethod
    def create(code: ErrorCode, message: str, **context: str) -> Error:
        return Error(
            code=code,
            message=message,
            timestamp=datetime.now(timezone.utc),
            context=tuple((k, str(v)) for k, v in context.items())
        )

    def with_context(self, key: str, value: str) -> Error:
        """Return new Error with additional context (immutable)."""
        return Error(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            context=self.context + ((key, value),)
        )


# =============================================================================
# EXCEPTION TAXONOMY
# =============================================================================

class TimelineError(Exception):
    """Base exception. Always carries an Error record."""

    default_code = ErrorCode.INVALID_ARGUMENT

    def __init__(self, message: str, code: Optional[ErrorCode] = None, **context: str):
        super().__init__(message)
        self.error = Error.create(code or self.default_code, message, **context)

    @property
    def code(self) -> ErrorCode:
        return self.error.code


class NotFoundError(TimelineError):
    """Requested tenant or road does not exist."""
    default_code = ErrorCode.TENANT_NOT_FOUND


class TransientDirectoryError(TimelineError):
    """A directory gateway call failed (network, throttling, rejection)."""
    default_code = ErrorCode.DIRECTORY_UNAVAILABLE


class CorruptRecordError(TimelineError):
    """A manifest could not be read or parsed."""
    default_code = ErrorCode.CORRUPT_RECORD


class ValidationError(TimelineError):
    """Invalid poll content or wrong address type for a poll operation."""
    default_code = ErrorCode.INVALID_POLL


class ConfigurationError(TimelineError):
    """Authorization or provisioning misconfiguration."""
    default_code = ErrorCode.INVALID_CONFIGURATION


# =============================================================================
# AUDIT
# =============================================================================

_AUDIT_SEQUENCE = itertools.count()


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable record of a mutation performed by a layer."""
    entry_id: str
    timestamp: datetime
    layer: str
    action: str
    entity_id: Optional[str] = None
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @staticmethod
    def create(
        layer: str,
        action: str,
        entity_id: Optional[str] = None,
        metadata: tuple = ()
    ) -> AuditLogEntry:
        now = datetime.now(timezone.utc)
        sequence = next(_AUDIT_SEQUENCE)
        digest = hashlib.sha256(
            f"{layer}_{action}|{entity_id}|{now.timestamp()}|{sequence}".encode()
        ).hexdigest()[:16]
        return AuditLogEntry(
            entry_id=f"audit_{digest}",
            timestamp=now,
            layer=layer,
            action=action,
            entity_id=entity_id,
            metadata=tuple(metadata)
        )


# =============================================================================
# LOG HYGIENE
# =============================================================================

def sanitize_for_log(value: Optional[str], limit: int = 128) -> str:
    """Strip control characters and truncate a caller-supplied string."""
    if not value:
        return ""
    cleaned = "".join(ch for ch in value if ord(ch) >= 0x20)[:limit]
    if len(cleaned) < len(value):
        cleaned += "..."
    return cleaned
