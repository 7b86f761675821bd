"""
Contracts shared by every layer.
"""

from .base import (
    ErrorCode, Error, TimelineError, NotFoundError, TransientDirectoryError,
    CorruptRecordError, ValidationError, ConfigurationError, AuditLogEntry,
    sanitize_for_log,
)
from .models import (
    AddressType, RoadScope, PollType, YES_NO_OPTIONS, Poll, Address, Road, Tenant,
)
from .directory import (
    USER_PRINCIPAL, AppUser, SecurityGroup, DirectoryMember, GroupSnapshot,
)

__all__ = [
    "ErrorCode", "Error", "TimelineError", "NotFoundError",
    "TransientDirectoryError", "CorruptRecordError", "ValidationError",
    "ConfigurationError", "AuditLogEntry", "sanitize_for_log",
    "AddressType", "RoadScope", "PollType", "YES_NO_OPTIONS", "Poll",
    "Address", "Road", "Tenant",
    "USER_PRINCIPAL", "AppUser", "SecurityGroup", "DirectoryMember",
    "GroupSnapshot",
]
