"""
Core domain operations that act on contracts without I/O.
"""

from .polls import (
    is_poll, is_poll_with_content, try_get_poll, get_poll,
    set_poll_type, set_poll_question, set_poll_options, set_poll, validate_poll_content,
)

__all__ = [
    "is_poll", "is_poll_with_content", "try_get_poll", "get_poll",
    "set_poll_type", "set_poll_question", "set_poll_options", "set_poll",
    "validate_poll_content",
]
