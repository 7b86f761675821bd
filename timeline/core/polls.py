"""
Poll Operations

Read and write the Poll carried in a Polling address's content.

GUARANTEES:
===========
1. A YesNo poll is always written with options exactly ["Yes", "No"]
2. A write that would store an empty question or empty options is rejected
3. A rejected write leaves the address content untouched
"""

from __future__ import annotations
from dataclasses import replace
from typing import Optional
import logging

from ..contracts.base import CorruptRecordError, ErrorCode, ValidationError
from ..contracts.codec import poll_from_json, poll_to_json
from ..contracts.models import Address, AddressType, Poll, PollType, YES_NO_OPTIONS


logger = logging.getLogger(__name__)


def is_poll(address: Optional[Address]) -> bool:
    if address is None:
        return False
    return address.address_type is AddressType.POLLING


def is_poll_with_content(address: Optional[Address]) -> bool:
    return is_poll(address) and bool(address.content)


def try_get_poll(address: Optional[Address]) -> Optional[Poll]:
    """Deserialize the poll, or None if absent or unreadable."""
    if not is_poll_with_content(address):
        return None
    try:
        return poll_from_json(address.content)
    except CorruptRecordError:
        logger.warning("Failed to deserialize the poll content of %r", address.title)
        return None


def get_poll(address: Optional[Address]) -> Poll:
    if address is None:
        raise ValidationError("Address cannot be None.", ErrorCode.INVALID_ARGUMENT)
    poll = try_get_poll(address)
    if poll is None:
        raise ValidationError("The address does not contain a valid poll.")
    return poll


def _require_address(address: Optional[Address]) -> Address:
    if address is None:
        raise ValidationError("Address cannot be None.", ErrorCode.INVALID_ARGUMENT)
    return address


def _require_polling(address: Address) -> None:
    if address.address_type is not AddressType.POLLING:
        raise ValidationError("The address type is not a poll.", ErrorCode.WRONG_ADDRESS_TYPE)


def _normalized(poll: Poll) -> Poll:
    if poll.poll_type is PollType.YES_NO:
        return replace(poll, options=list(YES_NO_OPTIONS))
    return poll


def set_poll_type(address: Optional[Address], poll: Optional[Poll]) -> None:
    """Store the poll, forcing Yes/No options for YesNo polls. None clears."""
    address = _require_address(address)
    if poll is None:
        address.content = ""
        return
    _require_polling(address)
    address.content = poll_to_json(_normalized(poll))


def set_poll_question(address: Optional[Address], poll: Optional[Poll]) -> None:
    address = _require_address(address)
    _require_polling(address)
    if poll is None:
        return
    if not poll.question or not poll.question.strip():
        raise ValidationError("Poll question cannot be empty.", question=poll.question or "")
    address.content = poll_to_json(poll)


def set_poll_options(address: Optional[Address], poll: Optional[Poll]) -> None:
    address = _require_address(address)
    _require_polling(address)
    if poll is None:
        return
    if not poll.options:
        raise ValidationError("Poll options cannot be empty.")
    address.content = poll_to_json(poll)


def set_poll(address: Optional[Address], poll: Optional[Poll]) -> None:
    """
    Validate and store a complete poll. None clears the content.

    All checks run before the content is touched.
    """
    address = _require_address(address)
    if poll is None:
        address.content = ""
        return
    _require_polling(address)
    if not poll.question or not poll.question.strip():
        raise ValidationError("Poll question cannot be empty.", question=poll.question or "")
    poll = _normalized(poll)
    if not poll.options:
        raise ValidationError("Poll options cannot be empty.")
    address.content = poll_to_json(poll)


def validate_poll_content(address: Optional[Address]) -> None:
    """
    Check incoming content of a Polling address before it is persisted.

    Unreadable content or a poll that set_poll would reject raises
    ValidationError. Accepted content is rewritten in normalized form.
    """
    if not is_poll_with_content(address):
        return
    try:
        poll = poll_from_json(address.content)
    except CorruptRecordError as e:
        raise ValidationError(
            "The address does not contain a valid poll.", title=address.title
        ) from e
    set_poll(address, poll)
