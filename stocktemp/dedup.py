"""
Duplicate suppression for symbol streams.

A message is a duplicate when its body matches, character for character, a
body already stored for the same symbol. Provider ids and timestamps are not
considered.
"""

import logging
from typing import AbstractSet, Iterable

from .feed import Message

logger = logging.getLogger("stocktemp.dedup")


def is_new(candidate: Message, known_bodies: AbstractSet[str]) -> bool:
    """Return True if the candidate's body is not in the known set."""
    return candidate.body not in known_bodies


def filter_new(messages: Iterable[Message], known_bodies: AbstractSet[str]) -> list[Message]:
    """
    Keep the messages whose body is not already stored.

    Every message is checked against the same known set; messages accepted
    earlier in the batch are not added to it, so a body repeated within one
    batch is accepted each time. Feed order is preserved.
    """
    accepted: list[Message] = []
    duplicates = 0

    for message in messages:
        if is_new(message, known_bodies):
            accepted.append(message)
        else:
            duplicates += 1

    logger.debug(f"Dedup: {len(accepted)} new, {duplicates} already stored")
    return accepted
