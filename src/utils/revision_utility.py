"""Helpers for synthesizing revision timestamps."""

from datetime import datetime, timedelta

from src.config import logger

# Offset used for synthetic revisions (e.g. description corrections)
REVISION_DELTA = timedelta(milliseconds=50)


def next_valid_delta_rev(current: datetime, next_time: datetime | None = None) -> datetime:
    """Return a timestamp strictly after ``current`` and, if given, strictly before ``next_time``.

    Args:
        current: Time of the revision being corrected
        next_time: Time of the following revision, if any

    Returns:
        The synthetic revision timestamp

    """
    if next_time is None:
        return current + REVISION_DELTA

    gap = next_time - current
    if gap <= timedelta(0):
        logger.warning("Revision at %s is not followed by a later revision (%s)", current, next_time)
        return current + REVISION_DELTA

    if gap > REVISION_DELTA:
        return current + REVISION_DELTA

    half = gap / 2
    if half < timedelta(microseconds=1):
        logger.warning("No room for a synthetic revision between %s and %s", current, next_time)
        return current + timedelta(microseconds=1)
    return current + half
