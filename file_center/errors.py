"""
errors.py

Exception hierarchy for the file center.

Every failure coming out of the backing store is re-raised as
StoreUnavailable; callers decide on their own retry policy.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


class FileCenterError(Exception):
    """Base class for everything raised by this package."""


class StoreUnavailable(FileCenterError):
    """MongoDB could not be reached or the operation failed on the server."""


class NotFound(FileCenterError):
    """
    No retrievable record: unknown id, expired or already consumed temporary
    file. The cases are deliberately indistinguishable.
    """


class InvalidToken(FileCenterError):
    """The id token is malformed, forged or was issued under another key."""


class PayloadTooLarge(FileCenterError):
    def __init__(self, size: int, limit: int):
        super().__init__(f"payload of at least {size} bytes exceeds the limit of {limit} bytes")
        self.size = size
        self.limit = limit


class Inconsistent(FileCenterError):
    """Stored chunks do not add up to the recorded file. Never repaired silently."""


class FileSizeThresholdError(FileCenterError):
    pass


class VersionError(FileCenterError):
    pass


class DatabaseTooNew(VersionError):
    def __init__(self, supported_latest: int, current: int):
        super().__init__(
            f"the current database version is {current}, "
            f"but this library only supports up to {supported_latest}"
        )
        self.supported_latest = supported_latest
        self.current = current


class DuplicateContent(FileCenterError):
    """A concurrent put stored the same perennial content first."""


@asynccontextmanager
async def store_errors(action: str) -> AsyncIterator[None]:
    try:
        yield
    except PyMongoError as e:
        logger.error("store failure during %s: %s", action, e)
        raise StoreUnavailable(f"{action}: {e}") from e
