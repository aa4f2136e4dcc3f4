import logging
from typing import Awaitable, Callable, TypeVar

from storefront.domain.exceptions import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_on_conflict(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 2,
    conflicts: tuple = (ConflictError,)
) -> T:
    """Re-run a whole unit of work when a concurrent writer won a race"""
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except conflicts as e:
            if attempt == attempts:
                logger.error(f"Conflict not resolved after {attempts} attempts: {e}")
                raise
            logger.warning(f"Conflict on attempt {attempt}/{attempts}, retrying: {e}")
