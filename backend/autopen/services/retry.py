from __future__ import annotations

import logging
from typing import Any, List, Optional

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from .errors import NetworkError

logger = logging.getLogger(__name__)

RETRY_ATTEMPTS = 3


async def retry_refresh(
    repository: Any,
    attempts: int = RETRY_ATTEMPTS,
    wait: wait_base | None = None,
) -> Optional[List[Any]]:
    """
    The page "retry" action: reload ``repository``, retrying only while the
    failure is a network error. Other failures return after one attempt.

    Returns whatever the last ``refresh()`` returned; the repository's
    ``error`` describes the final outcome.
    """
    result: Optional[List[Any]] = None

    async def _attempt() -> None:
        nonlocal result
        result = await repository.refresh()
        if isinstance(repository.last_exception, NetworkError):
            raise repository.last_exception

    retrying = AsyncRetrying(
        wait=wait or wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(attempts),
        retry=retry_if_exception_type(NetworkError),
        reraise=False,
    )
    try:
        async for attempt in retrying:
            with attempt:
                await _attempt()
    except RetryError:
        logger.warning(
            "Retry gave up after %s attempts",
            attempts,
            extra={"entity": getattr(repository, "entity", None), "step": "retry"},
        )
        # offline fallback may still have served a cached list
        return result
    return result
