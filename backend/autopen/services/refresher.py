from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional, Protocol

from ..core.config import get_settings

logger = logging.getLogger(__name__)


class Refreshable(Protocol):
    entity: str

    async def refresh(self, *, quiet: bool = False) -> Optional[list]: ...


class ErrorBudget:
    """
    Counts recent background failures; once ``threshold`` failures fall
    inside ``window`` seconds, further attempts are skipped until the oldest
    of them ages out.
    """

    def __init__(
        self,
        threshold: int | None = None,
        window: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = get_settings()
        self.threshold = threshold if threshold is not None else settings.REFRESH_ERROR_THRESHOLD
        self.window = window if window is not None else settings.REFRESH_ERROR_WINDOW_SECONDS
        self._clock = clock
        self._errors: Deque[float] = deque()

    def _prune(self) -> None:
        cutoff = self._clock() - self.window
        while self._errors and self._errors[0] <= cutoff:
            self._errors.popleft()

    def record_error(self) -> None:
        self._errors.append(self._clock())

    def record_success(self) -> None:
        self._errors.clear()

    @property
    def recent_errors(self) -> int:
        self._prune()
        return len(self._errors)

    def exhausted(self) -> bool:
        return self.recent_errors >= self.threshold


class BackgroundRefresher:
    """
    Periodic, fire-and-forget refresh of one repository.

    Failures are logged and counted, never surfaced on the repository's
    ``error``. The timer runs on wall-clock time whether anyone is looking
    at the data or not.
    """

    def __init__(
        self,
        repository: Refreshable,
        interval: float | None = None,
        budget: ErrorBudget | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.repository = repository
        self.interval = interval if interval is not None else get_settings().BACKGROUND_REFRESH_SECONDS
        self.budget = budget or ErrorBudget()
        self._sleep = sleep
        self._task: asyncio.Task | None = None

    async def refresh_once(self) -> bool:
        entity = getattr(self.repository, "entity", "unknown")
        if self.budget.exhausted():
            logger.info(
                "Skipping background refresh after %s recent errors",
                self.budget.recent_errors,
                extra={"entity": entity, "step": "background_refresh"},
            )
            return False

        try:
            result = await self.repository.refresh(quiet=True)
        except Exception:
            logger.exception(
                "Background refresh raised",
                extra={"entity": entity, "step": "background_refresh"},
            )
            result = None

        if result is None:
            self.budget.record_error()
            logger.warning(
                "Background refresh failed (non-critical)",
                extra={"entity": entity, "step": "background_refresh"},
            )
            return False

        self.budget.record_success()
        return True

    async def run(self, iterations: int | None = None) -> None:
        """Refresh every ``interval`` seconds; forever unless ``iterations`` is given."""
        done = 0
        while iterations is None or done < iterations:
            await self.refresh_once()
            done += 1
            if iterations is not None and done >= iterations:
                break
            await self._sleep(self.interval)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
