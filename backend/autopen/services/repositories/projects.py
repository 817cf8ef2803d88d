from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel

from ...models.project import Project
from ..connectivity import ONLINE
from ..errors import NetworkError
from .base import OFFLINE_DATA_MESSAGE, BaseRepository

logger = logging.getLogger(__name__)


class ProjectRepository(BaseRepository[Project]):
    """
    Legacy ``projects`` table.

    Falls back to the last cached list when the backend is unreachable and
    refuses mutations while offline.
    """

    entity = "projects"
    table = "projects"
    model = Project
    offline_fallback = True
    offline_action_messages = {
        "create": "You are currently offline. Creating new projects is not available.",
        "update": "You are currently offline. Project updates are not available.",
        "delete": "You are currently offline. Project deletion is not available.",
    }

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._unsubscribe = self.client.connectivity.subscribe(self._on_connectivity)

    @property
    def is_offline(self) -> bool:
        return self.client.connectivity.offline

    def _on_connectivity(self, event: str) -> None:
        if event == ONLINE and self.error and self.error == OFFLINE_DATA_MESSAGE:
            self.error = None

    def close(self) -> None:
        self._unsubscribe()

    async def _refuse_offline(self, action: str) -> bool:
        """Refuse only when a fresh reachability check also fails."""
        if not self.is_offline:
            return False
        if await self.client.ping():
            return False
        message = self.offline_action_messages[action]
        logger.warning(message, extra={"entity": self.entity, "step": action})
        self.error = message
        self.last_exception = NetworkError(message)
        return True

    async def create(self, data: BaseModel | Dict[str, Any]) -> Optional[Project]:
        if await self._refuse_offline("create"):
            return None
        return await super().create(data)

    async def update(self, record_id: str, data: BaseModel | Dict[str, Any]) -> Optional[Project]:
        if await self._refuse_offline("update"):
            return None
        return await super().update(record_id, data)

    async def delete(self, record_id: str) -> bool:
        if await self._refuse_offline("delete"):
            return False
        return await super().delete(record_id)
