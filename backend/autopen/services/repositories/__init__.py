from __future__ import annotations

import logging
from typing import Dict

from ..backend_client import BackendClient
from ..caching import EntityCache, KeyValueStore
from .base import BaseRepository
from .brain_dumps import BrainDumpRepository
from .creator_contents import CreatorContentRepository
from .products import ProductRepository
from .projects import ProjectRepository

logger = logging.getLogger(__name__)


class RepositoryRegistry:
    """
    Registry of every data-access repository for one signed-in session.

    - Instantiates each repository once per session, sharing one client.
    - Looked up by entity name (``"products"``, ``"brain_dumps"``, ...).
    """

    def __init__(self, client: BackendClient, store: KeyValueStore | None = None) -> None:
        self.client = client
        self.products = ProductRepository(client, EntityCache(ProductRepository.entity, store))
        self.brain_dumps = BrainDumpRepository(client, EntityCache(BrainDumpRepository.entity, store))
        self.projects = ProjectRepository(client, EntityCache(ProjectRepository.entity, store))
        self.creator_contents = CreatorContentRepository(
            client, EntityCache(CreatorContentRepository.entity, store)
        )
        self._repositories: Dict[str, BaseRepository] = {
            repo.entity: repo
            for repo in (self.products, self.brain_dumps, self.projects, self.creator_contents)
        }

    def get(self, entity: str) -> BaseRepository | None:
        repo = self._repositories.get(entity)
        if repo is None:
            logger.warning("No repository registered for '%s'", entity, extra={"entity": entity})
        return repo

    async def drain(self) -> None:
        for repo in self._repositories.values():
            await repo.drain_background()

    async def aclose(self) -> None:
        await self.drain()
        self.projects.close()
        await self.client.aclose()


def get_repositories(client: BackendClient, store: KeyValueStore | None = None) -> RepositoryRegistry:
    return RepositoryRegistry(client, store)


__all__ = [
    "BrainDumpRepository",
    "CreatorContentRepository",
    "ProductRepository",
    "ProjectRepository",
    "RepositoryRegistry",
    "get_repositories",
]
