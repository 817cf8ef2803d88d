from __future__ import annotations

from ...models.creator_content import CreatorContent
from .base import BaseRepository


class CreatorContentRepository(BaseRepository[CreatorContent]):
    """Raw ``creator_contents`` rows, without product normalization."""

    entity = "creator_contents"
    table = "creator_contents"
    model = CreatorContent
    offline_fallback = True
