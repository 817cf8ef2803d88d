from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ...models.brain_dump import BrainDumpStatus, SavedBrainDump
from .. import llm
from ..errors import BackendError, DataAccessError
from .base import BaseRepository, utc_now_iso

logger = logging.getLogger(__name__)

BRAIN_DUMPS_TABLE = "saved_brain_dumps"
# workflow-owned dumps live in their own table, linked to a project
PROJECT_BRAIN_DUMPS_TABLE = "brain_dumps"

MIN_ANALYSIS_WORDS = 50
SUMMARY_CHARS = 150
GENERIC_TITLES = {None, "", "Brain Dump", "Untitled Brain Dump"}

# External analysis engine: (content, files, links) -> opaque analysis blob
Analyzer = Callable[[str, List[Dict[str, Any]], List[Dict[str, Any]]], Awaitable[Dict[str, Any]]]


class InsufficientContentError(ValueError):
    pass


def count_words(content: str | None) -> int:
    return len(content.split()) if content and content.strip() else 0


def summarize(content: str | None) -> str:
    if not content:
        return ""
    if len(content) > SUMMARY_CHARS:
        return content[:SUMMARY_CHARS] + "..."
    return content


def build_metadata(
    content: str,
    files: Optional[List[Dict[str, Any]]] = None,
    links: Optional[List[Dict[str, Any]]] = None,
    analyzed_content: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {
        "wordCount": count_words(content),
        "fileCount": len(files or []),
        "linkCount": len(links or []),
        "summary": summarize(content),
        "files": files or [],
        "links": links or [],
    }
    if analyzed_content:
        metadata["analyzedContent"] = analyzed_content
        if analyzed_content.get("structuredDocument"):
            metadata["structuredDocument"] = analyzed_content["structuredDocument"]
    return metadata


class BrainDumpRepository(BaseRepository[SavedBrainDump]):
    entity = "brain_dumps"
    table = BRAIN_DUMPS_TABLE
    model = SavedBrainDump
    order_column = "created_at"

    async def _title_for(self, title: str | None, content: str) -> str:
        if title not in GENERIC_TITLES:
            return title
        try:
            return await asyncio.to_thread(llm.generate_title, content)
        except Exception:
            logger.exception(
                "Error generating title; using dated fallback",
                extra={"entity": self.entity, "step": "generate_title"},
            )
            return llm.fallback_title()

    async def save_from_workflow(
        self,
        title: str | None,
        content: str,
        analyzed_content: Optional[Dict[str, Any]] = None,
        files: Optional[List[Dict[str, Any]]] = None,
        links: Optional[List[Dict[str, Any]]] = None,
    ) -> Optional[SavedBrainDump]:
        """Persist a dump captured in the authoring workflow."""
        final_title = await self._title_for(title, content)
        status = BrainDumpStatus.ANALYZED if analyzed_content else BrainDumpStatus.DRAFT
        return await self.create(
            {
                "title": final_title,
                "content": content,
                "status": status,
                "metadata": build_metadata(content, files, links, analyzed_content),
            }
        )

    async def analyze(
        self,
        brain_dump_id: str | None,
        content: str,
        analyzer: Analyzer,
        files: Optional[List[Dict[str, Any]]] = None,
        links: Optional[List[Dict[str, Any]]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Run the external analyzer over a dump and, when ``brain_dump_id`` is
        given, store the result and mark the dump analyzed.

        Raises InsufficientContentError for fewer than 50 words with no
        files or links. An empty analysis sets ``error`` and returns None.
        """
        files = files or []
        links = links or []
        if count_words(content) < MIN_ANALYSIS_WORDS and not files and not links:
            raise InsufficientContentError(
                "Not enough content to analyze. Please provide at least 50 words or add files/links."
            )

        self._clear_error()
        result = await analyzer(content, files, links)
        if not result:
            self._fail(BackendError("Analysis failed to produce results"), "analyze")
            return None

        if brain_dump_id:
            await self.update(
                brain_dump_id,
                {
                    "status": BrainDumpStatus.ANALYZED,
                    "metadata": build_metadata(content, files, links, result),
                },
            )
        return result

    async def get_or_create_for_project(self, project_id: str) -> Optional[SavedBrainDump]:
        """Most recent workflow dump for a project, created empty when missing."""
        self._clear_error()
        try:
            self._require_uuid(project_id)
            user = await self.current_user()
            rows = await self.client.select(
                PROJECT_BRAIN_DUMPS_TABLE,
                filters={"project_id": project_id, "user_id": user.id},
                order="created_at",
                limit=1,
            )
            if rows:
                logger.info(
                    "Found existing brain dump %s for project %s",
                    rows[0].get("id"),
                    project_id,
                    extra={"entity": self.entity, "step": "get_or_create_for_project"},
                )
                return self.parse(rows[0])

            created = await self.client.insert(
                PROJECT_BRAIN_DUMPS_TABLE,
                {
                    "title": "New Brain Dump (Workflow)",
                    "content": "",
                    "project_id": project_id,
                    "user_id": user.id,
                    "metadata": {
                        "createdAt": utc_now_iso(),
                        "status": "new",
                        "wordCount": 0,
                        "fileCount": 0,
                        "linkCount": 0,
                    },
                },
            )
            if not created:
                raise BackendError("Failed to get or create brain dump for project")
            return self.parse(created[0])
        except DataAccessError as exc:
            self._fail(exc, "get_or_create_for_project")
            return None
