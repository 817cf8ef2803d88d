"""
Resuming the guided authoring workflow from a product page.

The resume context is a single-use handoff: every continue action clears and
rewrites it, and the workflow page consumes it (read then delete).
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..models.product import Product, ProductStatus
from .caching import KeyValueStore, get_store

logger = logging.getLogger(__name__)

RESUME_WORKFLOW_KEY = "resumeWorkflow"
# Session handoff keys are short-lived; a stale resume is worse than none
RESUME_CONTEXT_TTL_SECONDS = 60 * 60

FINISHED_STATUSES = (ProductStatus.COMPLETE, ProductStatus.PUBLISHED)


@dataclass(frozen=True)
class ContinueTarget:
    navigate_to: Optional[str]
    resume_context: Optional[Dict[str, Any]] = None

    @property
    def is_noop(self) -> bool:
        return self.navigate_to is None


def resume_step(product: Product) -> Optional[str]:
    """Workflow step an ebook should reopen at, or None for other types."""
    if product.type != "ebook":
        return None
    step = (product.metadata or {}).get("workflow_step")
    if step:
        return str(step)
    if product.status == ProductStatus.IN_PROGRESS:
        return "ebook-writing"
    if product.status == ProductStatus.DRAFT:
        return "brain-dump"
    return None


def continue_target(product: Product, now_ms: int | None = None) -> ContinueTarget:
    """
    Where "continue" leads for ``product``.

    Finished products are a no-op. Ebooks with a resumable step carry a
    resume context and go to their project's workflow when they have one;
    everything else opens in the creator.
    """
    if product.status in FINISHED_STATUSES:
        return ContinueTarget(navigate_to=None)

    step = resume_step(product)
    context = None
    if step:
        context = {
            "productId": product.id,
            "projectId": product.project_id,
            "step": step,
            "type": "ebook",
            "timestamp": now_ms if now_ms is not None else int(time.time() * 1000),
        }
        if product.project_id:
            return ContinueTarget(navigate_to=f"/workflow/{product.project_id}", resume_context=context)

    return ContinueTarget(navigate_to=f"/creator?id={product.id}", resume_context=context)


def edit_url(product_id: str) -> str:
    return f"/creator?id={product_id}&mode=edit"


class SessionHandoff:
    """Session-scoped handoff keys, one namespace per browser session."""

    def __init__(self, session_id: str, store: KeyValueStore | None = None) -> None:
        self.session_id = session_id
        self.store = store if store is not None else get_store()

    def _key(self, name: str) -> str:
        return f"{name}:{self.session_id}"

    def save_resume_context(self, context: Dict[str, Any]) -> None:
        key = self._key(RESUME_WORKFLOW_KEY)
        self.store.delete(key)
        self.store.set(key, context, ttl=RESUME_CONTEXT_TTL_SECONDS)
        logger.info(
            "Stored resume context at step '%s'",
            context.get("step"),
            extra={"step": "continue_workflow"},
        )

    def clear_resume_context(self) -> None:
        self.store.delete(self._key(RESUME_WORKFLOW_KEY))

    def consume_resume_context(self) -> Optional[Dict[str, Any]]:
        key = self._key(RESUME_WORKFLOW_KEY)
        context = self.store.get(key)
        self.store.delete(key)
        return context if isinstance(context, dict) else None


def continue_product(product: Product, handoff: SessionHandoff) -> ContinueTarget:
    """Apply a continue action: rewrite the session handoff and return the target."""
    target = continue_target(product)
    if target.is_noop:
        logger.info(
            "Product %s already %s; ignoring continue action",
            product.id,
            product.status,
            extra={"step": "continue_workflow"},
        )
        return target

    handoff.clear_resume_context()
    if target.resume_context is not None:
        handoff.save_resume_context(target.resume_context)
    return target
