from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from datetime import date
from functools import lru_cache
from threading import BoundedSemaphore

from openai import OpenAI

from ..core.config import get_settings

logger = logging.getLogger(__name__)

_llm_semaphore: BoundedSemaphore | None = None

UNTITLED_BRAIN_DUMP = "Untitled Brain Dump"
MAX_TITLE_SOURCE_CHARS = 5000
MAX_TITLE_CHARS = 100

TITLE_PROMPT = """You are helping with a Brain Dump organization tool that transforms unstructured information into organized content.

Generate a concise, descriptive title for the following content. The title should:
1. Be 3-7 words long
2. Clearly indicate the main subject or theme
3. Be specific enough to distinguish this content from others
4. Use engaging but professional language
5. Not use generic phrases like "Notes on" or "Thoughts about"

Content to title:

{content}

Title:"""


def _get_semaphore() -> BoundedSemaphore:
    """
    Lazy-initialised global semaphore for limiting concurrent LLM calls.
    """
    global _llm_semaphore
    if _llm_semaphore is None:
        settings = get_settings()
        _llm_semaphore = BoundedSemaphore(settings.LLM_MAX_CONCURRENCY)
    return _llm_semaphore


@contextmanager
def limit_llm_concurrency():
    """
    Bound concurrent calls to the LLM provider.

    Use inside the thread that actually performs the HTTP request.
    """
    sem = _get_semaphore()
    sem.acquire()
    try:
        yield
    finally:
        sem.release()


@lru_cache(maxsize=1)
def get_llm_client() -> OpenAI:
    """
    Shared OpenAI-compatible client.

    - If OPENROUTER_API_KEY is set, route requests via OpenRouter.
    - Otherwise, fall back to the standard OpenAI API using OPENAI_API_KEY.
    """
    settings = get_settings()

    if settings.OPENROUTER_API_KEY:
        return OpenAI(
            base_url="https://openrouter.ai/api/v1",
            api_key=settings.OPENROUTER_API_KEY.strip(),
            default_headers={
                "HTTP-Referer": settings.FRONTEND_ORIGIN or "http://localhost:3000",
                "X-Title": "AutoPen",
            },
        )

    if settings.OPENAI_API_KEY:
        return OpenAI(api_key=settings.OPENAI_API_KEY.strip())

    raise RuntimeError(
        "No LLM API key configured. Set either OPENAI_API_KEY or OPENROUTER_API_KEY."
    )


def fallback_title(today: date | None = None) -> str:
    today = today or date.today()
    return f"Brain Dump {today.month}/{today.day}/{today.year}"


def clean_title(raw: str) -> str:
    title = raw.strip().splitlines()[0] if raw.strip() else ""
    title = re.sub(r"^(title:\s*)", "", title, flags=re.IGNORECASE)
    title = title.strip().strip("\"'").strip()
    if len(title) > MAX_TITLE_CHARS:
        title = title[: MAX_TITLE_CHARS - 3].rstrip() + "..."
    return title


def generate_title(content: str) -> str:
    """
    Short descriptive title for a brain dump.

    Blocking; callers in async code should run it in a worker thread.
    Raises whatever the provider raises; callers decide the fallback.
    """
    if not content or not content.strip():
        return UNTITLED_BRAIN_DUMP

    text = content
    if len(text) > MAX_TITLE_SOURCE_CHARS:
        text = text[:MAX_TITLE_SOURCE_CHARS] + "..."

    settings = get_settings()
    client = get_llm_client()
    with limit_llm_concurrency():
        response = client.chat.completions.create(
            model=settings.LLM_MODEL,
            messages=[{"role": "user", "content": TITLE_PROMPT.format(content=text)}],
            max_tokens=30,
            temperature=0.7,
        )

    title = clean_title(response.choices[0].message.content or "")
    return title or UNTITLED_BRAIN_DUMP
