"""
Draft persistence for generated content.
"""

import re
import uuid
from typing import Iterable, Optional

from sqlalchemy.engine import Engine

from .database import ContentDraft, get_session_factory
from .logger import get_logger

logger = get_logger()

EXCERPT_LENGTH = 160


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug or "post"


def make_excerpt(content: str, fallback: Optional[str] = None) -> str:
    """First paragraph of the HTML content, trimmed to EXCERPT_LENGTH."""
    match = re.search(r"<p[^>]*>([^<]+)</p>", content or "")
    text = match.group(1) if match else (fallback or "")
    if len(text) > EXCERPT_LENGTH:
        return text[:EXCERPT_LENGTH - 3] + "..."
    return text


class DraftStore:
    def __init__(self, engine: Engine, default_author_id: Optional[str] = None):
        self._session_factory = get_session_factory(engine)
        self.default_author_id = default_author_id

    def save_draft(
        self,
        title: str,
        content: str,
        tags: Iterable[str] = (),
        seo_title: Optional[str] = None,
        seo_description: Optional[str] = None,
        summary: Optional[str] = None,
        author_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Persist a draft and return its id.

        Returns None without writing anything when no author is known.
        """
        author_id = author_id or self.default_author_id
        if not author_id:
            logger.warning("No author to assign draft to, skipping save", title=title)
            return None

        slug = f"{slugify(seo_title or title)}-{uuid.uuid4().hex[:8]}"
        draft = ContentDraft(
            title=title,
            slug=slug,
            content=content,
            excerpt=make_excerpt(content, summary),
            tags=[str(t) for t in tags],
            seo_title=seo_title,
            seo_description=seo_description,
            author_id=author_id,
        )
        with self._session_factory.begin() as session:
            session.add(draft)
            session.flush()
            draft_id = draft.id

        logger.info(f"Draft created: {slug}", draft_id=draft_id)
        return draft_id

    def get(self, draft_id: str) -> Optional[ContentDraft]:
        with self._session_factory() as session:
            return session.get(ContentDraft, draft_id)
