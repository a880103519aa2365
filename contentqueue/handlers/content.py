"""GENERATE_CONTENT: ask the AI for a post and save it as a draft."""

from typing import Any, Dict

from ..logger import get_logger

logger = get_logger()

GENERATE_CONTENT = "GENERATE_CONTENT"


def make_generate_content_handler(generator, drafts=None):
    """
    Build the handler for GENERATE_CONTENT jobs.

    Payload: {"topic": str, "authorId": optional str}
    Result: {"title", "content", "tags", "seoTitle", "seoDescription"} plus
    "draftId" when a draft was saved.
    """
    def handle(payload: Dict[str, Any]) -> Dict[str, Any]:
        topic = payload.get("topic")
        if not isinstance(topic, str) or not topic.strip():
            raise ValueError("GENERATE_CONTENT requires a non-empty 'topic'")

        generated = generator.generate_post(topic.strip())
        if not generated or not generated.get("title") or not generated.get("content"):
            raise ValueError("AI generation returned invalid content")

        tags = generated.get("tags")
        tags = [str(t) for t in tags] if isinstance(tags, (list, tuple)) else []
        result = {
            "title": generated["title"],
            "content": generated["content"],
            "tags": tags,
            "seoTitle": generated.get("seoTitle") or generated["title"],
            "seoDescription": generated.get("seoDescription") or generated.get("summary") or "",
        }

        if drafts is not None:
            draft_id = drafts.save_draft(
                title=result["title"],
                content=result["content"],
                tags=tags,
                seo_title=result["seoTitle"],
                seo_description=result["seoDescription"],
                summary=generated.get("summary"),
                author_id=payload.get("authorId"),
            )
            if draft_id:
                result["draftId"] = draft_id

        return result

    return handle
