"""DISTRIBUTE_CONTENT: push a content item to social channels."""

from typing import Any, Dict

from ..distribution import distribute

DISTRIBUTE_CONTENT = "DISTRIBUTE_CONTENT"


def make_distribute_content_handler(distributor):
    """
    Build the handler for DISTRIBUTE_CONTENT jobs.

    Payload: {"contentId": str, "channels": optional list of str}
    Result: {"success": True, "channels": [...]}. A failing channel is
    logged and does not fail the job.
    """
    def handle(payload: Dict[str, Any]) -> Dict[str, Any]:
        content_id = payload.get("contentId")
        if not isinstance(content_id, str) or not content_id:
            raise ValueError("DISTRIBUTE_CONTENT requires a 'contentId'")

        channels = payload.get("channels") or list(getattr(distributor, "default_channels", []))
        if not isinstance(channels, list) or not all(isinstance(c, str) for c in channels):
            raise ValueError("'channels' must be a list of channel names")

        attempted = distribute(distributor.publish, content_id, channels)
        return {"success": True, "channels": attempted}

    return handle
