"""
Handlers for the concrete job types and the registry that wires them.
"""

from ..dispatcher import HandlerRegistry
from .content import GENERATE_CONTENT, make_generate_content_handler
from .distribution import DISTRIBUTE_CONTENT, make_distribute_content_handler


def build_registry(generator, drafts=None, distributor=None) -> HandlerRegistry:
    """
    Registry with the built-in job types.

    Args:
        generator: Object with generate_post(topic) -> dict
        drafts: Optional DraftStore for generated content
        distributor: Object with publish(content_id, channel) and
            default_channels; DISTRIBUTE_CONTENT is only registered when given
    """
    registry = HandlerRegistry()
    registry.register(GENERATE_CONTENT, make_generate_content_handler(generator, drafts))
    if distributor is not None:
        registry.register(DISTRIBUTE_CONTENT, make_distribute_content_handler(distributor))
    return registry


__all__ = [
    "GENERATE_CONTENT",
    "DISTRIBUTE_CONTENT",
    "build_registry",
    "make_generate_content_handler",
    "make_distribute_content_handler",
]
