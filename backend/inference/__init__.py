"""
Model gateway package.

Usage:
    from inference import OpenAICompatGateway, ModelReply
"""

from inference.base import (
    NOT_CONFIGURED,
    NOT_CONFIGURED_MESSAGE,
    TIMEOUT,
    UPSTREAM,
    ModelGateway,
    ModelReply,
)
from inference.openai_compat import OpenAICompatGateway

__all__ = [
    "NOT_CONFIGURED",
    "NOT_CONFIGURED_MESSAGE",
    "TIMEOUT",
    "UPSTREAM",
    "ModelGateway",
    "ModelReply",
    "OpenAICompatGateway",
]
