"""
Transport primitives.

RestClient performs point requests; SSEChannel carries the push stream.
"""

from .rest import RestClient
from .sse import SSEChannel, SSEMessage, SSEParser, iter_sse_messages

__all__ = [
    "RestClient",
    "SSEChannel",
    "SSEMessage",
    "SSEParser",
    "iter_sse_messages",
]
