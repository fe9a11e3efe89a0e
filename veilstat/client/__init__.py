"""
Client companion - batches events and posts them to the collection endpoint.
"""

from .batcher import EventBatcher

__all__ = ["EventBatcher"]
