"""Utility modules for pubsub-lite."""

from .attributes import merge_attributes, validate_attributes

__all__ = [
    "merge_attributes",
    "validate_attributes",
]
