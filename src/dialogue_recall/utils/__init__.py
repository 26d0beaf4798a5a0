"""Utility functions for dialogue_recall."""

from dialogue_recall.utils.ids import generate_id, utc_now
from dialogue_recall.utils.json_response import clamp_confidence, extract_json_object
from dialogue_recall.utils.lazy_import import lazy_import

__all__ = [
    "clamp_confidence",
    "extract_json_object",
    "generate_id",
    "lazy_import",
    "utc_now",
]
