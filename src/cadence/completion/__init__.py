"""Completion Service collaborator and lenient JSON parsing."""

from .client import (
    CompletionError,
    CompletionService,
    CompletionTimeout,
    DEFAULT_MODEL,
    GroqCompletionClient,
)
from .jsonish import extract_json_object, iter_json_objects

__all__ = [
    "DEFAULT_MODEL",
    "CompletionError",
    "CompletionService",
    "CompletionTimeout",
    "GroqCompletionClient",
    "extract_json_object",
    "iter_json_objects",
]
