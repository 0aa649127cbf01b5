"""
DocChat - Error Types
======================
``InputValidationError``
    Bad caller input (empty message, empty file, unsupported type ...).
    Raised before any external call; the message is shown to the caller
    as-is.
``DocumentProcessingError``
    Ingestion failed after validation passed (unreadable PDF, embedding
    or store failure).
``ChatServiceError``
    The one error type the chat engine raises when a dependency (model,
    vector store) fails.
"""

from __future__ import annotations


class InputValidationError(ValueError):
    """Caller input rejected before any processing."""


class DocumentProcessingError(RuntimeError):
    """A document could not be read, split, embedded or stored."""


class ChatServiceError(RuntimeError):
    """A chat-engine dependency failed; wraps the original exception."""

    def __init__(self, operation: str, cause: BaseException) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} service call failed: {cause}")
