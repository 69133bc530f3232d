"""Exception types raised across the service."""
from __future__ import annotations


class ComplianceQAError(Exception):
    """Base class for service errors."""


class StorageError(ComplianceQAError):
    """A document could not be written to any configured backend."""


class DocumentValidationError(ComplianceQAError):
    """An uploaded document failed validation."""


class GenerationError(ComplianceQAError):
    """The chat model could not produce an answer."""
