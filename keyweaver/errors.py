"""Error definitions for Keyweaver."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


class ErrorCategory(Enum):
    """Categorises skipped work so reports can group it."""

    ARGUMENT = auto()
    FILE_IO = auto()
    FORMAT = auto()
    MISSING_ELEMENT = auto()
    MUTATION = auto()
    NETWORK = auto()
    CONFIGURATION = auto()
    OTHER = auto()


class KeyweaverError(Exception):
    """Base exception for all custom errors."""


class MutationRejectedError(KeyweaverError):
    """Raised by a document provider when it refuses to change an element."""


class UnsupportedFileTypeError(KeyweaverError):
    """Raised when a given file extension is not supported."""


class OverwriteRefusedError(KeyweaverError):
    """Raised when attempting to overwrite an output without consent."""


class ConfigurationError(KeyweaverError):
    """Raised when settings are missing or invalid."""


class TranslationSourceError(KeyweaverError):
    """Raised when a translation source cannot deliver or accept strings."""


class UnknownMessageError(KeyweaverError):
    """Raised when a session receives a message type it does not handle."""


@dataclass
class ErrorRecord:
    """Stores context for a skipped item."""

    category: ErrorCategory
    message: str
    details: Optional[str] = None
