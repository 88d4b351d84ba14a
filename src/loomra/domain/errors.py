# src/loomra/domain/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class LoomraError(Exception):
    """
    Base domain error.

    The API layer maps these to HTTP responses consistently; `message` is
    meant to be shown to the user verbatim.
    """
    message: str
    code: str = "LOOMRA_ERROR"
    details: Optional[dict[str, Any]] = None

    def __str__(self) -> str:
        return self.message


@dataclass
class ValidationError(LoomraError):
    code: str = "VALIDATION_ERROR"


@dataclass
class NotFoundError(LoomraError):
    code: str = "NOT_FOUND"


@dataclass
class ConstraintViolationError(LoomraError):
    code: str = "CONSTRAINT_VIOLATION"


@dataclass
class TransactionError(LoomraError):
    """A step of a multi-statement operation failed; details["step"] names it."""
    code: str = "TRANSACTION_FAILED"


@dataclass
class MalformedInputError(LoomraError):
    code: str = "MALFORMED_INPUT"


@dataclass
class ResourceUnavailableError(LoomraError):
    code: str = "RESOURCE_UNAVAILABLE"
