# Overview: Domain error taxonomy shared by services, routes and the CLI.

"""
ProPartner error kinds

Every business-rule rejection is a ProPartnerError subclass carrying:
- kind: stable identifier returned to API clients
- status_code: HTTP status the routes respond with

A rejected operation never leaves partial writes: services raise inside a
transactional unit that is rolled back before the error reaches the caller.

TransientFailure is the only retryable kind (lock/version conflicts, lost
connections). Callers may resubmit the same input.
"""

from __future__ import annotations


class ProPartnerError(Exception):
    """Base class for all caller-recoverable failures."""

    kind = "Error"
    status_code = 400
    retryable = False

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    default_message = "Operation rejected"

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class ValidationError(ProPartnerError, ValueError):
    """400-level input problem."""

    kind = "ValidationError"
    default_message = "Invalid input"


class ConflictError(ProPartnerError, ValueError):
    """409-level business rule conflict (e.g., quote already converted)."""

    kind = "Conflict"
    status_code = 409
    default_message = "Conflicting state"


class NotFound(ProPartnerError, LookupError):
    kind = "NotFound"
    status_code = 404
    default_message = "Not found"


class InvalidAmount(ProPartnerError, ValueError):
    kind = "InvalidAmount"
    default_message = "Amount must be greater than zero"


class ExceedsBalance(ProPartnerError, ValueError):
    kind = "ExceedsBalance"
    default_message = "Amount exceeds the remaining balance"


class IllegalTransition(ProPartnerError, ValueError):
    kind = "IllegalTransition"
    status_code = 409
    default_message = "Status transition not allowed"


class NotAnInvoice(ProPartnerError, ValueError):
    kind = "NotAnInvoice"
    default_message = "Only invoices can be paid"


class AlreadyCancelled(ProPartnerError, ValueError):
    kind = "AlreadyCancelled"
    status_code = 409
    default_message = "Document is cancelled"


class InsufficientStock(ProPartnerError, ValueError):
    kind = "InsufficientStock"
    status_code = 409
    default_message = "Insufficient stock"


class InsufficientPoints(ProPartnerError, ValueError):
    kind = "InsufficientPoints"
    status_code = 409
    default_message = "Insufficient points balance"


class TransientFailure(ProPartnerError):
    """Infrastructure failure (conflict, lost connection); safe to retry."""

    kind = "TransientFailure"
    status_code = 503
    retryable = True
    default_message = "Temporary failure, please retry"
