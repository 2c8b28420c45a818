# Overview: Domain error taxonomy shared by services and routes.

"""
Every error a core operation raises is a LoanError subclass carrying the HTTP
status the API layer answers with. Anything that is not a LoanError is an
internal failure (500) and gets logged by the route that caught it.
"""

from __future__ import annotations


class LoanError(Exception):
    """Base class for business-level failures."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(LoanError, ValueError):
    """400-level input problem."""

    status_code = 400


class NotFoundError(LoanError, LookupError):
    """404: the referenced request, line, debt or material does not exist."""

    status_code = 404


class MaterialNotFoundError(NotFoundError):
    def __init__(self, ref):
        super().__init__(f"Material {ref} not found")
        self.ref = ref


class InsufficientStockError(LoanError):
    """400: a reservation or adjustment would take a material below zero."""

    status_code = 400

    def __init__(self, ref, requested: int, available: int | None = None):
        msg = f"Insufficient stock for {ref}: requested {requested}"
        if available is not None:
            msg += f", available {available}"
        super().__init__(msg)
        self.ref = ref
        self.requested = requested
        self.available = available

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "material": self.ref.to_dict(),
            "requested": self.requested,
            "available": self.available,
        }


class ForbiddenError(LoanError):
    """403: role or ownership does not allow the operation."""

    status_code = 403


class ConflictError(LoanError):
    """409: the request is not in a status that allows the transition."""

    status_code = 409
