"""Error taxonomy shared by the service layer.

Services raise these directly; they are ``HTTPException`` subclasses so
FastAPI turns them into responses without extra handlers.
"""

from __future__ import annotations

from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Not found") -> None:
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ConflictError(HTTPException):
    def __init__(self, detail: str = "Conflict") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class InvalidStateError(HTTPException):
    """The request is well formed but the entity cannot make that transition."""

    def __init__(self, detail: str = "Invalid state") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)
