from __future__ import annotations


class FinancerError(Exception):
    """Base class for errors raised by the scheduling core."""

    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(FinancerError):
    """Caller supplied bad input; nothing was changed."""

    status_code = 400


class NotFoundError(FinancerError):
    status_code = 404

    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(FinancerError):
    status_code = 409


class StorageError(FinancerError):
    """The persistence layer failed; the session was rolled back."""

    status_code = 500
