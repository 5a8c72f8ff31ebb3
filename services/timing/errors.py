from __future__ import annotations


class TimingError(Exception):
    kind = "TimingError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(TimingError):
    kind = "NotFound"

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} non trovato: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class PayloadValidationError(TimingError):
    kind = "ValidationError"


class StorageError(TimingError):
    kind = "StorageError"
