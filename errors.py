from typing import Optional


class ValidationError(ValueError):
    """Malformed or out-of-range input, with one entry per offending field."""

    def __init__(
        self, message: str, fields: Optional[list[dict[str, str]]] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.fields = fields or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, [{"field": field, "message": message}])

    def as_detail(self) -> dict[str, object]:
        return {"error": self.message, "fields": self.fields}


class NotFoundError(ValueError):
    pass


class ConflictError(ValueError):
    pass


class StoreUnavailableError(RuntimeError):
    pass
