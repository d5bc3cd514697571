"""Error taxonomy shared by every layer.

Each error carries a ``kind`` that the calling layer can switch on and a
human-readable message. Adapter-specific exceptions are translated into one of
these before they leave the retrieval engine.
"""
from typing import Any, Dict


class RentalScoutError(Exception):
    kind: str = "InternalError"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload = {"kind": self.kind, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InputValidationError(RentalScoutError):
    kind = "ValidationError"


class InvalidToolArgs(InputValidationError):
    kind = "InvalidToolArgs"


class NotFound(RentalScoutError):
    kind = "NotFound"


class Unauthorized(RentalScoutError):
    kind = "Unauthorized"


class EmbeddingUnavailable(RentalScoutError):
    kind = "EmbeddingUnavailable"


class AssistantUnavailable(RentalScoutError):
    kind = "AssistantUnavailable"


class SearchUnavailable(RentalScoutError):
    kind = "SearchUnavailable"


class ToolLoopExceeded(RentalScoutError):
    kind = "ToolLoopExceeded"


class PersistenceFailure(RentalScoutError):
    kind = "PersistenceFailure"


class StoreUnavailable(RentalScoutError):
    """The listing store did not answer within the retry budget."""
    kind = "StoreUnavailable"
