"""Error types raised by the race data layer.

Route handlers translate these into HTTP responses using ``http_status``;
anything below the blueprint only ever raises them.
"""

from typing import Any, Dict, Optional


class RaceDataError(Exception):
    """Base class for season, race and CSV handling failures."""

    http_status = 500

    def __init__(self, message: str, *, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.context:
            payload["context"] = self.context
        return payload


class NotFoundError(RaceDataError):
    """Season, race, result row or file does not exist."""

    http_status = 404


class ConflictError(RaceDataError):
    """Duplicate season/race name or non-unique team names."""

    http_status = 409


class MalformedError(RaceDataError):
    """CSV header mismatch or a numeric field that does not parse."""

    http_status = 400


class IOFailureError(RaceDataError):
    """Reading or writing a file on disk failed."""

    http_status = 500


__all__ = [
    "RaceDataError",
    "NotFoundError",
    "ConflictError",
    "MalformedError",
    "IOFailureError",
]
