# road_cam/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class ErrorPayload:
    """Structured error payload handed to status/telemetry consumers."""

    code: str
    message: str
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": False, "error_code": self.code, "error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class RoadCamError(Exception):
    """Base exception for path-following failures."""

    code: str = "ROAD_CAM_ERROR"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> dict[str, Any]:
        return ErrorPayload(self.code, self.message, self.details or None).to_dict()


class NoDataError(RoadCamError):
    """A collaborator returned nothing usable (empty query, missing source/layer)."""

    code = "NO_DATA"


class QueryContextError(RoadCamError):
    """The helper query context could not be created or positioned."""

    code = "QUERY_CONTEXT_UNAVAILABLE"


class ChainStateError(RoadCamError):
    code = "ILLEGAL_CHAIN_TRANSITION"


class CameraBusy(RoadCamError):
    code = "CAMERA_BUSY"


class FollowCancelled(Exception):
    """
    Cooperative cancellation signal.
    Deliberately not a RoadCamError: handlers catching domain failures must never
    swallow a cancel.
    """

    def __init__(self, reason: str = "cancelled"):
        super().__init__(reason)
        self.reason = reason


__all__ = [
    "ErrorPayload",
    "RoadCamError",
    "NoDataError",
    "QueryContextError",
    "ChainStateError",
    "CameraBusy",
    "FollowCancelled",
]
