"""Error taxonomy shared by the engine, the coordinator and the transport."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_CODE = "INVALID_CODE"
    ALREADY_FIRED = "ALREADY_FIRED"
    WRONG_PHASE = "WRONG_PHASE"
    NOT_YOUR_TURN = "NOT_YOUR_TURN"
    ALREADY_IN_ROOM = "ALREADY_IN_ROOM"
    ALREADY_READY = "ALREADY_READY"
    ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    ROOM_FULL = "ROOM_FULL"


class GameError(Exception):
    """User-facing rejection; the request is refused and nothing changes."""

    default_code: str | Enum = ErrorCode.INVALID_INPUT

    def __init__(self, message: str, code: str | Enum | None = None) -> None:
        super().__init__(message)
        self.message = message
        code = code or self.default_code
        self.code: str = code.value if isinstance(code, Enum) else code


class ValidationFailed(GameError):
    """Bad placement or shot input."""

    default_code = ErrorCode.INVALID_INPUT


class ProtocolViolation(GameError):
    """Wrong phase or wrong turn. A racing client can trigger this legitimately."""

    default_code = ErrorCode.WRONG_PHASE


class RoomNotFound(GameError):
    default_code = ErrorCode.ROOM_NOT_FOUND

    def __init__(self, code: str) -> None:
        super().__init__(f"Room {code!r} does not exist")
        self.room_code = code


class SessionNotFound(GameError):
    default_code = ErrorCode.SESSION_NOT_FOUND

    def __init__(self, player_id: str) -> None:
        super().__init__("Unknown session")
        self.player_id = player_id


class RoomFull(GameError):
    default_code = ErrorCode.ROOM_FULL

    def __init__(self, code: str) -> None:
        super().__init__(f"Room {code!r} is full")
        self.room_code = code


class InternalInvariantBroken(RuntimeError):
    """Board/fleet state is corrupt. Never handled as a user error."""
