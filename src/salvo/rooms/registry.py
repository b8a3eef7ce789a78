"""In-memory index of live rooms and of which player sits in which room."""

from __future__ import annotations

import logging
import re
import secrets
import string
from collections.abc import Callable, Iterator

from src.salvo.core.errors import InternalInvariantBroken, RoomNotFound, SessionNotFound
from src.salvo.rooms.models import Room, RoomMode, Session

logger = logging.getLogger(__name__)

ROOM_CODE_LENGTH = 6
ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
ROOM_CODE_RE = re.compile(rf"^[A-Z0-9]{{{ROOM_CODE_LENGTH}}}$")
MAX_CODE_DRAWS = 32


def generate_room_code() -> str:
    """Room codes gate who can join, so they come from ``secrets``."""
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def normalize_room_code(raw: str) -> str | None:
    code = (raw or "").strip().upper()
    return code if ROOM_CODE_RE.match(code) else None


class RoomRegistry:
    """Owns ``code -> Room`` and ``player_id -> code``."""

    def __init__(self, code_factory: Callable[[], str] = generate_room_code) -> None:
        self._code_factory = code_factory
        self._rooms: dict[str, Room] = {}
        self._player_rooms: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._rooms)

    def __iter__(self) -> Iterator[Room]:
        return iter(list(self._rooms.values()))

    def __contains__(self, code: object) -> bool:
        return code in self._rooms

    def _draw_code(self) -> str:
        for _ in range(MAX_CODE_DRAWS):
            code = self._code_factory()
            if code not in self._rooms:
                return code
            logger.info("Room code collision on %s, drawing again", code)
        raise InternalInvariantBroken("Could not draw a free room code")

    def create(
        self,
        session: Session,
        now: float,
        mode: RoomMode = RoomMode.MULTIPLAYER,
    ) -> Room:
        room = Room(code=self._draw_code(), created_at=now, last_activity_at=now, mode=mode)
        self._rooms[room.code] = room
        room.sessions.append(session)
        if not session.is_ai:
            self.bind(session.player_id, room.code)
        return room

    def get(self, code: str) -> Room:
        room = self._rooms.get(code)
        if room is None:
            raise RoomNotFound(code)
        return room

    def find_room_for_player(self, player_id: str) -> Room | None:
        code = self._player_rooms.get(player_id)
        return self._rooms.get(code) if code else None

    def room_for_player(self, player_id: str) -> Room:
        room = self.find_room_for_player(player_id)
        if room is None:
            raise SessionNotFound(player_id)
        return room

    def bind(self, player_id: str, code: str) -> None:
        self._player_rooms[player_id] = code

    def unbind(self, player_id: str) -> None:
        self._player_rooms.pop(player_id, None)

    def remove(self, code: str) -> Room | None:
        room = self._rooms.pop(code, None)
        if room is None:
            return None
        for session in room.sessions:
            if self._player_rooms.get(session.player_id) == code:
                del self._player_rooms[session.player_id]
        return room
