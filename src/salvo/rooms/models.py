from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum

from src.salvo.ai.opponent import AiOpponent
from src.salvo.core.errors import InternalInvariantBroken, SessionNotFound
from src.salvo.game.board import Board, Fleet, create_board

MAX_SESSIONS = 2


class Phase(str, Enum):
    WAITING = "waiting"
    PLACEMENT = "placement"
    BATTLE = "battle"
    FINISHED = "finished"


PHASE_ORDER: dict[Phase, int] = {phase: i for i, phase in enumerate(Phase)}


class GameOverReason(str, Enum):
    ALL_SUNK = "AllSunk"
    FORFEIT = "Forfeit"


class RoomMode(str, Enum):
    MULTIPLAYER = "multiplayer"
    SINGLE_PLAYER = "single_player"


@dataclass
class Session:
    """One participant of a room and the board it owns."""

    player_id: str
    board: Board = field(default_factory=create_board)
    fleet: Fleet = ()
    ready: bool = False
    connected: bool = True
    is_ai: bool = False


@dataclass(eq=False)
class Room:
    code: str
    created_at: float
    last_activity_at: float
    mode: RoomMode = RoomMode.MULTIPLAYER
    sessions: list[Session] = field(default_factory=list)
    phase: Phase = Phase.WAITING
    turn_holder: str | None = None
    winner: str | None = None
    finish_reason: GameOverReason | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    forfeit_timers: dict[str, asyncio.Task[None]] = field(default_factory=dict, repr=False)
    ai: AiOpponent | None = field(default=None, repr=False)
    ai_task: asyncio.Task[None] | None = field(default=None, repr=False)
    closed: bool = False

    @property
    def is_full(self) -> bool:
        return len(self.sessions) >= MAX_SESSIONS

    def session(self, player_id: str) -> Session:
        for s in self.sessions:
            if s.player_id == player_id:
                return s
        raise SessionNotFound(player_id)

    def has_player(self, player_id: str) -> bool:
        return any(s.player_id == player_id for s in self.sessions)

    def opponent_of(self, player_id: str) -> Session | None:
        return next((s for s in self.sessions if s.player_id != player_id), None)

    def connected_humans(self) -> list[Session]:
        return [s for s in self.sessions if s.connected and not s.is_ai]

    def touch(self, now: float) -> None:
        self.last_activity_at = now

    def advance(self, phase: Phase) -> None:
        """Move the phase forward; phases are never re-entered."""
        if PHASE_ORDER[phase] <= PHASE_ORDER[self.phase]:
            raise InternalInvariantBroken(
                f"Room {self.code}: illegal phase change {self.phase.value} -> {phase.value}",
            )
        self.phase = phase
