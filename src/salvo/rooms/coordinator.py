"""
Room/session coordinator.

Owns every live room. Each public operation validates phase and identity,
runs under the room's lock, delegates rules to the pure engine and emits
events through the notifier. Rooms never share state, so operations on
different rooms interleave freely.
"""

from __future__ import annotations

import asyncio
import logging
import random
import secrets
import time
from collections.abc import Awaitable, Callable, Sequence

from src.salvo.ai.opponent import AiOpponent
from src.salvo.core import config
from src.salvo.core.errors import (
    ErrorCode,
    InternalInvariantBroken,
    ProtocolViolation,
    RoomFull,
    RoomNotFound,
    SessionNotFound,
    ValidationFailed,
)
from src.salvo.game.board import BOARD_SIZE
from src.salvo.game.engine import ShipPlacement, ShotOutcome, all_sunk, build_fleet, resolve_shot
from src.salvo.rooms.events import (
    GameOver,
    MirroredShot,
    OutboundEvent,
    PeerDisconnected,
    PeerJoined,
    PeerLeft,
    PeerReady,
    PeerReconnected,
    PhaseBattle,
    PhasePlacement,
    PlacementAccepted,
    RoomClosed,
    RoomCreated,
    RoomJoined,
    ShotOutcomeEvent,
    StateSnapshot,
    TurnChanged,
    relative_to,
)
from src.salvo.rooms.models import GameOverReason, Phase, Room, RoomMode, Session
from src.salvo.rooms.registry import RoomRegistry, normalize_room_code

logger = logging.getLogger(__name__)

Notifier = Callable[[str, OutboundEvent], Awaitable[None]]


def _log_task_failure(task: asyncio.Task[None]) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error("Background task %s failed", task.get_name(), exc_info=task.exception())


def _is_coordinate(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < BOARD_SIZE


class GameCoordinator:
    """Authoritative owner of all room state."""

    def __init__(
        self,
        notifier: Notifier,
        *,
        grace_period: float = config.RECONNECT_GRACE_SECONDS,
        idle_timeout: float = config.ROOM_IDLE_TIMEOUT_SECONDS,
        ai_think_delay: tuple[float, float] = (
            config.AI_THINK_MIN_SECONDS,
            config.AI_THINK_MAX_SECONDS,
        ),
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
        registry: RoomRegistry | None = None,
    ) -> None:
        self._notify = notifier
        self.grace_period = grace_period
        self.idle_timeout = idle_timeout
        self.ai_think_delay = ai_think_delay
        self._clock = clock
        self._rng = rng or secrets.SystemRandom()
        self.registry = registry or RoomRegistry()

    @property
    def active_room_count(self) -> int:
        return len(self.registry)

    def is_seated(self, player_id: str) -> bool:
        return self.registry.find_room_for_player(player_id) is not None

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def create_room(self, player_id: str) -> str:
        self._ensure_unseated(player_id)
        room = self.registry.create(Session(player_id=player_id), now=self._clock())
        logger.info("Room %s created", room.code)
        async with room.lock:
            await self._send(room.sessions[0], RoomCreated(code=room.code, mode=room.mode.value))
        return room.code

    async def create_ai_room(self, player_id: str) -> str:
        """Single-player room: the caller against the computer."""
        self._ensure_unseated(player_id)
        ai = AiOpponent(think_delay=self.ai_think_delay)
        layout = ai.place_fleet()
        room = self.registry.create(
            Session(player_id=player_id),
            now=self._clock(),
            mode=RoomMode.SINGLE_PLAYER,
        )
        room.sessions.append(
            Session(
                player_id=f"ai-{secrets.token_hex(8)}",
                board=layout.board,
                fleet=layout.fleet,
                ready=True,
                is_ai=True,
            ),
        )
        room.ai = ai
        room.advance(Phase.PLACEMENT)
        logger.info("AI room %s created", room.code)
        async with room.lock:
            human = room.sessions[0]
            await self._send(human, RoomCreated(code=room.code, mode=room.mode.value))
            await self._send(human, PhasePlacement())
        return room.code

    async def join_room(self, player_id: str, raw_code: str) -> str:
        code = self._parse_code(raw_code)
        self._ensure_unseated(player_id)
        room = self.registry.get(code)
        async with room.lock:
            self._ensure_live(room)
            self._ensure_unseated(player_id)
            if room.mode is RoomMode.SINGLE_PLAYER or room.is_full or room.phase is not Phase.WAITING:
                raise RoomFull(code)

            joiner = Session(player_id=player_id)
            room.sessions.append(joiner)
            self.registry.bind(player_id, code)
            room.advance(Phase.PLACEMENT)
            room.touch(self._clock())
            logger.info("Room %s is full, placement started", code)

            await self._send(joiner, RoomJoined(code=code))
            for s in room.sessions:
                await self._send(s, PeerJoined(count=len(room.sessions)))
            for s in room.sessions:
                await self._send(s, PhasePlacement())
        return code

    async def submit_placement(self, player_id: str, placements: Sequence[ShipPlacement]) -> None:
        room = self.registry.room_for_player(player_id)
        async with room.lock:
            self._ensure_live(room)
            session = room.session(player_id)
            if room.phase is not Phase.PLACEMENT:
                raise ProtocolViolation("Ships can only be placed during placement", ErrorCode.WRONG_PHASE)
            if session.ready:
                raise ProtocolViolation("Fleet already submitted", ErrorCode.ALREADY_READY)

            result = build_fleet(placements)
            if not result.success:
                raise ValidationFailed(result.error, result.code)

            layout = result.unwrap()
            session.board = layout.board
            session.fleet = layout.fleet
            session.ready = True
            room.touch(self._clock())

            await self._send(session, PlacementAccepted())
            opponent = room.opponent_of(player_id)
            if opponent is not None:
                await self._send(opponent, PeerReady())
            if room.is_full and all(s.ready for s in room.sessions):
                await self._start_battle(room)

    async def fire(self, player_id: str, row: int, col: int) -> ShotOutcome:
        if not (_is_coordinate(row) and _is_coordinate(col)):
            raise ValidationFailed(f"Coordinates must be whole numbers from 0 to {BOARD_SIZE - 1}")
        room = self.registry.room_for_player(player_id)
        async with room.lock:
            self._ensure_live(room)
            return await self._apply_shot(room, room.session(player_id), row, col)

    async def disconnect(self, player_id: str) -> None:
        room = self.registry.find_room_for_player(player_id)
        if room is None:
            return
        async with room.lock:
            if room.closed or not room.has_player(player_id):
                return
            session = room.session(player_id)
            session.connected = False
            opponent = room.opponent_of(player_id)

            if room.phase is Phase.FINISHED:
                await self._remove_session(room, session)
                return
            if opponent is None:
                logger.info("Room %s abandoned before anyone joined", room.code)
                await self._teardown(room)
                return
            if not opponent.is_ai and not opponent.connected:
                # Nobody left to inherit a forfeit win.
                logger.info("Every player left room %s", room.code)
                await self._teardown(room)
                return

            await self._send(opponent, PeerDisconnected())
            self._start_forfeit_timer(room, player_id)
            logger.info(
                "Player left room %s, holding seat for %.1fs",
                room.code,
                self.grace_period,
            )

    async def reconnect(self, player_id: str, raw_code: str) -> StateSnapshot:
        code = self._parse_code(raw_code)
        room = self.registry.get(code)
        async with room.lock:
            self._ensure_live(room)
            session = room.session(player_id)
            if session.is_ai:
                raise SessionNotFound(player_id)

            timer = room.forfeit_timers.pop(player_id, None)
            if timer is not None:
                timer.cancel()
            was_connected = session.connected
            session.connected = True
            room.touch(self._clock())

            opponent = room.opponent_of(player_id)
            if not was_connected and opponent is not None:
                await self._send(opponent, PeerReconnected())
            logger.info("Player reconnected to room %s", code)
            # Delivered by the caller, which owns the new connection.
            return self._snapshot(room, session)

    async def leave_room(self, player_id: str) -> None:
        """Permanent departure; an opponent still in the game wins by forfeit."""
        room = self.registry.room_for_player(player_id)
        async with room.lock:
            self._ensure_live(room)
            session = room.session(player_id)
            opponent = room.opponent_of(player_id)
            if room.phase in (Phase.PLACEMENT, Phase.BATTLE) and opponent is not None:
                await self._finish(room, opponent.player_id, GameOverReason.FORFEIT)
            await self._send(session, RoomClosed(reason="left"))
            await self._remove_session(room, session)

    async def sweep_idle(self) -> list[str]:
        """Tear down every room that has been idle for the idle window."""
        closed: list[str] = []
        for room in self.registry:
            if self._clock() - room.last_activity_at < self.idle_timeout:
                continue
            async with room.lock:
                if room.closed or self._clock() - room.last_activity_at < self.idle_timeout:
                    continue
                logger.info("Room %s idle, closing", room.code)
                await self._teardown(room, reason="idle")
                closed.append(room.code)
        return closed

    async def run_idle_sweeper(self, interval: float = config.IDLE_SWEEP_INTERVAL_SECONDS) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.sweep_idle()

    async def shutdown(self) -> None:
        for room in self.registry:
            async with room.lock:
                await self._teardown(room, reason="shutdown")

    # ------------------------------------------------------------------
    # Internals (room lock held)
    # ------------------------------------------------------------------

    async def _send(self, session: Session, event: OutboundEvent) -> None:
        if session.is_ai or not session.connected:
            return
        await self._notify(session.player_id, event)

    def _parse_code(self, raw_code: str) -> str:
        code = normalize_room_code(raw_code)
        if code is None:
            raise ValidationFailed("Room codes are 6 letters or digits", ErrorCode.INVALID_CODE)
        return code

    def _ensure_unseated(self, player_id: str) -> None:
        if self.is_seated(player_id):
            raise ProtocolViolation("Already in a room", ErrorCode.ALREADY_IN_ROOM)

    def _ensure_live(self, room: Room) -> None:
        # A waiter may acquire the lock after the room was torn down.
        if room.closed:
            raise RoomNotFound(room.code)

    async def _start_battle(self, room: Room) -> None:
        room.advance(Phase.BATTLE)
        room.turn_holder = self._rng.choice([s.player_id for s in room.sessions])
        logger.info("Room %s battle started", room.code)
        for s in room.sessions:
            await self._send(
                s,
                PhaseBattle(
                    turn_holder=relative_to(room.turn_holder, s.player_id),
                    is_your_turn=room.turn_holder == s.player_id,
                ),
            )
        self._schedule_ai_turn(room)

    async def _apply_shot(self, room: Room, shooter: Session, row: int, col: int) -> ShotOutcome:
        if room.phase is not Phase.BATTLE:
            raise ProtocolViolation("The battle has not started", ErrorCode.WRONG_PHASE)
        if room.turn_holder != shooter.player_id:
            raise ProtocolViolation("It is not your turn", ErrorCode.NOT_YOUR_TURN)
        target = room.opponent_of(shooter.player_id)
        if target is None:
            raise InternalInvariantBroken(f"Room {room.code} is in battle with one session")

        resolution = resolve_shot(target.board, target.fleet, row, col)
        outcome = resolution.outcome
        if outcome.already_fired:
            raise ValidationFailed("That cell has already been fired at", ErrorCode.ALREADY_FIRED)

        target.board = resolution.board
        target.fleet = resolution.fleet
        room.touch(self._clock())

        await self._send(shooter, ShotOutcomeEvent.from_outcome(outcome))
        await self._send(target, MirroredShot.from_outcome(outcome))

        if all_sunk(target.fleet):
            await self._finish(room, shooter.player_id, GameOverReason.ALL_SUNK)
            return outcome

        room.turn_holder = target.player_id
        for s in room.sessions:
            await self._send(
                s,
                TurnChanged(
                    turn_holder=relative_to(room.turn_holder, s.player_id),
                    is_your_turn=room.turn_holder == s.player_id,
                ),
            )
        self._schedule_ai_turn(room)
        return outcome

    async def _finish(self, room: Room, winner: str, reason: GameOverReason) -> None:
        room.advance(Phase.FINISHED)
        room.winner = winner
        room.finish_reason = reason
        room.turn_holder = None
        self._cancel_background(room)
        logger.info("Room %s finished: %s", room.code, reason.value)
        for s in room.sessions:
            await self._send(
                s,
                GameOver(winner=relative_to(winner, s.player_id), reason=reason.value),
            )

    async def _remove_session(self, room: Room, session: Session) -> None:
        room.sessions.remove(session)
        self.registry.unbind(session.player_id)
        timer = room.forfeit_timers.pop(session.player_id, None)
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()
        if not room.connected_humans():
            await self._teardown(room)
            return
        for s in room.sessions:
            await self._send(s, PeerLeft(count=len(room.sessions)))

    async def _teardown(self, room: Room, reason: str | None = None) -> None:
        if room.closed:
            return
        room.closed = True
        self._cancel_background(room)
        if reason:
            for s in room.connected_humans():
                await self._send(s, RoomClosed(reason=reason))
        self.registry.remove(room.code)
        logger.info("Room %s torn down", room.code)

    def _cancel_background(self, room: Room) -> None:
        current = asyncio.current_task()
        for task in room.forfeit_timers.values():
            if task is not current:
                task.cancel()
        room.forfeit_timers.clear()
        if room.ai_task is not None and room.ai_task is not current:
            room.ai_task.cancel()
        room.ai_task = None

    def _snapshot(self, room: Room, session: Session) -> StateSnapshot:
        opponent = room.opponent_of(session.player_id)
        return StateSnapshot(
            code=room.code,
            phase=room.phase.value,
            own_board=session.board.to_view(session.fleet),
            own_fleet=[ship.to_dict() for ship in session.fleet],
            ready=session.ready,
            turn_holder=relative_to(room.turn_holder, session.player_id),
            is_your_turn=room.turn_holder == session.player_id,
            peer_connected=bool(opponent and opponent.connected),
            winner=relative_to(room.winner, session.player_id),
            reason=room.finish_reason.value if room.finish_reason else None,
        )

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    def _start_forfeit_timer(self, room: Room, player_id: str) -> None:
        previous = room.forfeit_timers.pop(player_id, None)
        if previous is not None:
            previous.cancel()
        room.forfeit_timers[player_id] = asyncio.create_task(
            self._forfeit_after_grace(room, player_id),
            name=f"forfeit-{room.code}",
        )
        room.forfeit_timers[player_id].add_done_callback(_log_task_failure)

    async def _forfeit_after_grace(self, room: Room, player_id: str) -> None:
        await asyncio.sleep(self.grace_period)
        async with room.lock:
            if room.closed or room.forfeit_timers.get(player_id) is not asyncio.current_task():
                return
            del room.forfeit_timers[player_id]
            session = room.session(player_id)
            if session.connected:
                return
            opponent = room.opponent_of(player_id)
            logger.info("Grace period over in room %s, forfeiting", room.code)
            if opponent is not None and room.phase is not Phase.FINISHED:
                await self._finish(room, opponent.player_id, GameOverReason.FORFEIT)
            await self._teardown(room)

    def _schedule_ai_turn(self, room: Room) -> None:
        if room.ai is None or room.phase is not Phase.BATTLE:
            return
        holder = room.session(room.turn_holder) if room.turn_holder else None
        if holder is None or not holder.is_ai:
            return
        room.ai_task = asyncio.create_task(self._ai_turn(room), name=f"ai-{room.code}")
        room.ai_task.add_done_callback(_log_task_failure)

    async def _ai_turn(self, room: Room) -> None:
        ai = room.ai
        if ai is None:
            return
        await asyncio.sleep(ai.think_delay())
        async with room.lock:
            if room.closed or room.phase is not Phase.BATTLE:
                return
            room.ai_task = None
            shooter = room.session(room.turn_holder) if room.turn_holder else None
            if shooter is None or not shooter.is_ai:
                return
            target = room.opponent_of(shooter.player_id)
            move = ai.choose_shot()
            if target is None or target.board.cell(move.row, move.col).targeted:
                raise InternalInvariantBroken(f"AI chose an already-targeted cell in room {room.code}")
            outcome = await self._apply_shot(room, shooter, move.row, move.col)
            ai.record(outcome)
