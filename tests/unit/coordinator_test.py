"""Tests for room setup, placement and battle in the coordinator."""

from __future__ import annotations

import asyncio

import pytest

from src.salvo.core.errors import (
    ErrorCode,
    ProtocolViolation,
    RoomFull,
    RoomNotFound,
    SessionNotFound,
    ValidationFailed,
)
from src.salvo.game.board import FLEET_CELLS, ShipKind
from src.salvo.game.engine import ShipPlacement, ShotOutcome
from src.salvo.rooms.coordinator import GameCoordinator
from src.salvo.rooms.models import Phase
from tests.helpers import (
    ALL_SHIP_CELLS,
    DESTROYER_CELLS,
    STANDARD_FLEET,
    RecordingNotifier,
    players_in_turn_order,
    start_battle,
)

pytestmark = pytest.mark.anyio

# Rows the standard layout leaves empty.
OPEN_WATER = [(r, c) for r in (1, 3, 5, 7, 9) for c in range(10)]


class TestRoomSetup:
    """Test suite for creating and joining rooms."""

    async def test_create_room(self: TestRoomSetup, coordinator: GameCoordinator, notifier: RecordingNotifier) -> None:
        """Test that a new room waits for a second player."""
        code = await coordinator.create_room("host")

        room = coordinator.registry.get(code)
        assert room.phase is Phase.WAITING
        assert coordinator.active_room_count == 1
        assert notifier.types_for("host") == ["room-created"]
        assert notifier.last("host", "room-created").code == code

    async def test_cannot_sit_in_two_rooms(self: TestRoomSetup, coordinator: GameCoordinator) -> None:
        """Test that a player may hold only one seat."""
        await coordinator.create_room("host")
        with pytest.raises(ProtocolViolation) as exc:
            await coordinator.create_room("host")
        assert exc.value.code == ErrorCode.ALREADY_IN_ROOM.value

    async def test_join_event_order(
        self: TestRoomSetup,
        coordinator: GameCoordinator,
        notifier: RecordingNotifier,
    ) -> None:
        """Test the events both players get when a room fills."""
        code = await coordinator.create_room("host")
        await coordinator.join_room("guest", code.lower())

        assert coordinator.registry.get(code).phase is Phase.PLACEMENT
        assert notifier.types_for("guest") == ["room-joined", "peer-joined", "phase-placement"]
        assert notifier.types_for("host") == ["room-created", "peer-joined", "phase-placement"]
        assert notifier.last("host", "peer-joined").count == 2

    async def test_join_rejects_bad_code(self: TestRoomSetup, coordinator: GameCoordinator) -> None:
        """Test that malformed room codes are refused."""
        with pytest.raises(ValidationFailed) as exc:
            await coordinator.join_room("guest", "bad!")
        assert exc.value.code == ErrorCode.INVALID_CODE.value

    async def test_join_unknown_room(self: TestRoomSetup, coordinator: GameCoordinator) -> None:
        """Test that joining a missing room is refused."""
        with pytest.raises(RoomNotFound):
            await coordinator.join_room("guest", "ZZZZZZ")

    async def test_third_player_rejected(self: TestRoomSetup, coordinator: GameCoordinator) -> None:
        """Test that a full room turns away a third player."""
        code = await coordinator.create_room("host")
        await coordinator.join_room("guest", code)
        with pytest.raises(RoomFull):
            await coordinator.join_room("third", code)
        assert not coordinator.is_seated("third")

    async def test_ai_room_cannot_be_joined(self: TestRoomSetup, coordinator: GameCoordinator) -> None:
        """Test that an AI room has no free seat."""
        code = await coordinator.create_ai_room("solo")
        with pytest.raises(RoomFull):
            await coordinator.join_room("guest", code)


class TestPlacement:
    """Test suite for fleet submission."""

    async def test_waiting_room_rejects_placement(self: TestPlacement, coordinator: GameCoordinator) -> None:
        """Test that ships cannot be placed before a second player joins."""
        await coordinator.create_room("host")
        with pytest.raises(ProtocolViolation) as exc:
            await coordinator.submit_placement("host", STANDARD_FLEET)
        assert exc.value.code == ErrorCode.WRONG_PHASE.value

    async def test_invalid_fleet_changes_nothing(
        self: TestPlacement,
        coordinator: GameCoordinator,
        notifier: RecordingNotifier,
    ) -> None:
        """Test that a rejected fleet leaves the session untouched."""
        code = await coordinator.create_room("host")
        await coordinator.join_room("guest", code)
        bad = [*STANDARD_FLEET[:4], ShipPlacement(ShipKind.DESTROYER, 0, 9, STANDARD_FLEET[4].orientation)]

        with pytest.raises(ValidationFailed) as exc:
            await coordinator.submit_placement("host", bad)

        assert exc.value.code == "EXCEEDS_BOUNDARY"
        session = coordinator.registry.get(code).session("host")
        assert session.ready is False
        assert session.board.occupied_count() == 0
        assert "peer-ready" not in notifier.types_for("guest")

    async def test_placement_events(
        self: TestPlacement,
        coordinator: GameCoordinator,
        notifier: RecordingNotifier,
    ) -> None:
        """Test the events sent as each fleet is accepted."""
        code = await coordinator.create_room("host")
        await coordinator.join_room("guest", code)
        notifier.clear()

        await coordinator.submit_placement("host", STANDARD_FLEET)
        assert notifier.types_for("host") == ["placement-accepted"]
        assert notifier.types_for("guest") == ["peer-ready"]
        assert coordinator.registry.get(code).phase is Phase.PLACEMENT

        await coordinator.submit_placement("guest", STANDARD_FLEET)
        assert notifier.types_for("host")[-1] == "phase-battle"
        assert notifier.types_for("guest")[-2:] == ["placement-accepted", "phase-battle"]

        host_battle = notifier.last("host", "phase-battle")
        guest_battle = notifier.last("guest", "phase-battle")
        assert host_battle.is_your_turn != guest_battle.is_your_turn
        assert {host_battle.turn_holder, guest_battle.turn_holder} == {"you", "opponent"}

    async def test_fleet_submitted_once(self: TestPlacement, coordinator: GameCoordinator) -> None:
        """Test that a fleet cannot be submitted twice."""
        code = await coordinator.create_room("host")
        await coordinator.join_room("guest", code)
        await coordinator.submit_placement("host", STANDARD_FLEET)
        with pytest.raises(ProtocolViolation) as exc:
            await coordinator.submit_placement("host", STANDARD_FLEET)
        assert exc.value.code == ErrorCode.ALREADY_READY.value

    async def test_unknown_player(self: TestPlacement, coordinator: GameCoordinator) -> None:
        """Test that an unseated player cannot submit a fleet."""
        with pytest.raises(SessionNotFound):
            await coordinator.submit_placement("ghost", STANDARD_FLEET)


class TestBattle:
    """Test suite for firing and turn passing."""

    async def test_fire_before_battle(self: TestBattle, coordinator: GameCoordinator) -> None:
        """Test that shots are refused before the battle starts."""
        code = await coordinator.create_room("host")
        await coordinator.join_room("guest", code)
        with pytest.raises(ProtocolViolation) as exc:
            await coordinator.fire("host", 0, 0)
        assert exc.value.code == ErrorCode.WRONG_PHASE.value

    async def test_fire_out_of_turn(self: TestBattle, coordinator: GameCoordinator) -> None:
        """Test that a shot out of turn changes nothing."""
        code = await start_battle(coordinator)
        firer, other = players_in_turn_order(coordinator, code)

        with pytest.raises(ProtocolViolation) as exc:
            await coordinator.fire(other, 0, 0)

        assert exc.value.code == ErrorCode.NOT_YOUR_TURN.value
        room = coordinator.registry.get(code)
        assert room.turn_holder == firer
        assert room.session(firer).board.targeted() == set()

    @pytest.mark.parametrize(("row", "col"), [(-1, 0), (0, 10), (True, 0)])
    async def test_fire_off_board(self: TestBattle, coordinator: GameCoordinator, row: int, col: int) -> None:
        """Test that off-board coordinates are refused."""
        code = await start_battle(coordinator)
        firer, _ = players_in_turn_order(coordinator, code)
        with pytest.raises(ValidationFailed) as exc:
            await coordinator.fire(firer, row, col)
        assert exc.value.code == ErrorCode.INVALID_INPUT.value

    async def test_hit_then_sink_destroyer(
        self: TestBattle,
        coordinator: GameCoordinator,
        notifier: RecordingNotifier,
    ) -> None:
        """Test the events for a hit and then a sinking shot."""
        code = await start_battle(coordinator)
        firer, other = players_in_turn_order(coordinator, code)
        notifier.clear()

        outcome = await coordinator.fire(firer, *DESTROYER_CELLS[0])
        assert outcome.hit and not outcome.sunk

        shot = notifier.last(firer, "shot-outcome")
        assert shot.hit is True
        assert shot.kind is None
        assert "kind" not in shot.to_wire()
        mirrored = notifier.last(other, "mirrored-shot")
        assert (mirrored.row, mirrored.col) == DESTROYER_CELLS[0]
        assert notifier.types_for(firer) == ["shot-outcome", "turn-changed"]
        assert notifier.types_for(other) == ["mirrored-shot", "turn-changed"]
        assert notifier.last(other, "turn-changed").is_your_turn is True
        assert coordinator.registry.get(code).turn_holder == other

        await coordinator.fire(other, *OPEN_WATER[0])
        outcome = await coordinator.fire(firer, *DESTROYER_CELLS[1])

        assert outcome.sunk is True
        assert notifier.last(firer, "shot-outcome").kind is ShipKind.DESTROYER
        assert notifier.last(other, "mirrored-shot").to_wire()["kind"] == "Destroyer"
        assert coordinator.registry.get(code).turn_holder == other

    async def test_repeat_shot_keeps_turn(self: TestBattle, coordinator: GameCoordinator) -> None:
        """Test that firing at a used cell keeps the turn."""
        code = await start_battle(coordinator)
        firer, other = players_in_turn_order(coordinator, code)

        await coordinator.fire(firer, *OPEN_WATER[0])
        await coordinator.fire(other, *OPEN_WATER[0])
        with pytest.raises(ValidationFailed) as exc:
            await coordinator.fire(firer, *OPEN_WATER[0])

        assert exc.value.code == ErrorCode.ALREADY_FIRED.value
        assert coordinator.registry.get(code).turn_holder == firer

    async def test_sinking_every_ship_wins(
        self: TestBattle,
        coordinator: GameCoordinator,
        notifier: RecordingNotifier,
    ) -> None:
        """Test that sinking the last ship ends the game."""
        code = await start_battle(coordinator)
        firer, other = players_in_turn_order(coordinator, code)

        for i, cell in enumerate(ALL_SHIP_CELLS):
            await coordinator.fire(firer, *cell)
            if i < len(ALL_SHIP_CELLS) - 1:
                await coordinator.fire(other, *OPEN_WATER[i])

        room = coordinator.registry.get(code)
        assert room.phase is Phase.FINISHED
        assert room.winner == firer
        assert room.turn_holder is None
        assert notifier.last(firer, "game-over").to_wire() == {
            "type": "game-over",
            "winner": "you",
            "reason": "AllSunk",
        }
        assert notifier.last(other, "game-over").winner == "opponent"
        assert notifier.types_for(firer)[-1] == "game-over"

        with pytest.raises(ProtocolViolation):
            await coordinator.fire(other, *OPEN_WATER[-1])


class TestSerialisedRoom:
    """Operations on one room run one at a time under the room lock."""

    async def test_concurrent_fire_is_rejected_not_queued(
        self: TestSerialisedRoom,
        coordinator: GameCoordinator,
        notifier: RecordingNotifier,
    ) -> None:
        """Two simultaneous shots from the turn holder: one lands, one is refused."""
        code = await start_battle(coordinator)
        firer, other = players_in_turn_order(coordinator, code)
        notifier.clear()

        results = await asyncio.gather(
            coordinator.fire(firer, 9, 9),
            coordinator.fire(firer, 9, 8),
            return_exceptions=True,
        )

        rejected = [r for r in results if isinstance(r, ProtocolViolation)]
        assert len(rejected) == 1
        assert rejected[0].code == ErrorCode.NOT_YOUR_TURN.value
        assert len([r for r in results if isinstance(r, ShotOutcome)]) == 1
        room = coordinator.registry.get(code)
        assert len(room.session(other).board.targeted()) == 1
        assert room.turn_holder == other
        assert notifier.types_for(firer) == ["shot-outcome", "turn-changed"]

    async def test_concurrent_placement_accepted_once(
        self: TestSerialisedRoom,
        coordinator: GameCoordinator,
        notifier: RecordingNotifier,
    ) -> None:
        """A fleet submitted twice at once is accepted once and refused once."""
        code = await coordinator.create_room("host")
        await coordinator.join_room("guest", code)
        notifier.clear()

        results = await asyncio.gather(
            coordinator.submit_placement("host", STANDARD_FLEET),
            coordinator.submit_placement("host", STANDARD_FLEET),
            return_exceptions=True,
        )

        rejected = [r for r in results if isinstance(r, ProtocolViolation)]
        assert len(rejected) == 1
        assert rejected[0].code == ErrorCode.ALREADY_READY.value
        assert notifier.types_for("host") == ["placement-accepted"]
        assert notifier.types_for("guest") == ["peer-ready"]
        assert coordinator.registry.get(code).session("host").board.occupied_count() == FLEET_CELLS
