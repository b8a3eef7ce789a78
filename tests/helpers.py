"""Shared test doubles and fleet layouts."""

from __future__ import annotations

from src.salvo.game.board import FLEET, Orientation, ShipKind
from src.salvo.game.engine import ShipPlacement
from src.salvo.rooms.coordinator import GameCoordinator
from src.salvo.rooms.events import OutboundEvent

# Every ship horizontal from column 0, on rows 0, 2, 4, 6, 8.
STANDARD_ROWS: dict[ShipKind, int] = {kind: i * 2 for i, kind in enumerate(FLEET)}

STANDARD_FLEET: list[ShipPlacement] = [
    ShipPlacement(kind=kind, row=row, col=0, orientation=Orientation.HORIZONTAL)
    for kind, row in STANDARD_ROWS.items()
]

STANDARD_FLEET_WIRE: list[dict[str, object]] = [
    {"kind": p.kind.value, "row": p.row, "col": p.col, "orientation": p.orientation.value}
    for p in STANDARD_FLEET
]

DESTROYER_CELLS = [(STANDARD_ROWS[ShipKind.DESTROYER], 0), (STANDARD_ROWS[ShipKind.DESTROYER], 1)]

ALL_SHIP_CELLS: list[tuple[int, int]] = [
    (row, col) for kind, row in STANDARD_ROWS.items() for col in range(kind.size)
]

GRACE_PERIOD = 0.05
IDLE_TIMEOUT = 600.0


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingNotifier:
    """Collects (player_id, event) pairs instead of sending them."""

    def __init__(self) -> None:
        self.events: list[tuple[str, OutboundEvent]] = []

    async def __call__(self, player_id: str, event: OutboundEvent) -> None:
        self.events.append((player_id, event))

    def for_player(self, player_id: str) -> list[OutboundEvent]:
        return [e for pid, e in self.events if pid == player_id]

    def types_for(self, player_id: str) -> list[str]:
        return [e.type for e in self.for_player(player_id)]

    def last(self, player_id: str, event_type: str) -> OutboundEvent | None:
        matching = [e for e in self.for_player(player_id) if e.type == event_type]
        return matching[-1] if matching else None

    def clear(self) -> None:
        self.events.clear()


async def start_battle(
    coordinator: GameCoordinator,
    host: str = "host",
    guest: str = "guest",
) -> str:
    """Create, join and place both standard fleets; return the room code."""
    code = await coordinator.create_room(host)
    await coordinator.join_room(guest, code)
    await coordinator.submit_placement(host, STANDARD_FLEET)
    await coordinator.submit_placement(guest, STANDARD_FLEET)
    return code


def players_in_turn_order(coordinator: GameCoordinator, code: str) -> tuple[str, str]:
    room = coordinator.registry.get(code)
    firer = room.turn_holder
    assert firer is not None
    other = room.opponent_of(firer)
    assert other is not None
    return firer, other.player_id
