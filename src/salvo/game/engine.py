"""
Battleship rules: ship placement and shot resolution.

All functions are pure. They take board/fleet snapshots and return new ones.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from src.salvo.core.errors import InternalInvariantBroken
from src.salvo.core.result import ServiceResult
from src.salvo.game.board import (
    BOARD_SIZE,
    FLEET,
    Board,
    Cell,
    Fleet,
    Orientation,
    Ship,
    ShipKind,
    create_board,
    in_bounds,
)

logger = logging.getLogger(__name__)

# Process-wide, so ids never repeat even across boards.
_SHIP_IDS = itertools.count(1)


class PlacementError(str, Enum):
    OUT_OF_BOUNDS = "OUT_OF_BOUNDS"
    EXCEEDS_BOUNDARY = "EXCEEDS_BOUNDARY"
    OVERLAP = "OVERLAP"
    INCOMPLETE_FLEET = "INCOMPLETE_FLEET"


PLACEMENT_MESSAGES: dict[PlacementError, str] = {
    PlacementError.OUT_OF_BOUNDS: "Starting position is out of bounds",
    PlacementError.EXCEEDS_BOUNDARY: "Ship extends beyond board boundaries",
    PlacementError.OVERLAP: "Ship overlaps with another ship",
    PlacementError.INCOMPLETE_FLEET: "Fleet must contain exactly one of each ship",
}


@dataclass(frozen=True)
class Placement:
    board: Board
    ship: Ship


@dataclass(frozen=True)
class ShipPlacement:
    """A requested placement, before validation."""

    kind: ShipKind
    row: int
    col: int
    orientation: Orientation


@dataclass(frozen=True)
class FleetLayout:
    board: Board
    fleet: Fleet


@dataclass(frozen=True)
class ShotOutcome:
    row: int
    col: int
    hit: bool = False
    sunk: bool = False
    kind: ShipKind | None = None
    already_fired: bool = False


@dataclass(frozen=True)
class ShotResolution:
    board: Board
    fleet: Fleet
    outcome: ShotOutcome


def _next_ship_id(kind: ShipKind) -> str:
    return f"{kind.value.lower()}-{next(_SHIP_IDS)}"


def _placement_failure(error: PlacementError, kind: ShipKind) -> ServiceResult[Placement]:
    return ServiceResult.fail(f"{kind.value}: {PLACEMENT_MESSAGES[error]}", error.value)


def place_ship(
    board: Board,
    kind: ShipKind,
    row: int,
    col: int,
    orientation: Orientation,
) -> ServiceResult[Placement]:
    """Validate and place one ship. The input board is never modified."""
    if not in_bounds(row, col):
        return _placement_failure(PlacementError.OUT_OF_BOUNDS, kind)

    d_row, d_col = orientation.step()
    end_row = row + d_row * (kind.size - 1)
    end_col = col + d_col * (kind.size - 1)
    if end_row >= BOARD_SIZE or end_col >= BOARD_SIZE:
        return _placement_failure(PlacementError.EXCEEDS_BOUNDARY, kind)

    cells = tuple((row + d_row * i, col + d_col * i) for i in range(kind.size))
    if any(board.cell(r, c).occupant is not None for r, c in cells):
        return _placement_failure(PlacementError.OVERLAP, kind)

    ship = Ship(id=_next_ship_id(kind), kind=kind, cells=cells)
    updated = board.with_cells({(r, c): Cell(occupant=ship.id) for r, c in cells})
    return ServiceResult.ok(Placement(board=updated, ship=ship))


def build_fleet(placements: Sequence[ShipPlacement]) -> ServiceResult[FleetLayout]:
    """Lay out a full fleet on a fresh board; any invalid ship rejects all of it."""
    kinds = [p.kind for p in placements]
    if len(kinds) != len(FLEET) or set(kinds) != set(FLEET):
        return ServiceResult.fail(
            PLACEMENT_MESSAGES[PlacementError.INCOMPLETE_FLEET],
            PlacementError.INCOMPLETE_FLEET.value,
        )

    board = create_board()
    ships: list[Ship] = []
    for p in placements:
        result = place_ship(board, p.kind, p.row, p.col, p.orientation)
        if not result.success:
            return ServiceResult.fail(result.error, result.code)
        placed = result.unwrap()
        board = placed.board
        ships.append(placed.ship)

    return ServiceResult.ok(FleetLayout(board=board, fleet=tuple(ships)))


def resolve_shot(board: Board, fleet: Fleet, row: int, col: int) -> ShotResolution:
    """Apply a shot. Repeat shots return the same snapshots untouched."""
    if not in_bounds(row, col):
        raise InternalInvariantBroken(f"Shot coordinates out of bounds: ({row}, {col})")

    cell = board.cell(row, col)
    if cell.targeted:
        return ShotResolution(
            board=board,
            fleet=fleet,
            outcome=ShotOutcome(row=row, col=col, already_fired=True),
        )

    board = board.with_cells({(row, col): Cell(occupant=cell.occupant, targeted=True)})
    if cell.occupant is None:
        return ShotResolution(board=board, fleet=fleet, outcome=ShotOutcome(row=row, col=col))

    index = next((i for i, ship in enumerate(fleet) if ship.id == cell.occupant), None)
    if index is None:
        raise InternalInvariantBroken(
            f"Cell ({row}, {col}) is occupied by {cell.occupant!r}, which is not in the fleet",
        )

    ship = fleet[index]
    sunk = all(board.cell(r, c).targeted for r, c in ship.cells)
    newly_sunk = sunk and not ship.sunk
    if newly_sunk:
        fleet = (*fleet[:index], ship.mark_sunk(), *fleet[index + 1:])
        logger.debug("%s sunk at (%d, %d)", ship.kind.value, row, col)

    return ShotResolution(
        board=board,
        fleet=fleet,
        outcome=ShotOutcome(
            row=row,
            col=col,
            hit=True,
            sunk=newly_sunk,
            kind=ship.kind if newly_sunk else None,
        ),
    )


def all_sunk(fleet: Fleet) -> bool:
    return bool(fleet) and all(ship.sunk for ship in fleet)
