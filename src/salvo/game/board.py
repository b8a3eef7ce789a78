"""
Board model: an immutable 10x10 grid plus the ships that occupy it.

Every value here is frozen. Operations that "change" a board return a new
board, so a caller holding an older snapshot never observes later shots.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, replace
from enum import Enum

BOARD_SIZE = 10

Coord = tuple[int, int]


class ShipKind(str, Enum):
    CARRIER = "Carrier"
    BATTLESHIP = "Battleship"
    CRUISER = "Cruiser"
    SUBMARINE = "Submarine"
    DESTROYER = "Destroyer"

    @property
    def size(self) -> int:
        return SHIP_SIZES[self]


SHIP_SIZES: dict[ShipKind, int] = {
    ShipKind.CARRIER: 5,
    ShipKind.BATTLESHIP: 4,
    ShipKind.CRUISER: 3,
    ShipKind.SUBMARINE: 3,
    ShipKind.DESTROYER: 2,
}

# Placement order for random fleets; also the canonical fleet listing order.
FLEET: tuple[ShipKind, ...] = tuple(SHIP_SIZES)
FLEET_CELLS = sum(SHIP_SIZES.values())


class Orientation(str, Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"

    def step(self) -> Coord:
        """Return the (row, col) delta between consecutive ship cells."""
        return (0, 1) if self is Orientation.HORIZONTAL else (1, 0)


def in_bounds(row: int, col: int) -> bool:
    return 0 <= row < BOARD_SIZE and 0 <= col < BOARD_SIZE


@dataclass(frozen=True)
class Cell:
    occupant: str | None = None
    targeted: bool = False


EMPTY_CELL = Cell()


@dataclass(frozen=True)
class Ship:
    """A placed ship. Only ``sunk`` ever changes, and only from False to True."""

    id: str
    kind: ShipKind
    cells: tuple[Coord, ...]
    sunk: bool = False

    @property
    def size(self) -> int:
        return len(self.cells)

    def mark_sunk(self) -> Ship:
        return self if self.sunk else replace(self, sunk=True)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "cells": [list(c) for c in self.cells],
            "sunk": self.sunk,
        }


Fleet = tuple[Ship, ...]


@dataclass(frozen=True)
class Board:
    rows: tuple[tuple[Cell, ...], ...]

    def cell(self, row: int, col: int) -> Cell:
        return self.rows[row][col]

    def with_cells(self, updates: Mapping[Coord, Cell]) -> Board:
        """Return a copy with the given cells replaced; untouched rows are shared."""
        if not updates:
            return self
        rows = list(self.rows)
        for r in {row for row, _ in updates}:
            rows[r] = tuple(
                updates.get((r, c), cell) for c, cell in enumerate(self.rows[r])
            )
        return Board(rows=tuple(rows))

    def coords(self) -> Iterator[Coord]:
        for r in range(BOARD_SIZE):
            for c in range(BOARD_SIZE):
                yield (r, c)

    def occupied_count(self) -> int:
        return sum(1 for r, c in self.coords() if self.rows[r][c].occupant)

    def targeted(self) -> set[Coord]:
        return {(r, c) for r, c in self.coords() if self.rows[r][c].targeted}

    def to_view(self, fleet: Fleet) -> list[list[dict[str, object]]]:
        """Owner's view: every cell with the kind of ship on it, if any."""
        kinds = {ship.id: ship.kind.value for ship in fleet}
        return [
            [
                {"ship": kinds.get(cell.occupant) if cell.occupant else None,
                 "targeted": cell.targeted}
                for cell in row
            ]
            for row in self.rows
        ]


def create_board() -> Board:
    return Board(rows=tuple((EMPTY_CELL,) * BOARD_SIZE for _ in range(BOARD_SIZE)))
