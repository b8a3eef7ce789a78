"""Shot-selection strategies for the computer opponent."""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from src.salvo.core.errors import InternalInvariantBroken
from src.salvo.game.board import BOARD_SIZE, Coord, in_bounds

# up, down, left, right
NEIGHBOUR_OFFSETS: tuple[Coord, ...] = ((-1, 0), (1, 0), (0, -1), (0, 1))


class StrategyExhausted(InternalInvariantBroken):
    """Every cell has been fired at; the game should have ended already."""


class StrategyMode(str, Enum):
    HUNT = "hunt"
    TARGET = "target"


@dataclass(frozen=True)
class ShotRecord:
    """One entry of the shot history the strategy works from."""

    row: int
    col: int
    hit: bool
    sunk: bool = False


@dataclass
class AIMove:
    """Represents an AI move decision."""

    row: int
    col: int
    reasoning: str


class ShotStrategy(ABC):
    """Chooses shots from the shot history alone; never sees the board."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random()  # noqa: S311

    @abstractmethod
    def next_shot(self, history: Sequence[ShotRecord]) -> AIMove:
        """Return the next cell to fire at."""

    def _random_untargeted(self, targeted: set[Coord]) -> Coord:
        available = [
            (r, c)
            for r in range(BOARD_SIZE)
            for c in range(BOARD_SIZE)
            if (r, c) not in targeted
        ]
        if not available:
            raise StrategyExhausted("No untargeted cells left")
        return self.rng.choice(available)


class HuntTargetStrategy(ShotStrategy):
    """
    Hunt at random until a hit, then work through its orthogonal neighbours.

    Only the part of the history not seen on a previous call is folded into
    the state; ``processed_count`` tracks how much has been consumed.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        super().__init__(rng)
        self.mode = StrategyMode.HUNT
        self.pending_targets: deque[Coord] = deque()
        self.processed_count = 0

    def reset(self) -> None:
        self.mode = StrategyMode.HUNT
        self.pending_targets.clear()
        self.processed_count = 0

    def next_shot(self, history: Sequence[ShotRecord]) -> AIMove:
        targeted = {(shot.row, shot.col) for shot in history}
        self._absorb(history, targeted)

        if self.mode is StrategyMode.TARGET:
            while self.pending_targets:
                candidate = self.pending_targets.popleft()
                if candidate not in targeted:
                    return AIMove(*candidate, reasoning="Hunting damaged ship")
            self.mode = StrategyMode.HUNT

        row, col = self._random_untargeted(targeted)
        return AIMove(row, col, reasoning="Random search")

    def _absorb(self, history: Sequence[ShotRecord], targeted: set[Coord]) -> None:
        if not history or len(history) < self.processed_count:
            # A shorter history means a new match.
            self.reset()

        for shot in history[self.processed_count:]:
            if shot.sunk:
                self.mode = StrategyMode.HUNT
                self.pending_targets.clear()
            elif shot.hit:
                self.mode = StrategyMode.TARGET
                self._enqueue_neighbours(shot.row, shot.col, targeted)

        self.processed_count = len(history)

    def _enqueue_neighbours(self, row: int, col: int, targeted: set[Coord]) -> None:
        for d_row, d_col in NEIGHBOUR_OFFSETS:
            cell = (row + d_row, col + d_col)
            if (
                in_bounds(*cell)
                and cell not in targeted
                and cell not in self.pending_targets
            ):
                self.pending_targets.append(cell)
