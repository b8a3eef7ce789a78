"""Computer opponent for single-player rooms."""

from __future__ import annotations

import logging
import random
import secrets

from src.salvo.ai.strategies import AIMove, HuntTargetStrategy, ShotRecord
from src.salvo.core.errors import InternalInvariantBroken
from src.salvo.game.board import BOARD_SIZE, FLEET, Orientation, Ship, create_board
from src.salvo.game.engine import FleetLayout, ShotOutcome, place_ship

logger = logging.getLogger(__name__)

MAX_PLACEMENT_ATTEMPTS = 100
MAX_FLEET_RESTARTS = 1000


def place_fleet_randomly(
    rng: random.Random | None = None,
    max_attempts: int = MAX_PLACEMENT_ATTEMPTS,
) -> FleetLayout:
    """Place every ship at random; start over if one cannot be fitted."""
    rng = rng or secrets.SystemRandom()
    orientations = list(Orientation)

    for restart in range(MAX_FLEET_RESTARTS):
        board = create_board()
        ships: list[Ship] = []
        for kind in FLEET:
            for _ in range(max_attempts):
                result = place_ship(
                    board,
                    kind,
                    rng.randrange(BOARD_SIZE),
                    rng.randrange(BOARD_SIZE),
                    rng.choice(orientations),
                )
                if result.success:
                    placed = result.unwrap()
                    board = placed.board
                    ships.append(placed.ship)
                    break
            else:
                logger.debug("Could not fit %s, restarting fleet (%d)", kind.value, restart + 1)
                break
        else:
            return FleetLayout(board=board, fleet=tuple(ships))

    raise InternalInvariantBroken("Random fleet placement never succeeded")


class AiOpponent:
    """One AI match: a strategy plus the history of shots it has fired."""

    def __init__(
        self,
        rng: random.Random | None = None,
        think_delay: tuple[float, float] = (0.5, 1.0),
    ) -> None:
        self.rng = rng or secrets.SystemRandom()
        self.strategy = HuntTargetStrategy(self.rng)
        self.history: list[ShotRecord] = []
        self.think_range = think_delay

    def place_fleet(self) -> FleetLayout:
        return place_fleet_randomly(self.rng)

    def think_delay(self) -> float:
        low, high = self.think_range
        return self.rng.uniform(low, high) if high > low else low

    def choose_shot(self) -> AIMove:
        move = self.strategy.next_shot(self.history)
        logger.debug("AI fires at (%d, %d): %s", move.row, move.col, move.reasoning)
        return move

    def record(self, outcome: ShotOutcome) -> None:
        """Feed back the result of the last shot."""
        if outcome.already_fired:
            return
        self.history.append(
            ShotRecord(row=outcome.row, col=outcome.col, hit=outcome.hit, sunk=outcome.sunk),
        )
