"""Pydantic schemas for the messages exchanged with clients.

Player ids are secret reconnect tokens, so they never go on the wire for the
other player. Turn holders and winners are sent relative to the recipient:
``"you"`` or ``"opponent"``.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from src.salvo.game.board import Orientation, ShipKind
from src.salvo.game.engine import ShipPlacement, ShotOutcome

Relative = Literal["you", "opponent"]


def relative_to(player_id: str | None, recipient: str) -> Relative | None:
    if player_id is None:
        return None
    return "you" if player_id == recipient else "opponent"


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# Outbound


class OutboundEvent(WireModel):
    type: str

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class SessionCreated(OutboundEvent):
    type: Literal["session-created"] = "session-created"
    player_id: str


class RoomCreated(OutboundEvent):
    type: Literal["room-created"] = "room-created"
    code: str
    mode: str


class RoomJoined(OutboundEvent):
    type: Literal["room-joined"] = "room-joined"
    code: str


class PeerJoined(OutboundEvent):
    type: Literal["peer-joined"] = "peer-joined"
    count: int


class PeerLeft(OutboundEvent):
    type: Literal["peer-left"] = "peer-left"
    count: int


class ValidationErrorEvent(OutboundEvent):
    type: Literal["validation-error"] = "validation-error"
    message: str
    code: str


class PhasePlacement(OutboundEvent):
    type: Literal["phase-placement"] = "phase-placement"


class PlacementAccepted(OutboundEvent):
    type: Literal["placement-accepted"] = "placement-accepted"


class PeerReady(OutboundEvent):
    type: Literal["peer-ready"] = "peer-ready"


class PhaseBattle(OutboundEvent):
    type: Literal["phase-battle"] = "phase-battle"
    turn_holder: Relative
    is_your_turn: bool


class _ShotEvent(OutboundEvent):
    row: int
    col: int
    hit: bool
    sunk: bool
    kind: ShipKind | None = None

    @classmethod
    def from_outcome(cls, outcome: ShotOutcome) -> _ShotEvent:
        return cls(
            row=outcome.row,
            col=outcome.col,
            hit=outcome.hit,
            sunk=outcome.sunk,
            kind=outcome.kind if outcome.sunk else None,
        )


class ShotOutcomeEvent(_ShotEvent):
    """Sent to the player who fired."""

    type: Literal["shot-outcome"] = "shot-outcome"


class MirroredShot(_ShotEvent):
    """Sent to the player whose board was fired at."""

    type: Literal["mirrored-shot"] = "mirrored-shot"


class TurnChanged(OutboundEvent):
    type: Literal["turn-changed"] = "turn-changed"
    turn_holder: Relative
    is_your_turn: bool


class GameOver(OutboundEvent):
    type: Literal["game-over"] = "game-over"
    winner: Relative
    reason: str


class PeerDisconnected(OutboundEvent):
    type: Literal["peer-disconnected"] = "peer-disconnected"


class PeerReconnected(OutboundEvent):
    type: Literal["peer-reconnected"] = "peer-reconnected"


class RoomClosed(OutboundEvent):
    type: Literal["room-closed"] = "room-closed"
    reason: str


class StateSnapshot(OutboundEvent):
    """Everything a reconnecting player may know: its own side only."""

    type: Literal["state-snapshot"] = "state-snapshot"
    code: str
    phase: str
    own_board: list[list[dict[str, Any]]]
    own_fleet: list[dict[str, Any]]
    ready: bool
    turn_holder: Relative | None = None
    is_your_turn: bool = False
    peer_connected: bool = False
    winner: Relative | None = None
    reason: str | None = None


# Inbound


class ShipPlacementIn(WireModel):
    kind: ShipKind
    row: int
    col: int
    orientation: Orientation

    def to_placement(self) -> ShipPlacement:
        return ShipPlacement(
            kind=self.kind,
            row=self.row,
            col=self.col,
            orientation=self.orientation,
        )


class CreateRoomIn(WireModel):
    type: Literal["create-room"]


class JoinRoomIn(WireModel):
    type: Literal["join-room"]
    code: str = Field(max_length=16)


class SubmitPlacementIn(WireModel):
    type: Literal["submit-placement"]
    ships: list[ShipPlacementIn] = Field(max_length=16)


class FireIn(WireModel):
    type: Literal["fire"]
    row: int
    col: int


class ReconnectIn(WireModel):
    type: Literal["reconnect"]
    code: str = Field(max_length=16)
    player_id: str = Field(min_length=1, max_length=128)


class StartAiGameIn(WireModel):
    type: Literal["start-ai-game"]


class LeaveRoomIn(WireModel):
    type: Literal["leave-room"]


ClientMessage = Annotated[
    Union[
        CreateRoomIn,
        JoinRoomIn,
        SubmitPlacementIn,
        FireIn,
        ReconnectIn,
        StartAiGameIn,
        LeaveRoomIn,
    ],
    Field(discriminator="type"),
]

CLIENT_MESSAGE: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)
