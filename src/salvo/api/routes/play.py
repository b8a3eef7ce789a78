"""WebSocket transport: JSON frames in, coordinator calls, events out."""

from __future__ import annotations

import logging
import secrets

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from src.salvo.core.errors import (
    ErrorCode,
    GameError,
    InternalInvariantBroken,
    ProtocolViolation,
)
from src.salvo.rooms.coordinator import GameCoordinator
from src.salvo.rooms.events import (
    CLIENT_MESSAGE,
    ClientMessage,
    CreateRoomIn,
    FireIn,
    JoinRoomIn,
    LeaveRoomIn,
    OutboundEvent,
    ReconnectIn,
    SessionCreated,
    StartAiGameIn,
    SubmitPlacementIn,
    ValidationErrorEvent,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["play"])


def new_player_id() -> str:
    """Player ids double as reconnect credentials."""
    return secrets.token_urlsafe(16)


class ConnectionHub:
    """Live sockets by player id. Used as the coordinator's notifier."""

    def __init__(self) -> None:
        self._sockets: dict[str, WebSocket] = {}

    def __len__(self) -> int:
        return len(self._sockets)

    def register(self, player_id: str, websocket: WebSocket) -> None:
        self._sockets[player_id] = websocket

    def release(self, player_id: str, websocket: WebSocket) -> bool:
        """Forget the mapping if it still points at *websocket*."""
        if self._sockets.get(player_id) is websocket:
            del self._sockets[player_id]
            return True
        return False

    async def __call__(self, player_id: str, event: OutboundEvent) -> None:
        websocket = self._sockets.get(player_id)
        if websocket is None:
            return
        try:
            await websocket.send_json(event.to_wire())
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            logger.warning("Dropped %s for a closed socket: %s", event.type, e)


async def _reject(websocket: WebSocket, message: str, code: str) -> None:
    await websocket.send_json(ValidationErrorEvent(message=message, code=code).to_wire())


async def _dispatch(
    coordinator: GameCoordinator,
    hub: ConnectionHub,
    websocket: WebSocket,
    player_id: str,
    message: ClientMessage,
) -> str:
    """Run one client message; return the player id this socket now speaks for."""
    if isinstance(message, CreateRoomIn):
        await coordinator.create_room(player_id)
    elif isinstance(message, StartAiGameIn):
        await coordinator.create_ai_room(player_id)
    elif isinstance(message, JoinRoomIn):
        await coordinator.join_room(player_id, message.code)
    elif isinstance(message, SubmitPlacementIn):
        await coordinator.submit_placement(
            player_id,
            [ship.to_placement() for ship in message.ships],
        )
    elif isinstance(message, FireIn):
        await coordinator.fire(player_id, message.row, message.col)
    elif isinstance(message, LeaveRoomIn):
        await coordinator.leave_room(player_id)
    elif isinstance(message, ReconnectIn):
        if message.player_id != player_id and coordinator.is_seated(player_id):
            raise ProtocolViolation("Already in a room", ErrorCode.ALREADY_IN_ROOM)
        snapshot = await coordinator.reconnect(message.player_id, message.code)
        if message.player_id != player_id:
            hub.release(player_id, websocket)
            player_id = message.player_id
        hub.register(player_id, websocket)
        await websocket.send_json(snapshot.to_wire())
    return player_id


async def _handle_frame(
    coordinator: GameCoordinator,
    hub: ConnectionHub,
    websocket: WebSocket,
    player_id: str,
    raw: str,
) -> str:
    try:
        message = CLIENT_MESSAGE.validate_json(raw)
    except ValidationError as e:
        first = e.errors()[0] if e.error_count() else {}
        await _reject(websocket, f"Malformed message: {first.get('msg', 'invalid')}", ErrorCode.INVALID_INPUT.value)
        return player_id

    try:
        return await _dispatch(coordinator, hub, websocket, player_id, message)
    except ProtocolViolation as e:
        logger.debug("Rejected %s: %s", message.type, e.message)
        await _reject(websocket, e.message, e.code)
    except GameError as e:
        logger.info("Rejected %s: %s", message.type, e.message)
        await _reject(websocket, e.message, e.code)
    return player_id


@router.websocket("/ws")
async def play(websocket: WebSocket) -> None:
    coordinator: GameCoordinator = websocket.app.state.coordinator
    hub: ConnectionHub = websocket.app.state.hub

    await websocket.accept()
    player_id = new_player_id()
    hub.register(player_id, websocket)
    await websocket.send_json(SessionCreated(player_id=player_id).to_wire())

    try:
        while True:
            raw = await websocket.receive_text()
            player_id = await _handle_frame(coordinator, hub, websocket, player_id, raw)
    except WebSocketDisconnect:
        pass
    except InternalInvariantBroken:
        logger.exception("Game state invariant broken, closing connection")
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        raise
    finally:
        if hub.release(player_id, websocket):
            await coordinator.disconnect(player_id)
