"""Realtime world room: WebSocket fan-out of world events.

``WorldRoom`` owns the connected sockets and a snapshot of the world counters.
Request handlers never talk to it directly; they go through a
``WorldBroadcaster``, which hands each event to a room client in a background
task. Delivery is at most once and never blocks or fails the caller.
"""

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

import httpx
from fastapi import WebSocket, WebSocketDisconnect
from loguru import logger

from . import game
from .storage import KVStore

ROOM_STATE_KEY = "room:world_state"


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


def default_room_state() -> dict[str, Any]:
    return {
        "total_characters": 0,
        "total_waters": 0,
        "season": "spring",
        "current_phase": "day",
        "last_milestone_reached": 0,
    }


@dataclass
class RoomSession:
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str | None = None


class WorldRoom:
    """Connected clients plus the room's own view of the world counters."""

    def __init__(self, kv: KVStore | None = None) -> None:
        self.kv = kv
        self.sessions: dict[WebSocket, RoomSession] = {}
        self.world_state = default_room_state()

    @property
    def connection_count(self) -> int:
        return len(self.sessions)

    async def load(self) -> None:
        """Restore the persisted snapshot, if any."""
        if self.kv is None:
            return
        stored = await self.kv.get_json(ROOM_STATE_KEY)
        if isinstance(stored, dict):
            self.world_state = {**default_room_state(), **stored}

    async def _persist(self) -> None:
        if self.kv is None:
            return
        try:
            await self.kv.put_json(ROOM_STATE_KEY, self.world_state)
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Failed to persist room state: {e}")

    async def connect(self, websocket: WebSocket) -> RoomSession:
        """Accept a socket and send it the current world snapshot."""
        await websocket.accept()
        session = RoomSession()
        self.sessions[websocket] = session
        await websocket.send_text(
            json.dumps(
                {"type": "world_state", "payload": self.world_state, "timestamp": _timestamp()}
            )
        )
        logger.debug(f"Room session {session.id} connected. Active: {self.connection_count}")
        return session

    def disconnect(self, websocket: WebSocket) -> None:
        session = self.sessions.pop(websocket, None)
        if session:
            logger.debug(f"Room session {session.id} disconnected. Active: {self.connection_count}")

    async def handle_message(self, websocket: WebSocket, message: dict[str, Any]) -> None:
        session = self.sessions.get(websocket)
        if session is None:
            return

        match message.get("type"):
            case "auth":
                session.user_id = message.get("userId") or message.get("user_id")
            case "ping":
                await websocket.send_text(json.dumps({"type": "pong"}))
            case other:
                logger.info(f"Unknown realtime message type: {other}")

    async def serve(self, websocket: WebSocket) -> None:
        """Run one client connection until it closes."""
        await self.connect(websocket)
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    logger.debug("Ignoring non-JSON realtime message")
                    continue
                if isinstance(message, dict):
                    await self.handle_message(websocket, message)
        except WebSocketDisconnect:
            pass
        finally:
            self.disconnect(websocket)

    async def _send_all(self, message: dict[str, Any]) -> None:
        text = json.dumps(message)
        dead = []
        for websocket in list(self.sessions):
            try:
                await websocket.send_text(text)
            except Exception as e:  # noqa: BLE001
                logger.warning(f"Realtime send failed, dropping client: {e}")
                dead.append(websocket)
        for websocket in dead:
            self.disconnect(websocket)

    def _apply(self, message: dict[str, Any]) -> bool:
        payload = message.get("payload") or {}
        match message.get("type"):
            case "character_spawn":
                self.world_state["total_characters"] += 1
            case "water" | "level_up":
                self.world_state["total_waters"] += 1
            case "season_change":
                if payload.get("season") in game.SEASONS:
                    self.world_state["season"] = payload["season"]
                if payload.get("phase") in game.PHASES:
                    self.world_state["current_phase"] = payload["phase"]
            case "milestone":
                threshold = int(payload.get("threshold", 0))
                self.world_state["last_milestone_reached"] = max(
                    self.world_state["last_milestone_reached"], threshold
                )
            case _:
                return False
        return True

    async def broadcast(self, message: dict[str, Any]) -> None:
        """Send an event to every client and fold it into the room snapshot."""
        stamped = {**message, "timestamp": _timestamp()}
        changed = self._apply(message)
        await self._send_all(stamped)
        if not changed:
            return

        for milestone in game.crossed_milestones(
            self.world_state["total_characters"], self.world_state["last_milestone_reached"]
        ):
            self.world_state["last_milestone_reached"] = milestone.threshold
            await self._send_all(
                {
                    "type": "milestone",
                    "payload": {
                        "milestone": milestone.type,
                        "threshold": milestone.threshold,
                        "total_characters": self.world_state["total_characters"],
                    },
                    "timestamp": _timestamp(),
                }
            )
        await self._persist()

    async def rotate_phase(self) -> str:
        """Advance dawn, day, dusk, night and announce the change."""
        phase = game.next_phase(self.world_state["current_phase"])
        await self.broadcast(
            {
                "type": "season_change",
                "payload": {"season": self.world_state["season"], "phase": phase},
            }
        )
        return phase

    async def run_phase_rotation(self, interval: float) -> None:
        """Rotate the phase every ``interval`` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            try:
                await self.rotate_phase()
            except Exception as e:  # noqa: BLE001
                logger.error(f"Phase rotation failed: {e}")


class RoomClient(Protocol):
    """Delivers one event to the world room."""

    async def publish(self, message: dict[str, Any]) -> None: ...
    async def aclose(self) -> None: ...


class LocalRoomClient:
    """Room living in this process."""

    def __init__(self, room: WorldRoom) -> None:
        self.room = room

    async def publish(self, message: dict[str, Any]) -> None:
        await self.room.broadcast(message)

    async def aclose(self) -> None:
        pass


class HttpRoomClient:
    """Room served by another instance, reached through its broadcast endpoint."""

    def __init__(
        self,
        base_url: str,
        admin_token: str | None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 5.0,
    ) -> None:
        self.url = f"{base_url.rstrip('/')}/api/realtime/broadcast"
        self.admin_token = admin_token
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def publish(self, message: dict[str, Any]) -> None:
        headers = {"Authorization": f"Bearer {self.admin_token}"} if self.admin_token else {}
        response = await self.client.post(self.url, json=message, headers=headers)
        response.raise_for_status()

    async def aclose(self) -> None:
        await self.client.aclose()


class WorldBroadcaster:
    """Fire-and-forget publisher of world events."""

    def __init__(self, client: RoomClient) -> None:
        self.client = client
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        """Schedule delivery of an event. Never raises."""
        message = {"type": event_type, "payload": payload}
        try:
            task = asyncio.get_running_loop().create_task(self._deliver(message))
        except RuntimeError as e:
            logger.warning(f"Dropping {event_type} broadcast: {e}")
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, message: dict[str, Any]) -> None:
        try:
            await self.client.publish(message)
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Broadcast of {message['type']} failed: {e}")

    async def drain(self) -> None:
        """Wait for deliveries still in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        await self.client.aclose()
