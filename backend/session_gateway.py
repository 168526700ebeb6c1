from dataclasses import dataclass, field
from fastapi import WebSocket, WebSocketDisconnect
from typing import Dict, List, Optional, Set
import json
import hmac
import time
import asyncio
import logging

import config
from errors import CommandRejected, InvalidCommand, RoomNotFound, Unauthorized
from room import Room, clean_player_name
from room_registry import RoomRegistry, registry
from snapshot import snapshot, room_update_event, answers_count_event, reveal_event

logger = logging.getLogger(__name__)


@dataclass
class Membership:
    role: str  # host, player, display
    user_id: Optional[str] = None


@dataclass
class Session:
    conn_id: str
    websocket: WebSocket
    memberships: Dict[str, Membership] = field(default_factory=dict)  # room code -> membership
    msg_timestamps: List[float] = field(default_factory=list)


def check_admin_key(key) -> bool:
    if not isinstance(key, str) or not key:
        return False
    return hmac.compare_digest(key.encode(), config.ADMIN_KEY.encode())


class SessionGateway:
    """Routes commands from WebSocket connections to rooms.

    Only room codes and player identities are kept per connection; rooms are
    always looked up through the registry.
    """

    def __init__(self, registry: RoomRegistry):
        self.registry = registry
        self.sessions: Dict[str, Session] = {}  # conn_id -> session
        self.channels: Dict[str, Set[str]] = {}  # room code -> subscribed conn_ids
        self.allowed_origins: List[str] = []
        self._handlers = {
            "HOST_CREATE": self.host_create,
            "HOST_JOIN": self.host_join,
            "HOST_SET_QUESTIONS": self.host_set_questions,
            "HOST_START": self.host_start,
            "HOST_REVEAL": self.host_reveal,
            "HOST_NEXT": self.host_next,
            "DISPLAY_JOIN": self.display_join,
            "PLAYER_JOIN": self.player_join,
            "PLAYER_ANSWER": self.player_answer,
        }

    # --- session table ---

    def register(self, conn_id: str, websocket: WebSocket) -> Session:
        session = Session(conn_id=conn_id, websocket=websocket)
        self.sessions[conn_id] = session
        return session

    def subscribe(self, conn_id: str, code: str, role: str, user_id: Optional[str] = None):
        session = self.sessions.get(conn_id)
        if session is None:
            return
        session.memberships[code] = Membership(role=role, user_id=user_id)
        self.channels.setdefault(code, set()).add(conn_id)

    def disconnect(self, conn_id: str) -> List[str]:
        """Forget a connection. Returns codes of rooms whose player list changed."""
        session = self.sessions.pop(conn_id, None)
        if session is None:
            return []
        changed = []
        for code in session.memberships:
            subscribers = self.channels.get(code)
            if subscribers:
                subscribers.discard(conn_id)
            room = self.registry.find_room(code)
            if room and room.mark_disconnected(conn_id):
                changed.append(code)
        return changed

    async def handle_disconnect(self, conn_id: str):
        for code in self.disconnect(conn_id):
            await self.broadcast_room(code)

    # --- transport ---

    async def connect(self, websocket: WebSocket, conn_id: str):
        origin = websocket.headers.get("origin", "")
        if self.allowed_origins and origin not in self.allowed_origins:
            logger.warning("Rejected WebSocket from unauthorized origin: %s", origin)
            await websocket.close(code=1008)
            return

        await websocket.accept()
        session = self.register(conn_id, websocket)

        try:
            while True:
                data = await websocket.receive_text()

                if len(data) > config.MAX_WS_MESSAGE_SIZE:
                    await websocket.send_json({"type": "ERROR", "message": "Message too large"})
                    continue

                now = time.time()
                timestamps = session.msg_timestamps
                timestamps[:] = [t for t in timestamps if now - t < 1.0]
                if len(timestamps) >= config.WS_RATE_LIMIT_PER_SEC:
                    await websocket.send_json({"type": "ERROR", "message": "Too many messages"})
                    continue
                timestamps.append(now)

                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning("Malformed JSON from client %s: %s", conn_id, data[:100])
                    await websocket.send_json({"type": "ERROR", "message": "Invalid message format"})
                    continue
                if not isinstance(message, dict):
                    await websocket.send_json({"type": "ERROR", "message": "Invalid message format"})
                    continue

                reply = await self.handle_message(conn_id, message)
                await websocket.send_json(reply)
        except WebSocketDisconnect:
            logger.info("Client %s disconnected", conn_id)
        except Exception:
            logger.exception("WebSocket error for client %s", conn_id)
        finally:
            await self.handle_disconnect(conn_id)

    async def handle_message(self, conn_id: str, message: dict) -> dict:
        """Run one command and build its reply. Never raises."""
        msg_type = message.get("type")
        reply = {"type": "RESULT", "command": msg_type, "ref": message.get("ref")}
        handler = self._handlers.get(msg_type) if isinstance(msg_type, str) else None
        try:
            if handler is None:
                raise InvalidCommand("Unknown command")
            result = await handler(conn_id, message)
        except CommandRejected as e:
            logger.debug("%s from %s rejected: %s", msg_type, conn_id, e)
            reply.update(ok=False, error=str(e))
            return reply
        except Exception:
            logger.exception("Unexpected error handling %s from %s", msg_type, conn_id)
            reply.update(ok=False, error="Internal error")
            return reply
        reply["ok"] = True
        reply.update(result)
        return reply

    async def broadcast(self, code: str, message: dict):
        dead = []
        for conn_id in list(self.channels.get(code, ())):
            session = self.sessions.get(conn_id)
            if session is None:
                continue
            try:
                await session.websocket.send_json(message)
            except Exception:
                dead.append(conn_id)
        changed: List[str] = []
        for conn_id in dead:
            logger.info("Dropping unreachable client %s from room %s", conn_id, code)
            for changed_code in self.disconnect(conn_id):
                if changed_code not in changed:
                    changed.append(changed_code)
        # Each drop removes a session, so nested broadcasts are bounded
        for changed_code in changed:
            await self.broadcast_room(changed_code)

    async def broadcast_room(self, code: str):
        room = self.registry.find_room(code)
        if room:
            await self.broadcast(code, room_update_event(room))

    # --- helpers ---

    def _require_room(self, message: dict) -> Room:
        room = self.registry.find_room(message.get("code"))
        if room is None:
            raise RoomNotFound()
        return room

    def _require_admin(self, message: dict, conn_id: str):
        if not check_admin_key(message.get("admin_key")):
            logger.warning("Invalid admin key from client %s", conn_id)
            raise Unauthorized()

    def _user_id(self, conn_id: str, room: Room, message: dict) -> str:
        user_id = message.get("user_id")
        if not user_id:
            session = self.sessions.get(conn_id)
            membership = session.memberships.get(room.code) if session else None
            user_id = membership.user_id if membership else None
        return str(user_id or "")

    def _arm_reveal_timer(self, room: Room, q_index: int):
        delay = (room.duration_ms + config.REVEAL_GRACE_MS) / 1000
        room.reveal_timer = asyncio.create_task(self._reveal_after(room.code, q_index, delay))

    async def _reveal_after(self, code: str, q_index: int, delay: float):
        """Reveal question ``q_index`` after ``delay`` seconds unless the room moved on."""
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            return
        room = self.registry.find_room(code)
        if room is None:
            return
        if room.reveal_timer is asyncio.current_task():
            room.reveal_timer = None
        if room.reveal(q_index) is None:
            logger.debug("Stale reveal timer for room %s question %d ignored", code, q_index + 1)
            return
        await self._announce_reveal(room)

    async def _announce_reveal(self, room: Room):
        update = room_update_event(room)
        event = reveal_event(room)
        await self.broadcast(room.code, update)
        await self.broadcast(room.code, event)

    # --- host commands ---

    async def host_create(self, conn_id: str, message: dict) -> dict:
        self._require_admin(message, conn_id)
        room = self.registry.create_room(host_conn=conn_id)
        self.subscribe(conn_id, room.code, "host")
        result = {"room": snapshot(room)}
        await self.broadcast_room(room.code)
        return result

    async def host_join(self, conn_id: str, message: dict) -> dict:
        room = self._require_room(message)
        self._require_admin(message, conn_id)
        room.host_conn = conn_id
        self.subscribe(conn_id, room.code, "host")
        logger.info("Host joined room %s", room.code)
        result = {"room": snapshot(room)}
        await self.broadcast_room(room.code)
        return result

    async def host_set_questions(self, conn_id: str, message: dict) -> dict:
        room = self._require_room(message)
        self._require_admin(message, conn_id)
        room.set_questions(message.get("questions"))
        result = {"room": snapshot(room)}
        await self.broadcast_room(room.code)
        return result

    async def host_start(self, conn_id: str, message: dict) -> dict:
        room = self._require_room(message)
        self._require_admin(message, conn_id)
        q_index = room.start(message.get("duration_ms"))
        self._arm_reveal_timer(room, q_index)
        result = {"room": snapshot(room)}
        await self.broadcast_room(room.code)
        return result

    async def host_reveal(self, conn_id: str, message: dict) -> dict:
        room = self._require_room(message)
        self._require_admin(message, conn_id)
        awarded = room.reveal(room.q_index)
        result = {"room": snapshot(room)}
        if awarded is not None:
            await self._announce_reveal(room)
        return result

    async def host_next(self, conn_id: str, message: dict) -> dict:
        room = self._require_room(message)
        self._require_admin(message, conn_id)
        room.next_question()
        result = {"room": snapshot(room)}
        await self.broadcast_room(room.code)
        return result

    # --- display / player commands ---

    async def display_join(self, conn_id: str, message: dict) -> dict:
        room = self._require_room(message)
        self.subscribe(conn_id, room.code, "display")
        return {"room": snapshot(room)}

    async def player_join(self, conn_id: str, message: dict) -> dict:
        room = self._require_room(message)
        user_id = str(message.get("user_id") or "")
        if not user_id:
            raise InvalidCommand("Missing user_id")
        name = clean_player_name(message.get("name"))
        self.subscribe(conn_id, room.code, "player", user_id)
        room.join_player(user_id, name, conn_id)
        result = {"room": snapshot(room)}
        await self.broadcast_room(room.code)
        return result

    async def player_answer(self, conn_id: str, message: dict) -> dict:
        room = self._require_room(message)
        room.submit_answer(self._user_id(conn_id, room, message), message.get("choice_index"))
        event = answers_count_event(room)
        await self.broadcast(room.code, event)
        return {}


gateway = SessionGateway(registry)
