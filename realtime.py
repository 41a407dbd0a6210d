"""
Socket.IO push channel.

Clients connect at /api/socketio with ``auth={"token": ...}``, join
``chat:{id}`` rooms with ``join-chat`` and receive every stored message as a
``message`` event. Persisting still goes through REST; this module only fans
messages out.
"""
import logging

import socketio

from db import get_session
from errors import ApiError
from auth import user_from_token
from chat import member_chat
from schemas import message_out

logger = logging.getLogger(__name__)

SOCKETIO_PATH = "api/socketio"

sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins="*")


def chat_room(chat_id) -> str:
    return f"chat:{chat_id}"


@sio.event
async def connect(sid, environ, auth=None):
    token = (auth or {}).get("token")
    if not token:
        raise socketio.exceptions.ConnectionRefusedError("Authentication error: No token provided")
    with get_session() as session:
        try:
            user = user_from_token(session, token)
        except ApiError as exc:
            raise socketio.exceptions.ConnectionRefusedError(f"Authentication error: {exc.message}")
    await sio.save_session(sid, {"user_id": user.id})
    await sio.enter_room(sid, f"user:{user.id}")
    logger.info("user %s connected to socket (%s)", user.id, sid)


@sio.on("join-chat")
async def join_chat(sid, chat_id):
    sess = await sio.get_session(sid)
    with get_session() as session:
        try:
            user = user_from_token(session, sess["user_id"])
            member_chat(session, user, int(chat_id))
        except (ApiError, TypeError, ValueError):
            await sio.emit("error", {"message": "Failed to join chat"}, to=sid)
            return
    await sio.enter_room(sid, chat_room(chat_id))
    logger.debug("user %s joined chat %s", sess["user_id"], chat_id)


@sio.on("leave-chat")
async def leave_chat(sid, chat_id):
    await sio.leave_room(sid, chat_room(chat_id))


@sio.event
async def disconnect(sid, *args):
    logger.info("socket %s disconnected", sid)


async def broadcast_message(message) -> None:
    await sio.emit("message", message_out(message), room=chat_room(message.chat_id))
