"""
Server-side chat: one thread per unordered user pair, messages ordered by
(created_at, id).

``get_or_create_chat`` is the lookup-or-create used by the "between" endpoint.
It holds the "chat-between" lock for in-process callers and relies on the
uq_chat_pair constraint for callers in other processes, re-reading the row
when an insert loses the race.
"""
import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from db import get_lock
from errors import BadRequest, Forbidden, NotFound
from models import Chat, Message, User, utcnow
from notifications import chat_message_notification
from schemas import sanitize_message
from users import blocked_ids, is_blocked_between

logger = logging.getLogger(__name__)


def normalize_pair(a: int, b: int):
    return (a, b) if a < b else (b, a)


def find_chat(session: Session, a: int, b: int) -> Optional[Chat]:
    low, high = normalize_pair(a, b)
    return session.exec(select(Chat).where(Chat.user_a_id == low, Chat.user_b_id == high)).first()


def get_or_create_chat(session: Session, caller: User, a: int, b: int, create: bool = True) -> Chat:
    if a == b:
        raise BadRequest("Cannot chat with yourself")
    if caller.id not in (a, b):
        raise Forbidden("Forbidden")
    with get_lock("chat-between"):
        chat = find_chat(session, a, b)
        if chat:
            return chat
        if not create:
            raise NotFound("Chat not found")
        other = session.get(User, b if caller.id == a else a)
        if not other:
            raise NotFound("User not found")
        low, high = normalize_pair(a, b)
        chat = Chat(user_a_id=low, user_b_id=high)
        session.add(chat)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.info("chat between %s and %s created concurrently, reusing it", low, high)
            return find_chat(session, a, b)
        session.refresh(chat)
        logger.info("created chat %s between %s and %s", chat.id, low, high)
        return chat


def member_chat(session: Session, user: User, chat_id: int) -> Chat:
    chat = session.get(Chat, chat_id)
    if not chat or user.id not in (chat.user_a_id, chat.user_b_id):
        raise Forbidden("Forbidden")
    return chat


def list_chats(session: Session, user: User) -> List[dict]:
    hidden = blocked_ids(session, user.id)
    chats = session.exec(
        select(Chat)
        .where((Chat.user_a_id == user.id) | (Chat.user_b_id == user.id))
        .order_by(Chat.updated_at.desc(), Chat.id.desc())
    ).all()
    out = []
    for chat in chats:
        other_id = chat.user_b_id if chat.user_a_id == user.id else chat.user_a_id
        if other_id in hidden:
            continue
        other = session.get(User, other_id)
        last = session.exec(
            select(Message)
            .where(Message.chat_id == chat.id)
            .order_by(Message.created_at.desc(), Message.id.desc())
        ).first()
        out.append({
            "id": chat.id,
            "otherUser": {"id": other.id, "name": other.name, "email": other.email},
            "lastMessage": {
                "id": last.id,
                "content": last.content,
                "senderId": last.sender_id,
                "createdAt": last.created_at.isoformat(),
            } if last else None,
            "createdAt": chat.created_at.isoformat(),
            "updatedAt": chat.updated_at.isoformat(),
        })
    return out


def list_messages(session: Session, user: User, chat_id: int) -> List[Message]:
    member_chat(session, user, chat_id)
    return session.exec(
        select(Message).where(Message.chat_id == chat_id).order_by(Message.created_at, Message.id)
    ).all()


def post_message(session: Session, user: User, chat_id: int, sender_id: int, content: str) -> Message:
    chat = member_chat(session, user, chat_id)
    if sender_id != user.id:
        raise Forbidden("Forbidden")
    other_id = chat.user_b_id if chat.user_a_id == user.id else chat.user_a_id
    if is_blocked_between(session, user.id, other_id):
        raise Forbidden("Messaging is blocked between these users")
    clean = sanitize_message(content).strip()
    if not clean:
        raise BadRequest("Message content is invalid after sanitization")
    message = Message(chat_id=chat.id, sender_id=user.id, content=clean)
    chat.last_message = clean
    chat.updated_at = message.created_at
    session.add(message)
    session.add(chat)
    chat_message_notification(session, chat, user)
    session.commit()
    session.refresh(message)
    return message
