"""
Caller resolution for API handlers.

Token issuing and verification live in the identity service; by the time a
request reaches this app the bearer token is the caller's user id.
"""
from starlette.requests import HTTPConnection
from sqlmodel import Session

from errors import Forbidden, Unauthorized
from models import User


def user_from_token(session: Session, token) -> User:
    try:
        user_id = int(str(token).strip())
    except (TypeError, ValueError):
        raise Unauthorized("Invalid token")
    user = session.get(User, user_id)
    if user is None:
        raise Unauthorized("Invalid token")
    if user.status == "BLOCKED":
        raise Forbidden("Account is blocked")
    return user


def current_user(conn: HTTPConnection, session: Session) -> User:
    header = conn.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise Unauthorized("Authentication required")
    return user_from_token(session, token)


def require_role(user: User, *roles: str) -> User:
    if user.role not in roles:
        raise Forbidden("Insufficient permissions")
    return user
