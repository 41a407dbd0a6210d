import threading

from sqlmodel import SQLModel, Session, create_engine

from config import settings

DATABASE_URL = settings.database_url


def _connect_args(url: str) -> dict:
    # sqlite connections are shared across request threads
    return {"check_same_thread": False} if url.startswith("sqlite") else {}


engine = create_engine(DATABASE_URL, echo=settings.debug, connect_args=_connect_args(DATABASE_URL))

# In-process locks around read-then-write sections: "booking" (seat counts)
# and "chat-between" (one chat per user pair).
_locks = {}
_locks_guard = threading.Lock()


def get_lock(name: str) -> threading.Lock:
    with _locks_guard:
        return _locks.setdefault(name, threading.Lock())


def init_db():
    SQLModel.metadata.create_all(engine)


def get_session() -> Session:
    # handlers serialize rows after commit, so keep them loaded
    return Session(engine, expire_on_commit=False)
