"""Concurrency demo: two users open a chat with each other at the same time.
Fires concurrent /api/chat/between calls against the ASGI app in-process and
prints the chat ids handed back; they should all be the same.
Run: python concurrency_demo.py
"""
import asyncio

import httpx

from db import init_db, get_session
from main import app
from models import User


def make_pair():
    init_db()
    with get_session() as session:
        a = User(name="demo-a", email=f"demo-a-{id(session)}@example.com")
        b = User(name="demo-b", email=f"demo-b-{id(session)}@example.com")
        session.add_all([a, b])
        session.commit()
        return a.id, b.id


async def run():
    a, b = make_pair()
    params = {"userAId": a, "userBId": b, "create": 1}
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        tasks = []
        for i in range(10):
            caller = a if i % 2 == 0 else b
            tasks.append(client.get("/api/chat/between", params=params, headers={"Authorization": f"Bearer {caller}"}))
        res = await asyncio.gather(*tasks)
        for r in res:
            print(r.status_code, r.json())


if __name__ == "__main__":
    asyncio.run(run())
