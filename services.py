"""
Typed wrappers over the REST API.

Each call builds the URL and hands back the raw ``httpx.Response`` so callers
decide what ``ok`` means for them. No retries, batching or caching here.
``AdminService`` is stricter and raises ``ServiceError`` on any non-2xx.
"""
from typing import Any, Dict, Optional

import httpx

from config import settings
from errors import ServiceError
from schemas import TripSearchResponse, adapt_trip_search_payload


class ApiClient:
    def __init__(self, token=None, base_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.token = token
        self._client = client or httpx.AsyncClient(base_url=base_url or settings.api_base_url, timeout=10.0)
        self._owns_client = client is None

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token is not None:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def api(self, path: str, method: str = "GET", json: Any = None, params=None) -> httpx.Response:
        return await self._client.request(method, path, json=json, params=params, headers=self._headers())

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()


def _clean(params: Optional[Dict[str, Any]]) -> Dict[str, str]:
    return {k: str(v) for k, v in (params or {}).items() if v is not None and v != ""}


class TripsService:
    def __init__(self, client: ApiClient):
        self.client = client

    async def list(self, params=None):
        return await self.client.api("/api/trips", params=_clean(params))

    async def search(self, params=None) -> TripSearchResponse:
        resp = await self.list(params)
        if not resp.is_success:
            raise ServiceError(f"Trip search failed: {resp.status_code}", resp.status_code)
        return adapt_trip_search_payload(resp.json())

    async def get(self, trip_id):
        return await self.client.api(f"/api/trips/{trip_id}")

    async def create(self, payload):
        return await self.client.api("/api/trips", method="POST", json=payload)

    async def nearby(self, params):
        return await self.client.api("/api/trips/nearby", params=_clean(params))

    async def complete(self, trip_id):
        return await self.client.api(f"/api/trips/{trip_id}/complete", method="PATCH")

    async def cancel(self, trip_id):
        return await self.client.api(f"/api/trips/{trip_id}/cancel", method="PATCH")


class RequestsService:
    def __init__(self, client: ApiClient):
        self.client = client

    async def create(self, trip_id):
        return await self.client.api("/api/requests", method="POST", json={"tripId": trip_id})

    async def set_status(self, request_id, status: str):
        return await self.client.api(
            f"/api/requests/{request_id}/status", method="PATCH", json={"status": status}
        )

    async def list(self, trip_id=None):
        return await self.client.api("/api/requests", params=_clean({"tripId": trip_id}))

    async def incoming(self):
        return await self.client.api("/api/requests/incoming")

    async def outgoing(self):
        return await self.client.api("/api/requests/outgoing")


class ChatService:
    def __init__(self, client: ApiClient):
        self.client = client

    async def list(self):
        return await self.client.api("/api/chat")

    async def between(self, user_a_id, user_b_id, create: bool = True):
        params = {"userAId": user_a_id, "userBId": user_b_id, "create": 1 if create else 0}
        return await self.client.api("/api/chat/between", params=_clean(params))

    async def messages(self, chat_id):
        return await self.client.api(f"/api/chat/{chat_id}/messages")

    async def post_message(self, chat_id, payload):
        return await self.client.api(f"/api/chat/{chat_id}/messages", method="POST", json=payload)


class RatingsService:
    def __init__(self, client: ApiClient):
        self.client = client

    async def create(self, payload):
        return await self.client.api("/api/ratings", method="POST", json=payload)

    async def list(self, user_id=None):
        return await self.client.api("/api/ratings", params=_clean({"userId": user_id}))

    async def pending(self):
        return await self.client.api("/api/ratings/pending")


class UsersService:
    def __init__(self, client: ApiClient):
        self.client = client

    async def block(self, user_id, reason: Optional[str] = None):
        return await self.client.api(f"/api/users/{user_id}/block", method="POST", json={"reason": reason})

    async def unblock(self, user_id):
        return await self.client.api(f"/api/users/{user_id}/unblock", method="DELETE")

    async def blocked(self):
        return await self.client.api("/api/users/blocked")

    async def public(self, user_id):
        return await self.client.api(f"/api/users/{user_id}/public")


class DriversService:
    def __init__(self, client: ApiClient):
        self.client = client

    async def list(self, params=None):
        return await self.client.api("/api/drivers", params=_clean(params))

    async def trusted(self, limit=None):
        return await self.client.api("/api/drivers/trusted", params=_clean({"limit": limit}))


class NotificationsService:
    def __init__(self, client: ApiClient):
        self.client = client

    async def list(self):
        return await self.client.api("/api/notifications")

    async def mark_all_read(self):
        return await self.client.api("/api/notifications", method="PATCH")

    async def mark_read(self, notification_id):
        return await self.client.api(f"/api/notifications/{notification_id}/read", method="PATCH")


class AdminService:
    def __init__(self, client: ApiClient):
        self.client = client

    async def _request(self, path: str, method: str = "GET", json=None, params=None):
        resp = await self.client.api(f"/api/admin{path}", method=method, json=json, params=params)
        if not resp.is_success:
            raise ServiceError(f"Admin API error: {resp.reason_phrase}", resp.status_code)
        return resp

    @staticmethod
    def _page(page, limit, search=None, status=None, **extra):
        return _clean({"page": page, "limit": limit, "search": search, "status": status, **extra})

    async def get_users(self, page=1, limit=10, search=None, status=None):
        return await self._request("/users", params=self._page(page, limit, search, status))

    async def update_user(self, user_id, data):
        return await self._request(f"/users/{user_id}", method="PUT", json=data)

    async def block_user(self, user_id):
        return await self._request(f"/users/{user_id}/block", method="POST")

    async def unblock_user(self, user_id):
        return await self._request(f"/users/{user_id}/unblock", method="POST")

    async def get_trips(self, page=1, limit=10, search=None, status=None):
        return await self._request("/trips", params=self._page(page, limit, search, status))

    async def update_trip(self, trip_id, data):
        return await self._request(f"/trips/{trip_id}", method="PUT", json=data)

    async def get_requests(self, page=1, limit=10, status=None, trip_id=None):
        return await self._request("/requests", params=self._page(page, limit, status=status, tripId=trip_id))

    async def update_request(self, request_id, data):
        return await self._request(f"/requests/{request_id}", method="PUT", json=data)

    async def get_messages(self, page=1, limit=10, search=None, chat_id=None):
        return await self._request("/messages", params=self._page(page, limit, search, chatId=chat_id))

    async def delete_message(self, message_id):
        return await self._request(f"/messages/{message_id}", method="DELETE")

    async def get_contact_submissions(self, page=1, limit=10, search=None, status=None, priority=None):
        return await self._request("/contact", params=self._page(page, limit, search, status, priority=priority))

    async def update_contact_submission(self, submission_id, data):
        return await self._request(f"/contact/{submission_id}", method="PUT", json=data)
