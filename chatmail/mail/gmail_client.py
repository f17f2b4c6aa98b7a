"""Gmail REST client — wraps the users.messages endpoints behind a typed async API."""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from chatmail.mail.types import Message, MessagePage, UserProfile

logger = logging.getLogger(__name__)

GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1/users/me/"

_REQUEST_TIMEOUT_SECONDS = 30.0
_MAX_CONNECTIONS = 30


class GmailAPIError(Exception):
    """Raised when a Gmail request fails (network error or non-2xx response)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthExpiredError(GmailAPIError):
    """Raised when there is no credential or Gmail answers 401.

    Both cases mean the same thing to the pipeline: local session state is
    stale and the user has to authenticate again.  Never retried.
    """


class GmailClient:
    """Thin async wrapper around the Gmail v1 REST API.

    Holds a single ``httpx.AsyncClient`` so every listing, fetch, and send in
    a session reuses the same connection pool.  Use the `gmail_client()`
    context manager to construct and tear down correctly.
    """

    def __init__(self, http: httpx.AsyncClient, access_token: str) -> None:
        self._http = http
        self._headers = {"Authorization": f"Bearer {access_token}"}

    # ── Public API ─────────────────────────────────────────────────────────────

    async def get_profile(self) -> UserProfile:
        """Return the mailbox owner's address."""
        data = await self._request("GET", "profile")
        email = str(data.get("emailAddress", ""))
        return UserProfile(email=email, name=email.split("@")[0])

    async def list_messages(
        self,
        page_token: str | None = None,
        query: str | None = None,
        max_results: int = 50,
    ) -> MessagePage:
        """Return one page of message IDs, newest first."""
        params: dict[str, Any] = {"maxResults": max_results}
        if page_token:
            params["pageToken"] = page_token
        if query:
            params["q"] = query
        data = await self._request("GET", "messages", params=params)
        ids = [str(m["id"]) for m in data.get("messages", []) if m.get("id")]
        return MessagePage(ids=ids, next_page_token=data.get("nextPageToken") or None)

    async def get_message(self, message_id: str) -> Message:
        """Return a single message with headers and the full MIME tree."""
        data = await self._request(
            "GET", f"messages/{message_id}", params={"format": "full"}
        )
        return Message.from_api(data)

    async def send_raw(self, raw: str) -> str:
        """Send a base64url-encoded RFC 2822 message.  Returns the provider ID."""
        data = await self._request("POST", "messages/send", json={"raw": raw})
        sent_id = str(data.get("id", ""))
        logger.info("Sent message (id=%s)", sent_id)
        return sent_id

    # ── Internal helpers ───────────────────────────────────────────────────────

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Issue a request and return the decoded JSON body.

        Raises AuthExpiredError on 401, GmailAPIError on any other failure.
        """
        logger.debug("Gmail → %s %s %s", method, path, kwargs.get("params", ""))
        try:
            response = await self._http.request(
                method, path, headers=self._headers, **kwargs
            )
        except httpx.HTTPError as exc:
            raise GmailAPIError(f"{method} {path} failed: {exc}") from exc

        if response.status_code == 401:
            raise AuthExpiredError("Gmail rejected the access token", status_code=401)
        if response.is_error:
            raise GmailAPIError(
                f"{method} {path} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise GmailAPIError(f"{method} {path} returned non-JSON body") from exc
        if not isinstance(data, dict):
            raise GmailAPIError(f"{method} {path} returned unexpected {type(data).__name__}")
        return data


@asynccontextmanager
async def gmail_client(
    *,
    access_token: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[GmailClient]:
    """Async context manager that yields a ready-to-use GmailClient.

    Token acquisition is out of scope; the bearer token comes from the caller
    or the GMAIL_ACCESS_TOKEN env var.  A missing token raises AuthExpiredError
    exactly like a 401 would.

    Args:
        access_token: OAuth bearer token with gmail.modify scope.
        transport: Optional httpx transport (tests pass httpx.MockTransport).

    Example::

        async with gmail_client() as client:
            page = await client.list_messages()
    """
    token = access_token or os.environ.get("GMAIL_ACCESS_TOKEN", "")
    if not token:
        raise AuthExpiredError("No Gmail access token available; sign in first")

    async with httpx.AsyncClient(
        base_url=GMAIL_API_BASE,
        timeout=_REQUEST_TIMEOUT_SECONDS,
        limits=httpx.Limits(max_connections=_MAX_CONNECTIONS),
        transport=transport,
    ) as http:
        yield GmailClient(http, token)
