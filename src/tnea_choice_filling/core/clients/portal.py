"""TNEA online portal client.

Portal: https://www.tneaonline.org
The portal has no public API docs; endpoints and headers mirror what the
candidate dashboard sends. The session ID is passed both as a `sessionid`
header and as a cookie.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..models import Category, SeatRecord

logger = logging.getLogger(__name__)

DEFAULT_PORTAL_URL = "https://www.tneaonline.org"

LOGIN_PATH = "/api/users/login"
SEAT_MATRIX_PATH = "/api/api/users/seatmatrix"
SELECTION_PATH = "/api/api/users/selection"


class PortalError(Exception):
    """The portal could not be reached or returned an unusable response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class AuthenticationError(PortalError):
    """Credentials were rejected or the session has expired."""


class NotLoggedInError(PortalError):
    """An authenticated call was attempted without a session."""

    def __init__(self, message: str = "Not logged in. Please login first."):
        super().__init__(message)


class PortalLogin(BaseModel):
    """Result of a successful login."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    session_id: str = Field(alias="sessionId")
    user_id: str = Field("", alias="userId")
    name: str = ""
    status: str = ""


def get_portal_url() -> str:
    return os.environ.get("TNEA_PORTAL_URL", DEFAULT_PORTAL_URL).rstrip("/")


def _client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=get_portal_url(),
        timeout=httpx.Timeout(30.0, connect=10.0),
        transport=transport,
    )


def _session_headers(session_id: str, accept: str = "application/json") -> dict[str, str]:
    return {
        "accept": accept,
        "sessionid": session_id,
        "cookie": f"sessionId={session_id}",
        "Referer": f"{get_portal_url()}/u/choice",
    }


def _decode(response: httpx.Response, action: str) -> Any:
    """Raise PortalError for failed responses and return the JSON body."""
    if response.status_code in (401, 403):
        raise AuthenticationError(
            f"{action} rejected by portal (HTTP {response.status_code}). Please login again.",
            status_code=response.status_code,
        )
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise PortalError(f"{action} failed: HTTP {response.status_code}", status_code=response.status_code) from exc
    try:
        return response.json()
    except ValueError as exc:
        raise PortalError(f"{action} failed: portal returned non-JSON response", status_code=response.status_code) from exc


async def login(
    email: str,
    password: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PortalLogin:
    """Authenticate with the portal and return the new session.

    Args:
        email: Portal login name (usually the registered email).
        password: Portal password.
        transport: Optional httpx transport override.

    Raises:
        AuthenticationError: the portal did not issue a session ID.
        PortalError: the request failed.
    """
    headers = {
        "accept": "application/json",
        "content-type": "application/json; charset=utf-8",
        "sessionid": "null",
        "Referer": f"{get_portal_url()}/user/login",
    }
    try:
        async with _client(transport) as client:
            response = await client.post(
                LOGIN_PATH,
                json={"loginName": email, "password": password},
                headers=headers,
            )
    except httpx.HTTPError as exc:
        raise PortalError(f"Login failed: {exc}") from exc

    data = _decode(response, "Login")
    if not isinstance(data, dict) or not data.get("sessionId"):
        raise AuthenticationError("Invalid login credentials")

    result = PortalLogin.model_validate(data)
    logger.info("Logged in to TNEA portal as %s", result.name or email)
    return result


async def fetch_seat_matrix(
    session_id: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> list[SeatRecord]:
    """Fetch the current seat matrix.

    The whole matrix is validated before it is returned; one malformed record
    fails the fetch rather than yielding a partial matrix.
    """
    if not session_id:
        raise NotLoggedInError()

    try:
        async with _client(transport) as client:
            response = await client.get(SEAT_MATRIX_PATH, headers=_session_headers(session_id, accept="*/*"))
    except httpx.HTTPError as exc:
        raise PortalError(f"Seat matrix fetch failed: {exc}") from exc

    data = _decode(response, "Seat matrix fetch")
    if not isinstance(data, list):
        raise PortalError(f"Seat matrix fetch failed: expected a list, got {type(data).__name__}")

    try:
        seats = TypeAdapter(list[SeatRecord]).validate_python(data)
    except ValidationError as exc:
        raise PortalError(f"Seat matrix fetch failed: {exc.error_count()} malformed record(s)") from exc

    logger.info("Fetched %d seat records", len(seats))
    return seats


async def submit_selections(
    session_id: str,
    selections: list[str],
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Any:
    """Submit an ordered list of seat IDs as the candidate's choices.

    Returns the portal's acknowledgement body unchanged.
    """
    if not session_id:
        raise NotLoggedInError()

    headers = _session_headers(session_id)
    headers["content-type"] = "application/json; charset=utf-8"
    try:
        async with _client(transport) as client:
            response = await client.put(SELECTION_PATH, json={"selections": selections}, headers=headers)
    except httpx.HTTPError as exc:
        raise PortalError(f"Choice submission failed: {exc}") from exc

    result = _decode(response, "Choice submission")
    logger.info("Submitted %d choices", len(selections))
    return result


def count_available(seats: list[SeatRecord]) -> int:
    """Number of seat records with an open seat in any category."""
    return sum(1 for seat in seats if any(seat.is_available(c) for c in Category))
