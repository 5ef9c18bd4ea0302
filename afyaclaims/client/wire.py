"""
HTTP plumbing shared by the session manager and the API client.

Turns transport failures and error envelopes into the adjudication error
taxonomy so callers only ever handle AdjudicationError subclasses.
"""
import logging
from typing import Any, Optional

import httpx

from afyaclaims.core.errors import DependencyError, error_for_status

logger = logging.getLogger(__name__)


async def call(
    http: httpx.AsyncClient,
    method: str,
    path: str,
    token: Optional[str] = None,
    **kwargs: Any,
) -> httpx.Response:
    """Send one request, optionally with a bearer token."""
    headers = dict(kwargs.pop("headers", None) or {})
    if token:
        headers["Authorization"] = f"Bearer {token}"
    try:
        return await http.request(method, path, headers=headers, **kwargs)
    except httpx.HTTPError as exc:
        logger.error(f"{method} {path} failed: {exc!r}")
        raise DependencyError("Could not reach the claims service; please retry") from exc


def error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.reason_phrase or f"HTTP {response.status_code}"


def unwrap(response: httpx.Response) -> Any:
    """Return the JSON body of a successful response or raise the mapped error."""
    if response.is_success:
        return response.json() if response.content else {}
    raise error_for_status(response.status_code, error_message(response))
