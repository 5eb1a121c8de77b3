from typing import Any, Optional

import httpx

from endpoints import AUTH
from .client import SptfClient
from .config import STRUCTURED_ERROR_STATUS
from .errors import (
    AUTH_FAILURES,
    ErrorCategory,
    ProtocolError,
    ServerError,
    UnknownError,
    ValidationError,
)
from .models import Credential, CredentialOrigin
from .utils import get_logger

logger = get_logger("sptf.api")


def _error_code(resp: httpx.Response) -> Optional[int]:
    try:
        payload = resp.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    code = payload.get("errorCode")
    if isinstance(code, bool) or not isinstance(code, int):
        return None
    return code


def raise_for_error(resp: httpx.Response) -> None:
    """Interpret a non-2xx response; only a 500 may carry a structured error."""
    if resp.is_success:
        return
    if resp.status_code != STRUCTURED_ERROR_STATUS:
        raise UnknownError(f"Unexpected HTTP status {resp.status_code}")
    code = _error_code(resp)
    if code is None:
        raise UnknownError(f"HTTP {resp.status_code} without a readable errorCode")
    raise ServerError(code)


def _check_credentials(username: str, password: str) -> None:
    if not isinstance(username, str) or not username.strip():
        raise ValidationError("Username must not be empty")
    if not isinstance(password, str) or not password:
        raise ValidationError("Password must not be empty")


def _call(client: SptfClient, route: dict, **kwargs: Any) -> httpx.Response:
    resp = client.request(route["method"], route["path"], **kwargs)
    raise_for_error(resp)
    return resp


def login(client: SptfClient, username: str, password: str) -> Credential:
    _check_credentials(username, password)
    resp = _call(client, AUTH["login"], json={"username": username, "password": password})
    try:
        payload = resp.json()
    except ValueError as exc:
        raise ProtocolError("Login response is not JSON") from exc
    token = payload.get("authToken") if isinstance(payload, dict) else None
    if not isinstance(token, str) or not token:
        # some server builds answer 200 with an error body
        code = _error_code(resp)
        if code is not None:
            raise ServerError(code)
        raise ProtocolError("Login response carries no authToken")
    logger.info("Logged in as %s", username)
    return Credential(token=token, origin=CredentialOrigin.LOGIN)


def signup(client: SptfClient, username: str, password: str) -> None:
    _check_credentials(username, password)
    _call(client, AUTH["signup"], json={"username": username, "password": password})
    logger.info("Signed up %s", username)


def logout(client: SptfClient) -> None:
    _call(client, AUTH["logout"])


def login_with_cookie(client: SptfClient, stored_token: str) -> bool:
    """Revalidate a stored token.

    Returns ``False`` when the server rejects the token. Transport failures
    still raise :class:`~sptf.errors.NetworkError`, and so does an internal
    server error: neither says anything about the token itself.
    """
    if not stored_token:
        return False
    route = AUTH["login_with_cookie"]
    previous = client.token
    client.token = stored_token
    try:
        resp = client.request(route["method"], route["path"])
    finally:
        client.token = previous
    try:
        raise_for_error(resp)
    except ServerError as exc:
        if exc.category is ErrorCategory.INTERNAL_SERVER_ERROR:
            raise
        if exc.category not in AUTH_FAILURES:
            logger.warning("Cookie revalidation rejected: %s", exc)
        return False
    except UnknownError as exc:
        logger.warning("Cookie revalidation rejected: %s", exc)
        return False
    return True
