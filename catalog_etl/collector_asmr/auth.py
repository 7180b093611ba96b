"""Credential exchange with the catalog API."""
from __future__ import annotations

import logging

import httpx

from catalog_etl.errors import AuthError

LOGIN_PATH = "/api/auth/me"
LOGGER = logging.getLogger(__name__)


def login(client: httpx.Client, base_url: str, account: str, password: str) -> str:
    """Exchange account/password for an ``Authorization`` header value."""
    url = f"{base_url}{LOGIN_PATH}"
    try:
        response = client.post(
            url,
            json={"name": account, "password": password},
            headers={"Content-Type": "application/json"},
        )
    except httpx.HTTPError as exc:
        raise AuthError(f"login failed, network error ({exc}); try setting a proxy via HTTPS_PROXY") from exc

    if not response.is_success:
        raise AuthError(f"login rejected for account {account!r} (status={response.status_code})")

    try:
        body = response.json()
    except ValueError as exc:
        raise AuthError("login response is not valid JSON") from exc

    token = body.get("token") if isinstance(body, dict) else None
    if not token:
        raise AuthError("login response carried no token")
    LOGGER.debug("Logged in as %s", account)
    return f"Bearer {token}"
