"""Authorization header resolution for preview content and secure channels.

A fixed header value may be configured directly. When complete OAuth
client-credentials settings are present they take precedence and a bearer
token is requested from the identity provider once per run.
"""
from __future__ import annotations

import base64
import logging
from typing import Optional
from urllib.parse import quote, urljoin

import httpx

from ocesync.config import OAuthConfig
from ocesync.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

TOKEN_PATH = "/oauth2/v1/token"


async def request_bearer_token(oauth: OAuthConfig, client: httpx.AsyncClient) -> str:
    """Exchange client credentials for a `Bearer <token>` header value."""
    credentials = f"{oauth.client_id}:{oauth.client_secret}".encode("utf-8")
    basic = base64.b64encode(credentials).decode("ascii")
    scope = quote(oauth.client_scope_url or "", safe="")
    token_url = urljoin(oauth.idp_url or "", TOKEN_PATH)

    try:
        resp = await client.post(
            token_url,
            content=f"grant_type=client_credentials&scope={scope}",
            headers={
                "Authorization": f"Basic {basic}",
                "Content-Type": "application/x-www-form-urlencoded",
            },
        )
        resp.raise_for_status()
        data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        raise AuthenticationError(f"Token request to {token_url} failed: {e}") from e

    token = data.get("access_token") if isinstance(data, dict) else None
    if not token:
        raise AuthenticationError(f"Token response from {token_url} has no access_token")
    return f"Bearer {token}"


async def resolve_authorization(
    auth_str: Optional[str],
    oauth: Optional[OAuthConfig] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
    proxy_url: Optional[str] = None,
    timeout: float = 30.0,
) -> str:
    """Return the Authorization header value to send, or "" for public channels."""
    if oauth is not None and oauth.is_complete:
        logger.info("Requesting OAuth token from %s", oauth.idp_url)
        if client is not None:
            return await request_bearer_token(oauth, client)
        async with httpx.AsyncClient(timeout=timeout, proxy=proxy_url or None) as own_client:
            return await request_bearer_token(oauth, own_client)
    return auth_str or ""
