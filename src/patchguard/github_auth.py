"""GitHub App helpers for the push fallback.

The push layer only needs a remote URL carrying an installation token. Minting
the App JWT is the caller's concern; these helpers exchange it for an
installation token, embed that token in a remote URL, and verify webhook
signatures for callers that forward webhook payloads.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import httpx

DEFAULT_API_BASE = "https://api.github.com"
SIGNATURE_PREFIX = "sha256="


class GitHubAuthError(RuntimeError):
    """Raised when an installation token cannot be obtained."""


def authenticated_remote_url(remote_url: str, token: str) -> str:
    """
    Embed an installation token in an https remote URL.

    Args:
        remote_url: https remote (``https://github.com/owner/repo.git``);
            any existing credentials are replaced
        token: Installation access token

    Returns:
        ``https://x-access-token:<token>@host/owner/repo.git``
    """
    if not token:
        raise ValueError("token must not be empty")
    parts = urlsplit(remote_url)
    if parts.scheme != "https" or not parts.hostname:
        raise ValueError(f"Only https remotes can carry a token: {remote_url!r}")
    netloc = parts.hostname
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    return urlunsplit(
        (parts.scheme, f"x-access-token:{token}@{netloc}", parts.path, parts.query, parts.fragment)
    )


def github_remote_url(owner: str, repo: str, host: str = "github.com") -> str:
    return f"https://{host}/{owner}/{repo}.git"


async def fetch_installation_token(
    installation_id: int,
    app_jwt: str,
    api_base: str = DEFAULT_API_BASE,
    *,
    timeout_s: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """
    Exchange an App JWT for an installation access token.

    Args:
        installation_id: GitHub App installation id
        app_jwt: Signed App JWT
        api_base: REST API root (GitHub Enterprise installs differ)
        timeout_s: Request timeout
        transport: Optional httpx transport (tests)

    Returns:
        The installation token

    Raises:
        GitHubAuthError: non-201 response, network error, or no token in body
    """
    url = f"{api_base.rstrip('/')}/app/installations/{installation_id}/access_tokens"
    headers = {
        "Accept": "application/vnd.github+json",
        "Authorization": f"Bearer {app_jwt}",
        "X-GitHub-Api-Version": "2022-11-28",
    }
    try:
        async with httpx.AsyncClient(timeout=timeout_s, transport=transport) as client:
            response = await client.post(url, headers=headers)
    except (httpx.NetworkError, httpx.TimeoutException) as e:
        raise GitHubAuthError(f"Token request failed: {e}") from e

    if response.status_code != 201:
        raise GitHubAuthError(
            f"Token request for installation {installation_id} returned {response.status_code}"
        )
    body: dict[str, Any] = response.json()
    token = body.get("token")
    if not isinstance(token, str) or not token:
        raise GitHubAuthError("Token response did not contain a token")
    return token


def verify_webhook_signature(payload: bytes | str, signature: str | None, secret: str) -> bool:
    """
    Verify an ``X-Hub-Signature-256`` header with a constant-time compare.

    Returns:
        True only for a well-formed ``sha256=<hex>`` signature matching the payload
    """
    if not signature or not signature.startswith(SIGNATURE_PREFIX):
        return False
    if not secret:
        return False
    body = payload.encode("utf-8") if isinstance(payload, str) else payload
    digest = SIGNATURE_PREFIX + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(digest.encode("ascii"), signature.encode("utf-8"))
