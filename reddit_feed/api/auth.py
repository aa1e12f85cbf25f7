"""
Service-level bearer authentication for the broker.

Callers of the refresh endpoint present a service key distinct from
any user's Reddit token.
"""

import secrets

from fastapi import HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from reddit_feed.config.settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)


async def verify_service_key(
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
) -> str:
    """
    Verify the service bearer credential.

    Returns:
        The validated key ("dev-mode" when no keys are configured)

    Raises:
        HTTPException: If the key is missing or unknown
    """
    valid_keys = get_settings().service_keys

    # No keys configured: allow all requests (dev mode)
    if not valid_keys:
        return "dev-mode"

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing service credential. Provide an Authorization: Bearer header.",
        )

    if not any(secrets.compare_digest(credentials.credentials, key) for key in valid_keys):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid service credential",
        )

    return credentials.credentials
