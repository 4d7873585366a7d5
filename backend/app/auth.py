"""
Authentication
Static API keys for hospital and operator clients

Donor response links are not covered: the token in the link is the credential.
"""

import secrets

from fastapi import Security, HTTPException, status
from fastapi.security import APIKeyHeader
from .config import get_settings

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)


def _is_known_key(api_key: str) -> bool:
    return any(secrets.compare_digest(api_key, known) for known in get_settings().api_keys)


async def verify_api_key(api_key: str = Security(API_KEY_HEADER)) -> str:
    """
    Check the X-API-Key header against the configured keys

    Raises:
        HTTPException: 403 when the header is missing or the key is unknown
    """
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key is missing. Include X-API-Key header in request."
        )

    if not _is_known_key(api_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key"
        )

    return api_key
