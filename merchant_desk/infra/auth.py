"""API authentication for the inbound message endpoint."""

import hmac
from typing import Optional

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader, APIKeyQuery

from merchant_desk.infra.config import config

# API key header
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
api_key_query = APIKeyQuery(name="api_key", auto_error=False)


async def verify_api_key(
    api_key: Optional[str] = Security(api_key_header),
    api_key_query_param: Optional[str] = Security(api_key_query),
) -> None:
    """
    Verify the shared key chat adapters send with every inbound message.

    Supports both header (X-API-Key) and query parameter (api_key). When
    INBOUND_API_KEY is unset outside production, the check is skipped so a
    local adapter can talk to the service without setup.

    Raises:
        HTTPException: If API key is invalid or missing
    """
    expected = config.INBOUND_API_KEY
    if not expected:
        if config.APP_ENV == "production":
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Inbound API key not configured",
            )
        return

    key = api_key or api_key_query_param
    if not key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required. Provide X-API-Key header or api_key query parameter.",
            headers={"WWW-Authenticate": "ApiKey"},
        )
    if not hmac.compare_digest(key.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )
