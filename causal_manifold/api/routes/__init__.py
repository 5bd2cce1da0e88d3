"""
causal_manifold/api/routes/__init__.py

Dependencies shared by the /embeddings, /projection and /graph routers.

Every route on those routers takes ``Depends(require_api_key)``, so refinement
and projection work (which can run for seconds per request) never starts for
an unauthenticated caller.  /health is mounted without it for liveness checks.
"""
from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from causal_manifold.config import settings

# auto_error=False so a missing header reaches require_api_key and gets the
# same 401 body and WWW-Authenticate header as a wrong key.
_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def require_api_key(api_key: str | None = Security(_api_key_header)) -> str:
    """Compare X-API-Key against settings.api_key (API_KEY in the environment).

    Raises HTTP 401 when the header is missing or does not match.
    """
    if api_key != settings.api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key.",
            headers={"WWW-Authenticate": "ApiKey"},
        )
    return api_key
