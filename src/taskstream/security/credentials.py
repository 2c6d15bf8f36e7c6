"""Bearer credential providers.

Tokens are issued elsewhere; the runtime only forwards whatever the provider
returns. ``None`` means the request goes out unauthenticated.
"""

from __future__ import annotations

import os
from typing import Callable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

CredentialProvider = Callable[[], Optional[str]]

bearer_scheme = HTTPBearer(auto_error=False)


def static_credentials(token: Optional[str]) -> CredentialProvider:
    value = (token or "").strip() or None

    def provider() -> Optional[str]:
        return value

    return provider


def env_credentials(name: str = "TASKSTREAM_BEARER_TOKEN") -> CredentialProvider:
    def provider() -> Optional[str]:
        return (os.getenv(name) or "").strip() or None

    return provider


def get_bearer_token(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Optional[str]:
    """FastAPI dependency returning the caller's bearer token, if any."""
    if creds is None or (creds.scheme or "").lower() != "bearer":
        return None
    return creds.credentials or None
