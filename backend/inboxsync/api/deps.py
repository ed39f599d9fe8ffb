"""Shared API dependencies."""
import hmac
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from inboxsync.config import get_settings
from inboxsync.database import get_db  # noqa: F401  (re-exported for routers and test overrides)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class RequestContext:
    """Store and actor a request acts for, taken from its access token."""

    store_id: str
    user_id: str


def get_request_context(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> RequestContext:
    """Decode the bearer access token into the caller's store and user."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    settings = get_settings()
    try:
        payload = jwt.decode(credentials.credentials, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        raise credentials_exception

    user_id = payload.get("sub")
    store_id = payload.get("store_id")
    if payload.get("type") != "access" or not user_id or not store_id:
        raise credentials_exception

    return RequestContext(store_id=str(store_id), user_id=str(user_id))


def verify_cron_secret(
    authorization: str | None = Header(None),
    x_cron_secret: str | None = Header(None),
) -> None:
    """Allow the scheduler in with CRON_SECRET as a bearer token or X-Cron-Secret header."""
    expected = (get_settings().cron_secret or "").strip()
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="CRON_SECRET is not configured",
        )

    provided = None
    if authorization and authorization.lower().startswith("bearer "):
        provided = authorization[7:].strip() or None
    if provided is None and x_cron_secret:
        provided = x_cron_secret.strip() or None

    if not provided or not hmac.compare_digest(provided, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
