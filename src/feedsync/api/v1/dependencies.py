"""Shared API dependencies for viewer identity and the gateway."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from feedsync.core.security import decode_viewer_token
from feedsync.core.settings import settings
from feedsync.db.session import SessionLocal
from feedsync.services.changefeed import ChangeFeed
from feedsync.services.gateway import FeedGateway
from feedsync.services.sql_gateway import SqlFeedGateway

# Bearer tokens are optional; anonymous viewers may read public feeds.
bearer_scheme = HTTPBearer(auto_error=False)

_change_feed = ChangeFeed()


def get_change_feed() -> ChangeFeed:
    """Return the process-wide change feed."""
    return _change_feed


def get_gateway(
    changes: Annotated[ChangeFeed, Depends(get_change_feed)],
) -> FeedGateway:
    """Return a gateway over the configured relational store."""
    return SqlFeedGateway(SessionLocal, changes)


def get_viewer_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    x_viewer_id: Annotated[str | None, Header(alias="X-Viewer-Id")] = None,
) -> str | None:
    """Resolve the viewer identity for a request.

    With a shared secret configured only a signed bearer token is trusted;
    otherwise the plain ``X-Viewer-Id`` header is accepted.

    Raises:
        HTTPException: If a bearer token is present but invalid.
    """
    secret = settings.gateway_shared_secret
    if secret:
        if credentials is None:
            return None
        try:
            return decode_viewer_token(
                credentials.credentials, secret, algorithm=settings.jwt_algorithm
            )
        except JWTError as err:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Could not validate credentials",
            ) from err
    return x_viewer_id or None


def require_viewer(
    viewer_id: Annotated[str | None, Depends(get_viewer_id)],
) -> str:
    """Return the viewer identity or reject the request.

    Raises:
        HTTPException: If the request carries no viewer identity.
    """
    if viewer_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Viewer identity required",
        )
    return viewer_id


GatewayDep = Annotated[FeedGateway, Depends(get_gateway)]
ChangeFeedDep = Annotated[ChangeFeed, Depends(get_change_feed)]
ViewerDep = Annotated[str | None, Depends(get_viewer_id)]
RequiredViewerDep = Annotated[str, Depends(require_viewer)]
