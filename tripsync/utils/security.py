"""
Caller identity resolution.

Authentication itself lives outside this service. Routes only need the id
of an already authenticated user, obtained through an IdentityResolver.
"""

from typing import Dict, Optional, Protocol

from fastapi import Depends, Request, WebSocket
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tripsync.core.errors import NotAuthenticated

security = HTTPBearer(auto_error=False)

class IdentityResolver(Protocol):
    def resolve(self, credential: str) -> Optional[int]:
        """Return the user id for a bearer credential, or None if unknown"""

class StaticTokenResolver:
    """Token map from settings, for development and tests"""

    def __init__(self, tokens: Dict[str, int]):
        self.tokens = dict(tokens)

    def resolve(self, credential: str) -> Optional[int]:
        return self.tokens.get(credential)

def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> int:
    """Resolve the caller's user id or fail with an authentication error"""
    if credentials is None:
        raise NotAuthenticated()
    resolver: IdentityResolver = request.app.state.identity_resolver
    user_id = resolver.resolve(credentials.credentials)
    if user_id is None:
        raise NotAuthenticated("Invalid credentials")
    return user_id

def websocket_credential(websocket: WebSocket) -> Optional[str]:
    """Bearer credential from the `token` query param or the Authorization header"""
    token = websocket.query_params.get("token")
    if token:
        return token
    scheme, _, value = websocket.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None

def resolve_websocket_user(websocket: WebSocket) -> Optional[int]:
    """User id behind a WebSocket handshake, or None when it carries no valid credential"""
    credential = websocket_credential(websocket)
    if credential is None:
        return None
    resolver: IdentityResolver = websocket.app.state.identity_resolver
    return resolver.resolve(credential)
