"""Bearer-token dependencies for FastAPI routes.

Three trust levels:

- ``require_user``: a valid token for an existing user, else 401.
- ``optional_user``: the user when a valid token is present, else None.
- ``require_admin``: ``require_user`` plus the administrator flag, else 403.
"""
import logging
from typing import Optional

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from library_tracker.user import User
from library_tracker.users import TokenError, UserStore

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

# Process-wide credential store
_user_store: Optional[UserStore] = None


def get_user_store() -> UserStore:
    global _user_store
    if _user_store is None:
        _user_store = UserStore()
    return _user_store


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(status_code=401, detail=message, headers={"WWW-Authenticate": "Bearer"})


def resolve_user(credentials: Optional[HTTPAuthorizationCredentials], store: UserStore) -> User:
    if credentials is None or not credentials.credentials:
        raise _unauthorized("No token provided, authorization denied")
    try:
        user_id = store.decode_token(credentials.credentials)
    except TokenError as e:
        logger.info(f"Token rejected: {e.reason}")
        raise _unauthorized(e.message)

    user = store.get_user(user_id)
    if user is None:
        logger.info(f"Token references missing user {user_id}")
        raise _unauthorized("User not found, authorization denied")
    return user


def require_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    store: UserStore = Depends(get_user_store),
) -> User:
    return resolve_user(credentials, store)


def optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    store: UserStore = Depends(get_user_store),
) -> Optional[User]:
    if credentials is None:
        return None
    try:
        return resolve_user(credentials, store)
    except HTTPException as e:
        logger.debug(f"Optional auth ignored: {e.detail}")
        return None


def require_admin(user: User = Depends(require_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
