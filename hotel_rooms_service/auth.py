from typing import Any, Callable, Dict

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import ALGORITHM, SECRET_KEY
from .results import ErrorKind, ServiceError

security = HTTPBearer()

# permission entry flag per action
ACTION_FLAGS = {
    "view": "can_view",
    "create": "can_create",
    "edit": "can_edit",
    "delete": "can_delete",
}


async def get_current_user_claims(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Dict[str, Any]:
    """
    Decode a JWT bearer token and extract the caller's claims.

    The token is issued by the back-office auth service and carries the
    caller's role permissions as a list of per-module entries::

        {"module": "rooms", "can_view": true, "can_create": false, ...}

    Parameters
    ----------
    credentials : HTTPAuthorizationCredentials
        Authorization header parsed by FastAPI's HTTPBearer.

    Returns
    -------
    Dict[str, Any]
        ``sub`` (caller id) and ``permissions`` (list of entries).

    Raises
    ------
    HTTPException
        401 if the token is invalid, expired or lacks a subject.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(credentials.credentials, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise credentials_exception

    subject = payload.get("sub")
    if not subject or not isinstance(subject, str):
        raise credentials_exception

    permissions = payload.get("permissions") or []
    if not isinstance(permissions, list):
        raise credentials_exception

    return {"sub": subject, "permissions": permissions}


def is_allowed(claims: Dict[str, Any], module: str, action: str) -> bool:
    flag = ACTION_FLAGS[action]
    return any(
        isinstance(entry, dict) and entry.get("module") == module and entry.get(flag) is True
        for entry in claims.get("permissions", [])
    )


def require_permission(module: str, action: str) -> Callable:
    """
    Build a dependency that enforces a module permission.

    Parameters
    ----------
    module : str
        Back-office module name, e.g. ``"rooms"`` or ``"reservations"``.
    action : str
        One of ``view``, ``create``, ``edit``, ``delete``.

    Returns
    -------
    Callable
        A FastAPI dependency returning the caller's claims, or raising a
        ``forbidden`` error (HTTP 403) when the permission is missing.
    """
    if action not in ACTION_FLAGS:
        raise ValueError(f"Unknown action: {action}")

    async def dependency(claims: Dict[str, Any] = Depends(get_current_user_claims)) -> Dict[str, Any]:
        if not is_allowed(claims, module, action):
            raise ServiceError(ErrorKind.FORBIDDEN, f"Not allowed to {action} {module}")
        return claims

    return dependency
