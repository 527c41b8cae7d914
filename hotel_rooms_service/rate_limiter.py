import threading
import time
from typing import Any, Dict, List

from fastapi import Depends, HTTPException, status

from .auth import get_current_user_claims
from .config import RESERVATION_RATE_LIMIT, RESERVATION_RATE_WINDOW

_caller_request_log: Dict[str, List[float]] = {}
_log_lock = threading.Lock()


def reset_rate_limits() -> None:
    with _log_lock:
        _caller_request_log.clear()


def reservation_rate_limiter(claims: Dict[str, Any] = Depends(get_current_user_claims)):
    """
    Rate limit reservation writes per authenticated caller.

    Sliding window of RESERVATION_RATE_WINDOW seconds allowing at most
    RESERVATION_RATE_LIMIT requests.
    """
    caller = claims["sub"]
    now = time.time()
    window_start = now - RESERVATION_RATE_WINDOW

    with _log_lock:
        timestamps = [ts for ts in _caller_request_log.get(caller, []) if ts >= window_start]

        if len(timestamps) >= RESERVATION_RATE_LIMIT:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many reservation operations in a short time",
            )

        timestamps.append(now)
        _caller_request_log[caller] = timestamps
