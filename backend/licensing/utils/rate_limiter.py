"""
Per-process sliding window rate limiter for the public OTP endpoints.
Only throttles request volume; OTP correctness never depends on it.
"""
import threading
import time
from typing import Dict, Tuple

from fastapi import Request, HTTPException

# {(ip, path): (window_start, count)}
_rate_limit_store: Dict[Tuple[str, str], Tuple[float, int]] = {}
_lock = threading.Lock()


def rate_limit(requests: int, window: int):
    """
    FastAPI dependency factory.
    Example: Depends(rate_limit(requests=5, window=60))
    """
    def limiter(request: Request):
        ip = request.client.host if request.client else "unknown"
        key = (ip, request.url.path)
        now = time.time()

        with _lock:
            window_start, count = _rate_limit_store.get(key, (now, 0))

            # Reset window if expired
            if now - window_start > window:
                window_start, count = now, 0

            if count >= requests:
                retry_in = int(window - (now - window_start))
                raise HTTPException(
                    status_code=429,
                    detail=f"Rate limit exceeded. Try again in {retry_in} seconds.",
                )

            _rate_limit_store[key] = (window_start, count + 1)
        return True

    return limiter


def reset_rate_limits() -> None:
    with _lock:
        _rate_limit_store.clear()
