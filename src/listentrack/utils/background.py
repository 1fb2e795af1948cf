from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor

# One worker: the only job is the first fetch right after a login, and
# FetchPipeline serializes cycles anyway.
_login_fetch_pool: ThreadPoolExecutor | None = None


def _pool() -> ThreadPoolExecutor:
    global _login_fetch_pool
    if _login_fetch_pool is None:
        _login_fetch_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="listentrack-login-fetch")
    return _login_fetch_pool


def submit_background(func, *args, **kwargs) -> Future:
    """Run `func` off the request thread so /callback can redirect immediately."""
    return _pool().submit(func, *args, **kwargs)


def shutdown_background() -> None:
    """Drop the pool at process exit; a fetch still running is not awaited."""
    global _login_fetch_pool
    if _login_fetch_pool is not None:
        _login_fetch_pool.shutdown(wait=False)
        _login_fetch_pool = None
