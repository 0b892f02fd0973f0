"""
Single-flight access token cache.
Per scope set the cache is Empty, Valid, or Refreshing. Callers that find a refresh in flight
wait for it instead of starting another, so one expiry window costs one exchange call.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

from workload_identity.config import DEFAULT_REFRESH_MARGIN_SECONDS
from workload_identity.models import AccessToken

logger = logging.getLogger(__name__)

ScopeKey = tuple[str, ...]
RefreshFn = Callable[[], Awaitable[AccessToken]]


def _cache_key(scopes: Iterable[str]) -> ScopeKey:
    return tuple(sorted(set(scopes)))


def _retrieve_exception(task: asyncio.Task) -> None:
    # Mark the outcome as observed when every waiter was cancelled
    if not task.cancelled():
        task.exception()


class TokenCache:
    """
    Holds the latest AccessToken per scope set and coordinates refreshes.
    The lock guards bookkeeping only; refresh() runs in its own task outside the lock, and
    waiters await it through asyncio.shield so a cancelled caller does not cancel the refresh.
    """

    def __init__(self, refresh_margin_seconds: float = DEFAULT_REFRESH_MARGIN_SECONDS):
        self._refresh_margin_seconds = refresh_margin_seconds
        self._tokens: dict[ScopeKey, AccessToken] = {}
        self._refreshing: dict[ScopeKey, asyncio.Task] = {}
        self._lock = asyncio.Lock()

    async def get_token(self, scopes: Iterable[str], refresh: RefreshFn) -> AccessToken:
        """
        Return the cached token for scopes if it is still valid; otherwise join the in-flight
        refresh or start one. Every waiter on a refresh gets the same token or the same exception.
        """
        key = _cache_key(scopes)
        async with self._lock:
            token = self._tokens.get(key)
            if token is not None and not token.expires_within(self._refresh_margin_seconds):
                return token
            task = self._refreshing.get(key)
            if task is None:
                logger.debug("Refreshing access token for scopes=%s", " ".join(key))
                task = asyncio.ensure_future(self._run_refresh(key, refresh))
                task.add_done_callback(_retrieve_exception)
                self._refreshing[key] = task
        return await asyncio.shield(task)

    async def _run_refresh(self, key: ScopeKey, refresh: RefreshFn) -> AccessToken:
        try:
            token = await refresh()
        except BaseException:
            async with self._lock:
                self._tokens.pop(key, None)
                self._refreshing.pop(key, None)
            raise
        async with self._lock:
            self._tokens[key] = token
            self._refreshing.pop(key, None)
        logger.debug("Cached access token for scopes=%s (expires_at=%s)", " ".join(key), token.expires_at)
        return token

    async def clear(self) -> None:
        """Drop every cached token. A refresh already in flight is left to finish."""
        async with self._lock:
            self._tokens.clear()
        logger.debug("Access token cache cleared")
