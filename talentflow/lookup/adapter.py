"""
Uniform cache-first wrapper around a remote collaborator.

A :class:`LookupAdapter` owns no network code itself.  Callers hand it
the logical lookup parameters (used to derive the cache key) and a
zero-argument coroutine function that performs the remote call.  The
adapter then:

1. returns the cached payload when one is present and fresh;
2. otherwise waits out the politeness delay, runs the fetcher under a
   timeout and retries connection resets a bounded number of times;
3. re-raises critical failures untouched;
4. turns non-critical failures into the collaborator's empty payload
   (which is not cached);
5. stores successful payloads before returning them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from ..cache import CacheStore, make_key
from ..errors import ConnectionReset, LookupTimeout, NonCriticalError, ServiceUnavailable

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]
EmptyFactory = Callable[[str], Any]


def empty_dict(reason: str) -> Dict[str, Any]:
    """Default empty payload: an empty mapping tagged with the failure reason."""
    return {"_empty_reason": reason}


class LookupAdapter:
    """Cache-first access to one external collaborator.

    Args:
        name: Collaborator name; also the cache-key prefix.
        store: Shared cache store.
        timeout: Seconds allowed for a single fetch attempt.
        politeness_delay: Seconds to wait before every real network call.
        max_retries: Extra attempts after a ``ConnectionReset``.
        retry_delay: Seconds between those attempts.
        empty_factory: Builds the empty payload returned for non-critical
            failures.
    """

    def __init__(
        self,
        name: str,
        store: CacheStore,
        *,
        timeout: float = 30.0,
        politeness_delay: float = 0.0,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        empty_factory: EmptyFactory = empty_dict,
    ) -> None:
        self.name = name
        self.store = store
        self.timeout = timeout
        self.politeness_delay = politeness_delay
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.empty_factory = empty_factory
        self.network_calls = 0

    def key_for(self, key_params: Any) -> str:
        return make_key(self.name, key_params)

    async def _fetch_with_retries(self, fetcher: Fetcher) -> Any:
        attempt = 0
        while True:
            self.network_calls += 1
            try:
                return await asyncio.wait_for(fetcher(), timeout=self.timeout)
            except asyncio.TimeoutError as exc:
                raise LookupTimeout(f"no response within {self.timeout:g}s", service=self.name) from exc
            except ConnectionReset as exc:
                if attempt >= self.max_retries:
                    raise ServiceUnavailable(
                        f"connection reset after {attempt + 1} attempts", service=self.name
                    ) from exc
                attempt += 1
                logger.warning(
                    "%s: connection reset, retrying (%d/%d) in %.1fs",
                    self.name,
                    attempt,
                    self.max_retries,
                    self.retry_delay,
                )
                await asyncio.sleep(self.retry_delay)

    async def fetch_or_cache(
        self,
        key_params: Any,
        fetcher: Fetcher,
        empty_factory: Optional[EmptyFactory] = None,
    ) -> Any:
        """Return the payload for ``key_params``, fetching it on a cache miss.

        Args:
            key_params: Logical lookup parameters used to derive the cache key.
            fetcher: Zero-argument coroutine function performing the remote call.
            empty_factory: Overrides the adapter's empty-payload builder.

        Returns:
            The cached or freshly fetched payload, or the empty payload when
            the collaborator had nothing usable.

        Raises:
            CriticalError: Propagated unchanged from the fetcher, or raised
                for a timeout or exhausted connection-reset retries.
        """
        key = self.key_for(key_params)
        cached = self.store.get(key)
        if cached is not None:
            logger.debug("%s: cache hit %s", self.name, key)
            return cached

        if self.politeness_delay > 0:
            await asyncio.sleep(self.politeness_delay)

        try:
            payload = await self._fetch_with_retries(fetcher)
        except NonCriticalError as exc:
            logger.info("%s: %s; using empty payload", self.name, exc.message)
            return (empty_factory or self.empty_factory)(f"{exc.kind.value}: {exc.message}")

        if payload is None:
            return (empty_factory or self.empty_factory)("empty_result: no payload")
        self.store.put(key, payload)
        return payload
