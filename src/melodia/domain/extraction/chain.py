"""YouTube audio extraction fallback chain.

Walks an ordered list of independent backends, one request each, and returns
the first valid direct audio URL. Exhausting every backend is not an error:
``extract`` returns None and the caller falls back to the video embed.

Results are cached for a short time since direct stream URLs expire.
"""

from time import time
from typing import Optional, Sequence

import httpx
from loguru import logger

from .backends import ExtractionBackend
from .exceptions import BackendUnavailableError, ExtractionError, MalformedResponseError
from .models import AudioResult, ExtractionOutcome, Ok, Skip

CACHE_TTL_SECONDS = 600  # 10 minutes


class ExtractionChain:
    """Sequential, short-circuiting extraction over several backends."""

    def __init__(
        self,
        backends: Sequence[ExtractionBackend],
        client: Optional[httpx.AsyncClient] = None,
        cache_ttl: float = CACHE_TTL_SECONDS,
    ) -> None:
        self.backends = list(backends)
        self._client = client or httpx.AsyncClient(follow_redirects=True)
        self._owns_client = client is None
        self._cache_ttl = cache_ttl
        self._cache: dict[str, tuple[AudioResult, float]] = {}  # video_id -> (result, expires_at)

    async def extract(self, video_id: str) -> Optional[AudioResult]:
        """Return the first backend's result for ``video_id``, or None.

        Backends are tried strictly in order and never retried. A backend is
        skipped on network failure, timeout, non-2xx status, non-JSON payload,
        an error-flagged payload or an empty result set.
        """
        if not video_id:
            return None

        cached = self._cache_get(video_id)
        if cached:
            logger.debug(f"Extraction cache hit for {video_id}")
            return cached

        for backend in self.backends:
            logger.info(f"Trying {backend.name} for {video_id}")
            try:
                outcome = await self._query(backend, video_id)
            except ExtractionError as e:
                logger.info(f"{backend.name} failed: {e}")
                continue

            if isinstance(outcome, Skip):
                logger.info(f"{backend.name} skipped: {outcome.reason}")
                continue

            logger.info(f"Got audio for {video_id} from {backend.name}")
            self._cache[video_id] = (outcome.result, time() + self._cache_ttl)
            return outcome.result

        logger.warning(f"All {len(self.backends)} extraction backends failed for {video_id}")
        return None

    async def _query(self, backend: ExtractionBackend, video_id: str) -> ExtractionOutcome:
        try:
            response = await backend.fetch(self._client, video_id)
        except httpx.TimeoutException as e:
            raise BackendUnavailableError(f"timed out after {backend.timeout}s") from e
        except httpx.HTTPError as e:
            raise BackendUnavailableError(str(e) or type(e).__name__) from e

        if not response.is_success:
            raise BackendUnavailableError(f"returned {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponseError("payload is not JSON") from e

        try:
            outcome = backend.parse(video_id, payload)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MalformedResponseError(f"unexpected payload shape: {e!r}") from e

        if isinstance(outcome, Ok) and not outcome.result.audio_url:
            return Skip("empty audio url")
        return outcome

    def _cache_get(self, video_id: str) -> Optional[AudioResult]:
        entry = self._cache.get(video_id)
        if entry is None:
            return None
        result, expires_at = entry
        if time() < expires_at:
            return result
        del self._cache[video_id]
        return None

    def clear_cache(self) -> None:
        """Clear cached results, forcing fresh extraction."""
        self._cache.clear()
        logger.debug("Extraction cache cleared")

    def prune_expired_cache(self) -> int:
        """Remove expired entries from the cache.

        Returns:
            Number of entries removed
        """
        now = time()
        expired = [k for k, (_, exp) in self._cache.items() if exp <= now]
        for key in expired:
            del self._cache[key]
        if expired:
            logger.debug(f"Pruned {len(expired)} expired extraction cache entries")
        return len(expired)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
