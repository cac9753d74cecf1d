"""Client for a remote extraction service (``POST /api/youtube-audio``)."""

from typing import Optional

import httpx
from loguru import logger

from .models import AudioResult, default_thumbnail


class RemoteExtractor:
    """Asks a melodia web service to run the extraction chain.

    Any failure of the remote call (network, non-2xx, bad payload) is
    reported as "no result", same as local exhaustion.
    """

    def __init__(
        self,
        service_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ) -> None:
        self.endpoint = service_url.rstrip("/") + "/api/youtube-audio"
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None
        self.timeout = timeout

    async def extract(self, video_id: str) -> Optional[AudioResult]:
        try:
            response = await self._client.post(
                self.endpoint, json={"videoId": video_id}, timeout=self.timeout
            )
        except httpx.HTTPError as e:
            logger.warning(f"Extraction service unreachable: {e}")
            return None

        if not response.is_success:
            logger.info(f"Extraction service returned {response.status_code} for {video_id}")
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("Extraction service returned a non-JSON payload")
            return None

        if not isinstance(data, dict) or not data.get("audioUrl"):
            logger.info(f"Extraction service had no audio for {video_id}")
            return None

        return AudioResult(
            audio_url=data["audioUrl"],
            title=data.get("title") or "Unknown",
            thumbnail=data.get("thumbnail") or default_thumbnail(video_id),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
