"""YouTube audio extraction endpoint."""

import json

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError

from melodia.domain.playback.resolver import Extractor

from ..deps import get_extractor
from ..schemas import AudioRequest, AudioResponse, ErrorResponse

router = APIRouter()

EXHAUSTED_MESSAGE = "Could not extract audio. All sources are down. Try again later."


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@router.post(
    "/youtube-audio",
    response_model=AudioResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def youtube_audio(request: Request, extractor: Extractor = Depends(get_extractor)):
    """Resolve a YouTube video id to a direct audio URL."""
    try:
        body = await request.json()
        audio_request = AudioRequest.model_validate(body)
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError):
        return _error(400, "Video ID is required")

    video_id = (audio_request.video_id or "").strip()
    if not video_id:
        return _error(400, "Video ID is required")

    logger.info(f"Extracting audio for: {video_id}")
    result = await extractor.extract(video_id)
    if result is None:
        return _error(404, EXHAUSTED_MESSAGE)

    return AudioResponse(audio_url=result.audio_url, title=result.title, thumbnail=result.thumbnail)
