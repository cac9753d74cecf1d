from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AudioRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    video_id: Optional[str] = Field(default=None, alias="videoId")


class AudioResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    audio_url: str = Field(alias="audioUrl")
    title: str
    thumbnail: str


class ErrorResponse(BaseModel):
    error: str
