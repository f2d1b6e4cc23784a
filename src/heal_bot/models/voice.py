"""Narration models."""

from enum import Enum

from pydantic import BaseModel, Field


class VoiceOption(str, Enum):
    """Narration voice picked by the web client."""
    OFF = "off"
    FEMALE = "female"
    MALE = "male"


class TTSRequest(BaseModel):
    """Request model for one-shot speech synthesis."""

    text: str = Field(..., min_length=1, max_length=5000)
    voice: VoiceOption = VoiceOption.FEMALE
