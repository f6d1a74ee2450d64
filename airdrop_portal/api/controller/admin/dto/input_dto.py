from pydantic import BaseModel, Field


class PauseRequestDto(BaseModel):
    """DTO for toggling claim intake."""

    paused: bool = Field(..., description="True stops new claims, False resumes them")
