from datetime import datetime
from typing import Any, Dict, Literal, Optional

from models import CamelModel

ImageGenerationStage = Literal["initializing", "processing", "finalizing", "completed", "failed"]
ImageGenerationStatus = Literal["generating", "completed", "failed"]


class ImageGenerationProgress(CamelModel):
    """
    Simulated progress for one generation, for UI feedback only.

    Nothing here comes from the provider: progress is derived from elapsed
    time against an estimate.
    """

    image_id: str
    prompt: str
    original_image_id: Optional[str] = None  # Set for edits
    original_image_url: Optional[str] = None
    progress: int = 0
    stage: ImageGenerationStage = "initializing"
    stage_message: str = ""
    status: ImageGenerationStatus = "generating"
    elapsed_time: int = 0
    estimated_remaining_time: float = 0
    estimated_total_time: float = 0
    error: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    last_updated: datetime
    quality: Optional[str] = None
    style: Optional[str] = None
    size: Optional[str] = None
    model: Optional[str] = None
    generated_image: Optional[Dict[str, Any]] = None  # The final result


class StartProgressRequest(CamelModel):
    image_id: Optional[str] = None  # Generated when omitted
    prompt: str
    original_image_id: Optional[str] = None
    original_image_url: Optional[str] = None
    quality: Optional[str] = None
    style: Optional[str] = None
    size: Optional[str] = None
    model: Optional[str] = None


class StageUpdateRequest(CamelModel):
    stage: ImageGenerationStage
    message: Optional[str] = None
