from typing import Literal, Optional

from models import CamelModel


class VideoGenerationRequest(CamelModel):
    prompt: Optional[str] = None
    duration: int = 5
    aspect_ratio: str = "16:9"
    model: str = "standard"
    negative_prompt: Optional[str] = None
    start_image: Optional[str] = None
    start_image_width: Optional[int] = None  # Used to pick the aspect ratio when none is given
    start_image_height: Optional[int] = None
    backend: str = "replicate"
    use_queue: bool = False  # Return as soon as the prediction is created
    user_id: str = "anonymous"
    chat_id: str = "default"


class UnifiedVideoRequest(CamelModel):
    workflow: Literal["quick", "studio"] = "quick"
    prompt: Optional[str] = None
    backend: str = "replicate"
    model: Optional[str] = None
    duration: Optional[int] = None
    aspect_ratio: Optional[str] = None
    start_image: Optional[str] = None
    start_image_width: Optional[int] = None
    start_image_height: Optional[int] = None
    negative_prompt: Optional[str] = None
    user_id: str = "anonymous"
    chat_id: str = "default"
