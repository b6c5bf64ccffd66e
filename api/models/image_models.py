from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from models import CamelModel


class ImageGenerationRequest(CamelModel):
    prompt: Optional[str] = None
    original_prompt: Optional[str] = None  # The full original prompt from the user
    model: str = "flux-kontext-pro"
    quality: str = "standard"
    style: str = "vivid"
    size: str = "1024x1024"
    image_context: Optional[str] = None  # Description of an uploaded image to build on
    original_image_id: Optional[str] = None
    progress_id: Optional[str] = None  # Client id to track a progress record under


class ImageEditRequest(CamelModel):
    image_url: Optional[str] = None
    image_id: Optional[str] = None  # Local image id, used to look up a permanent URL
    prompt: Optional[str] = None
    model: str = "flux-kontext-pro"
    quality: str = "standard"
    style: str = "vivid"
    size: str = "1024x1024"
    mask: Optional[str] = None  # Optional inpainting mask (data URL or URL)
    image_created_at: Optional[datetime] = None  # When the source image was generated
    image_width: Optional[int] = None  # Source dimensions, used to pick a size when none is given
    image_height: Optional[int] = None
    progress_id: Optional[str] = None


class MultiImageEditRequest(CamelModel):
    # Loosely typed so malformed input gets our own 400 messages
    images: Optional[Any] = None
    prompt: Optional[Any] = None
    guidance_scale: float = 3.5
    safety_tolerance: str = "2"


class ImageResult(CamelModel):
    url: str
    revised_prompt: Optional[str] = None
    index: int = 0
    original_url: Optional[str] = None


class ImageGenerationResponse(CamelModel):
    """Normalized shape every image route returns, whatever the provider."""

    success: bool = True
    images: List[ImageResult]
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SaveImageRequest(CamelModel):
    url: str
    prompt: Optional[str] = None
    model: Optional[str] = None


class ImageProxyRequest(CamelModel):
    image_url: str


class ImageIntentRequest(CamelModel):
    message: str
