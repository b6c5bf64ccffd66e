"""
Image editing with gpt-image-1 (image-to-image and inpainting) or Flux Kontext.
"""
import os

import httpx
import logfire
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from clients.openai_image_client import OpenAIImageClient
from clients.replicate_client import ReplicateImageClient
from errors import ApiError, MissingApiKeyError, ProviderError, api_error_from_provider_error, missing_key_error
from models.image_models import ImageEditRequest, ImageGenerationResponse, ImageResult
from redis_manager import ImageUrlStore, get_image_store
from services.image_progress import complete_tracking, fail_tracking, start_tracking
from services.image_url_validator import resolve_editable_image_url
from services.image_utils import get_image_orientation, map_edit_size, quality_to_gpt

router = APIRouter()

FLUX_EDIT_MODELS = ("flux-kontext-pro", "flux-kontext-max")

MODEL_CAPABILITIES = {
    "gpt-image-1": "Multimodal editing with inpainting support",
    "flux-kontext-pro": "Fast text-based editing (~4-6s)",
    "flux-kontext-max": "Premium quality with typography (~6-10s)",
}


def _is_gemini_file_uri(image_url: str) -> bool:
    return not image_url.startswith("data:") and (
        "generativelanguage.googleapis.com" in image_url or "files/" in image_url
    )


async def _edit_with_openai(request: ImageEditRequest, size: str) -> ImageGenerationResponse:
    if _is_gemini_file_uri(request.image_url):
        raise ApiError(
            400,
            "Image editing not available for Gemini file URIs",
            "Gemini file URIs cannot be accessed by external services. "
            "Please upload the image again or use a generated image.",
            suggestion="Try uploading the image file directly instead of using a Gemini URI",
        )

    client = OpenAIImageClient()
    result = await client.smart_edit(
        request.image_url,
        request.prompt,
        size=size,
        quality=quality_to_gpt(request.quality),
        style=request.style,
        mask=request.mask,
    )

    metadata = {
        "model": result.model or "gpt-image-1",
        "provider": "openai",
        "quality": request.quality,
        "style": request.style,
        "size": request.size,
        "originalPrompt": request.prompt,
        "editMode": True,
        "method": result.method or "image-to-image",
        "imageCount": 1,
    }
    if "fallback" in (result.model or ""):
        metadata["note"] = "Using fallback model due to GPT-Image-1 availability"

    return ImageGenerationResponse(
        images=[
            ImageResult(
                url=result.image_url,
                original_url=result.original_image_url or request.image_url,
                revised_prompt=result.revised_prompt or request.prompt,
                index=0,
            )
        ],
        metadata=metadata,
    )


async def _edit_with_flux(request: ImageEditRequest, store: ImageUrlStore) -> ImageGenerationResponse:
    input_image = await resolve_editable_image_url(
        request.image_url, image_id=request.image_id, image_timestamp=request.image_created_at, store=store
    )

    client = ReplicateImageClient()
    edited_url = await client.edit_image(
        request.model,
        {
            "prompt": request.prompt,
            "input_image": input_image,
            "aspect_ratio": "match_input_image",
            "output_format": "png",
            "safety_tolerance": 2,
        },
    )

    return ImageGenerationResponse(
        images=[ImageResult(url=edited_url, original_url=request.image_url, revised_prompt=request.prompt, index=0)],
        metadata={
            "model": request.model,
            "provider": "replicate",
            "quality": request.quality,
            "style": request.style,
            "size": request.size,
            "originalPrompt": request.prompt,
            "editMode": True,
            "method": "image-to-image",
            "imageCount": 1,
        },
    )


@router.post("/edit-image", response_model=ImageGenerationResponse, response_model_by_alias=True)
async def edit_image(request: ImageEditRequest, store: ImageUrlStore = Depends(get_image_store)):
    if request.model == "gpt-image-1" and not os.getenv("OPENAI_API_KEY"):
        raise missing_key_error("openai", "OPENAI_API_KEY")
    if request.model in FLUX_EDIT_MODELS and not os.getenv("REPLICATE_API_KEY"):
        raise missing_key_error("replicate", "REPLICATE_API_KEY")

    if not request.image_url:
        raise ApiError(400, "Image URL is required")
    if not request.prompt:
        raise ApiError(400, "Edit prompt is required")

    if request.model not in MODEL_CAPABILITIES:
        raise ApiError(
            400,
            "Invalid model specified",
            f'The model "{request.model}" is not supported for image editing.',
        )

    if "size" not in request.model_fields_set and request.image_width and request.image_height:
        orientation = get_image_orientation(request.image_width, request.image_height)
        request = request.model_copy(update={"size": orientation["image_size"]})

    size = map_edit_size(request.size)
    logfire.info(
        "Editing image",
        model=request.model,
        capability=MODEL_CAPABILITIES[request.model],
        size=size,
        has_mask=bool(request.mask),
    )
    progress_id = start_tracking(
        request.progress_id,
        request.prompt,
        original_image_id=request.image_id or request.progress_id,
        original_image_url=request.image_url,
        quality=request.quality,
        style=request.style,
        size=request.size,
        model=request.model,
    )

    try:
        if request.model == "gpt-image-1":
            response = await _edit_with_openai(request, size)
        else:
            response = await _edit_with_flux(request, store)
    except ApiError as e:
        fail_tracking(progress_id, e.details or e.error)
        raise
    except MissingApiKeyError as e:
        error = missing_key_error(e.provider, e.env_name)
        fail_tracking(progress_id, error.details or error.error)
        raise error
    except (ProviderError, httpx.HTTPError) as e:
        error = api_error_from_provider_error(e, fallback_error="Failed to edit image")
        fail_tracking(progress_id, error.details or error.error)
        raise error from e
    except Exception as e:
        logfire.error("Unexpected image edit failure", model=request.model, error=str(e))
        fail_tracking(progress_id, str(e))
        raise ApiError(500, "Failed to edit image", str(e)) from e

    complete_tracking(progress_id, response.images[0].model_dump(by_alias=True))
    return response


@router.get("/edit-image")
async def edit_image_capabilities():
    """Report whether gpt-image-1 is reachable and what the edit API supports."""
    try:
        available = await OpenAIImageClient().check_available()
    except MissingApiKeyError as e:
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "message": "GPT-Image-1 API not configured or accessible",
                "error": e.message,
            },
        )

    return {
        "status": "ok",
        "message": "GPT-Image-1 editing API is accessible",
        "provider": "openai",
        "model": "gpt-image-1",
        "available": available,
        "capabilities": {
            "features": [
                "Native Multimodal Image Generation",
                "Advanced Image-to-Image Editing",
                "Inpainting with Alpha Channel Masks",
                "Multi-Image Composition (up to 10 images)",
                "Conversational Editing with Context",
                "Accurate Text Rendering in Images",
            ],
            "sizes": ["1024x1024", "1536x1024", "1024x1536"],
            "quality": ["low", "medium", "high"],
            "style": ["vivid", "natural"],
            "mode": "multimodal",
            "description": "GPT-Image-1 is GPT-4o's native image generation capability with advanced multimodal features",
        },
    }
