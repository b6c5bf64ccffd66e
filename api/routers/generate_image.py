"""
Text-to-image generation across OpenAI (gpt-image-1) and Replicate (Flux).
"""
import httpx
import logfire
from fastapi import APIRouter

from clients.openai_image_client import OpenAIImageClient
from clients.replicate_client import IMAGE_MODELS, ReplicateImageClient
from errors import ApiError, MissingApiKeyError, ProviderError, api_error_from_provider_error, missing_key_error
from models.image_models import ImageGenerationRequest, ImageGenerationResponse, ImageIntentRequest, ImageResult
from services.image_progress import complete_tracking, fail_tracking, start_tracking
from services.image_utils import (
    extract_image_prompt,
    is_image_generation_request,
    quality_to_gpt,
    size_to_aspect_ratio,
    validate_portrait_generation,
)

router = APIRouter()

SUPPORTED_MODELS = ["gpt-image-1", *IMAGE_MODELS]
MODEL_LABELS = {"gpt-image-1": "GPT-Image-1"}


async def _generate_with_openai(request: ImageGenerationRequest) -> ImageGenerationResponse:
    mapped_quality = quality_to_gpt(request.quality)
    client = OpenAIImageClient()

    if request.image_context:
        result = await client.generate_image_with_context(
            request.prompt, request.image_context, quality=mapped_quality, size=request.size
        )
    else:
        result = await client.generate_image(request.prompt, quality=mapped_quality, size=request.size, n=1)

    return ImageGenerationResponse(
        images=[ImageResult(url=result.image_url, revised_prompt=result.revised_prompt or request.prompt, index=0)],
        metadata={
            "model": "gpt-image-1",
            "provider": "openai",
            "quality": request.quality,
            "mappedQuality": mapped_quality,
            "style": request.style,
            "size": request.size,
            "originalPrompt": request.original_prompt or request.prompt,
            "imageCount": 1,
        },
    )


async def _generate_with_replicate(request: ImageGenerationRequest) -> ImageGenerationResponse:
    client = ReplicateImageClient()
    image_url = await client.generate_image(
        request.model,
        request.prompt,
        aspect_ratio=size_to_aspect_ratio(request.size),
        output_format="jpg",
        guidance_scale=4.5 if request.style == "vivid" else 3.5,
    )

    return ImageGenerationResponse(
        images=[ImageResult(url=image_url, revised_prompt=request.prompt, index=0)],
        metadata={
            "model": request.model,
            "provider": "replicate",
            "style": request.style,
            "size": request.size,
            "originalPrompt": request.original_prompt or request.prompt,
            "imageCount": 1,
        },
    )


@router.post("/generate-image", response_model=ImageGenerationResponse, response_model_by_alias=True)
async def generate_image(request: ImageGenerationRequest):
    """
    Generate one image from a text prompt.

    The provider is picked from `model`: `gpt-image-1` goes to OpenAI, the
    Flux models go to Replicate.
    """
    if not request.prompt:
        raise ApiError(400, "Prompt is required")

    portrait = validate_portrait_generation(request.size, request.model)
    if request.model in SUPPORTED_MODELS and not portrait["is_valid"]:
        raise ApiError(400, "Invalid size for model", portrait["error"])

    if request.model == "gpt-image-1":
        generate = _generate_with_openai
    elif request.model in IMAGE_MODELS:
        generate = _generate_with_replicate
    else:
        raise ApiError(
            400,
            f"Unsupported model: {request.model}",
            f"Supported models: {', '.join(SUPPORTED_MODELS)}",
        )

    logfire.info("Generating image", model=request.model, size=request.size, quality=request.quality)
    progress_id = start_tracking(
        request.progress_id,
        request.prompt,
        original_image_id=request.original_image_id,
        quality=request.quality,
        style=request.style,
        size=request.size,
        model=request.model,
    )

    try:
        response = await generate(request)
    except MissingApiKeyError as e:
        error = missing_key_error(e.provider, e.env_name)
        fail_tracking(progress_id, error.details or error.error)
        raise error
    except (ProviderError, httpx.HTTPError) as e:
        label = MODEL_LABELS.get(request.model, request.model)
        error = api_error_from_provider_error(
            e,
            fallback_error=f"Failed to generate image with {label}",
            fallback_details="Image generation failed",
        )
        fail_tracking(progress_id, error.details or error.error)
        raise error from e
    except Exception as e:
        label = MODEL_LABELS.get(request.model, request.model)
        logfire.error("Unexpected image generation failure", model=request.model, error=str(e))
        fail_tracking(progress_id, str(e))
        raise ApiError(500, f"Failed to generate image with {label}", str(e)) from e

    complete_tracking(progress_id, response.images[0].model_dump(by_alias=True))
    return response


@router.post("/image-intent")
async def image_intent(request: ImageIntentRequest):
    """Tell the chat client whether a message asks for an image, and the prompt to use."""
    if not is_image_generation_request(request.message):
        return {"isImageRequest": False}
    return {"isImageRequest": True, "prompt": extract_image_prompt(request.message)}
