"""
Multi-image composition: combine 2-10 images under one prompt via WaveSpeed.
"""
from typing import List

import logfire
from fastapi import APIRouter

from clients.wavespeed_client import MAX_IMAGES, MULTI_IMAGE_MODEL, WaveSpeedMultiImageClient
from errors import ApiError, MissingApiKeyError, missing_key_error
from models.image_models import ImageGenerationResponse, ImageResult, MultiImageEditRequest
from services.image_url_validator import (
    ImageUrlExpiredError,
    ensure_image_url_accessible,
    expired_url_error,
    is_replicate_delivery_url,
)

router = APIRouter()

MIN_IMAGES = 2


async def _recover_expiring_urls(images: List[str]) -> List[str]:
    """Replicate delivery URLs may have expired; swap those for data URLs."""
    recovered = []
    for image in images:
        if image.startswith("http") and is_replicate_delivery_url(image):
            try:
                image = await ensure_image_url_accessible(image)
            except ImageUrlExpiredError as e:
                raise expired_url_error(image) from e
        recovered.append(image)
    return recovered


@router.post("/edit-multi-image", response_model=ImageGenerationResponse, response_model_by_alias=True)
async def edit_multi_image(request: MultiImageEditRequest):
    images = request.images
    prompt = request.prompt

    if not images or not isinstance(images, list):
        raise ApiError(400, "Images array is required and must not be empty")
    if not prompt or not isinstance(prompt, str) or not prompt.strip():
        raise ApiError(400, "Prompt is required")
    if len(images) < MIN_IMAGES:
        raise ApiError(400, "At least 2 images are required for multi-image editing")
    if len(images) > MAX_IMAGES:
        raise ApiError(400, "Maximum 10 images allowed for multi-image editing")

    try:
        client = WaveSpeedMultiImageClient()
    except MissingApiKeyError as e:
        raise missing_key_error(e.provider, e.env_name)

    validation = client.validate_images(images)
    if not validation["valid"]:
        raise ApiError(400, "Invalid images provided", ", ".join(validation["errors"]))

    logfire.info(
        "Multi-image edit",
        image_count=len(images),
        guidance_scale=request.guidance_scale,
        safety_tolerance=request.safety_tolerance,
    )
    images = await _recover_expiring_urls(images)

    result = await client.generate_multi_image_edit(
        images,
        prompt,
        guidance_scale=request.guidance_scale,
        safety_tolerance=request.safety_tolerance,
    )
    if not result.success:
        raise ApiError(500, "Multi-image generation failed", result.error or "Unknown error occurred")

    return ImageGenerationResponse(
        images=[ImageResult(url=result.image_url, index=0, revised_prompt=prompt)],
        metadata={
            "model": "flux-kontext-max-multi",
            "provider": "wavespeed",
            "originalPrompt": prompt,
            "editMode": True,
            "method": "multi-image-composition",
            "imageCount": len(images),
            "inputImages": len(images),
            "guidanceScale": request.guidance_scale,
            "safetyTolerance": request.safety_tolerance,
            "taskId": result.task_id,
            **result.metadata,
        },
    )


@router.get("/edit-multi-image")
async def multi_image_capabilities():
    return {
        "status": "ok",
        "message": "Multi-image edit API is accessible",
        "provider": "wavespeed",
        "model": "flux-kontext-max-multi",
        "capabilities": {
            "features": [
                "Multi-Image Composition (2-10 images)",
                "Text-Guided Image Combination",
                "Style Transfer Between Images",
                "Object Composition",
                "Scene Merging",
            ],
            "maxImages": MAX_IMAGES,
            "minImages": MIN_IMAGES,
            "supportedFormats": ["data URLs", "HTTP URLs"],
            "model": MULTI_IMAGE_MODEL,
            "description": "Combines multiple images with text prompts to create new composite images",
        },
    }
