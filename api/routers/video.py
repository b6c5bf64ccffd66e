"""
Video generation: Replicate Kling for quick clips, the studio pipeline for
the multi-step workflow.
"""
import httpx
import logfire
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from clients.replicate_client import VIDEO_MODELS, ReplicateImageClient, extract_output_url
from clients.studio_client import StudioPipelineClient
from errors import ApiError, MissingApiKeyError, ProviderError, api_error_from_provider_error, missing_key_error
from models.video_models import UnifiedVideoRequest, VideoGenerationRequest
from services.image_utils import detect_aspect_ratio

router = APIRouter()

# Kling renders take minutes; poll every 5s for up to 10 minutes
VIDEO_POLL_INTERVAL = 5.0
VIDEO_MAX_ATTEMPTS = 120


def _prediction_status(prediction: dict) -> dict:
    status = {
        "predictionId": prediction.get("id"),
        "status": prediction.get("status"),
    }
    video_url = extract_output_url(prediction.get("output"))
    if video_url:
        status["videoUrl"] = video_url
    if prediction.get("error"):
        status["error"] = str(prediction["error"])
    return status


@router.post("/generate-video")
async def generate_video(request: VideoGenerationRequest):
    if not request.prompt:
        raise ApiError(400, "Prompt is required")
    if request.backend != "replicate":
        raise ApiError(400, f"Unsupported backend: {request.backend}", "Supported backends: replicate")
    if request.model not in VIDEO_MODELS:
        raise ApiError(400, f"Unsupported model: {request.model}", f"Supported models: {', '.join(VIDEO_MODELS)}")

    if (
        "aspect_ratio" not in request.model_fields_set
        and request.start_image
        and request.start_image_width
        and request.start_image_height
    ):
        aspect_ratio = detect_aspect_ratio(request.start_image_width, request.start_image_height)
        request = request.model_copy(update={"aspect_ratio": aspect_ratio})

    try:
        client = ReplicateImageClient()
    except MissingApiKeyError as e:
        raise missing_key_error(e.provider, e.env_name)

    with logfire.span("generate_video", model=request.model, duration=request.duration, use_queue=request.use_queue):
        try:
            prediction = await client.start_video(
                request.model,
                request.prompt,
                duration=request.duration,
                aspect_ratio=request.aspect_ratio,
                negative_prompt=request.negative_prompt,
                start_image=request.start_image,
            )
            if request.use_queue:
                return {
                    "success": True,
                    "predictionId": prediction.get("id"),
                    "status": "processing",
                    "model": request.model,
                    "backend": request.backend,
                    "userId": request.user_id,
                    "chatId": request.chat_id,
                }

            prediction = await client.wait_for_prediction(
                prediction, poll_interval=VIDEO_POLL_INTERVAL, max_attempts=VIDEO_MAX_ATTEMPTS
            )
        except (ProviderError, httpx.HTTPError) as e:
            raise api_error_from_provider_error(e, fallback_error="Failed to generate video") from e

    video_url = extract_output_url(prediction.get("output"))
    if not video_url:
        raise ApiError(500, "Failed to generate video", "Replicate did not return a video URL")

    return {
        "success": True,
        "predictionId": prediction.get("id"),
        "status": prediction.get("status"),
        "videoUrl": video_url,
        "model": request.model,
        "duration": request.duration,
        "aspectRatio": request.aspect_ratio,
    }


@router.get("/generate-video/{prediction_id}")
async def get_video_status(prediction_id: str):
    try:
        client = ReplicateImageClient()
    except MissingApiKeyError as e:
        raise missing_key_error(e.provider, e.env_name)

    try:
        prediction = await client.get_prediction(prediction_id)
    except (ProviderError, httpx.HTTPError) as e:
        raise api_error_from_provider_error(e, fallback_error="Failed to get video status") from e
    return _prediction_status(prediction)


async def _run_workflow(request: UnifiedVideoRequest) -> dict:
    if request.workflow == "studio":
        result = await StudioPipelineClient().generate(
            request.prompt,
            image=request.start_image,
            user_id=request.user_id,
            chat_id=request.chat_id,
        )
        return {**result, "workflow": "studio"}

    options = {"aspect_ratio": request.aspect_ratio} if request.aspect_ratio else {}
    video_request = VideoGenerationRequest(
        prompt=request.prompt,
        duration=request.duration or 5,
        model=request.model or "standard",
        negative_prompt=request.negative_prompt,
        start_image=request.start_image,
        start_image_width=request.start_image_width,
        start_image_height=request.start_image_height,
        backend=request.backend,
        use_queue=True,
        user_id=request.user_id,
        chat_id=request.chat_id,
        **options,
    )
    try:
        result = await generate_video(video_request)
    except ApiError as e:
        raise ProviderError(f"Video generation failed: {e.details or e.error}", provider="replicate") from e
    return {**result, "workflow": "quick"}


@router.post("/video/unified")
async def unified_video(request: UnifiedVideoRequest):
    """Single entry point for both video workflows."""
    if not request.prompt:
        raise ApiError(400, "Prompt is required")

    logfire.info("Unified video request", workflow=request.workflow, backend=request.backend)
    try:
        return await _run_workflow(request)
    except (ProviderError, httpx.HTTPError) as e:
        logfire.error("Video workflow failed", workflow=request.workflow, error=str(e))
        return JSONResponse(
            status_code=500,
            content={
                "error": str(e) or "Failed to process video generation request",
                "status": "failed",
                "stage": "failed",
            },
        )
