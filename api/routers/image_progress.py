from typing import List

from fastapi import APIRouter, HTTPException

from models.progress_models import ImageGenerationProgress, StageUpdateRequest, StartProgressRequest
from services.image_progress import progress_store
from services.image_utils import generate_image_id

router = APIRouter()


def _get_or_404(image_id: str) -> ImageGenerationProgress:
    record = progress_store.calculate_progress(image_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Progress record not found")
    return record


@router.post("", response_model=ImageGenerationProgress, response_model_by_alias=True)
async def start_progress(request: StartProgressRequest):
    return progress_store.add(
        request.image_id or generate_image_id(),
        request.prompt,
        original_image_id=request.original_image_id,
        original_image_url=request.original_image_url,
        quality=request.quality,
        style=request.style,
        size=request.size,
        model=request.model,
    )


@router.get("", response_model=List[ImageGenerationProgress], response_model_by_alias=True)
async def list_generating():
    """Every record still generating, advanced to the current time."""
    records = []
    for record in progress_store.get_all_generating():
        records.append(progress_store.calculate_progress(record.image_id))
    return records


@router.get("/{image_id}", response_model=ImageGenerationProgress, response_model_by_alias=True)
async def get_progress(image_id: str):
    return _get_or_404(image_id)


@router.patch("/{image_id}/stage", response_model=ImageGenerationProgress, response_model_by_alias=True)
async def update_stage(image_id: str, request: StageUpdateRequest):
    record = progress_store.update_stage(image_id, request.stage, request.message)
    if record is None:
        raise HTTPException(status_code=404, detail="Progress record not found")
    return record


@router.delete("/{image_id}")
async def remove_progress(image_id: str):
    if not progress_store.remove(image_id):
        raise HTTPException(status_code=404, detail="Progress record not found")
    return {"success": True}
