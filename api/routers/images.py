"""
Permanent image URLs keyed by client image id, and a small proxy that turns
a remote image into a data URL.
"""
import httpx
import logfire
from fastapi import APIRouter, Depends, HTTPException

from errors import ApiError
from models.image_models import ImageProxyRequest, SaveImageRequest
from redis_manager import ImageUrlStore, get_image_store
from services.image_url_validator import ImageUrlExpiredError, download_image_as_data_url

router = APIRouter()


@router.put("/images/{image_id}")
async def save_image(image_id: str, request: SaveImageRequest, store: ImageUrlStore = Depends(get_image_store)):
    record = await store.save_image(
        image_id,
        request.url,
        **request.model_dump(by_alias=True, exclude={"url"}, exclude_none=True),
    )
    logfire.info("Image URL saved", image_id=image_id)
    return record


@router.get("/images/{image_id}")
async def get_image(image_id: str, store: ImageUrlStore = Depends(get_image_store)):
    record = await store.get_image_by_local_id(image_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return record


@router.post("/image-proxy/convert-to-data-url")
async def convert_to_data_url(request: ImageProxyRequest):
    try:
        data_url = await download_image_as_data_url(request.image_url)
    except (httpx.HTTPError, ImageUrlExpiredError) as e:
        raise ApiError(400, "Failed to fetch image", str(e)) from e
    return {"dataUrl": data_url}
