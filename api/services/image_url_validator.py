"""
Image URL validation and recovery for expired provider URLs.

Replicate delivery URLs expire after 24 hours, so an image the user wants to
edit may no longer be reachable. `resolve_editable_image_url` runs the
recovery cascade: HEAD-check, stored permanent URL, download as data URL,
and finally a user-facing "please re-upload" error.
"""

import base64
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx
import logfire

from errors import ApiError
from redis_manager import ImageUrlStore

logger = logging.getLogger("services.image_url_validator")

REPLICATE_DELIVERY_HOST = "replicate.delivery"
PERMANENT_STORAGE_HOST = "blob.vercel-storage.com"
REPLICATE_URL_TTL_HOURS = 24


class ImageUrlExpiredError(Exception):
    pass


def is_replicate_delivery_url(url: str) -> bool:
    return REPLICATE_DELIVERY_HOST in url


def is_likely_expired_replicate_url(
    url: str, image_timestamp: Optional[datetime] = None, now: Optional[datetime] = None
) -> bool:
    """Heuristic only: Replicate URLs older than 24h are probably gone."""
    if not is_replicate_delivery_url(url) or image_timestamp is None:
        return False
    if image_timestamp.tzinfo is None:
        image_timestamp = image_timestamp.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    age_hours = (now - image_timestamp).total_seconds() / 3600
    return age_hours > REPLICATE_URL_TTL_HOURS


async def validate_image_url(
    url: str, *, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None
) -> bool:
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True, transport=transport) as client:
            response = await client.head(url)
        return response.is_success
    except httpx.HTTPError as e:
        logfire.warn("Image URL check failed", url=url[:100], error=str(e))
        return False


async def download_image_as_data_url(url: str, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> str:
    async with httpx.AsyncClient(timeout=30.0, follow_redirects=True, transport=transport) as client:
        response = await client.get(url)

    if not response.is_success:
        raise ImageUrlExpiredError(f"Failed to fetch image: {response.status_code} {response.reason_phrase}")

    mime_type = response.headers.get("content-type", "image/png").split(";")[0]
    encoded = base64.b64encode(response.content).decode("utf-8")
    data_url = f"data:{mime_type};base64,{encoded}"
    logger.info("Converted %s to data URL (%d KB)", url[:50], round(len(data_url) / 1024))
    return data_url


async def ensure_image_url_accessible(url: str, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> str:
    """
    Return a URL a provider can fetch: the URL itself when reachable,
    otherwise the downloaded image as a data URL.
    """
    if await validate_image_url(url, transport=transport):
        return url

    logfire.info("Image URL not accessible, attempting download", url=url[:100])
    try:
        return await download_image_as_data_url(url, transport=transport)
    except (httpx.HTTPError, ImageUrlExpiredError) as e:
        raise ImageUrlExpiredError(
            "Image URL has expired and could not be recovered. Please try editing a more recent image."
        ) from e


def expired_url_error(image_url: str) -> ApiError:
    is_replicate = is_replicate_delivery_url(image_url)
    return ApiError(
        400,
        "Image URL expired or inaccessible",
        "The Replicate image URL has expired. Replicate URLs are only available for 24 hours."
        if is_replicate
        else "The image URL is no longer accessible.",
        suggestion="To edit this image, please save it to your device first, then upload it again.",
        technical_info={
            "originalUrl": image_url,
            "errorType": "url_expired",
            "provider": "replicate" if is_replicate else "unknown",
        },
    )


async def resolve_editable_image_url(
    image_url: str,
    *,
    image_id: Optional[str] = None,
    image_timestamp: Optional[datetime] = None,
    store: Optional[ImageUrlStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """
    Run the URL recovery cascade and return a URL the provider can read.

    A Replicate URL already past its 24h lifetime skips the HEAD check.
    Raises ApiError (400, url_expired) when nothing works.
    """
    if image_url.startswith("data:") or PERMANENT_STORAGE_HOST in image_url:
        return image_url

    with logfire.span("resolve_editable_image_url", url=image_url[:100], image_id=image_id):
        if is_likely_expired_replicate_url(image_url, image_timestamp):
            logfire.info("Replicate URL is past its lifetime", image_id=image_id)
        elif await validate_image_url(image_url, transport=transport):
            return image_url

        if image_id and store is not None and is_replicate_delivery_url(image_url):
            stored = await store.get_image_by_local_id(image_id)
            if stored and stored.get("url"):
                logfire.info("Recovered permanent URL from store", image_id=image_id)
                return stored["url"]
            logfire.info("No permanent URL stored", image_id=image_id)

        try:
            data_url = await download_image_as_data_url(image_url, transport=transport)
        except (httpx.HTTPError, ImageUrlExpiredError) as e:
            logfire.error("Failed to recover image", url=image_url[:100], error=str(e))
            raise expired_url_error(image_url) from e

        logfire.info("Recovered image as data URL")
        return data_url
