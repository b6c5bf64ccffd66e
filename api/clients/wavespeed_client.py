import asyncio
import os
from typing import Any, Dict, List, Optional

import httpx
import logfire

from errors import MissingApiKeyError, ProviderError, provider_error_from_response, read_json

WAVESPEED_BASE_URL = "https://api.wavespeed.ai/api/v3"
MULTI_IMAGE_MODEL = "wavespeed-ai/flux-kontext-max/multi"
MAX_IMAGES = 10


class WaveSpeedMultiImageResult:
    def __init__(
        self,
        success: bool,
        image_url: Optional[str] = None,
        task_id: Optional[str] = None,
        error: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self.success = success
        self.image_url = image_url
        self.task_id = task_id
        self.error = error
        self.metadata = metadata or {}


def _describe_image(image: str) -> str:
    if image.startswith("data:"):
        return "data URL"
    if image.startswith("http"):
        return "HTTP URL"
    return "unknown"


class WaveSpeedMultiImageClient:
    """Multi-image composition with WaveSpeed's Flux Kontext Max Multi model."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        poll_interval: float = 1.0,
        max_attempts: int = 120,
    ):
        self.api_key = api_key or os.getenv("WAVESPEED_API_KEY")
        if not self.api_key:
            raise MissingApiKeyError("wavespeed", "WAVESPEED_API_KEY")
        self.transport = transport
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=WAVESPEED_BASE_URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=60.0,
            transport=self.transport,
        )

    def validate_images(self, images: List[Any]) -> Dict[str, Any]:
        errors: List[str] = []

        if not images:
            errors.append("At least one image is required")
        elif len(images) > MAX_IMAGES:
            errors.append(f"Maximum {MAX_IMAGES} images allowed")

        for index, image in enumerate(images or [], start=1):
            if not image or not isinstance(image, str):
                errors.append(f"Image {index} is invalid")
            elif not image.startswith("data:") and not image.startswith("http"):
                errors.append(f"Image {index} must be a data URL or HTTP URL")

        return {"valid": not errors, "errors": errors}

    async def _submit(self, payload: Dict[str, Any]) -> str:
        async with self._client() as client:
            response = await client.post(f"/{MULTI_IMAGE_MODEL}", json=payload)
        if response.status_code >= 400:
            raise provider_error_from_response("wavespeed", response)

        body = read_json("wavespeed", response)
        task_id = (body.get("data") or {}).get("id") or body.get("id")
        if not task_id:
            raise ProviderError("No task ID received from WaveSpeed API", provider="wavespeed")
        return task_id

    async def _poll(self, task_id: str) -> tuple:
        """
        Poll the result endpoint at a fixed interval.

        A failed or unreadable poll is skipped; a `failed` task status is terminal.
        Returns `(output_url, attempts)`.
        """
        attempts = 0
        async with self._client() as client:
            while attempts < self.max_attempts:
                await asyncio.sleep(self.poll_interval)
                attempts += 1

                try:
                    response = await client.get(f"/predictions/{task_id}/result")
                except httpx.HTTPError as e:
                    logfire.warn("WaveSpeed poll error", attempt=attempts, error=str(e))
                    continue

                if response.status_code >= 400:
                    logfire.warn("WaveSpeed poll failed", attempt=attempts, status_code=response.status_code)
                    continue

                try:
                    body = response.json()
                except ValueError:
                    logfire.warn("WaveSpeed poll returned non-JSON", attempt=attempts, status_code=response.status_code)
                    continue

                data = body.get("data") or body
                status = data.get("status")
                outputs = data.get("outputs") or []

                if status == "completed" and outputs:
                    return outputs[0], attempts
                if status == "failed":
                    raise ProviderError(
                        f"Task failed: {data.get('error') or body.get('error') or 'Unknown error'}",
                        provider="wavespeed",
                    )

        raise ProviderError("Task timed out after 2 minutes", provider="wavespeed")

    async def generate_multi_image_edit(
        self,
        images: List[str],
        prompt: str,
        *,
        guidance_scale: float = 3.5,
        safety_tolerance: str = "2",
    ) -> WaveSpeedMultiImageResult:
        payload = {
            "guidance_scale": guidance_scale or 3.5,
            "images": images,
            "prompt": prompt,
            "safety_tolerance": safety_tolerance or "2",
        }
        base_metadata = {"model": MULTI_IMAGE_MODEL, "provider": "wavespeed"}

        with logfire.span("wavespeed_multi_image_edit", image_count=len(images)):
            try:
                task_id = await self._submit(payload)
                logfire.info("WaveSpeed task submitted", task_id=task_id)
                image_url, attempts = await self._poll(task_id)
            except (ProviderError, httpx.HTTPError) as e:
                logfire.error("WaveSpeed generation failed", error=str(e))
                return WaveSpeedMultiImageResult(success=False, error=str(e), metadata=base_metadata)

            logfire.info("WaveSpeed generation completed", task_id=task_id, attempts=attempts)
            return WaveSpeedMultiImageResult(
                success=True,
                image_url=image_url,
                task_id=task_id,
                metadata={
                    **base_metadata,
                    "processedInputs": {
                        "images": [
                            {
                                "index": i + 1,
                                "type": _describe_image(img),
                                "size": f"{len(img) / 1024:.2f}KB",
                            }
                            for i, img in enumerate(images)
                        ],
                        "prompt": prompt,
                    },
                    "executionTime": int(attempts * self.poll_interval * 1000),
                },
            )
