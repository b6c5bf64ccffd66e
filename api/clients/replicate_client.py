import asyncio
import os
from typing import Any, Dict, Optional

import httpx
import logfire

from errors import MissingApiKeyError, ProviderError, provider_error_from_response, read_json

REPLICATE_BASE_URL = "https://api.replicate.com/v1"

IMAGE_MODELS = {
    "flux-kontext-pro": "black-forest-labs/flux-kontext-pro",
    "flux-kontext-max": "black-forest-labs/flux-kontext-max",
    "flux-dev-ultra-fast": "black-forest-labs/flux-dev",
}

VIDEO_MODELS = {
    "standard": "kwaivgi/kling-v1.6-standard",
    "pro": "kwaivgi/kling-v1.6-pro",
}

TERMINAL_STATUSES = ("succeeded", "failed", "canceled")


def extract_output_url(output: Any) -> Optional[str]:
    """Replicate outputs are a URL, a list of URLs, or objects with a `url`."""
    if isinstance(output, str) and output.strip():
        return output.strip()
    if isinstance(output, list):
        for item in output:
            url = extract_output_url(item)
            if url:
                return url
    if isinstance(output, dict):
        url = output.get("url")
        if isinstance(url, str) and url.strip():
            return url.strip()
    return None


class ReplicateImageClient:
    """Thin wrapper over Replicate's predictions API for Flux images and Kling video."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        poll_interval: float = 1.0,
        max_attempts: int = 60,
    ):
        self.api_key = api_key or os.getenv("REPLICATE_API_KEY")
        if not self.api_key:
            raise MissingApiKeyError("replicate", "REPLICATE_API_KEY")
        self.transport = transport
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=REPLICATE_BASE_URL,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=60.0,
            transport=self.transport,
        )

    async def create_prediction(self, model_path: str, input: Dict[str, Any], *, wait: bool = True) -> Dict[str, Any]:
        headers = {"Prefer": "wait"} if wait else {}
        async with self._client() as client:
            response = await client.post(f"/models/{model_path}/predictions", json={"input": input}, headers=headers)

        if response.status_code >= 400:
            raise provider_error_from_response("replicate", response)

        prediction = read_json("replicate", response)
        logfire.info("Replicate prediction created", model=model_path, id=prediction.get("id"), status=prediction.get("status"))
        return prediction

    async def get_prediction(self, prediction_id: str) -> Dict[str, Any]:
        async with self._client() as client:
            response = await client.get(f"/predictions/{prediction_id}")
        if response.status_code >= 400:
            raise provider_error_from_response("replicate", response)
        return read_json("replicate", response)

    async def wait_for_prediction(
        self,
        prediction: Dict[str, Any],
        *,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Poll until the prediction reaches a terminal state or attempts run out."""
        poll_interval = self.poll_interval if poll_interval is None else poll_interval
        max_attempts = max_attempts or self.max_attempts

        attempts = 0
        while prediction.get("status") not in TERMINAL_STATUSES:
            if attempts >= max_attempts:
                raise ProviderError(
                    f"Prediction {prediction.get('id')} timed out after {attempts} attempts",
                    provider="replicate",
                )
            await asyncio.sleep(poll_interval)
            attempts += 1
            prediction = await self.get_prediction(prediction["id"])
            logfire.debug("Replicate poll", id=prediction.get("id"), status=prediction.get("status"), attempt=attempts)

        if prediction["status"] != "succeeded":
            raise ProviderError(
                str(prediction.get("error") or f"Prediction {prediction['status']}"),
                provider="replicate",
            )
        return prediction

    async def run(self, model_path: str, input: Dict[str, Any], **poll_kwargs) -> str:
        prediction = await self.create_prediction(model_path, input)
        prediction = await self.wait_for_prediction(prediction, **poll_kwargs)
        output_url = extract_output_url(prediction.get("output"))
        if not output_url:
            raise ProviderError("Replicate did not return an output URL", provider="replicate")
        return output_url

    async def generate_image(
        self,
        model: str,
        prompt: str,
        *,
        aspect_ratio: str = "1:1",
        output_format: str = "jpg",
        guidance_scale: float = 3.5,
    ) -> str:
        model_path = IMAGE_MODELS[model]
        with logfire.span("replicate_generate_image", model=model):
            return await self.run(
                model_path,
                {
                    "prompt": prompt,
                    "aspect_ratio": aspect_ratio,
                    "output_format": output_format,
                    "guidance_scale": guidance_scale,
                },
            )

    async def edit_image(self, model: str, input: Dict[str, Any]) -> str:
        model_path = IMAGE_MODELS[model]
        with logfire.span("replicate_edit_image", model=model):
            return await self.run(model_path, input)

    async def start_video(
        self,
        model: str,
        prompt: str,
        *,
        duration: int = 5,
        aspect_ratio: str = "16:9",
        negative_prompt: Optional[str] = None,
        start_image: Optional[str] = None,
    ) -> Dict[str, Any]:
        input: Dict[str, Any] = {
            "prompt": prompt,
            "duration": duration,
            "aspect_ratio": aspect_ratio,
        }
        if negative_prompt:
            input["negative_prompt"] = negative_prompt
        if start_image:
            input["start_image"] = start_image
        return await self.create_prediction(VIDEO_MODELS[model], input, wait=False)
