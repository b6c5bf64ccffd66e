import base64
import binascii
import logging
import os
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import unquote_to_bytes

import httpx
import logfire

from errors import MissingApiKeyError, ProviderError, provider_error_from_response, read_json

logger = logging.getLogger("clients.openai")

OPENAI_BASE_URL = "https://api.openai.com/v1"
GPT_IMAGE_MODEL = "gpt-image-1"
FALLBACK_EDIT_MODEL = "dall-e-2"
GPT_IMAGE_SIZES = ("1024x1024", "1536x1024", "1024x1536")


@dataclass
class OpenAIImageResult:
    image_url: str
    revised_prompt: Optional[str] = None
    model: str = GPT_IMAGE_MODEL
    method: Optional[str] = None
    original_image_url: Optional[str] = None


def _to_data_url(image_b64: str, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{image_b64}"


def decode_data_url(data_url: str) -> Tuple[bytes, str]:
    """Split a `data:` URL into raw bytes and its mime type."""
    header, _, encoded = data_url.partition(",")
    mime_type = header[5:].split(";")[0] or "application/octet-stream"
    if ";base64" not in header:
        return unquote_to_bytes(encoded), mime_type
    try:
        return base64.b64decode(encoded, validate=True), mime_type
    except binascii.Error as e:
        raise ProviderError(f"Invalid base64 image data: {e}", provider="openai") from e


class OpenAIImageClient:
    """Thin wrapper over the OpenAI Images REST API (gpt-image-1)."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 120.0,
    ):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise MissingApiKeyError("openai", "OPENAI_API_KEY")
        self.transport = transport
        self.timeout = timeout

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=OPENAI_BASE_URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=timeout or self.timeout,
            transport=self.transport,
        )

    @staticmethod
    def _first_image(payload: dict) -> Tuple[str, Optional[str]]:
        item = (payload.get("data") or [{}])[0]
        if item.get("b64_json"):
            return _to_data_url(item["b64_json"]), item.get("revised_prompt")
        if item.get("url"):
            return item["url"], item.get("revised_prompt")
        raise ProviderError("OpenAI returned no image payload", provider="openai")

    async def generate_image(
        self,
        prompt: str,
        *,
        quality: str = "medium",
        size: str = "1024x1024",
        n: int = 1,
    ) -> OpenAIImageResult:
        payload = {
            "model": GPT_IMAGE_MODEL,
            "prompt": prompt,
            "quality": quality,
            "size": size,
            "n": n,
        }
        with logfire.span("openai_generate_image", size=size, quality=quality):
            async with self._client() as client:
                response = await client.post("/images/generations", json=payload)

            if response.status_code >= 400:
                raise provider_error_from_response("openai", response)

            image_url, revised_prompt = self._first_image(read_json("openai", response))
            logfire.info("OpenAI image generated", model=GPT_IMAGE_MODEL)
            return OpenAIImageResult(image_url=image_url, revised_prompt=revised_prompt, method="text-to-image")

    async def generate_image_with_context(
        self,
        prompt: str,
        image_context: str,
        *,
        quality: str = "medium",
        size: str = "1024x1024",
    ) -> OpenAIImageResult:
        """
        Generate with a description of a previously uploaded image folded into
        the prompt, so the result stays consistent with what the user uploaded.
        """
        contextual_prompt = (
            f"Reference image description: {image_context}\n\n"
            f"Create a new image based on that reference with these changes: {prompt}"
        )
        result = await self.generate_image(contextual_prompt, quality=quality, size=size)
        result.method = "context-guided"
        return result

    async def _load_image(self, image_ref: str) -> Tuple[bytes, str]:
        if image_ref.startswith("data:"):
            return decode_data_url(image_ref)

        async with httpx.AsyncClient(timeout=30.0, follow_redirects=True, transport=self.transport) as client:
            response = await client.get(image_ref)
        if response.status_code >= 400:
            raise ProviderError(
                f"{response.status_code} Client Error: failed to fetch source image for url: {image_ref}",
                provider="openai",
                status_code=response.status_code,
            )
        mime_type = response.headers.get("content-type", "image/png").split(";")[0]
        return response.content, mime_type

    async def _edit(
        self,
        model: str,
        image: Tuple[bytes, str],
        prompt: str,
        *,
        size: str,
        quality: Optional[str],
        mask: Optional[Tuple[bytes, str]] = None,
    ) -> httpx.Response:
        data = {"model": model, "prompt": prompt, "size": size, "n": "1"}
        if quality:
            data["quality"] = quality
        files = [("image", ("image.png", image[0], image[1]))]
        if mask:
            files.append(("mask", ("mask.png", mask[0], mask[1])))

        async with self._client() as client:
            return await client.post("/images/edits", data=data, files=files)

    async def smart_edit(
        self,
        image_url: str,
        prompt: str,
        *,
        size: str = "1024x1024",
        quality: str = "medium",
        style: Optional[str] = None,
        mask: Optional[str] = None,
    ) -> OpenAIImageResult:
        """
        Edit an image with gpt-image-1, inpainting when a mask is given.

        Falls back to dall-e-2 edits when the organization has no access to
        gpt-image-1 (`model_not_found`).
        """
        method = "inpainting" if mask else "image-to-image"
        with logfire.span("openai_smart_edit", method=method, size=size, quality=quality, style=style):
            image = await self._load_image(image_url)
            mask_image = await self._load_image(mask) if mask else None

            response = await self._edit(GPT_IMAGE_MODEL, image, prompt, size=size, quality=quality, mask=mask_image)
            model = GPT_IMAGE_MODEL

            if response.status_code >= 400 and "model_not_found" in response.text:
                logfire.warn("gpt-image-1 unavailable, falling back", fallback=FALLBACK_EDIT_MODEL)
                response = await self._edit(
                    FALLBACK_EDIT_MODEL, image, prompt, size="1024x1024", quality=None, mask=mask_image
                )
                model = f"{FALLBACK_EDIT_MODEL}-fallback"

            if response.status_code >= 400:
                raise provider_error_from_response("openai", response)

            edited_url, revised_prompt = self._first_image(read_json("openai", response))
            logger.info("Edited image with %s (%s)", model, method)
            return OpenAIImageResult(
                image_url=edited_url,
                revised_prompt=revised_prompt,
                model=model,
                method=method,
                original_image_url=image_url,
            )

    async def check_available(self) -> bool:
        try:
            async with self._client(timeout=10.0) as client:
                response = await client.get(f"/models/{GPT_IMAGE_MODEL}")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logfire.error("OpenAI availability check failed", error=str(e))
            return False
