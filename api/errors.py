from enum import Enum
from typing import Any, Dict, Optional

import httpx
import logfire
from fastapi import Request
from fastapi.responses import JSONResponse


class ErrorCategory(str, Enum):
    MISSING_API_KEY = "missing_api_key"
    INVALID_REQUEST = "invalid_request"
    RATE_LIMITED = "rate_limited"
    CONTENT_MODERATED = "content_moderated"
    URL_EXPIRED = "url_expired"
    MODEL_NOT_FOUND = "model_not_found"
    UNKNOWN = "unknown"


class ProviderError(Exception):
    """
    Raised by provider clients when a vendor call fails.

    `message` keeps the raw vendor text (status line + body) so callers can
    classify the failure by substring, the only signal most vendors give us.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        type: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.code = code
        self.type = type


def provider_error_from_response(provider: str, response: httpx.Response) -> ProviderError:
    """Build a ProviderError from a failed vendor response."""
    code = None
    error_type = None
    try:
        payload = response.json()
    except ValueError:
        payload = None

    error_obj = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error_obj, dict):
        code = error_obj.get("code")
        error_type = error_obj.get("type")

    return ProviderError(
        f"Error code: {response.status_code} - {response.text}",
        provider=provider,
        status_code=response.status_code,
        code=code,
        type=error_type,
    )


def read_json(provider: str, response: httpx.Response) -> Any:
    """Parse a successful vendor response, raising ProviderError on a non-JSON body."""
    try:
        return response.json()
    except ValueError as e:
        raise ProviderError(
            f"Invalid JSON from {provider} (status {response.status_code}): {response.text[:200]}",
            provider=provider,
            status_code=response.status_code,
        ) from e


class MissingApiKeyError(ProviderError):
    def __init__(self, provider: str, env_name: str):
        super().__init__(f"{env_name} not configured", provider=provider)
        self.env_name = env_name


class ApiError(Exception):
    """Error rendered to the client as `{"error", "details", ...}`."""

    def __init__(
        self,
        status_code: int,
        error: str,
        details: Optional[str] = None,
        *,
        suggestion: Optional[str] = None,
        technical_info: Optional[Dict[str, Any]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.details = details
        self.suggestion = suggestion
        self.technical_info = technical_info
        self.extra = extra or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.details is not None:
            body["details"] = self.details
        if self.suggestion is not None:
            body["suggestion"] = self.suggestion
        if self.technical_info is not None:
            body["technicalInfo"] = self.technical_info
        body.update(self.extra)
        return body


def classify_provider_error(exc: Exception) -> ErrorCategory:
    """Map a vendor failure to an error category by matching its text."""
    if isinstance(exc, MissingApiKeyError):
        return ErrorCategory.MISSING_API_KEY

    message = getattr(exc, "message", None) or str(exc) or ""
    code = getattr(exc, "code", None)
    error_type = getattr(exc, "type", None)

    if "invalid_request_error" in message:
        return ErrorCategory.INVALID_REQUEST
    if "rate_limit_exceeded" in message:
        return ErrorCategory.RATE_LIMITED
    if "404 Client Error" in message and "replicate.delivery" in message:
        return ErrorCategory.URL_EXPIRED
    if (
        "safety system" in message
        or code == "moderation_blocked"
        or error_type == "image_generation_user_error"
    ):
        return ErrorCategory.CONTENT_MODERATED
    if "model_not_found" in message:
        return ErrorCategory.MODEL_NOT_FOUND
    return ErrorCategory.UNKNOWN


PROVIDER_LABELS = {
    "openai": "OpenAI",
    "replicate": "Replicate",
    "wavespeed": "WaveSpeed",
    "perplexity": "Perplexity",
}


def missing_key_error(provider: str, env_name: str) -> ApiError:
    label = PROVIDER_LABELS.get(provider, provider)
    return ApiError(
        500,
        f"{label} API key not configured",
        f"Please add {env_name} to your .env file.",
    )


def api_error_from_provider_error(
    exc: Exception,
    *,
    fallback_error: str,
    fallback_details: str = "An unexpected error occurred",
) -> ApiError:
    """
    Rewrap a provider failure into the HTTP error the client sees.

    Unclassified failures become a 500 with `fallback_error`.
    """
    category = classify_provider_error(exc)
    message = getattr(exc, "message", None) or str(exc)

    if category == ErrorCategory.MISSING_API_KEY:
        return missing_key_error(exc.provider, exc.env_name)
    if category == ErrorCategory.INVALID_REQUEST:
        return ApiError(
            400,
            "Invalid request",
            "The request format or parameters are invalid. " + message,
        )
    if category == ErrorCategory.RATE_LIMITED:
        provider = getattr(exc, "provider", None)
        label = PROVIDER_LABELS.get(provider, provider or "the provider")
        return ApiError(
            429,
            "Rate limit exceeded",
            f"Too many requests to {label}. Please wait a moment and try again.",
        )
    if category == ErrorCategory.URL_EXPIRED:
        return ApiError(
            400,
            "Image URL expired",
            "The image URL has expired. Replicate-generated images are only accessible for 24 hours. "
            "Please try editing a more recent image or upload the image file directly.",
            suggestion="Upload the image file directly to edit it, or generate a new image to edit.",
        )
    if category == ErrorCategory.CONTENT_MODERATED:
        return ApiError(
            400,
            "Content not allowed",
            "The image or request was rejected by the provider's safety system. This may happen with "
            "copyrighted characters, inappropriate content, or certain types of modifications. "
            "Try using different wording or a different image.",
        )
    if category == ErrorCategory.MODEL_NOT_FOUND:
        return ApiError(
            400,
            "Model not available",
            "GPT-Image-1 model not found. Please ensure your OpenAI organization is verified "
            "and you have access to GPT-4o's image generation capabilities.",
        )
    return ApiError(500, fallback_error, message or fallback_details)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logfire.error("Request failed", path=request.url.path, error=exc.error, details=exc.details)
    else:
        logfire.warn("Request rejected", path=request.url.path, status_code=exc.status_code, error=exc.error)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
