from unittest.mock import AsyncMock, patch

import pytest

from clients.openai_image_client import OpenAIImageResult
from clients.wavespeed_client import WaveSpeedMultiImageResult
from errors import ApiError, ProviderError
from services.image_progress import progress_store

DATA_URL = "data:image/png;base64,iVBORw0KGgo="


# --- generate-image ---

def test_generate_requires_prompt(client):
    response = client.post("/api/generate-image", json={"model": "gpt-image-1"})
    assert response.status_code == 400
    assert response.json() == {"error": "Prompt is required"}


def test_generate_unsupported_model(client, api_keys):
    response = client.post("/api/generate-image", json={"prompt": "x", "model": "midjourney"})
    assert response.status_code == 400
    assert response.json()["error"] == "Unsupported model: midjourney"
    assert "flux-dev-ultra-fast" in response.json()["details"]


def test_generate_portrait_rejected_for_fast_model(client, api_keys):
    response = client.post(
        "/api/generate-image", json={"prompt": "x", "model": "flux-dev-ultra-fast", "size": "1024x1536"}
    )
    assert response.status_code == 400


def test_generate_missing_openai_key(client, no_api_keys):
    response = client.post("/api/generate-image", json={"prompt": "x", "model": "gpt-image-1"})
    assert response.status_code == 500
    assert response.json() == {
        "error": "OpenAI API key not configured",
        "details": "Please add OPENAI_API_KEY to your .env file.",
    }


@patch("routers.generate_image.OpenAIImageClient")
def test_generate_with_openai(mock_client, client, api_keys):
    mock_client.return_value.generate_image = AsyncMock(
        return_value=OpenAIImageResult(image_url=DATA_URL, revised_prompt="a red fox in snow")
    )

    response = client.post(
        "/api/generate-image",
        json={"prompt": "fox", "originalPrompt": "draw me a fox", "model": "gpt-image-1", "quality": "hd"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["images"][0]["url"] == DATA_URL
    assert body["images"][0]["revisedPrompt"] == "a red fox in snow"
    assert body["metadata"]["mappedQuality"] == "high"
    assert body["metadata"]["originalPrompt"] == "draw me a fox"
    mock_client.return_value.generate_image.assert_awaited_once_with("fox", quality="high", size="1024x1024", n=1)


@patch("routers.generate_image.OpenAIImageClient")
def test_generate_with_image_context(mock_client, client, api_keys):
    mock_client.return_value.generate_image_with_context = AsyncMock(
        return_value=OpenAIImageResult(image_url=DATA_URL, method="context-guided")
    )

    response = client.post(
        "/api/generate-image",
        json={"prompt": "add a hat", "model": "gpt-image-1", "imageContext": "a cat on a sofa"},
    )

    assert response.status_code == 200
    assert response.json()["images"][0]["revisedPrompt"] == "add a hat"
    mock_client.return_value.generate_image_with_context.assert_awaited_once()


@patch("routers.generate_image.ReplicateImageClient")
def test_generate_with_flux(mock_client, client, api_keys):
    mock_client.return_value.generate_image = AsyncMock(return_value="https://replicate.delivery/out.jpg")

    response = client.post(
        "/api/generate-image",
        json={"prompt": "castle", "model": "flux-kontext-max", "size": "1792x1024", "style": "natural"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["metadata"]["provider"] == "replicate"
    assert body["metadata"]["imageCount"] == 1
    mock_client.return_value.generate_image.assert_awaited_once_with(
        "flux-kontext-max", "castle", aspect_ratio="16:9", output_format="jpg", guidance_scale=3.5
    )


@pytest.mark.parametrize(
    "message,status,error",
    [
        ("rate_limit_exceeded", 429, "Rate limit exceeded"),
        ("Your request was rejected by the safety system", 400, "Content not allowed"),
        ("something broke", 500, "Failed to generate image with GPT-Image-1"),
    ],
)
@patch("routers.generate_image.OpenAIImageClient")
def test_generate_classifies_provider_errors(mock_client, message, status, error, client, api_keys):
    mock_client.return_value.generate_image = AsyncMock(side_effect=ProviderError(message, provider="openai"))

    response = client.post("/api/generate-image", json={"prompt": "x", "model": "gpt-image-1"})

    assert response.status_code == status
    assert response.json()["error"] == error


@patch("routers.generate_image.ReplicateImageClient")
def test_generate_tracks_progress(mock_client, client, api_keys):
    mock_client.return_value.generate_image = AsyncMock(return_value="https://replicate.delivery/out.jpg")

    client.post("/api/generate-image", json={"prompt": "x", "progressId": "img_42"})

    record = progress_store.get("img_42")
    assert record.status == "completed"
    assert record.generated_image["url"] == "https://replicate.delivery/out.jpg"


@patch("routers.generate_image.ReplicateImageClient")
def test_generate_failure_marks_progress_failed(mock_client, client, api_keys):
    mock_client.return_value.generate_image = AsyncMock(side_effect=ProviderError("boom", provider="replicate"))

    client.post("/api/generate-image", json={"prompt": "x", "progressId": "img_43"})

    record = progress_store.get("img_43")
    assert record.status == "failed"
    assert record.error == "boom"


@patch("routers.generate_image.ReplicateImageClient")
def test_generate_unexpected_error_is_json_and_fails_progress(mock_client, client, api_keys):
    mock_client.return_value.generate_image = AsyncMock(side_effect=KeyError("output"))

    response = client.post("/api/generate-image", json={"prompt": "x", "progressId": "img_44"})

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to generate image with flux-kontext-pro"
    assert progress_store.get("img_44").status == "failed"


def test_image_intent(client):
    body = client.post("/api/image-intent", json={"message": "Generate an image of a castle at dusk"}).json()
    assert body == {"isImageRequest": True, "prompt": "a castle at dusk"}

    body = client.post("/api/image-intent", json={"message": "What is the capital of France?"}).json()
    assert body == {"isImageRequest": False}


# --- edit-image ---

def test_edit_checks_key_before_input(client, no_api_keys):
    response = client.post("/api/edit-image", json={"model": "flux-kontext-pro"})
    assert response.status_code == 500
    assert response.json()["error"] == "Replicate API key not configured"


def test_edit_requires_url_and_prompt(client, api_keys):
    response = client.post("/api/edit-image", json={"prompt": "x"})
    assert response.status_code == 400
    assert response.json()["error"] == "Image URL is required"

    response = client.post("/api/edit-image", json={"imageUrl": DATA_URL})
    assert response.status_code == 400
    assert response.json()["error"] == "Edit prompt is required"


def test_edit_rejects_unknown_model(client, api_keys):
    response = client.post("/api/edit-image", json={"imageUrl": DATA_URL, "prompt": "x", "model": "flux-dev-ultra-fast"})
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid model specified"


def test_edit_rejects_gemini_file_uri(client, api_keys):
    response = client.post(
        "/api/edit-image",
        json={
            "imageUrl": "https://generativelanguage.googleapis.com/v1beta/files/abc",
            "prompt": "x",
            "model": "gpt-image-1",
        },
    )
    assert response.status_code == 400
    assert "suggestion" in response.json()


def test_edit_malformed_data_url_fails_progress(client, api_keys):
    response = client.post(
        "/api/edit-image",
        json={"imageUrl": "data:image/png;base64,abc", "prompt": "x", "model": "gpt-image-1", "progressId": "p1"},
    )

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Failed to edit image"
    assert "Invalid base64 image data" in body["details"]
    record = progress_store.get("p1")
    assert record.status == "failed"
    assert "Invalid base64 image data" in record.error


@patch("routers.edit_image.OpenAIImageClient")
def test_edit_size_follows_source_orientation(mock_client, client, api_keys):
    mock_client.return_value.smart_edit = AsyncMock(return_value=OpenAIImageResult(image_url=DATA_URL))

    client.post(
        "/api/edit-image",
        json={"imageUrl": DATA_URL, "prompt": "x", "model": "gpt-image-1", "imageWidth": 800, "imageHeight": 1200},
    )
    _, kwargs = mock_client.return_value.smart_edit.call_args
    assert kwargs["size"] == "1024x1536"

    client.post(
        "/api/edit-image",
        json={
            "imageUrl": DATA_URL,
            "prompt": "x",
            "model": "gpt-image-1",
            "size": "1024x1024",
            "imageWidth": 800,
            "imageHeight": 1200,
        },
    )
    _, kwargs = mock_client.return_value.smart_edit.call_args
    assert kwargs["size"] == "1024x1024"


@patch("routers.edit_image.OpenAIImageClient")
def test_edit_with_openai_fallback_note(mock_client, client, api_keys):
    mock_client.return_value.smart_edit = AsyncMock(
        return_value=OpenAIImageResult(
            image_url=DATA_URL, model="dall-e-2-fallback", method="inpainting", original_image_url=DATA_URL
        )
    )

    response = client.post(
        "/api/edit-image",
        json={"imageUrl": DATA_URL, "prompt": "blue sky", "model": "gpt-image-1", "size": "1792x1024", "mask": DATA_URL},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["images"][0]["originalUrl"] == DATA_URL
    assert body["metadata"]["method"] == "inpainting"
    assert body["metadata"]["editMode"] is True
    assert "fallback" in body["metadata"]["note"]
    _, kwargs = mock_client.return_value.smart_edit.call_args
    assert kwargs["size"] == "1536x1024"
    assert kwargs["quality"] == "medium"


@patch("routers.edit_image.ReplicateImageClient")
@patch("routers.edit_image.resolve_editable_image_url")
def test_edit_with_flux_uses_recovered_url(mock_resolve, mock_client, client, api_keys):
    mock_resolve.return_value = DATA_URL
    mock_client.return_value.edit_image = AsyncMock(return_value="https://replicate.delivery/edited.png")

    expired = "https://replicate.delivery/old.png"
    response = client.post(
        "/api/edit-image", json={"imageUrl": expired, "imageId": "img_1", "prompt": "add snow"}
    )

    assert response.status_code == 200
    assert response.json()["images"][0]["originalUrl"] == expired
    model, edit_input = mock_client.return_value.edit_image.call_args.args
    assert model == "flux-kontext-pro"
    assert edit_input == {
        "prompt": "add snow",
        "input_image": DATA_URL,
        "aspect_ratio": "match_input_image",
        "output_format": "png",
        "safety_tolerance": 2,
    }


@patch("routers.edit_image.resolve_editable_image_url")
def test_edit_with_flux_expired_url(mock_resolve, client, api_keys):
    mock_resolve.side_effect = ApiError(
        400,
        "Image URL expired or inaccessible",
        "gone",
        technical_info={"errorType": "url_expired"},
    )

    response = client.post("/api/edit-image", json={"imageUrl": "https://replicate.delivery/x.png", "prompt": "x"})

    assert response.status_code == 400
    assert response.json()["technicalInfo"] == {"errorType": "url_expired"}


@patch("routers.edit_image.OpenAIImageClient")
def test_edit_capabilities(mock_client, client, api_keys):
    mock_client.return_value.check_available = AsyncMock(return_value=True)
    body = client.get("/api/edit-image").json()
    assert body["available"] is True
    assert body["capabilities"]["sizes"] == ["1024x1024", "1536x1024", "1024x1536"]


# --- edit-multi-image ---

@pytest.mark.parametrize(
    "payload,error",
    [
        ({"prompt": "merge"}, "Images array is required and must not be empty"),
        ({"images": "not-a-list", "prompt": "merge"}, "Images array is required and must not be empty"),
        ({"images": [DATA_URL, DATA_URL], "prompt": "   "}, "Prompt is required"),
        ({"images": [DATA_URL], "prompt": "merge"}, "At least 2 images are required for multi-image editing"),
        ({"images": [DATA_URL] * 11, "prompt": "merge"}, "Maximum 10 images allowed for multi-image editing"),
    ],
)
def test_multi_image_validation(payload, error, client, api_keys):
    response = client.post("/api/edit-multi-image", json=payload)
    assert response.status_code == 400
    assert response.json()["error"] == error


def test_multi_image_missing_key(client, no_api_keys):
    response = client.post("/api/edit-multi-image", json={"images": [DATA_URL, DATA_URL], "prompt": "merge"})
    assert response.status_code == 500
    assert response.json()["error"] == "WaveSpeed API key not configured"


def test_multi_image_invalid_formats(client, api_keys):
    response = client.post("/api/edit-multi-image", json={"images": [DATA_URL, "ftp://x"], "prompt": "merge"})
    assert response.status_code == 400
    assert response.json() == {
        "error": "Invalid images provided",
        "details": "Image 2 must be a data URL or HTTP URL",
    }


@patch("routers.edit_multi_image.WaveSpeedMultiImageClient.generate_multi_image_edit", new_callable=AsyncMock)
def test_multi_image_success(mock_generate, client, api_keys):
    mock_generate.return_value = WaveSpeedMultiImageResult(
        success=True,
        image_url="https://ws/out.png",
        task_id="task-1",
        metadata={"model": "wavespeed-ai/flux-kontext-max/multi", "executionTime": 3000},
    )

    response = client.post(
        "/api/edit-multi-image",
        json={"images": [DATA_URL, DATA_URL, DATA_URL], "prompt": "merge", "guidanceScale": 5},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["images"][0] == {"url": "https://ws/out.png", "revisedPrompt": "merge", "index": 0, "originalUrl": None}
    assert body["metadata"]["inputImages"] == 3
    assert body["metadata"]["taskId"] == "task-1"
    assert body["metadata"]["guidanceScale"] == 5
    assert body["metadata"]["method"] == "multi-image-composition"
    # Client metadata wins over route defaults
    assert body["metadata"]["model"] == "wavespeed-ai/flux-kontext-max/multi"


@patch("routers.edit_multi_image.WaveSpeedMultiImageClient.generate_multi_image_edit", new_callable=AsyncMock)
def test_multi_image_failure(mock_generate, client, api_keys):
    mock_generate.return_value = WaveSpeedMultiImageResult(success=False, error="Task timed out after 2 minutes")

    response = client.post("/api/edit-multi-image", json={"images": [DATA_URL, DATA_URL], "prompt": "merge"})

    assert response.status_code == 500
    assert response.json() == {"error": "Multi-image generation failed", "details": "Task timed out after 2 minutes"}


def test_multi_image_capabilities(client):
    body = client.get("/api/edit-multi-image").json()
    assert body["capabilities"]["minImages"] == 2
    assert body["capabilities"]["maxImages"] == 10
