import asyncio
from unittest.mock import AsyncMock, patch

from redis_manager import ImageUrlStore
from services.image_url_validator import ImageUrlExpiredError


def start(client, image_id="img_1", **fields):
    return client.post("/api/image-progress", json={"imageId": image_id, "prompt": "a fox", **fields})


def test_start_and_get_progress(client):
    response = start(client, quality="hd", model="gpt-image-1")

    assert response.status_code == 200
    body = response.json()
    assert body["imageId"] == "img_1"
    assert body["status"] == "generating"
    assert body["stageMessage"] == "Initializing GPT-Image-1..."
    assert body["estimatedTotalTime"] == 22

    fetched = client.get("/api/image-progress/img_1").json()
    assert fetched["imageId"] == "img_1"
    assert 0 <= fetched["progress"] <= 20


def test_edit_progress_takes_longer(client):
    body = start(client, originalImageId="img_0").json()
    assert body["estimatedTotalTime"] == 18
    assert body["stageMessage"] == "Initializing AI model for image editing..."


def test_start_progress_generates_id_when_omitted(client):
    body = client.post("/api/image-progress", json={"prompt": "a fox"}).json()
    assert body["imageId"].startswith("img_")
    assert client.get(f"/api/image-progress/{body['imageId']}").status_code == 200


def test_list_generating(client):
    start(client, "img_1")
    start(client, "img_2")
    client.delete("/api/image-progress/img_2")

    body = client.get("/api/image-progress").json()
    assert [record["imageId"] for record in body] == ["img_1"]


def test_update_stage(client):
    start(client)
    body = client.patch("/api/image-progress/img_1/stage", json={"stage": "finalizing"}).json()
    assert body["stage"] == "finalizing"
    assert body["stageMessage"] == "Processing final image..."


def test_unknown_progress_is_404(client):
    assert client.get("/api/image-progress/nope").status_code == 404
    assert client.delete("/api/image-progress/nope").status_code == 404
    assert client.patch("/api/image-progress/nope/stage", json={"stage": "processing"}).status_code == 404


def test_invalid_stage_is_422(client):
    start(client)
    assert client.patch("/api/image-progress/img_1/stage", json={"stage": "melting"}).status_code == 422


def test_save_and_read_image_url(client, image_store):
    response = client.put(
        "/api/images/img_9",
        json={"url": "https://abc.public.blob.vercel-storage.com/img_9.png", "prompt": "a fox"},
    )
    assert response.status_code == 200

    body = client.get("/api/images/img_9").json()
    assert body["id"] == "img_9"
    assert body["url"] == "https://abc.public.blob.vercel-storage.com/img_9.png"
    assert body["prompt"] == "a fox"
    assert asyncio.run(image_store.get_image_by_local_id("img_9"))["url"] == body["url"]


def test_missing_image_is_404(client):
    assert client.get("/api/images/nope").status_code == 404


def test_store_falls_back_to_local_when_redis_unreachable():
    store = ImageUrlStore("redis://127.0.0.1:1")
    asyncio.run(store.initialize())

    assert store.redis_client is None
    asyncio.run(store.save_image("img_1", "https://x/1.png"))
    assert asyncio.run(store.get_image_by_local_id("img_1"))["url"] == "https://x/1.png"


@patch("routers.images.download_image_as_data_url", new_callable=AsyncMock)
def test_image_proxy_returns_data_url(mock_download, client):
    mock_download.return_value = "data:image/png;base64,AAAA"

    response = client.post("/api/image-proxy/convert-to-data-url", json={"imageUrl": "https://x/1.png"})

    assert response.json() == {"dataUrl": "data:image/png;base64,AAAA"}
    mock_download.assert_awaited_once_with("https://x/1.png")


@patch("routers.images.download_image_as_data_url", new_callable=AsyncMock)
def test_image_proxy_failure_is_400(mock_download, client):
    mock_download.side_effect = ImageUrlExpiredError("Failed to fetch image: 404 Not Found")

    response = client.post("/api/image-proxy/convert-to-data-url", json={"imageUrl": "https://x/1.png"})

    assert response.status_code == 400
    assert response.json()["details"] == "Failed to fetch image: 404 Not Found"


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "running"
    assert client.get("/health").json() == {"status": "healthy"}
