import os
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import logfire
import redis.asyncio as redis

# Redis connection from environment
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")
IMAGE_KEY_PREFIX = "image:"


class ImageUrlStore:
    """
    Maps a client-side image id to the permanent URL the image was saved under.

    The edit flow looks images up here when a provider URL has expired.
    Uses Redis when it is reachable, otherwise a per-process dict.
    """

    def __init__(self, redis_url: str = REDIS_URL):
        self.redis_url = redis_url
        self.redis_client = None
        self._local: Dict[str, Dict[str, Any]] = {}

    async def initialize(self):
        """Initialize the Redis connection"""
        logfire.info("Redis: connecting", redis_url=self.redis_url)
        try:
            self.redis_client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True
            )
            # Test the connection
            await self.redis_client.ping()
            logfire.info("Redis: connected", redis_url=self.redis_url)
        except Exception as e:
            logfire.warn("Redis: connection failed, image URLs will only be kept in this process", error=str(e))
            self.redis_client = None

    async def save_image(self, image_id: str, url: str, **fields: Any) -> Dict[str, Any]:
        record = {
            **fields,
            "id": image_id,
            "url": url,
            "saved_at": datetime.now(timezone.utc).isoformat(),
        }

        if self.redis_client:
            try:
                await self.redis_client.set(f"{IMAGE_KEY_PREFIX}{image_id}", json.dumps(record))
                return record
            except Exception as e:
                logfire.error("Redis: write failed, keeping image locally", image_id=image_id, error=str(e))

        self._local[image_id] = record
        return record

    async def get_image_by_local_id(self, image_id: str) -> Optional[Dict[str, Any]]:
        if self.redis_client:
            try:
                raw = await self.redis_client.get(f"{IMAGE_KEY_PREFIX}{image_id}")
                if raw:
                    return json.loads(raw)
            except Exception as e:
                logfire.error("Redis: read failed", image_id=image_id, error=str(e))

        return self._local.get(image_id)

    async def close(self):
        """Close Redis connections"""
        if self.redis_client:
            await self.redis_client.aclose()


# Global instance
manager = None


async def get_image_store() -> ImageUrlStore:
    """Get or create the image URL store"""
    global manager
    if manager is None:
        manager = ImageUrlStore()
        await manager.initialize()
    return manager
