import os
from typing import Any, Dict, Optional

import httpx
import logfire

from errors import ProviderError, read_json

DEFAULT_ORCHESTRATOR_URL = "http://localhost:3003"


class StudioPipelineClient:
    """
    Client for the agent-orchestrator service that runs the multi-step
    studio video pipeline (script, keyframes, animation).
    """

    def __init__(self, base_url: Optional[str] = None, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = (base_url or os.getenv("AGENT_ORCHESTRATOR_URL", DEFAULT_ORCHESTRATOR_URL)).rstrip("/")
        self.transport = transport

    async def generate(
        self,
        prompt: str,
        *,
        image: Optional[str] = None,
        user_id: str = "anonymous",
        chat_id: str = "default",
    ) -> Dict[str, Any]:
        payload = {"prompt": prompt, "image": image, "userId": user_id, "chatId": chat_id}

        with logfire.span("studio_pipeline_generate", user_id=user_id, chat_id=chat_id):
            async with httpx.AsyncClient(timeout=600.0, transport=self.transport) as client:
                response = await client.post(f"{self.base_url}/generate", json=payload)

            if response.status_code >= 400:
                raise ProviderError(
                    f"Studio generation failed: {response.text}",
                    provider="studio",
                    status_code=response.status_code,
                )
            return read_json("studio", response)
