import os
from typing import Any, Dict, List, Optional

import httpx
import logfire

from errors import MissingApiKeyError, provider_error_from_response, read_json

PERPLEXITY_BASE_URL = "https://api.perplexity.ai"


class PerplexityClient:
    """Chat completions against Perplexity's web-grounded Sonar models."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or os.getenv("PERPLEXITY_API_KEY")
        if not self.api_key:
            raise MissingApiKeyError("perplexity", "PERPLEXITY_API_KEY")
        self.model = model or os.getenv("PERPLEXITY_MODEL", "sonar")
        self.transport = transport

    async def search(self, messages: List[Dict[str, str]], options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": self.model, "messages": messages}
        payload.update(options or {})

        with logfire.span("perplexity_search", model=self.model):
            async with httpx.AsyncClient(
                base_url=PERPLEXITY_BASE_URL,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=120.0,
                transport=self.transport,
            ) as client:
                response = await client.post("/chat/completions", json=payload)

            if response.status_code >= 400:
                raise provider_error_from_response("perplexity", response)

            data = read_json("perplexity", response)
            logfire.info(
                "Perplexity response",
                has_citations=bool(data.get("citations")),
                search_results=len(data.get("search_results") or []),
                images=len(data.get("images") or []),
            )
            return data
