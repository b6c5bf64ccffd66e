"""
Web search through Perplexity, gated by the keyword intent detector.
"""
from datetime import datetime
from typing import Any, Dict

import httpx
import logfire
from fastapi import APIRouter

from clients.perplexity_client import PerplexityClient
from errors import ApiError, MissingApiKeyError, ProviderError, missing_key_error
from models.search_models import PerplexitySearchRequest, SearchIntentRequest
from services.search_intent import detect_search_intent

router = APIRouter()


def build_system_message(today: datetime) -> Dict[str, str]:
    return {
        "role": "system",
        "content": (
            "You are a helpful AI assistant with access to real-time web search.\n"
            f"Today's date is {today:%A, %B} {today.day}, {today.year}.\n"
            "Always provide the most current and up-to-date information based on search results.\n"
            "Always cite your sources when using searched information.\n"
            "Format citations as [Source Name](URL) when referencing search results."
        ),
    }


@router.post("/perplexity-search")
async def perplexity_search(request: PerplexitySearchRequest):
    if not request.messages:
        raise ApiError(400, "Messages are required")

    user_messages = [m for m in request.messages if m.role == "user"]
    if not user_messages:
        raise ApiError(400, "No user message found")
    last_user_message = user_messages[-1]

    search_intent = detect_search_intent(last_user_message.content)
    if not search_intent.needs_search and not request.force_search:
        return {"needsSearch": False, "message": "No web search required for this query"}

    options: Dict[str, Any] = {
        "search_mode": "web",
        "return_images": True,
        "return_related_questions": True,
    }
    if search_intent.time_filter:
        options["search_recency_filter"] = search_intent.time_filter
    if search_intent.domain_filter:
        options["search_domain_filter"] = search_intent.domain_filter

    # Perplexity requires strictly alternating roles, so only the latest turn goes out
    messages = [
        build_system_message(datetime.now()),
        {"role": last_user_message.role, "content": last_user_message.content},
    ]

    try:
        client = PerplexityClient()
        response = await client.search(messages, options)
    except MissingApiKeyError as e:
        raise missing_key_error(e.provider, e.env_name)
    except (ProviderError, httpx.HTTPError) as e:
        logfire.error("Perplexity search failed", error=str(e))
        raise ApiError(500, "Failed to perform search", str(e)) from e

    return {
        "needsSearch": True,
        "response": response,
        "searchIntent": search_intent.model_dump(by_alias=True, exclude_none=True),
        "citations": response.get("citations"),
        "searchResults": response.get("search_results"),
        "images": response.get("images"),
    }


@router.post("/search-intent")
async def search_intent(request: SearchIntentRequest):
    """Run the intent detector alone, for the client's search indicator."""
    return detect_search_intent(request.message).model_dump(by_alias=True, exclude_none=True)
