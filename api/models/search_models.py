from typing import List, Literal, Optional

from models import CamelModel


class SearchIntent(CamelModel):
    needs_search: bool
    search_query: Optional[str] = None
    search_type: Optional[Literal["current_events", "factual", "research", "comparison"]] = None
    time_filter: Optional[str] = None
    domain_filter: Optional[List[str]] = None
    query_type: Optional[str] = None
    complexity: Optional[Literal["simple", "moderate", "complex"]] = None
    estimated_duration: Optional[int] = None  # seconds
    requires_async: Optional[bool] = None


class ChatMessage(CamelModel):
    role: str
    content: str


class PerplexitySearchRequest(CamelModel):
    messages: Optional[List[ChatMessage]] = None
    force_search: bool = False


class SearchIntentRequest(CamelModel):
    message: str
