import re
from typing import List, Optional

from models.search_models import SearchIntent

# Keywords that indicate need for current information
CURRENT_INFO_KEYWORDS = [
    "latest", "current", "today", "now", "recent", "news",
    "update", "2025", "2024", "this year", "this month",
    "right now", "at the moment", "currently", "breaking",
    "live", "ongoing", "happening",
]

FACTUAL_KEYWORDS = [
    "what is", "who is", "when did", "where is", "how does",
    "price of", "cost of", "statistics", "data", "facts about",
]

RESEARCH_KEYWORDS = [
    "compare", "versus", "vs", "difference between", "best",
    "top", "review", "analysis", "research", "study",
]

# Requests to make something, never to look something up
ACTION_EXCLUSIONS = [
    "generate", "create", "make", "produce", "build", "design",
    "draw", "paint", "compose", "write", "edit", "modify",
    "dialogue", "conversation", "multi-speaker", "voice", "audio",
    "tts", "text to speech", "narrate", "speak", "say",
    "image", "picture", "photo", "video", "animation",
    "download", "save", "extract",
]

GENERATIVE_PATTERNS = [
    re.compile(r"\b(create|generate|make|produce)\s+(a|an|some)?\s*(dialogue|conversation|audio|voice|image|video)", re.I),
    re.compile(r"\b(dia\s*tts|wavespeed|multi.?speaker|voice\s*acting)\b", re.I),
    re.compile(r"\b(alice|bob|charlie|speaker\s*\d+).{0,20}(say|speak|voice)", re.I),
    re.compile(r"\bcharacters?\s+(talking|speaking|conversing)\b", re.I),
    re.compile(r"\b(draw|paint|design|illustrate)\s+(a|an|some)?\s*(picture|image|scene)", re.I),
]

TIME_FILTERS = [
    ("today", "day"),
    ("this week", "week"),
    ("this month", "month"),
    ("this year", "year"),
]

DOMAIN_MENTIONS = [
    ("reddit", "reddit.com"),
    ("wikipedia", "wikipedia.org"),
    ("github", "github.com"),
    ("stackoverflow", "stackoverflow.com"),
]

COMPLEX_TERMS = re.compile(r"\b(analyze|compare|evaluate|investigate|comprehensive|detailed)\b", re.I)
QUESTION_PREFIX = re.compile(r"^(what|who|when|where|how|why|is|are|can|could|would|should)\s+", re.I)
STOP_WORDS = {"the", "a", "an", "is", "are", "was", "were", "what", "when", "where", "who", "how", "why"}

# Seconds, by complexity then search type
BASE_DURATIONS = {
    "simple": {"current_events": 2, "factual": 3, "research": 10, "comparison": 8},
    "moderate": {"current_events": 5, "factual": 8, "research": 30, "comparison": 20},
    "complex": {"current_events": 10, "factual": 15, "research": 60, "comparison": 40},
}


class SearchIntentDetector:
    """Keyword heuristic deciding whether a chat message needs a web search."""

    def detect_search_intent(self, user_message: str) -> SearchIntent:
        lower = user_message.lower()

        has_action = any(keyword in lower for keyword in ACTION_EXCLUSIONS)
        has_generative = any(pattern.search(user_message) for pattern in GENERATIVE_PATTERNS)
        if has_action or has_generative:
            return SearchIntent(needs_search=False)

        needs_current = any(keyword in lower for keyword in CURRENT_INFO_KEYWORDS)
        needs_factual = any(keyword in lower for keyword in FACTUAL_KEYWORDS)
        needs_research = any(keyword in lower for keyword in RESEARCH_KEYWORDS)

        if not (needs_current or needs_factual or needs_research):
            return SearchIntent(needs_search=False)

        time_filter = next((value for phrase, value in TIME_FILTERS if phrase in lower), None)

        search_type = "factual"
        if needs_current:
            search_type = "current_events"
        elif needs_research:
            search_type = "research"

        complexity = self.assess_complexity(user_message, search_type)

        return SearchIntent(
            needs_search=True,
            search_query=self.extract_search_query(user_message),
            search_type=search_type,
            time_filter=time_filter,
            domain_filter=self.extract_domain_filter(lower),
            query_type=search_type,
            complexity=complexity,
            estimated_duration=self.estimate_duration(complexity, search_type),
            requires_async=complexity == "complex" or search_type == "research",
        )

    @staticmethod
    def extract_search_query(message: str) -> str:
        query = QUESTION_PREFIX.sub("", message, count=1)
        return re.sub(r"\?$", "", query).strip()

    @staticmethod
    def extract_domain_filter(message: str) -> Optional[List[str]]:
        domains = [domain for mention, domain in DOMAIN_MENTIONS if mention in message]
        return domains or None

    @staticmethod
    def count_concepts(message: str) -> int:
        words = message.lower().split()
        return len({word for word in words if len(word) > 3 and word not in STOP_WORDS})

    def assess_complexity(self, message: str, search_type: str) -> str:
        if search_type in ("research", "comparison"):
            return "complex"

        word_count = len(message.split())
        score = 0
        if word_count > 50:
            score += 2
        elif word_count > 20:
            score += 1

        if message.count("?") > 1:
            score += 2
        if COMPLEX_TERMS.search(message):
            score += 1
        if self.count_concepts(message) > 2:
            score += 1

        if score >= 4:
            return "complex"
        if score >= 2:
            return "moderate"
        return "simple"

    @staticmethod
    def estimate_duration(complexity: Optional[str], search_type: Optional[str]) -> int:
        durations = BASE_DURATIONS[complexity or "simple"]
        return durations.get(search_type or "factual", 5)


def detect_search_intent(user_message: str) -> SearchIntent:
    return SearchIntentDetector().detect_search_intent(user_message)
