"""Content and theme heuristics.

Pure string-matching helpers shared by membership evaluation, labelling and
the analyzers. Nothing here performs I/O or raises on odd input; an empty
result is the only failure mode.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable, Sequence
from typing import Protocol

from session_research.models.session import SessionType

BROWSER_APPS = frozenset({"Google Chrome", "Safari", "Firefox", "Microsoft Edge", "Arc"})

RESEARCH_KEYWORDS: dict[str, tuple[str, ...]] = {
    "hotel": (
        "hotel", "resort", "inn", "suite", "booking", "marriott", "hilton",
        "hyatt", "sheraton", "ritz", "four seasons", "shangri",
    ),
    "restaurant": ("restaurant", "menu", "reservation", "dining", "cuisine", "michelin", "yelp"),
    "travel": ("flight", "airline", "airport", "vacation", "trip", "travel", "destination"),
}

HOTEL_BRANDS = (
    "Hilton", "Marriott", "Hyatt", "Sheraton", "Ritz", "Four Seasons",
    "Shangri", "Thompson", "W Hotel", "Westin", "Renaissance",
)

MAJOR_CITIES = (
    "Toronto", "Montreal", "Vancouver", "New York", "Los Angeles", "Chicago",
    "Boston", "Austin", "Miami", "Seattle", "Portland", "Denver", "Las Vegas",
    "London", "Paris", "Tokyo", "Sydney", "San Francisco", "Washington",
    "Atlanta", "Dallas", "Houston", "Philadelphia", "Phoenix",
)

CUISINE_TYPES = (
    "Italian", "French", "Japanese", "Chinese", "Mexican", "Thai",
    "Indian", "Mediterranean", "Steakhouse",
)

EVENT_TYPES = (
    "wedding", "conference", "meeting", "vacation", "trip", "business trip",
    "honeymoon", "anniversary", "birthday", "graduation", "interview", "presentation",
)

PROJECT_TYPES = (
    "website", "app", "presentation", "report", "proposal", "research",
    "analysis", "study", "design", "development",
)

TEMPORAL_KEYWORDS = (
    "next week", "next month", "this weekend", "next weekend", "december",
    "january", "february", "march", "april", "may", "june", "july", "august",
    "september", "october", "november", "2024", "2025",
)

COMPLEMENTARY_SESSION_TYPES: dict[SessionType, tuple[SessionType, ...]] = {
    SessionType.HOTEL_RESEARCH: (
        SessionType.RESTAURANT_RESEARCH,
        SessionType.TRAVEL_RESEARCH,
        SessionType.GENERAL_RESEARCH,
    ),
    SessionType.RESTAURANT_RESEARCH: (
        SessionType.HOTEL_RESEARCH,
        SessionType.TRAVEL_RESEARCH,
        SessionType.GENERAL_RESEARCH,
    ),
    SessionType.TRAVEL_RESEARCH: (
        SessionType.HOTEL_RESEARCH,
        SessionType.RESTAURANT_RESEARCH,
        SessionType.GENERAL_RESEARCH,
    ),
    SessionType.PRODUCT_RESEARCH: (SessionType.GENERAL_RESEARCH,),
    SessionType.ACADEMIC_RESEARCH: (SessionType.GENERAL_RESEARCH,),
}

SESSION_LABEL_TEMPLATES: dict[SessionType, str] = {
    SessionType.HOTEL_RESEARCH: "Hotel Research",
    SessionType.RESTAURANT_RESEARCH: "Restaurant Research",
    SessionType.PRODUCT_RESEARCH: "Product Research",
    SessionType.ACADEMIC_RESEARCH: "Academic Research",
    SessionType.GENERAL_RESEARCH: "Research Session",
    SessionType.TRAVEL_RESEARCH: "Travel Research",
    SessionType.EVENT_PLANNING: "Event Planning",
    SessionType.PROJECT_RESEARCH: "Project Research",
}

KEYWORD_STOPWORDS = frozenset({
    "this", "that", "with", "from", "they", "have", "will", "been", "were", "said",
    "each", "which", "their", "what", "about", "would", "there", "could", "other", "more",
})

CONTENT_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("url", re.compile(r"^https?://")),
    ("email", re.compile(r"\S+@\S+\.\S+")),
    ("phone", re.compile(r"(\+?1-?)?(\d{3}[-.]?)?\d{3}[-.]?\d{4}|\(\d{3}\)\s?\d{3}[-.]?\d{4}")),
    (
        "date",
        re.compile(
            r"\d{1,2}[-/]\d{1,2}[-/]\d{2,4}|\d{4}-\d{2}-\d{2}"
            r"|\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)\w*\s+\d{1,2},?\s+\d{4}",
            re.IGNORECASE,
        ),
    ),
    ("location", re.compile(r"\b(city|town|village|county|state|country|province|region)\b", re.IGNORECASE)),
    (
        "business",
        re.compile(
            r"\b[A-Z][a-z]+ (hotel|restaurant|resort|inn|suites|lodge|cafe|bistro|grill|bar|pub"
            r"|store|shop|market|center|mall|plaza|tower|building|company|corporation|inc|llc|ltd)\b",
            re.IGNORECASE,
        ),
    ),
)

_CITY_PATTERN = re.compile(r"\b(" + "|".join(re.escape(c) for c in MAJOR_CITIES) + r")\b", re.IGNORECASE)
_CUISINE_PATTERN = re.compile(r"\b(" + "|".join(CUISINE_TYPES) + r")\b", re.IGNORECASE)
_BRAND_PATTERN = re.compile(
    r"\b(Hilton|Marriott|Hyatt|Sheraton|Ritz|Four Seasons|Shangri)\b", re.IGNORECASE
)
_PROPER_NOUN = re.compile(r"\b([A-Z][a-z]{3,15})\b")
_KEY_TERM = re.compile(r"\b[A-Z][a-z]+(?:\s+[a-z]+)?\b")
_TITLE_PREFIX = re.compile(r"^(Research\s+|Find\s+|Get\s+)", re.IGNORECASE)
_NON_WORD = re.compile(r"[^\w\s]")


class HasContent(Protocol):
    content: str


class TimelineItem(HasContent, Protocol):
    source_app: str
    window_title: str


def is_browser_app(app_name: str | None) -> bool:
    return app_name in BROWSER_APPS


def is_url(content: str) -> bool:
    return content.strip().lower().startswith("http")


def detect_content_type(content: str | None) -> str:
    """Classify raw content into url, email, phone, date, location, business or text."""
    if not content:
        return "empty"
    for name, pattern in CONTENT_PATTERNS:
        if pattern.search(content):
            return name
    return "long_text" if len(content) > 100 else "text"


def has_keywords(content: str, category: str) -> bool:
    """Case-insensitive substring test against a keyword category."""
    keywords = RESEARCH_KEYWORDS.get(category.lower(), ())
    lowered = content.lower()
    return any(keyword in lowered for keyword in keywords)


def detect_session_type(item: TimelineItem, default: SessionType | None = None) -> SessionType | None:
    """Keyword-driven session type for content captured from a browser.

    Returns ``default`` for non-browser sources and for content nothing
    matches.
    """
    if not is_browser_app(item.source_app):
        return default

    raw = item.content.strip()
    if has_keywords(raw, "hotel"):
        return SessionType.HOTEL_RESEARCH
    if has_keywords(raw, "restaurant"):
        return SessionType.RESTAURANT_RESEARCH
    if has_keywords(raw, "travel"):
        return SessionType.TRAVEL_RESEARCH

    has_upper = any(ch.isupper() for ch in raw)
    if 5 < len(raw) < 500 and has_upper and not is_url(raw):
        return SessionType.GENERAL_RESEARCH
    return default


def _contains_term(text: str, term: str) -> bool:
    return re.search(rf"\b{re.escape(term)}\b", text) is not None


def _shared_term(item: HasContent, session_items: Sequence[HasContent], terms: Iterable[str]) -> str | None:
    if not session_items:
        return None
    new_text = item.content.lower()
    session_text = " ".join(other.content.lower() for other in session_items)
    for term in terms:
        needle = term.lower()
        if len(needle) < 3:
            continue
        if _contains_term(new_text, needle) and _contains_term(session_text, needle):
            return term
    return None


def extract_location_themes(item: HasContent, session_items: Sequence[HasContent]) -> dict[str, str]:
    city = _shared_term(item, session_items, MAJOR_CITIES)
    return {"commonLocation": city} if city else {}


def extract_event_themes(item: HasContent, session_items: Sequence[HasContent]) -> dict[str, str]:
    event = _shared_term(item, session_items, EVENT_TYPES)
    return {"commonEvent": event} if event else {}


def extract_temporal_themes(item: HasContent, session_items: Sequence[HasContent]) -> dict[str, str]:
    timeframe = _shared_term(item, session_items, TEMPORAL_KEYWORDS)
    return {"commonTimeframe": timeframe} if timeframe else {}


def extract_project_themes(item: HasContent, session_items: Sequence[HasContent]) -> dict[str, str]:
    project = _shared_term(item, session_items, PROJECT_TYPES)
    return {"commonProject": project} if project else {}


_CATEGORY_THEMES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("accommodation", ("hotel", "accommodation")),
    ("dining", ("restaurant", "dining")),
    ("travel", ("travel", "vacation")),
    ("business", ("conference", "business")),
    ("luxury", ("luxury", "premium")),
    ("budget", ("budget", "affordable")),
)


def extract_content_themes(items: Sequence[HasContent], limit: int = 3) -> list[str]:
    """Up to two shared cities followed by category themes."""
    text = " ".join(item.content.lower() for item in items)
    themes: list[str] = [city.lower() for city in MAJOR_CITIES if city.lower() in text][:2]
    for theme, triggers in _CATEGORY_THEMES:
        if any(trigger in text for trigger in triggers) and theme not in themes:
            themes.append(theme)
    return themes[:limit]


def extract_basic_keywords(text: str, limit: int = 8) -> list[str]:
    """Words longer than three characters that occur more than once, most frequent first."""
    words = [
        word
        for word in _NON_WORD.sub(" ", text.lower()).split()
        if len(word) > 3 and word not in KEYWORD_STOPWORDS
    ]
    counts = Counter(words)
    return [word for word, count in counts.most_common() if count > 1][:limit]


def analyze_item_types(items: Sequence[HasContent]) -> list[str]:
    types: list[str] = []
    for item in items:
        content = item.content.lower()
        if content.startswith("http"):
            kind = "URLs"
        elif "@" in content and "." in content:
            kind = "emails"
        elif re.search(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b", content):
            kind = "phone numbers"
        elif len(content) > 200:
            kind = "documents"
        elif len(content) < 20:
            kind = "short clips"
        else:
            kind = "text content"
        if kind not in types:
            types.append(kind)
    return types


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count > 1 else ''}"


def calculate_session_timespan(items: Sequence[object]) -> str:
    stamps = sorted(getattr(item, "timestamp") for item in items if getattr(item, "timestamp", None))
    if not stamps:
        return "unknown"
    minutes = int((stamps[-1] - stamps[0]).total_seconds() // 60)
    hours = minutes // 60
    if hours > 24:
        return _plural(hours // 24, "day")
    if hours > 0:
        return _plural(hours, "hour")
    if minutes > 0:
        return _plural(minutes, "minute")
    return "less than a minute"


def generate_session_label(session_type: SessionType, item: HasContent) -> str:
    """Human label from the type template plus a city, cuisine or proper noun."""
    base = SESSION_LABEL_TEMPLATES.get(session_type, "Research Session")
    content = item.content

    if session_type in (SessionType.HOTEL_RESEARCH, SessionType.RESTAURANT_RESEARCH):
        city = _CITY_PATTERN.search(content)
        if city:
            return f"{base} - {city.group(1)}"
    if session_type is SessionType.RESTAURANT_RESEARCH:
        cuisine = _CUISINE_PATTERN.search(content)
        if cuisine:
            return f"{base} - {cuisine.group(1)}"

    noun = _PROPER_NOUN.search(content)
    if noun:
        return f"{base} - {noun.group(1)}"
    return base


def generate_focused_title(
    session_type: SessionType,
    current_label: str,
    *,
    primary_intent: str = "",
    research_objective: str = "",
) -> str:
    """Concise session title derived from a research outcome."""
    title = ""
    if primary_intent and primary_intent != "Unknown" and len(primary_intent) < 50:
        title = primary_intent
    elif session_type is SessionType.HOTEL_RESEARCH:
        location = _CITY_PATTERN.search(research_objective)
        brands = [m.group(1) for m in _BRAND_PATTERN.finditer(research_objective)]
        if location and brands:
            title = f"{' vs '.join(brands[:2])} - {location.group(1)}"
        elif location:
            title = f"Hotels in {location.group(1)}"
        elif brands:
            title = f"{brands[0]} Hotels"
        else:
            title = "Hotel Research"
    elif session_type is SessionType.RESTAURANT_RESEARCH:
        location = _CITY_PATTERN.search(research_objective)
        cuisine = _CUISINE_PATTERN.search(research_objective)
        if location and cuisine:
            title = f"{cuisine.group(1)} Restaurants - {location.group(1)}"
        elif location:
            title = f"Restaurants in {location.group(1)}"
        elif cuisine:
            title = f"{cuisine.group(1)} Restaurant Research"
        else:
            title = "Restaurant Research"
    else:
        terms = _KEY_TERM.findall(research_objective)[:2]
        title = f"Research: {' & '.join(terms)}" if terms else session_type.display.title()

    title = _TITLE_PREFIX.sub("", title)
    if len(title) > 60:
        title = title[:57] + "..."
    return title or current_label or "Research Session"
