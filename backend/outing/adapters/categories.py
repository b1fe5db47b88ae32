"""Category inference from event text and source-specific category maps."""

import re

from backend.outing.models.common import EventCategory

CATEGORY_KEYWORDS: dict[EventCategory, list[str]] = {
    EventCategory.concert: [
        "concert", "live music", "band", "gig", "orchestra", "symphony", "jazz",
        "acoustic", "edm", "anthem", "rave", "techno", "house music", "hip hop",
        "r&b", "singer", "vocalist", "melody",
    ],
    EventCategory.theatre: [
        "theatre", "theater", "drama", "play", "musical", "opera", "ballet",
        "performance", "stage", "improv", "comedy show", "stand-up",
    ],
    EventCategory.sports: [
        "sports", "marathon", "run", "race", "fitness", "yoga", "gym", "match",
        "tournament", "swim", "cycling", "triathlon", "boxing", "martial arts",
    ],
    EventCategory.dining: [
        "food", "dining", "dinner", "brunch", "lunch", "culinary", "tasting",
        "restaurant", "chef", "wine", "cheese", "supper", "buffet", "hawker",
        "gastronomy", "cooking", "sake", "whisky", "whiskey", "beer",
    ],
    EventCategory.nightlife: [
        "nightlife", "club", "party", "dj", "bar", "lounge", "drinks",
        "cocktail", "happy hour", "rooftop", "afterparty", "after party",
        "rave", "dance floor",
    ],
    EventCategory.outdoor: [
        "outdoor", "hike", "hiking", "nature", "garden", "park", "beach",
        "kayak", "cycling", "camping", "trek", "trail", "adventure",
    ],
    EventCategory.cultural: [
        "cultural", "heritage", "museum", "gallery", "art", "history",
        "tradition", "temple", "craft", "pottery", "calligraphy",
    ],
    EventCategory.workshop: [
        "workshop", "class", "course", "learn", "masterclass", "tutorial",
        "hands-on", "seminar", "bootcamp", "training", "certification",
    ],
    EventCategory.exhibition: [
        "exhibition", "exhibit", "gallery", "showcase", "display",
        "installation", "expo", "pop-up",
    ],
    EventCategory.festival: [
        "festival", "fest", "carnival", "fair", "celebration", "parade",
        "fiesta", "gala",
    ],
}

# Word boundaries stop "run" matching "brunch" and "bar" matching "embarrass"
_KEYWORD_PATTERNS: dict[EventCategory, list[re.Pattern[str]]] = {
    category: [re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE) for keyword in keywords]
    for category, keywords in CATEGORY_KEYWORDS.items()
}

CATEGORY_TO_EVENTBRITE_KEYWORD: dict[EventCategory, str] = {
    EventCategory.concert: "music",
    EventCategory.theatre: "performing-visual-arts",
    EventCategory.sports: "sports-fitness",
    EventCategory.dining: "food-drink",
    EventCategory.nightlife: "nightlife",
    EventCategory.outdoor: "travel-outdoor",
    EventCategory.cultural: "performing-visual-arts",
    EventCategory.workshop: "business",
    EventCategory.exhibition: "performing-visual-arts",
    EventCategory.festival: "music",
}

CATEGORY_TO_EVENTFINDA_SLUG: dict[EventCategory, str] = {
    EventCategory.concert: "concerts-gig-guide",
    EventCategory.theatre: "arts",
    EventCategory.sports: "sports",
    EventCategory.dining: "festivals-lifestyle",
    EventCategory.nightlife: "festivals-lifestyle",
    EventCategory.outdoor: "sports",
    EventCategory.cultural: "exhibitions",
    EventCategory.workshop: "workshops-conferences-classes",
    EventCategory.exhibition: "exhibitions",
    EventCategory.festival: "festivals-lifestyle",
}

EVENTFINDA_SLUG_TO_CATEGORY: dict[str, EventCategory] = {
    "concerts-gig-guide": EventCategory.concert,
    "arts": EventCategory.theatre,
    "sports": EventCategory.sports,
    "festivals-lifestyle": EventCategory.festival,
    "exhibitions": EventCategory.exhibition,
    "workshops-conferences-classes": EventCategory.workshop,
    "business-education": EventCategory.workshop,
}


def infer_category(name: str, description: str | None = None) -> EventCategory:
    """Infer a category from name and description keywords.

    Args:
        name: Event name
        description: Optional event description

    Returns:
        Category with the most keyword hits (first wins on ties), or other
    """
    text = f"{name} {description or ''}".lower()

    best_category = EventCategory.other
    best_score = 0
    for category, patterns in _KEYWORD_PATTERNS.items():
        score = sum(1 for pattern in patterns if pattern.search(text))
        if score > best_score:
            best_score = score
            best_category = category

    return best_category


def infer_category_from_eventfinda(
    name: str, description: str | None = None, category_slug: str | None = None
) -> EventCategory:
    """Prefer Eventfinda's own category slug, falling back to keywords."""
    if category_slug and category_slug in EVENTFINDA_SLUG_TO_CATEGORY:
        return EVENTFINDA_SLUG_TO_CATEGORY[category_slug]
    return infer_category(name, description)


def eventfinda_slugs_for(categories: list[EventCategory]) -> list[str]:
    """Map categories to unique Eventfinda slugs, preserving order."""
    slugs: list[str] = []
    for category in categories:
        slug = CATEGORY_TO_EVENTFINDA_SLUG.get(category)
        if slug and slug not in slugs:
            slugs.append(slug)
    return slugs


def eventbrite_keyword_for(categories: list[EventCategory]) -> str | None:
    """First category with an Eventbrite listing keyword (the URL takes only one)."""
    for category in categories:
        keyword = CATEGORY_TO_EVENTBRITE_KEYWORD.get(category)
        if keyword:
            return keyword
    return None
