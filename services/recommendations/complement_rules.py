"""
Complement pattern table
Category regexes over product text mapped to complement search keywords.
"""
from typing import List, Tuple, Pattern
from dataclasses import dataclass
import re


@dataclass(frozen=True)
class ComplementPattern:
    category: str
    pattern: Pattern
    keywords: Tuple[str, ...]
    confidence: float = 0.9


def _p(category: str, regex: str, keywords: List[str], confidence: float = 0.9) -> ComplementPattern:
    return ComplementPattern(category, re.compile(regex, re.IGNORECASE), tuple(keywords), confidence)


COMPLEMENT_PATTERNS: Tuple[ComplementPattern, ...] = (
    _p("footwear", r"\b(shoe|shoes|sneaker|sneakers|boot|boots|trainer|trainers|running)\b",
       ["socks", "insoles", "shoe care", "laces"], 0.95),
    _p("apparel_top", r"\b(shirt|t-shirt|tee|blouse|polo|hoodie|sweater|jumper)\b",
       ["jacket", "belt", "cap", "pants"]),
    _p("apparel_bottom", r"\b(jeans|pants|trousers|shorts|skirt|leggings)\b",
       ["belt", "shirt", "socks"]),
    _p("outerwear", r"\b(jacket|coat|parka|blazer)\b",
       ["scarf", "gloves", "beanie"]),
    _p("dress", r"\b(dress|gown)\b",
       ["jewelry", "clutch", "heels"]),
    _p("laptop", r"\b(laptop|notebook|macbook|chromebook)\b",
       ["laptop case", "mouse", "keyboard", "usb hub"], 0.95),
    _p("phone", r"\b(phone|iphone|smartphone|galaxy|pixel)\b",
       ["phone case", "screen protector", "charger", "earbuds"], 0.95),
    _p("audio", r"\b(headphones|earbuds|speaker|headset)\b",
       ["case", "charging cable", "stand"]),
    _p("camera", r"\b(camera|dslr|mirrorless|lens)\b",
       ["memory card", "camera bag", "tripod"]),
    _p("coffee", r"\b(coffee|espresso|grinder|french press)\b",
       ["coffee beans", "filters", "mug", "milk frother"], 0.95),
    _p("tea", r"\b(tea|teapot|matcha)\b",
       ["tea cup", "infuser", "honey"]),
    _p("yoga", r"\b(yoga|pilates|mat)\b",
       ["yoga block", "yoga strap", "water bottle"]),
    _p("fitness", r"\b(dumbbell|kettlebell|gym|fitness|workout)\b",
       ["water bottle", "gym bag", "towel"]),
    _p("skincare", r"\b(serum|moisturi[sz]er|cleanser|skincare|face cream)\b",
       ["toner", "sunscreen", "face mask"]),
    _p("haircare", r"\b(shampoo|conditioner|hair)\b",
       ["hair mask", "brush", "hair oil"]),
    _p("jewelry", r"\b(necklace|bracelet|ring|earrings|jewelry|jewellery)\b",
       ["jewelry box", "cleaning cloth", "earrings"]),
    _p("bag", r"\b(bag|backpack|tote|handbag|wallet)\b",
       ["wallet", "keychain", "organizer"]),
    _p("home_bedding", r"\b(bed|pillow|duvet|sheet|sheets|mattress)\b",
       ["pillowcase", "throw blanket", "mattress protector"]),
    _p("kitchen", r"\b(pan|pot|knife|cookware|skillet)\b",
       ["spatula", "cutting board", "oven mitt"]),
    _p("pet", r"\b(dog|cat|pet|leash|collar)\b",
       ["treats", "toy", "bowl"]),
    _p("candle", r"\b(candle|diffuser|fragrance)\b",
       ["wick trimmer", "matches", "refill"]),
)


def match_complements(text: str) -> List[ComplementPattern]:
    """All patterns whose category regex matches the product text, table order."""
    if not text:
        return []
    return [entry for entry in COMPLEMENT_PATTERNS if entry.pattern.search(text)]


# Month (1-12) -> seasonal keywords
SEASONAL_KEYWORDS = {
    12: ("gift", "holiday", "cozy"),
    1: ("warm", "cozy", "fitness"),
    2: ("valentine", "gift", "warm"),
    3: ("spring", "fresh", "outdoor"),
    4: ("spring", "outdoor", "rain"),
    5: ("outdoor", "garden", "fresh"),
    6: ("summer", "beach", "sun"),
    7: ("summer", "beach", "travel"),
    8: ("back to school", "summer", "travel"),
    9: ("back to school", "fall", "cozy"),
    10: ("fall", "halloween", "cozy"),
    11: ("holiday", "gift", "warm"),
}


def seasonal_keywords(month: int) -> Tuple[str, ...]:
    return SEASONAL_KEYWORDS.get(month, ())
