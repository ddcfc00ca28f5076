"""Venue knowledge lookup.

Answers customer questions from data the owner has already entered: FAQ
entries first, then topic handlers that read venue and policy fields.  The
lookup is deterministic and never calls the model or the network; when
nothing matches the agent is told to offer to ask the owner.

Topics are matched against a keyword table that covers both supported
languages (``parkering``/``parking``, ``avbokning``/``cancellation`` ...),
first exactly and then as a substring of the topic.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypedDict

from venue_agent.models import AgentConfig, FaqEntry, VenueProfile


class VenueInfoResult(TypedDict):
    found: bool
    answer: str


# ── Answer texts ─────────────────────────────────────────────────────

_TEXT = {
    "sv": {
        "unknown": "Jag har tyvärr inte specifik information om det ämnet. Vill du att jag kontaktar lokalägaren?",
        "parking_yes": "Ja, det finns parkering tillgänglig vid lokalen.",
        "parking_unknown": "Det finns ingen specifik information om parkering. Kontakta lokalägaren för mer detaljer.",
        "amenities": "Lokalen erbjuder: {items}.",
        "amenities_none": "Ingen information om faciliteter finns tillgänglig.",
        "house_rules": "Ordningsregler: {text}",
        "deposit": "Deposition: {text}",
        "cancellation_line": "Avbokning: {text}",
        "policies_none": "Ingen specifik policyinformation finns tillgänglig. Kontakta lokalägaren för mer detaljer.",
        "cancellation": "Avbokningspolicy: {text}",
        "cancellation_none": "Ingen specifik avbokningspolicy finns angiven. Kontakta lokalägaren för mer detaljer.",
        "catering_yes": "Lokalen har möjlighet för catering/matservering. Kontakta oss för mer detaljer om alternativ.",
        "catering_none": "Ingen specifik information om catering finns tillgänglig. Vill du att jag frågar lokalägaren?",
        "equipment": "Tillgänglig utrustning: {items}.",
        "equipment_none": "Ingen specifik utrustningsinformation finns tillgänglig. Kontakta lokalägaren för mer detaljer.",
        "accessibility": "Tillgänglighet: {items}.",
        "accessibility_none": "Ingen specifik tillgänglighetsinformation finns angiven. Kontakta lokalägaren för mer detaljer.",
        "address": "Adress: {text}",
        "area": "Område: {text}",
        "city": "Stad: {text}",
        "location_none": "Ingen platsinformation finns tillgänglig.",
        "standing": "Ståplats: upp till {n} personer",
        "seated": "Sittande: upp till {n} personer",
        "conference": "Konferens: upp till {n} personer",
        "min_guests": "Minsta antal gäster: {n}",
        "capacity_none": "Ingen kapacitetsinformation finns tillgänglig.",
        "per_hour": "Timpris: {price} kr/timme",
        "half_day": "Halvdag: {price} kr",
        "full_day": "Heldag: {price} kr",
        "evening": "Kväll: {price} kr",
        "price_notes": "OBS: {text}",
        "pricing": "Prisinformation:\n{lines}",
        "pricing_none": "Ingen prisinformation finns tillgänglig. Kontakta lokalägaren för offert.",
    },
    "en": {
        "unknown": "Unfortunately I don't have specific information on that topic. Would you like me to contact the venue owner?",
        "parking_yes": "Yes, parking is available at the venue.",
        "parking_unknown": "There is no specific information about parking. Please contact the venue owner for details.",
        "amenities": "The venue offers: {items}.",
        "amenities_none": "No information about amenities is available.",
        "house_rules": "House rules: {text}",
        "deposit": "Deposit: {text}",
        "cancellation_line": "Cancellation: {text}",
        "policies_none": "No specific policy information is available. Please contact the venue owner for details.",
        "cancellation": "Cancellation policy: {text}",
        "cancellation_none": "No cancellation policy has been specified. Please contact the venue owner for details.",
        "catering_yes": "The venue can arrange catering/food service. Get in touch for details about the options.",
        "catering_none": "No specific catering information is available. Would you like me to ask the venue owner?",
        "equipment": "Available equipment: {items}.",
        "equipment_none": "No specific equipment information is available. Please contact the venue owner for details.",
        "accessibility": "Accessibility: {items}.",
        "accessibility_none": "No specific accessibility information has been provided. Please contact the venue owner for details.",
        "address": "Address: {text}",
        "area": "Area: {text}",
        "city": "City: {text}",
        "location_none": "No location information is available.",
        "standing": "Standing: up to {n} people",
        "seated": "Seated: up to {n} people",
        "conference": "Conference: up to {n} people",
        "min_guests": "Minimum number of guests: {n}",
        "capacity_none": "No capacity information is available.",
        "per_hour": "Hourly rate: {price} SEK/hour",
        "half_day": "Half day: {price} SEK",
        "full_day": "Full day: {price} SEK",
        "evening": "Evening: {price} SEK",
        "price_notes": "Note: {text}",
        "pricing": "Pricing:\n{lines}",
        "pricing_none": "No pricing information is available. Please contact the venue owner for a quote.",
    },
}

# Amenity substrings that identify each category
_PARKING_WORDS = ("parkering", "parking")
_CATERING_FAQ_WORDS = ("catering", "mat", "dryck", "food", "drink")
_CATERING_AMENITY_WORDS = ("catering", "kök", "mat", "kitchen", "food")
_EQUIPMENT_WORDS = (
    "projektor", "projector", "ljud", "sound", "mikrofon", "microphone",
    "whiteboard", "skärm", "screen", "wifi", "teknik",
)
_ACCESSIBILITY_WORDS = ("handikapp", "tillgänglig", "hiss", "rullstol", "wheelchair", "elevator", "accessible")


def _matching(amenities: list[str], words: tuple[str, ...]) -> list[str]:
    return [a for a in amenities if any(w in a.lower() for w in words)]


def format_amount(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


# ── FAQ matching ─────────────────────────────────────────────────────


def _topic_matches_question(topic: str, question: str) -> bool:
    """At least half of the topic's significant words appear in the question."""
    topic_words = [w for w in topic.split() if len(w) > 2]
    question_words = [w for w in question.split() if len(w) > 2]
    matches = [w for w in topic_words if any(qw in w or w in qw for qw in question_words)]
    return len(matches) > 0 and len(matches) >= len(topic_words) * 0.5


def find_faq_answer(topic: str, entries: list[FaqEntry]) -> str | None:
    for entry in entries:
        question = entry.question.lower()
        if question in topic or topic in question or _topic_matches_question(topic, question):
            return entry.answer
    return None


# ── Topic handlers ───────────────────────────────────────────────────


class _Lookup:
    """Handlers bound to one venue/config pair and answer language."""

    def __init__(self, venue: VenueProfile, config: AgentConfig) -> None:
        self.venue = venue
        self.config = config
        self.t = _TEXT.get(config.language, _TEXT["sv"])

    def _answer(self, parts: list[str], none_key: str) -> VenueInfoResult:
        if not parts:
            return {"found": False, "answer": self.t[none_key]}
        return {"found": True, "answer": "\n".join(parts)}

    def parking(self) -> VenueInfoResult:
        if _matching(self.venue.amenities, _PARKING_WORDS):
            return {"found": True, "answer": self.t["parking_yes"]}
        return {"found": True, "answer": self.t["parking_unknown"]}

    def amenities(self) -> VenueInfoResult:
        if not self.venue.amenities:
            return {"found": False, "answer": self.t["amenities_none"]}
        return {"found": True, "answer": self.t["amenities"].format(items=", ".join(self.venue.amenities))}

    def policies(self) -> VenueInfoResult:
        policy = self.config.policy_config
        parts = []
        if policy.house_rules:
            parts.append(self.t["house_rules"].format(text=policy.house_rules))
        if policy.deposit:
            parts.append(self.t["deposit"].format(text=policy.deposit))
        if policy.cancellation:
            parts.append(self.t["cancellation_line"].format(text=policy.cancellation))
        return self._answer(parts, "policies_none")

    def cancellation(self) -> VenueInfoResult:
        text = self.config.policy_config.cancellation
        if not text:
            return {"found": False, "answer": self.t["cancellation_none"]}
        return {"found": True, "answer": self.t["cancellation"].format(text=text)}

    def catering(self) -> VenueInfoResult:
        for entry in self.config.faq_entries:
            question = entry.question.lower()
            if any(w in question for w in _CATERING_FAQ_WORDS):
                return {"found": True, "answer": entry.answer}
        if _matching(self.venue.amenities, _CATERING_AMENITY_WORDS):
            return {"found": True, "answer": self.t["catering_yes"]}
        return {"found": False, "answer": self.t["catering_none"]}

    def equipment(self) -> VenueInfoResult:
        items = _matching(self.venue.amenities, _EQUIPMENT_WORDS)
        if not items:
            return {"found": False, "answer": self.t["equipment_none"]}
        return {"found": True, "answer": self.t["equipment"].format(items=", ".join(items))}

    def accessibility(self) -> VenueInfoResult:
        items = _matching(self.venue.amenities, _ACCESSIBILITY_WORDS)
        if not items:
            return {"found": False, "answer": self.t["accessibility_none"]}
        return {"found": True, "answer": self.t["accessibility"].format(items=", ".join(items))}

    def location(self) -> VenueInfoResult:
        v = self.venue
        parts = []
        if v.address:
            parts.append(self.t["address"].format(text=v.address))
        if v.area:
            parts.append(self.t["area"].format(text=v.area))
        if v.city:
            parts.append(self.t["city"].format(text=v.city))
        return self._answer(parts, "location_none")

    def capacity(self) -> VenueInfoResult:
        v = self.venue
        parts = []
        if v.capacity_standing:
            parts.append(self.t["standing"].format(n=v.capacity_standing))
        if v.capacity_seated:
            parts.append(self.t["seated"].format(n=v.capacity_seated))
        if v.capacity_conference:
            parts.append(self.t["conference"].format(n=v.capacity_conference))
        if v.min_guests:
            parts.append(self.t["min_guests"].format(n=v.min_guests))
        return self._answer(parts, "capacity_none")

    def pricing(self) -> VenueInfoResult:
        v = self.venue
        parts = []
        if v.price_per_hour:
            parts.append(self.t["per_hour"].format(price=format_amount(v.price_per_hour)))
        if v.price_half_day:
            parts.append(self.t["half_day"].format(price=format_amount(v.price_half_day)))
        if v.price_full_day:
            parts.append(self.t["full_day"].format(price=format_amount(v.price_full_day)))
        if v.price_evening:
            parts.append(self.t["evening"].format(price=format_amount(v.price_evening)))
        if v.price_notes:
            parts.append(self.t["price_notes"].format(text=v.price_notes))
        if self.config.pricing_rules.notes:
            parts.append(self.config.pricing_rules.notes)
        if not parts:
            return {"found": False, "answer": self.t["pricing_none"]}
        return {"found": True, "answer": self.t["pricing"].format(lines="\n".join(parts))}


# Keyword -> handler name.  Order matters for the substring pass.
TOPIC_KEYWORDS: dict[str, str] = {
    "parking": "parking",
    "parkering": "parking",
    "amenities": "amenities",
    "faciliteter": "amenities",
    "utrustning": "amenities",
    "policies": "policies",
    "regler": "policies",
    "villkor": "policies",
    "cancellation": "cancellation",
    "avbokning": "cancellation",
    "catering": "catering",
    "mat": "catering",
    "equipment": "equipment",
    "teknik": "equipment",
    "accessibility": "accessibility",
    "tillganglighet": "accessibility",
    "location": "location",
    "plats": "location",
    "adress": "location",
    "capacity": "capacity",
    "kapacitet": "capacity",
    "pricing": "pricing",
    "pris": "pricing",
    "priser": "pricing",
}


def _resolve_handler(topic: str) -> str | None:
    if topic in TOPIC_KEYWORDS:
        return TOPIC_KEYWORDS[topic]
    for keyword, handler in TOPIC_KEYWORDS.items():
        if keyword in topic:
            return handler
    return None


def get_venue_info(topic: str, venue: VenueProfile, config: AgentConfig) -> VenueInfoResult:
    """Answer a question about *topic* from FAQ entries and venue data."""
    normalized = topic.lower().strip()

    answer = find_faq_answer(normalized, config.faq_entries)
    if answer is not None:
        return {"found": True, "answer": answer}

    lookup = _Lookup(venue, config)
    handler_name = _resolve_handler(normalized)
    if handler_name is not None:
        handler: Callable[[], VenueInfoResult] = getattr(lookup, handler_name)
        return handler()

    return {"found": False, "answer": lookup.t["unknown"]}
