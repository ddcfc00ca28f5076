"""System prompt compiler for the venue booking agent.

``build_agent_system_prompt`` is a pure function of the venue, its agent
configuration, a calendar snapshot and *today*: the same inputs always give
byte-identical output, which keeps prompt regressions testable.

Sections, in order (optional ones are skipped when empty)::

    identity & rules | venue profile | pricing | booking parameters? |
    event types? | policies? | FAQ? | calendar | escalation rules
"""

from __future__ import annotations

import calendar as _calendar
from datetime import date

from venue_agent.config import CALENDAR_WINDOW_MONTHS, PLATFORM_FEE_RATE
from venue_agent.models import (
    AgentConfig,
    BookingParams,
    CalendarSnapshot,
    EventTypeConfig,
    EventTypeStatus,
    FaqEntry,
    PolicyConfig,
    PricingRules,
    VenueProfile,
)
from venue_agent.tools.venue_info import format_amount

SECTION_SEPARATOR = "\n\n---\n\n"

WEEKDAY_NAMES = {
    "sv": ["söndag", "måndag", "tisdag", "onsdag", "torsdag", "fredag", "lördag"],
    "en": ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"],
}

# ── Fixed texts ──────────────────────────────────────────────────────

IDENTITY_TEMPLATE = {
    "sv": """# Identitet & Beteende

Du är en bokningsassistent för eventlokalen "{venue_name}". Du hjälper potentiella kunder med frågor och guidar dem genom bokningsprocessen.

## Regler
- Varm, kompetent och professionell ton
- Håll svaren korta och fokuserade, undvik överdrivna förklaringar
- BEKRÄFTA ALDRIG en bokning på egen hand. Alla bokningar kräver ägarens godkännande
- HITTA INTE PÅ INFORMATION. Om du är osäker, eskalera till ägaren
- Kartlägg bokningsavsikten successivt under samtalet (datum, tid, antal gäster, evenemangstyp)
- Föreslå alternativ när ett önskat datum eller en konfiguration inte är tillgänglig
- Svara alltid på det språk kunden skriver på

Dagens datum: {today}""",
    "en": """# Identity & Behavior

You are a booking assistant for the event venue "{venue_name}". You help potential customers with questions and guide them through the booking process.

## Rules
- Warm, competent and professional tone
- Keep responses short and focused, do not over-explain
- NEVER confirm a booking on your own. All bookings require owner approval
- NEVER invent information. If you are unsure, escalate to the owner
- Extract booking intent progressively through the conversation (date, time, number of guests, event type)
- Suggest alternatives when a requested date or configuration is unavailable
- Always answer in the same language the customer uses

Today's date: {today}""",
}

ESCALATION_RULES = {
    "sv": """# Eskaleringsregler

Använd verktyget `escalate_to_owner` när:
- Kunden frågar om något som inte täcks av denna prompt
- Kunden begär ett specialarrangemang eller undantag
- Evenemangstypen är markerad som "fråga ägaren"
- Kunden uttrycker missnöje eller lämnar ett klagomål
- Bokningsvärdet är ovanligt högt eller situationen är komplex
- Du är osäker på information och inte hittar den här

Vid eskalering ska du ge en tydlig sammanfattning av kundens begäran och orsaken till eskaleringen.""",
    "en": """# Escalation Rules

Use the `escalate_to_owner` tool when:
- The customer asks about something not covered in this prompt
- The customer requests a special arrangement or exception
- The event type is marked as "ask owner"
- The customer expresses dissatisfaction or makes a complaint
- The booking value is unusually high or the situation is complex
- You are uncertain about any information and cannot find it here

When escalating, provide a clear summary of the customer's request and the reason for escalation.""",
}

# Per-language labels for the data-driven sections
LABELS = {
    "sv": {
        "profile": "# Lokalprofil",
        "venue": "Lokal",
        "location": "Plats",
        "address": "Adress",
        "description": "Beskrivning",
        "capacity": "Kapacitet",
        "standing": "stående",
        "seated": "sittande",
        "conference": "konferens",
        "min_guests": "Minsta antal gäster",
        "amenities": "Faciliteter",
        "venue_types": "Passar för",
        "vibes": "Känsla",
        "website": "Webbplats",
        "email": "E-post",
        "phone": "Telefon",
        "pricing": "# Prissättning",
        "fee_note": "**OBS:** En plattformsavgift på {pct}% tillkommer på alla priser.",
        "currency": "kr",
        "base_price": "Grundpris",
        "prices": "Priser",
        "per_hour": "{amount} kr/timme",
        "half_day": "{amount} kr halvdag",
        "full_day": "{amount} kr heldag",
        "evening": "{amount} kr kväll",
        "per_person": "Per person",
        "minimum_spend": "Minimibelopp",
        "packages": "**Paket:**",
        "price_notes": "Prisinfo",
        "booking_params": "# Bokningsparametrar",
        "bp_min_guests": "**Minsta antal gäster:** {v}",
        "bp_max_guests": "**Maximalt antal gäster:** {v}",
        "bp_min_duration": "**Minsta bokningslängd:** {v} timmar",
        "bp_max_duration": "**Maximal bokningslängd:** {v} timmar",
        "bp_min_advance": "**Minsta förbokningstid:** {v} dagar",
        "bp_max_advance": "**Längsta förbokningstid:** {v} månader",
        "bp_blocked_weekdays": "**Stängda veckodagar:** {v}",
        "event_types": "# Evenemangstyper",
        "welcome": "**Välkomna evenemang:**",
        "declined": "**Ej tillgängliga:**",
        "ask_owner": "**Kräver ägarens godkännande (eskalera):**",
        "policies": "# Policyer",
        "cancellation": "Avbokningspolicy",
        "deposit": "Depositionsvillkor",
        "house_rules": "Ordningsregler",
        "faq": "# Vanliga frågor",
        "faq_q": "F",
        "faq_a": "S",
        "calendar": "# Kalender (nästa {months} månader)",
        "blocked_dates": "Blockerade datum",
        "booked_dates": "Bokade datum",
        "none": "Inga",
        "verify": (
            "Använd verktyget `check_availability` för att verifiera tillgänglighet för ett "
            "specifikt datum innan du kommunicerar det till kunden."
        ),
    },
    "en": {
        "profile": "# Venue Profile",
        "venue": "Venue",
        "location": "Location",
        "address": "Address",
        "description": "Description",
        "capacity": "Capacity",
        "standing": "standing",
        "seated": "seated",
        "conference": "conference",
        "min_guests": "Minimum guests",
        "amenities": "Amenities",
        "venue_types": "Suitable for",
        "vibes": "Vibe",
        "website": "Website",
        "email": "Email",
        "phone": "Phone",
        "pricing": "# Pricing",
        "fee_note": "**Note:** A {pct}% platform fee applies to all prices.",
        "currency": "SEK",
        "base_price": "Base price",
        "prices": "Prices",
        "per_hour": "{amount} SEK/hour",
        "half_day": "{amount} SEK half day",
        "full_day": "{amount} SEK full day",
        "evening": "{amount} SEK evening",
        "per_person": "Per person",
        "minimum_spend": "Minimum spend",
        "packages": "**Packages:**",
        "price_notes": "Price notes",
        "booking_params": "# Booking Parameters",
        "bp_min_guests": "**Minimum guests:** {v}",
        "bp_max_guests": "**Maximum guests:** {v}",
        "bp_min_duration": "**Minimum duration:** {v} hours",
        "bp_max_duration": "**Maximum duration:** {v} hours",
        "bp_min_advance": "**Minimum advance booking:** {v} days",
        "bp_max_advance": "**Maximum advance booking:** {v} months",
        "bp_blocked_weekdays": "**Blocked weekdays:** {v}",
        "event_types": "# Event Types",
        "welcome": "**Welcome events:**",
        "declined": "**Not available:**",
        "ask_owner": "**Requires owner approval (escalate):**",
        "policies": "# Policies",
        "cancellation": "Cancellation policy",
        "deposit": "Deposit terms",
        "house_rules": "House rules",
        "faq": "# FAQ",
        "faq_q": "Q",
        "faq_a": "A",
        "calendar": "# Calendar (next {months} months)",
        "blocked_dates": "Blocked dates",
        "booked_dates": "Booked dates",
        "none": "None",
        "verify": (
            "Use the `check_availability` tool to verify availability for a specific date "
            "before communicating it to the customer."
        ),
    },
}


def _field(label: str, value: object) -> str:
    return f"**{label}:** {value}"


def add_months(day: date, months: int) -> date:
    """Same day *months* later, clamped to the end of a shorter month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = _calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


# ── Sections ─────────────────────────────────────────────────────────


def _identity_section(venue: VenueProfile, today: date, lang: str) -> str:
    return IDENTITY_TEMPLATE[lang].format(venue_name=venue.name, today=today.isoformat())


def _venue_profile_section(venue: VenueProfile, lang: str) -> str:
    t = LABELS[lang]
    location = f"{venue.area}, {venue.city}" if venue.area else venue.city

    capacities = []
    if venue.capacity_standing:
        capacities.append(f"{venue.capacity_standing} {t['standing']}")
    if venue.capacity_seated:
        capacities.append(f"{venue.capacity_seated} {t['seated']}")
    if venue.capacity_conference:
        capacities.append(f"{venue.capacity_conference} {t['conference']}")

    lines = [
        t["profile"],
        _field(t["venue"], venue.name),
        _field(t["location"], location),
        _field(t["address"], venue.address),
    ]
    if venue.description:
        lines.append(_field(t["description"], venue.description))
    if capacities:
        lines.append(_field(t["capacity"], ", ".join(capacities)))
    if venue.min_guests > 1:
        lines.append(_field(t["min_guests"], venue.min_guests))
    if venue.amenities:
        lines.append(_field(t["amenities"], ", ".join(venue.amenities)))
    if venue.venue_types:
        lines.append(_field(t["venue_types"], ", ".join(venue.venue_types)))
    if venue.vibes:
        lines.append(_field(t["vibes"], ", ".join(venue.vibes)))
    if venue.website:
        lines.append(_field(t["website"], venue.website))
    if venue.contact_email:
        lines.append(_field(t["email"], venue.contact_email))
    if venue.contact_phone:
        lines.append(_field(t["phone"], venue.contact_phone))
    return "\n".join(lines)


def _pricing_section(venue: VenueProfile, rules: PricingRules, lang: str) -> str:
    t = LABELS[lang]
    currency = t["currency"]
    lines = [t["pricing"], t["fee_note"].format(pct=round(PLATFORM_FEE_RATE * 100)), ""]

    if rules.base_price:
        lines.append(_field(t["base_price"], f"{format_amount(rules.base_price)} {currency}"))
    else:
        prices = []
        for key in ("per_hour", "half_day", "full_day", "evening"):
            amount = getattr(venue, f"price_{key}")
            if amount:
                prices.append(t[key].format(amount=format_amount(amount)))
        if prices:
            lines.append(_field(t["prices"], ", ".join(prices)))

    if rules.per_person_rate:
        lines.append(_field(t["per_person"], f"{format_amount(rules.per_person_rate)} {currency}"))
    if rules.minimum_spend:
        lines.append(_field(t["minimum_spend"], f"{format_amount(rules.minimum_spend)} {currency}"))

    if rules.packages:
        lines.append("")
        lines.append(t["packages"])
        for package in rules.packages:
            unit = "/person" if package.per_person else ""
            line = f"- {package.name}: {format_amount(package.price)} {currency}{unit}"
            if package.description:
                line += f" ({package.description})"
            lines.append(line)

    notes = rules.notes or venue.price_notes
    if notes:
        lines.append("")
        lines.append(_field(t["price_notes"], notes))
    return "\n".join(lines)


def _booking_params_section(params: BookingParams, lang: str) -> str:
    t = LABELS[lang]
    lines = [t["booking_params"]]
    for key, value in (
        ("bp_min_guests", params.min_guests),
        ("bp_max_guests", params.max_guests),
        ("bp_min_duration", params.min_duration_hours),
        ("bp_max_duration", params.max_duration_hours),
        ("bp_min_advance", params.min_advance_days),
        ("bp_max_advance", params.max_advance_months),
    ):
        if value is not None:
            lines.append(t[key].format(v=format_amount(value)))
    if params.blocked_weekdays:
        names = ", ".join(WEEKDAY_NAMES[lang][d % 7] for d in params.blocked_weekdays)
        lines.append(t["bp_blocked_weekdays"].format(v=names))
    return "\n".join(lines)


def _event_types_section(event_types: list[EventTypeConfig], lang: str) -> str:
    t = LABELS[lang]
    lines = [t["event_types"]]
    for status in (EventTypeStatus.WELCOME, EventTypeStatus.DECLINED, EventTypeStatus.ASK_OWNER):
        group = [e for e in event_types if e.status == status]
        if not group:
            continue
        lines.append(t[status.value])
        for event in group:
            lines.append(f"- {event.label} ({event.note})" if event.note else f"- {event.label}")
    return "\n".join(lines)


def _policies_section(policies: PolicyConfig, lang: str) -> str:
    t = LABELS[lang]
    lines = [t["policies"]]
    if policies.cancellation:
        lines.append(_field(t["cancellation"], policies.cancellation))
    if policies.deposit:
        lines.append(_field(t["deposit"], policies.deposit))
    if policies.house_rules:
        lines.append(_field(t["house_rules"], policies.house_rules))
    return "\n".join(lines)


def _faq_section(entries: list[FaqEntry], lang: str) -> str:
    t = LABELS[lang]
    lines = [t["faq"]]
    for entry in entries:
        lines.append(f"**{t['faq_q']}: {entry.question}**")
        lines.append(f"{t['faq_a']}: {entry.answer}")
        lines.append("")
    return "\n".join(lines).rstrip()


def _calendar_section(snapshot: CalendarSnapshot, today: date, lang: str) -> str:
    t = LABELS[lang]
    first = today.isoformat()
    last = add_months(today, CALENDAR_WINDOW_MONTHS).isoformat()

    def window(dates: list[str]) -> str:
        within = sorted(d for d in set(dates) if first <= d <= last)
        return ", ".join(within) if within else t["none"]

    return "\n".join([
        t["calendar"].format(months=CALENDAR_WINDOW_MONTHS),
        _field(t["blocked_dates"], window(snapshot.blocked_dates)),
        _field(t["booked_dates"], window(snapshot.booked_dates)),
        "",
        t["verify"],
    ])


# ── Public API ───────────────────────────────────────────────────────


def build_agent_system_prompt(
    venue: VenueProfile,
    config: AgentConfig | None,
    calendar: CalendarSnapshot,
    today: date,
) -> str:
    """Assemble the agent's instruction document for one venue."""
    config = config or AgentConfig(venue_id=venue.id)
    lang = config.language if config.language in LABELS else "sv"

    sections = [
        _identity_section(venue, today, lang),
        _venue_profile_section(venue, lang),
        _pricing_section(venue, config.pricing_rules, lang),
    ]
    if not config.booking_params.is_empty():
        sections.append(_booking_params_section(config.booking_params, lang))
    if config.event_types:
        sections.append(_event_types_section(config.event_types, lang))
    if not config.policy_config.is_empty():
        sections.append(_policies_section(config.policy_config, lang))
    if config.faq_entries:
        sections.append(_faq_section(config.faq_entries, lang))
    sections.append(_calendar_section(calendar, today, lang))
    sections.append(ESCALATION_RULES[lang])

    return SECTION_SEPARATOR.join(sections)
