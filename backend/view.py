import re

from models import CardView, Snapshot

PLACEHOLDER = "--"

_NUMERIC_TOKEN = re.compile(r"-?\d+(?:\.\d+)?")

# (attribute, title, unit, numeric, section) in display order
CARD_LAYOUT = (
    ("temperature", "Hőmérséklet", "°C", True, "environment"),
    ("wind_speed", "Szélerősség", "km/h", True, "environment"),
    ("water_level", "Dunai Vízállás", "cm", True, "environment"),
    ("sunrise", "Napkelte", "", False, "astronomy"),
    ("sunset", "Napnyugta", "", False, "astronomy"),
    ("moonrise", "Holdkelte", "", False, "astronomy"),
    ("moonset", "Holdnyugta", "", False, "astronomy"),
    ("moon_phase", "Holdfázis", "", False, "astronomy"),
    ("next_full_moon", "Következő Telihold", "", False, "astronomy"),
)


def extract_numeric(raw: str) -> str | None:
    """Return the first signed decimal token in raw, e.g. "23.5°C approx" -> "23.5"."""
    match = _NUMERIC_TOKEN.search(raw)
    return match.group(0) if match else None


def display_value(raw: str | None, numeric: bool = False) -> str:
    if raw is None or not raw.strip():
        return PLACEHOLDER
    if numeric:
        return extract_numeric(raw) or raw
    return raw


def build_cards(snapshot: Snapshot | None) -> list[CardView]:
    if snapshot is None:
        return []

    cards = []
    for attr, title, unit, numeric, section in CARD_LAYOUT:
        value = display_value(getattr(snapshot, attr), numeric=numeric)
        cards.append(
            CardView(
                key=attr,
                title=title,
                value=value,
                unit=unit if value != PLACEHOLDER else "",
                section=section,
            )
        )
    return cards
