SNAPSHOT_FIELDS = (
    "temperature",
    "windSpeed",
    "waterLevel",
    "sunrise",
    "sunset",
    "moonrise",
    "moonset",
    "moonPhase",
    "nextFullMoon",
)

NO_DATA = "Nincs adat"

SNAPSHOT_PROMPT = """Fetch the current data for {town}, {country} for today ({today}):
- Current temperature in Celsius
- Current wind speed in km/h
- Current Danube (Duna) water level at {town} in cm (from hydroinfo.hu or similar)
- Sunrise time (HH:mm)
- Sunset time (HH:mm)
- Moonrise time (HH:mm)
- Moonset time (HH:mm)
- Current moon phase in Hungarian (e.g., Telihold, Újhold, Első negyed, etc.)
- Date of the next full moon (Következő telihold dátuma)

Return the data as a single JSON object with these exact keys: \
{fields}.
Ensure all values are strings. Do not wrap the JSON in markdown or code fences \
and do not add any text before or after it. \
If a specific value is absolutely unavailable, use "{no_data}".
Use your search tool to find the most recent and accurate values."""


def build_snapshot_prompt(town: str, country: str, today: str) -> str:
    return SNAPSHOT_PROMPT.format(
        town=town,
        country=country,
        today=today,
        fields=", ".join(SNAPSHOT_FIELDS),
        no_data=NO_DATA,
    )
