import asyncio
import json
import logging
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Callable

from dotenv import load_dotenv
from google import genai
from google.genai import types

from models import Snapshot
from prompts import SNAPSHOT_FIELDS, build_snapshot_prompt

# Load .env from project root (one level above backend/)
load_dotenv(dotenv_path=Path(__file__).parent.parent / ".env")

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-3-flash-preview")
DASHBOARD_TOWN = os.getenv("DASHBOARD_TOWN", "Baja")
DASHBOARD_COUNTRY = os.getenv("DASHBOARD_COUNTRY", "Hungary")
FETCH_TIMEOUT_SECONDS = float(os.getenv("FETCH_TIMEOUT_SECONDS", "60"))

QUOTA_MESSAGE = (
    "Elérte az AI szolgáltatás használati korlátját (kvóta). "
    "Kérjük, próbálja újra néhány perc múlva."
)

_QUOTA_MARKERS = ("429", "quota", "resource_exhausted")
_OPENING_FENCE = re.compile(r"^```[\w+-]*[ \t]*\n?")
_CLOSING_FENCE = re.compile(r"\n?```$")

logger = logging.getLogger(__name__)


class FetchError(Exception):
    pass


class DataFormatError(FetchError):
    pass


class BackendError(FetchError):
    pass


class QuotaExceededError(FetchError):
    def __init__(self, message: str, user_message: str = QUOTA_MESSAGE):
        super().__init__(message)
        self.user_message = user_message


def _make_genai_client() -> genai.Client:
    if not GEMINI_API_KEY:
        logger.warning("GEMINI_API_KEY is not set; backend requests will be rejected.")
    return genai.Client(api_key=GEMINI_API_KEY)


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences (possibly nested) and surrounding whitespace."""
    cleaned = text.strip()
    while True:
        stripped = _OPENING_FENCE.sub("", cleaned, count=1)
        stripped = _CLOSING_FENCE.sub("", stripped, count=1).strip()
        if stripped == cleaned:
            return cleaned
        cleaned = stripped


def parse_snapshot_fields(text: str) -> dict[str, str]:
    """Parse backend text into the snapshot fields it contains.

    Raises DataFormatError when the text is not a JSON object, when a known
    field holds something other than a string or number, or when none of the
    known fields are present. Unknown keys are dropped.
    """
    cleaned = strip_code_fences(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise DataFormatError(f"response is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise DataFormatError(f"expected a JSON object, got {type(data).__name__}")

    fields: dict[str, str] = {}
    for name in SNAPSHOT_FIELDS:
        value = data.get(name)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            raise DataFormatError(f"field {name!r} must be a string, got {type(value).__name__}")
        fields[name] = str(value)

    if not fields:
        raise DataFormatError("response contains none of the expected fields")
    return fields


def classify_backend_error(exc: Exception) -> FetchError:
    message = str(exc)
    lowered = message.lower()
    if any(marker in lowered for marker in _QUOTA_MARKERS):
        return QuotaExceededError(message)
    return BackendError(message)


class DataFetcher:
    def __init__(
        self,
        client: genai.Client | None = None,
        model: str = GEMINI_MODEL,
        town: str = DASHBOARD_TOWN,
        country: str = DASHBOARD_COUNTRY,
        timeout: float = FETCH_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.client = client
        self.model = model
        self.town = town
        self.country = country
        self.timeout = timeout
        self.clock = clock

    def build_prompt(self) -> str:
        return build_snapshot_prompt(
            self.town, self.country, self.clock().strftime("%Y-%m-%d")
        )

    def _get_client(self) -> genai.Client:
        """Return the injected client, building the default one on first use.

        A client that cannot be built (e.g. no API key) fails this fetch with
        BackendError; the next fetch tries again.
        """
        if self.client is None:
            try:
                self.client = _make_genai_client()
            except Exception as exc:
                logger.error("Gemini client unavailable: %s", exc)
                raise BackendError(f"backend client unavailable: {exc}") from exc
        return self.client

    async def fetch(self) -> Snapshot:
        client = self._get_client()
        prompt = self.build_prompt()
        logger.info("Fetching snapshot: model=%s, town=%r", self.model, self.town)

        try:
            response = await asyncio.wait_for(
                client.aio.models.generate_content(
                    model=self.model,
                    contents=prompt,
                    config=types.GenerateContentConfig(
                        tools=[types.Tool(google_search=types.GoogleSearch())],
                    ),
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.error("Backend call timed out after %.1fs", self.timeout)
            raise BackendError(f"backend call timed out after {self.timeout}s") from exc
        except Exception as exc:
            error = classify_backend_error(exc)
            logger.error("Backend call failed (%s): %s", type(error).__name__, exc)
            raise error from exc

        text = response.text
        if not text:
            logger.error("Backend returned empty content")
            raise DataFormatError("backend returned empty content")

        logger.info("Backend response: %r", text[:200])
        try:
            fields = parse_snapshot_fields(text)
        except DataFormatError as exc:
            logger.error("Malformed backend response: %s", exc)
            raise

        return Snapshot(**fields, lastUpdated=self.clock().strftime("%H:%M:%S"))
