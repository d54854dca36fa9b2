import asyncio
import json
import os
import sys
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

# Ensure backend/ is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import fetcher as fetcher_module
from fetcher import (
    BackendError,
    DataFetcher,
    DataFormatError,
    QuotaExceededError,
    classify_backend_error,
    parse_snapshot_fields,
    strip_code_fences,
)
from prompts import NO_DATA, SNAPSHOT_FIELDS


# ── Helpers ──────────────────────────────────────────────────────────────────

FIXED_NOW = datetime(2026, 2, 28, 14, 5, 9)

SNAPSHOT_JSON = json.dumps({
    "temperature": "21",
    "windSpeed": "12",
    "waterLevel": "180",
    "sunrise": "06:45",
    "sunset": "18:02",
    "moonrise": "20:10",
    "moonset": "09:15",
    "moonPhase": "Első negyed",
    "nextFullMoon": "2026-03-14",
}, ensure_ascii=False)


def _make_mock_client(text: str | None = SNAPSHOT_JSON):
    response = MagicMock()
    response.text = text
    mock_client = MagicMock()
    mock_client.aio.models.generate_content = AsyncMock(return_value=response)
    return mock_client


def _make_fetcher(mock_client, **kwargs) -> DataFetcher:
    return DataFetcher(client=mock_client, model="test-model", clock=lambda: FIXED_NOW, **kwargs)


# ── Tests: strip_code_fences / parse_snapshot_fields ─────────────────────────

@pytest.mark.parametrize(
    "wrapped",
    [
        SNAPSHOT_JSON,
        f"  {SNAPSHOT_JSON}\n",
        f"```json\n{SNAPSHOT_JSON}\n```",
        f"```\n{SNAPSHOT_JSON}\n```",
        f"```JSON {SNAPSHOT_JSON}```",
        f"```\n```json\n{SNAPSHOT_JSON}\n```\n```",
    ],
)
def test_fenced_json_parses_like_plain_json(wrapped):
    assert parse_snapshot_fields(wrapped) == json.loads(SNAPSHOT_JSON)


def test_strip_code_fences_leaves_plain_text_alone():
    assert strip_code_fences('  {"a": "b"}  ') == '{"a": "b"}'


def test_not_json_raises_data_format_error():
    with pytest.raises(DataFormatError):
        parse_snapshot_fields("not json at all")


def test_json_array_raises_data_format_error():
    with pytest.raises(DataFormatError):
        parse_snapshot_fields('["21", "12"]')


def test_object_without_known_fields_raises_data_format_error():
    with pytest.raises(DataFormatError):
        parse_snapshot_fields('{"error": "no data found"}')


def test_nested_field_value_raises_data_format_error():
    with pytest.raises(DataFormatError):
        parse_snapshot_fields('{"temperature": {"value": 21}}')


def test_numbers_are_converted_to_strings():
    fields = parse_snapshot_fields('{"temperature": 21.5, "windSpeed": 12}')
    assert fields == {"temperature": "21.5", "windSpeed": "12"}


def test_null_and_unknown_keys_are_dropped():
    fields = parse_snapshot_fields('{"temperature": "21", "sunset": null, "humidity": "80%"}')
    assert fields == {"temperature": "21"}


# ── Tests: classify_backend_error ────────────────────────────────────────────

@pytest.mark.parametrize(
    "message",
    [
        "429 Too Many Requests",
        "You exceeded your current quota, please check your plan",
        "Quota exceeded for metric generate_content_requests",
        "429 RESOURCE_EXHAUSTED",
    ],
)
def test_quota_errors_are_reclassified(message):
    error = classify_backend_error(RuntimeError(message))
    assert isinstance(error, QuotaExceededError)
    assert error.user_message


@pytest.mark.parametrize(
    "message",
    ["403 PERMISSION_DENIED: API key not valid", "500 INTERNAL", "connection reset"],
)
def test_other_errors_become_backend_error(message):
    error = classify_backend_error(RuntimeError(message))
    assert type(error) is BackendError
    assert str(error) == message


# ── Tests: DataFetcher.fetch ─────────────────────────────────────────────────

async def test_fetch_returns_snapshot():
    fetcher = _make_fetcher(_make_mock_client(f"```json\n{SNAPSHOT_JSON}\n```"))

    snapshot = await fetcher.fetch()

    assert snapshot.temperature == "21"
    assert snapshot.wind_speed == "12"
    assert snapshot.water_level == "180"
    assert snapshot.moon_phase == "Első negyed"
    assert snapshot.next_full_moon == "2026-03-14"
    assert snapshot.last_updated == "14:05:09"


async def test_fetch_overrides_backend_last_updated():
    payload = json.loads(SNAPSHOT_JSON)
    payload["lastUpdated"] = "03:00:00"
    fetcher = _make_fetcher(_make_mock_client(json.dumps(payload)))

    snapshot = await fetcher.fetch()

    assert snapshot.last_updated == "14:05:09"


async def test_fetch_leaves_missing_fields_unset():
    fetcher = _make_fetcher(_make_mock_client('{"temperature": "21", "moonPhase": "%s"}' % NO_DATA))

    snapshot = await fetcher.fetch()

    assert snapshot.temperature == "21"
    assert snapshot.moon_phase == NO_DATA
    assert snapshot.sunrise is None
    assert snapshot.water_level is None


async def test_fetch_sends_prompt_with_search_tool():
    mock_client = _make_mock_client()
    fetcher = _make_fetcher(mock_client, town="Baja", country="Hungary")

    await fetcher.fetch()

    mock_client.aio.models.generate_content.assert_awaited_once()
    kwargs = mock_client.aio.models.generate_content.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert "Baja, Hungary" in kwargs["contents"]
    assert "2026-02-28" in kwargs["contents"]
    for name in SNAPSHOT_FIELDS:
        assert name in kwargs["contents"]
    assert f'"{NO_DATA}"' in kwargs["contents"]
    assert kwargs["config"].tools[0].google_search is not None


async def test_fetch_malformed_json_raises():
    fetcher = _make_fetcher(_make_mock_client("not json at all"))

    with pytest.raises(DataFormatError):
        await fetcher.fetch()


async def test_fetch_empty_text_raises():
    fetcher = _make_fetcher(_make_mock_client(None))

    with pytest.raises(DataFormatError):
        await fetcher.fetch()


async def test_fetch_quota_error():
    mock_client = _make_mock_client()
    mock_client.aio.models.generate_content.side_effect = RuntimeError(
        "429 RESOURCE_EXHAUSTED. You exceeded your current quota."
    )
    fetcher = _make_fetcher(mock_client)

    with pytest.raises(QuotaExceededError) as excinfo:
        await fetcher.fetch()
    assert isinstance(excinfo.value.__cause__, RuntimeError)


async def test_fetch_backend_error():
    mock_client = _make_mock_client()
    mock_client.aio.models.generate_content.side_effect = RuntimeError("API key not valid")
    fetcher = _make_fetcher(mock_client)

    with pytest.raises(BackendError):
        await fetcher.fetch()


async def test_fetch_timeout_raises_backend_error():
    async def _hang(**kwargs):
        await asyncio.sleep(10)

    mock_client = _make_mock_client()
    mock_client.aio.models.generate_content.side_effect = _hang
    fetcher = _make_fetcher(mock_client, timeout=0.01)

    with pytest.raises(BackendError, match="timed out"):
        await fetcher.fetch()


async def test_fetch_without_client_raises_backend_error():
    fetcher = DataFetcher(clock=lambda: FIXED_NOW)

    with patch.object(
        fetcher_module, "_make_genai_client", side_effect=ValueError("No API key was provided")
    ) as mock_factory:
        with pytest.raises(BackendError, match="No API key"):
            await fetcher.fetch()
        with pytest.raises(BackendError):
            await fetcher.fetch()

    assert mock_factory.call_count == 2
    assert fetcher.client is None


async def test_fetch_builds_default_client_once():
    mock_client = _make_mock_client()
    fetcher = DataFetcher(clock=lambda: FIXED_NOW)

    with patch.object(fetcher_module, "_make_genai_client", return_value=mock_client) as mock_factory:
        await fetcher.fetch()
        snapshot = await fetcher.fetch()

    mock_factory.assert_called_once()
    assert fetcher.client is mock_client
    assert snapshot.temperature == "21"
