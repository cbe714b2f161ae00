"""
Live facts for prompt grounding: OpenWeather forecast and NPS park data.

Everything here is best effort. A missing key, a timeout or a malformed
payload turns into ``None`` for that slot and never into an exception.
"""
import asyncio
import logging
import re
from collections import Counter, OrderedDict
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx

from trailverse.core.config import settings
from trailverse.core.structured_logging import monitor_performance

logger = logging.getLogger(__name__)

WEATHER_KEYWORDS = re.compile(
    r"(weather|forecast|temperature|rain|snow|wind|sunny|cloud|storm|hot|cold|precipitation|humidity|climate)",
    re.IGNORECASE,
)
NPS_KEYWORDS = re.compile(
    r"(alerts|closures|permits|trails|activities|highlights|campgrounds|visitor center|ranger|events|weather|forecast|climate)",
    re.IGNORECASE,
)

ALERT_CATEGORIES = ("Information", "Caution", "Closure")
MAX_HIGHLIGHTS = 5
MAX_ALERTS = 3
FORECAST_DAYS = 3
MPS_TO_MPH = 2.237

_FETCH_ERRORS = (httpx.HTTPError, ValueError, KeyError, TypeError, IndexError)


@dataclass
class FactsBundle:
    weather_facts: Optional[str] = None
    nps_facts: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return asdict(self)


def needs_weather_facts(user_message: Optional[str]) -> bool:
    return bool(user_message) and WEATHER_KEYWORDS.search(user_message) is not None


def needs_nps_facts(user_message: Optional[str]) -> bool:
    return bool(user_message) and NPS_KEYWORDS.search(user_message) is not None


def _celsius_to_fahrenheit(value: float) -> float:
    return value * 9 / 5 + 32


def summarize_forecast(payload: Dict[str, Any]) -> Optional[str]:
    """Collapse a 5-day/3-hour forecast into a three-day text block."""
    entries = payload.get("list") or []
    if not entries:
        return None

    city = payload.get("city") or {}
    location = city.get("name") or "Current location"
    offset = timedelta(seconds=city.get("timezone") or 0)

    days: "OrderedDict[Any, Dict[str, List]]" = OrderedDict()
    for item in entries:
        local_time = datetime.fromtimestamp(item["dt"], tz=timezone.utc) + offset
        bucket = days.setdefault(local_time.date(), {"temps": [], "conditions": [], "humidity": [], "wind": []})
        bucket["temps"].append(item["main"]["temp"])
        bucket["conditions"].append(item["weather"][0]["description"])
        bucket["humidity"].append(item["main"]["humidity"])
        bucket["wind"].append(item.get("wind", {}).get("speed", 0) * MPS_TO_MPH)

    lines = []
    for day, bucket in list(days.items())[:FORECAST_DAYS]:
        high = round(_celsius_to_fahrenheit(max(bucket["temps"])))
        low = round(_celsius_to_fahrenheit(min(bucket["temps"])))
        humidity = round(sum(bucket["humidity"]) / len(bucket["humidity"]))
        wind = round(sum(bucket["wind"]) / len(bucket["wind"]))
        # most_common keeps first-seen order on ties
        condition = Counter(bucket["conditions"]).most_common(1)[0][0]
        lines.append(
            f"{day.strftime('%a')}: High {high}°F, Low {low}°F, {condition}, "
            f"Humidity {humidity}%, Wind {wind} mph"
        )

    forecast_text = "\n".join(lines)
    return f"Weather Forecast at {location} (Next 3 Days):\n{forecast_text}\n(From OpenWeather API - 5-day forecast)"


def format_nps_facts(details: Optional[Dict[str, Any]], alerts: List[Dict[str, Any]]) -> Optional[str]:
    sections = []

    if details:
        activities = details.get("activities") or []
        if activities:
            highlights = "\n".join(f"- {a.get('name')}" for a in activities[:MAX_HIGHLIGHTS])
            sections.append(f"Highlights:\n{highlights}")

    relevant = [a for a in alerts if a.get("category") in ALERT_CATEGORIES][:MAX_ALERTS]
    if not details and not relevant:
        return None

    if relevant:
        alert_lines = "\n".join(f"- {a.get('title')} ({a.get('category')})" for a in relevant)
        sections.append(f"Active Alerts:\n{alert_lines}")
    else:
        sections.append("Active Alerts:\nNone reported")

    return "\n\n".join(sections)


class FactsAggregator:
    def __init__(
        self,
        openweather_api_key: Optional[str] = None,
        nps_api_key: Optional[str] = None,
        *,
        forecast_url: str = "https://api.openweathermap.org/data/2.5/forecast",
        nps_base_url: str = "https://developer.nps.gov/api/v1",
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.openweather_api_key = openweather_api_key
        self.nps_api_key = nps_api_key
        self.forecast_url = forecast_url
        self.nps_base_url = nps_base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls, transport: Optional[httpx.AsyncBaseTransport] = None) -> "FactsAggregator":
        return cls(
            openweather_api_key=settings.OPENWEATHER_API_KEY,
            nps_api_key=settings.NPS_API_KEY,
            forecast_url=settings.OPENWEATHER_FORECAST_URL,
            nps_base_url=settings.NPS_API_BASE_URL,
            timeout=settings.FACTS_TIMEOUT_SECONDS,
            transport=transport,
        )

    def _client(self, **kwargs) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport, **kwargs)

    async def fetch_weather_facts(self, lat: Optional[float], lon: Optional[float]) -> Optional[str]:
        if lat is None or lon is None or not self.openweather_api_key:
            logger.info("Weather facts skipped: missing coordinates or API key")
            return None

        try:
            async with self._client() as client:
                response = await client.get(self.forecast_url, params={
                    "lat": lat,
                    "lon": lon,
                    "units": "metric",
                    "appid": self.openweather_api_key,
                })
                response.raise_for_status()
                return summarize_forecast(response.json())
        except _FETCH_ERRORS as e:
            logger.warning(f"Weather facts error: {e!r}")
            return None

    async def fetch_nps_facts(self, park_code: Optional[str]) -> Optional[str]:
        if not park_code or not self.nps_api_key:
            logger.info("NPS facts skipped: missing parkCode or API key")
            return None

        async with self._client(base_url=self.nps_base_url, params={"api_key": self.nps_api_key}) as client:
            details_res, alerts_res = await asyncio.gather(
                client.get("/parks", params={"parkCode": park_code}),
                client.get("/alerts", params={"parkCode": park_code}),
                return_exceptions=True,
            )

        details = self._first_record(details_res, park_code, "parks")
        alerts = self._records(alerts_res, park_code, "alerts")
        if details is None:
            logger.info(f"No park details found for {park_code}")
        return format_nps_facts(details, alerts)

    def _records(self, result, park_code: str, kind: str) -> List[Dict[str, Any]]:
        if isinstance(result, BaseException):
            logger.warning(f"NPS {kind} request failed for {park_code}: {result!r}")
            return []
        try:
            result.raise_for_status()
            return list(result.json().get("data") or [])
        except _FETCH_ERRORS as e:
            logger.warning(f"NPS {kind} response unusable for {park_code}: {e!r}")
            return []

    def _first_record(self, result, park_code: str, kind: str) -> Optional[Dict[str, Any]]:
        records = self._records(result, park_code, kind)
        return records[0] if records else None

    @monitor_performance("facts.fetch_relevant_facts")
    async def fetch_relevant_facts(
        self,
        user_message: Optional[str],
        park_code: Optional[str] = None,
        lat: Optional[float] = None,
        lon: Optional[float] = None,
        park_name: Optional[str] = None,
    ) -> FactsBundle:
        """Fetch whichever facts the message asks about, concurrently."""
        bundle = FactsBundle()
        should_fetch_weather = needs_weather_facts(user_message) and lat is not None and lon is not None
        should_fetch_nps = needs_nps_facts(user_message) and bool(park_code)

        logger.info(
            f"Fetching facts: weather={should_fetch_weather} nps={should_fetch_nps} "
            f"park={park_name or park_code or '-'}"
        )

        slots = []
        tasks = []
        if should_fetch_weather:
            slots.append("weather_facts")
            tasks.append(self.fetch_weather_facts(lat, lon))
        if should_fetch_nps:
            slots.append("nps_facts")
            tasks.append(self.fetch_nps_facts(park_code))

        if tasks:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for slot, result in zip(slots, results):
                if isinstance(result, BaseException):
                    logger.error(f"{slot} fetch raised: {result!r}")
                    continue
                setattr(bundle, slot, result)

        logger.info(f"Facts results: weather={bundle.weather_facts is not None} nps={bundle.nps_facts is not None}")
        return bundle


facts_aggregator = FactsAggregator.from_settings()
