"""Weather tool powered by WeatherAPI."""

import os
from datetime import date

import httpx
from pydantic import BaseModel, field_validator

from clippy.logging import get_logger
from clippy.tools.registry import Tool, ToolResult

log = get_logger(__name__)

_UNAVAILABLE = "weather service unavailable"


class WeatherArguments(BaseModel):
    location: str

    @field_validator("location")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("location must not be empty")
        return value


class WeatherTool(Tool):
    """Current conditions plus a short daily forecast for a location."""

    name = "get_weather"
    description = (
        "Get the current weather AND a 3-day forecast for the given location. "
        "Always include both in the reply."
    )
    parameters = {
        "type": "object",
        "properties": {
            "location": {
                "type": "string",
                "description": "City or place name, e.g. Barcelona",
            },
        },
        "required": ["location"],
    }

    def __init__(
        self,
        api_key: str = "",
        base_url: str = "https://api.weatherapi.com/v1",
        forecast_days: int = 3,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.forecast_days = max(1, forecast_days)
        self.client = client or httpx.AsyncClient(follow_redirects=True)

    async def handle(self, raw_arguments: str) -> ToolResult:
        args = self.parse_arguments(raw_arguments, WeatherArguments)

        api_key = self.api_key or os.environ.get("WEATHER_API_KEY", "")
        if not api_key:
            log.error("Weather API key is not configured")
            return ToolResult(success=False, error=_UNAVAILABLE)

        try:
            response = await self.client.get(
                f"{self.base_url}/forecast.json",
                params={"key": api_key, "q": args.location, "days": self.forecast_days},
            )
            response.raise_for_status()
            return ToolResult(content=self._format(response.json()))
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            log.error("Weather lookup failed", location=args.location, error=str(e))
            return ToolResult(success=False, error=_UNAVAILABLE)

    @staticmethod
    def _format(payload: dict) -> str:
        current = payload["current"]
        lines = [
            "{}: {:.1f}°C, {}, wind {:.1f} km/h".format(
                payload["location"]["name"],
                float(current["temp_c"]),
                current.get("condition", {}).get("text", ""),
                float(current.get("wind_kph", 0.0)),
            )
        ]
        for day in payload.get("forecast", {}).get("forecastday", []):
            stats = day["day"]
            lines.append(
                "{}: {:.1f}°C avg, {} (wind {:.1f} km/h)".format(
                    date.fromisoformat(day["date"]).isoformat(),
                    float(stats["avgtemp_c"]),
                    stats.get("condition", {}).get("text", ""),
                    float(stats.get("maxwind_kph", 0.0)),
                )
            )
        return "\n".join(lines)

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()
