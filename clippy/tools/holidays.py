"""Bank and public holiday tool backed by an ICS calendar feed."""

import os
from datetime import date, datetime

import httpx
from icalendar import Calendar
from pydantic import BaseModel, Field

from clippy.logging import get_logger
from clippy.tools.registry import Tool, ToolResult

log = get_logger(__name__)

DEFAULT_CALENDAR_URL = "https://www.officeholidays.com/ics/spain/catalonia"


class HolidayArguments(BaseModel):
    before_date: datetime | None = None
    after_date: datetime | None = None
    max_count: int = Field(default=0, ge=0)


class HolidaysTool(Tool):
    """List holidays from the configured calendar, optionally filtered."""

    name = "get_holidays"
    description = (
        "Gets local bank and public holidays. Each line is a single holiday "
        "in the format 'YYYY-MM-DD: Holiday Name'."
    )
    parameters = {
        "type": "object",
        "properties": {
            "before_date": {
                "type": "string",
                "description": (
                    "Optional date in RFC3339 format to get holidays before this date. "
                    "If not provided, all holidays will be returned."
                ),
            },
            "after_date": {
                "type": "string",
                "description": (
                    "Optional date in RFC3339 format to get holidays after this date. "
                    "If not provided, all holidays will be returned."
                ),
            },
            "max_count": {
                "type": "integer",
                "description": (
                    "Optional maximum number of holidays to return. "
                    "If not provided, all holidays will be returned."
                ),
            },
        },
    }

    def __init__(
        self,
        calendar_url: str = DEFAULT_CALENDAR_URL,
        client: httpx.AsyncClient | None = None,
    ):
        self.calendar_url = calendar_url
        self.client = client or httpx.AsyncClient(follow_redirects=True)

    async def handle(self, raw_arguments: str) -> ToolResult:
        args = self.parse_arguments(raw_arguments, HolidayArguments)
        link = os.environ.get("HOLIDAY_CALENDAR_LINK") or self.calendar_url

        try:
            events = await self._load_events(link)
        except (httpx.HTTPError, ValueError) as e:
            log.error("Failed to load holiday calendar", link=link, error=str(e))
            return ToolResult(success=False, error="failed to load holiday events")

        before = args.before_date.date() if args.before_date else None
        after = args.after_date.date() if args.after_date else None

        holidays: list[str] = []
        for day, summary in events:
            if args.max_count and len(holidays) >= args.max_count:
                break
            if before is not None and day > before:
                continue
            if after is not None and day < after:
                continue
            holidays.append(f"{day.isoformat()}: {summary}")

        if not holidays:
            return ToolResult(content="No holidays found.")
        return ToolResult(content="\n".join(holidays))

    async def _load_events(self, link: str) -> list[tuple[date, str]]:
        """Fetch the feed and return (start date, summary) pairs in feed order."""
        log.info("Loading calendar", link=link)
        response = await self.client.get(link)
        response.raise_for_status()

        calendar = Calendar.from_ical(response.content)
        events: list[tuple[date, str]] = []
        for event in calendar.walk("VEVENT"):
            if "DTSTART" not in event:
                continue
            start = event.decoded("DTSTART")
            if isinstance(start, datetime):
                start = start.date()
            events.append((start, str(event.get("SUMMARY", "")).strip()))
        return events

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()
