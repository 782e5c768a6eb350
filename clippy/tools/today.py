"""Current date and time tool."""

from datetime import datetime
from typing import Callable

from clippy.tools.registry import Tool, ToolResult


class TodayTool(Tool):
    """Report the current local date and time in RFC 3339 format."""

    name = "get_today_date"
    description = "Get today's date and time in RFC3339 format"
    parameters = {"type": "object", "properties": {}}

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or (lambda: datetime.now().astimezone())

    async def handle(self, raw_arguments: str) -> ToolResult:
        return ToolResult(content=self._clock().isoformat(timespec="seconds"))
