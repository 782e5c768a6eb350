"""Stock quote tool powered by Finnhub."""

import os

import httpx
from pydantic import BaseModel, field_validator

from clippy.logging import get_logger
from clippy.tools.registry import Tool, ToolResult

log = get_logger(__name__)

_UNAVAILABLE = "stock service unavailable"


class StockArguments(BaseModel):
    symbol: str

    @field_validator("symbol")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip().upper()
        if not value:
            raise ValueError("symbol must not be empty")
        return value


class StockTool(Tool):
    """Real-time quote for a ticker symbol."""

    name = "get_stock_quote"
    description = "Get the current market value for a given stock symbol"
    parameters = {
        "type": "object",
        "properties": {
            "symbol": {
                "type": "string",
                "description": "Ticker symbol, e.g. AAPL, TSLA, MSFT",
            },
        },
        "required": ["symbol"],
    }

    def __init__(
        self,
        api_key: str = "",
        base_url: str = "https://finnhub.io/api/v1",
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(follow_redirects=True)

    async def handle(self, raw_arguments: str) -> ToolResult:
        args = self.parse_arguments(raw_arguments, StockArguments)

        token = self.api_key or os.environ.get("FINNHUB_TOKEN", "")
        if not token:
            log.error("Finnhub token is not configured")
            return ToolResult(success=False, error=_UNAVAILABLE)

        try:
            response = await self.client.get(
                f"{self.base_url}/quote",
                params={"symbol": args.symbol, "token": token},
            )
            response.raise_for_status()
            quote = response.json()
            content = (
                "Current price for {}: ${:.2f} (high ${:.2f}, low ${:.2f}, "
                "open ${:.2f}, prev close ${:.2f})"
            ).format(
                args.symbol,
                float(quote["c"]),
                float(quote["h"]),
                float(quote["l"]),
                float(quote["o"]),
                float(quote["pc"]),
            )
            return ToolResult(content=content)
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            log.error("Stock lookup failed", symbol=args.symbol, error=str(e))
            return ToolResult(success=False, error=_UNAVAILABLE)

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()
