"""Tools package for Clippy."""

from clippy.config import Config, get_config
from clippy.tools.holidays import HolidaysTool
from clippy.tools.registry import (
    DEFAULT_TOOL_TIMEOUT_SECONDS,
    Tool,
    ToolRegistry,
    ToolResult,
)
from clippy.tools.stock import StockTool
from clippy.tools.today import TodayTool
from clippy.tools.weather import WeatherTool


def build_default_registry(config: Config | None = None) -> ToolRegistry:
    """Build the registry of built-in tools enabled in config."""
    cfg = config or get_config()
    tools_cfg = cfg.tools
    factories = {
        TodayTool.name: TodayTool,
        WeatherTool.name: lambda: WeatherTool(
            api_key=tools_cfg.weather.api_key,
            base_url=tools_cfg.weather.base_url,
            forecast_days=tools_cfg.weather.forecast_days,
        ),
        StockTool.name: lambda: StockTool(
            api_key=tools_cfg.stock.api_key,
            base_url=tools_cfg.stock.base_url,
        ),
        HolidaysTool.name: lambda: HolidaysTool(
            calendar_url=tools_cfg.holidays.calendar_url,
        ),
    }
    unknown = [name for name in tools_cfg.enabled if name not in factories]
    if unknown:
        raise ValueError(f"Unknown tools enabled in config: {', '.join(unknown)}")

    return ToolRegistry(
        *(factories[name]() for name in dict.fromkeys(tools_cfg.enabled)),
        timeout_seconds=tools_cfg.timeout_seconds,
    )


__all__ = [
    "DEFAULT_TOOL_TIMEOUT_SECONDS",
    "Tool",
    "ToolRegistry",
    "ToolResult",
    "build_default_registry",
    "TodayTool",
    "WeatherTool",
    "StockTool",
    "HolidaysTool",
]
