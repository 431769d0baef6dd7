# ABOUTME: Terminal rendering of query results with rich: banner, weather panels, comparisons, errors.
# ABOUTME: All numbers are formatted in the unit system carried by each weather record.

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from nimbus.config import VERSION
from nimbus.models import CurrentConditions, DailyForecast, NormalizedWeather, QueryResult, WeatherSummary
from nimbus.units import (
    compass_point,
    condition_glyph,
    format_temperature,
    format_visibility,
    format_wind_speed,
    temperature_color,
)

EXAMPLE_QUERIES = [
    "weather in Paris today",
    "will it rain in London tomorrow?",
    "5 day forecast for Tokyo in fahrenheit",
    "compare London and Paris weather",
    "weather here this weekend",
]


def render_banner(console: Console) -> None:
    console.print(f"[bold cyan]🌤️  Nimbus[/bold cyan] [dim]v{VERSION} • AI-powered weather in your terminal[/dim]")


def render_examples(console: Console) -> None:
    console.print("[bold]Ask about the weather in plain language, for example:[/bold]")
    for query in EXAMPLE_QUERIES:
        console.print(f'  [cyan]nimbus "{query}"[/cyan]')


def _temperature(value: float, units: str) -> Text:
    return Text(format_temperature(value, units), style=f"bold {temperature_color(value, units)}")


def current_block(current: CurrentConditions, units: str) -> Table:
    table = Table.grid(padding=(0, 2))
    table.add_column(style="dim")
    table.add_column()

    headline = Text(f"{condition_glyph(current.condition_main, current.description)} ")
    headline.append(_temperature(current.temperature, units))
    headline.append(f"  {current.description.capitalize()}")
    table.add_row("Now", headline)
    table.add_row("Feels like", _temperature(current.feels_like, units))
    table.add_row("Humidity", f"{current.humidity}%")
    table.add_row(
        "Wind",
        f"{format_wind_speed(current.wind_speed, units)} {compass_point(current.wind_direction_degrees)}",
    )
    table.add_row("Pressure", f"{round(current.pressure)} hPa")
    table.add_row("Visibility", format_visibility(current.visibility, units))
    return table


def forecast_block(days: list[DailyForecast], units: str) -> Table:
    table = Table(box=None, padding=(0, 1), show_edge=False)
    table.add_column("Day", style="bold")
    table.add_column("")
    table.add_column("Low", justify="right")
    table.add_column("High", justify="right")
    table.add_column("Rain", justify="right")
    table.add_column("Wind", justify="right")
    table.add_column("Conditions")
    for day in days:
        table.add_row(
            day.date.strftime("%a %d %b"),
            condition_glyph(day.condition_main, day.description),
            _temperature(day.temperature_min, units),
            _temperature(day.temperature_max, units),
            f"{day.precipitation_probability}%",
            format_wind_speed(day.wind_speed, units),
            day.description.capitalize(),
        )
    return table


def summary_block(summary: WeatherSummary) -> Text:
    text = Text(summary.briefing)
    for tip in summary.tips:
        text.append(f"\n💡 {tip}", style="italic")
    return text


def weather_panel(weather: NormalizedWeather, summary: WeatherSummary | None = None) -> Panel:
    parts = []
    if weather.current is not None:
        parts.append(current_block(weather.current, weather.units))
    if weather.forecast:
        if parts:
            parts.append(Text())
        parts.append(forecast_block(weather.forecast, weather.units))
    if summary is not None:
        parts.append(Text())
        parts.append(summary_block(summary))
    if not parts:
        parts.append(Text("No weather data returned.", style="dim"))

    title = f"📍 {weather.city}, {weather.country}" if weather.country else f"📍 {weather.city}"
    return Panel(Group(*parts), title=title, title_align="left", border_style="cyan", expand=False)


def comparison_line(weather: NormalizedWeather) -> Text:
    line = Text(f"{weather.city}, {weather.country}".ljust(28), style="bold")
    if weather.current is not None:
        current = weather.current
        line.append(f"{condition_glyph(current.condition_main, current.description)} ")
        line.append(_temperature(current.temperature, weather.units))
        line.append(f"  {current.description}, wind {format_wind_speed(current.wind_speed, weather.units)}")
    elif weather.forecast:
        day = weather.forecast[0]
        line.append(f"{condition_glyph(day.condition_main, day.description)} ")
        line.append(_temperature(day.temperature_min, weather.units))
        line.append(" / ")
        line.append(_temperature(day.temperature_max, weather.units))
        line.append(f"  {day.description}, {day.precipitation_probability}% rain")
    return line


def render_comparison(console: Console, result: QueryResult) -> None:
    lines = [comparison_line(w) for w in result.weather]
    if result.summary is not None:
        lines += [Text(), summary_block(result.summary)]
    console.print(Panel(Group(*lines), title="⚖️  Comparison", title_align="left", border_style="cyan", expand=False))
    for city in result.failed_cities:
        console.print(f"[yellow]⚠️  Could not fetch weather for {city}[/yellow]")


def render_result(console: Console, result: QueryResult) -> None:
    if result.is_comparison:
        render_comparison(console, result)
    else:
        console.print(weather_panel(result.weather[0], result.summary))


def render_error(console: Console, message: str) -> None:
    console.print(Text(f"❌ {message}", style="bold red"))
