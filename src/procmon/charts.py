"""Text charts for the terminal views: bars, sparklines, trend arrows, graphs.

The plain functions return strings; the ``colored_*`` variants wrap them in
Rich ``Text`` with a threshold or trend style.
"""

from __future__ import annotations

from collections.abc import Sequence

from rich.text import Text

# Block characters (9 levels: empty + 8 filled)
SPARKLINE_CHARS = " ▁▂▃▄▅▆▇█"
GRAPH_CHARS = "▁▂▃▄▅▆▇█"
BAR_FILLED = "#"
BAR_EMPTY = "-"

CPU_WARN = 30.0
CPU_HIGH = 70.0
MEMORY_WARN_MB = 200.0
MEMORY_HIGH_MB = 500.0


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def level_style(value: float, warn: float, high: float) -> str:
    """Rich style for a value against yellow/red thresholds."""
    if value < warn:
        return "green"
    if value < high:
        return "yellow"
    return "red"


def cpu_style(cpu: float, warn: float = CPU_WARN, high: float = CPU_HIGH) -> str:
    return level_style(cpu, warn, high)


def memory_style(
    memory_mb: float, warn: float = MEMORY_WARN_MB, high: float = MEMORY_HIGH_MB
) -> str:
    return level_style(memory_mb, warn, high)


def bar(value: float, maximum: float, width: int = 10) -> str:
    """Fixed-width bar like ``[####------]``. Values above maximum fill the bar."""
    ratio = min(value / maximum, 1.0) if maximum > 0 else 0.0
    filled = max(0, _round_half_up(ratio * width))
    return "[" + BAR_FILLED * filled + BAR_EMPTY * (width - filled) + "]"


def colored_cpu_bar(
    cpu: float, width: int = 10, warn: float = CPU_WARN, high: float = CPU_HIGH
) -> Text:
    """CPU bar scaled to 100%."""
    return Text(bar(cpu, 100, width), style=cpu_style(cpu, warn, high))


def colored_memory_bar(
    memory_mb: float,
    maximum: float,
    width: int = 10,
    warn: float = MEMORY_WARN_MB,
    high: float = MEMORY_HIGH_MB,
) -> Text:
    """Memory bar scaled to maximum (usually the largest process in view)."""
    return Text(bar(memory_mb, maximum, width), style=memory_style(memory_mb, warn, high))


def sparkline(values: Sequence[float], max_points: int = 20) -> str:
    """Sparkline of the last max_points values, scaled between their min and max.

    A flat series renders at the lowest level.
    """
    if not values:
        return ""
    points = list(values)[-max_points:]
    low = min(points)
    span = (max(points) - low) or 1.0
    top = len(SPARKLINE_CHARS) - 1
    return "".join(SPARKLINE_CHARS[_round_half_up((v - low) / span * top)] for v in points)


def trend_style(values: Sequence[float]) -> str:
    """Red when the last value is 20% above the mean, green when 20% below."""
    if len(values) < 2:
        return ""
    last = values[-1]
    mean = sum(values) / len(values)
    if last > mean * 1.2:
        return "red"
    if last < mean * 0.8:
        return "green"
    return "bright_black"


def colored_sparkline(values: Sequence[float], max_points: int = 20) -> Text:
    """Sparkline colored by how the latest value compares to the series mean."""
    return Text(sparkline(values, max_points), style=trend_style(values))


def trend_indicator(current: float, previous: float) -> Text:
    """Arrow for a move of more than 5% between two readings."""
    if current > previous * 1.05:
        return Text("↑", style="red")
    if current < previous * 0.95:
        return Text("↓", style="green")
    return Text("→", style="bright_black")


def downsample(data: Sequence[float], width: int) -> list[float]:
    """Reduce data to at most width points by averaging consecutive buckets."""
    if len(data) <= width:
        return list(data)
    step = len(data) / width
    result: list[float] = []
    for i in range(width):
        bucket = data[int(i * step) : int((i + 1) * step)]
        result.append(sum(bucket) / len(bucket) if bucket else 0.0)
    return result


def graph_lines(
    data: Sequence[float],
    width: int,
    height: int,
    min_value: float,
    max_value: float,
    unit: str,
) -> list[Text]:
    """Render a multi-row block graph with a labelled y axis and sample-count x axis.

    Args:
        data: Full series; downsampled by averaging when longer than width
        width: Maximum graph columns
        height: Graph rows
        min_value: Value at the bottom of the graph
        max_value: Value at the top of the graph
        unit: Label suffix for the y axis (e.g. "%" or " MB")

    Returns:
        One Text per terminal line, top row first.
    """
    if not data:
        return []

    span = (max_value - min_value) or 1.0
    columns = downsample(data, width)
    lines: list[Text] = []

    for row in range(height - 1, -1, -1):
        row_min = min_value + span * row / height
        row_max = min_value + span * (row + 1) / height

        if row == height - 1:
            label = f"{max_value:.0f}"
        elif row == 0:
            label = f"{min_value:.0f}"
        else:
            label = ""
        line = Text(f"  {label:>6}{unit:<3} │", style="bright_black")

        cells = []
        for value in columns:
            if value >= row_max:
                cells.append("█")
            elif value > row_min:
                fraction = (value - row_min) / (row_max - row_min)
                cells.append(GRAPH_CHARS[min(int(fraction * len(GRAPH_CHARS)), 7)])
            else:
                cells.append(" ")
        line.append("".join(cells), style="green")
        lines.append(line)

    lines.append(Text("         └" + "─" * len(columns), style="bright_black"))
    padding = " " * max(1, len(columns) - 10)
    lines.append(Text(f"          0{padding}{len(data)} samples", style="bright_black"))
    return lines
