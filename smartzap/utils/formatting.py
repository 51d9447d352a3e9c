"""
pt-BR display formatting for counts, percentages and durations.
"""
import math
from typing import Union


def format_count(value: Union[int, float]) -> str:
    """Group thousands with dots, pt-BR style: 3000 -> '3.000'."""
    if isinstance(value, float) and math.isinf(value):
        return "ilimitado"
    return f"{int(value):,}".replace(",", ".")


def round_half_up(value: float) -> int:
    """Round half up. round() rounds half to even."""
    return math.floor(value + 0.5)


def format_percentage(ratio: float) -> str:
    """0.853 -> '85%'."""
    return f"{round_half_up(ratio * 100)}%"


def _plural(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


def format_duration(seconds: float) -> str:
    """
    Human-readable duration in Portuguese.

    < 60s   -> whole seconds ("2 segundos")
    < 1h    -> rounded minutes ("12 minutos")
    >= 1h   -> hours plus leftover minutes ("2 horas e 15 minutos")

    A value that rounds up to the next unit is shown in that unit.
    """
    if seconds < 60:
        whole_seconds = math.ceil(seconds)
        if whole_seconds < 60:
            return _plural(whole_seconds, "segundo", "segundos")
        seconds = 60

    if seconds < 3600:
        minutes = max(1, round_half_up(seconds / 60))
        if minutes < 60:
            return _plural(minutes, "minuto", "minutos")
        seconds = 3600

    hours = int(seconds // 3600)
    minutes = round_half_up((seconds % 3600) / 60)
    if minutes == 60:
        hours += 1
        minutes = 0
    text = _plural(hours, "hora", "horas")
    if minutes:
        text += " e " + _plural(minutes, "minuto", "minutos")
    return text
