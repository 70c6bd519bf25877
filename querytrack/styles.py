"""Badge colours for query status and priority.

Both lookups are exhaustive ``match`` statements ending in ``assert_never``,
so adding an enum member without a style is a type error.
"""

import html
from typing import NamedTuple, assert_never

from querytrack.models import QueryPriority, QueryStatus


class BadgeStyle(NamedTuple):
    label: str
    background: str
    foreground: str


def status_style(status: QueryStatus) -> BadgeStyle:
    label = status.value.replace("_", " ")
    match status:
        case QueryStatus.PENDING:
            return BadgeStyle(label, "#FEF9C3", "#854D0E")
        case QueryStatus.IN_PROGRESS:
            return BadgeStyle(label, "#DBEAFE", "#1E40AF")
        case QueryStatus.RESOLVED:
            return BadgeStyle(label, "#DCFCE7", "#166534")
        case QueryStatus.CLOSED:
            return BadgeStyle(label, "#F3F4F6", "#1F2937")
        case _:
            assert_never(status)


def priority_style(priority: QueryPriority) -> BadgeStyle:
    label = priority.value
    match priority:
        case QueryPriority.LOW:
            return BadgeStyle(label, "#F3F4F6", "#374151")
        case QueryPriority.MEDIUM:
            return BadgeStyle(label, "#DBEAFE", "#1D4ED8")
        case QueryPriority.HIGH:
            return BadgeStyle(label, "#FFEDD5", "#C2410C")
        case QueryPriority.URGENT:
            return BadgeStyle(label, "#FEE2E2", "#B91C1C")
        case _:
            assert_never(priority)


def badge_html(style: BadgeStyle) -> str:
    """Inline-styled pill for rendering inside markdown/HTML."""
    return (
        f'<span style="background:{style.background};color:{style.foreground};'
        f'padding:2px 8px;border-radius:9999px;font-size:0.8em;">{html.escape(style.label)}</span>'
    )


def type_badge_html(name: str, color: str) -> str:
    """Outlined pill in the type's own colour."""
    safe_color = html.escape(color, quote=True)
    return (
        f'<span style="border:1px solid {safe_color};color:{safe_color};'
        f'padding:2px 8px;border-radius:9999px;font-size:0.8em;">{html.escape(name)}</span>'
    )
