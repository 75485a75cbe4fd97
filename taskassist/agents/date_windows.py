"""
Relative dates and due-date windows.

All arithmetic is on calendar days; ``today`` is always passed in so that
results are reproducible.
"""
import calendar
import re
from datetime import date, datetime, timedelta
from typing import Optional

from taskassist.agents.entity_schema import DateWindow, NUMBER_WORDS

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

WINDOW_PATTERN = re.compile(
    r"\b(overdue|past\s+due|late|today|tonight|tomorrow|this\s+week|next\s+week|soon)\b"
)

EXPLICIT_DATE_FORMATS = [
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%b %d %Y",
    "%B %d %Y",
    "%d %b %Y",
    "%d %B %Y",
]

# Formats without a year assume the current year
YEARLESS_DATE_FORMATS = [
    "%b %d",
    "%B %d",
    "%d %b",
    "%d %B",
]


def week_bounds(day: date) -> tuple[date, date]:
    """Monday and Sunday of the ISO week containing ``day``."""
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


def window_for(label: str, today: date, soon_days: int = 3) -> Optional[DateWindow]:
    """Build the window for a normalized label, or None if unknown."""
    label = re.sub(r"\s+", " ", label.strip().lower())

    if label in ("overdue", "past due", "late"):
        return DateWindow(label="overdue", end=today - timedelta(days=1), overdue=True)
    if label in ("today", "tonight"):
        return DateWindow(label="today", start=today, end=today)
    if label == "tomorrow":
        tomorrow = today + timedelta(days=1)
        return DateWindow(label="tomorrow", start=tomorrow, end=tomorrow)
    if label == "this week":
        start, end = week_bounds(today)
        return DateWindow(label="this week", start=start, end=end)
    if label == "next week":
        start, end = week_bounds(today + timedelta(days=7))
        return DateWindow(label="next week", start=start, end=end)
    if label == "soon":
        return DateWindow(label="soon", start=today, end=today + timedelta(days=soon_days))
    return None


def find_date_window(text: str, today: date, soon_days: int = 3) -> Optional[DateWindow]:
    """Leftmost date-window phrase in ``text``."""
    match = WINDOW_PATTERN.search(text.lower())
    if not match:
        return None
    return window_for(match.group(1), today, soon_days)


def _count(token: str) -> Optional[int]:
    if token.isdigit():
        return int(token)
    return NUMBER_WORDS.get(token)


def _parse_exact(t: str, today: date) -> Optional[date]:
    """Parse one complete, already-normalized phrase."""
    if t in ("today", "tonight", "now"):
        return today
    if t == "tomorrow":
        return today + timedelta(days=1)
    if t in ("day after tomorrow", "the day after tomorrow"):
        return today + timedelta(days=2)
    if t == "next week":
        return today + timedelta(days=7)
    if t in ("this week", "end of week", "end of the week", "end of this week"):
        return week_bounds(today)[1]
    if t in ("end of month", "end of the month", "end of this month"):
        return today.replace(day=calendar.monthrange(today.year, today.month)[1])
    if t == "next month":
        year, month = (today.year + 1, 1) if today.month == 12 else (today.year, today.month + 1)
        day = min(today.day, calendar.monthrange(year, month)[1])
        return date(year, month, day)

    # +N days / in N days / next N days / N weeks
    m = re.fullmatch(r"(?:\+|in\s+|next\s+)?(\d+|[a-z]+)\s+(day|week)s?(?:\s+from\s+now)?", t)
    if m:
        n = _count(m.group(1))
        if n is not None:
            try:
                return today + timedelta(days=n * (7 if m.group(2) == "week" else 1))
            except (OverflowError, ValueError):
                # Past date.max
                return None

    # this <weekday> / <weekday> (next or same), next <weekday> (strictly after today)
    m = re.fullmatch(r"(this\s+|next\s+|on\s+)?(" + "|".join(WEEKDAYS) + r")", t)
    if m:
        target = WEEKDAYS.index(m.group(2))
        delta = (target - today.weekday()) % 7
        if (m.group(1) or "").strip() == "next" and delta == 0:
            delta = 7
        return today + timedelta(days=delta)

    cleaned = re.sub(r"(\d+)(st|nd|rd|th)\b", r"\1", t).replace(",", "")
    for fmt in EXPLICIT_DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue
    for fmt in YEARLESS_DATE_FORMATS:
        try:
            parsed = datetime.strptime(f"{cleaned} {today.year}", f"{fmt} %Y")
            return parsed.date()
        except ValueError:
            continue
    return None


def parse_relative_date(raw: Optional[str], today: date) -> Optional[date]:
    """
    Parse a due-date phrase such as "next Friday", "in 3 days" or "Dec 31".

    Trailing words that are not part of the date are ignored, so
    "next friday please" still parses. Returns None when nothing matches.
    """
    if not raw:
        return None

    t = raw.strip().lower()
    t = re.sub(r"[.!?;]+$", "", t)
    t = re.sub(r"^(?:on|by|at|for|to|until|before|the)\s+", "", t)
    t = re.sub(r"\s+", " ", t).strip()
    if not t:
        return None

    words = t.split(" ")
    # Longest prefix wins so "next friday" beats "next"
    for size in range(min(len(words), 5), 0, -1):
        parsed = _parse_exact(" ".join(words[:size]), today)
        if parsed is not None:
            return parsed
    return None
