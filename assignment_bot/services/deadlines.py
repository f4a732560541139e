import re
from datetime import date, datetime, time, timedelta

from assignment_bot.models import DeadlineType

MONTHS = {
    "jan": 1, "januari": 1, "january": 1,
    "feb": 2, "februari": 2, "february": 2,
    "mar": 3, "maret": 3, "march": 3,
    "apr": 4, "april": 4,
    "mei": 5, "may": 5,
    "jun": 6, "juni": 6, "june": 6,
    "jul": 7, "juli": 7, "july": 7,
    "agu": 8, "agt": 8, "agustus": 8, "aug": 8, "august": 8,
    "sep": 9, "sept": 9, "september": 9,
    "okt": 10, "oktober": 10, "oct": 10, "october": 10,
    "nov": 11, "november": 11,
    "des": 12, "desember": 12, "dec": 12, "december": 12,
}

WEEKDAY_WORDS = {
    "senin": 0, "monday": 0,
    "selasa": 1, "tuesday": 1,
    "rabu": 2, "wednesday": 2,
    "kamis": 3, "thursday": 3,
    "jumat": 4, "jum'at": 4, "friday": 4,
    "sabtu": 5, "saturday": 5,
    "hari minggu": 6, "sunday": 6,
}

_ISO_DATE = re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b")
# "20/10", "20/10/2026" and "20-10-2026"; a bare "1-3" is a range, not a date.
_NUMERIC_DATE = re.compile(
    r"(?<![\d.:/-])(\d{1,2})(?:/(\d{1,2})(?:/(\d{2,4}))?|-(\d{1,2})-(\d{2,4}))(?![\d.:/-])"
)
_NAMED_DATE = re.compile(
    r"\b(\d{1,2})\s+(" + "|".join(sorted(MONTHS, key=len, reverse=True)) + r")\.?(?:\s+(\d{4}))?\b",
    re.IGNORECASE,
)

_NEXT_MEETING = re.compile(
    r"sebelum\s+(?:pertemuan|kelas|praktikum)"
    r"|(?:pertemuan|kelas)\s+(?:berikutnya|selanjutnya|depan)"
    r"|before\s+(?:the\s+)?(?:next\s+)?(?:class|meeting|session|lecture)"
    r"|next\s+(?:class|meeting|session|lecture)",
    re.IGNORECASE,
)

_RELATIVE_DAYS: list[tuple[re.Pattern, int]] = [
    (re.compile(r"\b(?:minggu depan|next week|pekan depan)\b", re.IGNORECASE), 7),
    (re.compile(r"\b(?:lusa|day after tomorrow)\b", re.IGNORECASE), 2),
    (re.compile(r"\b(?:besok|besuk|tomorrow)\b", re.IGNORECASE), 1),
    (re.compile(r"\b(?:hari ini|today|malam ini|tonight)\b", re.IGNORECASE), 0),
]
_IN_N_DAYS = re.compile(r"\b(?:dalam\s+(\d+)\s+hari|in\s+(\d+)\s+days?|(\d+)\s+hari\s+lagi)\b", re.IGNORECASE)
_WEEKDAY = re.compile(
    r"\b(" + "|".join(re.escape(w) for w in sorted(WEEKDAY_WORDS, key=len, reverse=True)) + r")\b",
    re.IGNORECASE,
)

_TIME_PREFIXED = re.compile(r"\b(?:jam|pukul|pkl|at)\s*(\d{1,2})(?:[.:](\d{2}))?\b", re.IGNORECASE)
_TIME_CLOCK = re.compile(r"(?<![\d/-])(\d{1,2})[:.](\d{2})(?![\d/-])")

_DEADLINE_PHRASES = (
    _ISO_DATE,
    _NAMED_DATE,
    _NUMERIC_DATE,
    _IN_N_DAYS,
    *(pattern for pattern, _ in _RELATIVE_DAYS),
    _WEEKDAY,
    _TIME_PREFIXED,
    _TIME_CLOCK,
)


# ------------------------------------------------------------------
# Parsing helpers
# ------------------------------------------------------------------


def find_time_of_day(text: str) -> time | None:
    """Time of day stated in *text* ("jam 10", "pukul 10.30", "23:59")."""
    for pattern in (_TIME_PREFIXED, _TIME_CLOCK):
        m = pattern.search(text)
        if not m:
            continue
        hour, minute = int(m.group(1)), int(m.group(2) or 0)
        if hour < 24 and minute < 60:
            return time(hour, minute)
    return None


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def find_explicit_date(text: str, today: date) -> date | None:
    """First concrete calendar date in *text*.

    Dates without a year fall in the current year, or the next one when that
    day has already passed.
    """
    m = _ISO_DATE.search(text)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _NAMED_DATE.search(text)
    if m:
        day, month = int(m.group(1)), MONTHS[m.group(2).lower()]
        year = int(m.group(3)) if m.group(3) else None
        return _with_inferred_year(day, month, year, today)

    m = _NUMERIC_DATE.search(text)
    if m:
        day = int(m.group(1))
        month = int(m.group(2) or m.group(4))
        year = m.group(3) or m.group(5)
        if year is not None:
            year = int(year) + 2000 if len(year) == 2 else int(year)
        return _with_inferred_year(day, month, year, today)
    return None


def _with_inferred_year(day: int, month: int, year: int | None, today: date) -> date | None:
    if year is not None:
        return _safe_date(year, month, day)
    found = _safe_date(today.year, month, day)
    if found is not None and found < today:
        found = _safe_date(today.year + 1, month, day)
    return found


def find_relative_date(text: str, today: date) -> date | None:
    m = _IN_N_DAYS.search(text)
    if m:
        n = next(int(g) for g in m.groups() if g)
        return today + timedelta(days=n)
    for pattern, days in _RELATIVE_DAYS:
        if pattern.search(text):
            return today + timedelta(days=days)
    m = _WEEKDAY.search(text)
    if m:
        weekday = WEEKDAY_WORDS[m.group(1).lower()]
        return today + timedelta(days=(weekday - today.weekday()) % 7 or 7)
    return None


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------


def classify_deadline(text: str, today: date) -> DeadlineType:
    if find_explicit_date(text, today) is not None:
        return DeadlineType.EXPLICIT
    if _NEXT_MEETING.search(text):
        return DeadlineType.NEXT_MEETING
    if find_relative_date(text, today) is not None:
        return DeadlineType.RELATIVE
    return DeadlineType.UNKNOWN


def resolve_deadline(
    text: str, deadline_type: DeadlineType, now: datetime, default_time: time
) -> datetime | None:
    """Absolute deadline for explicit or relative deadline language.

    Next-meeting deadlines need the timetable and are resolved by the caller.
    """
    if deadline_type is DeadlineType.EXPLICIT:
        day = find_explicit_date(text, now.date())
    elif deadline_type is DeadlineType.RELATIVE:
        day = find_relative_date(text, now.date())
    else:
        return None
    if day is None:
        return None
    at = find_time_of_day(text) or default_time
    return datetime.combine(day, at, tzinfo=now.tzinfo)


def parse_deadline_value(value: str | None, now: datetime, default_time: time) -> datetime | None:
    """Parse a deadline string as returned by a language model or a user reply.

    Accepts ISO timestamps, "YYYY-MM-DD HH:MM" and any date form understood by
    :func:`find_explicit_date`.  Naive values are placed in *now*'s timezone.
    """
    if not value or not value.strip():
        return None
    value = value.strip()
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        parsed = None
    if parsed is not None:
        if len(value) <= 10:  # date only
            parsed = datetime.combine(parsed.date(), default_time)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=now.tzinfo)
        return parsed
    day = find_explicit_date(value, now.date()) or find_relative_date(value, now.date())
    if day is None:
        return None
    return datetime.combine(day, find_time_of_day(value) or default_time, tzinfo=now.tzinfo)


def strip_deadline_phrases(text: str) -> str:
    """*text* without its dates, relative-day words and times of day."""
    for pattern in _DEADLINE_PHRASES:
        text = pattern.sub(" ", text)
    return text
