"""Rule-based extraction of task details from free text.

``parse_task_details('Pay bills every 2 months until Dec 31st', 'UTC')``
returns a :class:`~todo_nlp.models.ParsedTask` with the cleaned title
("Pay bills"), a due date, the recurrence rule (monthly, interval 2, ending
at the end of Dec 31st local time) and the priority, if one was mentioned.

Recurrence detection walks an ordered list of matchers and stops at the
first one that matches anywhere in the text; multi-word idioms such as
"bi-weekly" are listed ahead of the single words they contain.
"""
from dataclasses import dataclass
from datetime import datetime, time
import logging
import re
from typing import Callable, Optional

import dateparser.search

from . import config
from .models import ParsedTask, Priority, RecurrencePattern, RecurrenceRule, clamp_interval
from .utils import (
    end_of_day_local,
    from_local,
    local_tomorrow_at,
    next_day_of_month,
    next_weekday,
    now_utc,
    to_local,
)

logger = logging.getLogger(__name__)

MONTHS_EN = [
    'january', 'february', 'march', 'april', 'may', 'june',
    'july', 'august', 'september', 'october', 'november', 'december',
]
_MONTHS_PART = '|'.join(MONTHS_EN + ['jan', 'feb', 'mar', 'apr', 'jun', 'jul', 'aug', 'sept', 'sep', 'oct', 'nov', 'dec'])
_WEEKDAYS_PART = 'monday|tuesday|wednesday|thursday|friday|saturday|sunday'

NUMBER_WORDS = {
    'zero', 'one', 'two', 'three', 'four', 'five', 'six', 'seven', 'eight', 'nine', 'ten', 'eleven', 'twelve',
}

# Single words dateparser reads as dates but which are usually ordinary
# English in a task title ("I may", "second attempt").
AMBIGUOUS_DATE_WORDS = {'may', 'march', 'sat', 'sun', 'wed', 'mon', 'second'}


@dataclass(frozen=True)
class RecurrenceMatcher:
    """One lexical recurrence rule.

    When ``extract_interval`` is set the interval is the first integer in
    the matched text instead of the fixed ``interval``.
    """
    name: str
    regex: re.Pattern
    pattern: RecurrencePattern
    interval: int = 1
    extract_interval: bool = False

    def search(self, text: str) -> list[str]:
        return [m.group(0) for m in self.regex.finditer(text)]

    def resolve(self, matches: list[str]) -> RecurrenceRule:
        interval = self.interval
        if self.extract_interval:
            interval = 1
            for phrase in matches:
                num = re.search(r'\d+', phrase)
                if num and int(num.group(0)) > 0:
                    interval = int(num.group(0))
                    break
        return RecurrenceRule(pattern=self.pattern, interval=clamp_interval(interval))


def _rule(name, regex, pattern, interval=1, extract_interval=False) -> RecurrenceMatcher:
    return RecurrenceMatcher(name, re.compile(regex, re.IGNORECASE), pattern, interval, extract_interval)


P = RecurrencePattern

RECURRENCE_RULES: tuple[RecurrenceMatcher, ...] = (
    # named-interval idioms
    _rule('bi_weekly', r'\bbi[-\s]?weekly\b', P.WEEKLY, 2),
    _rule('bi_monthly', r'\bbi[-\s]?monthly\b', P.MONTHLY, 2),
    _rule('every_other_day', r'\bevery\s+other\s+day\b', P.DAILY, 2),
    _rule('every_other_week', r'\bevery\s+other\s+week\b', P.WEEKLY, 2),
    _rule('every_other_month', r'\bevery\s+other\s+month\b', P.MONTHLY, 2),
    # explicit numeric intervals
    _rule('every_n_days', r'\bevery\s+(\d+)\s+days?\b', P.DAILY, extract_interval=True),
    _rule('every_n_weeks', r'\bevery\s+(\d+)\s+weeks?\b', P.WEEKLY, extract_interval=True),
    _rule('every_n_months', r'\bevery\s+(\d+)\s+months?\b', P.MONTHLY, extract_interval=True),
    # bare unit words
    _rule('every_week', r'\bevery\s+weeks?\b', P.WEEKLY),
    # ordinal weekdays: detected only
    _rule('ordinal_weekday', rf'\bevery\s+(first|second|third|fourth|last)\s+({_WEEKDAYS_PART})s?\b', P.CUSTOM),
    # weekday idioms
    _rule('every_weekday', r'\bevery\s+weekdays?\b', P.WEEKLY),
    _rule('weekdays', r'\bweekdays?\b', P.WEEKLY),
    _rule('named_weekday', rf'\b(every|on)\s+({_WEEKDAYS_PART})s?\b', P.WEEKLY),
    # bare temporal words
    _rule('daily', r'\b(daily|every\s+day)\b', P.DAILY),
    _rule('weekly', r'\bweekly\b', P.WEEKLY),
    _rule('monthly', r'\bmonthly\b', P.MONTHLY),
    _rule('yearly', r'\b(yearly|annually|every\s+year)\b', P.YEARLY),
    # annual with interval
    _rule('every_n_years', r'\b(annual|every)\s+(\d+)\s+years?\b', P.YEARLY, extract_interval=True),
    _rule('nth_of_every_month', r'\bon\s+the\s+\d+(st|nd|rd|th)?\s+of\s+every\s+month\b', P.MONTHLY),
    # month names: detected only
    _rule('month_name', rf'\b(every|in)\s+({_MONTHS_PART})s?\b', P.CUSTOM),
)

TIME_RE = re.compile(r'\b(?:(?:at|by)\s*)?(\d{1,2})(?::(\d{2}))?\s*(am|pm)\b', re.IGNORECASE)
TIME_24_RE = re.compile(r'\b(?:at|by)\s+(\d{1,2}):(\d{2})\b(?!\s*(?:am|pm))', re.IGNORECASE)
UNTIL_RE = re.compile(r'\b(?:until|untill|till|til)\s+(.+)', re.IGNORECASE)
START_RE = re.compile(r'\b(?:starting|beginning|from)\s+', re.IGNORECASE)
WEEKDAY_DUE_RE = re.compile(rf'\b(?:on|every)\s+({_WEEKDAYS_PART})s?\b', re.IGNORECASE)
# "on the 10th": a bare day of month. dateparser reads days 1-12 as months.
ORDINAL_DAY_RE = re.compile(
    rf'\b(?:on\s+)?the\s+(\d{1,2})(?:st|nd|rd|th)\b(?!\s+of\s+(?:{_MONTHS_PART})\b)', re.IGNORECASE)

HIGH_PRIORITY_RE = re.compile(r'\b(high\s*priority|urgent|with\s+high|on\s+high)\b', re.IGNORECASE)
MEDIUM_PRIORITY_RE = re.compile(r'\b(medium\s*priority|normal\s*priority|with\s+medium|on\s+medium)\b', re.IGNORECASE)
LOW_PRIORITY_RE = re.compile(r'\b(low\s*priority|with\s+low|on\s+low)\b', re.IGNORECASE)

FILLER_PATTERNS = tuple(re.compile(p, re.IGNORECASE) for p in (
    r'repeat\s*this\s*task',
    r'remind\s*me',
    r'^\s*starting\b',
    r'^\s*beginning\b',
    r'\bfor\s+next\s+\d+\s+(day|week|month|year)s?\b',
    r'\b(high|medium|normal|low)\s*priority\b',
    r'\b(with|on)\s+(high|medium|low)\b',
))
MONTH_WORDS_RE = re.compile(rf"\b({'|'.join(MONTHS_EN)})\b", re.IGNORECASE)
STOP_WORDS_RE = re.compile(
    r'\b(at|by|on|with|every|next|the|this|till|til|untill|until|for|beginning|start|mid|middle|end|close'
    r'|daily|weekly|monthly|yearly|bi[-\s]?weekly|of|month|week|priority|in)\b',
    re.IGNORECASE,
)


# --- general date/time phrase parser ---

def _has_date_anchor(span: str) -> bool:
    """Return True if a dateparser span names a day, a date, or a clock time.

    Spans like '2 weeks', 'every day' or a lone number-word are rejected.
    """
    s = span.strip().lower()
    if not s or s in NUMBER_WORDS or s in AMBIGUOUS_DATE_WORDS or re.fullmatch(r'\d{1,4}', s):
        return False
    if re.search(rf'\b({_MONTHS_PART}|{_WEEKDAYS_PART}|mon|tue|tues|wed|thu|thurs|fri|sat|sun)\b', s):
        return True
    if re.search(r'\b(today|tonight|tomorrow|yesterday|noon|midnight|weekend)\b', s):
        return True
    if re.search(r'\b(next|this|coming)\s+\w+', s):
        return True
    if re.search(r'\bin\s+\d+\s+(day|week|month|year)s?\b', s):
        return True
    if re.search(r'\d{1,4}[./-]\d{1,2}', s) or re.search(r'\b\d{1,2}(st|nd|rd|th)\b', s):
        return True
    return bool(TIME_RE.search(s) or re.search(r'\b\d{1,2}:\d{2}\b', s))


def search_phrase_dates(text: str, tz: str, now: datetime) -> list[tuple[str, datetime]]:
    """Find date/time phrases in ``text``.

    Returns ``(span, wall_clock)`` pairs in text order where ``wall_clock``
    is a naive local datetime in ``tz``, resolved relative to ``now``. A
    bare day of month ("on the 10th") is the next such day on or after
    today. A bare clock time ("at 3pm") that dateparser misses resolves to
    today.
    """
    if not text or not text.strip():
        return []
    base = to_local(now, tz)
    ordinals = []
    for m in ORDINAL_DAY_RE.finditer(text):
        day = next_day_of_month(int(m.group(1)), tz, now)
        if day is not None:
            ordinals.append((m.start(), m.end(), m.group(0), to_local(day, tz)))
    try:
        results = dateparser.search.search_dates(
            text,
            languages=['en'],
            settings={
                'RELATIVE_BASE': base,
                'PREFER_DATES_FROM': 'future',
                'RETURN_AS_TIMEZONE_AWARE': False,
            },
        )
    except Exception:
        logger.exception('dateparser search failed for %r', text)
        results = None
    found = [(start, span, dt) for start, _, span, dt in ordinals]
    for span, dt in results or []:
        if not _has_date_anchor(span):
            continue
        start = text.find(span)
        end = start + len(span)
        if start != -1 and any(s < end and start < e for s, e, _, _ in ordinals):
            continue
        if dt.tzinfo is not None:
            dt = dt.replace(tzinfo=None)
        found.append((start, span, dt))
    out = [(span, dt) for _, span, dt in sorted(found, key=lambda f: f[0])]
    if not out:
        clock = extract_time(text)
        m = TIME_RE.search(text) or TIME_24_RE.search(text)
        if m and clock[0] is not None:
            out.append((m.group(0), datetime.combine(base.date(), time(clock[0], clock[1]))))
    return out


# --- field extractors ---

def detect_recurrence(text: str) -> tuple[Optional[RecurrenceMatcher], RecurrenceRule]:
    """Return the first matching rule (or None) and the rule it yields."""
    for matcher in RECURRENCE_RULES:
        matches = matcher.search(text)
        if matches:
            return matcher, matcher.resolve(matches)
    return None, RecurrenceRule()


def extract_time(text: str) -> tuple[Optional[int], Optional[int]]:
    """Return the 24-hour (hour, minute) of the first clock time, or (None, None).

    12am is midnight; 12pm stays noon.
    """
    for m in TIME_RE.finditer(text):
        hour, minute = int(m.group(1)), int(m.group(2) or 0)
        if not 1 <= hour <= 12 or minute > 59:
            continue
        meridian = m.group(3).lower()
        if meridian == 'pm' and hour < 12:
            hour += 12
        if meridian == 'am' and hour == 12:
            hour = 0
        return hour, minute
    for m in TIME_24_RE.finditer(text):
        hour, minute = int(m.group(1)), int(m.group(2))
        if hour <= 23 and minute <= 59:
            return hour, minute
    return None, None


def extract_until(text: str, tz: str, now: datetime) -> Optional[datetime]:
    """End-of-day (local) instant of the date named after 'until', or None."""
    m = UNTIL_RE.search(text)
    if not m or not m.group(1).strip():
        return None
    found = search_phrase_dates(m.group(1), tz, now)
    if not found:
        return None
    return end_of_day_local(found[0][1].date(), tz)


def extract_start_date(text: str, tz: str, now: datetime) -> tuple[Optional[datetime], Optional[str]]:
    """Resolve a 'starting/beginning/from <date>' phrase.

    Returns the start instant and the exact text span that produced it
    (keyword through the end of the date phrase), or (None, None).
    """
    for m in START_RE.finditer(text):
        tail = text[m.end():]
        until = UNTIL_RE.search(tail)
        if until:
            tail = tail[:until.start()]
        found = search_phrase_dates(tail, tz, now)
        if not found:
            continue
        span, wall = found[0]
        idx = tail.lower().find(span.lower())
        end = m.end() + (idx + len(span) if idx != -1 else len(tail))
        return from_local(wall, tz), text[m.start():end]
    return None, None


def detect_priority(text: str) -> Optional[Priority]:
    if HIGH_PRIORITY_RE.search(text):
        return Priority.HIGH
    if MEDIUM_PRIORITY_RE.search(text):
        return Priority.MEDIUM
    if LOW_PRIORITY_RE.search(text):
        return Priority.LOW
    return None


def resolve_due_date(text: str, rule: RecurrenceRule, tz: str, now: datetime,
                     hour: Optional[int], minute: Optional[int]) -> Optional[datetime]:
    """Due date from the text alone (before any start-date override)."""
    if rule.pattern == RecurrencePattern.DAILY:
        return local_tomorrow_at(now, tz,
                                 config.DEFAULT_DUE_HOUR if hour is None else hour,
                                 0 if minute is None else minute)

    if rule.pattern in (RecurrencePattern.NONE, RecurrencePattern.WEEKLY):
        m = WEEKDAY_DUE_RE.search(text)
        if m:
            due = next_weekday(m.group(1), tz, now)
            if due is not None:
                if hour is None:
                    return due
                wall = to_local(due, tz).replace(hour=hour, minute=minute or 0)
                return from_local(wall, tz)

    found = search_phrase_dates(UNTIL_RE.sub('', text), tz, now)
    if not found:
        return None
    wall = found[0][1]
    if hour is not None:
        wall = wall.replace(hour=hour, minute=minute or 0, second=0, microsecond=0)
    return from_local(wall, tz)


# --- title cleaning pipeline ---

@dataclass(frozen=True)
class CleaningContext:
    original: str
    tz: str
    now: datetime
    matcher: Optional[RecurrenceMatcher]
    pattern: RecurrencePattern
    start_span: Optional[str] = None


CleaningStep = Callable[[str, CleaningContext], str]


def strip_recurrence_phrase(current: str, ctx: CleaningContext) -> str:
    if ctx.matcher is None:
        return current
    return ctx.matcher.regex.sub(' ', current)


def strip_until_clause(current: str, ctx: CleaningContext) -> str:
    return UNTIL_RE.sub(' ', current)


def strip_start_phrase(current: str, ctx: CleaningContext) -> str:
    if not ctx.start_span:
        return current
    return current.replace(ctx.start_span, ' ', 1)


def strip_date_spans(current: str, ctx: CleaningContext) -> str:
    for span, _ in search_phrase_dates(current, ctx.tz, ctx.now):
        current = current.replace(span, ' ', 1)
    return current


def strip_clock_times(current: str, ctx: CleaningContext) -> str:
    return TIME_24_RE.sub(' ', TIME_RE.sub(' ', current))


def strip_fillers(current: str, ctx: CleaningContext) -> str:
    for regex in FILLER_PATTERNS:
        current = regex.sub(' ', current)
    return current


def strip_month_words(current: str, ctx: CleaningContext) -> str:
    # for custom patterns the month name is the subject of the task
    if ctx.pattern == RecurrencePattern.CUSTOM:
        return current
    return MONTH_WORDS_RE.sub(' ', current)


def strip_stop_words(current: str, ctx: CleaningContext) -> str:
    return STOP_WORDS_RE.sub(' ', current)


CLEANING_STEPS: tuple[CleaningStep, ...] = (
    strip_recurrence_phrase,
    strip_until_clause,
    strip_start_phrase,
    strip_date_spans,
    strip_clock_times,
    strip_fillers,
    strip_month_words,
    strip_stop_words,
)


def clean_title(ctx: CleaningContext, steps: tuple[CleaningStep, ...] = CLEANING_STEPS) -> str:
    current = ctx.original
    for step in steps:
        current = step(current, ctx)
    current = re.sub(r'\s+', ' ', current).strip()
    return current or ctx.original


def parse_task_details(text: str, tz: str = 'UTC', now: Optional[datetime] = None) -> ParsedTask:
    """Extract a structured task from free text.

    ``tz`` must already be a valid IANA zone name. ``now`` is the reference
    instant for every relative date in this call (defaults to the current
    time, sampled once).
    """
    now = now or now_utc()

    matcher, rule = detect_recurrence(text)
    hour, minute = extract_time(text)
    ends_at = extract_until(text, tz, now)
    if ends_at is not None:
        rule = rule.model_copy(update={'ends_at': ends_at})
    start_date, start_span = extract_start_date(text, tz, now)

    due = resolve_due_date(text, rule, tz, now, hour, minute)
    if start_date is not None:
        due = start_date
    if due is None:
        due = local_tomorrow_at(now, tz, config.DEFAULT_DUE_HOUR)

    ctx = CleaningContext(original=text, tz=tz, now=now, matcher=matcher,
                          pattern=rule.pattern, start_span=start_span)
    cleaned = clean_title(ctx)

    if config.DEBUG_PARSER:
        logger.debug('parse_task_details: rule=%s pattern=%s interval=%d ends_at=%s due=%s cleaned=%r',
                     matcher.name if matcher else None, rule.pattern.value, rule.interval,
                     rule.ends_at, due, cleaned)

    return ParsedTask(
        original_title=text,
        cleaned_title=cleaned,
        due_date=due,
        priority=detect_priority(text),
        recurrence_rule=rule,
    )
