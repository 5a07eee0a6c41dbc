"""Occurrence generation and next-due-date computation for recurring tasks.

All functions are pure: they take a task record, a timezone name and an
optional reference instant and never mutate their inputs.
"""
from datetime import datetime, timedelta
import logging
from typing import Optional
import uuid

from . import config
from .models import ParsedTask, RecurrencePattern, RecurrenceRule, TaskRecord, clamp_interval
from .utils import add_interval, ensure_utc, now_utc, start_of_day, to_local

logger = logging.getLogger(__name__)

GENERATING_PATTERNS = (
    RecurrencePattern.DAILY,
    RecurrencePattern.WEEKLY,
    RecurrencePattern.MONTHLY,
    RecurrencePattern.YEARLY,
)


def calculate_next_due_date(due: Optional[datetime], pattern, interval: int, tz: str,
                            now: Optional[datetime] = None) -> Optional[datetime]:
    """One recurrence step from ``due`` (or from ``now`` when due is missing).

    Returns None for ``none`` and ``custom`` patterns.
    """
    base = ensure_utc(due) if due is not None else (now or now_utc())
    return add_interval(base, pattern, clamp_interval(interval), tz)


def _steps_before(anchor: datetime, target: datetime, pattern, interval: int, tz: str) -> int:
    """Largest step count k whose occurrence is safely before ``target``.

    Lets callers start walking near ``target`` instead of at the anchor.
    """
    a, t = to_local(anchor, tz).date(), to_local(target, tz).date()
    if t <= a:
        return 0
    if pattern == RecurrencePattern.DAILY:
        units = (t - a).days
    elif pattern == RecurrencePattern.WEEKLY:
        units = (t - a).days // 7
    elif pattern == RecurrencePattern.MONTHLY:
        units = (t.year - a.year) * 12 + (t.month - a.month)
    else:
        units = t.year - a.year
    return max(0, units // interval - 1)


def _iteration_cap(range_start: datetime, range_end: datetime) -> int:
    # one day is the smallest possible stride; the slack covers the steps
    # walked before range_start and the final out-of-range candidate
    days = max(0, (range_end - range_start).days)
    return min(days + 5, config.MAX_EXPANSION_OCCURRENCES)


def expand_recurrence(task: TaskRecord, range_start: datetime, range_end: datetime,
                      tz: Optional[str]) -> list[TaskRecord]:
    """Return the occurrences of ``task`` inside ``[range_start, range_end]``.

    Non-recurring tasks and tasks without a due date or timezone come back
    unchanged as a single item, unfiltered; callers filter those by range.
    Occurrence k is the anchor stepped by ``k * interval`` units, so month
    steps from the 31st land on the last day of short months without
    drifting. Candidates past ``range_end`` or the rule's end stop the walk.
    """
    if not task.is_recurring or task.due_date is None or not tz:
        return [task]

    range_start = ensure_utc(range_start)
    range_end = ensure_utc(range_end)
    if range_end < range_start:
        raise ValueError('range_end must not be before range_start')

    rule = task.rule
    anchor = task.due_date
    ends_at = rule.ends_at

    if rule.pattern == RecurrencePattern.NONE:
        return [task] if range_start <= anchor <= range_end else []

    if rule.pattern not in GENERATING_PATTERNS:
        # custom: the anchor is the only known occurrence
        if range_start <= anchor <= range_end and (ends_at is None or anchor <= ends_at):
            return [task]
        return []

    occurrences: list[TaskRecord] = []
    step = _steps_before(anchor, range_start, rule.pattern, rule.interval, tz)
    candidate = add_interval(anchor, rule.pattern, step * rule.interval, tz) if step else anchor
    for _ in range(_iteration_cap(max(anchor, range_start), range_end)):
        if candidate > range_end or (ends_at is not None and candidate > ends_at):
            break
        if candidate >= range_start:
            occurrences.append(task.model_copy(update={'due_date': candidate}))
        step += 1
        candidate = add_interval(anchor, rule.pattern, step * rule.interval, tz)
    else:
        logger.warning('expand_recurrence: iteration cap reached for task %s', task.id)
    return occurrences


def advance(task: TaskRecord, completed_at: Optional[datetime], tz: str) -> Optional[datetime]:
    """Next due date for a recurring task that has just been completed.

    Occurrences already in the past at completion time are skipped: a daily
    task finished a week late yields one next instance dated today, not a
    backlog of seven. Returns None for ``none``/``custom`` patterns or when
    the next instance would fall after the rule's end.
    """
    rule = task.rule
    if rule.pattern not in GENERATING_PATTERNS:
        return None
    now = ensure_utc(completed_at) if completed_at is not None else now_utc()
    today = start_of_day(now, tz)
    ends_at = rule.ends_at

    base = task.due_date or now
    step = 1
    candidate = add_interval(base, rule.pattern, rule.interval, tz)
    if candidate < today and (ends_at is None or candidate < ends_at):
        target = today if ends_at is None else min(today, ends_at)
        step = max(step, _steps_before(base, target, rule.pattern, rule.interval, tz))
        candidate = add_interval(base, rule.pattern, step * rule.interval, tz)
    while candidate < today and (ends_at is None or candidate < ends_at):
        step += 1
        candidate = add_interval(base, rule.pattern, step * rule.interval, tz)

    if ends_at is not None and candidate > ends_at:
        return None
    return candidate


def complete_task(task: TaskRecord, tz: str, completed_at: Optional[datetime] = None
                  ) -> tuple[TaskRecord, Optional[TaskRecord]]:
    """Mark ``task`` completed and build its follow-up record, if any.

    The follow-up copies the recurrence fields forward, gets a fresh id and
    points ``parent_task_id`` at the first task of the series.
    """
    completed_at = ensure_utc(completed_at) if completed_at is not None else now_utc()
    done = task.model_copy(update={'completed': True, 'completed_at': completed_at})
    if not task.is_recurring:
        return done, None

    next_due = advance(task, completed_at, tz)
    if next_due is None:
        logger.info('complete_task: series for task %s has ended', task.id)
        return done, None

    follow_up = task.model_copy(update={
        'id': uuid.uuid4().hex,
        'due_date': next_due,
        'completed': False,
        'completed_at': None,
        'parent_task_id': task.parent_task_id or task.id,
        'next_due_date': calculate_next_due_date(next_due, task.recurrence_pattern,
                                                 task.recurrence_interval, tz),
    })
    return done, follow_up


def task_from_parsed(parsed: ParsedTask, tz: str, task_id: Optional[str] = None) -> TaskRecord:
    """Build a new task record from parser output."""
    rule = parsed.recurrence_rule
    next_due = None
    if rule.is_recurring:
        next_due = calculate_next_due_date(parsed.due_date, rule.pattern, rule.interval, tz)
    return TaskRecord(
        id=task_id or uuid.uuid4().hex,
        text=parsed.cleaned_title,
        priority=parsed.priority,
        due_date=parsed.due_date,
        is_recurring=rule.is_recurring,
        recurrence_pattern=rule.pattern,
        recurrence_interval=rule.interval,
        recurrence_ends_at=rule.ends_at,
        next_due_date=next_due,
    )


def rule_to_rrule_string(rule: RecurrenceRule) -> str:
    """Export a rule as an RFC 5545 RRULE value (no leading 'RRULE:').

    Patterns without a generation rule export as an empty string.
    """
    if rule.pattern not in GENERATING_PATTERNS:
        return ''
    parts = [f'FREQ={rule.pattern.value.upper()}']
    if rule.interval != 1:
        parts.append(f'INTERVAL={rule.interval}')
    if rule.ends_at is not None:
        parts.append('UNTIL=' + rule.ends_at.strftime('%Y%m%dT%H%M%SZ'))
    return ';'.join(parts)


def default_window(now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    start = now or now_utc()
    return start, start + timedelta(days=config.DEFAULT_WINDOW_DAYS)
