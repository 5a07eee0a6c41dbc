from datetime import datetime
from typing import Any, Optional
import logging
import sys

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from . import config
from .models import ParsedTask, TaskRecord
from .parser import parse_task_details
from .recurrence import complete_task, default_window, expand_recurrence, task_from_parsed
from .utils import ensure_utc, normalize_timezone, now_utc

logger = logging.getLogger(__name__)
# Ensure INFO-level messages from this module appear on the server console when
# no handlers are configured (safe fallback for development/testing).
if not logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter('%(asctime)s %(levelname)s:%(name)s: %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
logger.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ParseTaskRequest(CamelModel):
    # typed loosely so a non-string title is reported as 400 like a blank one
    task_title: Any = None
    time_zone: Optional[str] = 'UTC'


class OccurrencesRequest(CamelModel):
    task: TaskRecord
    range_start: Optional[datetime] = None
    range_end: Optional[datetime] = None
    time_zone: Optional[str] = None


class OccurrencesResponse(CamelModel):
    occurrences: list[TaskRecord]


class CompleteTaskRequest(CamelModel):
    task: TaskRecord
    completed_at: Optional[datetime] = None
    time_zone: Optional[str] = None


class CompleteTaskResponse(CamelModel):
    completed: TaskRecord
    next: Optional[TaskRecord] = None


app = FastAPI(title='todo-nlp')


@app.get('/healthz')
async def healthz():
    return {'status': 'ok'}


def _parse_title(payload: ParseTaskRequest) -> tuple[str, ParsedTask]:
    title = payload.task_title
    if not isinstance(title, str) or not title.strip():
        raise HTTPException(status_code=400, detail='taskTitle is required and must be a non-empty string')
    tz = normalize_timezone(payload.time_zone, default='UTC')
    try:
        return tz, parse_task_details(title.strip(), tz)
    except Exception:
        logger.exception('parse_task_details failed for %r', title)
        raise HTTPException(status_code=500, detail='failed to parse task details')


@app.post('/nlp/parse-task-details')
async def api_parse_task_details(payload: ParseTaskRequest):
    """Parse a free-text task title into due date, recurrence and priority.

    The title is required and must be non-blank. An unknown timezone is
    replaced by UTC.
    """
    _, parsed = _parse_title(payload)
    return parsed.to_response()


@app.post('/tasks/from-text', response_model=TaskRecord)
async def api_task_from_text(payload: ParseTaskRequest):
    """Build a new task record (fresh id, next_due_date filled) from free text."""
    tz, parsed = _parse_title(payload)
    task = task_from_parsed(parsed, tz)
    logger.info('task %s drafted from text (%s)', task.id, task.recurrence_pattern.value)
    return task


@app.post('/tasks/occurrences', response_model=OccurrencesResponse)
async def api_task_occurrences(payload: OccurrencesRequest):
    """Expand a stored task into its occurrences within a window.

    Without a range the window is [now, now + DEFAULT_WINDOW_DAYS]. The
    timezone defaults to DEFAULT_TIMEZONE.
    """
    tz = normalize_timezone(payload.time_zone, default=config.DEFAULT_TIMEZONE)
    start, end = default_window()
    if payload.range_start is not None:
        start = ensure_utc(payload.range_start)
    if payload.range_end is not None:
        end = ensure_utc(payload.range_end)
    try:
        occurrences = expand_recurrence(payload.task, start, end, tz)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return OccurrencesResponse(occurrences=occurrences)


@app.post('/tasks/complete', response_model=CompleteTaskResponse)
async def api_complete_task(payload: CompleteTaskRequest):
    """Complete a task and return the follow-up record for recurring tasks."""
    tz = normalize_timezone(payload.time_zone, default=config.DEFAULT_TIMEZONE)
    completed_at = ensure_utc(payload.completed_at) if payload.completed_at else now_utc()
    done, follow_up = complete_task(payload.task, tz, completed_at)
    if follow_up is not None:
        logger.info('task %s completed; next occurrence %s due %s',
                    payload.task.id, follow_up.id, follow_up.due_date.isoformat())
    return CompleteTaskResponse(completed=done, next=follow_up)
