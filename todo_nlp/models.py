from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .utils import ensure_utc, isoformat_utc


class RecurrencePattern(str, Enum):
    NONE = 'none'
    DAILY = 'daily'
    WEEKLY = 'weekly'
    MONTHLY = 'monthly'
    YEARLY = 'yearly'
    # detected (ordinal weekdays, month names) but never expanded
    CUSTOM = 'custom'


class Priority(str, Enum):
    HIGH = 'High'
    MEDIUM = 'Medium'
    LOW = 'Low'


def clamp_interval(value) -> int:
    """Coerce a recurrence interval to an int >= 1."""
    try:
        n = int(value)
    except (TypeError, ValueError):
        return 1
    return n if n >= 1 else 1


class RecurrenceRule(BaseModel):
    """How a task repeats: pattern, every-N multiplier and optional end."""
    model_config = ConfigDict(frozen=True)

    pattern: RecurrencePattern = RecurrencePattern.NONE
    interval: int = 1
    # inclusive upper bound on generated occurrences
    ends_at: Optional[datetime] = None

    @field_validator('interval', mode='before')
    @classmethod
    def _clamp_interval(cls, v):
        return clamp_interval(v)

    @field_validator('ends_at')
    @classmethod
    def _ends_at_utc(cls, v):
        return ensure_utc(v)

    @property
    def is_recurring(self) -> bool:
        return self.pattern != RecurrencePattern.NONE


class ParsedTask(BaseModel):
    original_title: str
    cleaned_title: str
    due_date: datetime
    priority: Optional[Priority] = None
    recurrence_rule: RecurrenceRule = Field(default_factory=RecurrenceRule)

    @field_validator('due_date')
    @classmethod
    def _due_utc(cls, v):
        return ensure_utc(v)

    def to_response(self) -> dict:
        """Flattened camelCase shape returned by the parse endpoint."""
        rule = self.recurrence_rule
        return {
            'originalTitle': self.original_title,
            'cleanedTitle': self.cleaned_title,
            'dueDate': isoformat_utc(self.due_date),
            'priority': self.priority.value if self.priority else None,
            'recurrencePattern': rule.pattern.value,
            'recurrenceInterval': rule.interval,
            'recurrenceEndsAt': isoformat_utc(rule.ends_at),
        }


class TaskRecord(BaseModel):
    """A stored task as seen by the recurrence engine.

    Occurrences produced by the expansion engine are shallow copies of the
    record with ``due_date`` replaced. ``parent_task_id`` points at the first
    task of a recurring series.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: Optional[str] = None
    text: str = ''
    notes: Optional[str] = None
    priority: Optional[Priority] = None
    due_date: Optional[datetime] = None
    completed: bool = False
    completed_at: Optional[datetime] = None
    is_recurring: bool = False
    recurrence_pattern: RecurrencePattern = RecurrencePattern.NONE
    recurrence_interval: int = 1
    recurrence_ends_at: Optional[datetime] = None
    parent_task_id: Optional[str] = None
    next_due_date: Optional[datetime] = None

    @field_validator('recurrence_interval', mode='before')
    @classmethod
    def _clamp_interval(cls, v):
        return clamp_interval(v)

    @field_validator('due_date', 'completed_at', 'recurrence_ends_at', 'next_due_date')
    @classmethod
    def _datetimes_utc(cls, v):
        return ensure_utc(v)

    @model_validator(mode='after')
    def _recurring_flag(self):
        # a concrete pattern implies a recurring task
        if self.recurrence_pattern != RecurrencePattern.NONE:
            self.is_recurring = True
        return self

    @property
    def rule(self) -> RecurrenceRule:
        return RecurrenceRule(
            pattern=self.recurrence_pattern,
            interval=self.recurrence_interval,
            ends_at=self.recurrence_ends_at,
        )
