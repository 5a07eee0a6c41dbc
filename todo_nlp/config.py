"""Simple runtime configuration for the todo-nlp service.

Control flags are read from environment variables to allow toggling in
development or production without code changes.
"""
import os


def _trueish(v: str | None) -> bool:
    if not v:
        return False
    return v.lower() in ('1', 'true', 'yes', 'on')


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


# Timezone used when a request omits one or names an unknown zone. The
# parse endpoint always falls back to UTC; other callers may override.
DEFAULT_TIMEZONE = os.getenv('DEFAULT_TIMEZONE', 'UTC')

# Hour of day (local) used for synthesized due dates such as the
# "tomorrow at 9:00" fallback and daily tasks without an explicit time.
DEFAULT_DUE_HOUR = _int_env('DEFAULT_DUE_HOUR', 9)

# Safety cap on the number of occurrences a single expansion may emit,
# regardless of how wide the requested window is.
MAX_EXPANSION_OCCURRENCES = _int_env('MAX_EXPANSION_OCCURRENCES', 5000)

# Window used by /tasks/occurrences when the caller gives no range end.
DEFAULT_WINDOW_DAYS = _int_env('DEFAULT_WINDOW_DAYS', 90)

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

# When true, the parser logs each extraction stage at DEBUG level
# (matched rule, until phrase, resolved due date).
DEBUG_PARSER = _trueish(os.getenv('DEBUG_PARSER', '0'))
