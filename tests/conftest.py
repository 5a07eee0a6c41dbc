import pathlib
import re
import sys
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# ensure project root is on PYTHONPATH for test runs
ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from todo_nlp.main import app  # noqa: E402

# Wednesday 2025-03-05 10:00 UTC; every relative date in the tests hangs off this.
NOW = datetime(2025, 3, 5, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


# --- Test helpers for stubbing heavy date parsing ---
# Tests that need deterministic title cleaning can opt in to a fake
# `dateparser.search.search_dates` by including `use_fake_search_dates` in
# the test signature. The fake only recognises ISO dates (YYYY-MM-DD).
def _default_fake_search_dates(text, languages=None, settings=None, **kwargs):
    out = []
    for m in re.finditer(r"\d{4}-\d{2}-\d{2}", text or ''):
        out.append((m.group(0), datetime.fromisoformat(m.group(0))))
    return out or None


@pytest.fixture
def fake_search_dates():
    return _default_fake_search_dates


@pytest.fixture
def use_fake_search_dates(monkeypatch, fake_search_dates):
    import dateparser.search
    monkeypatch.setattr(dateparser.search, 'search_dates', fake_search_dates)


@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
