import pytest
from datetime import datetime, timedelta, timezone


def _dt(s):
    return datetime.fromisoformat(s.replace('Z', '+00:00'))


@pytest.mark.asyncio
async def test_healthz(client):
    resp = await client.get('/healthz')
    assert resp.status_code == 200
    assert resp.json() == {'status': 'ok'}


@pytest.mark.asyncio
async def test_parse_task_details_daily_with_time(client):
    resp = await client.post('/nlp/parse-task-details',
                             json={'taskTitle': 'Take medicine every day at 8am', 'timeZone': 'Asia/Kolkata'})
    assert resp.status_code == 200
    j = resp.json()
    assert j['originalTitle'] == 'Take medicine every day at 8am'
    assert j['cleanedTitle'] == 'Take medicine'
    assert j['recurrencePattern'] == 'daily'
    assert j['recurrenceInterval'] == 1
    assert j['recurrenceEndsAt'] is None
    assert j['priority'] is None
    # 08:00 in Kolkata is 02:30 UTC
    assert j['dueDate'].endswith('T02:30:00Z')


@pytest.mark.asyncio
async def test_parse_task_details_priority_and_interval(client):
    resp = await client.post('/nlp/parse-task-details',
                             json={'taskTitle': 'Urgent team sync every 2 weeks', 'timeZone': 'UTC'})
    assert resp.status_code == 200
    j = resp.json()
    assert j['priority'] == 'High'
    assert j['recurrencePattern'] == 'weekly'
    assert j['recurrenceInterval'] == 2


@pytest.mark.asyncio
@pytest.mark.parametrize('body', [
    {'taskTitle': ''},
    {'taskTitle': '   '},
    {'taskTitle': 42},
    {'taskTitle': ['x']},
    {},
])
async def test_parse_task_details_rejects_bad_title(client, body):
    resp = await client.post('/nlp/parse-task-details', json=body)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_parse_task_details_unknown_timezone_falls_back_to_utc(client):
    resp = await client.post('/nlp/parse-task-details',
                             json={'taskTitle': 'Daily journal', 'timeZone': 'Mars/Olympus'})
    assert resp.status_code == 200
    assert resp.json()['dueDate'].endswith('T09:00:00Z')


@pytest.mark.asyncio
async def test_task_occurrences(client):
    task = {
        'id': 'w1',
        'text': 'Review',
        'dueDate': '2025-03-03T09:00:00Z',
        'recurrencePattern': 'weekly',
        'recurrenceEndsAt': '2025-03-24T09:00:00Z',
    }
    resp = await client.post('/tasks/occurrences', json={
        'task': task,
        'rangeStart': '2025-03-01T00:00:00Z',
        'rangeEnd': '2025-04-15T00:00:00Z',
        'timeZone': 'UTC',
    })
    assert resp.status_code == 200
    occ = resp.json()['occurrences']
    assert [_dt(o['dueDate']).day for o in occ] == [3, 10, 17, 24]
    assert all(o['isRecurring'] for o in occ)
    assert all(o['id'] == 'w1' for o in occ)


@pytest.mark.asyncio
async def test_task_occurrences_inverted_range(client):
    resp = await client.post('/tasks/occurrences', json={
        'task': {'id': 'd', 'dueDate': '2025-03-03T09:00:00Z', 'recurrencePattern': 'daily'},
        'rangeStart': '2025-04-01T00:00:00Z',
        'rangeEnd': '2025-03-01T00:00:00Z',
    })
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_complete_recurring_task_late(client):
    resp = await client.post('/tasks/complete', json={
        'task': {'id': 'd1', 'text': 'Stretch', 'dueDate': '2025-02-26T07:00:00Z',
                 'recurrencePattern': 'daily'},
        'completedAt': '2025-03-05T10:00:00Z',
        'timeZone': 'UTC',
    })
    assert resp.status_code == 200
    j = resp.json()
    assert j['completed']['completed'] is True
    nxt = j['next']
    assert nxt['parentTaskId'] == 'd1'
    assert nxt['completed'] is False
    assert _dt(nxt['dueDate']) == datetime(2025, 3, 5, 7, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_complete_one_off_task(client):
    resp = await client.post('/tasks/complete', json={
        'task': {'id': 'o1', 'text': 'Call plumber', 'dueDate': '2025-03-05T09:00:00Z'},
    })
    assert resp.status_code == 200
    j = resp.json()
    assert j['completed']['completed'] is True
    assert j['completed']['completedAt'] is not None
    assert j['next'] is None


@pytest.mark.asyncio
async def test_task_from_text(client):
    resp = await client.post('/tasks/from-text',
                             json={'taskTitle': 'Gym every 2 days at 7am', 'timeZone': 'UTC'})
    assert resp.status_code == 200
    j = resp.json()
    assert j['id']
    assert j['text'] == 'Gym'
    assert j['isRecurring'] is True
    assert j['recurrencePattern'] == 'daily'
    assert j['recurrenceInterval'] == 2
    assert j['completed'] is False
    assert _dt(j['nextDueDate']) - _dt(j['dueDate']) == timedelta(days=2)
    assert j['dueDate'].endswith('T07:00:00Z')


@pytest.mark.asyncio
async def test_task_from_text_rejects_blank_title(client):
    resp = await client.post('/tasks/from-text', json={'taskTitle': '  '})
    assert resp.status_code == 400
