"""
Cursor algebra and batch chunking.

A cursor is an open, string-keyed dict of scalars. The agent owns three keys
(``last_id``, ``last_device_time`` and ``boundary_ids``); every other key
belongs to the device adapter or the server and must survive every update
untouched.

``last_device_time`` is the device-local wall-clock time of the newest event
that has been acknowledged, in device-native form (no UTC offset). Devices
stamp events to the second, so several events can share that second and a
chunk boundary can fall between them. ``boundary_ids`` lists the keys of the
acknowledged events at exactly ``last_device_time``; readers resume from that
second inclusively and skip only those. A cursor without ``boundary_ids``
(written by an older agent or moved by the server) resumes from
``last_device_time + 1s``.
"""

from datetime import datetime, timedelta

from .constants import (
    CURSOR_LAST_ID, CURSOR_LAST_DEVICE_TIME, CURSOR_BOUNDARY_IDS, DEVICE_TIME_FORMAT,
)


def empty_cursor():
    return {}


def merge_cursor(base, updates):
    """New keys overwrite, untouched keys persist. Neither input is mutated."""
    merged = dict(base or {})
    merged.update(updates or {})
    return merged


def parse_device_time(value):
    """Parse an ISO-8601 or device-native time into a naive local datetime."""
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text).replace(tzinfo=None)


def format_device_time(moment):
    return moment.replace(tzinfo=None).strftime(DEVICE_TIME_FORMAT)


def last_device_time(cursor):
    """The cursor's ``last_device_time`` as a naive datetime, or None."""
    raw = (cursor or {}).get(CURSOR_LAST_DEVICE_TIME)
    if not raw:
        return None
    try:
        return parse_device_time(raw)
    except (TypeError, ValueError):
        return None


def event_key(event):
    """Identity of an event among others stamped with the same second."""
    if event.device_event_id:
        return str(event.device_event_id)
    return f"{event.device_user_id}@{event.event_time_local}"


def boundary_ids(cursor):
    raw = (cursor or {}).get(CURSOR_BOUNDARY_IDS)
    if not raw:
        return set()
    return {part for part in str(raw).split(",") if part}


def resume_point(cursor):
    """
    ``(since, skip)`` for the next read: events at or after ``since`` are new,
    except those stamped exactly ``since`` whose key is in ``skip``.

    ``since`` is None for a first-ever read.
    """
    last = last_device_time(cursor)
    if last is None:
        return None, frozenset()
    if CURSOR_BOUNDARY_IDS in cursor:
        return last, frozenset(boundary_ids(cursor))
    return last + timedelta(seconds=1), frozenset()


def events_after(events, cursor):
    """The events a reader should hand out for ``cursor``, order kept."""
    since, skip = resume_point(cursor)
    if since is None:
        return list(events)
    fresh = []
    for event in events:
        moment = parse_device_time(event.event_time_local)
        if moment < since:
            continue
        if moment == since and event_key(event) in skip:
            continue
        fresh.append(event)
    return fresh


def next_cursor(previous, events):
    """
    Cursor to commit once ``events`` are acknowledged.

    ``last_id`` is the chunk's event count; ``last_device_time`` is the newest
    local event time in the chunk, never moving backwards past ``previous``.
    Boundary keys accumulate while consecutive chunks end on the same second.
    """
    stamped = [(parse_device_time(e.event_time_local), e) for e in events]
    newest = max(moment for moment, _ in stamped)
    prior = last_device_time(previous)
    if prior is not None and prior > newest:
        return merge_cursor(previous, {
            CURSOR_LAST_ID: len(events),
            CURSOR_LAST_DEVICE_TIME: format_device_time(prior),
        })

    keys = boundary_ids(previous) if prior == newest else set()
    keys.update(event_key(e) for moment, e in stamped if moment == newest)
    return merge_cursor(previous, {
        CURSOR_LAST_ID: len(events),
        CURSOR_LAST_DEVICE_TIME: format_device_time(newest),
        CURSOR_BOUNDARY_IDS: ",".join(sorted(keys)),
    })


def accept_cursor(sent, accepted):
    """
    Cursor to commit after an acknowledged chunk.

    The server's keys win over the ones sent with the batch; everything it
    left out is kept. If the server moved ``last_device_time`` without naming
    its own boundary, the local boundary keys no longer describe that second
    and are dropped.
    """
    accepted = accepted or {}
    merged = merge_cursor(sent, accepted)
    if (CURSOR_LAST_DEVICE_TIME in accepted
            and CURSOR_BOUNDARY_IDS not in accepted
            and last_device_time(accepted) != last_device_time(sent)):
        merged.pop(CURSOR_BOUNDARY_IDS, None)
    return merged


def chunk_events(events, size):
    """Consecutive slices of at most ``size`` events, in order."""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    return [events[i:i + size] for i in range(0, len(events), size)]
